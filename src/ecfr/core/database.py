import logging
import os
from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

from ecfr.regulation.schema import metadata
from ecfr.settings import DATABASE_URL

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine for the regulation store.

    PostgreSQL URLs are routed to the psycopg (v3) driver. SQLite is supported for
    local runs and tests, with foreign key enforcement switched on.
    """
    url = make_url(url or DATABASE_URL)

    if url.get_backend_name() == "postgresql" and url.get_driver_name() in ("", "psycopg2"):
        url = url.set(drivername="postgresql+psycopg")

    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)

    engine = create_engine(url, **kwargs)

    if url.get_backend_name() == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug(f"Created engine for {url.render_as_string(hide_password=True)}")
    return engine


@lru_cache(maxsize=None)
def get_engine(url: Optional[str] = None) -> Engine:
    """Shared engine per URL for CLI entry points. Components take connections, never this."""
    return create_db_engine(url, pool_pre_ping=True)


def create_schema(engine: Engine) -> None:
    """Create any missing tables."""
    metadata.create_all(engine)
    logger.info("Database schema is up to date")
