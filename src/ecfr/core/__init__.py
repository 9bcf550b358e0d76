from .database import create_db_engine, create_schema, get_engine
from .utils import configure_logging, set_logging_level

__all__ = [
    "create_db_engine",
    "create_schema",
    "get_engine",
    "configure_logging",
    "set_logging_level",
]
