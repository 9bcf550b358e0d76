from datetime import date
from pathlib import Path

import pytest

from ecfr.core.database import create_db_engine, create_schema
from ecfr.regulation.models import WalkContext
from ecfr.regulation.store import RegulationStore

TEST_DATA_DIR = Path(__file__).parent.parent / "test_data"

EFFECTIVE_DATE = date(2024, 1, 3)


@pytest.fixture
def sample_xml() -> bytes:
    return (TEST_DATA_DIR / "title-99.xml").read_bytes()


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ecfr.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def connection(engine):
    with engine.begin() as connection:
        yield connection


@pytest.fixture
def store(connection):
    return RegulationStore(connection)


@pytest.fixture
def title_id(store):
    return store.upsert_title(99, "Sample Regulations")


@pytest.fixture
def chapter_id(store, title_id):
    return store.upsert_chapter(title_id, "I", "Sample Protection Agency")


@pytest.fixture
def walk_context(title_id, chapter_id):
    return WalkContext(
        title_id=title_id,
        title_number=99,
        effective_date=EFFECTIVE_DATE,
        chapter_id=chapter_id,
    )
