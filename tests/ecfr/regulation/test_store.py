from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from ecfr.core.exceptions import PersistenceError
from ecfr.regulation.metrics import compute_metrics
from ecfr.regulation.models import AgencyInfo, CfrReference, NodeKind
from ecfr.regulation.schema import agencies, agency_cfr_references, section_versions, titles
from ecfr.regulation.store import RegulationStore, WriteStats


def test_write_stats():
    stats = WriteStats()
    stats.record("title", True)
    stats.record("title", False)
    stats.record("section", True)

    assert stats.mutations == 2
    assert stats.as_dict() == {"written": {"title": 1, "section": 1}, "unchanged": {"title": 1}}


class TestUpserts:
    def test_upsert_returns_same_id_and_skips_unchanged(self, store, connection):
        first = store.upsert_title(1, "General Provisions")
        second = store.upsert_title(1, "General Provisions")

        assert first == second
        assert store.stats.written["title"] == 1
        assert store.stats.unchanged["title"] == 1

    def test_upsert_updates_changed_fields(self, store, connection):
        title_id = store.upsert_title(1, "General Provisions")
        assert store.upsert_title(1, "General Provisions (Revised)") == title_id

        assert connection.execute(select(titles.c.name)).scalar_one() == "General Provisions (Revised)"
        assert store.stats.written["title"] == 2

    def test_ensure_chapter_keeps_existing_name(self, store, title_id):
        chapter_id = store.upsert_chapter(title_id, "I", "Catalog Name")

        assert store.ensure_chapter(title_id, "I", "Heading Name") == chapter_id
        assert store.get_chapter_id(title_id, "I") == chapter_id
        assert store.stats.written["chapter"] == 1

    def test_ensure_chapter_creates_missing(self, store, title_id):
        chapter_id = store.ensure_chapter(title_id, "IV", "Chapter IV")

        assert store.get_chapter_id_by_title_number(99, "IV") == chapter_id
        assert store.get_chapter_id_by_title_number(98, "IV") is None

    def test_section_parent_change_is_written(self, store, chapter_id):
        part_id = store.upsert_part(chapter_id, "60", "PART 60")
        subpart_id = store.upsert_section(part_id, "A", "Subpart A", NodeKind.SUBPART)
        section_id = store.upsert_section(part_id, "60.1", "Applicability", NodeKind.SECTION)

        moved = store.upsert_section(
            part_id, "60.1", "Applicability", NodeKind.SECTION, parent_id=subpart_id
        )

        assert moved == section_id
        assert store.stats.written["section"] == 3

    def test_get_title_and_list_titles(self, store):
        store.upsert_title(40, "Protection of Environment")
        store.upsert_title(2, "Grants and Agreements")

        assert store.get_title(40).name == "Protection of Environment"
        assert store.get_title(41) is None
        assert [title.number for title in store.list_titles()] == [2, 40]

    def test_unsupported_dialect(self):
        connection = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))

        with pytest.raises(PersistenceError):
            RegulationStore(connection)


class TestSectionVersions:
    @pytest.fixture
    def section_id(self, store, chapter_id):
        part_id = store.upsert_part(chapter_id, "60", "PART 60")
        return store.upsert_section(part_id, "60.1", "Applicability", NodeKind.SECTION)

    def test_one_version_per_section_and_date(self, store, connection, section_id):
        store.upsert_section_version(section_id, date(2024, 1, 3), compute_metrics("Original text."))
        store.upsert_section_version(section_id, date(2024, 1, 3), compute_metrics("Original text."))
        store.upsert_section_version(section_id, date(2024, 2, 1), compute_metrics("Original text."))

        dates = connection.execute(
            select(section_versions.c.effective_date).order_by(section_versions.c.effective_date)
        ).scalars().all()
        assert dates == [date(2024, 1, 3), date(2024, 2, 1)]
        assert store.stats.written["section_version"] == 2
        assert store.stats.unchanged["section_version"] == 1

    def test_changed_checksum_overwrites(self, store, connection, section_id):
        version_id = store.upsert_section_version(
            section_id, date(2024, 1, 3), compute_metrics("Original text.")
        )
        updated = compute_metrics("Amended text with more words.")

        assert store.upsert_section_version(section_id, date(2024, 1, 3), updated) == version_id

        row = connection.execute(select(section_versions)).one()
        assert row.content == updated.content
        assert row.checksum == updated.checksum
        assert row.word_count == updated.word_count
        assert store.stats.written["section_version"] == 2

    def test_same_checksum_never_rewrites(self, store, connection, section_id):
        metrics = compute_metrics("Original text.")
        store.upsert_section_version(section_id, date(2024, 1, 3), metrics)

        # Only the checksum guards the write, so other fields are left as stored
        stale = metrics.model_copy(update={"word_count": 999})
        store.upsert_section_version(section_id, date(2024, 1, 3), stale)

        assert connection.execute(select(section_versions.c.word_count)).scalar_one() == 2
        assert store.stats.unchanged["section_version"] == 1


class TestAgencies:
    def test_agency_hierarchy_and_references(self, store, connection, chapter_id):
        agency = AgencyInfo(
            name="Department of Agriculture",
            slug="agriculture-department",
            short_name="USDA",
            cfr_references=[CfrReference(title=99, chapter="I")],
            children=[
                AgencyInfo(
                    name="Forest Service",
                    slug="forest-service",
                    cfr_references=[CfrReference(title=99, chapter="I")],
                )
            ],
        )

        parent_id = store.upsert_agency(agency)
        child_id = store.upsert_agency(agency.children[0], parent_id)
        store.link_agency_chapter(parent_id, chapter_id)
        store.link_agency_chapter(child_id, chapter_id)
        store.link_agency_chapter(child_id, chapter_id)

        rows = {row.slug: row for row in connection.execute(select(agencies))}
        assert rows["forest-service"].parent_id == rows["agriculture-department"].id
        assert rows["agriculture-department"].short_name == "USDA"
        assert len(connection.execute(select(agency_cfr_references)).all()) == 2
        assert store.stats.written["agency_cfr_reference"] == 2
        assert store.stats.unchanged["agency_cfr_reference"] == 1

    def test_database_errors_are_wrapped(self, store):
        # No chapter row with this id, so the foreign key is violated
        with pytest.raises(PersistenceError):
            store.upsert_part(12345, "1", "PART 1")
