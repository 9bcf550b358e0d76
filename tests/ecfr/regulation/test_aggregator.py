from datetime import date

import pytest
from sqlalchemy import select

from ecfr.regulation.aggregator import tokenize, update_title_unique_word_count
from ecfr.regulation.metrics import compute_metrics
from ecfr.regulation.models import NodeKind
from ecfr.regulation.schema import titles
from ecfr.regulation.store import WriteStats


@pytest.mark.parametrize(
    "content, expected",
    [
        ("The Owner, the OWNER.", ["the", "owner", "the", "owner"]),
        ("§ 60.1 snake_case", ["60", "1", "snake", "case"]),
        ("", []),
    ],
)
def test_tokenize(content, expected):
    assert tokenize(content) == expected


class TestUniqueWordCount:
    @pytest.fixture
    def part_id(self, store, chapter_id):
        return store.upsert_part(chapter_id, "60", "PART 60")

    def add_version(self, store, part_id, identifier, effective_date, text):
        section_id = store.upsert_section(part_id, identifier, identifier, NodeKind.SECTION)
        store.upsert_section_version(section_id, effective_date, compute_metrics(text))

    def stored_count(self, connection, title_id):
        return connection.execute(
            select(titles.c.total_unique_word_count).where(titles.c.id == title_id)
        ).scalar_one()

    def test_title_without_content(self, connection, title_id):
        assert update_title_unique_word_count(connection, title_id) == 0
        assert self.stored_count(connection, title_id) == 0

    def test_counts_distinct_words_across_sections_and_versions(
        self, store, connection, title_id, part_id
    ):
        self.add_version(store, part_id, "60.1", date(2024, 1, 1), "Owner and operator.")
        self.add_version(store, part_id, "60.1", date(2024, 6, 1), "Owner and facility.")
        self.add_version(store, part_id, "60.2", date(2024, 1, 1), "The OWNER.")

        assert update_title_unique_word_count(connection, title_id) == 5
        assert self.stored_count(connection, title_id) == 5

    def test_new_words_strictly_increase_count(self, store, connection, title_id, part_id):
        self.add_version(store, part_id, "60.1", date(2024, 1, 1), "Owner and operator.")
        before = update_title_unique_word_count(connection, title_id)

        self.add_version(store, part_id, "60.2", date(2024, 1, 1), "Stationary source.")
        after = update_title_unique_word_count(connection, title_id)

        assert after > before

    def test_seen_words_leave_count_unchanged(self, store, connection, title_id, part_id):
        self.add_version(store, part_id, "60.1", date(2024, 1, 1), "Owner and operator.")
        before = update_title_unique_word_count(connection, title_id)

        self.add_version(store, part_id, "60.2", date(2024, 1, 1), "operator AND owner")
        after = update_title_unique_word_count(connection, title_id)

        assert after == before

    def test_other_titles_are_not_counted(self, store, connection, title_id, part_id):
        self.add_version(store, part_id, "60.1", date(2024, 1, 1), "Owner.")
        other_title_id = store.upsert_title(100, "Other")
        other_chapter_id = store.upsert_chapter(other_title_id, "I", "Chapter I")
        other_part_id = store.upsert_part(other_chapter_id, "1", "PART 1")
        self.add_version(store, other_part_id, "1.1", date(2024, 1, 1), "Completely different words.")

        assert update_title_unique_word_count(connection, title_id) == 1
        assert update_title_unique_word_count(connection, other_title_id) == 3

    def test_unchanged_count_is_not_rewritten(self, store, connection, title_id, part_id):
        self.add_version(store, part_id, "60.1", date(2024, 1, 1), "Owner and operator.")
        stats = WriteStats()

        update_title_unique_word_count(connection, title_id, stats)
        update_title_unique_word_count(connection, title_id, stats)

        assert stats.written["title_word_count"] == 1
        assert stats.unchanged["title_word_count"] == 1
