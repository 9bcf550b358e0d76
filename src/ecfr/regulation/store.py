import logging
from collections import Counter
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import Table, and_, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ecfr.core.exceptions import PersistenceError
from ecfr.regulation.models import AgencyInfo, NodeKind, SectionMetrics, TitleRecord
from ecfr.regulation.schema import (
    agencies,
    agency_cfr_references,
    chapters,
    parts,
    section_versions,
    sections,
    titles,
)

logger = logging.getLogger(__name__)

DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class WriteStats:
    """Rows written versus left untouched, per entity kind."""

    def __init__(self):
        self.written: Counter = Counter()
        self.unchanged: Counter = Counter()

    def record(self, kind: str, written: bool) -> None:
        if written:
            self.written[kind] += 1
        else:
            self.unchanged[kind] += 1

    @property
    def mutations(self) -> int:
        return sum(self.written.values())

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {"written": dict(self.written), "unchanged": dict(self.unchanged)}


class RegulationStore:
    """Idempotent writes for the title hierarchy over an explicit connection.

    Every upsert is keyed on the entity's natural key and only touches the row when
    a mutable field actually differs, so re-ingesting unchanged content performs no
    writes. Transaction scope belongs to the caller.
    """

    def __init__(self, connection: Connection):
        self.connection = connection
        self.stats = WriteStats()

        dialect = connection.dialect.name
        if dialect not in DIALECT_INSERTS:
            raise PersistenceError(f"Unsupported database dialect: {dialect}")
        self._insert = DIALECT_INSERTS[dialect]

    def _upsert(
        self,
        kind: str,
        table: Table,
        values: Dict[str, Any],
        key_columns: List[str],
        update_columns: List[str],
        guard_columns: Optional[List[str]] = None,
    ) -> int:
        """Insert a row, or update it when any guard column differs from the stored value.

        Returns the id of the inserted, updated or existing row.
        """
        guard_columns = guard_columns or update_columns

        stmt = self._insert(table).values(**values)
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c[column] for column in key_columns],
            set_={column: excluded[column] for column in update_columns},
            where=or_(*[table.c[column].is_distinct_from(excluded[column]) for column in guard_columns]),
        ).returning(table.c.id)

        key = {column: values[column] for column in key_columns}

        try:
            row_id = self.connection.execute(stmt).scalar_one_or_none()
            written = row_id is not None

            if row_id is None:
                # The guard suppressed the update, so nothing was returned
                row_id = self.connection.execute(
                    select(table.c.id).where(and_(*[table.c[c] == v for c, v in key.items()]))
                ).scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert {kind} {key}: {e}") from e

        self.stats.record(kind, written)
        return row_id

    def upsert_title(self, number: int, name: str) -> int:
        return self._upsert(
            "title",
            titles,
            {"number": number, "name": name},
            key_columns=["number"],
            update_columns=["name"],
        )

    def upsert_chapter(self, title_id: int, identifier: str, name: str) -> int:
        return self._upsert(
            "chapter",
            chapters,
            {"title_id": title_id, "identifier": identifier, "name": name},
            key_columns=["title_id", "identifier"],
            update_columns=["name"],
        )

    def ensure_chapter(self, title_id: int, identifier: str, name: str) -> int:
        """Return the chapter's id, creating it if absent. An existing name is left alone."""
        chapter_id = self.get_chapter_id(title_id, identifier)
        if chapter_id is not None:
            self.stats.record("chapter", written=False)
            return chapter_id

        logger.info(
            f"Creating chapter {identifier} missing from catalog",
            extra={"event_type": "chapter_created", "title_id": title_id, "chapter": identifier},
        )
        return self.upsert_chapter(title_id, identifier, name)

    def upsert_part(self, chapter_id: int, identifier: str, name: str) -> int:
        return self._upsert(
            "part",
            parts,
            {"chapter_id": chapter_id, "identifier": identifier, "name": name},
            key_columns=["chapter_id", "identifier"],
            update_columns=["name"],
        )

    def upsert_section(
        self,
        part_id: int,
        identifier: str,
        name: str,
        section_type: NodeKind,
        parent_id: Optional[int] = None,
    ) -> int:
        return self._upsert(
            "section",
            sections,
            {
                "part_id": part_id,
                "parent_id": parent_id,
                "identifier": identifier,
                "name": name,
                "type": section_type.value,
            },
            key_columns=["part_id", "identifier"],
            update_columns=["name", "type", "parent_id"],
        )

    def upsert_section_version(
        self, section_id: int, effective_date: date, metrics: SectionMetrics
    ) -> int:
        """Store a section's content for a date. Existing content is replaced only when its checksum differs."""
        return self._upsert(
            "section_version",
            section_versions,
            {
                "section_id": section_id,
                "effective_date": effective_date,
                "content": metrics.content,
                "word_count": metrics.word_count,
                "complexity_score": metrics.complexity_score,
                "checksum": metrics.checksum,
            },
            key_columns=["section_id", "effective_date"],
            update_columns=["content", "word_count", "complexity_score", "checksum"],
            guard_columns=["checksum"],
        )

    def upsert_agency(self, agency: AgencyInfo, parent_id: Optional[int] = None) -> int:
        return self._upsert(
            "agency",
            agencies,
            {
                "parent_id": parent_id,
                "name": agency.name,
                "short_name": agency.short_name,
                "display_name": agency.display_name,
                "sortable_name": agency.sortable_name,
                "slug": agency.slug,
            },
            key_columns=["slug"],
            update_columns=["parent_id", "name", "short_name", "display_name", "sortable_name"],
        )

    def link_agency_chapter(self, agency_id: int, chapter_id: int) -> None:
        stmt = (
            self._insert(agency_cfr_references)
            .values(agency_id=agency_id, chapter_id=chapter_id)
            .on_conflict_do_nothing(index_elements=["agency_id", "chapter_id"])
        )
        try:
            result = self.connection.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to link agency {agency_id} to chapter {chapter_id}: {e}"
            ) from e
        self.stats.record("agency_cfr_reference", result.rowcount > 0)

    def get_chapter_id(self, title_id: int, identifier: str) -> Optional[int]:
        return self.connection.execute(
            select(chapters.c.id).where(
                chapters.c.title_id == title_id, chapters.c.identifier == identifier
            )
        ).scalar_one_or_none()

    def get_chapter_id_by_title_number(self, title_number: int, identifier: str) -> Optional[int]:
        return self.connection.execute(
            select(chapters.c.id)
            .join(titles, chapters.c.title_id == titles.c.id)
            .where(titles.c.number == title_number, chapters.c.identifier == identifier)
        ).scalar_one_or_none()

    def get_title(self, number: int) -> Optional[TitleRecord]:
        row = self.connection.execute(select(titles).where(titles.c.number == number)).first()
        if row is None:
            return None
        return TitleRecord(**row._mapping)

    def list_titles(self) -> List[TitleRecord]:
        rows = self.connection.execute(select(titles).order_by(titles.c.number))
        return [TitleRecord(**row._mapping) for row in rows]
