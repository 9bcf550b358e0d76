"""Relational schema for the regulation store.

Every table carries a unique constraint on its natural key, which is what the
store's upserts resolve conflicts against.
"""

from sqlalchemy import (
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

titles = Table(
    "titles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("number", Integer, nullable=False, unique=True),
    Column("name", Text, nullable=False),
    Column("total_unique_word_count", Integer, nullable=False, server_default="0"),
)

chapters = Table(
    "chapters",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title_id", Integer, ForeignKey("titles.id"), nullable=False),
    Column("identifier", String(64), nullable=False),
    Column("name", Text, nullable=False),
    UniqueConstraint("title_id", "identifier", name="uq_chapters_title_identifier"),
)

parts = Table(
    "parts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("chapter_id", Integer, ForeignKey("chapters.id"), nullable=False),
    Column("identifier", String(64), nullable=False),
    Column("name", Text, nullable=False),
    UniqueConstraint("chapter_id", "identifier", name="uq_parts_chapter_identifier"),
)

sections = Table(
    "sections",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("part_id", Integer, ForeignKey("parts.id"), nullable=False),
    Column("parent_id", Integer, ForeignKey("sections.id"), nullable=True),
    Column("identifier", String(128), nullable=False),
    Column("name", Text, nullable=False),
    Column("type", String(16), nullable=False),
    UniqueConstraint("part_id", "identifier", name="uq_sections_part_identifier"),
)

section_versions = Table(
    "section_versions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("section_id", Integer, ForeignKey("sections.id"), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("content", Text, nullable=False),
    Column("word_count", Integer, nullable=False),
    Column("complexity_score", Float, nullable=False),
    Column("checksum", String(64), nullable=False),
    UniqueConstraint("section_id", "effective_date", name="uq_section_versions_section_date"),
)

agencies = Table(
    "agencies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("parent_id", Integer, ForeignKey("agencies.id"), nullable=True),
    Column("name", Text, nullable=False),
    Column("short_name", Text),
    Column("display_name", Text),
    Column("sortable_name", Text),
    Column("slug", String(255), nullable=False, unique=True),
)

agency_cfr_references = Table(
    "agency_cfr_references",
    metadata,
    Column("agency_id", Integer, ForeignKey("agencies.id"), nullable=False),
    Column("chapter_id", Integer, ForeignKey("chapters.id"), nullable=False),
    PrimaryKeyConstraint("agency_id", "chapter_id", name="pk_agency_cfr_references"),
)
