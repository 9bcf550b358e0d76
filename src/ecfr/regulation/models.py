from datetime import date
from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator

from ecfr.core.models import DatedModel, EcfrModel, coerce_date


class NodeKind(str, Enum):
    """Structural role of a node in a title document.

    - PART: creates a Part row under the current chapter
    - SECTION: creates a Section row and a SectionVersion
    - SUBPART: creates a Section row that parents the sections nested in it
    - UNCLASSIFIED: container or unknown node, recursed into without creating an entity
    """

    PART = "PART"
    SECTION = "SECTION"
    SUBPART = "SUBPART"
    UNCLASSIFIED = "UNCLASSIFIED"


class TitleInfo(EcfrModel):
    """A title as listed by the versioner titles endpoint."""

    number: int
    name: str
    latest_issue_date: Optional[date] = None
    latest_amended_on: Optional[date] = None
    up_to_date_as_of: Optional[date] = None
    reserved: bool = False

    @field_validator("latest_issue_date", "latest_amended_on", "up_to_date_as_of", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Any:
        return coerce_date(value)


class ChapterInfo(EcfrModel):
    """A chapter entry from the title structure endpoint."""

    identifier: str
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "label_description"))

    @model_validator(mode="after")
    def synthesize_name(self) -> "ChapterInfo":
        if not self.name:
            self.name = f"Chapter {self.identifier}"
        return self


class CfrReference(EcfrModel):
    title: int
    chapter: Optional[str] = None


class AgencyInfo(EcfrModel):
    """An agency from the admin agencies endpoint, with its sub-agencies."""

    name: str
    slug: str
    short_name: Optional[str] = None
    display_name: Optional[str] = None
    sortable_name: Optional[str] = None
    children: List["AgencyInfo"] = Field(default_factory=list)
    cfr_references: List[CfrReference] = Field(default_factory=list)


class TitleRecord(EcfrModel):
    """A stored title row."""

    id: int
    number: int
    name: str
    total_unique_word_count: int = 0


class SectionMetrics(EcfrModel):
    """Derived metrics for the content stored in a SectionVersion."""

    content: str
    word_count: int
    complexity_score: float
    checksum: str


class WalkContext(DatedModel):
    """Ambient context threaded down the structural walk."""

    title_id: int
    title_number: int
    chapter_id: int
    part_id: Optional[int] = None
    parent_section_id: Optional[int] = None


class WalkStats(EcfrModel):
    """Counts of what a structural walk did."""

    parts: int = 0
    sections: int = 0
    subparts: int = 0
    skipped: int = 0

    def merge(self, other: "WalkStats") -> "WalkStats":
        return WalkStats(
            parts=self.parts + other.parts,
            sections=self.sections + other.sections,
            subparts=self.subparts + other.subparts,
            skipped=self.skipped + other.skipped,
        )
