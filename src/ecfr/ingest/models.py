from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from ecfr.core.models import EcfrModel


class TitleStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class TitleResult(EcfrModel):
    """Outcome of ingesting one title revision."""

    title_number: int
    effective_date: Optional[date] = None
    status: TitleStatus
    parts: int = 0
    sections: int = 0
    subparts: int = 0
    skipped_nodes: int = 0
    rows_written: int = 0
    unique_word_count: Optional[int] = None
    error_category: Optional[str] = None
    error_message: Optional[str] = None


class IngestRunSummary(EcfrModel):
    """Per-title outcomes of a run, so a partial run can be re-run for just the failures."""

    results: List[TitleResult] = Field(default_factory=list)

    def add(self, result: TitleResult) -> None:
        self.results.append(result)

    @property
    def succeeded(self) -> List[TitleResult]:
        return [r for r in self.results if r.status == TitleStatus.SUCCEEDED]

    @property
    def failed(self) -> List[TitleResult]:
        return [r for r in self.results if r.status == TitleStatus.FAILED]

    @property
    def skipped(self) -> List[TitleResult]:
        return [r for r in self.results if r.status == TitleStatus.SKIPPED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_stats(self) -> Dict[str, Any]:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "rows_written": sum(r.rows_written for r in self.results),
            "failures": [
                {
                    "title_number": r.title_number,
                    "effective_date": str(r.effective_date) if r.effective_date else None,
                    "error_category": r.error_category,
                    "error_message": r.error_message,
                }
                for r in self.failed
            ],
        }
