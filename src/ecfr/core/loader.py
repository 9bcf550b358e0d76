from abc import ABC, abstractmethod
from datetime import date
from typing import Optional


class TitleSource(ABC):
    """Abstract base class for anything that can supply a title's XML document."""

    @abstractmethod
    def load_title_xml(self, title_number: int, effective_date: Optional[date] = None) -> bytes:
        """Return the raw XML for a title as of a date (or the latest available)."""
        pass
