"""Error categorization and metadata extraction utilities."""

from datetime import date, datetime
from typing import Any, Dict, Optional

from ecfr.core.exceptions import (
    DocumentStructureError,
    ExtractionError,
    FetchError,
    PersistenceError,
    TransientFetchError,
)


class ErrorCategories:
    """Standard error categories across the pipeline."""

    TRANSIENT_FETCH_ERROR = "transient_fetch_error"
    FETCH_ERROR = "fetch_error"
    PARSE_ERROR = "parse_error"
    EXTRACTION_ERROR = "extraction_error"
    PERSISTENCE_ERROR = "persistence_error"
    UNKNOWN_ERROR = "unknown_error"


class ErrorCategorizer:
    """Categorize and extract metadata from errors in a consistent way."""

    # Order matters: subclasses before their bases
    ERROR_TYPES = [
        (TransientFetchError, ErrorCategories.TRANSIENT_FETCH_ERROR),
        (FetchError, ErrorCategories.FETCH_ERROR),
        (DocumentStructureError, ErrorCategories.PARSE_ERROR),
        (ExtractionError, ErrorCategories.EXTRACTION_ERROR),
        (PersistenceError, ErrorCategories.PERSISTENCE_ERROR),
    ]

    # Failures that abort the current title only
    TITLE_SCOPED_CATEGORIES = {
        ErrorCategories.TRANSIENT_FETCH_ERROR,
        ErrorCategories.FETCH_ERROR,
        ErrorCategories.PARSE_ERROR,
        ErrorCategories.EXTRACTION_ERROR,
    }

    @classmethod
    def categorize_error(cls, error: Exception) -> str:
        """Categorize an error based on its type.

        Args:
            error: The exception to categorize

        Returns:
            Error category string
        """
        for error_type, category in cls.ERROR_TYPES:
            if isinstance(error, error_type):
                return category

        return ErrorCategories.UNKNOWN_ERROR

    @classmethod
    def extract_error_metadata(
        cls,
        error: Exception,
        title_number: Optional[int] = None,
        effective_date: Optional[date] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Extract structured logging metadata from an error.

        The title number and effective date are enough to re-run just the failed title.
        """
        metadata = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "error_category": cls.categorize_error(error),
            "timestamp": datetime.now().isoformat(),
        }

        if title_number is not None:
            metadata["title_number"] = title_number
        if effective_date is not None:
            metadata["effective_date"] = str(effective_date)

        if isinstance(error, FetchError):
            if error.url:
                metadata["error_url"] = error.url
            if error.status_code:
                metadata["http_status"] = error.status_code

        if isinstance(error, ExtractionError):
            metadata["node_type"] = error.node_type
            metadata["node_identifier"] = error.identifier

        if context:
            metadata["context"] = context

        return metadata

    @classmethod
    def is_recoverable_error(cls, error: Exception) -> bool:
        """Whether the run can continue with the next title after this error."""
        return cls.categorize_error(error) in cls.TITLE_SCOPED_CATEGORIES

    @classmethod
    def get_error_summary(cls, error: Exception) -> str:
        """Get a concise summary of an error for logging and run reports."""
        category = cls.categorize_error(error)

        if category in (ErrorCategories.FETCH_ERROR, ErrorCategories.TRANSIENT_FETCH_ERROR):
            status = error.status_code or "no response"
            return f"{category} ({status}) for {error.url or 'unknown url'}"

        return f"{category}: {str(error)[:200]}"
