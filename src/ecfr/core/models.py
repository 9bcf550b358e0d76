from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class EcfrModel(BaseModel):
    """Base class for all eCFR models."""

    model_config = ConfigDict(extra="ignore")


def coerce_date(value: Any) -> Any:
    """Accept ISO strings and datetimes wherever a date is expected."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    if value == "":
        return None
    return value


class DatedModel(EcfrModel):
    """Model carrying the effective date of a title revision."""

    effective_date: date

    @field_validator("effective_date", mode="before")
    @classmethod
    def parse_effective_date(cls, value: Any) -> Any:
        return coerce_date(value)
