"""Ingestion pipeline for eCFR regulations.

This module provides a single entry point for all data ingestion:
    python -m ecfr.ingest --mode current --titles 1-5

Design principles:
    - One transaction per title revision - a bad title never rolls back the others
    - Idempotent - guarded upserts, re-running unchanged content writes nothing
    - Resumable - historical backfills checkpoint each finished revision
"""

from ecfr.ingest.models import IngestRunSummary, TitleResult, TitleStatus
from ecfr.ingest.orchestrator import (
    ingest_catalog,
    ingest_title_document,
    process_title,
    run_current_ingest,
    run_historical_backfill,
    run_local_ingest,
)

__all__ = [
    "ingest_catalog",
    "ingest_title_document",
    "process_title",
    "run_current_ingest",
    "run_historical_backfill",
    "run_local_ingest",
    "IngestRunSummary",
    "TitleResult",
    "TitleStatus",
]
