"""Orchestrator for the ingestion pipeline.

Every title revision is ingested in its own transaction: fetch, parse, walk all
chapters, then recompute the title's unique word count. A fetch or parse failure
fails only that revision and the run moves on; a persistence failure aborts the
run. Distinct titles may run in a bounded thread pool; the revisions of one
title, and the walk within a revision, are always sequential.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Callable, Iterable, List, Optional, TypeVar, Union

from sqlalchemy.engine import Engine

from ecfr.core.checkpoint import BackfillCheckpoint
from ecfr.core.error_utils import ErrorCategorizer
from ecfr.core.exceptions import EcfrError
from ecfr.core.loader import TitleSource
from ecfr.ingest.models import IngestRunSummary, TitleResult, TitleStatus
from ecfr.regulation.aggregator import update_title_unique_word_count
from ecfr.regulation.loader import EcfrLoader
from ecfr.regulation.models import AgencyInfo, TitleInfo, WalkContext, WalkStats
from ecfr.regulation.parser import (
    document_effective_date,
    heading_text,
    iter_chapters,
    parse_document,
)
from ecfr.regulation.scraper import EcfrScraper
from ecfr.regulation.store import RegulationStore
from ecfr.regulation.walker import StructuralWalker
from ecfr.settings import RESERVED_TITLES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_ingestible(title: TitleInfo) -> bool:
    return not title.reserved and title.number not in RESERVED_TITLES


def ingest_catalog(engine: Engine, scraper: EcfrScraper) -> dict:
    """Store titles, their chapters and the agency hierarchy.

    Chapters come from each title's structure document as of its latest issue. A
    title whose structure cannot be fetched keeps its title row and is logged.

    Returns:
        Write statistics for the catalog pass
    """
    logger.info("Fetching titles and chapters")

    with engine.begin() as connection:
        store = RegulationStore(connection)

        for title in scraper.list_titles():
            if not is_ingestible(title):
                logger.info(f"Skipping reserved title: {title.number} {title.name}")
                continue

            title_id = store.upsert_title(title.number, title.name)

            if title.latest_issue_date is None:
                logger.warning(f"Title {title.number} has no issue date, skipping chapters")
                continue

            try:
                chapters = scraper.get_chapters(title.number, title.latest_issue_date)
            except EcfrError as e:
                if not ErrorCategorizer.is_recoverable_error(e):
                    raise
                logger.error(
                    f"Failed to fetch structure for Title {title.number}: {e}",
                    extra=ErrorCategorizer.extract_error_metadata(
                        e, title_number=title.number, effective_date=title.latest_issue_date
                    ),
                )
                continue

            for chapter in chapters:
                store.upsert_chapter(title_id, chapter.identifier, chapter.name)

            logger.info(f"Upserted Title {title.number} with {len(chapters)} chapters")

        logger.info("Fetching agencies")
        for agency in scraper.list_agencies():
            _store_agency(store, agency)

    stats = store.stats.as_dict()
    logger.info(f"Catalog ingest complete: {stats}")
    return stats


def _store_agency(store: RegulationStore, agency: AgencyInfo, parent_id: Optional[int] = None) -> None:
    agency_id = store.upsert_agency(agency, parent_id)

    for reference in agency.cfr_references:
        if not reference.chapter:
            continue
        chapter_id = store.get_chapter_id_by_title_number(reference.title, reference.chapter)
        if chapter_id is not None:
            store.link_agency_chapter(agency_id, chapter_id)

    for child in agency.children:
        _store_agency(store, child, agency_id)


def ingest_title_document(
    engine: Engine,
    title_number: int,
    xml: Union[str, bytes],
    effective_date: Optional[date] = None,
    title_name: Optional[str] = None,
) -> TitleResult:
    """Ingest one title revision in a single transaction.

    Args:
        engine: Database engine
        title_number: Title the document belongs to
        xml: Raw title document
        effective_date: Revision date. Defaults to the document's AMDDATE, then today.
        title_name: Catalog name, refreshed on the title row when given

    Raises:
        DocumentStructureError: If the document is not a title document. Nothing is written.
        PersistenceError: If a write fails. The transaction is rolled back.
    """
    root = parse_document(xml)
    chapters = list(iter_chapters(root))

    if effective_date is None:
        effective_date = document_effective_date(root)
        if effective_date is None:
            effective_date = date.today()
            logger.info(
                f"Title {title_number} is missing date information. Using current date: {effective_date}"
            )

    with engine.begin() as connection:
        store = RegulationStore(connection)

        if title_name:
            title_id = store.upsert_title(title_number, title_name)
        else:
            existing = store.get_title(title_number)
            title_id = existing.id if existing else store.upsert_title(title_number, f"Title {title_number}")

        walker = StructuralWalker(store)
        stats = WalkStats()

        for chapter in chapters:
            identifier = chapter.attribute("N")
            if not identifier:
                logger.warning(f"Skipping chapter without identifier in Title {title_number}")
                continue

            chapter_id = store.ensure_chapter(
                title_id, identifier, heading_text(chapter) or f"Chapter {identifier}"
            )
            context = WalkContext(
                title_id=title_id,
                title_number=title_number,
                effective_date=effective_date,
                chapter_id=chapter_id,
            )
            stats = stats.merge(walker.walk_chapter(chapter, context))

        unique_word_count = update_title_unique_word_count(connection, title_id, store.stats)

    return TitleResult(
        title_number=title_number,
        effective_date=effective_date,
        status=TitleStatus.SUCCEEDED,
        parts=stats.parts,
        sections=stats.sections,
        subparts=stats.subparts,
        skipped_nodes=stats.skipped,
        rows_written=store.stats.mutations,
        unique_word_count=unique_word_count,
    )


def process_title(
    engine: Engine,
    source: TitleSource,
    title_number: int,
    effective_date: Optional[date] = None,
    title_name: Optional[str] = None,
) -> TitleResult:
    """Fetch and ingest one title revision, converting title-scoped failures into a failed result."""
    start_time = time.time()

    try:
        xml = source.load_title_xml(title_number, effective_date)
        result = ingest_title_document(
            engine, title_number, xml, effective_date=effective_date, title_name=title_name
        )
    except FileNotFoundError as e:
        logger.info(f"File not found for Title {title_number}, skipping: {e}")
        return TitleResult(
            title_number=title_number,
            effective_date=effective_date,
            status=TitleStatus.SKIPPED,
            error_message=str(e),
        )
    except EcfrError as e:
        if not ErrorCategorizer.is_recoverable_error(e):
            raise

        logger.error(
            f"Failed to fetch or process Title {title_number} for {effective_date}: {e}",
            extra=ErrorCategorizer.extract_error_metadata(
                e, title_number=title_number, effective_date=effective_date
            ),
        )
        return TitleResult(
            title_number=title_number,
            effective_date=effective_date,
            status=TitleStatus.FAILED,
            error_category=ErrorCategorizer.categorize_error(e),
            error_message=ErrorCategorizer.get_error_summary(e),
        )

    logger.info(
        f"Ingested Title {title_number} for {result.effective_date}: "
        f"{result.sections} sections, {result.rows_written} rows written "
        f"in {time.time() - start_time:.2f}s",
        extra={
            "title_number": title_number,
            "effective_date": str(result.effective_date),
            "processing_status": "success",
            "rows_written": result.rows_written,
        },
    )
    return result


def _run_per_title(
    items: Iterable[T],
    worker: Callable[[T], List[TitleResult]],
    max_workers: int = 1,
) -> IngestRunSummary:
    """Run a worker per title, sequentially or in a bounded pool, collecting results."""
    summary = IngestRunSummary()

    if max_workers <= 1:
        for item in items:
            for result in worker(item):
                summary.add(result)
        return summary

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(worker, item) for item in items]
        try:
            for future in as_completed(futures):
                for result in future.result():
                    summary.add(result)
        except Exception:
            executor.shutdown(wait=True, cancel_futures=True)
            raise

    summary.results.sort(key=lambda r: (r.title_number, r.effective_date or date.min))
    return summary


def _select_titles(scraper: EcfrScraper, titles: Optional[List[int]]) -> List[TitleInfo]:
    return [
        title
        for title in scraper.list_titles()
        if is_ingestible(title) and (titles is None or title.number in titles)
    ]


def run_current_ingest(
    engine: Engine,
    scraper: EcfrScraper,
    titles: Optional[List[int]] = None,
    max_workers: int = 1,
) -> IngestRunSummary:
    """Ingest the latest issue of each title.

    Args:
        engine: Database engine
        scraper: eCFR API client
        titles: Title numbers to restrict to (None for all)
        max_workers: Titles processed concurrently

    Returns:
        Per-title outcomes
    """
    selected = _select_titles(scraper, titles)
    logger.info(f"Starting current ingest for {len(selected)} titles, workers={max_workers}")

    def worker(title: TitleInfo) -> List[TitleResult]:
        if title.latest_issue_date is None:
            logger.warning(f"Title {title.number} has no issue date, skipping")
            return [TitleResult(title_number=title.number, status=TitleStatus.SKIPPED)]
        return [
            process_title(
                engine, scraper, title.number, title.latest_issue_date, title_name=title.name
            )
        ]

    summary = _run_per_title(selected, worker, max_workers)
    logger.info(f"Current ingest complete: {summary.as_stats()}")
    return summary


def run_historical_backfill(
    engine: Engine,
    scraper: EcfrScraper,
    titles: Optional[List[int]] = None,
    max_workers: int = 1,
    checkpoint: Optional[BackfillCheckpoint] = None,
) -> IngestRunSummary:
    """Ingest every issued revision of each title, oldest first.

    Each revision commits on its own, so a failure late in the run never discards
    earlier revisions. With a checkpoint, revisions finished by a previous run are
    not fetched again.
    """
    selected = _select_titles(scraper, titles)
    logger.info(f"Starting historical backfill for {len(selected)} titles, workers={max_workers}")

    def worker(title: TitleInfo) -> List[TitleResult]:
        try:
            versions = scraper.list_versions(title.number)
        except EcfrError as e:
            if not ErrorCategorizer.is_recoverable_error(e):
                raise
            logger.error(
                f"Failed to list versions for Title {title.number}: {e}",
                extra=ErrorCategorizer.extract_error_metadata(e, title_number=title.number),
            )
            return [
                TitleResult(
                    title_number=title.number,
                    status=TitleStatus.FAILED,
                    error_category=ErrorCategorizer.categorize_error(e),
                    error_message=ErrorCategorizer.get_error_summary(e),
                )
            ]

        logger.info(f"Title {title.number} has {len(versions)} versions")
        results = []

        for version_date in versions:
            if checkpoint and checkpoint.is_complete(title.number, version_date):
                logger.debug(f"Skipping completed Title {title.number} for {version_date}")
                continue

            result = process_title(
                engine, scraper, title.number, version_date, title_name=title.name
            )
            results.append(result)

            if checkpoint:
                if result.status == TitleStatus.SUCCEEDED:
                    checkpoint.mark_complete(title.number, version_date)
                else:
                    checkpoint.mark_failed(title.number, version_date, result.error_message or "")

        return results

    summary = _run_per_title(selected, worker, max_workers)
    logger.info(f"Historical backfill complete: {summary.as_stats()}")
    return summary


def run_local_ingest(
    engine: Engine,
    loader: EcfrLoader,
    titles: Optional[List[int]] = None,
) -> IngestRunSummary:
    """Ingest title files from a local directory, dated by their AMDDATE."""
    numbers = titles if titles is not None else loader.available_titles()
    logger.info(f"Processing local regulation content for {len(numbers)} titles")

    summary = _run_per_title(
        numbers, lambda number: [process_title(engine, loader, number)], max_workers=1
    )
    logger.info(f"Local ingest complete: {summary.as_stats()}")
    return summary
