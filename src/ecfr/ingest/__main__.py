"""CLI entry point for eCFR ingestion.

Usage:
    # Titles, chapters and agencies
    python -m ecfr.ingest --mode catalog

    # Latest issue of every title
    python -m ecfr.ingest --mode current

    # Every historical revision of titles 1 to 5, four titles at a time
    # (add --clear-http-cache to refetch cached structure and full-text documents)
    python -m ecfr.ingest --mode historical --titles 1-5 --workers 4

    # Pre-downloaded title-{n}.xml files
    python -m ecfr.ingest --mode local --data-dir data/raw/titles
"""

import argparse
import logging
import sys

from ecfr.core.checkpoint import BackfillCheckpoint
from ecfr.core.database import create_schema, get_engine
from ecfr.core.utils import configure_logging, parse_title_numbers
from ecfr.ingest.orchestrator import (
    ingest_catalog,
    run_current_ingest,
    run_historical_backfill,
    run_local_ingest,
)
from ecfr.regulation.loader import EcfrLoader
from ecfr.regulation.scraper import EcfrScraper
from ecfr.settings import CHECKPOINT_DIR, DATABASE_URL, LOCAL_DATA_DIR, MAX_WORKERS


def main() -> int:
    """Main entry point for the ingest CLI."""
    parser = argparse.ArgumentParser(
        description="Ingestion pipeline for eCFR regulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--mode",
        choices=["catalog", "current", "historical", "local"],
        default="current",
        help="Ingest mode: catalog (titles/agencies), current (latest issue), "
        "historical (every revision) or local (files on disk)",
    )

    parser.add_argument(
        "--titles",
        nargs="+",
        default=None,
        help="Titles to process, individually or as ranges like 1-5 (default: all)",
    )

    parser.add_argument(
        "--data-dir",
        default=LOCAL_DATA_DIR,
        help=f"Directory of title-{{n}}.xml files for local mode (default: {LOCAL_DATA_DIR})",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=MAX_WORKERS,
        help=f"Titles processed concurrently (default: {MAX_WORKERS})",
    )

    parser.add_argument(
        "--database-url",
        default=DATABASE_URL,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )

    parser.add_argument(
        "--clear-checkpoint",
        action="store_true",
        help="Forget completed revisions before a historical backfill",
    )

    parser.add_argument(
        "--clear-http-cache",
        action="store_true",
        help="Drop cached API responses before fetching",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    configure_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        titles = parse_title_numbers(args.titles)
    except ValueError as e:
        parser.error(str(e))

    logger.info(f"Starting ingest: mode={args.mode}, titles={titles or 'all'}, workers={args.workers}")

    try:
        engine = get_engine(args.database_url)
        create_schema(engine)

        def build_scraper() -> EcfrScraper:
            scraper = EcfrScraper()
            if args.clear_http_cache:
                scraper.http_client.clear_cache()
                logger.info(f"Cleared HTTP cache: {scraper.http_client.get_cache_info()}")
            return scraper

        if args.mode == "catalog":
            stats = ingest_catalog(engine, build_scraper())
            logger.info(f"Ingest complete: {stats}")
            return 0

        if args.mode == "local":
            summary = run_local_ingest(engine, EcfrLoader(args.data_dir), titles=titles)
        elif args.mode == "historical":
            checkpoint = BackfillCheckpoint(base_dir=CHECKPOINT_DIR)
            if args.clear_checkpoint:
                checkpoint.clear()
            summary = run_historical_backfill(
                engine, build_scraper(), titles=titles, max_workers=args.workers, checkpoint=checkpoint
            )
            logger.info(f"Checkpoint: {checkpoint.get_summary()}")
        else:  # current
            summary = run_current_ingest(
                engine, build_scraper(), titles=titles, max_workers=args.workers
            )

        logger.info(f"Ingest complete: {summary.as_stats()}")

        if not summary.ok:
            failed = ", ".join(
                f"{r.title_number}@{r.effective_date}" for r in summary.failed
            )
            logger.error(f"{len(summary.failed)} title revisions failed: {failed}")
            return 1
        return 0

    except KeyboardInterrupt:
        logger.info("Ingest interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"Ingest failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
