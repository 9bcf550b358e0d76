import logging
import re
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ecfr.core.exceptions import PersistenceError
from ecfr.regulation.schema import chapters, parts, section_versions, sections, titles
from ecfr.regulation.store import WriteStats

logger = logging.getLogger(__name__)

# Alphanumeric runs. Underscores and punctuation separate words.
WORD_PATTERN = re.compile(r"[^\W_]+")

STREAM_BATCH_SIZE = 1000


def tokenize(content: str) -> list[str]:
    return WORD_PATTERN.findall(content.lower())


def update_title_unique_word_count(
    connection: Connection, title_id: int, stats: Optional[WriteStats] = None
) -> int:
    """Recount the distinct words across every stored version of a title's sections.

    Rescans all stored content on every call, so the result always reflects the
    current state of the store. The title row is only written when the count changed.

    Args:
        connection: Connection in the caller's transaction
        title_id: Id of the title row
        stats: Write statistics to record the title update in

    Returns:
        The new unique word count
    """
    logger.debug(f"Calculating unique word count for title {title_id}")

    query = (
        select(section_versions.c.content)
        .select_from(section_versions)
        .join(sections, section_versions.c.section_id == sections.c.id)
        .join(parts, sections.c.part_id == parts.c.id)
        .join(chapters, parts.c.chapter_id == chapters.c.id)
        .where(chapters.c.title_id == title_id)
    )

    unique_words = set()
    try:
        result = connection.execute(query.execution_options(yield_per=STREAM_BATCH_SIZE))
        for content in result.scalars():
            unique_words.update(tokenize(content or ""))

        updated = connection.execute(
            update(titles)
            .where(titles.c.id == title_id)
            .where(titles.c.total_unique_word_count.is_distinct_from(len(unique_words)))
            .values(total_unique_word_count=len(unique_words))
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to update unique word count for title {title_id}: {e}") from e

    if stats is not None:
        stats.record("title_word_count", updated.rowcount > 0)

    logger.info(
        f"Title {title_id} has a unique word count of {len(unique_words)}",
        extra={"title_id": title_id, "unique_word_count": len(unique_words), "updated": updated.rowcount > 0},
    )
    return len(unique_words)
