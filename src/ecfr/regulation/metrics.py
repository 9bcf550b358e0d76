"""Derived text metrics for section content: word count, readability and checksum."""

import hashlib
import logging
import math
import re

import textstat

from ecfr.regulation.models import SectionMetrics

logger = logging.getLogger(__name__)

# Stored instead of an empty string when a section has no extractable text
EMPTY_CONTENT_PLACEHOLDER = "[No text content available]"

# Flesch-Kincaid is unreliable on very short texts
MIN_WORDS_FOR_SCORE = 21

# Stored when no score could be computed, so aggregates over scores stay defined
FALLBACK_COMPLEXITY_SCORE = 0.0

SENTENCE_PATTERN = re.compile(r"[^.!?]+[.!?]+")
LETTER_PATTERN = re.compile(r"[a-z]", re.IGNORECASE)


def count_words(text: str) -> int:
    """Number of whitespace-delimited tokens."""
    return len(text.split())


def count_sentences(text: str) -> int:
    """Runs of text terminated by '.', '!' or '?'. Text without terminal punctuation is one sentence."""
    return len(SENTENCE_PATTERN.findall(text)) or 1


def count_word_syllables(word: str) -> int:
    """Syllables in a single word from the CMU pronouncing dictionary, falling back to
    hyphenation rules for unknown words. Tokens without letters (section numbers,
    symbols) have none.
    """
    if not LETTER_PATTERN.search(word):
        return 0
    return textstat.syllable_count(word)


def count_syllables(text: str) -> int:
    return sum(count_word_syllables(word) for word in text.split())


def flesch_kincaid_grade(text: str) -> float:
    """Flesch-Kincaid grade level, or NaN when the text is too short to score."""
    words = count_words(text)
    if words < MIN_WORDS_FOR_SCORE:
        return math.nan

    sentences = count_sentences(text)
    syllables = count_syllables(text)

    return 0.39 * (words / sentences) + 11.8 * (syllables / words) - 15.59


def compute_checksum(content: str) -> str:
    """SHA-256 hex digest of the exact stored content. Used for change detection only."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_metrics(text: str) -> SectionMetrics:
    """Compute the stored content and its metrics for a section's extracted text."""
    content = text.strip() or EMPTY_CONTENT_PLACEHOLDER

    score = flesch_kincaid_grade(content)
    if not math.isfinite(score):
        logger.debug(f"Too few words to score readability ({count_words(content)}), using fallback")
        score = FALLBACK_COMPLEXITY_SCORE

    return SectionMetrics(
        content=content,
        word_count=count_words(content),
        complexity_score=score,
        checksum=compute_checksum(content),
    )
