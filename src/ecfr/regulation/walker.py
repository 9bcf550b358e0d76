import logging
import re
from typing import Callable, Iterator, Optional

from ecfr.core.error_utils import ErrorCategorizer
from ecfr.core.exceptions import ExtractionError
from ecfr.regulation.metrics import compute_metrics
from ecfr.regulation.models import NodeKind, SectionMetrics, WalkContext, WalkStats
from ecfr.regulation.parser.nodes import Element, extract_text, heading_text
from ecfr.regulation.store import RegulationStore

logger = logging.getLogger(__name__)

# Structural containers (DIV1..DIV9) are recursed into without creating an entity
CONTAINER_KEY_PATTERN = re.compile(r"^DIV\d+$")
ENTITY_KEYS = {"PART", "SUBPART", "SECTION"}

TYPED_KINDS = {
    "PART": NodeKind.PART,
    "SECTION": NodeKind.SECTION,
    "SUBPART": NodeKind.SUBPART,
}

# Fallback for parts that carry no TYPE attribute, e.g. "PART 60—STANDARDS OF PERFORMANCE"
PART_HEADING_PATTERN = re.compile(r"^PART\b")
PART_NUMBER_PATTERN = re.compile(r"^PART\s+([0-9A-Za-z.\-]+)")


def classify_node(node: Element) -> NodeKind:
    """Decide what entity, if any, a node represents.

    The TYPE attribute is authoritative. Nodes without a recognised TYPE are parts
    when their heading starts with the word PART, and unclassified otherwise.
    """
    node_type = (node.attribute("TYPE") or "").upper()
    if node_type in TYPED_KINDS:
        return TYPED_KINDS[node_type]

    heading = heading_text(node)
    if heading and PART_HEADING_PATTERN.match(heading):
        return NodeKind.PART

    return NodeKind.UNCLASSIFIED


def is_structural_key(key: str) -> bool:
    return key in ENTITY_KEYS or bool(CONTAINER_KEY_PATTERN.match(key))


def iter_structural_children(node: Element) -> Iterator[Element]:
    """Child elements under structural keys, in key order then document order."""
    for key in node.children:
        if is_structural_key(key):
            yield from node.elements(key)


def part_identifier(node: Element) -> Optional[str]:
    """The part's N attribute, or the number in its heading."""
    identifier = node.attribute("N")
    if identifier:
        return identifier

    match = PART_NUMBER_PATTERN.match(heading_text(node) or "")
    return match.group(1) if match else None


class StructuralWalker:
    """Walks a chapter depth-first, persisting parts, sections and section versions.

    Parent context (current part, current parent section) is threaded down the
    recursion, so every row a child references is written before the child.
    """

    def __init__(
        self,
        store: RegulationStore,
        metrics: Callable[[str], SectionMetrics] = compute_metrics,
    ):
        self.store = store
        self.metrics = metrics

    def walk_chapter(self, chapter: Element, context: WalkContext) -> WalkStats:
        """Persist everything beneath a chapter node.

        Args:
            chapter: The chapter's DIV3 element
            context: Title, effective date and chapter id. Part and parent section must be unset.

        Returns:
            Counts of stored and skipped nodes
        """
        stats = WalkStats()
        for child in iter_structural_children(chapter):
            self._walk(child, context, stats)
        return stats

    def _walk(self, node: Element, context: WalkContext, stats: WalkStats) -> None:
        kind = classify_node(node)

        try:
            match kind:
                case NodeKind.PART:
                    context = self._store_part(node, context)
                    stats.parts += 1
                case NodeKind.SECTION | NodeKind.SUBPART:
                    context = self._store_section(node, kind, context)
                    if kind is NodeKind.SECTION:
                        stats.sections += 1
                    else:
                        stats.subparts += 1
                case NodeKind.UNCLASSIFIED:
                    pass
        except ExtractionError as e:
            stats.skipped += 1
            logger.warning(
                f"Skipping node: {e}",
                extra=ErrorCategorizer.extract_error_metadata(
                    e, title_number=context.title_number, effective_date=context.effective_date
                ),
            )

        for child in iter_structural_children(node):
            self._walk(child, context, stats)

    def _store_part(self, node: Element, context: WalkContext) -> WalkContext:
        identifier = part_identifier(node)
        if not identifier:
            raise ExtractionError("Part has no identifier", node_type=NodeKind.PART.value)

        name = heading_text(node) or f"Part {identifier}"
        part_id = self.store.upsert_part(context.chapter_id, identifier, name)
        logger.debug(f"Upserted Part: {name}", extra={"part_id": part_id, "part": identifier})

        # Sections never parent across parts
        return context.model_copy(update={"part_id": part_id, "parent_section_id": None})

    def _store_section(self, node: Element, kind: NodeKind, context: WalkContext) -> WalkContext:
        identifier = node.attribute("N")

        if context.part_id is None:
            raise ExtractionError(
                f"{kind.value} {identifier} has no enclosing part",
                node_type=kind.value,
                identifier=identifier,
            )
        if not identifier:
            raise ExtractionError(f"{kind.value} has no identifier", node_type=kind.value)

        name = heading_text(node) or f"Unnamed {kind.value}"
        section_id = self.store.upsert_section(
            context.part_id,
            identifier,
            name,
            kind,
            parent_id=context.parent_section_id,
        )

        metrics = self.metrics(extract_text(node))
        self.store.upsert_section_version(section_id, context.effective_date, metrics)
        logger.debug(
            f"Upserted {kind.value}: {name}",
            extra={"section_id": section_id, "word_count": metrics.word_count},
        )

        return context.model_copy(update={"parent_section_id": section_id})
