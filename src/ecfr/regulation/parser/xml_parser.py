import logging
from datetime import date, datetime
from typing import Iterator, Optional, Union

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction

from ecfr.core.exceptions import DocumentStructureError
from ecfr.regulation.parser.nodes import Element, Node, Sequence, Text

logger = logging.getLogger(__name__)

# NavigableString subclasses that are markup, not content
NON_TEXT_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)

AMDDATE_FORMATS = ["%Y-%m-%d", "%b. %d, %Y", "%b %d, %Y", "%B %d, %Y", "%m/%d/%Y"]


def parse_document(xml: Union[str, bytes]) -> Element:
    """Deserialize a title document into the node tree, rooted at the document element.

    Raises:
        DocumentStructureError: If the input is empty, unparseable or has no root element
    """
    if not xml or not xml.strip():
        raise DocumentStructureError("Document is empty")

    try:
        soup = BeautifulSoup(xml, "xml")
    except ParserRejectedMarkup as e:
        raise DocumentStructureError(f"Document could not be parsed: {e}") from e

    root = next((child for child in soup.children if isinstance(child, Tag)), None)
    if root is None:
        raise DocumentStructureError("Document has no root element")

    node = _build_node(root)
    if not isinstance(node, Element):
        # An empty root deserializes to bare text
        return Element(tag=root.name, text=node.value or None)
    return node


def _build_node(tag: Tag) -> Node:
    text_parts = []
    grouped: dict[str, list[Node]] = {}

    for child in tag.children:
        if isinstance(child, Tag):
            grouped.setdefault(child.name, []).append(_build_node(child))
        elif isinstance(child, NavigableString) and not isinstance(child, NON_TEXT_STRINGS):
            stripped = child.strip()
            if stripped:
                text_parts.append(stripped)

    text = " ".join(text_parts)
    attributes = {name: str(value) for name, value in tag.attrs.items()}

    if not attributes and not grouped:
        return Text(text)

    return Element(
        tag=tag.name,
        attributes=attributes,
        text=text or None,
        children={key: Sequence(tuple(nodes)) for key, nodes in grouped.items()},
    )


def iter_chapters(root: Element) -> Iterator[Element]:
    """Yield the chapter divisions of a title document.

    Chapters are DIV3 elements under any DIV2 subtitle, followed by those directly
    under the title's DIV1.

    Raises:
        DocumentStructureError: If the document is not an ECFR document with a DIV1
    """
    if root.tag != "ECFR":
        raise DocumentStructureError(f"Unexpected root element: {root.tag}")

    title_div = next(iter(root.elements("DIV1")), None)
    if title_div is None:
        raise DocumentStructureError("Document has no DIV1 title division")

    chapters = [
        chapter for subtitle_div in title_div.elements("DIV2") for chapter in subtitle_div.elements("DIV3")
    ]
    chapters.extend(title_div.elements("DIV3"))

    if not chapters:
        logger.info(
            "No chapters found in document",
            extra={"event_type": "no_chapters", "title_div": title_div.attribute("N")},
        )

    yield from chapters


def document_effective_date(root: Element) -> Optional[date]:
    """Revision date recorded in a local document's VOLUME element, if present and parseable."""
    volume = next(iter(root.elements("VOLUME")), None)
    if volume is None:
        return None

    value = volume.attribute("AMDDATE")
    if not value:
        return None

    for date_format in AMDDATE_FORMATS:
        try:
            return datetime.strptime(value, date_format).date()
        except ValueError:
            continue

    logger.warning(f"Unrecognised AMDDATE format: {value}")
    return None
