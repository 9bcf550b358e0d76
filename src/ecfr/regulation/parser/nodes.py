"""Parsed document tree.

A title document is deserialized into a closed union of three node shapes:

- Text: a leaf string (an element with neither attributes nor child elements)
- Sequence: the ordered occurrences of one child tag within a parent
- Element: an element with attributes, optional inline text, and its child
  sequences keyed by tag in first-appearance order
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Sequence:
    items: Tuple["Node", ...] = ()


@dataclass(frozen=True, slots=True)
class Element:
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    children: Dict[str, Sequence] = field(default_factory=dict)

    def attribute(self, name: str) -> Optional[str]:
        value = self.attributes.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def first(self, key: str) -> Optional["Node"]:
        sequence = self.children.get(key)
        if sequence is None or not sequence.items:
            return None
        return sequence.items[0]

    def elements(self, key: str) -> List["Element"]:
        """Child elements under a key. Bare text children are not structural and are dropped."""
        sequence = self.children.get(key)
        if sequence is None:
            return []
        return [item for item in sequence.items if isinstance(item, Element)]


Node = Union[Text, Sequence, Element]


def iter_fragments(node: Node) -> Iterator[str]:
    """Yield the text fragments of a node in document order, skipping attributes."""
    match node:
        case Text(value=value):
            if value:
                yield value
        case Sequence(items=items):
            for item in items:
                yield from iter_fragments(item)
        case Element(text=text, children=children):
            if text:
                yield text
            for sequence in children.values():
                yield from iter_fragments(sequence)
        case _:
            raise TypeError(f"Unsupported node type: {type(node).__name__}")


def extract_text(node: Optional[Node]) -> str:
    """Flatten a node into its text content with whitespace collapsed to single spaces."""
    if node is None:
        return ""
    return " ".join(" ".join(iter_fragments(node)).split())


def heading_text(element: Element) -> Optional[str]:
    """Text of the element's first HEAD child, if it has a non-empty one."""
    return extract_text(element.first("HEAD")) or None
