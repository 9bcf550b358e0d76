from .nodes import Element, Node, Sequence, Text, extract_text, heading_text
from .xml_parser import document_effective_date, iter_chapters, parse_document

__all__ = [
    "Element",
    "Node",
    "Sequence",
    "Text",
    "extract_text",
    "heading_text",
    "parse_document",
    "iter_chapters",
    "document_effective_date",
]
