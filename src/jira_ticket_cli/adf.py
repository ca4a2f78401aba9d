"""
Atlassian Document Format (ADF) model for jira-ticket-cli

Immutable value types for the structured rich-text documents used by the
Jira REST API v3, with JSON (de)serialization and plain-text extraction.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import DocumentParseError

DOC = "doc"
DOC_VERSION = 1

# Node types
PARAGRAPH = "paragraph"
HEADING = "heading"
CODE_BLOCK = "codeBlock"
BULLET_LIST = "bulletList"
ORDERED_LIST = "orderedList"
LIST_ITEM = "listItem"
BLOCKQUOTE = "blockquote"
RULE = "rule"
TABLE = "table"
TABLE_ROW = "tableRow"
TABLE_HEADER = "tableHeader"
TABLE_CELL = "tableCell"
HARD_BREAK = "hardBreak"
TEXT = "text"

# Mark types
STRONG = "strong"
EM = "em"
CODE = "code"
STRIKE = "strike"
LINK = "link"

# Nodes after which the plain-text extractor emits a newline
_LINE_ENDING_NODES = (PARAGRAPH, HARD_BREAK)


@dataclass(frozen=True)
class Mark:
    """Inline formatting attached to a text node"""

    type: str
    attrs: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.attrs is not None:
            data["attrs"] = dict(self.attrs)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Mark":
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise DocumentParseError(f"Invalid ADF mark: {data!r}")
        attrs = data.get("attrs")
        if attrs is not None and not isinstance(attrs, dict):
            raise DocumentParseError(f"Invalid attrs on '{data['type']}' mark")
        return cls(type=data["type"], attrs=attrs)


@dataclass(frozen=True)
class Node:
    """
    One element of an ADF tree

    Only ``text`` nodes carry a text payload and marks; container nodes
    carry ``content``. ``attrs`` holds ``level`` for headings and
    ``language`` for code blocks.
    """

    type: str
    text: Optional[str] = None
    content: Optional[Tuple["Node", ...]] = None
    attrs: Optional[Dict[str, Any]] = None
    marks: Optional[Tuple[Mark, ...]] = None

    def with_mark(self, mark: Mark) -> "Node":
        """Return a copy of this node with ``mark`` appended to its marks"""
        return Node(
            type=self.type,
            text=self.text,
            content=self.content,
            attrs=self.attrs,
            marks=(self.marks or ()) + (mark,),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.text is not None:
            data["text"] = self.text
        if self.content is not None:
            data["content"] = [child.to_dict() for child in self.content]
        if self.attrs is not None:
            data["attrs"] = dict(self.attrs)
        if self.marks:
            data["marks"] = [mark.to_dict() for mark in self.marks]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Node":
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise DocumentParseError(f"Invalid ADF node: {data!r}")

        text = data.get("text")
        if text is not None and not isinstance(text, str):
            raise DocumentParseError(f"Invalid text on '{data['type']}' node")

        attrs = data.get("attrs")
        if attrs is not None and not isinstance(attrs, dict):
            raise DocumentParseError(f"Invalid attrs on '{data['type']}' node")

        content = data.get("content")
        if content is not None:
            if not isinstance(content, list):
                raise DocumentParseError(f"Invalid content on '{data['type']}' node")
            content = tuple(cls.from_dict(child) for child in content)

        marks = data.get("marks")
        if marks is not None:
            if not isinstance(marks, list):
                raise DocumentParseError(f"Invalid marks on '{data['type']}' node")
            marks = tuple(Mark.from_dict(mark) for mark in marks)

        return cls(type=data["type"], text=text, content=content, attrs=attrs, marks=marks)


@dataclass(frozen=True)
class Document:
    """Root of an ADF tree: ``{"type": "doc", "version": 1, "content": [...]}``"""

    content: Tuple[Node, ...]
    version: int = DOC_VERSION

    @property
    def type(self) -> str:
        return DOC

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": DOC,
            "version": self.version,
            "content": [node.to_dict() for node in self.content],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Document":
        """
        Build a document from its JSON representation

        Args:
            data: Decoded JSON object as returned by the Jira API

        Returns:
            Document instance

        Raises:
            DocumentParseError: If the value is not a structured document
        """
        if not isinstance(data, dict):
            raise DocumentParseError(f"Expected an ADF document object, got {type(data).__name__}")
        if data.get("type", DOC) != DOC:
            raise DocumentParseError(f"Expected an ADF document, got type '{data.get('type')}'")

        content = data.get("content", [])
        if content is None:
            content = []
        if not isinstance(content, list):
            raise DocumentParseError("ADF document content must be a list")

        version = data.get("version", DOC_VERSION)
        if not isinstance(version, int):
            raise DocumentParseError(f"Invalid ADF document version: {version!r}")

        return cls(content=tuple(Node.from_dict(node) for node in content), version=version)

    def to_plain_text(self) -> str:
        return to_plain_text(self)


def to_plain_text(document: Optional[Document]) -> str:
    """
    Flatten a document to plain text

    Marks are ignored. A newline follows every paragraph and hard break;
    other containers rely on their child paragraphs for line breaks.

    Args:
        document: Document to flatten, or None

    Returns:
        Plain text, empty for a missing document
    """
    if document is None:
        return ""
    parts: List[str] = []
    _extract_text(document.content, parts)
    return "".join(parts)


def _extract_text(nodes: Tuple[Node, ...], parts: List[str]):
    for node in nodes:
        if node.text:
            parts.append(node.text)
        if node.content:
            _extract_text(node.content, parts)
        if node.type in _LINE_ENDING_NODES:
            parts.append("\n")


class Description:
    """
    Rich-text field value (issue description or comment body)

    The Agile API returns these fields as plain strings while REST API v3
    returns ADF documents. Both are accepted; ``text`` is always populated
    and ``adf`` holds the original tree when there was one.
    """

    def __init__(self, text: str = "", adf: Optional[Document] = None):
        self.text = text
        self.adf = adf

    @classmethod
    def from_json(cls, value: Union[str, Dict[str, Any], None]) -> "Description":
        """
        Decode a description/body field in either representation

        Args:
            value: JSON string, ADF document object, or None

        Returns:
            Description instance

        Raises:
            DocumentParseError: If the value is neither a string nor a document
        """
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(text=value)
        document = Document.from_dict(value)
        return cls(text=document.to_plain_text(), adf=document)

    def to_json(self) -> Optional[Dict[str, Any]]:
        """Serialize for the API, always in ADF form"""
        if self.adf is not None:
            return self.adf.to_dict()
        if self.text:
            # Local import: the converter module depends on this one
            from .markdown_converter import text_to_adf

            document = text_to_adf(self.text)
            return document.to_dict() if document is not None else None
        return None

    def to_plain_text(self) -> str:
        return self.text

    def __bool__(self) -> bool:
        return bool(self.text) or self.adf is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Description):
            return NotImplemented
        return self.text == other.text and self.adf == other.adf

    def __repr__(self) -> str:
        return f"Description(text={self.text!r}, adf={'yes' if self.adf else 'no'})"
