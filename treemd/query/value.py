"""
Runtime values for the tql query language.

Scalars and collections are plain Python objects:
- str for strings, float for numbers, bool, None for null
- list for arrays (never implicitly flattened)
- dict for objects (insertion ordered)

Markdown-derived values are frozen dataclasses built once from the
document snapshot. Helpers in this module give every value a type name,
a textual form, truthiness, property lookup and JSON/markdown renderings.
"""

import json
import math
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import PropertyNotFound


# =============================================================================
# Markdown values
# =============================================================================

@dataclass(frozen=True)
class DocumentValue:
    """The whole document; the input of every pipeline."""
    content: str
    heading_count: int
    word_count: int


@dataclass(frozen=True)
class HeadingValue:
    """
    A heading with its section.

    Attributes:
        level: 1-6
        text: Heading text with inline markup stripped
        offset: Character offset of the heading line
        line: 1-indexed line number
        content: Section body without the heading line, stripped
        raw_md: Raw markdown of the whole section, heading line included
        index: 0-based position among all headings
    """
    level: int
    text: str
    offset: int
    line: int
    content: str
    raw_md: str
    index: int


@dataclass(frozen=True)
class CodeValue:
    language: Optional[str]
    content: str
    start_line: int
    end_line: int


@dataclass(frozen=True)
class LinkValue:
    text: str
    url: str
    link_type: str
    offset: int


@dataclass(frozen=True)
class ImageValue:
    alt: str
    src: str
    title: Optional[str] = None
    line: int = 0


@dataclass(frozen=True)
class TableValue:
    headers: List[str]
    rows: List[List[str]]
    alignments: List[str]
    line: int = 0


@dataclass(frozen=True)
class ListItemValue:
    content: str
    checked: Optional[bool] = None


@dataclass(frozen=True)
class ListValue:
    ordered: bool
    items: List[ListItemValue] = field(default_factory=list)
    line: int = 0


MARKDOWN_TYPES = (
    DocumentValue, HeadingValue, CodeValue, LinkValue,
    ImageValue, TableValue, ListValue,
)


# =============================================================================
# Type names and conversions
# =============================================================================

_TYPE_NAMES = {
    DocumentValue: "document",
    HeadingValue: "heading",
    CodeValue: "code",
    LinkValue: "link",
    ImageValue: "image",
    TableValue: "table",
    ListValue: "list",
}


def kind(value: Any) -> str:
    """Runtime type name of a value, as shown by `type` and in errors."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    name = _TYPE_NAMES.get(type(value))
    if name is None:
        raise TypeError(f"Not a query value: {value!r}")
    return name


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(n: float) -> str:
    """Render a number; integral values print without a fraction."""
    if isinstance(n, float):
        if math.isnan(n):
            return "nan"
        if math.isinf(n):
            return "infinity" if n > 0 else "-infinity"
        if n.is_integer() and abs(n) < 1e16:
            return str(int(n))
    return str(n)


def numbers_equal(a: float, b: float) -> bool:
    return abs(a - b) < sys.float_info.epsilon


def to_text(value: Any) -> str:
    """
    Textual representation used by filters, `text`, `~` and comparisons.

    Markdown values use their most natural text (heading text, code
    content, link text); arrays and objects render as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(to_json(value), ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, DocumentValue):
        return value.content
    if isinstance(value, HeadingValue):
        return value.text
    if isinstance(value, CodeValue):
        return value.content
    if isinstance(value, LinkValue):
        return value.text
    if isinstance(value, ImageValue):
        return value.alt
    if isinstance(value, TableValue):
        return "\n".join(" | ".join(row) for row in [value.headers] + value.rows)
    if isinstance(value, ListValue):
        return "\n".join(item.content for item in value.items)
    raise TypeError(f"Not a query value: {value!r}")


def is_truthy(value: Any) -> bool:
    """Only null and false are falsy; 0, "" and [] are truthy."""
    return value is not None and value is not False


# =============================================================================
# Properties
# =============================================================================

def _list_items(value: ListValue) -> List[Dict[str, Any]]:
    return [{"content": item.content, "checked": item.checked} for item in value.items]


_PROPERTIES = {
    DocumentValue: {
        "content": lambda v: v.content,
        "text": lambda v: v.content,
        "heading_count": lambda v: float(v.heading_count),
        "word_count": lambda v: float(v.word_count),
    },
    HeadingValue: {
        "level": lambda v: float(v.level),
        "text": lambda v: v.text,
        "offset": lambda v: float(v.offset),
        "line": lambda v: float(v.line),
        "content": lambda v: v.content,
        "raw_md": lambda v: v.raw_md,
        "md": lambda v: v.raw_md,
        "index": lambda v: float(v.index),
    },
    CodeValue: {
        "language": lambda v: v.language,
        "lang": lambda v: v.language,
        "content": lambda v: v.content,
        "text": lambda v: v.content,
        "start_line": lambda v: float(v.start_line),
        "end_line": lambda v: float(v.end_line),
        "line": lambda v: float(v.start_line),
    },
    LinkValue: {
        "text": lambda v: v.text,
        "url": lambda v: v.url,
        "href": lambda v: v.url,
        "link_type": lambda v: v.link_type,
        "type": lambda v: v.link_type,
        "offset": lambda v: float(v.offset),
    },
    ImageValue: {
        "alt": lambda v: v.alt,
        "text": lambda v: v.alt,
        "src": lambda v: v.src,
        "url": lambda v: v.src,
        "title": lambda v: v.title,
        "line": lambda v: float(v.line),
    },
    TableValue: {
        "headers": lambda v: list(v.headers),
        "rows": lambda v: [list(row) for row in v.rows],
        "alignments": lambda v: list(v.alignments),
        "line": lambda v: float(v.line),
    },
    ListValue: {
        "ordered": lambda v: v.ordered,
        "items": _list_items,
        "line": lambda v: float(v.line),
    },
}


def property_names(value: Any) -> List[str]:
    """Property names available on a value, in declaration order."""
    if isinstance(value, dict):
        return list(value.keys())
    return list(_PROPERTIES.get(type(value), {}).keys())


def get_property(value: Any, name: str, span=None) -> Any:
    """
    Look up a property on a value.

    Raises:
        PropertyNotFound: if the value's type has no such property, or
            the object has no such key
    """
    if isinstance(value, dict):
        if name in value:
            return value[name]
        raise PropertyNotFound(name, "object", span)
    getter = _PROPERTIES.get(type(value), {}).get(name)
    if getter is None:
        raise PropertyNotFound(name, kind(value), span)
    return getter(value)


# =============================================================================
# Rendering
# =============================================================================

def to_json(value: Any) -> Any:
    """Convert a value to JSON-serializable data, preserving key order."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if is_number(value):
        if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
            return int(value)
        return value
    if isinstance(value, list):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, DocumentValue):
        return {
            "type": "document",
            "heading_count": value.heading_count,
            "word_count": value.word_count,
        }
    if isinstance(value, HeadingValue):
        return {
            "type": "heading",
            "level": value.level,
            "text": value.text,
            "line": value.line,
            "offset": value.offset,
            "index": value.index,
        }
    if isinstance(value, CodeValue):
        return {
            "type": "code",
            "language": value.language,
            "content": value.content,
            "start_line": value.start_line,
            "end_line": value.end_line,
        }
    if isinstance(value, LinkValue):
        return {
            "type": "link",
            "text": value.text,
            "url": value.url,
            "link_type": value.link_type,
        }
    if isinstance(value, ImageValue):
        return {
            "type": "image",
            "alt": value.alt,
            "src": value.src,
            "title": value.title,
        }
    if isinstance(value, TableValue):
        return {
            "type": "table",
            "headers": list(value.headers),
            "rows": [list(row) for row in value.rows],
            "alignments": list(value.alignments),
        }
    if isinstance(value, ListValue):
        return {
            "type": "list",
            "ordered": value.ordered,
            "items": _list_items(value),
        }
    raise TypeError(f"Not a query value: {value!r}")


def _table_markdown(table: TableValue) -> str:
    markers = {"left": ":---", "right": "---:", "center": ":---:"}
    delimiter = [markers.get(a, "---") for a in table.alignments]
    lines = [
        "| " + " | ".join(table.headers) + " |",
        "| " + " | ".join(delimiter) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in table.rows)
    return "\n".join(lines)


def _list_markdown(value: ListValue) -> str:
    lines = []
    for number, item in enumerate(value.items, 1):
        marker = f"{number}." if value.ordered else "-"
        if item.checked is not None:
            marker += " [x]" if item.checked else " [ ]"
        lines.append(f"{marker} {item.content}")
    return "\n".join(lines)


def to_markdown(value: Any) -> str:
    """Render a value back to markdown source."""
    if isinstance(value, DocumentValue):
        return value.content
    if isinstance(value, HeadingValue):
        return value.raw_md
    if isinstance(value, CodeValue):
        return f"```{value.language or ''}\n{value.content}\n```"
    if isinstance(value, LinkValue):
        return f"[{value.text}]({value.url})"
    if isinstance(value, ImageValue):
        if value.title:
            return f'![{value.alt}]({value.src} "{value.title}")'
        return f"![{value.alt}]({value.src})"
    if isinstance(value, TableValue):
        return _table_markdown(value)
    if isinstance(value, ListValue):
        return _list_markdown(value)
    return to_text(value)


# =============================================================================
# Comparison and arithmetic
# =============================================================================

def values_equal(a: Any, b: Any) -> bool:
    """Null equals only null; numbers compare with an epsilon; everything else by text."""
    if a is None or b is None:
        return a is None and b is None
    if is_number(a) and is_number(b):
        return numbers_equal(a, b)
    return to_text(a) == to_text(b)


def compare_values(a: Any, b: Any) -> int:
    """Order two values: null first, then numerically, then by text. Returns -1, 0 or 1."""
    if a is None or b is None:
        if a is b:
            return 0
        return -1 if a is None else 1
    if is_number(a) and is_number(b):
        if numbers_equal(a, b):
            return 0
        return -1 if a < b else 1
    left, right = to_text(a), to_text(b)
    if left == right:
        return 0
    return -1 if left < right else 1


_TYPE_ORDER = {
    "null": 0, "boolean": 1, "number": 2, "string": 3, "array": 4, "object": 5,
}


def sort_key(value: Any):
    """Key for sorting mixed values: by type group, then naturally."""
    rank = _TYPE_ORDER.get(kind(value), 6)
    if value is None:
        return (rank, 0, "")
    if isinstance(value, bool) or is_number(value):
        return (rank, float(value), "")
    return (rank, 0, to_text(value))


def add_values(a: Any, b: Any) -> Any:
    """`+`: numbers add, strings and arrays concatenate, otherwise text concatenation."""
    if is_number(a) and is_number(b):
        return float(a + b)
    if isinstance(a, str) and isinstance(b, str):
        return a + b
    if isinstance(a, list) and isinstance(b, list):
        return a + b
    if isinstance(a, dict) and isinstance(b, dict):
        merged = dict(a)
        merged.update(b)
        return merged
    return to_text(a) + to_text(b)
