"""
Output formatting for query results.

Formats:
- plain: one value per line, headings as `## Text`
- json: compact JSON array
- json-pretty (jsonp): indented JSON array
- jsonl: one compact JSON document per line
- md: raw markdown of each value
- tree: headings nested by level, drawn with rich
"""

import io
import json
from enum import Enum
from typing import Any, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from .value import (
    CodeValue, HeadingValue, LinkValue, format_number, is_number,
    to_json, to_markdown, to_text,
)


class OutputFormat(Enum):
    """Rendering formats for query results."""
    PLAIN = "plain"
    JSON = "json"
    JSON_PRETTY = "json-pretty"
    JSONL = "jsonl"
    MARKDOWN = "md"
    TREE = "tree"

    @classmethod
    def from_string(cls, s: str) -> "OutputFormat":
        """Parse a format name, accepting common aliases."""
        s = s.lower().strip()
        mapping = {
            'plain': cls.PLAIN,
            'text': cls.PLAIN,
            'json': cls.JSON,
            'json-pretty': cls.JSON_PRETTY,
            'jsonp': cls.JSON_PRETTY,
            'pretty': cls.JSON_PRETTY,
            'jsonl': cls.JSONL,
            'ndjson': cls.JSONL,
            'md': cls.MARKDOWN,
            'markdown': cls.MARKDOWN,
            'tree': cls.TREE,
        }
        if s in mapping:
            return mapping[s]
        raise ValueError(
            f"Unknown output format: {s}. Valid formats: plain, json, json-pretty, jsonp, jsonl, md, tree"
        )


def format_plain(value: Any) -> str:
    """Human-readable rendering of a single value."""
    if isinstance(value, HeadingValue):
        return f"{'#' * value.level} {value.text}"
    if isinstance(value, CodeValue):
        return to_markdown(value)
    if isinstance(value, LinkValue):
        return f"[{value.text}]({value.url})"
    if is_number(value):
        return format_number(value)
    if value is None:
        return "null"
    if isinstance(value, (list, dict)):
        return json.dumps(to_json(value), ensure_ascii=False, indent=2)
    return to_text(value)


def render_tree(root: Tree, width: int = 100) -> str:
    """Render a rich Tree to plain text."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, highlight=False)
    console.print(root)
    return buffer.getvalue().rstrip("\n")


def build_result_tree(values: List[Any], label: str = "results", guide_style: str = "dim") -> Tree:
    """
    Nest result values under the closest preceding heading of lower level.

    Non-heading values become leaves of the current heading.
    """
    root = Tree(label, guide_style=guide_style)
    stack: List[tuple] = []

    for value in values:
        if isinstance(value, HeadingValue):
            while stack and stack[-1][0] >= value.level:
                stack.pop()
            parent = stack[-1][1] if stack else root
            node = parent.add(escape(format_plain(value)))
            stack.append((value.level, node))
        else:
            parent = stack[-1][1] if stack else root
            parent.add(escape(to_text(value).split("\n", 1)[0] or format_plain(value)))

    return root


def format_output(values: List[Any], fmt: OutputFormat = OutputFormat.PLAIN,
                  guide_style: Optional[str] = None) -> str:
    """
    Render query results.

    Returns:
        The rendered text; empty results give an empty string
    """
    if not values:
        return ""

    if fmt == OutputFormat.PLAIN:
        return "\n".join(format_plain(v) for v in values)
    if fmt == OutputFormat.JSON:
        return json.dumps([to_json(v) for v in values], ensure_ascii=False)
    if fmt == OutputFormat.JSON_PRETTY:
        return json.dumps([to_json(v) for v in values], ensure_ascii=False, indent=2)
    if fmt == OutputFormat.JSONL:
        return "\n".join(json.dumps(to_json(v), ensure_ascii=False) for v in values)
    if fmt == OutputFormat.MARKDOWN:
        return "\n\n".join(to_markdown(v).rstrip("\n") for v in values)
    if fmt == OutputFormat.TREE:
        return render_tree(build_result_tree(values, guide_style=guide_style or "dim"))
    raise ValueError(f"Unsupported output format: {fmt}")
