"""
Utility functions for markdown parsing.

Shared helpers used across the parser package.
"""

import re
from typing import Optional

from treemd.constants import MAX_HEADING_LEVEL


# Order matters: strikethrough and bold before italic, and the underscore
# rule refuses to touch snake_case identifiers.
_INLINE_PATTERNS = [
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),
    (re.compile(r"(^|[^a-zA-Z0-9])_([^_]+)_([^a-zA-Z0-9]|$)"), r"\1\2\3"),
]


def strip_markdown_inline(text: str) -> str:
    """
    Strip inline markdown formatting from text.

    Handles **bold**, __bold__, *italic*, _italic_, `code` and
    ~~strikethrough~~.

    Examples:
        >>> strip_markdown_inline("**bold** text")
        'bold text'
        >>> strip_markdown_inline("snake_case_var")
        'snake_case_var'
    """
    result = text
    for pattern, replacement in _INLINE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def get_heading_level(line: str) -> Optional[int]:
    """
    Get the ATX heading level of a line.

    Returns None unless the line is 1-6 '#' characters followed by
    whitespace.

    Examples:
        >>> get_heading_level("## Section")
        2
        >>> get_heading_level("#NoSpace") is None
        True
    """
    trimmed = line.lstrip()
    level = len(trimmed) - len(trimmed.lstrip('#'))
    if level == 0 or level > MAX_HEADING_LEVEL:
        return None
    rest = trimmed[level:]
    if not rest or not rest[0].isspace():
        return None
    return level


_FRONT_MATTER = re.compile(r"\A(---|\+\+\+)[ \t]*\n.*?\n\1[ \t]*(\n|\Z)", re.DOTALL)


def strip_front_matter(content: str) -> str:
    """
    Blank out a leading YAML (---) or TOML (+++) front matter block.

    The block is replaced by whitespace of the same length, so line
    numbers and offsets of the remaining content are unchanged.
    """
    match = _FRONT_MATTER.match(content)
    if not match:
        return content
    blanked = re.sub(r"[^\n]", " ", match.group(0))
    return blanked + content[match.end():]
