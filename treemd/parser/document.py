"""
Markdown document structure.

A Document is the raw content plus its ATX headings in document order,
each with a character offset into the content. It is the snapshot the
query engine reads from.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .content import FENCE_OPEN
from .utils import get_heading_level, strip_markdown_inline

logger = logging.getLogger(__name__)


@dataclass
class Heading:
    """A heading with its level (1-6), plain text and offset of its line."""
    level: int
    text: str
    offset: int


@dataclass
class HeadingNode:
    """A heading with its nested sub-headings."""
    heading: Heading
    children: List["HeadingNode"] = field(default_factory=list)


@dataclass
class Document:
    """
    A parsed markdown document.

    Attributes:
        content: Full raw markdown
        headings: Headings in document order
    """
    content: str
    headings: List[Heading] = field(default_factory=list)

    def section_bounds(self, index: int) -> Tuple[int, int]:
        """
        Get the (start, end) offsets of a heading's section.

        The section runs from the heading line up to the next heading of
        equal or lower level, or the end of the document.
        """
        heading = self.headings[index]
        end = len(self.content)
        for nxt in self.headings[index + 1:]:
            if nxt.level <= heading.level:
                end = nxt.offset
                break
        return heading.offset, end

    def extract_section(self, title: str) -> Optional[str]:
        """
        Extract the body of the section whose heading text is `title`.

        Returns:
            Section content without the heading line, or None if no
            heading has this text
        """
        for index, heading in enumerate(self.headings):
            if heading.text != title:
                continue
            start, end = self.section_bounds(index)
            newline = self.content.find("\n", start, end)
            body_start = newline + 1 if newline != -1 else end
            return self.content[body_start:end].strip()
        return None

    def filter_headings(self, pattern: str) -> List[Heading]:
        """Headings whose text contains `pattern`, case-insensitively."""
        needle = pattern.lower()
        return [h for h in self.headings if needle in h.text.lower()]

    def find_heading(self, title: str) -> Optional[Heading]:
        """Find a heading by exact text, falling back to a case-insensitive substring match."""
        for heading in self.headings:
            if heading.text == title:
                return heading
        matches = self.filter_headings(title)
        return matches[0] if matches else None

    def build_tree(self) -> List[HeadingNode]:
        """
        Nest headings by level.

        A heading becomes a child of the closest preceding heading with a
        lower level; headings without one are roots.
        """
        roots: List[HeadingNode] = []
        stack: List[HeadingNode] = []
        for heading in self.headings:
            node = HeadingNode(heading)
            while stack and stack[-1].heading.level >= heading.level:
                stack.pop()
            if stack:
                stack[-1].children.append(node)
            else:
                roots.append(node)
            stack.append(node)
        return roots


def parse_markdown(content: str) -> Document:
    """
    Parse markdown content and extract headings with offsets.

    Headings inside fenced code blocks are ignored; inline formatting is
    stripped from heading text.
    """
    headings = []
    offset = 0
    fence: Optional[str] = None

    for line in content.split("\n"):
        match = FENCE_OPEN.match(line)
        if fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence) and not stripped.strip(fence[0]):
                fence = None
        elif match:
            fence = match.group('fence')
        else:
            level = get_heading_level(line)
            if level:
                text = line.strip()[level:].strip()
                text = re.sub(r"[ \t]+#+$", "", text).strip()
                headings.append(Heading(level=level, text=strip_markdown_inline(text), offset=offset))
        offset += len(line) + 1

    logger.debug(f"Parsed {len(headings)} headings from {len(content)} characters")
    return Document(content=content, headings=headings)


def parse_file(path: Union[str, Path]) -> Document:
    """Read and parse a markdown file."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        return parse_markdown(f.read())
