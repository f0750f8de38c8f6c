"""
Content parsing for markdown sections.

Turns markdown text into a tree of blocks. Container blocks (list items,
blockquotes and <details> elements) carry their own nested blocks, so a
fenced code block inside a numbered list is still a Code block.

Supported blocks:
- Paragraph, Heading (ATX), Code (fenced with ``` or ~~~)
- List (ordered/unordered, task items), Blockquote, Details
- Table (GFM pipe tables), Image (one per image in a paragraph)
- Rule (thematic break)
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .utils import get_heading_level, strip_markdown_inline


# =============================================================================
# Blocks
# =============================================================================

@dataclass
class Block:
    """Base class for content blocks. `line` is 1-indexed."""
    line: int


@dataclass
class Paragraph(Block):
    content: str


@dataclass
class Heading(Block):
    level: int
    content: str
    anchor: str


@dataclass
class Code(Block):
    language: Optional[str]
    content: str
    start_line: int
    end_line: int


@dataclass
class ListItem:
    content: str
    checked: Optional[bool] = None
    blocks: List[Block] = field(default_factory=list)


@dataclass
class ListBlock(Block):
    ordered: bool
    items: List[ListItem] = field(default_factory=list)


@dataclass
class Blockquote(Block):
    content: str
    blocks: List[Block] = field(default_factory=list)


@dataclass
class Details(Block):
    summary: str
    blocks: List[Block] = field(default_factory=list)


@dataclass
class Table(Block):
    headers: List[str]
    rows: List[List[str]]
    alignments: List[str]


@dataclass
class Image(Block):
    alt: str
    src: str
    title: Optional[str] = None


@dataclass
class Rule(Block):
    pass


# =============================================================================
# Line patterns
# =============================================================================

FENCE_OPEN = re.compile(r"^(?P<indent>[ \t]*)(?P<fence>`{3,}|~{3,})[ \t]*(?P<lang>[^\s`]*)")
LIST_ITEM = re.compile(r"^(?P<indent>[ \t]*)(?P<marker>[-*+]|\d{1,9}[.)])(?P<space>[ \t]+|$)")
TASK_BOX = re.compile(r"^\[(?P<mark>[ xX])\][ \t]+")
BLOCKQUOTE = re.compile(r"^[ \t]{0,3}>[ ]?")
RULE = re.compile(r"^[ \t]{0,3}([-*_])([ \t]*\1){2,}[ \t]*$")
TABLE_DELIMITER = re.compile(r"^[ \t]*\|?[ \t]*:?-+:?[ \t]*(\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$")
DETAILS_OPEN = re.compile(r"^[ \t]*<details\b[^>]*>", re.IGNORECASE)
DETAILS_CLOSE = re.compile(r"</details>", re.IGNORECASE)
SUMMARY = re.compile(r"<summary>(.*?)</summary>", re.IGNORECASE | re.DOTALL)
IMAGE = re.compile(r'!\[(?P<alt>[^\]]*)\]\((?P<src>[^)\s]+)(?:\s+"(?P<title>[^"]*)")?\)')


def slugify(text: str) -> str:
    """
    Generate a URL-friendly slug from heading text.

    Examples:
        >>> slugify("Hello World")
        'hello-world'
        >>> slugify("1. Getting Started")
        '1-getting-started'
    """
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def _indent_width(text: str) -> int:
    return len(text.expandtabs(4)) - len(text.expandtabs(4).lstrip())


def _dedent(line: str, width: int) -> str:
    expanded = line.expandtabs(4)
    strip = min(width, len(expanded) - len(expanded.lstrip()))
    return expanded[strip:]


def _split_row(line: str) -> List[str]:
    row = line.strip()
    if row.startswith('|'):
        row = row[1:]
    if row.endswith('|') and not row.endswith('\\|'):
        row = row[:-1]
    return [cell.strip().replace('\\|', '|') for cell in re.split(r"(?<!\\)\|", row)]


def _alignment(cell: str) -> str:
    cell = cell.strip()
    if cell.startswith(':') and cell.endswith(':'):
        return "center"
    if cell.endswith(':'):
        return "right"
    if cell.startswith(':'):
        return "left"
    return "none"


# =============================================================================
# Parser
# =============================================================================

class BlockParser:
    """
    Line-oriented block parser.

    Each `_parse_*` method consumes lines starting at `self.pos` and
    returns the blocks it produced.
    """

    def __init__(self, lines: List[str], start_line: int = 1):
        self.lines = lines
        self.start_line = start_line
        self.pos = 0

    def parse(self) -> List[Block]:
        blocks: List[Block] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if not line.strip():
                self.pos += 1
                continue
            blocks.extend(self._parse_block(line))
        return blocks

    @property
    def line_no(self) -> int:
        return self.start_line + self.pos

    def _starts_block(self, index: int) -> bool:
        """Check whether the line at `index` starts a non-paragraph block."""
        line = self.lines[index]
        return bool(
            FENCE_OPEN.match(line) or get_heading_level(line)
            or BLOCKQUOTE.match(line) or RULE.match(line)
            or LIST_ITEM.match(line) or DETAILS_OPEN.match(line)
            or self._is_table_start(index)
        )

    def _is_table_start(self, index: int) -> bool:
        if index + 1 >= len(self.lines):
            return False
        return '|' in self.lines[index] and bool(TABLE_DELIMITER.match(self.lines[index + 1])) \
            and '-' in self.lines[index + 1]

    def _parse_block(self, line: str) -> List[Block]:
        if FENCE_OPEN.match(line):
            return [self._parse_code()]
        level = get_heading_level(line)
        if level:
            return [self._parse_heading(level)]
        if DETAILS_OPEN.match(line):
            return [self._parse_details()]
        if BLOCKQUOTE.match(line):
            return [self._parse_blockquote()]
        if RULE.match(line):
            block = Rule(line=self.line_no)
            self.pos += 1
            return [block]
        if LIST_ITEM.match(line):
            return [self._parse_list()]
        if self._is_table_start(self.pos):
            return [self._parse_table()]
        return self._parse_paragraph()

    def _parse_code(self) -> Code:
        match = FENCE_OPEN.match(self.lines[self.pos])
        indent = _indent_width(match.group('indent'))
        fence = match.group('fence')
        language = match.group('lang') or None
        start = self.line_no
        self.pos += 1

        body = []
        while self.pos < len(self.lines):
            stripped = self.lines[self.pos].strip()
            if stripped.startswith(fence[0] * len(fence)) and not stripped.strip(fence[0]):
                break
            body.append(_dedent(self.lines[self.pos], indent))
            self.pos += 1

        end = self.line_no if self.pos < len(self.lines) else self.line_no - 1
        self.pos += 1
        return Code(line=start, language=language, content="\n".join(body),
                    start_line=start, end_line=end)

    def _parse_heading(self, level: int) -> Heading:
        text = self.lines[self.pos].strip()[level:].strip()
        text = re.sub(r"[ \t]+#+$", "", text).strip()
        text = strip_markdown_inline(text)
        block = Heading(line=self.line_no, level=level, content=text, anchor=slugify(text))
        self.pos += 1
        return block

    def _parse_details(self) -> Details:
        start = self.line_no
        collected = []
        depth = 0
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            depth += len(DETAILS_OPEN.findall(line)) - len(DETAILS_CLOSE.findall(line))
            collected.append(line)
            self.pos += 1
            if depth <= 0:
                break

        raw = "\n".join(collected)
        summary_match = SUMMARY.search(raw)
        summary = strip_markdown_inline(summary_match.group(1).strip()) if summary_match else ""

        inner = DETAILS_OPEN.sub("", raw, count=1)
        inner = SUMMARY.sub("", inner, count=1)
        close = list(DETAILS_CLOSE.finditer(inner))
        if close:
            inner = inner[:close[-1].start()]

        blocks = BlockParser(inner.split("\n"), start).parse()
        return Details(line=start, summary=summary, blocks=blocks)

    def _parse_blockquote(self) -> Blockquote:
        start = self.line_no
        inner = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            match = BLOCKQUOTE.match(line)
            if not match:
                break
            inner.append(line[match.end():])
            self.pos += 1

        blocks = BlockParser(inner, start).parse()
        content = "\n".join(part.strip() for part in inner).strip()
        return Blockquote(line=start, content=content, blocks=blocks)

    def _parse_list(self) -> ListBlock:
        first = LIST_ITEM.match(self.lines[self.pos])
        base_indent = _indent_width(first.group('indent'))
        ordered = first.group('marker')[0].isdigit()
        block = ListBlock(line=self.line_no, ordered=ordered)

        while self.pos < len(self.lines):
            match = LIST_ITEM.match(self.lines[self.pos])
            if not match or _indent_width(match.group('indent')) != base_indent:
                break
            if match.group('marker')[0].isdigit() != ordered:
                break
            block.items.append(self._parse_list_item(match))

        return block

    def _parse_list_item(self, match: re.Match) -> ListItem:
        line = self.lines[self.pos]
        if match.group('space'):
            content_indent = len(line[:match.end()].expandtabs(4))
        else:
            content_indent = _indent_width(match.group('indent')) + len(match.group('marker')) + 1
        start = self.line_no
        body = [line[match.end():]]
        self.pos += 1

        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if not line.strip():
                # A blank line only continues the item when indented content follows
                nxt = self.pos + 1
                while nxt < len(self.lines) and not self.lines[nxt].strip():
                    nxt += 1
                if nxt < len(self.lines) and _indent_width(self.lines[nxt]) >= content_indent:
                    body.extend([""] * (nxt - self.pos))
                    self.pos = nxt
                    continue
                break
            if _indent_width(line) >= content_indent:
                body.append(_dedent(line, content_indent))
                self.pos += 1
                continue
            if LIST_ITEM.match(line) or self._starts_block(self.pos):
                break
            # Lazy paragraph continuation
            body.append(line.strip())
            self.pos += 1

        checked = None
        task = TASK_BOX.match(body[0])
        if task:
            checked = task.group('mark').lower() == 'x'
            body[0] = body[0][task.end():]

        blocks = BlockParser(body, start).parse()
        content = ""
        if blocks and isinstance(blocks[0], Paragraph):
            content = blocks.pop(0).content
        return ListItem(content=content, checked=checked, blocks=blocks)

    def _parse_table(self) -> Table:
        start = self.line_no
        headers = _split_row(self.lines[self.pos])
        alignments = [_alignment(cell) for cell in _split_row(self.lines[self.pos + 1])]
        self.pos += 2

        rows = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if not line.strip() or '|' not in line:
                break
            cells = _split_row(line)
            cells = (cells + [""] * len(headers))[:len(headers)]
            rows.append(cells)
            self.pos += 1

        return Table(line=start, headers=headers, rows=rows, alignments=alignments)

    def _parse_paragraph(self) -> List[Block]:
        start = self.line_no
        collected = [self.lines[self.pos].strip()]
        self.pos += 1
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if not line.strip() or self._starts_block(self.pos):
                break
            collected.append(line.strip())
            self.pos += 1

        text = "\n".join(collected)
        blocks: List[Block] = [Paragraph(line=start, content=text)]
        for offset, line in enumerate(collected):
            for image in IMAGE.finditer(line):
                blocks.append(Image(line=start + offset, alt=image.group('alt'),
                                    src=image.group('src'), title=image.group('title')))
        return blocks


def parse_content(markdown: str, start_line: int = 1) -> List[Block]:
    """
    Parse markdown content into structured blocks.

    Args:
        markdown: The markdown content to parse
        start_line: Line number of the first line, for position tracking

    Returns:
        List of top-level blocks; containers carry nested blocks
    """
    return BlockParser(markdown.split("\n"), start_line).parse()


def walk_blocks(blocks: List[Block]) -> List[Tuple[Block, int]]:
    """
    Flatten a block tree in document order.

    Top-level blocks, list items, blockquotes and details all go
    through this one traversal. Returns (block, depth) pairs.
    """
    result = []

    def visit(children: List[Block], depth: int) -> None:
        for block in children:
            result.append((block, depth))
            if isinstance(block, ListBlock):
                for item in block.items:
                    visit(item.blocks, depth + 1)
            elif isinstance(block, (Blockquote, Details)):
                visit(block.blocks, depth + 1)

    visit(blocks, 0)
    return result
