"""
Link detection and parsing from markdown content.

Extracts standard markdown links and wikilinks, classifying each target
as an anchor, external URL, relative file, or wikilink. Links inside
fenced code blocks and inline code spans are ignored.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class LinkKind(Enum):
    """The different kinds of link targets."""
    ANCHOR = "anchor"
    EXTERNAL = "external"
    RELATIVE = "relative"
    WIKILINK = "wikilink"


@dataclass
class Link:
    """
    A link found in markdown content.

    Attributes:
        text: Display text of the link
        kind: Classification of the target
        target: Target path/URL without anchor (anchor name for ANCHOR links)
        anchor: Anchor part of a relative file link
        alias: Display alias of a wikilink
        offset: Character offset in the source where the link starts
    """
    text: str
    kind: LinkKind
    target: str
    offset: int
    anchor: Optional[str] = None
    alias: Optional[str] = None

    @property
    def url(self) -> str:
        """Resolved URL used for display and search."""
        if self.kind == LinkKind.ANCHOR:
            return f"#{self.target}"
        if self.kind == LinkKind.RELATIVE and self.anchor:
            return f"{self.target}#{self.anchor}"
        return self.target


_FENCE = re.compile(r"^[ \t]*(`{3,}|~{3,})")
_INLINE_CODE = re.compile(r"(`+)(.+?)\1", re.DOTALL)
_MARKDOWN_LINK = re.compile(
    r'(?<!!)(?<!\[)\[(?P<text>[^\[\]]*)\]\((?P<target><[^>]*>|[^)\s]*)(?:\s+"[^"]*")?\)'
)
_WIKILINK = re.compile(r"\[\[(?P<target>[^\]|\n]+)(?:\|(?P<alias>[^\]\n]+))?\]\]")
_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _mask_code(content: str) -> str:
    """Blank out code so offsets stay valid but links inside are ignored."""
    lines = content.split("\n")
    masked = []
    fence = None
    for line in lines:
        match = _FENCE.match(line)
        if fence is None and match:
            fence = match.group(1)
            masked.append(" " * len(line))
        elif fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence) and not stripped.strip(fence[0]):
                fence = None
            masked.append(" " * len(line))
        else:
            masked.append(line)

    text = "\n".join(masked)
    return _INLINE_CODE.sub(lambda m: " " * len(m.group(0)), text)


def classify_target(target: str) -> Link:
    """Classify a raw markdown link target. The returned link has no text or offset."""
    if target.startswith('#'):
        return Link(text="", kind=LinkKind.ANCHOR, target=target[1:], offset=0)
    if _SCHEME.match(target) or target.startswith(("//", "www.")):
        return Link(text="", kind=LinkKind.EXTERNAL, target=target, offset=0)
    path, _, anchor = target.partition('#')
    return Link(text="", kind=LinkKind.RELATIVE, target=path, offset=0, anchor=anchor or None)


def extract_links(content: str) -> List[Link]:
    """
    Extract all links from markdown content.

    Supported link types:
    - Standard markdown links: [text](url)
    - Wikilinks: [[target]] or [[target|alias]]
    - Anchor links: [text](#section)
    - External links: [text](https://...)

    Returns:
        Links sorted by offset
    """
    masked = _mask_code(content)
    links = []

    for match in _MARKDOWN_LINK.finditer(masked):
        target = match.group('target').strip('<>')
        if not target:
            continue
        link = classify_target(target)
        link.text = match.group('text') or target
        link.offset = match.start()
        links.append(link)

    for match in _WIKILINK.finditer(masked):
        target = match.group('target').strip()
        alias = match.group('alias').strip() if match.group('alias') else None
        links.append(Link(
            text=alias or target,
            kind=LinkKind.WIKILINK,
            target=target,
            offset=match.start(),
            alias=alias,
        ))

    links.sort(key=lambda link: link.offset)
    return links
