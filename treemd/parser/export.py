"""
Nested JSON export of a markdown document.

Produces the structure printed by `treemd --list -o json`:

    {"document": {
        "metadata": {"source", "headingCount", "maxDepth", "wordCount"},
        "sections": [{"id", "level", "title", "slug",
                      "position": {"line", "offset"},
                      "content": {"raw", "blocks"},
                      "children": [...]}]}}

A section's content is its own body only, up to the next heading of any
level; sub-sections carry theirs under `children`.
"""

import logging
from dataclasses import fields
from typing import Any, Dict, List, Optional

from .content import (
    Block, Blockquote, Code, Details, Heading as HeadingBlock, Image,
    ListBlock, Paragraph, Rule, Table, parse_content, slugify,
)
from .document import Document, HeadingNode

logger = logging.getLogger(__name__)

_BLOCK_TYPES = {
    Paragraph: "paragraph",
    HeadingBlock: "heading",
    Code: "code",
    ListBlock: "list",
    Blockquote: "blockquote",
    Details: "details",
    Table: "table",
    Image: "image",
    Rule: "rule",
}


def block_to_dict(block: Block) -> Dict[str, Any]:
    """Convert a content block (and its nested blocks) to plain data."""
    data: Dict[str, Any] = {"type": _BLOCK_TYPES[type(block)]}
    for f in fields(block):
        value = getattr(block, f.name)
        if f.name == "blocks":
            value = [block_to_dict(child) for child in value]
        elif f.name == "items":
            value = [
                {
                    "content": item.content,
                    "checked": item.checked,
                    "blocks": [block_to_dict(child) for child in item.blocks],
                }
                for item in value
            ]
        data[f.name] = value
    return data


class _SectionBuilder:
    def __init__(self, doc: Document):
        self.doc = doc
        self.index = {id(heading): i for i, heading in enumerate(doc.headings)}
        self.seen_ids: Dict[str, int] = {}

    def unique_id(self, slug: str) -> str:
        count = self.seen_ids.get(slug, 0)
        self.seen_ids[slug] = count + 1
        return slug if count == 0 else f"{slug}-{count}"

    def build(self, node: HeadingNode) -> Dict[str, Any]:
        heading = node.heading
        content = self.doc.content
        position = self.index[id(heading)]

        if position + 1 < len(self.doc.headings):
            end = self.doc.headings[position + 1].offset
        else:
            end = len(content)
        newline = content.find("\n", heading.offset, end)
        body_start = newline + 1 if newline != -1 else end
        body = content[body_start:end]
        line = content.count("\n", 0, heading.offset) + 1

        slug = slugify(heading.text)
        return {
            "id": self.unique_id(slug),
            "level": heading.level,
            "title": heading.text,
            "slug": slug,
            "position": {"line": line, "offset": heading.offset},
            "content": {
                "raw": body.strip(),
                "blocks": [block_to_dict(b) for b in parse_content(body, start_line=line + 1)],
            },
            "children": [self.build(child) for child in node.children],
        }


def build_json_output(doc: Document, source: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the nested document structure for JSON output.

    Args:
        doc: Parsed document
        source: File name to record in the metadata, if any

    Returns:
        Dictionary ready for json.dumps
    """
    builder = _SectionBuilder(doc)
    sections: List[Dict[str, Any]] = [builder.build(node) for node in doc.build_tree()]
    logger.debug(f"Exported {len(doc.headings)} headings as {len(sections)} top-level sections")
    return {
        "document": {
            "metadata": {
                "source": source,
                "headingCount": len(doc.headings),
                "maxDepth": max((h.level for h in doc.headings), default=0),
                "wordCount": len(doc.content.split()),
            },
            "sections": sections,
        }
    }
