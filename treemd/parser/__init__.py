"""
Markdown parsing for treemd.

Provides the Document snapshot the query engine reads from, plus the
block and link parsers used to build its element inventories.
"""

from .content import (
    Block,
    Blockquote,
    Code,
    Details,
    Heading as HeadingBlock,
    Image,
    ListBlock,
    ListItem,
    Paragraph,
    Rule,
    Table,
    parse_content,
    slugify,
    walk_blocks,
)
from .document import Document, Heading, HeadingNode, parse_file, parse_markdown
from .export import block_to_dict, build_json_output
from .links import Link, LinkKind, extract_links
from .utils import get_heading_level, strip_front_matter, strip_markdown_inline

__all__ = [
    'Document',
    'Heading',
    'HeadingNode',
    'parse_file',
    'parse_markdown',
    'block_to_dict',
    'build_json_output',
    'Block',
    'Blockquote',
    'Code',
    'Details',
    'HeadingBlock',
    'Image',
    'ListBlock',
    'ListItem',
    'Paragraph',
    'Rule',
    'Table',
    'parse_content',
    'slugify',
    'walk_blocks',
    'Link',
    'LinkKind',
    'extract_links',
    'get_heading_level',
    'strip_front_matter',
    'strip_markdown_inline',
]
