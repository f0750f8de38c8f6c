"""
treemd - markdown navigation with a jq-like query language.

Parses a markdown document into headings, sections and content blocks,
and runs tql queries over them.

Example Usage:
    >>> from treemd import parse_markdown, execute
    >>> doc = parse_markdown("# Title\\n## Install\\n## Usage\\n")
    >>> execute(doc, '.h2 | text')
    ['Install', 'Usage']
"""

__version__ = "0.4.0"

from treemd.config import TreemdConfig, get_config
from treemd.parser import Document, parse_file, parse_markdown
from treemd.query import Engine, OutputFormat, execute, format_output, parse

__all__ = [
    '__version__',
    'TreemdConfig',
    'get_config',
    'Document',
    'parse_file',
    'parse_markdown',
    'Engine',
    'OutputFormat',
    'execute',
    'format_output',
    'parse',
]
