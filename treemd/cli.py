#!/usr/bin/env python3
"""
treemd command-line interface.

Non-interactive markdown navigation: heading lists and trees, section
extraction, heading statistics, and tql queries over a document.
"""
import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from treemd import __version__
from treemd.config import init_config
from treemd.constants import MAX_HEADING_LEVEL
from treemd.parser import Document, HeadingNode, build_json_output, parse_markdown, strip_front_matter
from treemd.query import (
    Engine,
    OutputFormat,
    ParseError,
    TreemdError,
    format_output,
    get_default_registry,
    get_saved_registry,
    parse,
)
from treemd.query.output import render_tree

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


QUERY_HELP_HEADER = """\
treemd Query Language (tql)

A jq-like query language for navigating and extracting markdown structure.

ELEMENT SELECTORS
    .h, .heading    All headings (any level)
    .h1 - .h6       Headings by level
    .code           All code blocks
    .code[rust]     Code blocks by language
    .link, .a       All links
    .link[external] External links only (anchor, external, relative, wikilink)
    .img, .image    All images
    .table          All tables
    .list           All lists
    .               The document itself

FILTERS & INDEXING
    .h2[Features]       Heading containing "Features" (fuzzy, case-insensitive)
    .h2["Installation"] Heading with exact text
    .h2[/^v\\d+/]        Heading matching a regex
    .h2[0]              First h2
    .h2[-1]             Last h2
    .h2[1:3]            h2s at index 1 and 2
    .h2[:3]             First 3 h2s

HIERARCHY
    .h1 > .h2           Direct child h2s under h1s
    .h1 >> .code        Code blocks anywhere under h1s

PIPES & EXPRESSIONS
    .h2 | text          Get heading text (strips ##)
    [.h2] | count       Count all h2s
    .h | select(.level > 1)
    .h2 | {text, level}
    .h2 | if .level == 2 then "section" else "other" end
    .title // "untitled"
    "v" ~ .text         String concatenation
"""

QUERY_HELP_FOOTER = """\
EXAMPLES
    treemd -q '.h2' doc.md
    treemd -q '[.h] | limit(5)' doc.md
    treemd -q '.h | where(contains("API"))' doc.md
    treemd -q '.code[rust]' doc.md
    treemd -q '.link[external] | url' doc.md
    treemd -q '.h1[Features] > .h2' doc.md
    treemd -q '[.h] | group_by("level")' doc.md
    treemd -q 'stats' --query-output jsonp doc.md

OUTPUT FORMATS (--query-output)
    plain       Human-readable text (default)
    json        Compact JSON
    json-pretty Pretty-printed JSON (alias: jsonp)
    jsonl       Line-delimited JSON (one per line)
    md          Raw markdown
    tree        Tree structure
"""


def query_help() -> str:
    """Full query language help, with the function list taken from the registry."""
    lines = [QUERY_HELP_HEADER]
    for category, functions in get_default_registry().by_category().items():
        lines.append(f"{category.upper()} FUNCTIONS")
        for function in functions:
            names = ", ".join([function.name] + function.aliases)
            lines.append(f"    {names:<28}{function.description}")
        lines.append("")
    lines.append(QUERY_HELP_FOOTER)
    return "\n".join(lines).rstrip("\n")


# =============================================================================
# Input
# =============================================================================

def read_input(file: Optional[str]) -> str:
    """Read markdown from a file path, or stdin for '-' or a pipe."""
    if file is None or file == "-":
        if file is None and sys.stdin.isatty():
            raise TreemdError("markdown file argument is required (use '-' to read stdin)")
        return sys.stdin.read()
    path = Path(file)
    if not path.exists():
        raise TreemdError(f"File not found: {path}")
    with open(path, encoding="utf-8") as f:
        return f.read()


def load_document(file: Optional[str], hide_frontmatter: bool) -> Document:
    content = read_input(file)
    if hide_frontmatter:
        content = strip_front_matter(content)
    return parse_markdown(content)


# =============================================================================
# Heading commands
# =============================================================================

def select_headings(doc: Document, pattern: Optional[str], level: Optional[int]):
    headings = doc.filter_headings(pattern) if pattern else list(doc.headings)
    if level is not None:
        headings = [h for h in headings if h.level == level]
    return headings


def heading_tree(nodes: List[HeadingNode], label: str, guide_style: str) -> Tree:
    root = Tree(label, guide_style=guide_style)

    def add(parent: Tree, children: List[HeadingNode]) -> None:
        for node in children:
            branch = parent.add(escape(f"{'#' * node.heading.level} {node.heading.text}"))
            add(branch, node.children)

    add(root, nodes)
    return root


def source_name(file: Optional[str]) -> Optional[str]:
    if file and file != "-":
        return Path(file).name
    return None


def heading_records(headings) -> List[dict]:
    return [{"level": h.level, "text": h.text, "offset": h.offset} for h in headings]


def cmd_list(doc: Document, args, config):
    if args.output == "json":
        # The whole document as nested sections
        output = build_json_output(doc, source_name(args.file))
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return
    if args.output == "tree":
        cmd_tree(doc, args, config)
        return
    for h in select_headings(doc, args.filter, args.level):
        print(f"{'#' * h.level} {h.text}")


def cmd_tree(doc: Document, args, config):
    filtered = bool(args.filter) or args.level is not None
    selected = select_headings(doc, args.filter, args.level)

    if args.output == "json":
        print(json.dumps(heading_records(selected), indent=2, ensure_ascii=False))
        return

    if filtered:
        # Filtering breaks nesting; show matching headings as a flat tree
        nodes = [HeadingNode(h) for h in selected]
    else:
        nodes = doc.build_tree()

    label = source_name(args.file) or "stdin"
    tree = heading_tree(nodes, escape(label), config.tree_style)
    if config.color_output:
        console.print(tree)
    else:
        print(render_tree(tree))


def cmd_count(doc: Document, args, config):
    counts = {}
    for heading in doc.headings:
        counts[heading.level] = counts.get(heading.level, 0) + 1

    print("Heading counts:")
    for level in range(1, MAX_HEADING_LEVEL + 1):
        if level in counts:
            print(f"  {'#' * level}: {counts[level]}")
    print(f"\nTotal: {len(doc.headings)}")


def cmd_section(doc: Document, args, config):
    heading = doc.find_heading(args.section)
    if heading is None:
        raise TreemdError(f"Section '{args.section}' not found")
    index = doc.headings.index(heading)
    start, end = doc.section_bounds(index)
    print(doc.content[start:end].strip())


# =============================================================================
# Query commands
# =============================================================================

def cmd_query(doc: Document, args, config):
    if args.saved:
        registry = get_saved_registry()
        try:
            saved = registry.get(args.saved)
        except KeyError:
            raise TreemdError(f"Unknown saved query: {args.saved}")
        query = saved.parsed
        default_format = saved.output
    else:
        query = parse(args.query)
        default_format = None

    if args.query_output:
        fmt = OutputFormat.from_string(args.query_output)
    else:
        fmt = default_format or OutputFormat.from_string(config.output_format)

    results = Engine(doc).execute(query)
    if not results:
        return
    print(format_output(results, fmt, guide_style=config.tree_style))


def cmd_config(args, config):
    """Show or write the effective configuration."""
    if args.show_config:
        print(json.dumps(asdict(config), indent=2))
        return
    path = config.save(Path(args.config) if args.config else None)
    console.print(f"[green]Created config at {escape(str(path))}[/green]")


def cmd_list_saved(args, config):
    registry = get_saved_registry()
    table = Table(title="Saved queries")
    table.add_column("Name", style="cyan")
    table.add_column("Query")
    table.add_column("Description", style="dim")
    for name in registry.list():
        saved = registry.get(name)
        table.add_row(escape(name), escape(saved.query), escape(saved.description))
    console.print(table)


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treemd",
        description="treemd - navigate markdown structure from the command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Heading structure
  treemd README.md
  treemd --list --level 2 README.md
  treemd --list --filter install README.md
  treemd --count README.md

  # Extract a section
  treemd -s "Usage" README.md

  # Queries (see --query-help)
  treemd -q '.h2 | text' README.md
  treemd -q '.code[python]' --query-output md README.md
  cat README.md | treemd - -q '.link[external] | url'
  treemd --saved todo TODO.md

Configuration:
  Config file: ~/.config/treemd/config.toml
  Saved queries: ~/.config/treemd/queries.yaml
  Environment: TREEMD_OUTPUT_FORMAT, TREEMD_QUERIES_FILE
  Write defaults: treemd --init-config
        """
    )

    parser.add_argument("file", nargs="?", help="Markdown file ('-' for stdin)")
    parser.add_argument("--version", action="version", version=f"treemd {__version__}")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    headings = parser.add_argument_group("heading structure")
    headings.add_argument("-l", "--list", action="store_true", help="List all headings")
    headings.add_argument("--tree", action="store_true", help="Show the heading tree")
    headings.add_argument("--filter", metavar="PATTERN",
                          help="Only headings containing PATTERN (case-insensitive)")
    headings.add_argument("-L", "--level", type=int, choices=range(1, MAX_HEADING_LEVEL + 1),
                          metavar="LEVEL", help="Only headings at LEVEL (1-6)")
    headings.add_argument("-o", "--output", choices=["plain", "json", "tree"], default="plain",
                          help="Output format for --list and --tree")
    headings.add_argument("-s", "--section", metavar="HEADING",
                          help="Print the section under HEADING")
    headings.add_argument("--count", action="store_true", help="Count headings by level")

    query = parser.add_argument_group("queries")
    query.add_argument("-q", "--query", metavar="EXPR", help="Run a tql query")
    query.add_argument("--saved", metavar="NAME", help="Run a saved query")
    query.add_argument("--query-output", metavar="FORMAT",
                       help="plain, json, json-pretty (jsonp), jsonl, md or tree")
    query.add_argument("--query-help", action="store_true",
                       help="Show query language documentation")
    query.add_argument("--list-saved", action="store_true", help="List saved queries")

    settings = parser.add_argument_group("configuration")
    settings.add_argument("--show-config", action="store_true",
                          help="Print the effective configuration as JSON")
    settings.add_argument("--init-config", action="store_true",
                          help="Write the effective configuration (to --config or the user config file)")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_args = {}
    if args.no_color:
        config_args["color_output"] = False
    if args.config:
        config_args["config_file"] = Path(args.config)

    try:
        config = init_config(**config_args)
    except Exception as e:
        err_console.print(f"[red]Error loading config: {escape(str(e))}[/red]")
        sys.exit(1)

    level = logging.DEBUG if args.verbose else getattr(logging, str(config.log_level).upper(), logging.WARNING)
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    if args.query_help:
        print(query_help())
        return

    try:
        if args.list_saved:
            cmd_list_saved(args, config)
            return
        if args.show_config or args.init_config:
            cmd_config(args, config)
            return

        doc = load_document(args.file, config.hide_frontmatter)
        logger.debug(f"Loaded document with {len(doc.headings)} headings")

        if args.query or args.saved:
            cmd_query(doc, args, config)
        elif args.section:
            cmd_section(doc, args, config)
        elif args.count:
            cmd_count(doc, args, config)
        elif args.list:
            cmd_list(doc, args, config)
        else:
            cmd_tree(doc, args, config)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except (TreemdError, ValueError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        if args.verbose and isinstance(e, ParseError):
            err_console.print(escape(e.pointer()), highlight=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
