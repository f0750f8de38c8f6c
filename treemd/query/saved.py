"""
Named saved queries.

Saved queries live in YAML files mapping a name to a definition:

    todo:
      description: "Unchecked task list items"
      query: '.list | .items | .[] | select(.checked == false) | .content'
      output: plain

    rust:
      query: '.code[rust]'
      output: md

    # Shorthand: just the query string
    toc: '.h | md'

Each query string is parsed when loaded, so syntax errors surface with
the name of the offending entry.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .ast import Query
from .errors import ParseError, TreemdError
from .output import OutputFormat
from .parser import parse

logger = logging.getLogger(__name__)


class SavedQueryError(TreemdError):
    """Error loading a saved query definition."""
    pass


@dataclass
class SavedQuery:
    """A named query with optional description and preferred output format."""
    name: str
    query: str
    parsed: Query
    description: str = ""
    output: Optional[OutputFormat] = None


def parse_definition(name: str, definition: Any) -> SavedQuery:
    """
    Parse one saved query definition.

    Raises:
        SavedQueryError: if the definition is malformed or its query
            does not parse
    """
    if isinstance(definition, str):
        definition = {'query': definition}
    if not isinstance(definition, dict):
        raise SavedQueryError(f"Saved query '{name}' must be a string or dictionary, got {type(definition).__name__}")
    if 'query' not in definition:
        raise SavedQueryError(f"Saved query '{name}' has no 'query' field")

    text = str(definition['query'])
    try:
        parsed = parse(text)
    except ParseError as e:
        raise SavedQueryError(f"Saved query '{name}': {e}") from e

    output = None
    if definition.get('output'):
        try:
            output = OutputFormat.from_string(str(definition['output']))
        except ValueError as e:
            raise SavedQueryError(f"Saved query '{name}': {e}") from e

    return SavedQuery(
        name=name,
        query=text,
        parsed=parsed,
        description=str(definition.get('description', '')),
        output=output,
    )


def parse_saved_string(yaml_string: str) -> Dict[str, SavedQuery]:
    """Parse a YAML string containing saved query definitions."""
    data = yaml.safe_load(yaml_string)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SavedQueryError(f"YAML must contain a dictionary, got {type(data).__name__}")
    return {str(name): parse_definition(str(name), definition) for name, definition in data.items()}


def parse_saved_file(path: Union[str, Path]) -> Dict[str, SavedQuery]:
    """Parse a YAML file containing saved query definitions."""
    path = Path(path)
    if not path.exists():
        raise SavedQueryError(f"Queries file not found: {path}")
    with open(path, encoding="utf-8") as f:
        return parse_saved_string(f.read())


# =============================================================================
# Saved Query Registry
# =============================================================================

BUILTIN_QUERIES = """
# Built-in saved queries

outline:
  description: "All headings as markdown"
  query: ".h"

toc:
  description: "Top two heading levels as a tree"
  query: ".h | select(.level <= 2)"
  output: tree

code-langs:
  description: "Code block count per language"
  query: "langs"
  output: json-pretty

external-links:
  description: "URLs of external links"
  query: ".link[external] | url"

anchors:
  description: "In-document anchor link targets"
  query: ".link[anchor] | url"

todo:
  description: "Unchecked task list items"
  query: ".list | .items | .[] | select(.checked == false) | .content"

stats:
  description: "Document statistics"
  query: "stats"
  output: json-pretty
"""


class SavedQueryRegistry:
    """
    Registry of named saved queries.

    Later loads override earlier ones, so user files can redefine
    built-ins.
    """

    def __init__(self):
        self._queries: Dict[str, SavedQuery] = {}
        self._sources: Dict[str, str] = {}

    def register(self, saved: SavedQuery, source: str = "<api>") -> None:
        if saved.name in self._queries:
            logger.debug(f"Saved query '{saved.name}' from {source} overrides {self._sources[saved.name]}")
        self._queries[saved.name] = saved
        self._sources[saved.name] = source

    def get(self, name: str) -> SavedQuery:
        """Get a saved query by name."""
        if name not in self._queries:
            raise KeyError(f"Unknown saved query: {name}")
        return self._queries[name]

    def has(self, name: str) -> bool:
        return name in self._queries

    def list(self) -> List[str]:
        """Saved query names, sorted."""
        return sorted(self._queries)

    def source(self, name: str) -> str:
        return self._sources.get(name, "")

    def load_string(self, yaml_string: str, source_name: str = "<string>") -> int:
        """
        Load saved queries from a YAML string.

        Returns number of queries loaded.
        """
        queries = parse_saved_string(yaml_string)
        for saved in queries.values():
            self.register(saved, source_name)
        return len(queries)

    def load_file(self, path: Union[str, Path]) -> int:
        """
        Load saved queries from a YAML file.

        Returns number of queries loaded.
        """
        path = Path(path)
        queries = parse_saved_file(path)
        for saved in queries.values():
            self.register(saved, str(path))
        logger.debug(f"Loaded {len(queries)} saved queries from {path}")
        return len(queries)

    def load_builtin(self) -> None:
        """Load built-in saved queries."""
        self.load_string(BUILTIN_QUERIES, source_name="<builtin>")

    def clear(self) -> None:
        self._queries.clear()
        self._sources.clear()


# Global registry instance
_saved_registry: Optional[SavedQueryRegistry] = None


def get_saved_registry() -> SavedQueryRegistry:
    """
    Get the default saved query registry.

    Loads the built-ins, then the configured queries file if it exists.
    """
    global _saved_registry
    if _saved_registry is None:
        from ..config import get_config

        registry = SavedQueryRegistry()
        registry.load_builtin()
        queries_file = get_config().queries_path
        if queries_file.exists():
            registry.load_file(queries_file)
        _saved_registry = registry
    return _saved_registry


def reset_saved_registry() -> None:
    """Reset the default saved query registry."""
    global _saved_registry
    _saved_registry = None
