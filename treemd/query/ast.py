"""
Query AST for the tql query language.

A Query is a list of pipelines; each pipeline is a list of stage
expressions separated by `|`. Nodes are immutable and hold no document
state, so one parsed Query can be run against many documents.

Example query structure for `.h1[Intro] > .h2 | text`:
    Query(expressions=[
        PipedExpr(stages=[
            Hierarchy(
                parent=Element(ElementKind.HEADING, level=1,
                               filters=[TextFilter('Intro', exact=False)]),
                child=Element(ElementKind.HEADING, level=2),
                direct=True,
            ),
            Function('text', args=[]),
        ])
    ])
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


# =============================================================================
# Spans
# =============================================================================

@dataclass(frozen=True)
class Span:
    """Half-open character range [start, end) in the query string."""
    start: int = 0
    end: int = 0

    def merge(self, other: "Span") -> "Span":
        return Span(min(self.start, other.start), max(self.end, other.end))


# =============================================================================
# Element kinds
# =============================================================================

class ElementKind(Enum):
    """
    Markdown element kinds that can be selected.

    BLOCKQUOTE, PARAGRAPH and FRONT_MATTER are part of the language but
    extraction does not populate them yet.
    """
    HEADING = "heading"
    CODE = "code"
    LINK = "link"
    IMAGE = "image"
    TABLE = "table"
    LIST = "list"
    BLOCKQUOTE = "blockquote"
    PARAGRAPH = "paragraph"
    FRONT_MATTER = "frontmatter"

    @classmethod
    def from_name(cls, name: str) -> Optional[Tuple["ElementKind", Optional[int]]]:
        """
        Resolve a selector name to (kind, heading level).

        Returns None for names that are not element selectors, e.g.
        property names like `text`.
        """
        if len(name) == 2 and name[0] == 'h' and name[1].isdigit():
            return cls.HEADING, int(name[1])
        mapping = {
            'h': cls.HEADING,
            'heading': cls.HEADING,
            'code': cls.CODE,
            'link': cls.LINK,
            'a': cls.LINK,
            'img': cls.IMAGE,
            'image': cls.IMAGE,
            'table': cls.TABLE,
            'list': cls.LIST,
            'blockquote': cls.BLOCKQUOTE,
            'quote': cls.BLOCKQUOTE,
            'paragraph': cls.PARAGRAPH,
            'p': cls.PARAGRAPH,
            'frontmatter': cls.FRONT_MATTER,
        }
        if name in mapping:
            return mapping[name], None
        return None


# =============================================================================
# Filters and index operations
# =============================================================================

class Filter:
    """Base class for bracket filters. Filters only remove candidates."""
    span: Span


@dataclass(frozen=True)
class TextFilter(Filter):
    """Case-insensitive substring (fuzzy) or whole-text (exact) match."""
    pattern: str
    exact: bool = False
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class RegexFilter(Filter):
    """Regex search against the textual representation."""
    pattern: str
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class TypeFilter(Filter):
    """Matches a link's type tag or a code block's language."""
    type_name: str
    span: Span = field(default=Span(), compare=False)


class IndexOp:
    """Base class for index operations; applied after all filters."""


@dataclass(frozen=True)
class SingleIndex(IndexOp):
    """`[N]`; negative N counts from the end."""
    index: int


@dataclass(frozen=True)
class SliceIndex(IndexOp):
    """`[start:end]`, Python-style half-open and negative-aware."""
    start: Optional[int] = None
    end: Optional[int] = None


@dataclass(frozen=True)
class IterateIndex(IndexOp):
    """`[]`; passes values through unchanged."""


# =============================================================================
# Operators
# =============================================================================

class BinaryOp(Enum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    AND = "and"
    OR = "or"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    CONCAT = "~"
    ALT = "//"


class UnaryOp(Enum):
    NOT = "!"
    NEG = "-"


# =============================================================================
# Expressions
# =============================================================================

class Expr:
    """Base class for all expression nodes."""
    span: Span


@dataclass(frozen=True)
class Identity(Expr):
    """`.`; the current value."""
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Element(Expr):
    """Select all elements of a kind, then apply filters and the index."""
    kind: ElementKind
    level: Optional[int] = None
    filters: Tuple[Filter, ...] = ()
    index: Optional[IndexOp] = None
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Property(Expr):
    """`.name` on the current value."""
    name: str
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Function(Expr):
    name: str
    args: Tuple[Expr, ...] = ()
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Hierarchy(Expr):
    """`parent > child` (direct) or `parent >> child` (descendant)."""
    parent: Expr
    child: Element
    direct: bool
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Binary(Expr):
    op: BinaryOp
    left: Expr
    right: Expr
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Unary(Expr):
    op: UnaryOp
    expr: Expr
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Literal(Expr):
    """String, number, boolean or null constant."""
    value: Any
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Object(Expr):
    pairs: Tuple[Tuple[str, Expr], ...] = ()
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Array(Expr):
    elements: Tuple[Expr, ...] = ()
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Conditional(Expr):
    condition: Expr
    then_branch: Expr
    else_branch: Optional[Expr] = None
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Group(Expr):
    """Parenthesized sub-expression."""
    expr: Expr
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Pipe(Expr):
    """Pipeline nested inside parentheses, brackets or arguments."""
    stages: Tuple[Expr, ...]
    span: Span = field(default=Span(), compare=False)


@dataclass(frozen=True)
class Index(Expr):
    """`.[]`, `.[N]`, `.[a:b]` applied to the current value."""
    target: Expr
    index: IndexOp
    span: Span = field(default=Span(), compare=False)


# =============================================================================
# Query
# =============================================================================

@dataclass(frozen=True)
class PipedExpr:
    """One top-level pipeline."""
    stages: Tuple[Expr, ...]


@dataclass(frozen=True)
class Query:
    """
    A complete parsed query.

    The results of each top-level pipeline are concatenated in order.
    """
    expressions: Tuple[PipedExpr, ...]
    source: str = field(default="", compare=False)
