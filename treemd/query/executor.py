"""
Query execution engine for tql.

Evaluates a parsed Query against an ExecutionContext built once from a
document snapshot. Every value flows as a stream (a list): each pipeline
stage runs once per input value and the outputs are concatenated.

The executor handles:
- Element selection with filters and index/slice operations
- Hierarchy traversal (`>` direct children, `>>` descendants)
- Property access and function dispatch through the FunctionRegistry
- Operators, literals, object/array construction and conditionals
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..parser.content import Code, Image, ListBlock, Table, parse_content, walk_blocks
from ..parser.document import Document
from ..parser.links import extract_links
from .ast import (
    Array, Binary, BinaryOp, Conditional, Element, ElementKind, Expr,
    Filter, Function, Group, Hierarchy, Identity, Index, IndexOp,
    IterateIndex, Literal, Object, Pipe, Property, Query, RegexFilter,
    SingleIndex, SliceIndex, Span, TextFilter, TypeFilter, Unary, UnaryOp,
)
from .errors import DivisionByZero, InvalidArity, QueryError, UnknownFunction
from .functions import compile_regex, regex_search
from .parser import parse
from .registry import FunctionRegistry, get_default_registry
from .value import (
    CodeValue, DocumentValue, HeadingValue, ImageValue, LinkValue,
    ListItemValue, ListValue, TableValue, add_values, compare_values,
    get_property, is_number, is_truthy, to_text, values_equal,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Execution Context
# =============================================================================

@dataclass
class ExecutionContext:
    """
    Immutable inventory of everything a query can select.

    Built once per document; element lists are in document order. Nested
    code blocks, images, tables and lists (inside list items, blockquotes
    and <details>) are included.
    """
    document: DocumentValue
    headings: List[HeadingValue] = field(default_factory=list)
    code_blocks: List[CodeValue] = field(default_factory=list)
    links: List[LinkValue] = field(default_factory=list)
    images: List[ImageValue] = field(default_factory=list)
    tables: List[TableValue] = field(default_factory=list)
    lists: List[ListValue] = field(default_factory=list)

    @classmethod
    def from_document(cls, document: Document) -> "ExecutionContext":
        content = document.content
        context = cls(document=DocumentValue(
            content=content,
            heading_count=len(document.headings),
            word_count=len(content.split()),
        ))

        for index, heading in enumerate(document.headings):
            start, end = document.section_bounds(index)
            newline = content.find("\n", start, end)
            body_start = newline + 1 if newline != -1 else end
            context.headings.append(HeadingValue(
                level=heading.level,
                text=heading.text,
                offset=heading.offset,
                line=content.count("\n", 0, heading.offset) + 1,
                content=content[body_start:end].strip(),
                raw_md=content[start:end],
                index=index,
            ))

        for block, _depth in walk_blocks(parse_content(content)):
            if isinstance(block, Code):
                context.code_blocks.append(CodeValue(
                    language=block.language,
                    content=block.content,
                    start_line=block.start_line,
                    end_line=block.end_line,
                ))
            elif isinstance(block, Image):
                context.images.append(ImageValue(
                    alt=block.alt, src=block.src, title=block.title, line=block.line,
                ))
            elif isinstance(block, Table):
                context.tables.append(TableValue(
                    headers=list(block.headers),
                    rows=[list(row) for row in block.rows],
                    alignments=list(block.alignments),
                    line=block.line,
                ))
            elif isinstance(block, ListBlock):
                context.lists.append(ListValue(
                    ordered=block.ordered,
                    items=[ListItemValue(item.content, item.checked) for item in block.items],
                    line=block.line,
                ))

        for link in extract_links(content):
            context.links.append(LinkValue(
                text=link.text,
                url=link.url,
                link_type=link.kind.value,
                offset=link.offset,
            ))

        logger.debug(
            f"Context: {len(context.headings)} headings, {len(context.code_blocks)} code blocks, "
            f"{len(context.links)} links, {len(context.images)} images, "
            f"{len(context.tables)} tables, {len(context.lists)} lists"
        )
        return context

    def elements(self, kind: ElementKind, level: Optional[int] = None) -> List[Any]:
        """All elements of a kind, in document order."""
        if kind == ElementKind.HEADING:
            return [h for h in self.headings if level is None or h.level == level]
        collections = {
            ElementKind.CODE: self.code_blocks,
            ElementKind.LINK: self.links,
            ElementKind.IMAGE: self.images,
            ElementKind.TABLE: self.tables,
            ElementKind.LIST: self.lists,
        }
        return list(collections.get(kind, []))

    def section_range(self, heading: HeadingValue, direct: bool) -> Tuple[int, int, int, int]:
        """
        Line and offset window owned by a heading.

        The window runs to the next heading of equal or lower level; in
        direct mode it stops at the first heading of any level.

        Returns:
            (start_line, end_line, start_offset, end_offset), ends exclusive
        """
        end_line, end_offset = math.inf, len(self.document.content)
        for nxt in self.headings[heading.index + 1:]:
            if direct or nxt.level <= heading.level:
                end_line, end_offset = nxt.line, nxt.offset
                break
        return heading.line, end_line, heading.offset, end_offset


# =============================================================================
# Index operations
# =============================================================================

def apply_index(values: List[Any], index: IndexOp) -> List[Any]:
    """
    Apply an index op to a candidate list.

    Out-of-range single indexes and empty slices give an empty list;
    negative positions count from the end before clamping.
    """
    length = len(values)
    if isinstance(index, IterateIndex):
        return values
    if isinstance(index, SingleIndex):
        position = index.index + length if index.index < 0 else index.index
        if 0 <= position < length:
            return [values[position]]
        return []
    if isinstance(index, SliceIndex):
        start = 0 if index.start is None else index.start
        end = length if index.end is None else index.end
        if start < 0:
            start = max(length + start, 0)
        if end < 0:
            end = max(length + end, 0)
        start, end = min(start, length), min(end, length)
        if start >= end:
            return []
        return values[start:end]
    raise TypeError(f"Unknown index operation: {index!r}")


# =============================================================================
# Operators
# =============================================================================

def _sub(a, b, span):
    if is_number(a) and is_number(b):
        return float(a - b)
    return None


def _repeat(text: str, times: float):
    # inf and nan have no repetition count
    if not math.isfinite(times):
        return None
    return text * max(int(times), 0)


def _mul(a, b, span):
    if is_number(a) and is_number(b):
        return float(a * b)
    if isinstance(a, str) and is_number(b):
        return _repeat(a, b)
    if is_number(a) and isinstance(b, str):
        return _repeat(b, a)
    return None


def _div(a, b, span):
    if is_number(a) and is_number(b):
        if b == 0:
            raise DivisionByZero(span)
        return float(a / b)
    return None


def _mod(a, b, span):
    if is_number(a) and is_number(b):
        if b == 0:
            raise DivisionByZero(span)
        return math.fmod(a, b)
    return None


_OPERATORS: Dict[BinaryOp, Callable[[Any, Any, Span], Any]] = {
    BinaryOp.EQ: lambda a, b, s: values_equal(a, b),
    BinaryOp.NE: lambda a, b, s: not values_equal(a, b),
    BinaryOp.LT: lambda a, b, s: compare_values(a, b) < 0,
    BinaryOp.LE: lambda a, b, s: compare_values(a, b) <= 0,
    BinaryOp.GT: lambda a, b, s: compare_values(a, b) > 0,
    BinaryOp.GE: lambda a, b, s: compare_values(a, b) >= 0,
    BinaryOp.AND: lambda a, b, s: is_truthy(a) and is_truthy(b),
    BinaryOp.OR: lambda a, b, s: is_truthy(a) or is_truthy(b),
    BinaryOp.ADD: lambda a, b, s: add_values(a, b),
    BinaryOp.SUB: _sub,
    BinaryOp.MUL: _mul,
    BinaryOp.DIV: _div,
    BinaryOp.MOD: _mod,
    BinaryOp.CONCAT: lambda a, b, s: to_text(a) + to_text(b),
    BinaryOp.ALT: lambda a, b, s: a if is_truthy(a) else b,
}


# =============================================================================
# Engine
# =============================================================================

class Engine:
    """
    Executes queries against one document.

    Example:
        >>> engine = Engine(parse_markdown(text))
        >>> engine.execute('.h2 | text')
        ['Install', 'Usage']
    """

    def __init__(self, document: Document, registry: Optional[FunctionRegistry] = None):
        self.context = ExecutionContext.from_document(document)
        self.registry = registry or get_default_registry()
        self._dispatch: Dict[type, Callable[[Any, Any], List[Any]]] = {
            Identity: self._eval_identity,
            Element: self._eval_element,
            Property: self._eval_property,
            Function: self._eval_function,
            Hierarchy: self._eval_hierarchy,
            Binary: self._eval_binary,
            Unary: self._eval_unary,
            Literal: self._eval_literal,
            Object: self._eval_object,
            Array: self._eval_array,
            Conditional: self._eval_conditional,
            Group: self._eval_group,
            Pipe: self._eval_pipe,
            Index: self._eval_index,
        }

    def execute(self, query: Union[str, Query]) -> List[Any]:
        """
        Run a query and return all results.

        Raises:
            ParseError: if `query` is a string that does not parse
            QueryError: on evaluation failures
        """
        if isinstance(query, str):
            query = parse(query)

        results: List[Any] = []
        for piped in query.expressions:
            results.extend(self._run_stages(piped.stages, [self.context.document]))
        logger.debug(f"Query produced {len(results)} result(s)")
        return results

    def _run_stages(self, stages, inputs: List[Any]) -> List[Any]:
        current = inputs
        for stage in stages:
            produced: List[Any] = []
            for value in current:
                produced.extend(self.evaluate(stage, value))
            current = produced
            if not current:
                break
        return current

    def evaluate(self, expr: Expr, current: Any) -> List[Any]:
        """Evaluate one expression against the current value."""
        handler = self._dispatch.get(type(expr))
        if handler is None:
            raise TypeError(f"Unknown expression node: {type(expr).__name__}")
        return handler(expr, current)

    def _first(self, expr: Expr, current: Any) -> Any:
        values = self.evaluate(expr, current)
        return values[0] if values else None

    # -------------------------------------------------------------------------
    # Node handlers
    # -------------------------------------------------------------------------

    def _eval_identity(self, expr: Identity, current):
        return [current]

    def _eval_literal(self, expr: Literal, current):
        return [expr.value]

    def _eval_group(self, expr: Group, current):
        return self.evaluate(expr.expr, current)

    def _eval_pipe(self, expr: Pipe, current):
        return self._run_stages(expr.stages, [current])

    def _eval_element(self, expr: Element, current):
        values = self.context.elements(expr.kind, expr.level)
        return self._refine(values, expr)

    def _refine(self, values: List[Any], element: Element) -> List[Any]:
        for flt in element.filters:
            values = self._apply_filter(values, flt)
        if element.index is not None:
            values = apply_index(values, element.index)
        return values

    def _apply_filter(self, values: List[Any], flt: Filter) -> List[Any]:
        if isinstance(flt, TextFilter):
            needle = flt.pattern.lower()
            if flt.exact:
                return [v for v in values if to_text(v).lower() == needle]
            return [v for v in values if needle in to_text(v).lower()]
        if isinstance(flt, RegexFilter):
            pattern = compile_regex(flt.pattern, flt.span)
            return [v for v in values if regex_search(pattern, to_text(v), flt.span)]
        if isinstance(flt, TypeFilter):
            wanted = flt.type_name.lower()
            result = []
            for v in values:
                if isinstance(v, LinkValue) and v.link_type == wanted:
                    result.append(v)
                elif isinstance(v, CodeValue) and (v.language or "").lower() == wanted:
                    result.append(v)
            return result
        raise TypeError(f"Unknown filter: {flt!r}")

    def _eval_property(self, expr: Property, current):
        return [get_property(current, expr.name, expr.span)]

    def _eval_index(self, expr: Index, current):
        exploded: List[Any] = []
        for value in self.evaluate(expr.target, current):
            if isinstance(value, list):
                exploded.extend(value)
            elif isinstance(value, dict):
                exploded.extend(value.values())
            else:
                exploded.append(value)
        return apply_index(exploded, expr.index)

    def _eval_function(self, expr: Function, current):
        function = self.registry.get_function(expr.name)
        if function is None:
            raise UnknownFunction(expr.name, self.registry.suggest_function(expr.name), expr.span)
        if not function.arity.accepts(len(expr.args)):
            raise InvalidArity(expr.name, function.arity.describe(), len(expr.args), expr.span)

        args = [current] if function.takes_input else []
        for arg in expr.args:
            values = self.evaluate(arg, current)
            args.append(values[0] if len(values) == 1 else values)

        try:
            return function.call(args, self.context)
        except QueryError as e:
            if e.span is None:
                e.span = expr.span
            raise

    def _eval_hierarchy(self, expr: Hierarchy, current):
        child = expr.child
        results: List[Any] = []

        for parent in self.evaluate(expr.parent, current):
            if not isinstance(parent, HeadingValue):
                continue
            if child.kind == ElementKind.HEADING:
                results.extend(self._child_headings(parent, child.level, expr.direct))
            else:
                results.extend(self._scoped_elements(parent, child.kind, expr.direct))

        return self._refine(results, child)

    def _child_headings(self, parent: HeadingValue, level: Optional[int], direct: bool):
        headings = self.context.headings
        found = []
        for position in range(parent.index + 1, len(headings)):
            heading = headings[position]
            if heading.level <= parent.level:
                break
            if level is not None and heading.level != level:
                continue
            if direct and any(
                parent.level < between.level < heading.level
                for between in headings[parent.index + 1:position]
            ):
                continue
            found.append(heading)
        return found

    def _scoped_elements(self, parent: HeadingValue, kind: ElementKind, direct: bool):
        start_line, end_line, start_offset, end_offset = self.context.section_range(parent, direct)
        scoped = []
        for element in self.context.elements(kind):
            if isinstance(element, LinkValue):
                if start_offset <= element.offset < end_offset:
                    scoped.append(element)
                continue
            line = element.start_line if isinstance(element, CodeValue) else element.line
            if start_line <= line < end_line:
                scoped.append(element)
        return scoped

    def _eval_binary(self, expr: Binary, current):
        left = self._first(expr.left, current)
        right = self._first(expr.right, current)
        return [_OPERATORS[expr.op](left, right, expr.span)]

    def _eval_unary(self, expr: Unary, current):
        value = self._first(expr.expr, current)
        if expr.op == UnaryOp.NOT:
            return [not is_truthy(value)]
        if is_number(value):
            return [float(-value)]
        return [None]

    def _eval_object(self, expr: Object, current):
        result: Dict[str, Any] = {}
        for key, value_expr in expr.pairs:
            values = self.evaluate(value_expr, current)
            result[key] = values[0] if len(values) == 1 else values
        return [result]

    def _eval_array(self, expr: Array, current):
        items: List[Any] = []
        for element in expr.elements:
            items.extend(self.evaluate(element, current))
        return [items]

    def _eval_conditional(self, expr: Conditional, current):
        if is_truthy(self._first(expr.condition, current)):
            return self.evaluate(expr.then_branch, current)
        if expr.else_branch is None:
            return [None]
        return self.evaluate(expr.else_branch, current)


def execute(document: Document, query: Union[str, Query]) -> List[Any]:
    """Convenience wrapper: run one query against a document."""
    return Engine(document).execute(query)
