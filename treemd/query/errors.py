"""
Error types for the tql query language.

Every error aborts the query run that raised it. Structural "no match"
is never an error: filters and index operations return empty results
instead.

Hierarchy:
    TreemdError
    ├── ParseError          malformed query syntax
    └── QueryError          evaluation failures
        ├── UnknownFunction
        ├── InvalidArity
        ├── PropertyNotFound
        ├── InvalidRegex
        └── DivisionByZero
"""

from typing import List, Optional

from .ast import Span


class TreemdError(Exception):
    """Base class for treemd errors."""
    pass


class ParseError(TreemdError):
    """Error parsing a query string."""

    def __init__(self, message: str, span: Optional[Span] = None, query: str = ""):
        self.message = message
        self.span = span
        self.query = query
        super().__init__(message)

    def __str__(self):
        if self.span is None:
            return f"Parse error: {self.message}"
        return f"Parse error at {self.span.start}: {self.message}"

    def pointer(self) -> str:
        """Render the query with a caret line under the offending span."""
        if not self.query or self.span is None:
            return str(self)
        width = max(1, self.span.end - self.span.start)
        caret = " " * self.span.start + "^" * width
        return f"{self}\n  {self.query}\n  {caret}"


class QueryError(TreemdError):
    """Error evaluating a query."""

    kind = "query error"

    def __init__(self, message: str, span: Optional[Span] = None):
        self.message = message
        self.span = span
        super().__init__(message)

    def location(self) -> str:
        """Suffix naming where in the query the error happened."""
        if self.span is None:
            return ""
        return f" at {self.span.start}"

    def __str__(self):
        return f"{self.kind}{self.location()}: {self.message}"


class UnknownFunction(QueryError):
    """Call to a function that is not in the registry."""

    kind = "unknown function"

    def __init__(self, name: str, suggestions: Optional[List[str]] = None,
                 span: Optional[Span] = None):
        self.name = name
        self.suggestions = list(suggestions or [])
        super().__init__(name, span)

    def __str__(self):
        text = f"{self.kind}{self.location()}: {self.name}"
        if self.suggestions:
            text += f" (did you mean: {', '.join(self.suggestions)}?)"
        return text


class InvalidArity(QueryError):
    """Function called with the wrong number of arguments."""

    kind = "invalid arity"

    def __init__(self, function: str, expected: str, found: int,
                 span: Optional[Span] = None):
        self.function = function
        self.expected = expected
        self.found = found
        super().__init__(f"{function} expects {expected} argument(s), got {found}", span)


class PropertyNotFound(QueryError):
    """Unknown property for the runtime type of a value."""

    kind = "property not found"

    def __init__(self, property: str, on_type: str, span: Optional[Span] = None):
        self.property = property
        self.on_type = on_type
        super().__init__(f"'{property}' on {on_type}", span)


class InvalidRegex(QueryError):
    """Regex pattern rejected by the guard or by the regex engine."""

    kind = "invalid regex"

    def __init__(self, pattern: str, error: str, span: Optional[Span] = None):
        self.pattern = pattern
        self.error = error
        super().__init__(f"/{pattern}/: {error}", span)


class DivisionByZero(QueryError):
    """Division or modulo by zero."""

    kind = "division by zero"

    def __init__(self, span: Optional[Span] = None):
        super().__init__("right-hand operand is zero", span)
