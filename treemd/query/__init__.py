"""
tql - the treemd query language.

A jq-like language for selecting, filtering and transforming the
elements of a markdown document:
- Element selectors: .h2, .code[rust], .link[external], .table
- Filters and indexes: .h2[Install], .h2["Exact"], .h2[/re/], .h2[0], .h2[1:3]
- Hierarchy: .h1 > .h2 (direct children), .h1 >> .code (descendants)
- Pipes, literals, objects, arrays, conditionals and built-in functions

Example usage:

    from treemd.parser import parse_markdown
    from treemd.query import Engine, format_output, OutputFormat

    doc = parse_markdown(open('README.md').read())
    engine = Engine(doc)

    for text in engine.execute('.h2 | text'):
        print(text)

    results = engine.execute('.h1[Usage] >> .code[python]')
    print(format_output(results, OutputFormat.MARKDOWN))
"""

from .ast import (
    ElementKind,
    Query,
    Span,
)
from .errors import (
    DivisionByZero,
    InvalidArity,
    InvalidRegex,
    ParseError,
    PropertyNotFound,
    QueryError,
    TreemdError,
    UnknownFunction,
)
from .executor import Engine, ExecutionContext, apply_index, execute
from .output import OutputFormat, format_output
from .parser import parse
from .registry import Arity, Function, FunctionRegistry, get_default_registry
from .saved import (
    SavedQuery,
    SavedQueryError,
    SavedQueryRegistry,
    get_saved_registry,
    reset_saved_registry,
)
from .value import (
    CodeValue,
    DocumentValue,
    HeadingValue,
    ImageValue,
    LinkValue,
    ListItemValue,
    ListValue,
    TableValue,
    is_truthy,
    kind,
    to_json,
    to_markdown,
    to_text,
)

__all__ = [
    # AST
    'ElementKind',
    'Query',
    'Span',

    # Errors
    'TreemdError',
    'ParseError',
    'QueryError',
    'UnknownFunction',
    'InvalidArity',
    'PropertyNotFound',
    'InvalidRegex',
    'DivisionByZero',

    # Parsing and execution
    'parse',
    'Engine',
    'ExecutionContext',
    'apply_index',
    'execute',

    # Functions
    'Arity',
    'Function',
    'FunctionRegistry',
    'get_default_registry',

    # Output
    'OutputFormat',
    'format_output',

    # Saved queries
    'SavedQuery',
    'SavedQueryError',
    'SavedQueryRegistry',
    'get_saved_registry',
    'reset_saved_registry',

    # Values
    'DocumentValue',
    'HeadingValue',
    'CodeValue',
    'LinkValue',
    'ImageValue',
    'TableValue',
    'ListValue',
    'ListItemValue',
    'kind',
    'to_text',
    'is_truthy',
    'to_json',
    'to_markdown',
]
