"""
Recursive-descent parser for the tql query language.

Grammar (lowest precedence first):

    query       := pipeline ((',')? pipeline)*
    pipeline    := alt ('|' alt)*
    alt         := or ('//' or)*
    or          := and ('or' and)*
    and         := compare ('and' compare)*
    compare     := additive (('==' | '!=' | '<' | '<=' | '>' | '>=') additive)?
    additive    := multiplicative (('+' | '-' | '~') multiplicative)*
    multiplicative := unary (('*' | '/' | '%') unary)*
    unary       := ('!' | '-') unary | postfix
    postfix     := primary ('[' index ']')*
    primary     := selector (('>' | '>>') selector)*
                 | '.' | '.name' | '."name"' | '.[' index ']'
                 | name ('(' pipeline ((',' | ';') pipeline)* ')')?
                 | string | number | 'true' | 'false' | 'null'
                 | '(' pipeline ')' | '[' pipeline, ... ']' | '{' pair, ... '}'
                 | 'if' pipeline 'then' pipeline ('elif' ...)* ('else' pipeline)? 'end'?

Selector brackets and postfix indexes must follow without whitespace,
otherwise `[` starts an array literal.

Example:
    >>> parse('.h2[Install] > .code[rust] | content')
"""

import logging
import re
from typing import List, Optional

from ..constants import KNOWN_LANGUAGES, LINK_TYPES, MAX_HEADING_LEVEL
from .ast import (
    Array, Binary, BinaryOp, Conditional, Element, ElementKind, Expr,
    Filter, Function, Group, Hierarchy, Identity, Index, IndexOp,
    IterateIndex, Literal, Object, Pipe, PipedExpr, Property, Query,
    RegexFilter, SingleIndex, SliceIndex, Span, TextFilter, TypeFilter,
    Unary, UnaryOp,
)
from .errors import ParseError
from .lexer import Lexer, Token, TokenType, read_string

logger = logging.getLogger(__name__)


_INT = re.compile(r"^-?\d+$")
_SLICE = re.compile(r"^(?P<start>-?\d+)?\s*:\s*(?P<end>-?\d+)?$")
_INDEX_LIKE = re.compile(r"^[-\d:\s]+$")
_HEADING_NAME = re.compile(r"^h(\d+)$")

_COMPARISON = {
    TokenType.EQ: BinaryOp.EQ,
    TokenType.NE: BinaryOp.NE,
    TokenType.LT: BinaryOp.LT,
    TokenType.LE: BinaryOp.LE,
    TokenType.GT: BinaryOp.GT,
    TokenType.GE: BinaryOp.GE,
}

_ADDITIVE = {
    TokenType.PLUS: BinaryOp.ADD,
    TokenType.MINUS: BinaryOp.SUB,
    TokenType.TILDE: BinaryOp.CONCAT,
}

_MULTIPLICATIVE = {
    TokenType.STAR: BinaryOp.MUL,
    TokenType.SLASH: BinaryOp.DIV,
    TokenType.PERCENT: BinaryOp.MOD,
}

# Tokens that can begin an expression
_EXPR_START = {
    TokenType.DOT, TokenType.IDENT, TokenType.STRING, TokenType.NUMBER,
    TokenType.TRUE, TokenType.FALSE, TokenType.NULL, TokenType.LPAREN,
    TokenType.LBRACKET, TokenType.LBRACE, TokenType.IF, TokenType.BANG,
    TokenType.MINUS,
}


class Parser:
    """Parser over a single query string. Use `parse()` instead."""

    def __init__(self, source: str):
        self.source = source
        self.lexer = Lexer(source)
        self.current: Token = self.lexer.next_token()
        self.prev_end = 0

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    def advance(self) -> Token:
        token = self.current
        self.prev_end = token.span.end
        self.current = self.lexer.next_token()
        return token

    def check(self, *types: TokenType) -> bool:
        return self.current.type in types

    def expect(self, token_type: TokenType, context: str = "") -> Token:
        if self.current.type != token_type:
            where = f" {context}" if context else ""
            raise self.error(
                f"expected '{token_type.value}'{where}, found {self.current.describe()}",
                self.current.span,
            )
        return self.advance()

    def error(self, message: str, span: Span) -> ParseError:
        return ParseError(message, span, self.source)

    def span_from(self, start: int) -> Span:
        return Span(start, self.prev_end)

    def adjacent(self, token: Token) -> bool:
        """True when `token` starts right where the previous token ended."""
        return token.span.start == self.prev_end

    # -------------------------------------------------------------------------
    # Query and pipelines
    # -------------------------------------------------------------------------

    def parse_query(self) -> Query:
        if self.check(TokenType.EOF):
            raise self.error("empty query", self.current.span)

        expressions = [PipedExpr(tuple(self.parse_stages()))]
        while not self.check(TokenType.EOF):
            if self.check(TokenType.COMMA):
                self.advance()
            elif not self.check(*_EXPR_START):
                raise self.error(f"unexpected {self.current.describe()}", self.current.span)
            expressions.append(PipedExpr(tuple(self.parse_stages())))

        return Query(expressions=tuple(expressions), source=self.source)

    def parse_stages(self) -> List[Expr]:
        stages = [self.parse_alternative()]
        while self.check(TokenType.PIPE):
            self.advance()
            stages.append(self.parse_alternative())
        return stages

    def parse_pipeline(self) -> Expr:
        """A nested pipeline; single-stage pipelines are returned as is."""
        start = self.current.span.start
        stages = self.parse_stages()
        if len(stages) == 1:
            return stages[0]
        return Pipe(tuple(stages), self.span_from(start))

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------

    def _binary_left(self, operand, operators) -> Expr:
        start = self.current.span.start
        left = operand()
        while self.current.type in operators:
            op = operators[self.advance().type]
            right = operand()
            left = Binary(op, left, right, self.span_from(start))
        return left

    def parse_alternative(self) -> Expr:
        return self._binary_left(self.parse_or, {TokenType.SLASHSLASH: BinaryOp.ALT})

    def parse_or(self) -> Expr:
        return self._binary_left(self.parse_and, {TokenType.OR: BinaryOp.OR})

    def parse_and(self) -> Expr:
        return self._binary_left(self.parse_comparison, {TokenType.AND: BinaryOp.AND})

    def parse_comparison(self) -> Expr:
        start = self.current.span.start
        left = self.parse_additive()
        if self.current.type in _COMPARISON:
            op = _COMPARISON[self.advance().type]
            right = self.parse_additive()
            left = Binary(op, left, right, self.span_from(start))
            if self.current.type in _COMPARISON:
                raise self.error("comparison operators cannot be chained", self.current.span)
        return left

    def parse_additive(self) -> Expr:
        return self._binary_left(self.parse_multiplicative, _ADDITIVE)

    def parse_multiplicative(self) -> Expr:
        return self._binary_left(self.parse_unary, _MULTIPLICATIVE)

    def parse_unary(self) -> Expr:
        start = self.current.span.start
        if self.check(TokenType.BANG):
            self.advance()
            return Unary(UnaryOp.NOT, self.parse_unary(), self.span_from(start))
        if self.check(TokenType.MINUS):
            self.advance()
            operand = self.parse_unary()
            if isinstance(operand, Literal) and isinstance(operand.value, float):
                return Literal(-operand.value, self.span_from(start))
            return Unary(UnaryOp.NEG, operand, self.span_from(start))
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        start = self.current.span.start
        expr = self.parse_primary()
        while self.check(TokenType.LBRACKET) and self.adjacent(self.current):
            if isinstance(expr, (Element, Hierarchy)):
                raise self.error("index must directly follow the selector", self.current.span)
            index = self.parse_index_bracket()
            expr = Index(expr, index, self.span_from(start))
        return expr

    # -------------------------------------------------------------------------
    # Primaries
    # -------------------------------------------------------------------------

    def parse_primary(self) -> Expr:
        token = self.current
        start = token.span.start

        if token.type == TokenType.DOT:
            return self.parse_dot()

        if token.type == TokenType.IDENT:
            return self.parse_function()

        if token.type in (TokenType.STRING, TokenType.NUMBER):
            self.advance()
            return Literal(token.value, token.span)

        if token.type in (TokenType.TRUE, TokenType.FALSE, TokenType.NULL):
            self.advance()
            value = {TokenType.TRUE: True, TokenType.FALSE: False, TokenType.NULL: None}[token.type]
            return Literal(value, token.span)

        if token.type == TokenType.LPAREN:
            self.advance()
            inner = self.parse_pipeline()
            self.expect(TokenType.RPAREN, "to close '('")
            return Group(inner, self.span_from(start))

        if token.type == TokenType.LBRACKET:
            return self.parse_array()

        if token.type == TokenType.LBRACE:
            return self.parse_object()

        if token.type == TokenType.IF:
            return self.parse_conditional()

        if token.type == TokenType.EOF:
            raise self.error("unexpected end of query", token.span)
        raise self.error(f"unexpected {token.describe()}", token.span)

    def parse_dot(self) -> Expr:
        dot = self.advance()
        start = dot.span.start
        nxt = self.current

        if not self.adjacent(nxt):
            return Identity(dot.span)

        if nxt.type == TokenType.LBRACKET:
            index = self.parse_index_bracket()
            return Index(Identity(dot.span), index, self.span_from(start))

        if nxt.type == TokenType.STRING:
            self.advance()
            return self._property_chain(Property(nxt.value, self.span_from(start)), start)

        if nxt.type in (TokenType.IDENT,) or (nxt.type.value == nxt.value and nxt.value.isalpha()):
            name = nxt.value
            self.advance()
            resolved = self._element_kind(name, Span(start, nxt.span.end))
            if resolved is None:
                return self._property_chain(Property(name, self.span_from(start)), start)
            kind, level = resolved
            element = self.parse_selector_suffix(kind, level, start)
            return self._property_chain(self.parse_hierarchy(element, start), start)

        return Identity(dot.span)

    def _property_chain(self, first: Expr, start: int) -> Expr:
        """`.a.b.c` reads as the pipeline `.a | .b | .c`; so does `.h2.text`."""
        stages: List[Expr] = [first]
        while self.check(TokenType.DOT) and self.adjacent(self.current):
            follow = self.lexer.peek_tokens(1)[0]
            if follow.span.start != self.current.span.end:
                break
            if follow.type == TokenType.IDENT or follow.type == TokenType.STRING:
                dot = self.advance()
                name = self.advance()
                stages.append(Property(name.value, Span(dot.span.start, name.span.end)))
            else:
                break
        if len(stages) == 1:
            return first
        return Pipe(tuple(stages), self.span_from(start))

    def _element_kind(self, name: str, span: Span):
        heading = _HEADING_NAME.match(name)
        if heading:
            level = int(heading.group(1))
            if not 1 <= level <= MAX_HEADING_LEVEL:
                raise self.error(f"unknown element kind '{name}'", span)
        return ElementKind.from_name(name)

    def parse_selector_suffix(self, kind: ElementKind, level: Optional[int], start: int) -> Element:
        filters: List[Filter] = []
        index: Optional[IndexOp] = None

        while self.check(TokenType.LBRACKET) and self.adjacent(self.current):
            bracket = self.current
            raw, span = self.lexer.scan_bracket(bracket.span.end)
            self.prev_end = span.end + 1
            item = self.classify_bracket(raw, span, kind)
            if isinstance(item, IndexOp):
                if index is not None:
                    raise self.error("only one index or slice is allowed per selector",
                                     Span(bracket.span.start, span.end + 1))
                index = item
            else:
                filters.append(item)
            self.current = self.lexer.next_token()

        return Element(kind, level, tuple(filters), index, self.span_from(start))

    def parse_hierarchy(self, left: Expr, start: int) -> Expr:
        while self.check(TokenType.GT, TokenType.GTGT):
            ahead = self.lexer.peek_tokens(2)
            if len(ahead) < 2 or not self._is_selector(ahead[0], ahead[1]):
                if self.check(TokenType.GTGT):
                    raise self.error("expected an element selector after '>>'", self.current.span)
                break
            direct = self.advance().type == TokenType.GT
            dot = self.advance()
            name = self.advance()
            kind, level = self._element_kind(name.value, Span(dot.span.start, name.span.end))
            child = self.parse_selector_suffix(kind, level, dot.span.start)
            left = Hierarchy(left, child, direct, self.span_from(start))
        return left

    def _is_selector(self, dot: Token, name: Token) -> bool:
        if dot.type != TokenType.DOT or name.type != TokenType.IDENT:
            return False
        if name.span.start != dot.span.end:
            return False
        if _HEADING_NAME.match(name.value):
            return True
        return ElementKind.from_name(name.value) is not None

    def parse_function(self) -> Expr:
        name = self.advance()
        start = name.span.start
        args: List[Expr] = []
        if self.check(TokenType.LPAREN):
            self.advance()
            if not self.check(TokenType.RPAREN):
                args.append(self.parse_pipeline())
                while self.check(TokenType.COMMA, TokenType.SEMICOLON):
                    self.advance()
                    args.append(self.parse_pipeline())
            self.expect(TokenType.RPAREN, f"to close arguments of {name.value}")
        return Function(name.value, tuple(args), self.span_from(start))

    def parse_array(self) -> Expr:
        start = self.advance().span.start
        elements: List[Expr] = []
        if not self.check(TokenType.RBRACKET):
            elements.append(self.parse_pipeline())
            while self.check(TokenType.COMMA):
                self.advance()
                elements.append(self.parse_pipeline())
        self.expect(TokenType.RBRACKET, "to close '['")
        return Array(tuple(elements), self.span_from(start))

    def parse_object(self) -> Expr:
        start = self.advance().span.start
        pairs = []
        while not self.check(TokenType.RBRACE):
            key_token = self.current
            if key_token.type == TokenType.STRING:
                key = key_token.value
            elif key_token.type == TokenType.IDENT or key_token.type.value == key_token.value:
                if not str(key_token.value).isidentifier():
                    raise self.error(f"expected object key, found {key_token.describe()}", key_token.span)
                key = key_token.value
            else:
                raise self.error(f"expected object key, found {key_token.describe()}", key_token.span)
            self.advance()

            if self.check(TokenType.COLON):
                self.advance()
                value = self.parse_pipeline()
            else:
                value = Property(key, key_token.span)
            pairs.append((key, value))

            if not self.check(TokenType.COMMA):
                break
            self.advance()

        self.expect(TokenType.RBRACE, "to close '{'")
        return Object(tuple(pairs), self.span_from(start))

    def parse_conditional(self) -> Expr:
        start = self.advance().span.start
        condition = self.parse_pipeline()
        self.expect(TokenType.THEN, "after condition")
        then_branch = self.parse_pipeline()

        else_branch = None
        if self.check(TokenType.ELIF):
            else_branch = self.parse_conditional()
            return Conditional(condition, then_branch, else_branch, self.span_from(start))
        if self.check(TokenType.ELSE):
            self.advance()
            else_branch = self.parse_pipeline()
        if self.check(TokenType.END):
            self.advance()
        return Conditional(condition, then_branch, else_branch, self.span_from(start))

    # -------------------------------------------------------------------------
    # Brackets
    # -------------------------------------------------------------------------

    def parse_index_bracket(self) -> IndexOp:
        bracket = self.current
        raw, span = self.lexer.scan_bracket(bracket.span.end)
        self.prev_end = span.end + 1
        index = self._parse_index(raw.strip())
        if index is None:
            raise self.error(f"expected an index or slice, found '{raw.strip()}'",
                             Span(bracket.span.start, span.end + 1))
        self.current = self.lexer.next_token()
        return index

    @staticmethod
    def _parse_index(text: str) -> Optional[IndexOp]:
        if not text:
            return IterateIndex()
        if _INT.match(text):
            return SingleIndex(int(text))
        match = _SLICE.match(text)
        if match:
            start, end = match.group('start'), match.group('end')
            return SliceIndex(int(start) if start is not None else None,
                              int(end) if end is not None else None)
        return None

    def classify_bracket(self, raw: str, span: Span, kind: ElementKind):
        """Turn raw selector bracket content into a Filter or IndexOp."""
        text = raw.strip()
        index = self._parse_index(text)
        if index is not None:
            return index
        if _INDEX_LIKE.match(text):
            raise self.error(f"malformed index '{text}'", span)

        if text[0] in "\"'":
            try:
                value, end = read_string(text, 0)
            except ParseError as e:
                raise self.error(e.message, span)
            if end != len(text):
                raise self.error("unexpected text after quoted filter", span)
            return TextFilter(value, exact=True, span=span)

        if text.startswith('/'):
            if len(text) < 2 or not text.endswith('/') or text.endswith('\\/'):
                raise self.error("unterminated regex", span)
            pattern = text[1:-1].replace('\\/', '/')
            if not pattern:
                raise self.error("empty regex", span)
            return RegexFilter(pattern, span=span)

        if kind == ElementKind.LINK and text.lower() in LINK_TYPES:
            return TypeFilter(text.lower(), span=span)
        if kind == ElementKind.CODE and text.lower() in KNOWN_LANGUAGES:
            return TypeFilter(text.lower(), span=span)
        return TextFilter(text, exact=False, span=span)


def parse(query: str) -> Query:
    """
    Parse a query string.

    Raises:
        ParseError: on malformed syntax, with a span into `query`
    """
    result = Parser(query).parse_query()
    logger.debug(f"Parsed query {query!r} into {len(result.expressions)} pipeline(s)")
    return result
