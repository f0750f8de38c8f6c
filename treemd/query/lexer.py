"""
Tokenizer for the tql query language.

Tokens are produced on demand from a position, so the parser can switch
to raw scanning for selector brackets: the content of `.h2[...]` is not
tokenized, it is read verbatim up to the matching `]` and classified by
the parser (index, slice, exact text, regex or bare words).
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Tuple

from .ast import Span
from .errors import ParseError


class TokenType(Enum):
    DOT = "."
    IDENT = "identifier"
    STRING = "string"
    NUMBER = "number"
    PIPE = "|"
    COMMA = ","
    SEMICOLON = ";"
    COLON = ":"
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"
    GT = ">"
    GTGT = ">>"
    LT = "<"
    LE = "<="
    GE = ">="
    EQ = "=="
    NE = "!="
    PLUS = "+"
    MINUS = "-"
    TILDE = "~"
    STAR = "*"
    SLASH = "/"
    SLASHSLASH = "//"
    PERCENT = "%"
    BANG = "!"
    AND = "and"
    OR = "or"
    IF = "if"
    THEN = "then"
    ELIF = "elif"
    ELSE = "else"
    END = "end"
    TRUE = "true"
    FALSE = "false"
    NULL = "null"
    EOF = "end of query"


KEYWORDS = {
    t.value: t for t in (
        TokenType.AND, TokenType.OR, TokenType.IF, TokenType.THEN,
        TokenType.ELIF, TokenType.ELSE, TokenType.END,
        TokenType.TRUE, TokenType.FALSE, TokenType.NULL,
    )
}

# Longest operators first
OPERATORS = sorted(
    (t for t in TokenType if not t.value[0].isalnum() and t.value != "end of query"),
    key=lambda t: -len(t.value),
)

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")

_ESCAPES = {
    'n': "\n",
    't': "\t",
    'r': "\r",
    '0': "\0",
    '\\': "\\",
    '"': '"',
    "'": "'",
    '/': "/",
}


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    span: Span

    def describe(self) -> str:
        if self.type == TokenType.EOF:
            return "end of query"
        if self.type == TokenType.STRING:
            return f'"{self.value}"'
        return f"'{self.value}'"


class Lexer:
    """
    On-demand tokenizer.

    `next_token()` lexes one token from `pos`; `peek_tokens()` looks
    ahead without consuming; `scan_bracket()` reads raw bracket content.
    """

    def __init__(self, source: str):
        self.source = source
        self.pos = 0

    def error(self, message: str, start: int, end: int) -> ParseError:
        return ParseError(message, Span(start, end), self.source)

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.source) and self.source[self.pos].isspace():
            self.pos += 1

    def next_token(self) -> Token:
        self._skip_whitespace()
        src = self.source
        start = self.pos
        if start >= len(src):
            return Token(TokenType.EOF, None, Span(start, start))

        char = src[start]

        if char in "\"'":
            value, end = read_string(src, start)
            self.pos = end
            return Token(TokenType.STRING, value, Span(start, end))

        match = _NUMBER.match(src, start)
        if match:
            self.pos = match.end()
            return Token(TokenType.NUMBER, float(match.group(0)), Span(start, self.pos))

        match = _IDENT.match(src, start)
        if match:
            word = match.group(0)
            self.pos = match.end()
            token_type = KEYWORDS.get(word, TokenType.IDENT)
            return Token(token_type, word, Span(start, self.pos))

        for op in OPERATORS:
            if src.startswith(op.value, start):
                self.pos = start + len(op.value)
                return Token(op, op.value, Span(start, self.pos))

        raise self.error(f"unexpected character '{char}'", start, start + 1)

    def peek_tokens(self, count: int) -> List[Token]:
        """Lex up to `count` tokens ahead without moving."""
        saved = self.pos
        try:
            tokens = []
            for _ in range(count):
                token = self.next_token()
                tokens.append(token)
                if token.type == TokenType.EOF:
                    break
            return tokens
        finally:
            self.pos = saved

    def scan_bracket(self, start: int) -> Tuple[str, Span]:
        """
        Read raw bracket content starting just after a `[`.

        Quoted strings and a leading `/regex/` may contain `]`. Nested
        brackets are balanced. Leaves `pos` after the closing `]`.

        Returns:
            (raw content, span of the content)
        """
        src = self.source
        i = start
        depth = 0
        quote = None
        regex = False

        while i < len(src):
            char = src[i]
            if quote or regex:
                closer = quote or '/'
                if char == '\\':
                    i += 2
                    continue
                if char == closer:
                    quote = None
                    regex = False
            elif char in "\"'":
                quote = char
            elif char == '/' and not src[start:i].strip():
                regex = True
            elif char == '[':
                depth += 1
            elif char == ']':
                if depth == 0:
                    self.pos = i + 1
                    return src[start:i], Span(start, i)
                depth -= 1
            i += 1

        if quote:
            raise self.error("unterminated string", start, len(src))
        if regex:
            raise self.error("unterminated regex", start, len(src))
        raise self.error("unterminated bracket, expected ']'", start - 1, len(src))


def read_string(src: str, start: int) -> Tuple[str, int]:
    """
    Read a quoted string literal starting at `start`.

    Returns:
        (decoded value, offset just past the closing quote)
    """
    quote = src[start]
    i = start + 1
    out = []
    while i < len(src):
        char = src[i]
        if char == quote:
            return "".join(out), i + 1
        if char == '\\':
            if i + 1 >= len(src):
                break
            esc = src[i + 1]
            if esc == 'u':
                digits = src[i + 2:i + 6]
                if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                    raise ParseError("invalid unicode escape", Span(i, i + 2 + len(digits)), src)
                out.append(chr(int(digits, 16)))
                i += 6
                continue
            if esc not in _ESCAPES:
                raise ParseError(f"invalid escape '\\{esc}'", Span(i, i + 2), src)
            out.append(_ESCAPES[esc])
            i += 2
            continue
        out.append(char)
        i += 1
    raise ParseError("unterminated string", Span(start, len(src)), src)
