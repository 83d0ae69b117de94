"""Token stream and navigation helpers for the nunja parser.

`TokenStream` is a pull cursor over the lexer's token list with one token of
lookahead (`look`) and pushback (`push`). It never advances past the final
EOF token, so parsers can always inspect ``current``.

`TokenNavigationMixin` gives parser mixins short spellings for the stream
operations they use most.

Example:
    >>> stream = TokenStream(tokenize("{{ a.b }}"))
    >>> stream.expect(TokenType.VARIABLE_BEGIN).type
    <TokenType.VARIABLE_BEGIN: 'variable_begin'>
    >>> stream.current.value, stream.look().type
    ('a', <TokenType.DOT: 'dot'>)

"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

from nunja._types import Token, TokenType, describe_token_type
from nunja.environment.exceptions import ErrorCode, TemplateSyntaxError

# A token expectation: a bare type, or a (type, value) pair such as
# ``(TokenType.NAME, "endfor")``.
TokenExpr = TokenType | tuple[TokenType, Any]


def describe_token_expr(expr: TokenExpr) -> str:
    """Readable form of a token expectation for error messages."""
    if isinstance(expr, tuple):
        token_type, value = expr
        if token_type is TokenType.NAME:
            return str(value)
        return describe_token_type(token_type)
    return describe_token_type(expr)


class TokenStream:
    """Cursor over a token list.

    Attributes:
        name: Template name for error messages
        filename: Template filename for error messages
        source: Template source for error snippets
        last: Most recently consumed token (None before the first `next`)
    """

    __slots__ = ("_tokens", "_pos", "name", "filename", "source", "last")

    def __init__(
        self,
        tokens: Iterable[Token],
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
    ):
        self._tokens = list(tokens)
        if not self._tokens or self._tokens[-1].type is not TokenType.EOF:
            end = self._tokens[-1] if self._tokens else None
            self._tokens.append(
                Token(
                    TokenType.EOF,
                    "",
                    end.lineno if end else 1,
                    end.col_offset if end else 0,
                    end.end_pos if end else 0,
                )
            )
        self._pos = 0
        self.name = name
        self.filename = filename
        self.source = source
        self.last: Token | None = None

    def __iter__(self) -> Iterator[Token]:
        return self

    def __next__(self) -> Token:
        """Consume and return the current token; EOF is never consumed twice."""
        token = self._tokens[self._pos]
        if token.type is TokenType.EOF:
            return token
        self._pos += 1
        self.last = token
        return token

    def __bool__(self) -> bool:
        return self._tokens[self._pos].type is not TokenType.EOF

    @property
    def eos(self) -> bool:
        """True at the end of the stream."""
        return not self

    @property
    def current(self) -> Token:
        return self._tokens[self._pos]

    def look(self, offset: int = 1) -> Token:
        """Token ``offset`` positions after the current one (EOF past the end)."""
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def push(self, token: Token) -> None:
        """Push ``token`` back so that it becomes the current token."""
        self._tokens.insert(self._pos, token)

    def skip(self, n: int = 1) -> None:
        for _ in range(n):
            next(self)

    def next_if(self, token_type: TokenType, value: Any = None) -> Token | None:
        """Consume the current token if it matches, else return None."""
        if self.current.test(token_type, value):
            return next(self)
        return None

    def skip_if(self, token_type: TokenType, value: Any = None) -> bool:
        return self.next_if(token_type, value) is not None

    def expect(self, token_type: TokenType, value: Any = None) -> Token:
        """Consume the current token, raising TemplateSyntaxError on mismatch."""
        token = self.current
        if not token.test(token_type, value):
            wanted = describe_token_expr((token_type, value) if value is not None else token_type)
            if token.type is TokenType.EOF:
                message = f"Unexpected end of template, expected {wanted!r}."
                code = ErrorCode.UNCLOSED_BLOCK
            else:
                message = f"expected token {wanted!r}, got {token.describe()!r}"
                code = ErrorCode.UNEXPECTED_TOKEN
            raise TemplateSyntaxError(
                message,
                token.lineno,
                self.name,
                self.filename,
                self.source,
                col_offset=token.col_offset,
                code=code,
            )
        return next(self)


class TokenNavigationMixin:
    """Short aliases over ``self.stream`` used throughout the parser mixins."""

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        stream: TokenStream

    @property
    def _current(self) -> Token:
        return self.stream.current

    def _peek(self, offset: int = 1) -> Token:
        return self.stream.look(offset)

    def _advance(self) -> Token:
        return next(self.stream)

    def _expect(self, token_type: TokenType, value: Any = None) -> Token:
        return self.stream.expect(token_type, value)

    def _match(self, *types: TokenType) -> bool:
        return self.stream.current.type in types

    def _skip_if(self, token_type: TokenType, value: Any = None) -> bool:
        return self.stream.skip_if(token_type, value)

    def _at_name(self, *values: str) -> bool:
        """True if the current token is a NAME with one of ``values``."""
        token = self.stream.current
        return token.type is TokenType.NAME and token.value in values
