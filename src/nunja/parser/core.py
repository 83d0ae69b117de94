"""Parser core: statement dispatch, body parsing and error reporting.

The `Parser` class combines the token navigation, expression, statement and
block mixins. It owns the token stream, the extension tag table and the two
stacks used for "unexpected end of template" diagnostics.

Grammar sketch::

    template   := (data | '{{' tuple '}}' | '{%' statement '%}')*
    statement  := NAME ...            # dispatched on the tag name

Unknown tag names are looked up in the extension table before failing.

Example:
    >>> from nunja.parser import parse
    >>> template = parse("Hello {{ name }}!")
    >>> template.body[0].type
    'Output'

"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, NoReturn

from nunja import nodes
from nunja._types import Token, TokenType
from nunja.environment.exceptions import ErrorCode, TemplateSyntaxError
from nunja.nodes.base import Node, Position, SourceLocation
from nunja.nodes.builders import BUILDERS
from nunja.parser.blocks import (
    ControlFlowBlockParsingMixin,
    FunctionBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
)
from nunja.parser.expressions import ExpressionParsingMixin
from nunja.parser.statements import StatementParsingMixin
from nunja.parser.tokens import TokenExpr, TokenNavigationMixin, TokenStream, describe_token_expr

if TYPE_CHECKING:
    from nunja.ext import Extension
    from nunja.lexer import Lexer

# Tag name -> parser method for the built-in statements.
_STATEMENTS: dict[str, str] = {
    "for": "parse_for",
    "asyncEach": "parse_for",
    "asyncAll": "parse_for",
    "if": "parse_if",
    "block": "parse_block",
    "extends": "parse_extends",
    "print": "parse_print",
    "macro": "parse_macro",
    "include": "parse_include",
    "from": "parse_from",
    "import": "parse_import",
    "set": "parse_set",
    "with": "parse_with",
    "autoescape": "parse_autoescape",
    "call": "parse_call_block",
    "filter": "parse_filter_block",
}

ExtensionParser = Callable[["Parser"], "Node | list[Node]"]


class Parser(
    TokenNavigationMixin,
    ExpressionParsingMixin,
    StatementParsingMixin,
    ControlFlowBlockParsingMixin,
    FunctionBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
):
    """Recursive-descent parser producing a ``Template`` node.

    Attributes:
        stream: Token cursor
        name: Template name (error messages, node locations)
        extensions: Tag name -> extension ``parse`` callable
        builders: Validating node builders, for extensions
        lexer: Lexer that produced the tokens, for extensions

    Parsing stops at the first error; a `TemplateSyntaxError` carries the
    line and column of the offending token.
    """

    def __init__(
        self,
        tokens: Iterable[Token] | TokenStream,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        extensions: Iterable[Extension] = (),
        lexer: Lexer | None = None,
    ):
        if isinstance(tokens, TokenStream):
            self.stream = tokens
        else:
            self.stream = TokenStream(tokens, name, filename, source)
        self.name = name
        self.filename = filename
        self.source = source
        self.lexer = lexer
        self.builders = BUILDERS
        self.extensions: dict[str, ExtensionParser] = {}
        for extension in extensions:
            for tag in extension.tags:
                self.extensions[tag] = extension.parse
        self._last_identifier = 0
        self._tag_stack: list[str] = []
        self._end_token_stack: list[Sequence[TokenExpr]] = []

    # ── errors ──────────────────────────────────────────────────────────────

    def fail(
        self,
        message: str,
        lineno: int | None = None,
        exc: type[TemplateSyntaxError] = TemplateSyntaxError,
        *,
        token: Token | None = None,
        code: ErrorCode | None = None,
    ) -> NoReturn:
        """Raise ``exc`` located at ``token`` (or ``lineno``, or the current token)."""
        if token is None and lineno is None:
            token = self._current
        col = token.col_offset if token is not None else None
        if lineno is None and token is not None:
            lineno = token.lineno
        raise exc(
            message,
            lineno,
            self.name,
            self.filename,
            self.source,
            col_offset=col,
            code=code,
        )

    def _fail_ut_eof(
        self,
        name: str | None,
        end_token_stack: list[Sequence[TokenExpr]],
        token: Token,
    ) -> NoReturn:
        expected: set[str] = set()
        for exprs in end_token_stack:
            expected.update(describe_token_expr(expr) for expr in exprs)
        currently_looking: str | None = None
        if end_token_stack:
            currently_looking = " or ".join(
                repr(describe_token_expr(expr)) for expr in end_token_stack[-1]
            )

        if name is None:
            message = ["Unexpected end of template."]
            code = ErrorCode.UNCLOSED_BLOCK
        else:
            message = [f"Unknown tag {name!r}."]
            code = ErrorCode.UNKNOWN_TAG

        if currently_looking:
            if name is not None and name in expected:
                message.append(
                    "You probably made a nesting mistake. This tag is expected, "
                    f"but the parser is currently looking for {currently_looking}."
                )
            else:
                message.append(f"The parser was looking for the following tags: {currently_looking}.")

        if self._tag_stack:
            message.append(
                f"The innermost block that needs to be closed is {self._tag_stack[-1]!r}."
            )
        self.fail(" ".join(message), token=token, code=code)

    def fail_unknown_tag(self, name: str, token: Token | None = None) -> NoReturn:
        """Fail for an unknown tag, explaining which tags were expected."""
        self._fail_ut_eof(name, self._end_token_stack, token or self._current)

    def fail_eof(self, end_tokens: Sequence[TokenExpr] | None = None) -> NoReturn:
        """Fail for an unexpected end of template."""
        stack = list(self._end_token_stack)
        if end_tokens is not None:
            stack.append(end_tokens)
        self._fail_ut_eof(None, stack, self._current)

    # ── locations ───────────────────────────────────────────────────────────

    def _loc(self, start: Token, end: Token | None = None) -> SourceLocation:
        """Span from the first character of ``start`` to the end of ``end``.

        ``end`` defaults to the last consumed token. Line breaks inside the
        end token's raw text move the end position onto later lines.
        """
        if end is None:
            end = self.stream.last or start
        if end.pos < start.pos:
            end = start
        raw = end.raw
        newlines = raw.count("\n")
        if newlines:
            end_col = len(raw) - raw.rfind("\n") - 1
        else:
            end_col = end.col_offset + len(raw)
        return SourceLocation(
            Position(start.lineno, start.col_offset),
            Position(end.lineno + newlines, end_col),
            self.name,
        )

    def _span(self, first: Node, last: Node) -> SourceLocation | None:
        if first.loc is None or last.loc is None:
            return first.loc or last.loc
        return SourceLocation(first.loc.start, last.loc.end, self.name)

    def free_identifier(self, lineno: int | None = None) -> Node:
        """Return a fresh ``InternalName`` for extensions that need temporaries."""
        self._last_identifier += 1
        node = nodes.InternalName(f"fi{self._last_identifier}")
        if lineno is not None:
            node.loc = SourceLocation(Position(lineno, 0), Position(lineno, 0), self.name)
        return node

    # ── statements ──────────────────────────────────────────────────────────

    def parse_statement(self) -> Node | list[Node]:
        """Parse one ``{% tag ... %}`` statement (block begin already consumed)."""
        token = self._current
        if token.type is not TokenType.NAME:
            self.fail("tag name expected", token=token, code=ErrorCode.UNEXPECTED_TOKEN)
        self._tag_stack.append(token.value)
        pop_tag = True
        try:
            method = _STATEMENTS.get(token.value)
            if method is not None:
                return getattr(self, method)()
            extension = self.extensions.get(token.value)
            if extension is not None:
                return extension(self)
            # The unknown tag is not an open block; keep it out of the hint.
            self._tag_stack.pop()
            pop_tag = False
            self.fail_unknown_tag(token.value, token)
        finally:
            if pop_tag:
                self._tag_stack.pop()

    def parse_statements(
        self,
        end_tokens: Sequence[TokenExpr],
        drop_needle: bool = False,
    ) -> list[Node]:
        """Parse a statement body up to one of ``end_tokens``.

        The current token must be the end of the opening tag (a leading colon
        is accepted for line statements). With ``drop_needle`` the matched end
        tag name is consumed too.
        """
        self._skip_if(TokenType.COLON)
        self._expect(TokenType.BLOCK_END)
        result = self.subparse(end_tokens)
        if self._current.type is TokenType.EOF:
            self.fail_eof(end_tokens)
        if drop_needle:
            self._advance()
        return result

    def subparse(self, end_tokens: Sequence[TokenExpr] | None = None) -> list[Node]:
        """Parse template data, output and statements until an end tag or EOF."""
        body: list[Node] = []
        data_buffer: list[Node] = []

        if end_tokens is not None:
            self._end_token_stack.append(end_tokens)

        def flush_data() -> None:
            if data_buffer:
                output = nodes.Output(data_buffer[:])
                output.loc = self._span(data_buffer[0], data_buffer[-1])
                body.append(output)
                del data_buffer[:]

        try:
            while self.stream:
                token = self._current
                if token.type is TokenType.DATA:
                    if token.value:
                        data_buffer.append(
                            nodes.TemplateData(token.value, loc=self._loc(token, token))
                        )
                    self._advance()
                elif token.type is TokenType.VARIABLE_BEGIN:
                    self._advance()
                    data_buffer.append(self.parse_tuple(with_condexpr=True))
                    self._expect(TokenType.VARIABLE_END)
                elif token.type is TokenType.BLOCK_BEGIN:
                    flush_data()
                    self._advance()
                    if end_tokens is not None and self._current.test_any(*end_tokens):
                        return body
                    result = self.parse_statement()
                    if isinstance(result, list):
                        body.extend(result)
                    else:
                        body.append(result)
                    self._expect(TokenType.BLOCK_END)
                else:
                    self.fail(
                        f"unexpected {token.describe()!r}",
                        token=token,
                        code=ErrorCode.UNEXPECTED_TOKEN,
                    )
            flush_data()
        finally:
            if end_tokens is not None:
                self._end_token_stack.pop()
        return body

    def parse(self) -> Node:
        """Parse the whole token stream into a ``Template`` node."""
        start = self._current
        body = self.subparse()
        template = nodes.Template(body, loc=self._loc(start))
        return template


def parse(
    source: str,
    extensions: Iterable[Extension] = (),
    lexer_options: dict[str, Any] | None = None,
    name: str | None = None,
    filename: str | None = None,
) -> Node:
    """Tokenize and parse ``source`` without an Environment."""
    from nunja.lexer import Lexer

    lexer = Lexer(**(lexer_options or {}))
    extensions = list(extensions)
    tokens: Iterable[Token] = lexer.tokenize(source, name, filename)
    for extension in extensions:
        tokens = extension.filter_stream(tokens)
    parser = Parser(tokens, name, filename, source, extensions, lexer)
    return parser.parse()

