"""Function block parsing: macro, call and filter blocks.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NoReturn

from nunja import nodes
from nunja._types import Token, TokenType
from nunja.environment.exceptions import ErrorCode

if TYPE_CHECKING:
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser.tokens import TokenExpr


class FunctionBlockParsingMixin:
    """Mixin for ``{% macro %}``, ``{% call %}`` and ``{% filter %}``."""

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:

        @property
        def _current(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _expect(self, token_type: TokenType, value: Any = None) -> Token: ...
        def _skip_if(self, token_type: TokenType, value: Any = None) -> bool: ...
        def _loc(self, start: Token, end: Token | None = None) -> SourceLocation: ...
        def fail(self, message: str, lineno: int | None = None, *args: Any, **kwargs: Any) -> NoReturn: ...
        def parse_statements(
            self, end_tokens: Sequence[TokenExpr], drop_needle: bool = False
        ) -> list[Node]: ...
        def parse_expression(self, with_condexpr: bool = True) -> Node: ...
        def parse_assign_target(self, *args: Any, **kwargs: Any) -> Node: ...
        def parse_filter(
            self, node: Node | None, start_inline: bool = False, start: Token | None = None
        ) -> Node | None: ...

    def parse_signature(self) -> tuple[list[Node], list[Node]]:
        """Parse ``(a, b=1, c=2)`` into parameter names and trailing defaults."""
        args: list[Node] = []
        defaults: list[Node] = []
        self._expect(TokenType.LPAREN)
        while self._current.type is not TokenType.RPAREN:
            if args:
                self._expect(TokenType.COMMA)
            arg = self.parse_assign_target(name_only=True)
            arg.set_ctx("param")
            if self._skip_if(TokenType.ASSIGN):
                defaults.append(self.parse_expression())
            elif defaults:
                self.fail(
                    "non-default argument follows default argument",
                    code=ErrorCode.INVALID_EXPRESSION,
                )
            args.append(arg)
        self._expect(TokenType.RPAREN)
        return args, defaults

    def parse_macro(self) -> Node:
        start = self._advance()
        name = self.parse_assign_target(name_only=True).name
        args, defaults = self.parse_signature()
        body = self.parse_statements([(TokenType.NAME, "endmacro")], drop_needle=True)
        return nodes.Macro(name, args, defaults, body, loc=self._loc(start))

    def parse_call_block(self) -> Node:
        """``{% call(args) macro(...) %}body{% endcall %}``; body becomes ``caller``."""
        start = self._advance()
        if self._current.type is TokenType.LPAREN:
            args, defaults = self.parse_signature()
        else:
            args, defaults = [], []
        call_token = self._current
        call_node = self.parse_expression()
        if call_node.type != "Call":
            self.fail("Expected call", token=call_token, code=ErrorCode.INVALID_EXPRESSION)
        body = self.parse_statements([(TokenType.NAME, "endcall")], drop_needle=True)
        return nodes.CallBlock(call_node, args, defaults, body, loc=self._loc(start))

    def parse_filter_block(self) -> Node:
        """``{% filter upper|trim %}body{% endfilter %}``."""
        start = self._advance()
        filter_node = self.parse_filter(None, start_inline=True)
        body = self.parse_statements([(TokenType.NAME, "endfilter")], drop_needle=True)
        return nodes.FilterBlock(body, filter_node, loc=self._loc(start))
