"""Simple statement parsing: set, print, with and autoescape.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from nunja import nodes
from nunja._types import Token, TokenType

if TYPE_CHECKING:
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser.tokens import TokenExpr


class StatementParsingMixin:
    """Mixin for statements that are not control flow or template structure."""

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
        def parse_statements(
            self, end_tokens: Sequence[TokenExpr], drop_needle: bool = False
        ) -> list[Node]: ...
        def parse_expression(self, with_condexpr: bool = True) -> Node: ...
        def parse_tuple(self, *args: Any, **kwargs: Any) -> Node: ...
        def parse_assign_target(self, *args: Any, **kwargs: Any) -> Node: ...
        def parse_filter(self, node: Node | None, start_inline: bool = False) -> Node | None: ...

    def parse_set(self) -> Node:
        """``{% set x = expr %}`` or ``{% set x | filter %}...{% endset %}``."""
        start = self._advance()
        target = self.parse_assign_target(with_namespace=True)
        if self._skip_if(TokenType.ASSIGN):
            expr = self.parse_tuple()
            return nodes.Assign(target, expr, loc=self._loc(start))
        filter_node = self.parse_filter(None)
        body = self.parse_statements([(TokenType.NAME, "endset")], drop_needle=True)
        return nodes.AssignBlock(target, filter_node, body, loc=self._loc(start))

    def parse_print(self) -> Node:
        start = self._advance()
        items: list[Node] = []
        while self._current.type is not TokenType.BLOCK_END:
            if items:
                self._expect(TokenType.COMMA)
            items.append(self.parse_expression())
        return nodes.Output(items, loc=self._loc(start))

    def parse_with(self) -> Node:
        """``{% with a = 1, b = a + 1 %}...{% endwith %}``."""
        start = self._advance()
        targets: list[Node] = []
        values: list[Node] = []
        while self._current.type is not TokenType.BLOCK_END:
            if targets:
                self._expect(TokenType.COMMA)
            target = self.parse_assign_target()
            target.set_ctx("param")
            targets.append(target)
            self._expect(TokenType.ASSIGN)
            values.append(self.parse_expression())
        body = self.parse_statements([(TokenType.NAME, "endwith")], drop_needle=True)
        return nodes.With(targets, values, body, loc=self._loc(start))

    def parse_autoescape(self) -> Node:
        """``{% autoescape expr %}`` switches escaping for its body."""
        start = self._advance()
        value = self.parse_expression()
        options = [nodes.Keyword("autoescape", value, loc=value.loc)]
        body = self.parse_statements([(TokenType.NAME, "endautoescape")], drop_needle=True)
        loc = self._loc(start)
        modifier = nodes.ScopedEvalContextModifier(options, body, loc=loc)
        return nodes.Scope([modifier], loc=loc)
