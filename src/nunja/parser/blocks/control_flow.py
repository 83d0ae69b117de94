"""Control flow block parsing: for loops (sync and async) and if chains.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NoReturn

from nunja import nodes
from nunja._types import Token, TokenType

if TYPE_CHECKING:
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser.tokens import TokenExpr

# Loop tag -> (node type, closing tag)
_LOOP_TAGS = {
    "for": ("For", "endfor"),
    "asyncEach": ("AsyncEach", "endeach"),
    "asyncAll": ("AsyncAll", "endall"),
}


class ControlFlowBlockParsingMixin:
    """Mixin for ``for``/``asyncEach``/``asyncAll`` and ``if``."""

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
        def parse_tuple(self, *args: Any, **kwargs: Any) -> Node: ...
        def parse_assign_target(self, *args: Any, **kwargs: Any) -> Node: ...

    def parse_for(self) -> Node:
        """Parse a loop; all three loop tags share one grammar::

            {% for target in iter [if test] [recursive] %} body
            [{% else %} else_] {% endfor %}
        """
        start = self._advance()
        if start.value not in _LOOP_TAGS:
            self.fail(f"expected a loop tag, got {start.value!r}", token=start)
        node_type, end_tag = _LOOP_TAGS[start.value]

        target = self.parse_assign_target(extra_end_rules=[(TokenType.NAME, "in")])
        self._expect(TokenType.NAME, "in")
        iter_ = self.parse_tuple(
            with_condexpr=False, extra_end_rules=[(TokenType.NAME, "recursive")]
        )
        test = None
        if self._skip_if(TokenType.NAME, "if"):
            test = self.parse_expression()
        recursive = self._skip_if(TokenType.NAME, "recursive")
        body = self.parse_statements([(TokenType.NAME, end_tag), (TokenType.NAME, "else")])
        if self._advance().value == end_tag:
            else_: list[Node] = []
        else:
            else_ = self.parse_statements([(TokenType.NAME, end_tag)], drop_needle=True)
        node_class = getattr(nodes, node_type)
        return node_class(target, iter_, body, else_, test, recursive, loc=self._loc(start))

    def parse_if(self) -> Node:
        """Parse ``if``; each ``elif`` becomes an ``If`` in ``result.elif_``."""
        start = self._advance()
        result = node = nodes.If(None, [], loc=None)
        branch_start = start
        while True:
            node.test = self.parse_tuple(with_condexpr=False)
            node.body = self.parse_statements(
                [(TokenType.NAME, "elif"), (TokenType.NAME, "else"), (TokenType.NAME, "endif")]
            )
            node.loc = self._loc(branch_start)
            token = self._advance()
            if token.test(TokenType.NAME, "elif"):
                branch_start = token
                node = nodes.If(None, [])
                result.elif_.append(node)
                continue
            if token.test(TokenType.NAME, "else"):
                result.else_ = self.parse_statements([(TokenType.NAME, "endif")], drop_needle=True)
            break
        result.loc = self._loc(start)
        return result
