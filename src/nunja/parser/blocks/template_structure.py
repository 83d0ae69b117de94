"""Template structure parsing: block, extends, include, import and from.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NoReturn

from nunja import nodes
from nunja._types import Token, TokenType
from nunja.environment.exceptions import ErrorCode, TemplateAssertionError

if TYPE_CHECKING:
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser.tokens import TokenExpr


class TemplateStructureBlockParsingMixin:
    """Mixin for inheritance and template composition tags."""

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:

        @property
        def _current(self) -> Token: ...
        def _peek(self, offset: int = 1) -> Token: ...
        def _advance(self) -> Token: ...
        def _expect(self, token_type: TokenType, value: Any = None) -> Token: ...
        def _skip_if(self, token_type: TokenType, value: Any = None) -> bool: ...
        def _at_name(self, *values: str) -> bool: ...
        def _loc(self, start: Token, end: Token | None = None) -> SourceLocation: ...
        def fail(self, message: str, lineno: int | None = None, *args: Any, **kwargs: Any) -> NoReturn: ...
        def parse_statements(
            self, end_tokens: Sequence[TokenExpr], drop_needle: bool = False
        ) -> list[Node]: ...
        def parse_expression(self, with_condexpr: bool = True) -> Node: ...
        def parse_assign_target(self, *args: Any, **kwargs: Any) -> Node: ...

    def parse_block(self) -> Node:
        """``{% block name [scoped] [required] %}...{% endblock [name] %}``."""
        start = self._advance()
        name = self._expect(TokenType.NAME).value
        scoped = self._skip_if(TokenType.NAME, "scoped")
        required = self._skip_if(TokenType.NAME, "required")

        # "{% block foo-bar %}" lexes as name, sub, name
        if self._current.type is TokenType.SUB:
            self.fail(
                "Block names have to be valid Python identifiers and may not "
                "contain hyphens, use an underscore instead.",
                code=ErrorCode.INVALID_EXPRESSION,
            )

        body = self.parse_statements([(TokenType.NAME, "endblock")], drop_needle=True)

        # Required blocks may only hold comments and whitespace.
        if required:
            for node in body:
                if node.type != "Output" or any(
                    child.type != "TemplateData" or not child.data.isspace()
                    for child in node.nodes
                ):
                    self.fail("Required blocks can only contain comments or whitespace", token=start)

        self._skip_if(TokenType.NAME, name)
        return nodes.Block(name, body, scoped, required, loc=self._loc(start))

    def parse_extends(self) -> Node:
        start = self._advance()
        template = self.parse_expression()
        return nodes.Extends(template, loc=self._loc(start))

    def _parse_context_modifier(self) -> bool | None:
        """Consume ``with context`` / ``without context`` if present."""
        if self._at_name("with", "without") and self._peek().test(TokenType.NAME, "context"):
            with_context = self._advance().value == "with"
            self._advance()
            return with_context
        return None

    def parse_include(self) -> Node:
        """``{% include expr [ignore missing] [with|without context] %}``."""
        start = self._advance()
        template = self.parse_expression()
        ignore_missing = False
        if self._at_name("ignore") and self._peek().test(TokenType.NAME, "missing"):
            ignore_missing = True
            self._advance()
            self._advance()
        with_context = self._parse_context_modifier()
        return nodes.Include(
            template,
            True if with_context is None else with_context,
            ignore_missing,
            loc=self._loc(start),
        )

    def parse_import(self) -> Node:
        """``{% import expr as name [with|without context] %}``."""
        start = self._advance()
        template = self.parse_expression()
        self._expect(TokenType.NAME, "as")
        target = self.parse_assign_target(name_only=True).name
        with_context = self._parse_context_modifier()
        return nodes.Import(template, target, bool(with_context), loc=self._loc(start))

    def parse_from(self) -> Node:
        """``{% from expr import a, b as c [with|without context] %}``."""
        start = self._advance()
        template = self.parse_expression()
        self._expect(TokenType.NAME, "import")
        names: list[str | list[str]] = []
        with_context: bool | None = None

        while True:
            if names:
                self._expect(TokenType.COMMA)
            if self._current.type is not TokenType.NAME:
                self._expect(TokenType.NAME)
            with_context = self._parse_context_modifier()
            if with_context is not None:
                break
            name_token = self._current
            target = self.parse_assign_target(name_only=True)
            if target.name.startswith("_"):
                self.fail(
                    "names starting with an underline can not be imported",
                    exc=TemplateAssertionError,
                    token=name_token,
                )
            if self._skip_if(TokenType.NAME, "as"):
                alias = self.parse_assign_target(name_only=True)
                names.append([target.name, alias.name])
            else:
                names.append(target.name)
            with_context = self._parse_context_modifier()
            if with_context is not None or self._current.type is not TokenType.COMMA:
                break

        return nodes.FromImport(template, names, bool(with_context), loc=self._loc(start))
