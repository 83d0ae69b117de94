"""Extensions: extra template tags and token stream rewriting.

An extension is a class taking the environment. It may:

    - claim tag names in ``tags``; the parser hands ``{% tag ... %}`` to
      its `Extension.parse` with the tag name as the current token
    - rewrite the source in `Extension.preprocess`
    - rewrite the token list in `Extension.filter_stream`

Extensions are loaded by class or import path:

    >>> env = Environment(extensions=["nunja.ext.do", "nunja.ext.loopcontrols"])
    >>> env.from_string("{% set xs = [] %}{% do xs.append(1) %}{{ xs }}").render()
    '[1]'

Compiled code reaches the extension instance through
``environment.extensions[identifier]``; `Extension.attr` and
`Extension.call_method` build the nodes for that.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, ClassVar

from nunja import nodes

if TYPE_CHECKING:
    from nunja._types import Token
    from nunja.environment import Environment
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser import Parser


class Extension:
    """Base class for extensions.

    Attributes:
        tags: Tag names this extension parses
        priority: Lower runs earlier in `preprocess` and `filter_stream`
        identifier: ``module.ClassName``, the key in `Environment.extensions`
    """

    tags: ClassVar[set[str]] = set()
    priority = 100
    identifier: ClassVar[str]

    def __init_subclass__(cls) -> None:
        cls.identifier = f"{cls.__module__}.{cls.__name__}"

    def __init__(self, environment: Environment):
        self.environment = environment

    def preprocess(self, source: str, name: str | None, filename: str | None = None) -> str:
        """Rewrite the template source before lexing."""
        return source

    def filter_stream(self, stream: Iterable[Token]) -> Iterable[Token]:
        """Rewrite the token list between lexing and parsing."""
        return stream

    def parse(self, parser: Parser) -> Node | list[Node]:
        """Parse one of ``tags``; the tag name token is current."""
        raise NotImplementedError()

    def attr(self, name: str, loc: SourceLocation | None = None) -> Node:
        """Expression reading attribute ``name`` of this extension at render time.

        Example:
            >>> self.attr("_render")  # environment.extensions[identifier]._render
        """
        return nodes.ExtensionAttribute(self.identifier, name, loc=loc)

    def call_method(
        self,
        name: str,
        args: list[Node] | None = None,
        kwargs: list[Node] | None = None,
        dyn_args: Node | None = None,
        dyn_kwargs: Node | None = None,
        loc: SourceLocation | None = None,
    ) -> Node:
        """Expression calling method ``name`` of this extension."""
        if args is None:
            args = []
        if kwargs is None:
            kwargs = []
        return nodes.Call(self.attr(name, loc), args, kwargs, dyn_args, dyn_kwargs, loc=loc)


class ExprStmtExtension(Extension):
    """``{% do expr %}``: evaluate an expression and discard the result."""

    tags = {"do"}

    def parse(self, parser: Parser) -> Node:
        token = next(parser.stream)
        node = parser.parse_tuple()
        return nodes.ExprStmt(node, loc=parser._loc(token))


class LoopControlExtension(Extension):
    """``{% break %}`` and ``{% continue %}`` inside loops."""

    tags = {"break", "continue"}

    def parse(self, parser: Parser) -> Node:
        token = next(parser.stream)
        if token.value == "break":
            return nodes.Break(loc=parser._loc(token))
        return nodes.Continue(loc=parser._loc(token))


#: nicer import names
do = ExprStmtExtension
loopcontrols = LoopControlExtension
