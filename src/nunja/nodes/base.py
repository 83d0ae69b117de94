"""Base node class and source locations for the nunja AST.

Concrete node classes are not written by hand: `nunja.nodes.registry`
generates one subclass of `Node` per registered, buildable node type. This
module only holds the behavior every node shares.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from nunja.nodes.registry import NodeTypeDef


@dataclass(frozen=True, slots=True)
class Position:
    """A point in template source (``line`` >= 1, ``column`` >= 0)."""

    line: int
    column: int


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Span of template source a node was parsed from."""

    start: Position
    end: Position
    source: str | None = None


class Node:
    """Base class for all AST nodes.

    Nodes are plain tagged records: ``type`` names the registered node type
    and ``fields`` lists its field names in declaration order. Nodes are
    mutable; tree rewriting passes (``Path.replace``, ``set_ctx``) update them
    in place.
    """

    __slots__ = ("loc",)

    type: ClassVar[str] = "Node"
    fields: ClassVar[tuple[str, ...]] = ()
    typedef: ClassVar[NodeTypeDef | None] = None

    loc: SourceLocation | None

    @property
    def lineno(self) -> int:
        """First source line of the node, 1 when unknown."""
        return self.loc.start.line if self.loc is not None else 1

    def iter_fields(
        self,
        exclude: tuple[str, ...] | None = None,
        only: tuple[str, ...] | None = None,
    ) -> Iterator[tuple[str, Any]]:
        """Yield ``(name, value)`` for every field, honoring exclude/only."""
        for name in self.fields:
            if (exclude is None and only is None) or (
                exclude is not None and name not in exclude
            ) or (only is not None and name in only):
                yield name, getattr(self, name, None)

    def iter_child_nodes(
        self,
        exclude: tuple[str, ...] | None = None,
        only: tuple[str, ...] | None = None,
    ) -> Iterator[Node]:
        """Yield direct child nodes, flattening list-valued fields."""
        for _, item in self.iter_fields(exclude, only):
            if isinstance(item, list):
                for child in item:
                    if isinstance(child, Node):
                        yield child
            elif isinstance(item, Node):
                yield item

    def find(self, node_type: type[Node]) -> Node | None:
        """Return the first descendant of the given class, depth first."""
        for result in self.find_all(node_type):
            return result
        return None

    def find_all(self, node_type: type[Node] | tuple[type[Node], ...]) -> Iterator[Node]:
        """Yield all descendants of the given class(es), depth first."""
        for child in self.iter_child_nodes():
            if isinstance(child, node_type):
                yield child
            yield from child.find_all(node_type)

    def set_ctx(self, ctx: str) -> Node:
        """Set the ``ctx`` of this node and every descendant that has one.

        The parser builds every name in load context; assignment targets are
        switched to ``store`` (or ``param``) afterwards.
        """
        todo: list[Node] = [self]
        while todo:
            node = todo.pop()
            if "ctx" in node.fields:
                node.ctx = ctx  # type: ignore[attr-defined]
            todo.extend(node.iter_child_nodes())
        return self

    def set_loc(self, loc: SourceLocation | None, override: bool = False) -> Node:
        """Attach a location to this node and descendants missing one."""
        todo: list[Node] = [self]
        while todo:
            node = todo.pop()
            if node.loc is None or override:
                node.loc = loc
            todo.extend(node.iter_child_nodes())
        return self

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return tuple(self.iter_fields()) == tuple(other.iter_fields())  # type: ignore[attr-defined]

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        args = ", ".join(f"{name}={value!r}" for name, value in self.iter_fields())
        return f"{self.type}({args})"
