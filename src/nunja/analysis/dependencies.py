"""Name and dependency scans used by the code generator.

Both scans stop at nested ``{% block %}`` boundaries: blocks are compiled
into their own functions and resolve their own dependencies.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from nunja.analysis.path import Path
from nunja.analysis.visitor import PathVisitor
from nunja.nodes.base import Node


class UndeclaredNameVisitor(PathVisitor):
    """Collects which of ``names`` are loaded; aborts once all are found."""

    def __init__(self, names: Iterable[str]):
        super().__init__()
        self.names = set(names)
        self.undeclared: set[str] = set()

    def visit_Name(self, path: Path, state: Any) -> bool:
        node = path.value
        if node.ctx == "load" and node.name in self.names:
            self.undeclared.add(node.name)
            if self.undeclared == self.names:
                self.abort()
        else:
            self.names.discard(node.name)
        return False

    def visit_Block(self, path: Path, state: Any) -> bool:
        return False


def find_undeclared(nodes: Iterable[Node], names: Iterable[str]) -> set[str]:
    """Return the subset of ``names`` read by ``nodes`` before any store.

    Used to decide whether a macro needs ``caller``/``varargs``/``kwargs``
    parameters and whether a loop body needs the extended ``loop`` object.
    """
    visitor = UndeclaredNameVisitor(names)
    for node in nodes:
        visitor.visit(node)
        if visitor.names and visitor.undeclared == visitor.names:
            break
    return visitor.undeclared


class DependencyFinderVisitor(PathVisitor):
    """Collects the filter and test names used below a node."""

    def __init__(self) -> None:
        super().__init__()
        self.filters: set[str] = set()
        self.tests: set[str] = set()

    def visit_Filter(self, path: Path, state: Any) -> None:
        self.traverse(path)
        self.filters.add(path.value.name)

    def visit_Test(self, path: Path, state: Any) -> None:
        self.traverse(path)
        self.tests.add(path.value.name)

    def visit_Block(self, path: Path, state: Any) -> bool:
        return False


def find_dependencies(nodes: Iterable[Node]) -> tuple[set[str], set[str]]:
    """Return ``(filter names, test names)`` referenced by ``nodes``."""
    visitor = DependencyFinderVisitor()
    for node in nodes:
        visitor.visit(node)
    return visitor.filters, visitor.tests
