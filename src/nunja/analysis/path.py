"""Zipper-style cursor over node trees.

A `Path` wraps a value (a node, a list of nodes, or a plain field value)
together with the parent `Path` and the name (field name, list index or
mapping key) it was reached through. Paths support in-place tree surgery
while keeping every cached child path consistent:

    >>> path = Path.root(template)
    >>> body = path.get("body")
    >>> body.get(0) is body.get(0)
    True
    >>> body.get(0).replace(b.output([b.template_data("hi")]))
    >>> body.get(0).name
    0

Child paths are cached per parent. After any list mutation done through a
Path (`replace`, `insert_at`, `shift`, `unshift`, `push`, `pop`) every cached
child path of that list has ``name`` equal to its index and ``value`` equal
to the list element at that index.

"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from nunja.nodes.base import Node

PathName = str | int

_UNSET: Any = object()


class PathError(Exception):
    """A path operation broke the parent/child invariant or was misused."""


def _empty_moves() -> None:
    return None


class Path:
    """Cursor over a value inside a node tree.

    Attributes:
        value: The wrapped value, ``parent_path.value[name]`` when attached.
        parent_path: Immediate parent Path, None for orphans.
        name: Field name, list index or key used to reach ``value``.
    """

    __slots__ = ("value", "parent_path", "name", "_child_cache", "_node", "_parent")

    def __init__(self, value: Any, parent_path: Path | None = None, name: PathName | None = None):
        if parent_path is not None and not isinstance(parent_path, Path):
            raise PathError(f"parent_path must be a Path, got {type(parent_path).__name__}")
        self.value = value
        self.parent_path = parent_path
        self.name = name if parent_path is not None else None
        self._child_cache: dict[PathName, Path] | None = None
        self._node: Any = _UNSET
        self._parent: Any = _UNSET

    @classmethod
    def root(cls, node: Node) -> Path:
        """Path to ``node`` held by a synthetic holder, so the root is replaceable."""
        return cls({"root": node}).get("root")

    def __repr__(self) -> str:
        kind = self.value.type if isinstance(self.value, Node) else type(self.value).__name__
        return f"<Path {self.name!r} {kind}>"

    # ── navigation ──────────────────────────────────────────────────────────

    def _get_child_cache(self) -> dict[PathName, Path]:
        if self._child_cache is None:
            self._child_cache = {}
        return self._child_cache

    def _get_value_property(self, name: PathName) -> Any:
        value = self.value
        if isinstance(value, Node):
            if not isinstance(name, str):
                raise PathError(f"node fields are named by strings, got {name!r}")
            return getattr(value, name, None)
        if isinstance(value, list):
            if isinstance(name, int) and 0 <= name < len(value):
                return value[name]
            return None
        if isinstance(value, dict):
            return value.get(name)
        return None

    def _get_child_path(self, name: PathName) -> Path:
        cache = self._get_child_cache()
        actual = self._get_value_property(name)
        child = cache.get(name)
        if child is None or child.value is not actual:
            child = cache[name] = type(self)(actual, self, name)
        return child

    def get(self, *names: PathName) -> Path:
        """Return the descendant path reached through ``names``.

        Repeated calls return the identical Path object as long as the
        underlying value has not changed.
        """
        path = self
        for name in names:
            path = path._get_child_path(name)
        return path

    @property
    def node(self) -> Node:
        """The value of the nearest ancestor path (or self) holding a node."""
        if self._node is _UNSET:
            self._node = self._compute_node()
        return self._node

    def _compute_node(self) -> Node:
        path: Path | None = self
        while path is not None:
            if isinstance(path.value, Node):
                return path.value
            path = path.parent_path
        raise PathError("path has no node ancestor")

    @property
    def parent(self) -> Path | None:
        """Nearest ancestor path whose value is a node distinct from ``node``."""
        if self._parent is _UNSET:
            self._parent = self._compute_parent()
        return self._parent

    def _compute_parent(self) -> Path | None:
        pp = self.parent_path
        if not isinstance(self.value, Node):
            while pp is not None and not isinstance(pp.value, Node):
                pp = pp.parent_path
            if pp is not None:
                pp = pp.parent_path
        while pp is not None and not isinstance(pp.value, Node):
            pp = pp.parent_path
        return pp

    def _reset_memo(self) -> None:
        self._node = _UNSET
        self._parent = _UNSET
        self._child_cache = None

    # ── iteration ───────────────────────────────────────────────────────────

    def each(self, callback: Callable[[Path, int], Any]) -> None:
        """Call ``callback(child_path, index)`` for each list element.

        Child paths are collected up front; elements added by the callback
        are not visited.
        """
        value = self._assert_list()
        children = [self.get(i) for i in range(len(value))]
        for index, child in enumerate(children):
            callback(child, index)

    def map(self, callback: Callable[[Path, int], Any]) -> list[Any]:
        result: list[Any] = []
        self.each(lambda child, index: result.append(callback(child, index)))
        return result

    def filter(self, callback: Callable[[Path, int], bool]) -> list[Path]:
        result: list[Path] = []

        def collect(child: Path, index: int) -> None:
            if callback(child, index):
                result.append(child)

        self.each(collect)
        return result

    def iter_child_paths(self) -> Iterator[Path]:
        """Yield paths to direct node children, list elements flattened.

        List children are snapshotted before yielding.
        """
        value = self.value
        if isinstance(value, list):
            for child in [self.get(i) for i in range(len(value))]:
                if isinstance(child.value, Node):
                    yield child
            return
        if not isinstance(value, Node):
            return
        for field in value.fields:
            item = getattr(value, field, None)
            if isinstance(item, list):
                field_path = self.get(field)
                for child in [field_path.get(i) for i in range(len(item))]:
                    if isinstance(child.value, Node):
                        yield child
            elif isinstance(item, Node):
                yield self.get(field)

    def each_child(self, callback: Callable[[Path], Any]) -> None:
        """Call ``callback`` on every direct node child path."""
        for child in list(self.iter_child_paths()):
            callback(child)

    # ── list mutation ───────────────────────────────────────────────────────

    def _assert_list(self) -> list[Any]:
        if not isinstance(self.value, list):
            raise PathError(f"expected a list value, got {type(self.value).__name__}")
        return self.value

    def _get_moves(self, offset: int, start: int | None = None, end: int | None = None) -> Callable[[], None]:
        """Plan an index shift of cached children in ``[start, end)``.

        The plan renames the affected child paths immediately and drops them
        from the cache; the returned closure re-registers them under their
        new indices once the list itself has been mutated.
        """
        value = self._assert_list()
        if offset == 0 or not value:
            return _empty_moves
        length = len(value)
        start = 0 if start is None else max(start, 0)
        end = length if end is None else min(end, length)

        cache = self._get_child_cache()
        moves: dict[int, Path] = {}
        for i in range(start, end):
            child = self.get(i)
            if child.name != i:
                raise PathError(f"cached child path named {child.name!r} at index {i}")
            new_index = i + offset
            del cache[i]
            if new_index < 0:
                # Shifted off the front; the path no longer has a slot.
                child.name = None
                child.parent_path = None
                continue
            child.name = new_index
            moves[new_index] = child

        def apply_moves() -> None:
            for new_index, child in moves.items():
                if child.name != new_index:
                    raise PathError(f"moved path renamed to {child.name!r}, expected {new_index}")
                if value[new_index] is not child.value:
                    raise PathError(f"list element at {new_index} does not match moved path")
                cache[new_index] = child

        return apply_moves

    def shift(self) -> Any:
        """Remove and return the first list element."""
        move = self._get_moves(-1)
        result = self._assert_list().pop(0)
        move()
        return result

    def unshift(self, *values: Any) -> int:
        """Prepend ``values``; returns the new length."""
        move = self._get_moves(len(values))
        value = self._assert_list()
        value[0:0] = values
        move()
        return len(value)

    def push(self, *values: Any) -> int:
        """Append ``values``; returns the new length."""
        value = self._assert_list()
        value.extend(values)
        return len(value)

    def pop(self) -> Any:
        """Remove and return the last list element."""
        value = self._assert_list()
        if self._child_cache is not None:
            child = self._child_cache.pop(len(value) - 1, None)
            if child is not None:
                child.parent_path = None
                child.name = None
        return value.pop()

    def insert_at(self, index: int, *values: Any) -> Path:
        """Insert ``values`` before position ``index`` of this list."""
        move = self._get_moves(len(values), index)
        if not values:
            return self
        index = max(index, 0)
        self._assert_list()[index:index] = values
        move()
        return self

    def insert_before(self, *values: Any) -> Path:
        if self.parent_path is None or not isinstance(self.name, int):
            raise PathError("insert_before needs a path inside a list")
        return self.parent_path.insert_at(self.name, *values)

    def insert_after(self, *values: Any) -> Path:
        if self.parent_path is None or not isinstance(self.name, int):
            raise PathError("insert_after needs a path inside a list")
        return self.parent_path.insert_at(self.name + 1, *values)

    # ── replacement ─────────────────────────────────────────────────────────

    def _repair_relationship_with_parent(self) -> Path:
        pp = self.parent_path
        if pp is None:
            return self
        parent_value = pp.value
        parent_cache = pp._get_child_cache()

        if pp._get_value_property(self.name) is self.value:  # type: ignore[arg-type]
            parent_cache[self.name] = self  # type: ignore[index]
        elif isinstance(parent_value, list):
            # Stale index: look the value up again.
            for i, item in enumerate(parent_value):
                if item is self.value:
                    self.name = i
                    parent_cache[i] = self
                    break
        else:
            _set_property(parent_value, self.name, self.value)  # type: ignore[arg-type]
            parent_cache[self.name] = self  # type: ignore[index]

        if pp._get_value_property(self.name) is not self.value:  # type: ignore[arg-type]
            raise PathError(f"path {self.name!r} is detached from its parent value")
        if pp.get(self.name) is not self:  # type: ignore[arg-type]
            raise PathError(f"parent cache does not hold path {self.name!r}")
        return self

    def replace(self, *values: Any) -> list[Path]:
        """Replace this path's value in its parent.

        In a list, zero values delete the element, one value replaces it and
        several values splice them all in; sibling paths are renumbered. For
        a field, zero values clear it and one value replaces it.

        Returns the paths of the inserted values (first one is ``self``).
        """
        pp = self.parent_path
        if pp is None:
            raise PathError("cannot replace an orphaned path")
        parent_value = pp.value
        parent_cache = pp._get_child_cache()
        self._repair_relationship_with_parent()
        results: list[Path] = []
        name = self.name

        if isinstance(parent_value, list):
            assert isinstance(name, int)
            original_length = len(parent_value)
            move = pp._get_moves(len(values) - 1, name + 1)
            spliced = parent_value[name]
            parent_value[name : name + 1] = values
            if spliced is not self.value:
                raise PathError("spliced value does not match path value")
            if len(parent_value) != original_length - 1 + len(values):
                raise PathError("list length mismatch after splice")
            move()
            if not values:
                self.value = None
                if parent_cache.get(name) is self:
                    del parent_cache[name]
                self._reset_memo()
            else:
                if self.value is not values[0]:
                    self.value = values[0]
                    self._reset_memo()
                for i in range(len(values)):
                    results.append(pp.get(name + i))
                if results[0] is not self:
                    raise PathError("replacement path identity was lost")
        elif len(values) == 1:
            if self.value is not values[0]:
                self._reset_memo()
            self.value = values[0]
            _set_property(parent_value, name, values[0])  # type: ignore[arg-type]
            results.append(self)
        elif not values:
            _set_property(parent_value, name, None)  # type: ignore[arg-type]
            self.value = None
            self._reset_memo()
        else:
            raise PathError("cannot replace a non-list field with several values")
        return results

    def prune(self) -> Path | None:
        """Remove this path's value and return the enclosing node path."""
        remaining = self.parent
        if remaining is None:
            raise PathError("cannot prune an orphaned path")
        self.replace()
        return remaining


def _set_property(container: Any, name: PathName, value: Any) -> None:
    if isinstance(container, Node):
        setattr(container, name, value)  # type: ignore[arg-type]
    elif isinstance(container, dict):
        container[name] = value
    else:
        raise PathError(f"cannot set {name!r} on {type(container).__name__}")
