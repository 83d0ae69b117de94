"""Polymorphic path visitor.

Handlers are methods named ``visit_<TypeName>`` taking ``(path, state)``.
The type name may be a concrete node type or an abstract supertype:

    >>> class Names(PathVisitor):
    ...     def visit_Name(self, path, state):
    ...         state.append(path.value.name)
    ...         return False
    ...     def visit_Expr(self, path, state):
    ...         self.traverse(path)
    >>> Names().visit(tree, state=[])

Dispatch:
    - A handler registered for an alias (``visit_Expr``) is exploded into
      every concrete type declaring that alias and merged, in declaration
      order, with handlers registered directly for those types.
    - Per node, the supertypes are walked most specific first; the first
      one with a handler wins. Nodes without a handler go through
      `generic_visit`, which visits the children.
    - A handler is a method, or a mapping ``{"enter": fn, "exit": fn}``
      (each entry may also be a list of functions). With no enter
      handler the children are visited before the exit handlers run.

Handler contract:
    - Return False: the handler took care of (or skipped) the children.
    - Return a node: it replaces the current value; its children are
      traversed unless the handler already called `traverse`.
    - Return None: only valid after calling ``self.traverse(path)``.

``self.traverse``, ``self.visit`` and ``self.abort`` called from inside a
handler act on the active dispatch context. ``abort()`` unwinds the whole
walk; the top-level `visit` then returns the (possibly modified) root.

"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MethodType
from typing import Any

from nunja.analysis.path import Path
from nunja.nodes import REGISTRY
from nunja.nodes.base import Node
from nunja.nodes.registry import NodeTypeRegistry

Handler = Callable[[Path, Any], Any]

_PREFIX = "visit_"


class VisitorContractError(RuntimeError):
    """A visit handler broke the traversal contract."""


class AbortRequest(Exception):
    """Raised by `PathVisitor.abort` to unwind the current walk.

    A handler catching the request may call `cancel()` before re-raising to
    turn it into an ordinary error at the top level.
    """

    def __init__(self) -> None:
        super().__init__("visit aborted")
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _HandlerSet:
    __slots__ = ("enter", "exit")

    def __init__(self) -> None:
        self.enter: list[Handler] = []
        self.exit: list[Handler] = []


class Context:
    """Per-dispatch state for one handler invocation."""

    __slots__ = ("visitor", "current_path", "need_to_call_traverse", "state", "type_name")

    def __init__(self, visitor: PathVisitor):
        self.visitor = visitor
        self.current_path: Path | None = None
        self.need_to_call_traverse = True
        self.state: Any = None
        self.type_name = ""

    def reset(self, path: Path, state: Any, type_name: str) -> Context:
        self.current_path = path
        self.need_to_call_traverse = True
        self.state = state
        self.type_name = type_name
        return self

    def invoke(self, handlers: _HandlerSet) -> Any:
        """Run enter handlers, auto-traverse replacements, then exit handlers."""
        if not handlers.enter:
            # Exit-only handlers see the node after its children.
            self.visitor.traverse(self.current_path)
        for handler in handlers.enter:
            result = handler(self.current_path, self.state)
            if result is False:
                self.need_to_call_traverse = False
            elif result is not None:
                self._replace(result)
                if self.need_to_call_traverse:
                    self.visitor.traverse(self.current_path)
        if self.need_to_call_traverse:
            raise VisitorContractError(
                f"Must either call self.traverse or return False in {_PREFIX}{self.type_name}"
            )
        for handler in handlers.exit:
            result = handler(self.current_path, self.state)
            if result is not None and result is not False:
                self._replace(result)
        path = self.current_path
        return path.value if path is not None else None

    def _replace(self, value: Any) -> None:
        assert self.current_path is not None
        replaced = self.current_path.replace(value)
        self.current_path = replaced[0] if replaced else None


class PathVisitor:
    """Base class for visitors over `Path`-wrapped node trees."""

    registry: NodeTypeRegistry = REGISTRY

    def __init__(self) -> None:
        self._handlers = self._compute_handler_table()
        self._contexts: list[Context] = []
        self._context_pool: list[Context] = []
        self._change_reported = False
        self._root_state: Any = None

    @classmethod
    def from_methods(cls, methods: Mapping[str, Any] | PathVisitor | None = None) -> PathVisitor:
        """Build a visitor from a mapping of ``visit_X`` handlers.

        Plain functions receive the visitor as their first argument, like
        methods: ``def visit_Name(self, path, state)``.
        """
        if isinstance(methods, PathVisitor):
            return methods
        visitor = cls.__new__(cls)
        for name, value in (methods or {}).items():
            setattr(visitor, name, value)
        cls.__init__(visitor)
        return visitor

    # ── handler table ───────────────────────────────────────────────────────

    def _iter_handler_names(self) -> list[str]:
        names: list[str] = []
        for klass in reversed(type(self).__mro__):
            for name in vars(klass):
                if name.startswith(_PREFIX) and name not in names:
                    names.append(name)
        for name in self.__dict__:
            if name.startswith(_PREFIX) and name not in names:
                names.append(name)
        return [n for n in names if n[len(_PREFIX) :] in self.registry]

    def _bind(self, fn: Any) -> Handler:
        if isinstance(fn, MethodType) or not callable(fn):
            return fn
        return MethodType(fn, self)

    def _normalize(self, name: str) -> _HandlerSet:
        handlers = _HandlerSet()
        value = self.__dict__[name] if name in self.__dict__ else getattr(type(self), name)
        if isinstance(value, Mapping):
            for phase in ("enter", "exit"):
                entry = value.get(phase)
                if entry is None:
                    continue
                fns = entry if isinstance(entry, (list, tuple)) else [entry]
                getattr(handlers, phase).extend(self._bind(fn) for fn in fns)
        elif callable(value):
            handlers.enter.append(self._bind(value))
        else:
            raise VisitorContractError(f"{name} must be callable or an enter/exit mapping")
        return handlers

    def _compute_handler_table(self) -> dict[str, _HandlerSet]:
        table: dict[str, _HandlerSet] = {}
        for name in self._iter_handler_names():
            type_name = name[len(_PREFIX) :]
            handlers = self._normalize(name)
            targets = self.registry.alias_members(type_name) or (type_name,)
            for target in targets:
                merged = table.setdefault(target, _HandlerSet())
                merged.enter.extend(handlers.enter)
                merged.exit.extend(handlers.exit)
        return table

    def handlers_for(self, type_name: str) -> tuple[str, _HandlerSet] | None:
        """Most specific ``(type name, handlers)`` for a node type, if any."""
        for supertype in self.registry.supertypes(type_name):
            handlers = self._handlers.get(supertype)
            if handlers is not None:
                return supertype, handlers
        return None

    # ── entry points ────────────────────────────────────────────────────────

    @property
    def state(self) -> Any:
        """State of the active dispatch, or of the current walk."""
        if self._contexts:
            return self._contexts[-1].state
        return self._root_state

    def visit(self, node_or_path: Node | Path, state: Any = None, visitor: Any = None) -> Any:
        """Visit a tree.

        Called from outside a walk this resets the visitor and returns the
        (possibly replaced) root value. Called from inside a handler it
        dispatches once on ``node_or_path`` with the current state unless
        ``state`` is given, optionally through another ``visitor``.
        """
        path = node_or_path if isinstance(node_or_path, Path) else Path.root(node_or_path)
        if self._contexts:
            context = self._contexts[-1]
            context.need_to_call_traverse = False
            target = PathVisitor.from_methods(visitor) if visitor is not None else self
            return target.visit_without_reset(path, context.state if state is None else state)
        if visitor is not None:
            return PathVisitor.from_methods(visitor).visit(path, state)

        self._root_state = {} if state is None else state
        self._change_reported = False
        try:
            return self.visit_without_reset(path, self._root_state)
        except AbortRequest as request:
            if request.cancelled:
                raise
            return path.value
        finally:
            self._contexts.clear()

    def visit_without_reset(self, path: Path, state: Any = None) -> Any:
        """Dispatch on ``path`` without resetting the walk state."""
        if state is None:
            state = self.state
        value = path.value
        if isinstance(value, Node):
            found = self.handlers_for(value.type)
            if found is None:
                return self.generic_visit(path, state)
            type_name, handlers = found
            context = self._acquire_context(path, state, type_name)
            self._contexts.append(context)
            try:
                return context.invoke(handlers)
            finally:
                self._contexts.pop()
                self._release_context(context)
        return self.visit_children(path, state)

    def traverse(self, path: Path | Node, state: Any = None, visitor: Any = None) -> Any:
        """Visit the children of ``path`` from inside a handler."""
        if not self._contexts:
            raise VisitorContractError("traverse() called outside of a visit handler")
        if not isinstance(path, Path):
            path = Path.root(path)
        context = self._contexts[-1]
        context.need_to_call_traverse = False
        target = PathVisitor.from_methods(visitor) if visitor is not None else self
        return target.visit_children(path, context.state if state is None else state)

    def generic_visit(self, path: Path, state: Any) -> Any:
        """Called for nodes without a handler; visits the children."""
        return self.visit_children(path, state)

    def visit_children(self, path: Path, state: Any) -> Any:
        value = path.value
        if isinstance(value, list):
            path.each(lambda child, _: self.visit_without_reset(child, state))
        elif isinstance(value, Node):
            for field in [path.get(name) for name in value.fields]:
                self.visit_without_reset(field, state)
        return path.value

    def abort(self) -> None:
        """Stop the walk; the top-level `visit` returns the root value."""
        if self._contexts:
            self._contexts[-1].need_to_call_traverse = False
        raise AbortRequest()

    def report_changed(self) -> None:
        self._change_reported = True

    def was_change_reported(self) -> bool:
        return self._change_reported

    # ── context pool ────────────────────────────────────────────────────────

    def _acquire_context(self, path: Path, state: Any, type_name: str) -> Context:
        if self._context_pool:
            return self._context_pool.pop().reset(path, state, type_name)
        return Context(self).reset(path, state, type_name)

    def _release_context(self, context: Context) -> None:
        context.current_path = None
        context.state = None
        self._context_pool.append(context)


def visit(node: Node | Path, methods: Mapping[str, Any] | PathVisitor, state: Any = None) -> Any:
    """Walk ``node`` with a one-off visitor built from ``methods``."""
    return PathVisitor.from_methods(methods).visit(node, state)
