"""Control flow compilation for the nunja code generator.

Provides the mixin for ``{% if %}``, ``{% for %}`` (and the async loop
tags), ``{% break %}`` and ``{% continue %}``.

For loops come in three shapes:

    ```python
    # plain: the body never reads ``loop``
    for l_1_item in l_0_items:
        ...

    # extended: the body reads ``loop`` (or holds a scoped block)
    l_1_loop = missing
    for l_1_item, l_1_loop in LoopContext(l_0_items, undefined):
        ...

    # recursive: the loop is a function that ``loop(children)`` re-enters
    def loop(reciter, loop_render_func, depth=0):
        t_1 = []
        for l_1_item, l_1_loop in LoopContext(reciter, undefined, loop_render_func, depth):
            ...
        return concat(t_1)
    yield loop(l_0_items, loop)
    ```

A loop ``if`` filter becomes a generator function wrapping the iterable, so
``loop.length`` and friends count filtered items only.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from nunja import nodes
from nunja.analysis.dependencies import find_undeclared
from nunja.compiler.utils import (
    arguments,
    assign,
    await_,
    call,
    const,
    for_,
    function_def,
    if_,
    name,
    store,
    to_load,
    yield_,
)

if TYPE_CHECKING:
    from nunja.analysis.path import Path
    from nunja.compiler.frame import Frame
    from nunja.nodes.base import Node


class ControlFlowMixin:
    """Mixin for compiling conditionals and loops.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        is_async: bool
        _assign_stack: list[set[str]]

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def _block(self) -> Any: ...
        def blockvisit(self, body: list[Node], frame: Frame) -> None: ...
        def buffer(self, frame: Frame) -> None: ...
        def return_buffer_contents(self, frame: Frame, force_unescaped: bool = False) -> None: ...
        def enter_frame(self, frame: Frame) -> None: ...
        def leave_frame(self, frame: Frame, with_python_scope: bool = False) -> None: ...
        def temporary_identifier(self) -> str: ...
        def fail(self, msg: str, lineno: int) -> Any: ...
        def simple_write(self, value: ast.expr, frame: Frame, node: Node | None = None) -> None: ...

    # ─────────────────────────────────────────────────────────────────────────
    # If
    # ─────────────────────────────────────────────────────────────────────────

    def visit_If(self, path: Path, frame: Frame) -> bool:
        node = path.value
        frame = frame.soft()

        branches: list[tuple[Node, ast.expr, list[ast.stmt]]] = []
        for branch in [node, *node.elif_]:
            test = self.expr(branch.test, frame)
            with self._block() as body:
                self.blockvisit(branch.body, frame)
            branches.append((branch, test, body))

        orelse: list[ast.stmt] = []
        if node.else_:
            with self._block() as orelse:
                self.blockvisit(node.else_, frame)

        # Build the elif chain from the innermost branch outwards.
        for branch, test, body in reversed(branches[1:]):
            elif_stmt = if_(test, body, orelse)
            elif_stmt.lineno = elif_stmt.end_lineno = branch.lineno
            elif_stmt.col_offset = elif_stmt.end_col_offset = 0
            orelse = [elif_stmt]
        _, test, body = branches[0]
        self.emit(if_(test, body, orelse), node)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # For
    # ─────────────────────────────────────────────────────────────────────────

    def visit_For(self, path: Path, frame: Frame) -> bool:
        node = path.value
        loop_frame = frame.inner()
        loop_frame.loop_frame = True
        test_frame = frame.inner()
        else_frame = frame.inner()

        # ``loop`` is only materialized when something can observe it.
        extended_loop = (
            node.recursive
            or "loop" in find_undeclared(node.iter_child_nodes(only=("body",)), ("loop",))
            or any(block.scoped for block in node.find_all(nodes.Block))
        )

        loop_ref = None
        if extended_loop:
            loop_ref = loop_frame.symbols.declare_parameter("loop")

        loop_frame.symbols.analyze_node(node, for_branch="body")
        if node.else_:
            else_frame.symbols.analyze_node(node, for_branch="else")

        for target_name in node.find_all(nodes.Name):
            if target_name.ctx == "store" and target_name.name == "loop":
                self.fail(
                    "Can't assign to special loop variable in for-loop target",
                    target_name.lineno,
                )

        loop_filter_func = None
        if node.test is not None:
            loop_filter_func = self.temporary_identifier()
            test_frame.symbols.analyze_node(node, for_branch="test")
            self._write_loop_filter(node, loop_filter_func, loop_frame, test_frame)

        if node.recursive:
            with self._block() as recursive_body:
                self.buffer(loop_frame)
                # The else branch writes into the same buffer.
                else_frame.buffer = loop_frame.buffer
                self._write_loop(node, frame, loop_frame, else_frame, loop_ref, loop_filter_func)
                self.return_buffer_contents(loop_frame)
            args = arguments("reciter", "loop_render_func", "depth", defaults={"depth": const(0)})
            self.emit(function_def("loop", args, recursive_body, is_async=self.is_async), node)

            iterable = self.expr(node.iter, frame)
            if self.is_async:
                iterable = call("auto_aiter", iterable)
            rendered: ast.expr = call("loop", iterable, name("loop"))
            if self.is_async:
                rendered = await_(rendered)
            self.simple_write(rendered, frame, node)
        else:
            self._write_loop(node, frame, loop_frame, else_frame, loop_ref, loop_filter_func)

        # Names set inside the loop are not top-level assignments.
        if self._assign_stack:
            self._assign_stack[-1].difference_update(loop_frame.symbols.stores)
        return False

    def _write_loop_filter(
        self, node: Node, func_name: str, loop_frame: Frame, test_frame: Frame
    ) -> None:
        """``def t_N(fiter): for target in fiter: if test: yield target``."""
        with self._block() as body:
            self.enter_frame(test_frame)
            target = self.expr(node.target, loop_frame)
            test = self.expr(node.test, test_frame)
            source = call("auto_aiter", name("fiter")) if self.is_async else name("fiter")
            loop = for_(
                target,
                source,
                [if_(test, [yield_(to_load(target))])],
                is_async=self.is_async,
            )
            self.emit(loop, node.test)
            self.leave_frame(test_frame, with_python_scope=True)
        self.emit(function_def(func_name, arguments("fiter"), body, is_async=self.is_async), node)

    def _write_loop(
        self,
        node: Node,
        frame: Frame,
        loop_frame: Frame,
        else_frame: Frame,
        loop_ref: str | None,
        loop_filter_func: str | None,
    ) -> None:
        extended_loop = loop_ref is not None
        if loop_ref is not None:
            self.emit(assign(loop_ref, name("missing")), node)

        iteration_indicator = None
        if node.else_:
            iteration_indicator = self.temporary_identifier()
            self.emit(assign(iteration_indicator, const(1)), node)

        target = self.expr(node.target, loop_frame)

        iterable: ast.expr
        if node.recursive:
            iterable = name("reciter")
        else:
            iterable = self.expr(node.iter, frame)
        if loop_filter_func is not None:
            iterable = call(loop_filter_func, iterable)

        if extended_loop:
            assert loop_ref is not None
            context_class = "AsyncLoopContext" if self.is_async else "LoopContext"
            context_args = [iterable, name("undefined")]
            if node.recursive:
                context_args += [name("loop_render_func"), name("depth")]
            iterable = call(context_class, *context_args)
            target = ast.Tuple(elts=[target, store(loop_ref)], ctx=ast.Store())
        elif self.is_async and not node.recursive:
            iterable = call("auto_aiter", iterable)

        with self._block() as body:
            self.enter_frame(loop_frame)
            if iteration_indicator is not None:
                # Cleared first so break and continue keep it cleared.
                self.emit(assign(iteration_indicator, const(0)), node)
            self.blockvisit(node.body, loop_frame)
        self.emit(for_(target, iterable, body, is_async=self.is_async), node)
        self.leave_frame(loop_frame, with_python_scope=node.recursive and not node.else_)

        if iteration_indicator is not None:
            with self._block() as else_body:
                self.enter_frame(else_frame)
                self.blockvisit(node.else_, else_frame)
                self.leave_frame(else_frame)
            self.emit(if_(name(iteration_indicator), else_body), node)

    def visit_Break(self, path: Path, frame: Frame) -> bool:
        self.emit(ast.Break(), path.value)
        return False

    def visit_Continue(self, path: Path, frame: Frame) -> bool:
        self.emit(ast.Continue(), path.value)
        return False
