"""Basic statement compilation for the nunja code generator.

Provides the mixin for expression statements (``{% do %}``), ``{% set %}``
in both forms, ``{% with %}``, scopes and eval context modifiers
(``{% autoescape %}``).

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING

from nunja.compiler.const import Impossible, to_const
from nunja.compiler.utils import assign, attr, call, name

if TYPE_CHECKING:
    from nunja.analysis.path import Path
    from nunja.compiler.frame import Frame
    from nunja.nodes.base import Node


class BasicStatementMixin:
    """Mixin for compiling simple statements and scopes.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def blockvisit(self, body: list[Node], frame: Frame) -> None: ...
        def buffer(self, frame: Frame) -> None: ...
        def enter_frame(self, frame: Frame) -> None: ...
        def leave_frame(self, frame: Frame, with_python_scope: bool = False) -> None: ...
        def push_assign_tracking(self) -> None: ...
        def pop_assign_tracking(self, frame: Frame) -> None: ...
        def push_context_reference(self, target: str) -> None: ...
        def pop_context_reference(self) -> None: ...
        def derive_context(self, frame: Frame) -> ast.expr: ...
        def temporary_identifier(self) -> str: ...
        def filter_test_call(self, node: Node, frame: Frame, is_filter: bool) -> ast.expr: ...

    def visit_ExprStmt(self, path: Path, frame: Frame) -> bool:
        node = path.value
        self.emit(ast.Expr(value=self.expr(node.node, frame)), node)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Assignment
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Assign(self, path: Path, frame: Frame) -> bool:
        node = path.value
        self.push_assign_tracking()
        target = self.expr(node.target, frame)
        value = self.expr(node.node, frame)
        self.emit(assign(target, value), node)
        self.pop_assign_tracking(frame)
        return False

    def visit_AssignBlock(self, path: Path, frame: Frame) -> bool:
        node = path.value
        self.push_assign_tracking()
        block_frame = frame.inner()
        # A set block always captures, so it may appear at top level of a
        # child template.
        block_frame.require_output_check = False
        block_frame.symbols.analyze_node(node)
        self.enter_frame(block_frame)
        self.buffer(block_frame)
        self.blockvisit(node.body, block_frame)

        target = self.expr(node.target, frame)
        if node.filter is not None:
            value = self.filter_test_call(node.filter, block_frame, is_filter=True)
        else:
            value = call("concat", name(block_frame.buffer))
        wrapper = ast.IfExp(
            test=attr("context", "eval_ctx", "autoescape"),
            body=name("Markup"),
            orelse=name("identity"),
        )
        self.emit(assign(target, call(wrapper, value)), node)
        self.pop_assign_tracking(frame)
        self.leave_frame(block_frame)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Scopes
    # ─────────────────────────────────────────────────────────────────────────

    def visit_With(self, path: Path, frame: Frame) -> bool:
        node = path.value
        with_frame = frame.inner()
        with_frame.symbols.analyze_node(node)
        self.enter_frame(with_frame)
        for target, value in zip(node.targets, node.values):
            # Values see the outer scope only.
            self.emit(assign(self.expr(target, with_frame), self.expr(value, frame)), node)
        self.blockvisit(node.body, with_frame)
        self.leave_frame(with_frame)
        return False

    def visit_Scope(self, path: Path, frame: Frame) -> bool:
        node = path.value
        scope_frame = frame.inner()
        scope_frame.symbols.analyze_node(node)
        self.enter_frame(scope_frame)
        self.blockvisit(node.body, scope_frame)
        self.leave_frame(scope_frame)
        return False

    def visit_OverlayScope(self, path: Path, frame: Frame) -> bool:
        node = path.value
        ctx = self.temporary_identifier()
        self.emit(assign(ctx, self.derive_context(frame)), node)
        vars_target = ast.Attribute(value=name(ctx), attr="vars", ctx=ast.Store())
        self.emit(assign(vars_target, self.expr(node.context, frame)), node)
        self.push_context_reference(ctx)

        scope_frame = frame.inner(isolated=True)
        scope_frame.symbols.analyze_node(node)
        self.enter_frame(scope_frame)
        self.blockvisit(node.body, scope_frame)
        self.leave_frame(scope_frame)
        self.pop_context_reference()
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Eval context
    # ─────────────────────────────────────────────────────────────────────────

    def eval_context_modifier(self, node: Node, frame: Frame) -> None:
        """Set eval context options at runtime and, when known, at compile time."""
        for keyword in node.options:
            target = ast.Attribute(
                value=attr("context", "eval_ctx"), attr=keyword.key, ctx=ast.Store()
            )
            self.emit(assign(target, self.expr(keyword.value, frame)), node)
            try:
                value = to_const(keyword.value, frame.eval_ctx)
            except Impossible:
                frame.eval_ctx.volatile = True
            else:
                setattr(frame.eval_ctx, keyword.key, value)

    def visit_EvalContextModifier(self, path: Path, frame: Frame) -> bool:
        self.eval_context_modifier(path.value, frame)
        return False

    def visit_ScopedEvalContextModifier(self, path: Path, frame: Frame) -> bool:
        node = path.value
        old_ctx_name = self.temporary_identifier()
        saved_ctx = frame.eval_ctx.save()
        self.emit(assign(old_ctx_name, call(attr("context", "eval_ctx", "save"))), node)
        self.eval_context_modifier(node, frame)
        for child in node.body:
            self.visit(child, frame)
        frame.eval_ctx.revert(saved_ctx)
        self.emit(
            ast.Expr(value=call(attr("context", "eval_ctx", "revert"), name(old_ctx_name))), node
        )
        return False
