"""Output compilation for the nunja code generator.

``{{ ... }}`` expressions and template text arrive as ``Output`` nodes.
Children that fold to constants are escaped and finalized at compile time
and merged into a single string; everything else is wrapped at runtime:

    ```python
    yield 'Hello '                     # folded text
    yield escape(environment.getattr(l_0_user, 'name'))
    ```

Inside macros, call blocks, filter blocks and set blocks the frame has a
buffer and output is appended (``t_1.append(...)``) instead of yielded.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from markupsafe import escape

from nunja import nodes
from nunja.compiler.const import Impossible, to_const
from nunja.compiler.utils import attr, call, const, if_, name, yield_
from nunja.utils import PassArg

if TYPE_CHECKING:
    from nunja.analysis.path import Path
    from nunja.compiler.core import FinalizeInfo
    from nunja.compiler.frame import Frame
    from nunja.nodes.base import Node


class OutputCompilationMixin:
    """Mixin for compiling ``Output`` nodes and writing values.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        has_known_extends: bool
        optimized: bool
        _lineno: int
        _body: list[ast.stmt]

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def make_finalize(self) -> FinalizeInfo: ...

    # ─────────────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────────────

    def write_stmt(self, value: ast.expr, frame: Frame) -> ast.stmt:
        """``yield value``, or ``buf.append(value)`` in a buffered frame."""
        if frame.buffer is None:
            return yield_(value)
        return ast.Expr(value=call(attr(frame.buffer, "append"), value))

    def simple_write(self, value: ast.expr, frame: Frame, node: Node | None = None) -> None:
        self.emit(self.write_stmt(value, frame), node)

    def parent_template_is_none(self) -> ast.expr:
        return ast.Compare(left=name("parent_template"), ops=[ast.Is()], comparators=[const(None)])

    # ─────────────────────────────────────────────────────────────────────────
    # Output
    # ─────────────────────────────────────────────────────────────────────────

    def _output_child_to_const(self, node: Node, frame: Frame, finalize: FinalizeInfo) -> str:
        value = to_const(node, frame.eval_ctx)
        if frame.eval_ctx.autoescape:
            value = escape(value)
        # Template data is never finalized.
        if isinstance(node, nodes.TemplateData):
            return str(value)
        return finalize.const(value)

    def _output_child(self, node: Node, frame: Frame, finalize: FinalizeInfo) -> ast.expr:
        value = self.expr(node, frame)
        if finalize.enabled:
            args: list[ast.expr] = []
            if finalize.pass_arg is PassArg.context:
                args.append(name("context"))
            elif finalize.pass_arg is PassArg.eval_context:
                args.append(attr("context", "eval_ctx"))
            elif finalize.pass_arg is PassArg.environment:
                args.append(name("environment"))
            value = call(attr("environment", "finalize"), *args, value)

        wrapper: ast.expr
        if frame.eval_ctx.volatile:
            wrapper = ast.IfExp(
                test=attr("context", "eval_ctx", "autoescape"),
                body=name("escape"),
                orelse=name("str"),
            )
        elif frame.eval_ctx.autoescape:
            wrapper = name("escape")
        else:
            wrapper = name("str")
        return call(wrapper, value)

    def visit_Output(self, path: Path, frame: Frame) -> bool:
        node = path.value
        # Output after a known extends can never be rendered.
        if self.has_known_extends and frame.require_output_check:
            return False

        finalize = self.make_finalize()
        groups: list[list[str] | Node] = []
        for child in node.nodes:
            try:
                if not isinstance(child, nodes.TemplateData) and (
                    not self.optimized or finalize.const is None
                ):
                    raise Impossible()
                value = self._output_child_to_const(child, frame, finalize)
            except Exception:
                # Not constant, or failing: left for runtime, where the
                # error carries the template location.
                groups.append(child)
                continue
            if groups and isinstance(groups[-1], list):
                groups[-1].append(value)
            else:
                groups.append([value])

        # One write per group, located at the line of the expression it writes.
        stmts: list[ast.stmt] = []
        for item in groups:
            if isinstance(item, list):
                stmt = self.write_stmt(const("".join(item)), frame)
                source = node
            else:
                stmt = self.write_stmt(self._output_child(item, frame, finalize), frame)
                source = item
            stmt.lineno = stmt.end_lineno = source.lineno if source.loc is not None else self._lineno
            stmt.col_offset = stmt.end_col_offset = 0
            stmts.append(stmt)

        if not stmts:
            return False
        if frame.require_output_check:
            self.emit(if_(self.parent_template_is_none(), stmts), node)
        else:
            self._body.extend(stmts)
        return False
