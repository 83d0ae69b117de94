"""Function-like statement compilation for the nunja code generator.

Provides the mixin for ``{% macro %}``, ``{% call %}`` and
``{% filter %}``. Macro and call block bodies become nested Python
functions wrapped in a runtime `Macro`:

    ```python
    def macro(l_1_name, l_1_greeting):
        t_1 = []
        if l_1_greeting is missing:
            l_1_greeting = 'Hello'
        t_1.extend((str(l_1_greeting), ', ', str(l_1_name)))
        return concat(t_1)
    context.exported_vars.add('hello')
    context.vars['hello'] = l_0_hello = Macro(environment, macro, 'hello', ...)
    ```

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from nunja.analysis.dependencies import find_undeclared
from nunja.compiler.frame import MacroRef
from nunja.compiler.utils import (
    arguments,
    assign,
    attr,
    call,
    const,
    function_def,
    if_,
    is_missing,
    kw,
    name,
    store,
    subscript,
)

if TYPE_CHECKING:
    from nunja.analysis.path import Path
    from nunja.compiler.frame import Frame
    from nunja.nodes.base import Node


class FunctionCompilationMixin:
    """Mixin for compiling macros, call blocks and filter blocks.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        is_async: bool

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def _block(self) -> Any: ...
        def fail(self, msg: str, lineno: int) -> Any: ...
        def blockvisit(self, body: list[Node], frame: Frame) -> None: ...
        def buffer(self, frame: Frame) -> None: ...
        def return_buffer_contents(self, frame: Frame, force_unescaped: bool = False) -> None: ...
        def enter_frame(self, frame: Frame) -> None: ...
        def leave_frame(self, frame: Frame, with_python_scope: bool = False) -> None: ...
        def push_parameter_definitions(self, frame: Frame) -> None: ...
        def pop_parameter_definitions(self) -> None: ...
        def mark_parameter_stored(self, target: str) -> None: ...
        def simple_write(self, value: ast.expr, frame: Frame, node: Node | None = None) -> None: ...
        def call_expr(self, node: Node, frame: Frame, forward_caller: bool = False) -> ast.expr: ...
        def filter_test_call(self, node: Node, frame: Frame, is_filter: bool) -> ast.expr: ...

    # ─────────────────────────────────────────────────────────────────────────
    # Macro bodies
    # ─────────────────────────────────────────────────────────────────────────

    def macro_body(self, node: Node, frame: Frame) -> tuple[Frame, MacroRef]:
        """Emit ``def macro(...)`` for a macro or call block body.

        The special names ``caller``, ``kwargs`` and ``varargs`` become extra
        trailing parameters only when the body reads them. An explicit
        ``caller`` argument needs a default, since a plain call never
        passes one.
        """
        frame = frame.inner()
        frame.symbols.analyze_node(node)
        macro_ref = MacroRef(node)

        explicit_caller = None
        skip_special_params = set()
        params: list[str] = []
        for idx, arg in enumerate(node.args):
            if arg.name == "caller":
                explicit_caller = idx
            if arg.name in ("kwargs", "varargs"):
                skip_special_params.add(arg.name)
            params.append(frame.symbols.ref(arg.name))

        undeclared = find_undeclared(node.body, ("caller", "kwargs", "varargs"))
        if "caller" in undeclared:
            if explicit_caller is not None:
                if explicit_caller < len(node.args) - len(node.defaults):
                    self.fail(
                        "When defining macros or call blocks the special 'caller'"
                        " argument must be omitted or be given a default.",
                        node.lineno,
                    )
            else:
                params.append(frame.symbols.declare_parameter("caller"))
            macro_ref.accesses_caller = True
        if "kwargs" in undeclared and "kwargs" not in skip_special_params:
            params.append(frame.symbols.declare_parameter("kwargs"))
            macro_ref.accesses_kwargs = True
        if "varargs" in undeclared and "varargs" not in skip_special_params:
            params.append(frame.symbols.declare_parameter("varargs"))
            macro_ref.accesses_varargs = True

        # Macros always capture into a buffer; extends never suppresses them.
        frame.require_output_check = False
        with self._block() as body:
            self.buffer(frame)
            self.enter_frame(frame)
            self._write_parameter_defaults(node, frame)
            self.blockvisit(node.body, frame)
            self.return_buffer_contents(frame, force_unescaped=True)
            self.leave_frame(frame, with_python_scope=True)
        self.emit(function_def("macro", arguments(*params), body, is_async=self.is_async), node)
        return frame, macro_ref

    def _write_parameter_defaults(self, node: Node, frame: Frame) -> None:
        # Defaults may read earlier parameters but not later ones.
        self.push_parameter_definitions(frame)
        first_default = len(node.args) - len(node.defaults)
        for idx, arg in enumerate(node.args):
            ref = frame.symbols.ref(arg.name)
            if idx >= first_default:
                value = self.expr(node.defaults[idx - first_default], frame)
            else:
                value = call(
                    "undefined",
                    const(f"parameter {arg.name!r} was not provided"),
                    keywords=[kw("name", const(arg.name))],
                )
            self.emit(if_(is_missing(name(ref)), [assign(ref, value)]), node)
            self.mark_parameter_stored(ref)
        self.pop_parameter_definitions()

    def macro_def(self, macro_ref: MacroRef, frame: Frame) -> ast.expr:
        """``Macro(environment, macro, name, (args...), ...)`` for a compiled body."""
        node = macro_ref.node
        arg_names = ast.Tuple(elts=[const(arg.name) for arg in node.args], ctx=ast.Load())
        return call(
            "Macro",
            name("environment"),
            name("macro"),
            const(getattr(node, "name", None)),
            arg_names,
            const(macro_ref.accesses_kwargs),
            const(macro_ref.accesses_varargs),
            const(macro_ref.accesses_caller),
            attr("context", "eval_ctx", "autoescape"),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Macro(self, path: Path, frame: Frame) -> bool:
        node = path.value
        macro_frame, macro_ref = self.macro_body(node, frame)
        value = self.macro_def(macro_ref, macro_frame)
        ref = frame.symbols.ref(node.name)
        if frame.toplevel:
            if not node.name.startswith("_"):
                exported = attr("context", "exported_vars", "add")
                self.emit(ast.Expr(value=call(exported, const(node.name))), node)
            context_var = subscript(attr("context", "vars"), const(node.name), ast.Store())
            self.emit(ast.Assign(targets=[context_var, store(ref)], value=value), node)
        else:
            self.emit(assign(ref, value), node)
        return False

    def visit_CallBlock(self, path: Path, frame: Frame) -> bool:
        node = path.value
        call_frame, macro_ref = self.macro_body(node, frame)
        self.emit(assign("caller", self.macro_def(macro_ref, call_frame)), node)
        # The macro result is already escaped.
        self.simple_write(self.call_expr(node.call, frame, forward_caller=True), frame, node)
        return False

    def visit_FilterBlock(self, path: Path, frame: Frame) -> bool:
        node = path.value
        filter_frame = frame.inner()
        filter_frame.symbols.analyze_node(node)
        self.enter_frame(filter_frame)
        self.buffer(filter_frame)
        self.blockvisit(node.body, filter_frame)
        value = self.filter_test_call(node.filter, filter_frame, is_filter=True)
        self.simple_write(value, frame, node)
        self.leave_frame(filter_frame)
        return False
