"""Expression compilation for the nunja code generator.

Each ``visit_<Expr>`` handler builds the Python expression for one node and
stores it in ``self._value``; callers go through ``self.expr(node, frame)``.

Lowering rules worth knowing:
    - Names read through their generated identifier and fall back to
      ``undefined(name=...)`` while still bound to ``missing``
    - Attribute and item access go through ``environment.getattr`` /
      ``environment.getitem`` (attribute then item, or item then attribute)
    - Calls go through ``context.call`` so ``pass_context`` callables work
    - Comparisons stay one Python ``Compare``: ``a < b < c`` evaluates ``b``
      once
    - In async mode calls, lookups, filters and tests are wrapped in
      ``await auto_await(...)``

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from nunja.compiler.idtracking import VAR_LOAD_PARAMETER
from nunja.compiler.utils import (
    BINOP_TO_AST,
    BOOLOP_TO_AST,
    CMPOP_TO_AST,
    UNARYOP_TO_AST,
    attr,
    await_,
    call,
    const,
    const_to_ast,
    is_missing,
    is_python_keyword,
    kw,
    name,
    subscript,
)
from nunja.compiler.const import Impossible, to_const
from nunja.utils import PassArg

if TYPE_CHECKING:
    from nunja.analysis.path import Path
    from nunja.compiler.frame import Frame
    from nunja.nodes.base import Node


class ExpressionCompilationMixin:
    """Mixin for compiling expression nodes to Python expressions.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        environment: Any
        is_async: bool
        filters: dict[str, str]
        tests: dict[str, str]
        import_aliases: dict[str, str]
        _value: ast.expr | None
        _assign_stack: list[set[str]]

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def fail(self, msg: str, lineno: int) -> Any: ...
        def position(self, node: Node) -> str: ...
        def get_context_ref(self) -> ast.expr: ...
        def derive_context(self, frame: Frame) -> ast.expr: ...
        def parameter_is_undeclared(self, target: str) -> bool: ...

    def _maybe_await(self, value: ast.expr) -> ast.expr:
        if self.is_async:
            return await_(call("auto_await", value))
        return value

    # ─────────────────────────────────────────────────────────────────────────
    # Names
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Name(self, path: Path, frame: Frame) -> bool:
        node = path.value
        if node.ctx == "store" and frame.toplevel and self._assign_stack:
            self._assign_stack[-1].add(node.name)
        ref = frame.symbols.ref(node.name)

        if node.ctx in ("store", "param"):
            self._value = ast.Name(id=ref, ctx=ast.Store())
            return False

        # Parameters are always bound, except while their own default
        # expression (or an earlier one) is evaluated.
        load = frame.symbols.find_load(ref)
        if (
            load is not None
            and load[0] == VAR_LOAD_PARAMETER
            and not self.parameter_is_undeclared(ref)
        ):
            self._value = name(ref)
            return False
        self._value = ast.IfExp(
            test=is_missing(name(ref)),
            body=call("undefined", keywords=[kw("name", const(node.name))]),
            orelse=name(ref),
        )
        return False

    def visit_NSRef(self, path: Path, frame: Frame) -> bool:
        # Only valid as a set target; a plain ``ns.attr`` read is a Getattr.
        node = path.value
        ref = frame.symbols.ref(node.name)
        self.emit(
            ast.If(
                test=ast.UnaryOp(
                    op=ast.Not(),
                    operand=call("isinstance", name(ref), name("Namespace")),
                ),
                body=[
                    ast.Raise(
                        exc=call(
                            "TemplateRuntimeError",
                            const("cannot assign attribute on non-namespace object"),
                        ),
                        cause=None,
                    )
                ],
                orelse=[],
            ),
            node,
        )
        self._value = subscript(name(ref), const(node.attr), ast.Store())
        return False

    def visit_InternalName(self, path: Path, frame: Frame) -> bool:
        self._value = name(path.value.name)
        return False

    def visit_ImportedName(self, path: Path, frame: Frame) -> bool:
        self._value = name(self.import_aliases[path.value.importname])
        return False

    def visit_EnvironmentAttribute(self, path: Path, frame: Frame) -> bool:
        self._value = attr("environment", path.value.name)
        return False

    def visit_ExtensionAttribute(self, path: Path, frame: Frame) -> bool:
        node = path.value
        extension = subscript(attr("environment", "extensions"), const(node.identifier))
        self._value = attr(extension, node.name)
        return False

    def visit_ContextReference(self, path: Path, frame: Frame) -> bool:
        self._value = self.get_context_ref()
        return False

    def visit_DerivedContextReference(self, path: Path, frame: Frame) -> bool:
        self._value = self.derive_context(frame)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Literals
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Const(self, path: Path, frame: Frame) -> bool:
        value = path.value.value
        try:
            self._value = const_to_ast(value)
        except Impossible:
            self._value = const(value)
        return False

    def visit_TemplateData(self, path: Path, frame: Frame) -> bool:
        node = path.value
        try:
            self._value = const_to_ast(to_const(node, frame.eval_ctx))
        except Impossible:
            self._value = call(
                ast.IfExp(
                    test=attr("context", "eval_ctx", "autoescape"),
                    body=name("Markup"),
                    orelse=name("identity"),
                ),
                const(node.data),
            )
        return False

    def visit_Tuple(self, path: Path, frame: Frame) -> bool:
        node = path.value
        ctx = ast.Store() if node.ctx in ("store", "param") else ast.Load()
        self._value = ast.Tuple(elts=[self.expr(item, frame) for item in node.items], ctx=ctx)
        return False

    def visit_List(self, path: Path, frame: Frame) -> bool:
        items = [self.expr(item, frame) for item in path.value.items]
        self._value = ast.List(elts=items, ctx=ast.Load())
        return False

    def visit_Dict(self, path: Path, frame: Frame) -> bool:
        keys: list[ast.expr | None] = []
        values: list[ast.expr] = []
        for pair in path.value.items:
            keys.append(self.expr(pair.key, frame))
            values.append(self.expr(pair.value, frame))
        self._value = ast.Dict(keys=keys, values=values)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Operators
    # ─────────────────────────────────────────────────────────────────────────

    def visit_BinExpr(self, path: Path, frame: Frame) -> bool:
        node = path.value
        left = self.expr(node.left, frame)
        right = self.expr(node.right, frame)
        if node.operator in BOOLOP_TO_AST:
            self._value = ast.BoolOp(op=BOOLOP_TO_AST[node.operator](), values=[left, right])
        else:
            self._value = ast.BinOp(left=left, op=BINOP_TO_AST[node.operator](), right=right)
        return False

    def visit_UnaryExpr(self, path: Path, frame: Frame) -> bool:
        node = path.value
        operand = self.expr(node.node, frame)
        self._value = ast.UnaryOp(op=UNARYOP_TO_AST[node.operator](), operand=operand)
        return False

    def visit_Compare(self, path: Path, frame: Frame) -> bool:
        node = path.value
        self._value = ast.Compare(
            left=self.expr(node.expr, frame),
            ops=[CMPOP_TO_AST[operand.op]() for operand in node.ops],
            comparators=[self.expr(operand.expr, frame) for operand in node.ops],
        )
        return False

    def visit_Concat(self, path: Path, frame: Frame) -> bool:
        node = path.value
        func: ast.expr
        if frame.eval_ctx.volatile:
            func = ast.IfExp(
                test=attr("context", "eval_ctx", "autoescape"),
                body=name("markup_join"),
                orelse=name("str_join"),
            )
        elif frame.eval_ctx.autoescape:
            func = name("markup_join")
        else:
            func = name("str_join")
        items = ast.Tuple(elts=[self.expr(child, frame) for child in node.nodes], ctx=ast.Load())
        self._value = call(func, items)
        return False

    def visit_CondExpr(self, path: Path, frame: Frame) -> bool:
        node = path.value
        frame = frame.soft()
        test = self.expr(node.test, frame)
        body = self.expr(node.expr1, frame)
        if node.expr2 is not None:
            orelse = self.expr(node.expr2, frame)
        else:
            orelse = call(
                "cond_expr_undefined",
                const(
                    f"the inline if-expression on {self.position(node)} evaluated"
                    " to false and no else section was defined."
                ),
            )
        self._value = ast.IfExp(test=test, body=body, orelse=orelse)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Access
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Getattr(self, path: Path, frame: Frame) -> bool:
        node = path.value
        lookup = call(
            attr("environment", "getattr"), self.expr(node.node, frame), const(node.attr)
        )
        self._value = self._maybe_await(lookup)
        return False

    def visit_Getitem(self, path: Path, frame: Frame) -> bool:
        node = path.value
        # Slices stay native subscripts.
        if node.arg.type == "Slice":
            self._value = subscript(self.expr(node.node, frame), self.expr(node.arg, frame))
            return False
        lookup = call(
            attr("environment", "getitem"),
            self.expr(node.node, frame),
            self.expr(node.arg, frame),
        )
        self._value = self._maybe_await(lookup)
        return False

    def visit_Slice(self, path: Path, frame: Frame) -> bool:
        node = path.value

        def bound(value: Node | None) -> ast.expr | None:
            return None if value is None else self.expr(value, frame)

        self._value = ast.Slice(lower=bound(node.start), upper=bound(node.stop), step=bound(node.step))
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Calls, filters and tests
    # ─────────────────────────────────────────────────────────────────────────

    def signature(
        self,
        node: Node,
        frame: Frame,
        extra_kwargs: dict[str, ast.expr] | None = None,
    ) -> tuple[list[ast.expr], list[ast.keyword]]:
        """Positional and keyword arguments of a call, filter or test.

        Keyword names that are Python keywords (``{{ f(class='x') }}``) are
        passed through a ``**{...}`` mapping.
        """
        extra_kwargs = extra_kwargs or {}
        args: list[ast.expr] = [self.expr(arg, frame) for arg in node.args]
        if node.dyn_args is not None:
            args.append(ast.Starred(value=self.expr(node.dyn_args, frame), ctx=ast.Load()))

        kwarg_workaround = any(
            is_python_keyword(key)
            for key in [kwarg.key for kwarg in node.kwargs] + list(extra_kwargs)
        )
        keywords: list[ast.keyword] = []
        if kwarg_workaround:
            mapping = ast.Dict(keys=[], values=[])
            for kwarg in node.kwargs:
                mapping.keys.append(const(kwarg.key))
                mapping.values.append(self.expr(kwarg.value, frame))
            for key, value in extra_kwargs.items():
                mapping.keys.append(const(key))
                mapping.values.append(value)
            keywords.append(kw(None, mapping))
        else:
            for kwarg in node.kwargs:
                keywords.append(kw(kwarg.key, self.expr(kwarg.value, frame)))
            for key, value in extra_kwargs.items():
                keywords.append(kw(key, value))
        if node.dyn_kwargs is not None:
            keywords.append(kw(None, self.expr(node.dyn_kwargs, frame)))
        return args, keywords

    def call_expr(self, node: Node, frame: Frame, forward_caller: bool = False) -> ast.expr:
        """``context.call(func, ...)``, optionally passing ``caller=caller``."""
        func = self.expr(node.node, frame)
        extra = {"caller": name("caller")} if forward_caller else None
        args, keywords = self.signature(node, frame, extra)
        value = call(attr("context", "call"), func, *args, keywords=keywords)
        return self._maybe_await(value)

    def visit_Call(self, path: Path, frame: Frame) -> bool:
        self._value = self.call_expr(path.value, frame)
        return False

    def _pass_arg_expr(self, func: Any) -> ast.expr | None:
        pass_arg = PassArg.from_obj(func)
        if pass_arg is PassArg.context:
            return name("context")
        if pass_arg is PassArg.eval_context:
            return attr("context", "eval_ctx")
        if pass_arg is PassArg.environment:
            return name("environment")
        return None

    def filter_arg(self, node: Node, frame: Frame) -> ast.expr:
        """Value a filter is applied to; a filter block filters its buffer."""
        if node.node is not None:
            return self.expr(node.node, frame)
        assert frame.buffer is not None
        joined = call("concat", name(frame.buffer))
        if frame.eval_ctx.volatile:
            return ast.IfExp(
                test=attr("context", "eval_ctx", "autoescape"),
                body=call("Markup", joined),
                orelse=joined,
            )
        if frame.eval_ctx.autoescape:
            return call("Markup", joined)
        return joined

    def filter_test_call(self, node: Node, frame: Frame, is_filter: bool) -> ast.expr:
        if is_filter:
            func = self.environment.filters.get(node.name)
            ident = self.filters[node.name]
        else:
            func = self.environment.tests.get(node.name)
            ident = self.tests[node.name]

        # Inside if and inline if an unknown filter or test only fails when
        # it actually runs.
        if func is None and not frame.soft_frame:
            kind = "filter" if is_filter else "test"
            self.fail(f"No {kind} named {node.name!r}.", node.lineno)

        args: list[ast.expr] = []
        pass_arg = self._pass_arg_expr(func)
        if pass_arg is not None:
            args.append(pass_arg)
        if is_filter:
            args.append(self.filter_arg(node, frame))
        else:
            args.append(self.expr(node.node, frame))
        extra_args, keywords = self.signature(node, frame)
        return self._maybe_await(call(ident, *args, *extra_args, keywords=keywords))

    def visit_Filter(self, path: Path, frame: Frame) -> bool:
        self._value = self.filter_test_call(path.value, frame, is_filter=True)
        return False

    def visit_Test(self, path: Path, frame: Frame) -> bool:
        self._value = self.filter_test_call(path.value, frame, is_filter=False)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Markup
    # ─────────────────────────────────────────────────────────────────────────

    def visit_MarkSafe(self, path: Path, frame: Frame) -> bool:
        self._value = call("Markup", self.expr(path.value.expr, frame))
        return False

    def visit_MarkSafeIfAutoescape(self, path: Path, frame: Frame) -> bool:
        wrapper = ast.IfExp(
            test=attr("context", "eval_ctx", "autoescape"),
            body=name("Markup"),
            orelse=name("identity"),
        )
        self._value = call(wrapper, self.expr(path.value.expr, frame))
        return False
