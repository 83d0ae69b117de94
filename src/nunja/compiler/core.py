"""nunja Code Generator core.

The CodeGenerator lowers a nunja template AST into a Python `ast.Module`
that is compiled straight to a code object. It is a `PathVisitor`: every
node type has a ``visit_<Type>(path, frame)`` handler, statement handlers
emit Python statements into the current body and expression handlers leave
their Python expression in ``self._value`` (read back through `expr`).

Generated module layout:

    ```python
    from nunja.template import Markup, escape, LoopContext, ...
    name = 'page.html'

    def root(context, missing=missing, environment=environment):
        resolve = context.resolve_or_missing
        undefined = environment.undefined
        ...
        yield 'Hello '
        yield escape(...)

    def block_title(context, missing=missing, environment=environment):
        ...

    blocks = {'title': block_title}
    ```

With ``enable_async`` the functions are async generators and every call,
attribute lookup, filter and test result goes through ``auto_await``.

Line Tracking:
    Every emitted statement carries the template line of the node that
    produced it as its Python ``lineno``. Tracebacks through generated code
    therefore point straight at template lines; no separate line map exists.

"""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, NamedTuple, NoReturn

from nunja import nodes
from nunja.analysis.dependencies import DependencyFinderVisitor, find_undeclared
from nunja.analysis.path import Path
from nunja.analysis.visitor import PathVisitor
from nunja.compiler.const import Impossible, to_const
from nunja.compiler.expressions import ExpressionCompilationMixin
from nunja.compiler.frame import Frame
from nunja.compiler.idtracking import (
    VAR_LOAD_ALIAS,
    VAR_LOAD_PARAMETER,
    VAR_LOAD_RESOLVE,
    VAR_LOAD_UNDEFINED,
)
from nunja.compiler.output import OutputCompilationMixin
from nunja.compiler.statements import StatementCompilationMixin
from nunja.compiler.utils import (
    CompilerExit,
    arguments,
    assign,
    attr,
    call,
    const,
    const_to_ast,
    function_def,
    if_,
    name,
    store,
    subscript,
    yield_,
)
from nunja.environment.exceptions import ErrorCode, TemplateAssertionError
from nunja.template.context import EvalContext
from nunja.utils import PassArg

if TYPE_CHECKING:
    from nunja.environment import Environment
    from nunja.nodes.base import Node

logger = logging.getLogger(__name__)

# Names the generated module imports from nunja.template.
RUNTIME_NAMES = (
    "AsyncLoopContext",
    "LoopContext",
    "Macro",
    "Markup",
    "Namespace",
    "TemplateNotFoundError",
    "TemplateReference",
    "TemplateRuntimeError",
    "Undefined",
    "auto_aiter",
    "auto_await",
    "escape",
    "identity",
    "markup_join",
    "missing",
    "str_join",
)

# Expressions never worth handing to the constant folder.
_NOT_FOLDED = frozenset(
    {
        "Const",
        "TemplateData",
        "Name",
        "NSRef",
        "Slice",
        "Call",
        "InternalName",
        "ImportedName",
        "EnvironmentAttribute",
        "ExtensionAttribute",
        "ContextReference",
        "DerivedContextReference",
    }
)


class FinalizeInfo(NamedTuple):
    """How output values are finalized.

    Attributes:
        const: Compile-time finalizer for folded constants, None when
            finalizing needs the render context
        pass_arg: What ``environment.finalize`` wants as first argument
        enabled: An ``environment.finalize`` callable is configured
    """

    const: Any
    pass_arg: PassArg | None
    enabled: bool


class CodeGenerator(
    ExpressionCompilationMixin,
    OutputCompilationMixin,
    StatementCompilationMixin,
    PathVisitor,
):
    """Lower a ``Template`` node to a Python module.

    Attributes:
        environment: Environment the template is compiled for
        name: Template name (error messages, ``self.name`` in templates)
        filename: Source filename, used as the code object filename
        optimized: Fold constant expressions at compile time
        blocks: Block name -> ``Block`` node, collected up front
        extends_so_far: ``{% extends %}`` tags compiled so far
        has_known_extends: An extends at root level was compiled; the rest
            of the root body cannot produce output
        filters / tests: Name -> generated identifier of pulled dependencies

    Example:
        >>> from nunja import Environment
        >>> env = Environment()
        >>> module = CodeGenerator(env, "hello", None).compile(env.parse("Hi {{ x }}"))
        >>> print(ast.unparse(module))  # doctest: +ELLIPSIS
        from nunja.template import ...
    """

    def __init__(
        self,
        environment: Environment,
        name: str | None,
        filename: str | None,
        optimized: bool = True,
    ):
        super().__init__()
        self.environment = environment
        self.name = name
        self.filename = filename
        self.optimized = optimized
        self.is_async = environment.is_async

        self.import_aliases: dict[str, str] = {}
        self.blocks: dict[str, Node] = {}
        self.extends_so_far = 0
        self.has_known_extends = False
        self.filters: dict[str, str] = {}
        self.tests: dict[str, str] = {}

        self._last_identifier = 0
        self._lineno = 1
        self._module_body: list[ast.stmt] = []
        self._body = self._module_body
        self._value: ast.expr | None = None
        # Names assigned by the set tags currently being compiled.
        self._assign_stack: list[set[str]] = []
        # Macro parameters whose default has not been evaluated yet.
        self._param_def_block: list[set[str]] = []
        self._context_reference_stack = ["context"]
        self._finalize: FinalizeInfo | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────────

    def compile(self, node: Node) -> ast.Module:
        """Generate the module for a ``Template`` node."""
        if not isinstance(node, nodes.Template):
            raise TypeError(f"Can't compile non template nodes, got {node.type!r}")
        self.visit(node)
        module = ast.Module(body=self._module_body, type_ignores=[])
        ast.fix_missing_locations(module)
        logger.debug(
            "generated %d module statements for %s", len(module.body), self.name or "<template>"
        )
        return module

    # ─────────────────────────────────────────────────────────────────────────
    # Emission
    # ─────────────────────────────────────────────────────────────────────────

    def visit_without_reset(self, path: Path, state: Any = None) -> Any:
        value = path.value
        if isinstance(value, nodes.Node) and value.loc is not None:
            self._lineno = value.lineno
        return super().visit_without_reset(path, state)

    def emit(self, stmt: ast.stmt, node: Node | None = None) -> None:
        """Append ``stmt`` to the current body, located at the template line."""
        lineno = node.lineno if node is not None and node.loc is not None else self._lineno
        stmt.lineno = stmt.end_lineno = lineno
        stmt.col_offset = stmt.end_col_offset = 0
        self._body.append(stmt)

    def emit_all(self, stmts: Iterable[ast.stmt]) -> None:
        """Append statements that were already emitted into a detached body."""
        self._body.extend(stmts)

    @contextmanager
    def _block(self) -> Iterator[list[ast.stmt]]:
        """Redirect emission into a fresh statement list (a compound body)."""
        body: list[ast.stmt] = []
        saved = self._body
        self._body = body
        try:
            yield body
        finally:
            self._body = saved

    def expr(self, node: Node, frame: Frame) -> ast.expr:
        """Compile an expression node and return its Python expression."""
        if (
            self.optimized
            and node.type not in _NOT_FOLDED
            and getattr(node, "ctx", "load") == "load"
        ):
            try:
                return const_to_ast(to_const(node, frame.eval_ctx))
            except Impossible:
                pass
        self._value = None
        self.visit(node, frame)
        value, self._value = self._value, None
        if value is None:
            raise NotImplementedError(f"{node.type!r} did not produce an expression")
        return value

    def generic_visit(self, path: Path, state: Any) -> Any:
        raise NotImplementedError(f"Cannot compile node type {path.value.type!r}")

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def fail(self, msg: str, lineno: int) -> NoReturn:
        """Raise a `TemplateAssertionError` at ``lineno``."""
        raise TemplateAssertionError(
            msg, lineno, self.name, self.filename, code=ErrorCode.ASSERTION
        )

    def temporary_identifier(self) -> str:
        self._last_identifier += 1
        return f"t_{self._last_identifier}"

    def position(self, node: Node) -> str:
        rv = f"line {node.lineno}"
        if self.name is not None:
            rv = f"{rv} in {self.name!r}"
        return rv

    def blockvisit(self, body: list[Node], frame: Frame) -> None:
        """Compile a statement list; a `CompilerExit` ends it early."""
        try:
            for node in body:
                self.visit(node, frame)
        except CompilerExit:
            pass

    def buffer(self, frame: Frame) -> None:
        """Make ``frame`` collect output in a fresh list."""
        frame.buffer = self.temporary_identifier()
        self.emit(assign(frame.buffer, ast.List(elts=[], ctx=ast.Load())))

    def return_buffer_contents(self, frame: Frame, force_unescaped: bool = False) -> None:
        assert frame.buffer is not None
        joined = call("concat", name(frame.buffer))
        if not force_unescaped:
            if frame.eval_ctx.volatile:
                self.emit(
                    if_(
                        attr("context", "eval_ctx", "autoescape"),
                        [ast.Return(value=call("Markup", joined))],
                        [ast.Return(value=joined)],
                    )
                )
                return
            if frame.eval_ctx.autoescape:
                self.emit(ast.Return(value=call("Markup", joined)))
                return
        self.emit(ast.Return(value=joined))

    def write_commons(self) -> None:
        """Locals every generated render function starts with."""
        self.emit(assign("resolve", attr("context", "resolve_or_missing")))
        self.emit(assign("undefined", attr("environment", "undefined")))
        self.emit(assign("concat", attr("environment", "concat")))
        # The implicit else of an inline if always uses the plain Undefined.
        self.emit(assign("cond_expr_undefined", name("Undefined")))
        # Makes the function a generator even when it never outputs.
        self.emit(if_(const(0), [yield_(const(None))]))

    def render_function(self, func_name: str, body: list[ast.stmt], node: Node | None = None) -> None:
        """Emit ``def func_name(context, missing=missing, environment=environment)``."""
        args = arguments(
            "context",
            "missing",
            "environment",
            defaults={"missing": name("missing"), "environment": name("environment")},
        )
        self.emit(function_def(func_name, args, body, is_async=self.is_async), node)

    # ── context references ──────────────────────────────────────────────────

    def push_context_reference(self, target: str) -> None:
        self._context_reference_stack.append(target)

    def pop_context_reference(self) -> None:
        self._context_reference_stack.pop()

    def get_context_ref(self) -> ast.expr:
        return name(self._context_reference_stack[-1])

    def get_resolve_func(self) -> ast.expr:
        target = self._context_reference_stack[-1]
        if target == "context":
            return name("resolve")
        return attr(target, "resolve_or_missing")

    def dump_local_context(self, frame: Frame) -> ast.Dict:
        """``{'x': l_0_x, ...}`` for every name stored in ``frame``."""
        items = frame.symbols.dump_stores().items()
        return ast.Dict(keys=[const(k) for k, _ in items], values=[name(v) for _, v in items])

    def derive_context(self, frame: Frame) -> ast.expr:
        return call(attr(self.get_context_ref(), "derived"), self.dump_local_context(frame))

    # ── frames ──────────────────────────────────────────────────────────────

    def enter_frame(self, frame: Frame) -> None:
        """Bind every identifier the frame loads, according to its load kind."""
        undefs: list[str] = []
        for target, (action, param) in frame.symbols.loads.items():
            if action == VAR_LOAD_PARAMETER:
                pass
            elif action == VAR_LOAD_RESOLVE:
                self.emit(assign(target, call(self.get_resolve_func(), const(param))))
            elif action == VAR_LOAD_ALIAS:
                self.emit(assign(target, name(param)))
            elif action == VAR_LOAD_UNDEFINED:
                undefs.append(target)
            else:
                raise NotImplementedError(f"unknown load instruction {action!r}")
        if undefs:
            self.emit(ast.Assign(targets=[store(t) for t in undefs], value=name("missing")))

    def leave_frame(self, frame: Frame, with_python_scope: bool = False) -> None:
        """Reset the frame's identifiers unless its Python scope ends here."""
        if not with_python_scope:
            undefs = list(frame.symbols.loads)
            if undefs:
                self.emit(ast.Assign(targets=[store(t) for t in undefs], value=name("missing")))

    # ── parameter bookkeeping (macro defaults) ──────────────────────────────

    def push_parameter_definitions(self, frame: Frame) -> None:
        self._param_def_block.append(frame.symbols.dump_param_targets())

    def pop_parameter_definitions(self) -> None:
        self._param_def_block.pop()

    def mark_parameter_stored(self, target: str) -> None:
        if self._param_def_block:
            self._param_def_block[-1].discard(target)

    def parameter_is_undeclared(self, target: str) -> bool:
        if not self._param_def_block:
            return False
        return target in self._param_def_block[-1]

    # ── assignment tracking (exports of top-level set) ──────────────────────

    def push_assign_tracking(self) -> None:
        self._assign_stack.append(set())

    def pop_assign_tracking(self, frame: Frame) -> None:
        """Mirror names assigned at top level into ``context.vars``."""
        assigned = self._assign_stack.pop()
        if not frame.toplevel or not assigned:
            return
        names = sorted(assigned)
        public_names = [x for x in names if not x.startswith("_")]
        context_vars = attr("context", "vars")
        if len(names) == 1:
            target = subscript(context_vars, const(names[0]), ast.Store())
            self.emit(assign(target, name(frame.symbols.ref(names[0]))))
        else:
            mapping = ast.Dict(
                keys=[const(x) for x in names],
                values=[name(frame.symbols.ref(x)) for x in names],
            )
            self.emit(ast.Expr(value=call(attr(context_vars, "update"), mapping)))
        exported = attr("context", "exported_vars")
        if len(public_names) == 1:
            self.emit(ast.Expr(value=call(attr(exported, "add"), const(public_names[0]))))
        elif public_names:
            items = ast.Tuple(elts=[const(x) for x in public_names], ctx=ast.Load())
            self.emit(ast.Expr(value=call(attr(exported, "update"), items)))

    # ── dependencies ────────────────────────────────────────────────────────

    def pull_dependencies(self, body: list[Node]) -> None:
        """Bind every filter and test ``body`` uses to a local identifier.

        An unknown name becomes a function raising `TemplateRuntimeError`
        when called, so templates only fail when the code path runs.
        """
        visitor = DependencyFinderVisitor()
        for node in body:
            visitor.visit(node)

        for id_map, names, dependency in (
            (self.filters, visitor.filters, "filters"),
            (self.tests, visitor.tests, "tests"),
        ):
            for dep_name in sorted(names):
                if dep_name not in id_map:
                    id_map[dep_name] = self.temporary_identifier()
                ident = id_map[dep_name]
                missing_message = f"No {dependency[:-1]} named {dep_name!r} found."
                raiser = function_def(
                    ident,
                    ast.arguments(
                        posonlyargs=[],
                        args=[],
                        vararg=ast.arg(arg="unused"),
                        kwonlyargs=[],
                        kw_defaults=[],
                        kwarg=None,
                        defaults=[],
                    ),
                    [
                        ast.Raise(
                            exc=call("TemplateRuntimeError", const(missing_message)),
                            cause=None,
                        )
                    ],
                )
                lookup = subscript(attr("environment", dependency), const(dep_name))
                self.emit(
                    ast.Try(
                        body=[assign(ident, lookup)],
                        handlers=[
                            ast.ExceptHandler(type=name("KeyError"), name=None, body=[raiser])
                        ],
                        orelse=[],
                        finalbody=[],
                    )
                )

    # ── output finalization ─────────────────────────────────────────────────

    def make_finalize(self) -> FinalizeInfo:
        """Describe how output values pass through ``environment.finalize``."""
        if self._finalize is not None:
            return self._finalize
        env_finalize = self.environment.finalize
        if env_finalize is None:
            self._finalize = FinalizeInfo(str, None, False)
            return self._finalize

        pass_arg = PassArg.from_obj(env_finalize)
        if pass_arg is None:

            def finalize(value: Any) -> str:
                return str(env_finalize(value))

        elif pass_arg is PassArg.environment:

            def finalize(value: Any) -> str:
                return str(env_finalize(self.environment, value))

        else:
            finalize = None
        self._finalize = FinalizeInfo(finalize, pass_arg, True)
        return self._finalize

    # ─────────────────────────────────────────────────────────────────────────
    # Template
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Template(self, path: Path, state: Any) -> bool:
        node = path.value
        eval_ctx = EvalContext(self.environment, self.name)

        have_extends = node.find(nodes.Extends) is not None

        for block in node.find_all(nodes.Block):
            if block.name in self.blocks:
                self.fail(f"block {block.name!r} defined twice", block.lineno)
            self.blocks[block.name] = block

        self.emit(
            ast.ImportFrom(
                module="nunja.template",
                names=[ast.alias(name=n) for n in RUNTIME_NAMES],
                level=0,
            )
        )
        for imported in node.find_all(nodes.ImportedName):
            if imported.importname in self.import_aliases:
                continue
            module, _, obj = imported.importname.rpartition(".")
            alias = self.temporary_identifier()
            self.import_aliases[imported.importname] = alias
            self.emit(
                ast.ImportFrom(module=module, names=[ast.alias(name=obj, asname=alias)], level=0)
            )

        self.emit(assign("name", const(self.name)))

        # root render function
        frame = Frame(eval_ctx)
        with self._block() as root_body:
            self.write_commons()
            if "self" in find_undeclared(node.body, ("self",)):
                ref = frame.symbols.declare_parameter("self")
                self.emit(assign(ref, call("TemplateReference", name("context"))))
            frame.symbols.analyze_node(node)
            frame.toplevel = frame.rootlevel = True
            frame.require_output_check = have_extends and not self.has_known_extends
            if have_extends:
                self.emit(assign("parent_template", const(None)))
            self.enter_frame(frame)
            self.pull_dependencies(node.body)
            self.blockvisit(node.body, frame)
            self.leave_frame(frame, with_python_scope=True)

            if have_extends:
                render_parent = call(attr("parent_template", "root_render_func"), name("context"))
                if self.is_async:
                    tail: ast.stmt = ast.AsyncFor(
                        target=store("event"),
                        iter=render_parent,
                        body=[yield_(name("event"))],
                        orelse=[],
                    )
                else:
                    tail = ast.Expr(value=ast.YieldFrom(value=render_parent))
                if not self.has_known_extends:
                    tail = if_(
                        ast.Compare(
                            left=name("parent_template"),
                            ops=[ast.IsNot()],
                            comparators=[const(None)],
                        ),
                        [tail],
                    )
                self.emit(tail)
        self.render_function("root", root_body)

        # block render functions
        for block_name, block in self.blocks.items():
            self._compile_block_function(block_name, block, eval_ctx)

        self.emit(
            assign(
                "blocks",
                ast.Dict(
                    keys=[const(x) for x in self.blocks],
                    values=[name(f"block_{x}") for x in self.blocks],
                ),
            )
        )
        return False

    def _compile_block_function(self, block_name: str, block: Node, eval_ctx: EvalContext) -> None:
        # Not a child of the root frame: blocks resolve names on their own.
        block_frame = Frame(eval_ctx)
        block_frame.block_frame = True
        with self._block() as body:
            self.write_commons()
            undeclared = find_undeclared(block.body, ("self", "super"))
            if "self" in undeclared:
                ref = block_frame.symbols.declare_parameter("self")
                self.emit(assign(ref, call("TemplateReference", name("context"))))
            if "super" in undeclared:
                ref = block_frame.symbols.declare_parameter("super")
                self.emit(
                    assign(
                        ref,
                        call(attr("context", "super"), const(block_name), name(f"block_{block_name}")),
                    )
                )
            block_frame.symbols.analyze_node(block)
            block_frame.block = block_name
            self.enter_frame(block_frame)
            self.pull_dependencies(block.body)
            self.blockvisit(block.body, block_frame)
            self.leave_frame(block_frame, with_python_scope=True)
        self.render_function(f"block_{block_name}", body, block)
