"""Template structure statement compilation for the nunja code generator.

Provides the mixin for ``{% extends %}``, ``{% block %}``, ``{% include %}``,
``{% import %}`` and ``{% from ... import %}``.

Inheritance works at render time: ``{% extends %}`` loads the parent and
appends its block functions to ``context.blocks``; the root function then
hands rendering over to ``parent_template.root_render_func``. A block call
always goes through ``context.blocks[name][0]``, the most derived override.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from nunja import nodes
from nunja.compiler.utils import (
    CompilerExit,
    assign,
    attr,
    await_,
    call,
    const,
    for_,
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


class TemplateStructureMixin:
    """Mixin for compiling inheritance, includes and imports.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        is_async: bool
        name: str | None
        extends_so_far: int
        has_known_extends: bool

        def expr(self, node: Node, frame: Frame) -> ast.expr: ...
        def emit(self, stmt: ast.stmt, node: Node | None = None) -> None: ...
        def _block(self) -> Any: ...
        def fail(self, msg: str, lineno: int) -> Any: ...
        def position(self, node: Node) -> str: ...
        def temporary_identifier(self) -> str: ...
        def simple_write(self, value: ast.expr, frame: Frame, node: Node | None = None) -> None: ...
        def write_stmt(self, value: ast.expr, frame: Frame) -> ast.stmt: ...
        def parent_template_is_none(self) -> ast.expr: ...
        def get_context_ref(self) -> ast.expr: ...
        def derive_context(self, frame: Frame) -> ast.expr: ...
        def dump_local_context(self, frame: Frame) -> ast.Dict: ...

    def _write_events(self, events: ast.expr, frame: Frame, node: Node) -> None:
        """Pass every event of a render stream on to the current output.

        Sync unbuffered code uses ``yield from``. Python has no ``yield from``
        inside ``async def``, so async code loops with ``async for``.
        """
        if not self.is_async and frame.buffer is None:
            self.emit(ast.Expr(value=ast.YieldFrom(value=events)), node)
            return
        body = [self.write_stmt(name("event"), frame)]
        self.emit(for_(store("event"), events, body, is_async=self.is_async), node)

    def _get_template_call(self, method: str, node: Node, frame: Frame) -> ast.expr:
        """``environment.<method>(<template expr>, <this template's name>)``."""
        return call(
            attr("environment", method),
            self.expr(node.template, frame),
            const(self.name),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Inheritance
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Extends(self, path: Path, frame: Frame) -> bool:
        node = path.value
        if not frame.toplevel:
            self.fail("cannot use extend from a non top-level scope", node.lineno)

        if self.extends_so_far > 0:
            raise_stmt = ast.Raise(
                exc=call("TemplateRuntimeError", const("extended multiple times")), cause=None
            )
            if self.has_known_extends:
                self.emit(raise_stmt, node)
                # Nothing after a second unconditional extends can run.
                raise CompilerExit()
            not_none = ast.Compare(
                left=name("parent_template"), ops=[ast.IsNot()], comparators=[const(None)]
            )
            self.emit(if_(not_none, [raise_stmt]), node)

        self.emit(assign("parent_template", self._get_template_call("get_template", node, frame)), node)
        register = ast.Expr(
            value=call(
                attr(
                    call(
                        attr("context", "blocks", "setdefault"),
                        name("block_name"),
                        ast.List(elts=[], ctx=ast.Load()),
                    ),
                    "append",
                ),
                name("parent_block"),
            )
        )
        target = ast.Tuple(elts=[store("block_name"), store("parent_block")], ctx=ast.Store())
        blocks = call(attr("parent_template", "blocks", "items"))
        self.emit(for_(target, blocks, [register]), node)

        # Only an extends outside any conditional settles the parent.
        if frame.rootlevel:
            self.has_known_extends = True
        self.extends_so_far += 1
        return False

    def visit_Block(self, path: Path, frame: Frame) -> bool:
        node = path.value
        guard_output = False
        if frame.toplevel:
            # The parent renders this block; rendering it here would
            # duplicate it.
            if self.has_known_extends:
                return False
            guard_output = self.extends_so_far > 0

        with self._block() as body:
            context = self.derive_context(frame) if node.scoped else self.get_context_ref()
            block_list = subscript(attr("context", "blocks"), const(node.name))
            if node.required:
                too_few = ast.Compare(
                    left=call("len", block_list), ops=[ast.LtE()], comparators=[const(1)]
                )
                message = f"Required block {node.name!r} not found"
                self.emit(
                    if_(
                        too_few,
                        [ast.Raise(exc=call("TemplateRuntimeError", const(message)), cause=None)],
                    ),
                    node,
                )
            render = call(subscript(block_list, const(0)), context)
            self._write_events(render, frame, node)

        if guard_output:
            self.emit(if_(self.parent_template_is_none(), body), node)
        else:
            for stmt in body:
                self.emit(stmt, node)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Include
    # ─────────────────────────────────────────────────────────────────────────

    def visit_Include(self, path: Path, frame: Frame) -> bool:
        node = path.value
        method = "get_or_select_template"
        if isinstance(node.template, nodes.Const):
            if isinstance(node.template.value, str):
                method = "get_template"
            elif isinstance(node.template.value, (tuple, list)):
                method = "select_template"
        elif isinstance(node.template, (nodes.Tuple, nodes.List)):
            method = "select_template"

        template = self.temporary_identifier()
        lookup = assign(template, self._get_template_call(method, node, frame))

        with self._block() as render_body:
            if node.with_context:
                new_context = call(
                    attr(template, "new_context"),
                    call(attr("context", "get_all")),
                    const(True),
                    self.dump_local_context(frame),
                )
                events: ast.expr = call(attr(template, "root_render_func"), new_context)
            elif self.is_async:
                module = await_(call(attr(template, "_get_default_module_async")))
                events = attr(module, "_body_stream")
            else:
                events = attr(call(attr(template, "_get_default_module")), "_body_stream")
            if self.is_async and not node.with_context:
                # The module body is a plain list even in async mode.
                write = [self.write_stmt(name("event"), frame)]
                self.emit(for_(store("event"), events, write), node)
            else:
                self._write_events(events, frame, node)

        if node.ignore_missing:
            lookup.lineno = lookup.end_lineno = node.lineno
            lookup.col_offset = lookup.end_col_offset = 0
            self.emit(
                ast.Try(
                    body=[lookup],
                    handlers=[
                        ast.ExceptHandler(
                            type=name("TemplateNotFoundError"), name=None, body=[ast.Pass()]
                        )
                    ],
                    orelse=render_body,
                    finalbody=[],
                ),
                node,
            )
        else:
            self.emit(lookup, node)
            for stmt in render_body:
                self.emit(stmt, node)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Imports
    # ─────────────────────────────────────────────────────────────────────────

    def _import_common(self, node: Node, frame: Frame) -> ast.expr:
        """The module object of the imported template."""
        template = self._get_template_call("get_template", node, frame)
        suffix = "_async" if self.is_async else ""
        if node.with_context:
            module = call(
                attr(template, f"make_module{suffix}"),
                call(attr("context", "get_all")),
                const(True),
                self.dump_local_context(frame),
            )
        else:
            module = call(attr(template, f"_get_default_module{suffix}"), name("context"))
        return await_(module) if self.is_async else module

    def visit_Import(self, path: Path, frame: Frame) -> bool:
        node = path.value
        targets: list[ast.expr] = [store(frame.symbols.ref(node.target))]
        if frame.toplevel:
            targets.insert(0, subscript(attr("context", "vars"), const(node.target), ast.Store()))
        self.emit(ast.Assign(targets=targets, value=self._import_common(node, frame)), node)
        # Imported modules are not re-exported.
        if frame.toplevel and not node.target.startswith("_"):
            discard = call(attr("context", "exported_vars", "discard"), const(node.target))
            self.emit(ast.Expr(value=discard), node)
        return False

    def visit_FromImport(self, path: Path, frame: Frame) -> bool:
        node = path.value
        module = self.temporary_identifier()
        self.emit(assign(module, self._import_common(node, frame)), node)

        var_names: list[str] = []
        discarded_names: list[str] = []
        position = self.position(node).replace("%", "%%")
        for item in node.names:
            if isinstance(item, str):
                import_name = alias = item
            else:
                import_name, alias = item
            ref = frame.symbols.ref(alias)
            self.emit(
                assign(ref, call("getattr", name(module), const(import_name), name("missing"))),
                node,
            )
            message = ast.BinOp(
                left=const(
                    f"the template %r (imported on {position}) does not export"
                    f" the requested name {import_name!r}"
                ),
                op=ast.Mod(),
                right=ast.Tuple(elts=[attr(module, "__name__")], ctx=ast.Load()),
            )
            self.emit(
                if_(
                    is_missing(name(ref)),
                    [assign(ref, call("undefined", message, keywords=[kw("name", const(import_name))]))],
                ),
                node,
            )
            if frame.toplevel:
                var_names.append(alias)
                if not alias.startswith("_"):
                    discarded_names.append(alias)

        context_vars = attr("context", "vars")
        if len(var_names) == 1:
            target = subscript(context_vars, const(var_names[0]), ast.Store())
            self.emit(assign(target, name(frame.symbols.ref(var_names[0]))), node)
        elif var_names:
            mapping = ast.Dict(
                keys=[const(x) for x in var_names],
                values=[name(frame.symbols.ref(x)) for x in var_names],
            )
            self.emit(ast.Expr(value=call(attr(context_vars, "update"), mapping)), node)

        exported = attr("context", "exported_vars")
        if len(discarded_names) == 1:
            self.emit(
                ast.Expr(value=call(attr(exported, "discard"), const(discarded_names[0]))), node
            )
        elif discarded_names:
            items = ast.Tuple(elts=[const(x) for x in discarded_names], ctx=ast.Load())
            self.emit(ast.Expr(value=call(attr(exported, "difference_update"), items)), node)
        return False
