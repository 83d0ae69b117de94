"""Python AST construction helpers and operator tables for the compiler.

The generator builds `ast` nodes directly; these helpers keep the common
shapes (names, attribute chains, calls, assignments) short:

    >>> ast.unparse(call(attr("context", "vars", "get"), const("x")))
    "context.vars.get('x')"

"""

from __future__ import annotations

import ast
import keyword
from typing import Any

from markupsafe import Markup

from nunja.compiler.const import Impossible

# Template operator -> Python AST operator
BINOP_TO_AST: dict[str, type[ast.operator]] = {
    "*": ast.Mult,
    "/": ast.Div,
    "//": ast.FloorDiv,
    "**": ast.Pow,
    "%": ast.Mod,
    "+": ast.Add,
    "-": ast.Sub,
}

BOOLOP_TO_AST: dict[str, type[ast.boolop]] = {
    "and": ast.And,
    "or": ast.Or,
}

UNARYOP_TO_AST: dict[str, type[ast.unaryop]] = {
    "not": ast.Not,
    "+": ast.UAdd,
    "-": ast.USub,
}

CMPOP_TO_AST: dict[str, type[ast.cmpop]] = {
    "eq": ast.Eq,
    "ne": ast.NotEq,
    "gt": ast.Gt,
    "gteq": ast.GtE,
    "lt": ast.Lt,
    "lteq": ast.LtE,
    "in": ast.In,
    "notin": ast.NotIn,
}


class CompilerExit(Exception):
    """Stops compiling the current body.

    Raised after a second ``{% extends %}`` in a template whose parent is
    already known; nothing after it can ever run.
    """


def is_python_keyword(name: str) -> bool:
    return keyword.iskeyword(name)


def name(identifier: str) -> ast.Name:
    return ast.Name(id=identifier, ctx=ast.Load())


def store(identifier: str) -> ast.Name:
    return ast.Name(id=identifier, ctx=ast.Store())


def const(value: Any) -> ast.Constant:
    return ast.Constant(value=value)


def attr(value: str | ast.expr, *attrs: str) -> ast.expr:
    """``value.a.b``; a string ``value`` is a name."""
    node = name(value) if isinstance(value, str) else value
    for item in attrs:
        node = ast.Attribute(value=node, attr=item, ctx=ast.Load())
    return node


def subscript(value: ast.expr, index: ast.expr, ctx: ast.expr_context | None = None) -> ast.Subscript:
    return ast.Subscript(value=value, slice=index, ctx=ctx or ast.Load())


def call(
    func: str | ast.expr,
    *args: ast.expr,
    keywords: list[ast.keyword] | None = None,
) -> ast.Call:
    return ast.Call(
        func=name(func) if isinstance(func, str) else func,
        args=list(args),
        keywords=keywords or [],
    )


def kw(arg: str | None, value: ast.expr) -> ast.keyword:
    """Keyword argument; ``arg=None`` is ``**value``."""
    return ast.keyword(arg=arg, value=value)


def assign(target: str | ast.expr, value: ast.expr) -> ast.Assign:
    return ast.Assign(
        targets=[store(target) if isinstance(target, str) else target],
        value=value,
    )


def yield_(value: ast.expr) -> ast.Expr:
    return ast.Expr(value=ast.Yield(value=value))


def await_(value: ast.expr) -> ast.Await:
    return ast.Await(value=value)


def if_(test: ast.expr, body: list[ast.stmt], orelse: list[ast.stmt] | None = None) -> ast.If:
    return ast.If(test=test, body=body or [ast.Pass()], orelse=orelse or [])


def is_missing(value: ast.expr) -> ast.Compare:
    """``value is missing``."""
    return ast.Compare(left=value, ops=[ast.Is()], comparators=[name("missing")])


def arguments(*names: str, defaults: dict[str, ast.expr] | None = None) -> ast.arguments:
    """Positional parameters; ``defaults`` apply to trailing names."""
    defaults = defaults or {}
    return ast.arguments(
        posonlyargs=[],
        args=[ast.arg(arg=n) for n in names],
        vararg=None,
        kwonlyargs=[],
        kw_defaults=[],
        kwarg=None,
        defaults=[defaults[n] for n in names if n in defaults],
    )


def function_def(
    func_name: str,
    args: ast.arguments,
    body: list[ast.stmt],
    is_async: bool = False,
    decorators: list[ast.expr] | None = None,
) -> ast.FunctionDef | ast.AsyncFunctionDef:
    cls = ast.AsyncFunctionDef if is_async else ast.FunctionDef
    return cls(
        name=func_name,
        args=args,
        body=body or [ast.Pass()],
        decorator_list=decorators or [],
        returns=None,
        type_params=[],
    )


def for_(
    target: ast.expr,
    iter_: ast.expr,
    body: list[ast.stmt],
    orelse: list[ast.stmt] | None = None,
    is_async: bool = False,
) -> ast.For | ast.AsyncFor:
    cls = ast.AsyncFor if is_async else ast.For
    return cls(target=target, iter=iter_, body=body or [ast.Pass()], orelse=orelse or [])


def to_store(node: ast.expr) -> ast.expr:
    """Copy of a name/tuple load expression usable as an assignment target."""
    if isinstance(node, ast.Name):
        return store(node.id)
    if isinstance(node, ast.Tuple):
        return ast.Tuple(elts=[to_store(e) for e in node.elts], ctx=ast.Store())
    raise TypeError(f"cannot assign to {ast.dump(node)}")


def to_load(node: ast.expr) -> ast.expr:
    """Copy of a name/tuple target usable as a load expression."""
    if isinstance(node, ast.Name):
        return name(node.id)
    if isinstance(node, ast.Tuple):
        return ast.Tuple(elts=[to_load(e) for e in node.elts], ctx=ast.Load())
    if isinstance(node, ast.Subscript):
        return subscript(to_load(node.value), node.slice)
    raise TypeError(f"cannot load {ast.dump(node)}")


def const_to_ast(value: Any) -> ast.expr:
    """Literal expression for a folded constant.

    Raises `Impossible` for values without a faithful literal form.
    """
    if value is None or type(value) in (bool, int, float, complex, str, bytes):
        return const(value)
    if type(value) is Markup:
        return call("Markup", const(str(value)))
    if type(value) is tuple:
        return ast.Tuple(elts=[const_to_ast(v) for v in value], ctx=ast.Load())
    if type(value) is list:
        return ast.List(elts=[const_to_ast(v) for v in value], ctx=ast.Load())
    if type(value) is dict:
        keys: list[ast.expr | None] = [const_to_ast(k) for k in value]
        return ast.Dict(keys=keys, values=[const_to_ast(v) for v in value.values()])
    raise Impossible()
