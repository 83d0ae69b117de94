"""Compile-time constant folding.

`to_const` evaluates a side-effect-free expression subtree to a Python value.
It is a best-effort optimization: whenever a value cannot be known at compile
time it raises `Impossible` and the generator emits runtime code instead.

Folding is refused when:
    - the evaluation context is volatile (autoescape only known at runtime)
    - a name, call, ``in``/``not in`` comparison or context-aware filter
      or test is involved
    - a filter or test is not registered
    - an inline ``if`` without ``else`` takes its missing branch
    - any evaluation step raises

Example:
    >>> from nunja.nodes import builders as b
    >>> to_const(b.add(b.const(1), b.mul(b.const(2), b.const(3))))
    7

"""

from __future__ import annotations

import operator
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from markupsafe import Markup

from nunja.nodes import REGISTRY
from nunja.utils import PassArg

if TYPE_CHECKING:
    from nunja.nodes.base import Node
    from nunja.template.context import EvalContext


class Impossible(Exception):
    """The node cannot be evaluated at compile time."""


_BINOP_TO_FUNC: dict[str, Callable[[Any, Any], Any]] = {
    "*": operator.mul,
    "/": operator.truediv,
    "//": operator.floordiv,
    "**": operator.pow,
    "%": operator.mod,
    "+": operator.add,
    "-": operator.sub,
}

_UAOP_TO_FUNC: dict[str, Callable[[Any], Any]] = {
    "not": operator.not_,
    "+": operator.pos,
    "-": operator.neg,
}

_CMPOP_TO_FUNC: dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gteq": operator.ge,
    "lt": operator.lt,
    "lteq": operator.le,
}


def to_const(node: Node, eval_ctx: EvalContext | None = None) -> Any:
    """Return the compile-time value of ``node`` or raise `Impossible`.

    Without an ``eval_ctx`` autoescaping is off and folds that need the
    environment (attribute access, filters, tests) are refused.
    """
    if eval_ctx is not None and eval_ctx.volatile:
        raise Impossible()
    try:
        return _fold(node, eval_ctx)
    except Impossible:
        raise
    except Exception as exc:
        raise Impossible() from exc


def _fold(node: Node, eval_ctx: EvalContext | None) -> Any:
    for type_name in REGISTRY.supertypes(node.type):
        folder = _FOLDERS.get(type_name)
        if folder is not None:
            return folder(node, eval_ctx)
    raise Impossible()


def _environment(eval_ctx: EvalContext | None) -> Any:
    if eval_ctx is None:
        raise Impossible()
    return eval_ctx.environment


# ─────────────────────────────────────────────────────────────────────────────
# Per-type folders
# ─────────────────────────────────────────────────────────────────────────────


def _fold_const(node: Node, eval_ctx: EvalContext | None) -> Any:
    return node.value


def _fold_template_data(node: Node, eval_ctx: EvalContext | None) -> Any:
    if eval_ctx is not None and eval_ctx.autoescape:
        return Markup(node.data)
    return node.data


def _fold_tuple(node: Node, eval_ctx: EvalContext | None) -> Any:
    return tuple(_fold(item, eval_ctx) for item in node.items)


def _fold_list(node: Node, eval_ctx: EvalContext | None) -> Any:
    return [_fold(item, eval_ctx) for item in node.items]


def _fold_dict(node: Node, eval_ctx: EvalContext | None) -> Any:
    return dict(_fold(pair, eval_ctx) for pair in node.items)


def _fold_pair(node: Node, eval_ctx: EvalContext | None) -> Any:
    return _fold(node.key, eval_ctx), _fold(node.value, eval_ctx)


def _fold_keyword(node: Node, eval_ctx: EvalContext | None) -> Any:
    return node.key, _fold(node.value, eval_ctx)


def _fold_cond_expr(node: Node, eval_ctx: EvalContext | None) -> Any:
    if _fold(node.test, eval_ctx):
        return _fold(node.expr1, eval_ctx)
    if node.expr2 is None:
        raise Impossible()
    return _fold(node.expr2, eval_ctx)


def _fold_and(node: Node, eval_ctx: EvalContext | None) -> Any:
    return _fold(node.left, eval_ctx) and _fold(node.right, eval_ctx)


def _fold_or(node: Node, eval_ctx: EvalContext | None) -> Any:
    return _fold(node.left, eval_ctx) or _fold(node.right, eval_ctx)


def _fold_bin_expr(node: Node, eval_ctx: EvalContext | None) -> Any:
    func = _BINOP_TO_FUNC[node.operator]
    return func(_fold(node.left, eval_ctx), _fold(node.right, eval_ctx))


def _fold_unary_expr(node: Node, eval_ctx: EvalContext | None) -> Any:
    return _UAOP_TO_FUNC[node.operator](_fold(node.node, eval_ctx))


def _fold_concat(node: Node, eval_ctx: EvalContext | None) -> Any:
    return "".join(str(_fold(child, eval_ctx)) for child in node.nodes)


def _fold_compare(node: Node, eval_ctx: EvalContext | None) -> Any:
    result = value = _fold(node.expr, eval_ctx)
    for operand in node.ops:
        func = _CMPOP_TO_FUNC.get(operand.op)
        if func is None:
            # in / not in need the runtime container
            raise Impossible()
        new_value = _fold(operand.expr, eval_ctx)
        result = func(value, new_value)
        if not result:
            return False
        value = new_value
    return result


def _fold_getattr(node: Node, eval_ctx: EvalContext | None) -> Any:
    if node.ctx != "load":
        raise Impossible()
    environment = _environment(eval_ctx)
    return environment.getattr(_fold(node.node, eval_ctx), node.attr)


def _fold_getitem(node: Node, eval_ctx: EvalContext | None) -> Any:
    if node.ctx != "load":
        raise Impossible()
    environment = _environment(eval_ctx)
    return environment.getitem(_fold(node.node, eval_ctx), _fold(node.arg, eval_ctx))


def _fold_slice(node: Node, eval_ctx: EvalContext | None) -> Any:
    def const(obj: Node | None) -> Any:
        return None if obj is None else _fold(obj, eval_ctx)

    return slice(const(node.start), const(node.stop), const(node.step))


def _args_as_const(node: Node, eval_ctx: EvalContext | None) -> tuple[list[Any], dict[str, Any]]:
    args = [_fold(x, eval_ctx) for x in node.args]
    kwargs = dict(_fold(x, eval_ctx) for x in node.kwargs)
    if node.dyn_args is not None:
        args.extend(_fold(node.dyn_args, eval_ctx))
    if node.dyn_kwargs is not None:
        kwargs.update(_fold(node.dyn_kwargs, eval_ctx))
    return args, kwargs


def _fold_filter_test(node: Node, eval_ctx: EvalContext | None) -> Any:
    if node.node is None:
        # filter block: the argument is the buffered body
        raise Impossible()
    environment = _environment(eval_ctx)
    env_map = environment.filters if node.type == "Filter" else environment.tests
    func = env_map.get(node.name)
    pass_arg = PassArg.from_obj(func)
    if func is None or pass_arg is PassArg.context:
        raise Impossible()
    if environment.is_async and PassArg.is_async(func):
        raise Impossible()
    args, kwargs = _args_as_const(node, eval_ctx)
    args.insert(0, _fold(node.node, eval_ctx))
    if pass_arg is PassArg.eval_context:
        args.insert(0, eval_ctx)
    elif pass_arg is PassArg.environment:
        args.insert(0, environment)
    return func(*args, **kwargs)


def _fold_mark_safe(node: Node, eval_ctx: EvalContext | None) -> Any:
    return Markup(_fold(node.expr, eval_ctx))


def _fold_mark_safe_if_autoescape(node: Node, eval_ctx: EvalContext | None) -> Any:
    value = _fold(node.expr, eval_ctx)
    if eval_ctx is not None and eval_ctx.autoescape:
        return Markup(value)
    return value


def _impossible(node: Node, eval_ctx: EvalContext | None) -> Any:
    raise Impossible()


_FOLDERS: dict[str, Callable[[Node, EvalContext | None], Any]] = {
    "Const": _fold_const,
    "TemplateData": _fold_template_data,
    "Tuple": _fold_tuple,
    "List": _fold_list,
    "Dict": _fold_dict,
    "Pair": _fold_pair,
    "Keyword": _fold_keyword,
    "CondExpr": _fold_cond_expr,
    "And": _fold_and,
    "Or": _fold_or,
    "BinExpr": _fold_bin_expr,
    "UnaryExpr": _fold_unary_expr,
    "Concat": _fold_concat,
    "Compare": _fold_compare,
    "Getattr": _fold_getattr,
    "Getitem": _fold_getitem,
    "Slice": _fold_slice,
    "Filter": _fold_filter_test,
    "Test": _fold_filter_test,
    "MarkSafe": _fold_mark_safe,
    "MarkSafeIfAutoescape": _fold_mark_safe_if_autoescape,
    "Name": _impossible,
    "Call": _impossible,
}
