"""Node type definitions for the nunja template AST.

`build_registry()` declares every node type on a fresh `NodeTypeRegistry`
and finalizes it. The module-level `REGISTRY` is the single shared instance
used by the parser, the analysis passes and the code generator.

Abstract supertypes:
    - ``Node``: every node
    - ``Stmt``: statements (appear in template/block bodies)
    - ``Expr``: expressions
    - ``Helper``: nodes only valid inside another node (``Pair``,
      ``Keyword``, ``Operand``)
    - ``Literal``: constant-like expressions
    - ``BinExpr`` / ``UnaryExpr``: operator expressions

"""

from __future__ import annotations

from typing import Any

from nunja.nodes.registry import ANY, NodeTypeRegistry, defaults, or_

_RESERVED_NAMES = frozenset({"true", "false", "none", "True", "False", "None"})

BINARY_OPERATORS = {
    "Mul": "*",
    "Div": "/",
    "FloorDiv": "//",
    "Add": "+",
    "Sub": "-",
    "Mod": "%",
    "Pow": "**",
    "And": "and",
    "Or": "or",
}

UNARY_OPERATORS = {
    "Not": "not",
    "Neg": "-",
    "Pos": "+",
}


def _name_assignable(node: Any) -> bool:
    return node.name not in _RESERVED_NAMES


def _tuple_assignable(node: Any) -> bool:
    return all(item.typedef.is_assignable(item) for item in node.items)


def build_registry() -> NodeTypeRegistry:
    """Declare and finalize every node type."""
    registry = NodeTypeRegistry()
    d = registry.def_
    ref = registry.ref

    stmt = ("Node", "Stmt")
    expr = ("Node", "Expr")
    literal = ("Node", "Literal", "Expr")
    helper = ("Node", "Helper")
    nodes = [ref("Node")]
    opt_expr = or_(ref("Expr"), None)

    d("Node").abstract()
    d("BaseNode").field("loc", ANY, defaults["null"], hidden=True)
    d("Stmt").abstract().bases("BaseNode")
    d("Helper").abstract().bases("BaseNode")
    d("Expr").abstract().bases("BaseNode")
    d("Literal").abstract().bases("BaseNode")
    d("BinExpr").abstract().bases("BaseNode")
    d("UnaryExpr").abstract().bases("BaseNode")

    # ── statements ──────────────────────────────────────────────────────────

    d("Template").bases("BaseNode").aliases("Node").build("body").field("body", nodes)

    d("Output").bases("BaseNode").aliases(*stmt).build("nodes").field("nodes", [ref("Expr")])

    d("Extends").bases("BaseNode").aliases(*stmt).build("template").field(
        "template", ref("Expr")
    )

    (
        d("For")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("target", "iter", "body", "else_", "test", "recursive")
        .field("target", ref("Node"))
        .field("iter", ref("Node"))
        .field("body", nodes)
        .field("else_", nodes, defaults["empty_list"])
        .field("test", or_(ref("Node"), None), defaults["null"])
        .field("recursive", bool, defaults["false"])
    )
    # Async loop flavors share the For fields and lowering.
    d("AsyncEach").bases("For").aliases(*stmt).build(
        "target", "iter", "body", "else_", "test", "recursive"
    )
    d("AsyncAll").bases("For").aliases(*stmt).build(
        "target", "iter", "body", "else_", "test", "recursive"
    )

    (
        d("If")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("test", "body", "elif_", "else_")
        .field("test", ref("Node"))
        .field("body", nodes)
        .field("elif_", [ref("If")], defaults["empty_list"])
        .field("else_", nodes, defaults["empty_list"])
    )

    (
        d("Macro")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("name", "args", "defaults", "body")
        .field("name", str)
        .field("args", [ref("Name")])
        .field("defaults", [ref("Expr")])
        .field("body", nodes)
    )

    (
        d("CallBlock")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("call", "args", "defaults", "body")
        .field("call", ref("Call"))
        .field("args", [ref("Name")])
        .field("defaults", [ref("Expr")])
        .field("body", nodes)
    )

    (
        d("FilterBlock")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("body", "filter")
        .field("body", nodes)
        .field("filter", ref("Filter"))
    )

    (
        d("With")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("targets", "values", "body")
        .field("targets", [ref("Expr")])
        .field("values", [ref("Expr")])
        .field("body", nodes)
    )

    (
        d("Block")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("name", "body", "scoped", "required")
        .field("name", str)
        .field("body", nodes)
        .field("scoped", bool, defaults["false"])
        .field("required", bool, defaults["false"])
    )

    (
        d("Include")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("template", "with_context", "ignore_missing")
        .field("template", ref("Expr"))
        .field("with_context", bool, defaults["true"])
        .field("ignore_missing", bool, defaults["false"])
    )

    (
        d("Import")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("template", "target", "with_context")
        .field("template", ref("Expr"))
        .field("target", str)
        .field("with_context", bool, defaults["false"])
    )

    (
        d("FromImport")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("template", "names", "with_context")
        .field("template", ref("Expr"))
        .field("names", [or_(str, [str])])
        .field("with_context", bool, defaults["false"])
    )

    d("ExprStmt").bases("BaseNode").aliases(*stmt).build("node").field("node", ref("Node"))

    (
        d("Assign")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("target", "node")
        .field("target", ref("Expr"))
        .field("node", ref("Node"))
    )

    (
        d("AssignBlock")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("target", "filter", "body")
        .field("target", ref("Expr"))
        .field("filter", or_(ref("Filter"), None), defaults["null"])
        .field("body", nodes)
    )

    d("Continue").bases("BaseNode").aliases(*stmt).build()
    d("Break").bases("BaseNode").aliases(*stmt).build()
    d("Scope").bases("BaseNode").aliases(*stmt).build("body").field("body", nodes)
    (
        d("OverlayScope")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("context", "body")
        .field("context", ref("Expr"))
        .field("body", nodes)
    )
    d("EvalContextModifier").bases("BaseNode").aliases(*stmt).build("options").field(
        "options", [ref("Keyword")]
    )
    (
        d("ScopedEvalContextModifier")
        .bases("BaseNode")
        .aliases(*stmt)
        .build("options", "body")
        .field("options", [ref("Keyword")])
        .field("body", nodes)
    )

    # ── helpers ─────────────────────────────────────────────────────────────

    (
        d("Pair")
        .bases("BaseNode")
        .aliases(*helper)
        .build("key", "value")
        .field("key", ref("Expr"))
        .field("value", ref("Expr"))
    )
    (
        d("Keyword")
        .bases("BaseNode")
        .aliases(*helper)
        .build("key", "value")
        .field("key", str)
        .field("value", ref("Expr"))
    )
    (
        d("Operand")
        .bases("BaseNode")
        .aliases(*helper)
        .build("op", "expr")
        .field("op", str)
        .field("expr", ref("Expr"))
    )

    # ── expressions ─────────────────────────────────────────────────────────

    (
        d("Name")
        .bases("BaseNode")
        .aliases(*expr)
        .build("name", "ctx")
        .field("name", str)
        .field("ctx", str, defaults["load"])
        .can_assign(_name_assignable)
    )
    (
        d("NSRef")
        .bases("BaseNode")
        .aliases(*expr)
        .build("name", "attr")
        .field("name", str)
        .field("attr", str)
        .can_assign(lambda node: True)
    )

    d("Const").bases("BaseNode").aliases(*literal).build("value").field("value", ANY)
    d("TemplateData").bases("BaseNode").aliases(*literal).build("data").field("data", str)
    (
        d("Tuple")
        .bases("BaseNode")
        .aliases(*literal)
        .build("items", "ctx")
        .field("items", [ref("Expr")])
        .field("ctx", str, defaults["load"])
        .can_assign(_tuple_assignable)
    )
    d("List").bases("BaseNode").aliases(*literal).build("items").field("items", [ref("Expr")])
    d("Dict").bases("BaseNode").aliases(*literal).build("items").field("items", [ref("Pair")])

    (
        d("CondExpr")
        .bases("BaseNode")
        .aliases(*expr)
        .build("test", "expr1", "expr2")
        .field("test", ref("Expr"))
        .field("expr1", ref("Expr"))
        .field("expr2", opt_expr, defaults["null"])
    )
    (
        d("Getitem")
        .bases("BaseNode")
        .aliases(*expr)
        .build("node", "arg", "ctx")
        .field("node", ref("Expr"))
        .field("arg", ref("Expr"))
        .field("ctx", str, defaults["load"])
    )
    (
        d("Getattr")
        .bases("BaseNode")
        .aliases(*expr)
        .build("node", "attr", "ctx")
        .field("node", ref("Expr"))
        .field("attr", str)
        .field("ctx", str, defaults["load"])
    )
    (
        d("Slice")
        .bases("BaseNode")
        .aliases(*expr)
        .build("start", "stop", "step")
        .field("start", opt_expr, defaults["null"])
        .field("stop", opt_expr, defaults["null"])
        .field("step", opt_expr, defaults["null"])
    )
    d("Concat").bases("BaseNode").aliases(*expr).build("nodes").field("nodes", [ref("Expr")])
    (
        d("Compare")
        .bases("BaseNode")
        .aliases(*expr)
        .build("expr", "ops")
        .field("expr", ref("Expr"))
        .field("ops", [ref("Operand")])
    )
    (
        d("Call")
        .bases("BaseNode")
        .aliases(*expr)
        .build("node", "args", "kwargs", "dyn_args", "dyn_kwargs")
        .field("node", ref("Expr"))
        .field("args", [ref("Expr")], defaults["empty_list"])
        .field("kwargs", [ref("Keyword")], defaults["empty_list"])
        .field("dyn_args", opt_expr, defaults["null"])
        .field("dyn_kwargs", opt_expr, defaults["null"])
    )

    (
        d("FilterTestBase")
        .bases("BaseNode")
        .field("node", ref("Expr"))
        .field("name", str)
        .field("args", [ref("Expr")], defaults["empty_list"])
        .field("kwargs", [ref("Keyword")], defaults["empty_list"])
        .field("dyn_args", opt_expr, defaults["null"])
        .field("dyn_kwargs", opt_expr, defaults["null"])
    )
    filter_params = ("node", "name", "args", "kwargs", "dyn_args", "dyn_kwargs")
    # A filter block applies its filter to the buffered body: node is None.
    d("Filter").bases("FilterTestBase").aliases(*expr).build(*filter_params).field(
        "node", opt_expr
    )
    d("Test").bases("FilterTestBase").aliases(*expr).build(*filter_params)

    (
        d("BinExprBase")
        .bases("BaseNode")
        .field("left", ref("Expr"))
        .field("right", ref("Expr"))
        .field("operator", str)
    )
    for name, operator in BINARY_OPERATORS.items():
        d(name).bases("BinExprBase").aliases("Node", "BinExpr", "Expr").build(
            "left", "right", "operator"
        ).field("operator", operator, lambda op=operator: op)

    d("UnaryExprBase").bases("BaseNode").field("node", ref("Expr")).field("operator", str)
    for name, operator in UNARY_OPERATORS.items():
        d(name).bases("UnaryExprBase").aliases("Node", "UnaryExpr", "Expr").build(
            "node", "operator"
        ).field("operator", operator, lambda op=operator: op)

    # ── compiler-internal expressions ───────────────────────────────────────

    d("EnvironmentAttribute").bases("BaseNode").aliases(*expr).build("name").field("name", str)
    (
        d("ExtensionAttribute")
        .bases("BaseNode")
        .aliases(*expr)
        .build("identifier", "name")
        .field("identifier", str)
        .field("name", str)
    )
    d("ImportedName").bases("BaseNode").aliases(*expr).build("importname").field(
        "importname", str
    )
    d("InternalName").bases("BaseNode").aliases(*expr).build("name").field("name", str)
    d("MarkSafe").bases("BaseNode").aliases(*expr).build("expr").field("expr", ref("Expr"))
    d("MarkSafeIfAutoescape").bases("BaseNode").aliases(*expr).build("expr").field(
        "expr", ref("Expr")
    )
    d("ContextReference").bases("BaseNode").aliases(*expr).build()
    d("DerivedContextReference").bases("BaseNode").aliases(*expr).build()

    return registry.finalize()


REGISTRY = build_registry()
