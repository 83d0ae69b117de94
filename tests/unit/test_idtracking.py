"""Tests for scope symbol tracking."""

from __future__ import annotations

import pytest

from nunja.compiler.idtracking import (
    VAR_LOAD_ALIAS,
    VAR_LOAD_PARAMETER,
    VAR_LOAD_RESOLVE,
    VAR_LOAD_UNDEFINED,
    RootVisitor,
    Symbols,
    find_symbols,
    symbols_for_node,
)
from nunja.parser import parse


def _root_symbols(source: str) -> Symbols:
    symbols = Symbols()
    symbols.analyze_node(parse(source))
    return symbols


class TestSymbolTable:
    """Identifier allocation and lookups."""

    def test_assignment_then_load(self):
        symbols = _root_symbols("{% set x = y %}{{ x }}")
        assert symbols.loads == {
            "l_0_y": (VAR_LOAD_RESOLVE, "y"),
            "l_0_x": (VAR_LOAD_UNDEFINED, None),
        }
        assert symbols.stores == {"x"}

    def test_levels_follow_nesting(self):
        parent = Symbols()
        child = Symbols(parent)
        assert child.level == 1
        assert Symbols(child).level == 2

    def test_store_aliases_outer_binding(self):
        parent = Symbols()
        parent.store("x")
        child = Symbols(parent)
        child.store("x")
        assert child.refs["x"] == "l_1_x"
        assert child.loads["l_1_x"] == (VAR_LOAD_ALIAS, "l_0_x")

    def test_load_reuses_outer_ref(self):
        parent = Symbols()
        parent.store("x")
        child = Symbols(parent)
        child.load("x")
        assert child.loads == {}
        assert child.ref("x") == "l_0_x"

    def test_find_load_walks_parents(self):
        parent = Symbols()
        parent.load("x")
        child = Symbols(parent)
        assert child.find_load("l_0_x") == (VAR_LOAD_RESOLVE, "x")
        assert child.find_load("l_9_nope") is None

    def test_unknown_ref(self):
        with pytest.raises(AssertionError, match="unknown to the frame"):
            Symbols().ref("missing")

    def test_copy_is_independent(self):
        symbols = Symbols()
        symbols.store("a")
        clone = symbols.copy()
        clone.store("b")
        assert "b" not in symbols.refs
        assert clone.refs["a"] == "l_0_a"

    def test_dump_stores(self):
        parent = Symbols()
        parent.store("a")
        child = Symbols(parent)
        child.store("b")
        assert child.dump_stores() == {"b": "l_1_b", "a": "l_0_a"}

    def test_dump_param_targets(self):
        parent = Symbols()
        parent.declare_parameter("p")
        child = Symbols(parent)
        child.declare_parameter("q")
        child.store("r")
        assert child.dump_param_targets() == {"l_0_p", "l_1_q"}


class TestScopeAnalysis:
    """Names classified per scope kind."""

    def test_macro_arguments_are_parameters(self):
        macro = parse("{% macro m(a) %}{{ a }}{{ b }}{% endmacro %}").body[0]
        symbols = symbols_for_node(macro)
        assert symbols.loads == {
            "l_0_a": (VAR_LOAD_PARAMETER, None),
            "l_0_b": (VAR_LOAD_RESOLVE, "b"),
        }

    def test_macro_definition_stores_name(self):
        symbols = _root_symbols("{% macro m() %}{% endmacro %}")
        assert symbols.stores == {"m"}

    def test_loop_body_scope(self):
        loop = parse("{% for item in items %}{{ item }}{{ other }}{% endfor %}").body[0]
        root = _root_symbols("{% for item in items %}{% endfor %}")
        assert root.loads == {"l_0_items": (VAR_LOAD_RESOLVE, "items")}

        body = symbols_for_node(loop, root)
        assert body.loads["l_1_item"] == (VAR_LOAD_PARAMETER, None)
        assert body.loads["l_1_other"] == (VAR_LOAD_RESOLVE, "other")

    def test_loop_test_branch(self):
        loop = parse("{% for x in xs if x > limit %}{% endfor %}").body[0]
        symbols = Symbols()
        symbols.analyze_node(loop, for_branch="test")
        assert symbols.loads == {
            "l_0_x": (VAR_LOAD_PARAMETER, None),
            "l_0_limit": (VAR_LOAD_RESOLVE, "limit"),
        }

    def test_loop_else_branch_skips_target(self):
        loop = parse("{% for x in xs %}{% else %}{{ empty }}{% endfor %}").body[0]
        symbols = Symbols()
        symbols.analyze_node(loop, for_branch="else")
        assert set(symbols.refs) == {"empty"}

    def test_unknown_loop_branch(self):
        loop = parse("{% for x in xs %}{% endfor %}").body[0]
        with pytest.raises(RuntimeError, match="Unknown for branch"):
            Symbols().analyze_node(loop, for_branch="sideways")

    def test_with_targets_are_parameters(self):
        node = parse("{% with a = outer %}{{ a }}{% endwith %}").body[0]
        symbols = symbols_for_node(node)
        assert symbols.loads == {"l_0_a": (VAR_LOAD_PARAMETER, None)}

    def test_with_values_load_in_enclosing_scope(self):
        symbols = _root_symbols("{% with a = outer %}{% endwith %}")
        assert symbols.loads == {"l_0_outer": (VAR_LOAD_RESOLVE, "outer")}

    def test_nested_blocks_are_opaque(self):
        symbols = _root_symbols("{% block b %}{{ inner }}{% endblock %}{{ outer }}")
        assert set(symbols.refs) == {"outer"}

    def test_namespace_assignment_loads_namespace(self):
        symbols = _root_symbols("{% set ns.total = 1 %}")
        assert symbols.loads == {"l_0_ns": (VAR_LOAD_RESOLVE, "ns")}
        assert symbols.stores == set()

    def test_imports_store_names(self):
        symbols = _root_symbols(
            '{% import "a.html" as lib %}{% from "b.html" import x, y as z %}'
        )
        assert symbols.stores == {"lib", "x", "z"}

    def test_find_symbols_over_statement_list(self):
        template = parse("{% set a = 1 %}{{ b }}")
        symbols = find_symbols(template.body)
        assert symbols.level == 0
        assert set(symbols.refs) == {"a", "b"}

    def test_root_visitor_rejects_non_scope_nodes(self):
        output = parse("{{ x }}").body[0]
        with pytest.raises(NotImplementedError, match="Cannot find symbols for 'Output'"):
            RootVisitor(Symbols()).visit(output)


class TestBranchMerge:
    """Stores inside if/elif/else merged back into the scope."""

    def test_store_in_one_branch_resolves(self):
        symbols = _root_symbols("{% if a %}{% set x = 1 %}{% endif %}{{ x }}")
        assert symbols.loads["l_0_x"] == (VAR_LOAD_RESOLVE, "x")

    def test_store_in_if_and_else_still_resolves(self):
        """The elif list counts as a branch of its own."""
        symbols = _root_symbols("{% if a %}{% set x = 1 %}{% else %}{% set x = 2 %}{% endif %}")
        assert symbols.loads["l_0_x"] == (VAR_LOAD_RESOLVE, "x")

    def test_branch_falls_back_to_outer_binding(self):
        parent = Symbols()
        parent.store("x")
        if_node = parse("{% if a %}{% set x = 1 %}{% endif %}").body[0]
        symbols = find_symbols([if_node], parent)
        assert symbols.loads["l_1_x"] == (VAR_LOAD_ALIAS, "l_0_x")

    def test_store_before_conditional_is_kept(self):
        symbols = _root_symbols("{% set x = 0 %}{% if a %}{% set x = 1 %}{% endif %}")
        assert symbols.loads["l_0_x"] == (VAR_LOAD_UNDEFINED, None)

    def test_branch_update_counts_all_branches(self):
        scope = Symbols()
        branches = [scope.copy() for _ in range(2)]
        for branch in branches:
            branch.store("y")
        scope.branch_update(branches)
        assert scope.loads["l_0_y"] == (VAR_LOAD_UNDEFINED, None)
        assert scope.stores == {"y"}
