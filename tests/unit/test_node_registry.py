"""Tests for the declarative node type registry and the node builders."""

from __future__ import annotations

import pytest

from nunja import nodes
from nunja.nodes import DefinitionError, NodeTypeRegistry, can_assign, geq
from nunja.nodes import builders as b
from nunja.nodes.registry import IdentityType, or_, to_type


def _small_registry() -> NodeTypeRegistry:
    registry = NodeTypeRegistry()
    d = registry.def_
    d("Expr").abstract()
    d("Located").field("loc", object, lambda: None, hidden=True)
    d("Num").bases("Located").aliases("Expr").build("value").field("value", int)
    (
        d("Pair")
        .bases("Located")
        .aliases("Expr")
        .build("left", "right")
        .field("left", registry.ref("Expr"))
        .field("right", or_(registry.ref("Expr"), None), lambda: None)
    )
    return registry.finalize()


class TestRegistryDefinitions:
    """Finalizing a registry computes fields, supertypes and classes."""

    def test_supertypes_most_specific_first(self):
        """Name dispatches through its own type, then aliases and bases."""
        assert nodes.REGISTRY.supertypes("Name") == ("Name", "Expr", "BaseNode", "Node")

    def test_isinstance_follows_aliases(self):
        """Generated classes inherit from their alias classes."""
        node = nodes.Name("x", "load")
        assert isinstance(node, nodes.Expr)
        assert isinstance(node, nodes.Node)
        assert not isinstance(node, nodes.Stmt)

    def test_inherited_fields(self):
        """Bases contribute their fields; hidden fields stay out of ``fields``."""
        registry = _small_registry()
        typedef = registry["Num"]
        assert "loc" in typedef.all_fields
        assert registry.node_class("Num").fields == ("value",)

    def test_alias_members(self):
        """alias_members lists concrete types declaring the alias."""
        registry = _small_registry()
        assert registry.alias_members("Expr") == ("Num", "Pair")

    def test_is_subtype(self):
        registry = _small_registry()
        assert registry.is_subtype("Num", "Expr")
        assert registry.is_subtype("Num", "Located")
        assert not registry.is_subtype("Expr", "Num")

    def test_concrete_types_exclude_abstract(self):
        registry = _small_registry()
        assert "Expr" not in registry.concrete_types
        assert set(registry.concrete_types) == {"Num", "Pair"}

    def test_unknown_build_param(self):
        """build() naming a missing field fails at finalize."""
        registry = NodeTypeRegistry()
        registry.def_("Broken").build("nope")
        with pytest.raises(DefinitionError, match="unknown field 'nope'"):
            registry.finalize()

    def test_abstract_cannot_be_buildable(self):
        registry = NodeTypeRegistry()
        registry.def_("Thing").abstract().build()
        with pytest.raises(DefinitionError, match="abstract"):
            registry.finalize()

    def test_circular_bases(self):
        registry = NodeTypeRegistry()
        registry.def_("A").bases("B").field("a", int)
        registry.def_("B").bases("A").field("b", int)
        with pytest.raises(DefinitionError, match="circular"):
            registry.finalize()

    def test_no_changes_after_finalize(self):
        registry = _small_registry()
        with pytest.raises(DefinitionError):
            registry["Num"].field("extra", int)
        with pytest.raises(DefinitionError):
            registry.def_("Late")

    def test_queries_require_finalize(self):
        registry = NodeTypeRegistry()
        registry.def_("Num").build("value").field("value", int)
        with pytest.raises(DefinitionError, match="finalized"):
            registry.supertypes("Num")

    def test_visit_method_names(self):
        names = nodes.REGISTRY.visit_method_names()
        assert names["Name"] == "visit_Name"
        assert names["Expr"] == "visit_Expr"


class TestTypeDescriptors:
    """Structural field types."""

    def test_identity_type_rejects_bool_for_int(self):
        int_type = IdentityType(int)
        assert int_type.check(3)
        assert not int_type.check(True)

    def test_identity_literal(self):
        assert IdentityType("load").check("load")
        assert not IdentityType("load").check("store")

    def test_array_type(self):
        array = to_type([int])
        assert array.check([1, 2])
        assert array.check(())
        assert not array.check([1, "2"])
        assert not array.check(1)

    def test_or_type(self):
        optional = or_(str, None)
        assert optional.check("x")
        assert optional.check(None)
        assert not optional.check(1)

    def test_geq(self):
        positive = geq(1)
        assert positive.check(1)
        assert positive.check(2.5)
        assert not positive.check(0)
        assert not positive.check(True)
        assert not positive.check("3")

    def test_def_type_checks_subtypes(self):
        registry = _small_registry()
        num = registry.node_class("Num")(1)
        assert registry.ref("Expr").check(num)
        assert not registry.ref("Pair").check(num)


class TestNodeConstruction:
    """Generated constructors and node helpers."""

    def test_positional_with_defaults(self):
        node = nodes.If(nodes.Const(True), [])
        assert node.elif_ == []
        assert node.else_ == []

    def test_missing_required_field(self):
        with pytest.raises(TypeError, match="missing required field"):
            nodes.If(nodes.Const(True))

    def test_too_many_arguments(self):
        with pytest.raises(TypeError, match="at most"):
            nodes.Const(1, 2)

    def test_abstract_class_not_instantiable(self):
        with pytest.raises(TypeError):
            nodes.Expr()

    def test_lineno_defaults_to_one(self):
        assert nodes.Const(1).lineno == 1

    def test_equality_ignores_location(self):
        loc = nodes.SourceLocation(nodes.Position(3, 0), nodes.Position(3, 4))
        assert nodes.Name("x", "load", loc=loc) == nodes.Name("x", "load")
        assert nodes.Name("x", "load") != nodes.Name("y", "load")

    def test_find_all(self):
        tree = nodes.Output([nodes.Name("a", "load"), nodes.Add(nodes.Name("b", "load"), nodes.Const(1))])
        assert [n.name for n in tree.find_all(nodes.Name)] == ["a", "b"]
        assert tree.find(nodes.Const).value == 1

    def test_set_ctx(self):
        target = nodes.Tuple([nodes.Name("a", "load"), nodes.Name("b", "load")], "load")
        target.set_ctx("store")
        assert target.ctx == "store"
        assert [item.ctx for item in target.items] == ["store", "store"]

    def test_iter_child_nodes_only(self):
        node = nodes.For(nodes.Name("x", "store"), nodes.Name("xs", "load"), [nodes.Output([])])
        children = list(node.iter_child_nodes(only=("body",)))
        assert [child.type for child in children] == ["Output"]


class TestCanAssign:
    """Assignment target validity."""

    def test_plain_name(self):
        assert can_assign(nodes.Name("x", "store"))

    @pytest.mark.parametrize("reserved", ["true", "false", "none", "True", "False", "None"])
    def test_reserved_names(self, reserved):
        assert not can_assign(nodes.Name(reserved, "store"))

    def test_tuple_of_names(self):
        assert can_assign(nodes.Tuple([nodes.Name("a", "store"), nodes.Name("b", "store")], "store"))

    def test_tuple_with_const(self):
        assert not can_assign(nodes.Tuple([nodes.Name("a", "store"), nodes.Const(1)], "store"))

    def test_ns_ref(self):
        assert can_assign(nodes.NSRef("ns", "attr"))

    def test_const_and_call(self):
        assert not can_assign(nodes.Const(1))
        assert not can_assign(nodes.Call(nodes.Name("f", "load"), [], [], None, None))


class TestBuilders:
    """Validating snake_case builders."""

    def test_builder_names(self):
        assert nodes.REGISTRY["NSRef"].builder_name == "ns_ref"
        assert nodes.REGISTRY["If"].builder_name == "if_"
        assert nodes.REGISTRY["TemplateData"].builder_name == "template_data"
        assert nodes.REGISTRY["CondExpr"].builder_name == "cond_expr"

    def test_builder_defaults(self):
        node = b.name("user")
        assert node.ctx == "load"

    def test_builder_validates_fields(self):
        with pytest.raises(TypeError, match="does not match field"):
            b.output("not a list")

    def test_builder_argument_count(self):
        with pytest.raises(TypeError, match="expects"):
            b.if_()

    def test_from_mapping(self):
        node = b.if_.from_({"test": b.const(True), "body": []})
        assert node == nodes.If(nodes.Const(True), [], [], [])

    def test_from_missing_required(self):
        with pytest.raises(TypeError, match="missing required field 'body'"):
            b.if_.from_({"test": b.const(True)})

    def test_from_object(self):
        original = b.ns_ref("ns", "count")
        assert b.ns_ref.from_(original) == original

    def test_from_object_reads_attributes(self):
        name = b.name("x", "load")
        assert b.name.from_(name) == name
        attr = b.getattr(name, "y")
        assert b.getattr.from_(attr) == attr

    def test_builtin_named_builders(self):
        items = b.list([b.const(1)])
        assert isinstance(items, nodes.List)
        assert isinstance(b.dict([]), nodes.Dict)
        assert b.slice.typedef.name == "Slice"
        assert "filter" in dir(b)
        with pytest.raises(AttributeError):
            b.no_such_builder

    def test_required_param_count(self):
        assert nodes.REGISTRY["For"].required_param_count == 3
        assert nodes.REGISTRY["Name"].required_param_count == 1

    def test_location_passed_through(self):
        loc = nodes.SourceLocation(nodes.Position(2, 1), nodes.Position(2, 5))
        assert b.name("x", loc=loc).lineno == 2
