"""Declarative node type registry.

Every AST node type is described once with a chained definition:

    >>> registry = NodeTypeRegistry()
    >>> registry.def_("Expr").abstract()
    >>> registry.def_("Name").bases("BaseNode").aliases("Expr").build(
    ...     "name", "ctx"
    ... ).field("name", str).field("ctx", str)

`NodeTypeRegistry.finalize()` closes the definitions: it computes inherited
fields and supertype lists, validates build signatures, and generates one
Python class per type. Concrete classes derive from `nunja.nodes.base.Node`
and from the classes of their bases and aliases, so ``isinstance(node,
nodes.Expr)`` works for dispatch and analysis alike.

Type descriptors:
    - `IdentityType`: a literal value, or a Python class matched by isinstance
    - `ArrayType`: ``[T]``, a list/tuple whose elements all satisfy ``T``
    - `OrType`: a union, tried in order
    - `ObjectType`: a structural shape (attribute or key per field)
    - `PredicateType`: an arbitrary predicate, see `geq`
    - `DefType`: a reference to a registered node type

Registry mistakes are programming errors and raise `DefinitionError` at
import time.

"""

from __future__ import annotations

import keyword
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from nunja.nodes.base import Node


class DefinitionError(Exception):
    """The registry definitions are inconsistent."""


# ---------------------------------------------------------------------------
# Type descriptors
# ---------------------------------------------------------------------------


class Type:
    """Base class for structural type descriptors."""

    name = "type"

    def check(self, value: Any, deep: bool = True) -> bool:
        raise NotImplementedError

    def assert_(self, value: Any, deep: bool = True) -> None:
        if not self.check(value, deep):
            raise TypeError(f"{value!r} does not match type {self}")

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self}>"


class IdentityType(Type):
    """Match a literal value, or instances of a Python class."""

    def __init__(self, value: Any):
        self.value = value
        self.name = value.__name__ if isinstance(value, type) else repr(value)

    def check(self, value: Any, deep: bool = True) -> bool:
        if isinstance(self.value, type):
            # bool is an int subclass; keep the two apart.
            if self.value in (int, float) and isinstance(value, bool):
                return False
            return isinstance(value, self.value)
        return value is self.value or (type(value) is type(self.value) and value == self.value)


class ArrayType(Type):
    def __init__(self, element_type: Type):
        self.element_type = element_type
        self.name = f"[{element_type}]"

    def check(self, value: Any, deep: bool = True) -> bool:
        if not isinstance(value, (list, tuple)):
            return False
        return all(self.element_type.check(item, deep) for item in value)


class OrType(Type):
    def __init__(self, *types: Type):
        self.types = types
        self.name = " | ".join(str(t) for t in types)

    def check(self, value: Any, deep: bool = True) -> bool:
        return any(t.check(value, deep) for t in self.types)


class ObjectType(Type):
    """Structural shape: every listed field must be present and match."""

    def __init__(self, fields: Mapping[str, Type]):
        self.fields = dict(fields)
        inner = ", ".join(f"{k}: {v}" for k, v in self.fields.items())
        self.name = "{ " + inner + " }"

    def check(self, value: Any, deep: bool = True) -> bool:
        for field_name, field_type in self.fields.items():
            if isinstance(value, Mapping):
                if field_name not in value:
                    return False
                item = value[field_name]
            elif hasattr(value, field_name):
                item = getattr(value, field_name)
            else:
                return False
            if not field_type.check(item, deep):
                return False
        return True


class PredicateType(Type):
    def __init__(self, predicate: Callable[[Any], bool], name: str):
        self.predicate = predicate
        self.name = name

    def check(self, value: Any, deep: bool = True) -> bool:
        return bool(self.predicate(value))


class AnyType(Type):
    name = "any"

    def check(self, value: Any, deep: bool = True) -> bool:
        return True


class DefType(Type):
    """Reference to a registered node type (concrete or abstract)."""

    def __init__(self, registry: NodeTypeRegistry, type_name: str):
        self.registry = registry
        self.name = type_name

    def check(self, value: Any, deep: bool = True) -> bool:
        if not isinstance(value, Node):
            return False
        if not self.registry.is_subtype(value.type, self.name):
            return False
        if deep:
            return self.registry[value.type].check(value, deep=True)
        return True


ANY = AnyType()


def to_type(spec: Any) -> Type:
    """Convert a shorthand type spec into a `Type`.

    ``[T]`` becomes an array, Python classes and literals become identity
    types, and `Type` instances pass through.
    """
    if isinstance(spec, Type):
        return spec
    if isinstance(spec, list):
        if len(spec) != 1:
            raise DefinitionError(f"array type spec needs exactly one element: {spec!r}")
        return ArrayType(to_type(spec[0]))
    return IdentityType(spec)


def or_(*specs: Any) -> OrType:
    return OrType(*(to_type(s) for s in specs))


def geq(bound: int | float) -> PredicateType:
    """Numbers greater than or equal to ``bound``."""

    def predicate(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= bound

    return PredicateType(predicate, f"number >= {bound}")


# Default factories for `NodeTypeDef.field`.
defaults: dict[str, Callable[[], Any]] = {
    "null": lambda: None,
    "empty_list": list,
    "false": lambda: False,
    "true": lambda: True,
    "load": lambda: "load",
}


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldDef:
    """One field of a node type.

    ``default_fn`` is a zero-argument factory; a field without one is
    required at construction. Hidden fields are skipped by builders.
    """

    name: str
    type: Type
    default_fn: Callable[[], Any] | None = None
    hidden: bool = False

    @property
    def required(self) -> bool:
        return self.default_fn is None

    def get_default(self) -> Any:
        if self.default_fn is None:
            raise TypeError(f"field {self.name!r} has no default")
        return self.default_fn()


class NodeTypeDef:
    """Chained definition of a single node type."""

    def __init__(self, registry: NodeTypeRegistry, name: str):
        self.registry = registry
        self.name = name
        self.is_abstract = False
        self.base_names: list[str] = []
        self.alias_names: list[str] = []
        self.own_fields: dict[str, FieldDef] = {}
        self.all_fields: dict[str, FieldDef] = {}
        self.build_params: list[str] = []
        self.buildable = False
        self.supertypes: tuple[str, ...] = ()
        self.depth = 0
        self.finalized = False
        self._can_assign: Callable[[Node], bool] | None = None

    def _check_open(self) -> None:
        if self.finalized or self.registry.finalized:
            raise DefinitionError(f"cannot modify {self.name!r} after finalize()")

    def abstract(self) -> NodeTypeDef:
        self._check_open()
        self.is_abstract = True
        return self

    def bases(self, *names: str) -> NodeTypeDef:
        """Inherit the fields of ``names``; they also become supertypes."""
        self._check_open()
        for name in names:
            self.registry.def_(name)
            if name not in self.base_names:
                self.base_names.append(name)
        return self

    def aliases(self, *names: str) -> NodeTypeDef:
        """Declare supertype tags used for dispatch and alias explosion."""
        self._check_open()
        for name in names:
            self.registry.def_(name)
            if name not in self.alias_names:
                self.alias_names.append(name)
        return self

    def field(
        self,
        name: str,
        type_spec: Any,
        default_fn: Callable[[], Any] | None = None,
        hidden: bool = False,
    ) -> NodeTypeDef:
        self._check_open()
        self.own_fields[name] = FieldDef(name, to_type(type_spec), default_fn, hidden)
        return self

    def build(self, *params: str) -> NodeTypeDef:
        """Declare the positional constructor signature."""
        self._check_open()
        self.buildable = True
        self.build_params = list(params)
        return self

    def can_assign(self, predicate: Callable[[Node], bool]) -> NodeTypeDef:
        """Mark this type as a valid assignment target when ``predicate`` holds."""
        self._check_open()
        self._can_assign = predicate
        return self

    def is_assignable(self, node: Node) -> bool:
        return self._can_assign is not None and bool(self._can_assign(node))

    @property
    def visit_method(self) -> str:
        """Name of the visitor method dispatching on this type."""
        return f"visit_{self.name}"

    @property
    def builder_name(self) -> str:
        """Name of the builder for this type (``NSRef`` -> ``ns_ref``)."""
        snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", self.name)
        snake = snake.lower()
        return f"{snake}_" if keyword.iskeyword(snake) else snake

    @property
    def required_param_count(self) -> int:
        """Positional parameters that must be supplied.

        Trailing build parameters with defaults are optional; a defaulted
        parameter followed by a required one is still required.
        """
        count = len(self.build_params)
        while count and not self.all_fields[self.build_params[count - 1]].required:
            count -= 1
        return count

    def visible_fields(self) -> Iterator[FieldDef]:
        for field_def in self.all_fields.values():
            if not field_def.hidden:
                yield field_def

    def check(self, value: Any, deep: bool = True) -> bool:
        """Check that ``value`` is a node of this type (or a subtype)."""
        if not isinstance(value, Node) or not self.registry.is_subtype(value.type, self.name):
            return False
        if not deep:
            return True
        concrete = self.registry[value.type]
        for field_def in concrete.visible_fields():
            if not field_def.type.check(getattr(value, field_def.name, None), deep=False):
                return False
        return True

    def __repr__(self) -> str:
        return f"<NodeTypeDef {self.name}>"


def _node_init(self: Node, *args: Any, loc: Any = None, **kwargs: Any) -> None:
    typedef = type(self).typedef
    if typedef is None or not typedef.buildable or typedef.is_abstract:
        raise TypeError(f"{type(self).__name__} cannot be instantiated directly")
    params = typedef.build_params
    if len(args) > len(params):
        raise TypeError(
            f"{typedef.name} takes at most {len(params)} positional arguments "
            f"({len(args)} given)"
        )
    values = dict(zip(params, args))
    for key, value in kwargs.items():
        if key in values:
            raise TypeError(f"{typedef.name} got multiple values for field {key!r}")
        if key not in typedef.all_fields:
            raise TypeError(f"{typedef.name} has no field {key!r}")
        values[key] = value
    for field_def in typedef.all_fields.values():
        if field_def.name == "loc":
            continue
        if field_def.name in values:
            value = values[field_def.name]
        elif field_def.required:
            raise TypeError(f"{typedef.name} is missing required field {field_def.name!r}")
        else:
            value = field_def.default_fn()  # type: ignore[misc]
        setattr(self, field_def.name, value)
    self.loc = loc


class NodeTypeRegistry:
    """Holds every node type definition and, once finalized, the node classes."""

    def __init__(self) -> None:
        self._defs: dict[str, NodeTypeDef] = {}
        self._classes: dict[str, type[Node]] = {}
        self._subtype_cache: dict[tuple[str, str], bool] = {}
        self.finalized = False

    def def_(self, name: str) -> NodeTypeDef:
        """Return the definition for ``name``, creating it on first use."""
        typedef = self._defs.get(name)
        if typedef is None:
            if self.finalized:
                raise DefinitionError(f"cannot define {name!r} after finalize()")
            typedef = self._defs[name] = NodeTypeDef(self, name)
        return typedef

    def ref(self, name: str) -> DefType:
        """A type descriptor referring to the node type ``name``."""
        self.def_(name)
        return DefType(self, name)

    def __getitem__(self, name: str) -> NodeTypeDef:
        try:
            return self._defs[name]
        except KeyError:
            raise KeyError(f"unknown node type {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._defs

    def __iter__(self) -> Iterator[NodeTypeDef]:
        return iter(self._defs.values())

    # ── closure ─────────────────────────────────────────────────────────────

    def finalize(self) -> NodeTypeRegistry:
        """Compute inherited fields and supertypes, then build node classes."""
        if self.finalized:
            return self
        for typedef in self._defs.values():
            self._compute_fields(typedef, ())
        for typedef in self._defs.values():
            for param in typedef.build_params:
                if param not in typedef.all_fields:
                    raise DefinitionError(
                        f"{typedef.name}.build() names unknown field {param!r}"
                    )
            if typedef.is_abstract and typedef.buildable:
                raise DefinitionError(f"abstract type {typedef.name!r} cannot be buildable")
        depths: dict[str, int] = {}
        for typedef in self._defs.values():
            typedef.depth = self._compute_depth(typedef.name, depths, ())
        for typedef in self._defs.values():
            typedef.supertypes = self._compute_supertypes(typedef)
        for typedef in sorted(self._defs.values(), key=lambda d: d.depth):
            self._make_class(typedef)
        for typedef in self._defs.values():
            typedef.finalized = True
        self.finalized = True
        return self

    def _compute_fields(self, typedef: NodeTypeDef, seen: tuple[str, ...]) -> dict[str, FieldDef]:
        if typedef.all_fields or typedef.finalized:
            return typedef.all_fields
        if typedef.name in seen:
            raise DefinitionError(f"circular bases: {' -> '.join((*seen, typedef.name))}")
        fields: dict[str, FieldDef] = {}
        for base in typedef.base_names:
            fields.update(self._compute_fields(self._defs[base], (*seen, typedef.name)))
        fields.update(typedef.own_fields)
        typedef.all_fields = fields
        return fields

    def _parents(self, name: str) -> list[str]:
        typedef = self._defs[name]
        return [*typedef.base_names, *(a for a in typedef.alias_names if a not in typedef.base_names)]

    def _compute_depth(self, name: str, depths: dict[str, int], seen: tuple[str, ...]) -> int:
        if name in depths:
            return depths[name]
        if name in seen:
            raise DefinitionError(f"circular supertypes: {' -> '.join((*seen, name))}")
        parents = self._parents(name)
        depth = 0
        if parents:
            depth = 1 + max(self._compute_depth(p, depths, (*seen, name)) for p in parents)
        depths[name] = depth
        return depth

    def _compute_supertypes(self, typedef: NodeTypeDef) -> tuple[str, ...]:
        # Breadth-first over bases and aliases, then most specific first.
        order: list[str] = []
        queue = [typedef.name]
        while queue:
            name = queue.pop(0)
            if name in order:
                continue
            order.append(name)
            queue.extend(self._parents(name))
        rank = {name: i for i, name in enumerate(order)}
        return tuple(sorted(order, key=lambda n: (-self._defs[n].depth, rank[n])))

    def _make_class(self, typedef: NodeTypeDef) -> None:
        if typedef.name == "Node":
            # The shared base class keeps the typedef of the first registry.
            if Node.typedef is None:
                Node.typedef = typedef
            self._classes["Node"] = Node
            return
        parents = [self._classes[p] for p in self._parents(typedef.name)]
        # Drop parents already implied by another parent.
        parents = [
            p for p in parents if not any(q is not p and issubclass(q, p) for q in parents)
        ] or [Node]
        parents.sort(key=lambda cls: -(cls.typedef.depth if cls.typedef else -1))
        inherited: set[str] = set()
        for parent in parents:
            for klass in parent.__mro__:
                inherited.update(getattr(klass, "__slots__", ()))
        slots: tuple[str, ...] = ()
        if typedef.buildable:
            slots = tuple(
                name for name in typedef.all_fields if name != "loc" and name not in inherited
            )
        namespace = {
            "__slots__": slots,
            "__module__": "nunja.nodes",
            "__qualname__": typedef.name,
            "__init__": _node_init,
            "type": typedef.name,
            "fields": tuple(f.name for f in typedef.visible_fields()),
            "typedef": typedef,
        }
        try:
            cls = type(typedef.name, tuple(parents), namespace)
        except TypeError as exc:
            raise DefinitionError(f"cannot build class for {typedef.name!r}: {exc}") from exc
        self._classes[typedef.name] = cls

    # ── queries ─────────────────────────────────────────────────────────────

    def _require_finalized(self) -> None:
        if not self.finalized:
            raise DefinitionError("registry has not been finalized")

    @property
    def classes(self) -> Mapping[str, type[Node]]:
        self._require_finalized()
        return dict(self._classes)

    def node_class(self, name: str) -> type[Node]:
        self._require_finalized()
        return self._classes[name]

    @property
    def concrete_types(self) -> tuple[str, ...]:
        return tuple(d.name for d in self._defs.values() if d.buildable and not d.is_abstract)

    def supertypes(self, name: str) -> tuple[str, ...]:
        """``name`` plus every base and alias, most specific first."""
        self._require_finalized()
        return self._defs[name].supertypes

    def is_subtype(self, name: str, supertype: str) -> bool:
        key = (name, supertype)
        result = self._subtype_cache.get(key)
        if result is None:
            typedef = self._defs.get(name)
            result = typedef is not None and supertype in (
                typedef.supertypes or self._compute_supertypes(typedef)
            )
            if self.finalized:
                self._subtype_cache[key] = result
        return result

    def alias_members(self, alias: str) -> tuple[str, ...]:
        """Concrete types that declare ``alias`` directly in ``aliases()``."""
        return tuple(
            d.name
            for d in self._defs.values()
            if alias in d.alias_names and d.buildable and not d.is_abstract
        )

    def visit_method_names(self) -> dict[str, str]:
        """Map every type name (concrete and abstract) to its visit method."""
        return {name: typedef.visit_method for name, typedef in self._defs.items()}
