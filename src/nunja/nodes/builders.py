"""Typed node builders.

One `Builder` exists per concrete node type, named in snake_case with a
trailing underscore for Python keywords:

    >>> from nunja.nodes import builders as b
    >>> b.output([b.name("user"), b.template_data("!")])
    Output(nodes=[Name(name='user', ctx='load'), TemplateData(data='!')])
    >>> b.if_.from_({"test": b.const(True), "body": []})
    If(test=Const(value=True), body=[], elif_=[], else_=[])

Builders validate field values against the registered field types, which the
node constructors themselves do not do.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from nunja.nodes.base import Node, SourceLocation
from nunja.nodes.definitions import REGISTRY
from nunja.nodes.registry import NodeTypeDef, NodeTypeRegistry


class Builder:
    """Constructor for one concrete node type.

    Calling the builder takes the build parameters positionally; trailing
    parameters with defaults may be omitted. `from_` takes a mapping (or any
    object with matching attributes) instead.
    """

    __slots__ = ("typedef", "node_class")

    def __init__(self, typedef: NodeTypeDef, node_class: type[Node]):
        self.typedef = typedef
        self.node_class = node_class

    def __call__(self, *args: Any, loc: SourceLocation | None = None) -> Node:
        typedef = self.typedef
        params = typedef.build_params
        required = typedef.required_param_count
        if len(args) < required or len(args) > len(params):
            if required == len(params):
                expected = f"{required}"
            else:
                expected = f"{required} to {len(params)}"
            raise TypeError(
                f"{typedef.builder_name}() expects {expected} arguments, got {len(args)}"
            )
        values: dict[str, Any] = {}
        for param, value in zip(params, args):
            self._check_field(param, value)
            values[param] = value
        return self.node_class(**values, loc=loc)

    def from_(self, obj: Mapping[str, Any] | Any) -> Node:
        """Build from a mapping or object holding field values.

        Missing fields take their defaults; a missing required field raises
        `TypeError`. Hidden fields are never required.
        """
        values: dict[str, Any] = {}
        for field_def in self.typedef.visible_fields():
            if isinstance(obj, Mapping):
                present = field_def.name in obj
                value = obj.get(field_def.name)
            else:
                present = hasattr(obj, field_def.name)
                value = getattr(obj, field_def.name, None)
            if not present:
                if field_def.required:
                    raise TypeError(
                        f"{self.typedef.builder_name}.from_() missing required field "
                        f"{field_def.name!r}"
                    )
                value = field_def.get_default()
            self._check_field(field_def.name, value)
            values[field_def.name] = value
        loc = obj.get("loc") if isinstance(obj, Mapping) else getattr(obj, "loc", None)
        return self.node_class(**values, loc=loc)

    def _check_field(self, name: str, value: Any) -> None:
        field_def = self.typedef.all_fields[name]
        if not field_def.type.check(value, deep=False):
            raise TypeError(
                f"{value!r} does not match field {self.typedef.name}.{name} "
                f"of type {field_def.type}"
            )

    def __repr__(self) -> str:
        return f"<Builder {self.typedef.builder_name}>"


def make_builders(registry: NodeTypeRegistry) -> dict[str, Builder]:
    """Create a builder for every concrete type of a finalized registry."""
    return {
        registry[name].builder_name: Builder(registry[name], registry.node_class(name))
        for name in registry.concrete_types
    }


BUILDERS = make_builders(REGISTRY)


# Kept out of the module globals: `list`, `dict`, `getattr` and `filter` are
# builder names.
def __getattr__(name: str) -> Builder:
    try:
        return BUILDERS[name]
    except KeyError:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from None


def __dir__() -> list[str]:
    return sorted([*globals(), *BUILDERS])


__all__ = ["Builder", "BUILDERS", "make_builders", *BUILDERS]
