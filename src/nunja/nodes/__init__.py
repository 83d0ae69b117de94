"""AST nodes for nunja templates.

Node classes are generated from the declarative definitions in
`nunja.nodes.definitions`; every registered type (abstract supertypes
included) is exported here by name:

    >>> from nunja import nodes
    >>> node = nodes.Name("user", "load")
    >>> isinstance(node, nodes.Expr)
    True
    >>> nodes.REGISTRY.supertypes("Name")
    ('Name', 'Expr', 'BaseNode', 'Node')

Use `nunja.nodes.builders` for construction with field validation.
"""

from __future__ import annotations

from nunja.nodes.base import Node, Position, SourceLocation
from nunja.nodes.definitions import BINARY_OPERATORS, REGISTRY, UNARY_OPERATORS, build_registry
from nunja.nodes.registry import (
    DefinitionError,
    FieldDef,
    NodeTypeDef,
    NodeTypeRegistry,
    defaults,
    geq,
)

_NODE_CLASSES = {name: cls for name, cls in REGISTRY.classes.items() if name != "Node"}
globals().update(_NODE_CLASSES)


def can_assign(node: Node) -> bool:
    """True when ``node`` is a valid assignment target."""
    return node.typedef is not None and node.typedef.is_assignable(node)


__all__ = [
    "BINARY_OPERATORS",
    "REGISTRY",
    "UNARY_OPERATORS",
    "DefinitionError",
    "FieldDef",
    "Node",
    "NodeTypeDef",
    "NodeTypeRegistry",
    "Position",
    "SourceLocation",
    "build_registry",
    "can_assign",
    "defaults",
    "geq",
    *_NODE_CLASSES,
]
