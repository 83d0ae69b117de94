"""Tree traversal for nunja ASTs.

- `Path`: zipper cursor supporting in-place replacement and insertion
- `PathVisitor`: polymorphic visitor dispatching on node (super)types
- `find_undeclared` / `find_dependencies`: scans used by the compiler
"""

from __future__ import annotations

from nunja.analysis.dependencies import find_dependencies, find_undeclared
from nunja.analysis.path import Path, PathError
from nunja.analysis.visitor import AbortRequest, Context, PathVisitor, VisitorContractError, visit

__all__ = [
    "AbortRequest",
    "Context",
    "Path",
    "PathError",
    "PathVisitor",
    "VisitorContractError",
    "find_dependencies",
    "find_undeclared",
    "visit",
]
