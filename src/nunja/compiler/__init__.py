"""nunja compiler: template AST to Python code.

The compiler lowers the node tree produced by the parser into a Python
`ast.Module` and leaves byte compilation to the built-in `compile()`.

Example:
    >>> from nunja import Environment
    >>> env = Environment()
    >>> module = generate(env.parse("{{ 1 + 2 }}"), env, "calc")
    >>> code = compile(module, "<calc>", "exec")
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING

from nunja.compiler.core import CodeGenerator, FinalizeInfo
from nunja.compiler.utils import CompilerExit

if TYPE_CHECKING:
    from nunja.environment import Environment
    from nunja.nodes.base import Node


def generate(
    node: Node,
    environment: Environment,
    name: str | None,
    filename: str | None = None,
    optimized: bool = True,
) -> ast.Module:
    """Generate the Python module for a ``Template`` node."""
    generator = environment.code_generator_class(environment, name, filename, optimized)
    return generator.compile(node)


__all__ = ["CodeGenerator", "CompilerExit", "FinalizeInfo", "generate"]
