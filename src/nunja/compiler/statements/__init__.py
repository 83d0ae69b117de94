"""Statement compilation for the nunja code generator.

The statements package is organized into logical modules:
- basic: expression statements, set, with, scopes, eval context modifiers
- control_flow: if, for (plain, extended and recursive loops), break, continue
- functions: macros, call blocks, filter blocks
- template_structure: extends, block, include, import, from-import

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from nunja.compiler.statements.basic import BasicStatementMixin
from nunja.compiler.statements.control_flow import ControlFlowMixin
from nunja.compiler.statements.functions import FunctionCompilationMixin
from nunja.compiler.statements.template_structure import TemplateStructureMixin


class StatementCompilationMixin(
    BasicStatementMixin,
    ControlFlowMixin,
    FunctionCompilationMixin,
    TemplateStructureMixin,
):
    """Combined mixin for compiling all statement types.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks in each individual mixin.
    """
