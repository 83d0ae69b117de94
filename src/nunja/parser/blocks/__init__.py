"""Block parsing mixins for the nunja parser."""

from __future__ import annotations

from nunja.parser.blocks.control_flow import ControlFlowBlockParsingMixin
from nunja.parser.blocks.functions import FunctionBlockParsingMixin
from nunja.parser.blocks.template_structure import TemplateStructureBlockParsingMixin

__all__ = [
    "ControlFlowBlockParsingMixin",
    "FunctionBlockParsingMixin",
    "TemplateStructureBlockParsingMixin",
]
