"""nunja Template package: compiled templates and their runtime.

Re-exports the template classes plus every name compiled template modules
import (``from nunja.template import Markup, escape, LoopContext, ...``).

"""

from markupsafe import Markup, escape

from nunja.environment.exceptions import TemplateNotFoundError, TemplateRuntimeError
from nunja.template.context import (
    BlockReference,
    Context,
    EvalContext,
    TemplateReference,
    new_context,
)
from nunja.template.core import Template, TemplateExpression, TemplateModule, TemplateStream
from nunja.template.helpers import (
    auto_aiter,
    auto_await,
    identity,
    markup_join,
    str_join,
)
from nunja.template.loop_context import AsyncLoopContext, LoopContext
from nunja.template.macro import Macro
from nunja.template.undefined import (
    ChainableUndefined,
    DebugUndefined,
    StrictUndefined,
    Undefined,
    make_logging_undefined,
)
from nunja.utils import Namespace, missing

__all__ = [
    "AsyncLoopContext",
    "BlockReference",
    "ChainableUndefined",
    "Context",
    "DebugUndefined",
    "EvalContext",
    "LoopContext",
    "Macro",
    "Markup",
    "Namespace",
    "StrictUndefined",
    "Template",
    "TemplateExpression",
    "TemplateModule",
    "TemplateNotFoundError",
    "TemplateReference",
    "TemplateRuntimeError",
    "TemplateStream",
    "Undefined",
    "auto_aiter",
    "auto_await",
    "escape",
    "identity",
    "make_logging_undefined",
    "markup_join",
    "missing",
    "new_context",
    "str_join",
]
