"""nunja: a Jinja-compatible template engine compiling to Python AST.

Quickstart:
    >>> from nunja import Environment
    >>> env = Environment()
    >>> template = env.from_string("Hello, {{ name }}!")
    >>> template.render(name="World")
    'Hello, World!'

File-based templates:
    >>> from nunja import Environment, FileSystemLoader
    >>> env = Environment(loader=FileSystemLoader("templates/"))
    >>> template = env.get_template("index.html")
    >>> template.render(page=page)

Architecture:
Template Source → Lexer → Parser → nunja AST → Compiler → Python AST → exec()

Pipeline stages:
1. **Lexer**: Tokenizes template source into a token list
2. **Parser**: Builds the node tree (`nunja.nodes`) from tokens
3. **Analysis**: Path/visitor traversal, symbol tracking and constant folding
4. **Compiler**: Lowers the node tree to a Python `ast.Module`
5. **Template**: Wraps the executed module with the render interface

Generated statements carry template line numbers, so Python tracebacks
point at template lines.

Async:
    >>> env = Environment(enable_async=True)
    >>> await env.from_string("{% for x in items %}{{ x }}{% endfor %}").render_async(items=agen())

"""

from nunja.environment import (
    BaseLoader,
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorCode,
    FileSystemLoader,
    FunctionLoader,
    PackageLoader,
    PrefixLoader,
    SourceSnippet,
    TemplateAssertionError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplatesNotFoundError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
)
from nunja._types import Token, TokenType
from nunja.template import (
    AsyncLoopContext,
    ChainableUndefined,
    Context,
    DebugUndefined,
    LoopContext,
    Macro,
    Markup,
    StrictUndefined,
    Template,
    TemplateModule,
    Undefined,
    escape,
    make_logging_undefined,
)
from nunja.utils import (
    pass_context,
    pass_environment,
    pass_eval_context,
    select_autoescape,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncLoopContext",
    "BaseLoader",
    "ChainableUndefined",
    "ChoiceLoader",
    "Context",
    "DebugUndefined",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "FunctionLoader",
    "LoopContext",
    "Macro",
    "Markup",
    "PackageLoader",
    "PrefixLoader",
    "SourceSnippet",
    "StrictUndefined",
    "Template",
    "TemplateAssertionError",
    "TemplateError",
    "TemplateModule",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "TemplatesNotFoundError",
    "Token",
    "TokenType",
    "Undefined",
    "UndefinedError",
    "__version__",
    "build_source_snippet",
    "escape",
    "make_logging_undefined",
    "pass_context",
    "pass_environment",
    "pass_eval_context",
    "select_autoescape",
]
