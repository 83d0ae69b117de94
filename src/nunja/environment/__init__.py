"""nunja environment package.

Everything a template is compiled and rendered against:

- `Environment`: configuration, compilation and the template cache
- Loaders: `FileSystemLoader`, `DictLoader`, `FunctionLoader`,
  `ChoiceLoader`, `PrefixLoader`, `PackageLoader`
- The error hierarchy rooted at `TemplateError`
- Default filters, tests and globals (`DEFAULT_FILTERS`, `DEFAULT_TESTS`,
  `DEFAULT_GLOBALS`)

"""

from nunja.environment.exceptions import (
    ErrorCode,
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
from nunja.environment.core import Environment
from nunja.environment.filters import DEFAULT_FILTERS
from nunja.environment.globals import DEFAULT_GLOBALS
from nunja.environment.loaders import (
    BaseLoader,
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    PackageLoader,
    PrefixLoader,
)
from nunja.environment.registry import FilterRegistry
from nunja.environment.tests import DEFAULT_TESTS

__all__ = [
    "DEFAULT_FILTERS",
    "DEFAULT_GLOBALS",
    "DEFAULT_TESTS",
    "BaseLoader",
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "FilterRegistry",
    "FunctionLoader",
    "PackageLoader",
    "PrefixLoader",
    "SourceSnippet",
    "TemplateAssertionError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "TemplatesNotFoundError",
    "UndefinedError",
    "build_source_snippet",
]
