"""Exceptions for the nunja template system.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError      # Template not found by loader
│   └── TemplatesNotFoundError # None of several candidates found
├── TemplateSyntaxError        # Lex/parse-time syntax error
│   └── TemplateAssertionError # Compile-time structural error
├── TemplateRuntimeError       # Render-time error with context
└── UndefinedError             # Undefined value was used

Error Messages:
Every exception renders a plain message via ``str(exc)`` and a richer
diagnostic via ``format_compact()``:

    ```
    N-PAR-001: unexpected 'end of print statement'
      --> page.html:3
       |
      3 | <h1>{{ }}</h1>
       |      ^
      Docs: https://nunja.readthedocs.io/en/latest/errors.html#n-par-001
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

_DOCS_BASE = "https://nunja.readthedocs.io/en/latest/errors.html"


class ErrorCode(Enum):
    """Searchable error codes for nunja template errors.

    Format: N-{CATEGORY}-{NUMBER}
    Categories: LEX (lexer), PAR (parser), CMP (compiler), RUN (runtime),
    TPL (template loading)
    """

    # Lexer errors (N-LEX-xxx)
    UNCLOSED_TAG = "N-LEX-001"
    UNCLOSED_COMMENT = "N-LEX-002"
    UNEXPECTED_CHAR = "N-LEX-003"
    UNCLOSED_RAW = "N-LEX-004"

    # Parser errors (N-PAR-xxx)
    UNEXPECTED_TOKEN = "N-PAR-001"
    UNCLOSED_BLOCK = "N-PAR-002"
    INVALID_EXPRESSION = "N-PAR-003"
    INVALID_TARGET = "N-PAR-004"
    UNKNOWN_TAG = "N-PAR-005"

    # Compiler errors (N-CMP-xxx)
    ASSERTION = "N-CMP-001"

    # Runtime errors (N-RUN-xxx)
    UNDEFINED_VARIABLE = "N-RUN-001"
    RUNTIME_ERROR = "N-RUN-002"

    # Template loading errors (N-TPL-xxx)
    TEMPLATE_NOT_FOUND = "N-TPL-001"
    SYNTAX_ERROR = "N-TPL-002"

    @property
    def docs_url(self) -> str:
        """Documentation URL for this error code."""
        return f"{_DOCS_BASE}#{self.value.lower()}"

    @property
    def category(self) -> str:
        """Error category (e.g., 'runtime', 'lexer', 'parser', 'template')."""
        prefix = self.value.split("-")[1]
        return {
            "LEX": "lexer",
            "PAR": "parser",
            "CMP": "compiler",
            "RUN": "runtime",
            "TPL": "template",
        }.get(prefix, "unknown")


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        """Format the snippet with line numbers, marking the error line."""
        parts: list[str] = ["   |"]
        for lineno, content in self.lines:
            marker = ">" if lineno == self.error_line else " "
            parts.append(f"{marker}{lineno:>3} | {content}")
            if lineno == self.error_line and self.column is not None:
                parts.append(f"     | {' ' * self.column}^")
        parts.append("   |")
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


class TemplateError(Exception):
    """Base exception for all nunja template errors.

    Attributes:
        code: Optional ErrorCode for searchable error identification.
    """

    code: ErrorCode | None = None

    def __init__(self, message: str | None = None):
        super().__init__(message)

    @property
    def message(self) -> str | None:
        return self.args[0] if self.args else None

    def format_compact(self) -> str:
        """Format error as a structured, human-readable summary."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        parts = [header]
        if self.code:
            parts.append(f"  Docs: {self.code.docs_url}")
        return "\n".join(parts)


class TemplateNotFoundError(TemplateError, LookupError):
    """Template not found by the configured loader.

    Example:
        >>> env.get_template("nonexistent.html")
        TemplateNotFoundError: nonexistent.html
    """

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND

    def __init__(self, name: str | None, message: str | None = None):
        if message is None:
            message = name
        self.name = name
        self.templates = [name]
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.message)


class TemplatesNotFoundError(TemplateNotFoundError):
    """None of the candidate templates passed to ``select_template`` exist."""

    def __init__(self, names: list[Any] | tuple[Any, ...] = (), message: str | None = None):
        if message is None:
            parts = [str(name) for name in names]
            message = f"none of the templates given were found: {', '.join(parts)}"
        super().__init__(names[-1] if names else None, message)
        self.templates = list(names)


class TemplateSyntaxError(TemplateError):
    """Syntax error in template source.

    Raised by the lexer and the parser. When ``source`` and ``lineno`` are
    provided the message includes the offending line, and a caret when
    ``col_offset`` is known.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        code: ErrorCode | None = None,
    ):
        self.lineno = lineno
        self.name = name
        self.filename = filename
        self.source = source
        self.col_offset = col_offset
        if code is not None:
            self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        location = self.filename or self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
        text = f"{self.message}\n  --> {location}"
        if self.source and self.lineno:
            lines = self.source.splitlines()
            if 0 < self.lineno <= len(lines):
                text += f"\n   |\n{self.lineno:>3} | {lines[self.lineno - 1]}"
                if self.col_offset is not None:
                    text += f"\n   | {' ' * self.col_offset}^"
        return text

    def format_compact(self) -> str:
        """Format syntax error as structured terminal diagnostic."""
        code_prefix = f"{self.code.value}: " if self.code else ""
        location = self.filename or self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
        parts = [f"{code_prefix}{self.message}", f"  --> {location}"]
        if self.source and self.lineno:
            snippet = build_source_snippet(
                self.source, self.lineno, context_lines=0, column=self.col_offset
            )
            parts.append(snippet.format())
        if self.code:
            parts.append(f"  Docs: {self.code.docs_url}")
        return "\n".join(parts)


class TemplateAssertionError(TemplateSyntaxError):
    """Compile-time structural error raised by the code generator.

    These are template mistakes the parser accepts but the compiler cannot
    lower, e.g. ``{% extends %}`` inside a loop or assigning to ``loop``.
    """

    code: ErrorCode | None = ErrorCode.ASSERTION


class TemplateRuntimeError(TemplateError):
    """Render-time error with debugging context.

    Output Format:
        ```
        division by zero
          Location: article.html:15
           |
        > 15 | {{ total / count }}
           |
          Suggestion: Guard the division with {% if count %}
        ```

    Attributes:
        template_name: Name of the template
        lineno: Line number in template source
        source_snippet: Lines around the failing line
        suggestion: Actionable fix suggestion
    """

    code: ErrorCode | None = ErrorCode.RUNTIME_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        source_snippet: SourceSnippet | None = None,
        suggestion: str | None = None,
    ):
        self.template_name = template_name
        self.lineno = lineno
        self.source_snippet = source_snippet
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        parts = [str(self.message)]
        if self.template_name or self.lineno:
            loc = self.template_name or "<template>"
            if self.lineno:
                loc += f":{self.lineno}"
            parts.append(f"  Location: {loc}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.suggestion:
            parts.append(f"  Suggestion: {self.suggestion}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        """Format runtime error as structured terminal diagnostic."""
        text = str(self)
        if self.code:
            text = f"{self.code.value}: {text}\n  Docs: {self.code.docs_url}"
        return text


class UndefinedError(TemplateRuntimeError):
    """An undefined value was printed, iterated badly, called or indexed.

    Raised lazily by `nunja.template.undefined.Undefined` when an operation
    actually needs the missing value.

    Example:
        >>> env.from_string("{{ user.name }}").render()
        UndefinedError: 'user' is undefined
    """

    code: ErrorCode | None = ErrorCode.UNDEFINED_VARIABLE

    def __init__(self, message: str | None = None, name: str | None = None):
        self.name = name
        suggestion = None
        if name:
            suggestion = f"Use {{{{ {name} | default('') }}}} for optional variables"
        super().__init__(message, suggestion=suggestion)
