"""nunja Environment: central configuration and template management.

The Environment holds everything templates share:

    ```
    Environment
    ├── lexer config        # Delimiters, whitespace handling
    ├── loader              # Where template sources come from
    ├── cache               # LRU cache of compiled templates
    ├── filters / tests     # Callables for `|` and `is`
    ├── globals             # Names visible in every template
    └── extensions          # Extra tags and token stream rewriting
    ```

Compilation Pipeline:
    ```
    source ──preprocess──▶ lex ──filter_stream──▶ parse ──▶ generate ──▶ compile
                                                              │
                                    Template.from_code ◀──────┘
    ```

Example:
    >>> from nunja import Environment, DictLoader
    >>> env = Environment(loader=DictLoader({"hi.html": "Hi {{ name }}!"}))
    >>> env.get_template("hi.html").render(name="Ada")
    'Hi Ada!'

"""

from __future__ import annotations

import ast
import logging
import weakref
from collections import ChainMap
from collections.abc import Callable, Iterable, Iterator, MutableMapping, Sequence
from types import CodeType
from typing import TYPE_CHECKING, Any

from nunja import defaults, nodes
from nunja._types import TokenType
from nunja.compiler import CodeGenerator, generate
from nunja.environment.exceptions import (
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplatesNotFoundError,
    TemplateSyntaxError,
    UndefinedError,
)
from nunja.environment.filters import DEFAULT_FILTERS
from nunja.environment.globals import DEFAULT_GLOBALS
from nunja.environment.registry import FilterRegistry
from nunja.environment.tests import DEFAULT_TESTS
from nunja.lexer import Lexer, LexerConfig
from nunja.parser import Parser
from nunja.template import Context, Template, TemplateExpression
from nunja.template.context import EvalContext
from nunja.template.undefined import Undefined
from nunja.utils import LRUCache, PassArg, import_string

if TYPE_CHECKING:
    from nunja._types import Token
    from nunja.environment.loaders import BaseLoader
    from nunja.ext import Extension
    from nunja.nodes.base import Node

logger = logging.getLogger(__name__)


def create_cache(size: int) -> MutableMapping[Any, Template] | None:
    """Template cache for ``cache_size``: none for 0, unbounded when negative."""
    if size == 0:
        return None
    if size < 0:
        return {}
    return LRUCache(size)  # type: ignore[return-value]


def load_extensions(
    environment: Environment, extensions: Sequence[str | type[Extension]]
) -> dict[str, Extension]:
    """Instantiate extensions given as classes or import paths, keyed by identifier."""
    result = {}
    for extension in extensions:
        if isinstance(extension, str):
            extension = import_string(extension)
        result[extension.identifier] = extension(environment)
    return result


class Environment:
    """Central configuration and template management hub.

    Configuration:
        Delimiters: block_start_string, block_end_string,
            variable_start_string, variable_end_string,
            comment_start_string, comment_end_string
        Line syntax: line_statement_prefix, line_comment_prefix
        Whitespace: trim_blocks, lstrip_blocks, newline_sequence,
            keep_trailing_newline
        Output: autoescape (bool or callable taking the template name),
            finalize (applied to every ``{{ }}`` value), undefined (class
            used for missing values)
        Loading: loader, cache_size (0 disables, negative is unbounded),
            auto_reload (recompile templates whose source changed)
        Compilation: extensions (classes or import paths), optimized
            (constant folding), enable_async (compile async render functions)

    Attributes:
        filters: Filter registry (`FilterRegistry`)
        tests: Test registry (`FilterRegistry`)
        globals: Names visible in every template
        extensions: Loaded extensions by identifier
        is_async: Templates compile to async generators

    Example:
        >>> env = Environment(trim_blocks=True, autoescape=True)
        >>> env.add_filter("double", lambda x: x * 2)
        >>> env.from_string("{{ n | double }}").render(n=21)
        '42'

    """

    # Classes used for compilation and rendering; subclasses may replace them.
    code_generator_class: type[CodeGenerator] = CodeGenerator
    context_class: type[Context] = Context
    template_class: type[Template] = Template

    # Joins rendered output pieces.
    concat = "".join

    def __init__(
        self,
        block_start_string: str = defaults.BLOCK_START_STRING,
        block_end_string: str = defaults.BLOCK_END_STRING,
        variable_start_string: str = defaults.VARIABLE_START_STRING,
        variable_end_string: str = defaults.VARIABLE_END_STRING,
        comment_start_string: str = defaults.COMMENT_START_STRING,
        comment_end_string: str = defaults.COMMENT_END_STRING,
        line_statement_prefix: str | None = defaults.LINE_STATEMENT_PREFIX,
        line_comment_prefix: str | None = defaults.LINE_COMMENT_PREFIX,
        trim_blocks: bool = defaults.TRIM_BLOCKS,
        lstrip_blocks: bool = defaults.LSTRIP_BLOCKS,
        newline_sequence: str = defaults.NEWLINE_SEQUENCE,
        keep_trailing_newline: bool = defaults.KEEP_TRAILING_NEWLINE,
        extensions: Sequence[str | type[Extension]] = (),
        optimized: bool = True,
        undefined: type[Undefined] = Undefined,
        finalize: Callable[..., Any] | None = None,
        autoescape: bool | Callable[[str | None], bool] = False,
        loader: BaseLoader | None = None,
        cache_size: int = defaults.CACHE_SIZE,
        auto_reload: bool = True,
        enable_async: bool = False,
    ):
        self.block_start_string = block_start_string
        self.block_end_string = block_end_string
        self.variable_start_string = variable_start_string
        self.variable_end_string = variable_end_string
        self.comment_start_string = comment_start_string
        self.comment_end_string = comment_end_string
        self.line_statement_prefix = line_statement_prefix
        self.line_comment_prefix = line_comment_prefix
        self.trim_blocks = trim_blocks
        self.lstrip_blocks = lstrip_blocks
        self.newline_sequence = newline_sequence
        self.keep_trailing_newline = keep_trailing_newline

        self.undefined: type[Undefined] = undefined
        self.optimized = optimized
        self.finalize = finalize
        self.autoescape = autoescape

        self._filters: dict[str, Callable[..., Any]] = DEFAULT_FILTERS.copy()
        self._tests: dict[str, Callable[..., Any]] = DEFAULT_TESTS.copy()
        self.globals: dict[str, Any] = DEFAULT_GLOBALS.copy()

        self.loader = loader
        self.cache = create_cache(cache_size)
        self.auto_reload = auto_reload
        self.is_async = enable_async

        self._lexer: Lexer | None = None
        self.extensions = load_extensions(self, extensions)

        self._validate()

    def _validate(self) -> None:
        if not issubclass(self.undefined, Undefined):
            raise TypeError("'undefined' must be a subclass of 'nunja.Undefined'.")
        starts = {
            self.block_start_string,
            self.variable_start_string,
            self.comment_start_string,
        }
        if len(starts) != 3:
            raise RuntimeError("block, variable and comment start strings must be different.")
        if self.newline_sequence not in {"\r", "\r\n", "\n"}:
            raise ValueError("'newline_sequence' must be one of '\\n', '\\r\\n', or '\\r'.")

    # ─────────────────────────────────────────────────────────────────────────
    # Registries
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def filters(self) -> FilterRegistry:
        return FilterRegistry(self, "_filters")

    @filters.setter
    def filters(self, value: dict[str, Callable[..., Any]]) -> None:
        self._filters = dict(value)

    @property
    def tests(self) -> FilterRegistry:
        return FilterRegistry(self, "_tests")

    @tests.setter
    def tests(self, value: dict[str, Callable[..., Any]]) -> None:
        self._tests = dict(value)

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        """Register a filter: ``{{ value | name }}``."""
        self.filters[name] = func

    def add_test(self, name: str, func: Callable[..., Any]) -> None:
        """Register a test: ``{% if value is name %}``."""
        self.tests[name] = func

    def add_global(self, name: str, value: Any) -> None:
        """Make ``value`` visible as ``name`` in every template."""
        self.globals[name] = value

    def add_extension(self, extension: str | type[Extension]) -> None:
        """Load an extension after creation, by class or import path."""
        self.extensions.update(load_extensions(self, [extension]))
        self._lexer = None

    def iter_extensions(self) -> Iterator[Extension]:
        """Loaded extensions ordered by priority."""
        return iter(sorted(self.extensions.values(), key=lambda x: x.priority))

    # ─────────────────────────────────────────────────────────────────────────
    # Attribute and item access, filter and test calls
    # ─────────────────────────────────────────────────────────────────────────

    def getitem(self, obj: Any, argument: Any) -> Any:
        """``obj[argument]``, falling back to the attribute for string arguments."""
        try:
            return obj[argument]
        except (AttributeError, TypeError, LookupError):
            if isinstance(argument, str):
                try:
                    attr = str(argument)
                except Exception:
                    pass
                else:
                    try:
                        return getattr(obj, attr)
                    except AttributeError:
                        pass
            return self.undefined(obj=obj, name=argument)

    def getattr(self, obj: Any, attribute: str) -> Any:
        """``obj.attribute``, falling back to ``obj[attribute]``."""
        try:
            return getattr(obj, attribute)
        except AttributeError:
            pass
        try:
            return obj[attribute]
        except (TypeError, LookupError, AttributeError):
            return self.undefined(obj=obj, name=attribute)

    def _filter_test_common(
        self,
        name: str | Undefined,
        value: Any,
        args: Sequence[Any] | None,
        kwargs: dict[str, Any] | None,
        context: Context | None,
        eval_ctx: EvalContext | None,
        is_filter: bool,
    ) -> Any:
        env_map = self.filters if is_filter else self.tests
        type_name = "filter" if is_filter else "test"
        func = env_map.get(name)  # type: ignore[arg-type]

        if func is None:
            msg = f"No {type_name} named {name!r}."

            if isinstance(name, Undefined):
                try:
                    name._fail_with_undefined_error()
                except UndefinedError as e:
                    msg = f"{msg} ({e}; did you forget to quote the callable name?)"

            raise TemplateRuntimeError(msg)

        call_args = [value, *(args or ())]
        pass_arg = PassArg.from_obj(func)

        if pass_arg is PassArg.context:
            if context is None:
                raise TemplateRuntimeError(
                    f"Attempted to invoke a context {type_name} without context."
                )
            call_args.insert(0, context)
        elif pass_arg is PassArg.eval_context:
            if eval_ctx is None:
                if context is not None:
                    eval_ctx = context.eval_ctx
                else:
                    eval_ctx = EvalContext(self)
            call_args.insert(0, eval_ctx)
        elif pass_arg is PassArg.environment:
            call_args.insert(0, self)

        return func(*call_args, **(kwargs or {}))

    def call_filter(
        self,
        name: str,
        value: Any,
        args: Sequence[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
        context: Context | None = None,
        eval_ctx: EvalContext | None = None,
    ) -> Any:
        """Invoke filter ``name`` on ``value`` from Python code.

        Raises:
            TemplateRuntimeError: No such filter, or a context filter
                called without ``context``
        """
        return self._filter_test_common(name, value, args, kwargs, context, eval_ctx, True)

    def call_test(
        self,
        name: str,
        value: Any,
        args: Sequence[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
        context: Context | None = None,
        eval_ctx: EvalContext | None = None,
    ) -> Any:
        """Invoke test ``name`` on ``value`` from Python code."""
        return self._filter_test_common(name, value, args, kwargs, context, eval_ctx, False)

    # ─────────────────────────────────────────────────────────────────────────
    # Compilation
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def lexer(self) -> Lexer:
        """Lexer configured from this environment's delimiters and whitespace options."""
        if self._lexer is None:
            self._lexer = Lexer(
                LexerConfig(
                    block_start=self.block_start_string,
                    block_end=self.block_end_string,
                    variable_start=self.variable_start_string,
                    variable_end=self.variable_end_string,
                    comment_start=self.comment_start_string,
                    comment_end=self.comment_end_string,
                    line_statement_prefix=self.line_statement_prefix,
                    line_comment_prefix=self.line_comment_prefix,
                    trim_blocks=self.trim_blocks,
                    lstrip_blocks=self.lstrip_blocks,
                    newline_sequence=self.newline_sequence,
                    keep_trailing_newline=self.keep_trailing_newline,
                )
            )
        return self._lexer

    def preprocess(self, source: str, name: str | None = None, filename: str | None = None) -> str:
        """Run the source through every extension's `preprocess`."""
        for ext in self.iter_extensions():
            source = ext.preprocess(source, name, filename)
        return source

    def _tokenize(
        self, source: str, name: str | None, filename: str | None = None
    ) -> Iterable[Token]:
        source = self.preprocess(source, name, filename)
        tokens: Iterable[Token] = self.lexer.tokenize(source, name, filename)
        for ext in self.iter_extensions():
            tokens = ext.filter_stream(tokens)
        return tokens

    def lex(self, source: str, name: str | None = None, filename: str | None = None) -> list[Token]:
        """Tokenize ``source`` (extension preprocessing and filters included)."""
        return list(self._tokenize(source, name, filename))

    def parse(self, source: str, name: str | None = None, filename: str | None = None) -> Node:
        """Parse ``source`` into a ``Template`` node."""
        return self._parse(source, name, filename)

    def _parse(self, source: str, name: str | None, filename: str | None) -> Node:
        tokens = self._tokenize(source, name, filename)
        return Parser(tokens, name, filename, source, self.iter_extensions(), self.lexer).parse()

    def _generate(self, source: Node, name: str | None, filename: str | None) -> ast.Module:
        return generate(source, self, name, filename, optimized=self.optimized)

    def _compile(self, module: ast.Module, filename: str) -> CodeType:
        return compile(module, filename, "exec")

    def compile(
        self,
        source: str | Node,
        name: str | None = None,
        filename: str | None = None,
        raw: bool = False,
    ) -> Any:
        """Compile a template source or ``Template`` node to a code object.

        With ``raw`` the generated Python source is returned instead, for
        inspection.

        Raises:
            TemplateSyntaxError: Lexer, parser or compile-time errors
        """
        source_hint = None
        try:
            if isinstance(source, str):
                source_hint = source
                source = self._parse(source, name, filename)
            module = self._generate(source, name, filename)
        except TemplateSyntaxError as e:
            if e.source is None:
                e.source = source_hint
            if e.name is None:
                e.name = name
            if e.filename is None:
                e.filename = filename
            raise

        if raw:
            return ast.unparse(module)
        logger.debug("compiled template %s", name or "<string>")
        try:
            return self._compile(module, filename or "<template>")
        except SyntaxError as e:
            # e.g. ``{% break %}`` outside a loop; generated lines are template lines.
            raise TemplateSyntaxError(
                e.msg, e.lineno, name, filename, source_hint
            ) from e

    def compile_expression(self, source: str, undefined_to_none: bool = True) -> TemplateExpression:
        """Compile a standalone expression into a callable.

        Example:
            >>> expr = env.compile_expression("foo == 42")
            >>> expr(foo=23)
            False
            >>> expr(foo=42)
            True

        With ``undefined_to_none`` an undefined result comes back as None.
        """
        text = f"{self.variable_start_string} {source} {self.variable_end_string}"
        tokens = self.lexer.tokenize(text)
        parser = Parser(tokens, source=text, extensions=self.iter_extensions(), lexer=self.lexer)
        parser.stream.expect(TokenType.VARIABLE_BEGIN)
        expr = parser.parse_expression()
        if not parser.stream.current.test(TokenType.VARIABLE_END):
            parser.fail("chunk after expression", token=parser.stream.current)
        parser.stream.expect(TokenType.VARIABLE_END)
        if not parser.stream.eos:
            parser.fail("chunk after expression", token=parser.stream.current)

        body = [nodes.Assign(nodes.Name("result", "store"), expr)]
        template = self.from_string(nodes.Template(body))
        return TemplateExpression(template, undefined_to_none)

    # ─────────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────────

    def list_templates(
        self,
        extensions: Iterable[str] | None = None,
        filter_func: Callable[[str], bool] | None = None,
    ) -> list[str]:
        """Names of the loader's templates, filtered by file extension or predicate."""
        if self.loader is None:
            raise TypeError("no loader for this environment specified")
        names = self.loader.list_templates()

        if extensions is not None:
            if filter_func is not None:
                raise TypeError("either extensions or filter_func can be passed, but not both")
            wanted = tuple(f".{ext}" for ext in extensions)

            def filter_func(x: str) -> bool:
                return x.endswith(wanted)

        if filter_func is not None:
            names = [name for name in names if filter_func(name)]
        return names

    def join_path(self, template: str, parent: str) -> str:
        """Resolve a template name relative to the including template.

        The default keeps ``template`` unchanged; subclasses may resolve
        relative paths against ``parent``.
        """
        return template

    def make_globals(self, d: MutableMapping[str, Any] | None) -> MutableMapping[str, Any]:
        """Template globals layered over the environment globals."""
        if d is None:
            d = {}
        return ChainMap(d, self.globals)

    def _load_template(
        self, name: str, globals: MutableMapping[str, Any] | None
    ) -> Template:
        if self.loader is None:
            raise TypeError("no loader for this environment specified")
        cache_key = (weakref.ref(self.loader), name)
        if self.cache is not None:
            template = self.cache.get(cache_key)
            if template is not None and (not self.auto_reload or template.is_up_to_date):
                # template.globals is a ChainMap, modifying it will only
                # affect the template, not the environment globals.
                if globals:
                    template.globals.update(globals)
                logger.debug("template cache hit: %s", name)
                return template

        logger.debug("loading template %s", name)
        template = self.loader.load(self, name, self.make_globals(globals))

        if self.cache is not None:
            self.cache[cache_key] = template
        return template

    def get_template(
        self,
        name: str | Template,
        parent: str | None = None,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        """Load a template by name, from the cache when it is up to date.

        Raises:
            TemplateNotFoundError: The loader does not know the template
        """
        if isinstance(name, Undefined):
            name._fail_with_undefined_error()
        if isinstance(name, Template):
            return name
        if parent is not None:
            name = self.join_path(name, parent)

        return self._load_template(name, globals)

    def select_template(
        self,
        names: Iterable[str | Template],
        parent: str | None = None,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        """Load the first template of ``names`` that exists.

        Raises:
            TemplatesNotFoundError: None of the templates exist
        """
        if isinstance(names, Undefined):
            names._fail_with_undefined_error()

        if not names:
            raise TemplatesNotFoundError(
                message="Tried to select from an empty list of templates."
            )

        for name in names:
            if isinstance(name, Template):
                return name
            if parent is not None:
                name = self.join_path(name, parent)
            try:
                return self._load_template(name, globals)
            except (TemplateNotFoundError, UndefinedError):
                pass
        raise TemplatesNotFoundError(names)  # type: ignore[arg-type]

    def get_or_select_template(
        self,
        template_name_or_list: str | Template | list[str | Template],
        parent: str | None = None,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        """`get_template` for a name or template, `select_template` for a list."""
        if isinstance(template_name_or_list, (str, Undefined)):
            return self.get_template(template_name_or_list, parent, globals)  # type: ignore[arg-type]
        if isinstance(template_name_or_list, Template):
            return template_name_or_list
        return self.select_template(template_name_or_list, parent, globals)

    def from_string(
        self,
        source: str | Node,
        globals: MutableMapping[str, Any] | None = None,
        template_class: type[Template] | None = None,
    ) -> Template:
        """Compile a template from source, bypassing the loader.

        Example:
            >>> env.from_string("{{ a }} + {{ b }}").render(a=1, b=2)
            '1 + 2'
        """
        gs = self.make_globals(globals)
        cls = template_class or self.template_class
        text = source if isinstance(source, str) else None
        return cls.from_code(self, self.compile(source), gs, None, text)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} loader={self.loader!r}"
            f" autoescape={self.autoescape!r} async={self.is_async}>"
        )
