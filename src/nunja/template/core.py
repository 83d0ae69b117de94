"""nunja Template: compiled template object ready for rendering.

A Template wraps the module produced by executing compiled template code:

    ```
    Template
    ├── environment           # Environment it was compiled for
    ├── root_render_func      # root(context) generator from the module
    ├── blocks                # {'title': block_title, ...}
    ├── globals               # ChainMap of template and environment globals
    └── name, filename        # For error messages
    ```

Rendering creates a `Context` and drains ``root_render_func``. Sync
environments produce generators, async environments async generators; the
render methods of the other flavor bridge with ``asyncio.run``.

Error Enhancement:
    Generated code keeps template line numbers, so the innermost traceback
    frame belonging to a template names the failing line. Errors escaping a
    render are turned into `TemplateRuntimeError` carrying that location:

        ```
        TemplateRuntimeError: division by zero
          Location: page.html:3
           |
            1 | {% set total = 10 %}
            2 | {% set count = 0 %}
        >   3 | {{ total / count }}
           |
        ```

"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterator, MutableMapping
from types import CodeType, TracebackType
from typing import IO, TYPE_CHECKING, Any, NoReturn

from markupsafe import Markup

from nunja.environment.exceptions import (
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    build_source_snippet,
)
from nunja.template.context import Context, new_context
from nunja.template.undefined import Undefined
from nunja.utils import concat

if TYPE_CHECKING:
    from nunja.environment import Environment

logger = logging.getLogger(__name__)

# Marks the globals of executed template modules; holds the Template.
TEMPLATE_MARKER = "__nunja_template__"


class Template:
    """Compiled template ready for rendering.

    Created by `Environment.from_string`, `Environment.get_template` and
    loaders, never directly.

    Attributes:
        environment: Environment the template belongs to
        name: Template name (None for templates from strings)
        filename: Source filename, if loaded from a file
        globals: Globals visible to this template
        blocks: Block name -> block render function
        root_render_func: Render function of the template body

    Example:
            >>> from nunja import Environment
            >>> env = Environment()
            >>> t = env.from_string("Hello, {{ name | upper }}!")
            >>> t.render(name="World")
            'Hello, WORLD!'

            >>> t.render({"name": "World"})  # Dict context also works
            'Hello, WORLD!'

    """

    environment: Environment
    globals: MutableMapping[str, Any]
    name: str | None
    filename: str | None
    blocks: dict[str, Callable[[Context], Iterator[str]]]
    root_render_func: Callable[[Context], Iterator[str]]
    _module: TemplateModule | None
    _uptodate: Callable[[], bool] | None
    _source: str | None

    @classmethod
    def from_code(
        cls,
        environment: Environment,
        code: CodeType,
        globals: MutableMapping[str, Any],
        uptodate: Callable[[], bool] | None = None,
        source: str | None = None,
    ) -> Template:
        """Execute compiled template code and wrap the resulting module."""
        namespace: dict[str, Any] = {"environment": environment, "__file__": code.co_filename}
        exec(code, namespace)
        rv = cls._from_namespace(environment, namespace, globals)
        rv._uptodate = uptodate
        rv._source = source
        return rv

    @classmethod
    def _from_namespace(
        cls,
        environment: Environment,
        namespace: MutableMapping[str, Any],
        globals: MutableMapping[str, Any],
    ) -> Template:
        t: Template = object.__new__(cls)
        t.environment = environment
        t.globals = globals
        t.name = namespace["name"]
        t.filename = namespace["__file__"]
        t.blocks = namespace["blocks"]
        t.root_render_func = namespace["root"]
        t._module = None
        t._uptodate = None
        t._source = None

        # Lets error handling map a traceback frame back to its template.
        namespace["environment"] = environment
        namespace[TEMPLATE_MARKER] = t
        return t

    # ─────────────────────────────────────────────────────────────────────────
    # Rendering
    # ─────────────────────────────────────────────────────────────────────────

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render the template with the given variables.

        Accepts the same arguments as ``dict``:

            >>> template.render(name="World")
            >>> template.render({"name": "World"})

        In an async environment this drives `render_async` with
        ``asyncio.run`` and therefore must not be called from a running
        event loop.
        """
        if self.environment.is_async:
            return asyncio.run(self.render_async(*args, **kwargs))

        ctx = self.new_context(dict(*args, **kwargs))
        try:
            return self.environment.concat(self.root_render_func(ctx))
        except Exception as e:
            self._handle_exception(e)

    async def render_async(self, *args: Any, **kwargs: Any) -> str:
        """Render the template in an async environment.

        Raises:
            RuntimeError: The environment was not created with ``enable_async``
        """
        if not self.environment.is_async:
            raise RuntimeError("The environment was not created with async mode enabled.")

        ctx = self.new_context(dict(*args, **kwargs))
        try:
            return self.environment.concat(
                [n async for n in self.root_render_func(ctx)]  # type: ignore[attr-defined]
            )
        except Exception as e:
            self._handle_exception(e)

    def generate(self, *args: Any, **kwargs: Any) -> Iterator[str]:
        """Render piece by piece, yielding output strings as they are produced."""
        if self.environment.is_async:

            async def to_list() -> list[str]:
                return [x async for x in self.generate_async(*args, **kwargs)]

            yield from asyncio.run(to_list())
            return

        ctx = self.new_context(dict(*args, **kwargs))
        try:
            yield from self.root_render_func(ctx)
        except Exception as e:
            self._handle_exception(e)

    async def generate_async(self, *args: Any, **kwargs: Any) -> AsyncIterator[str]:
        """Async flavor of `generate`."""
        if not self.environment.is_async:
            raise RuntimeError("The environment was not created with async mode enabled.")

        ctx = self.new_context(dict(*args, **kwargs))
        agen = self.root_render_func(ctx)
        try:
            async for event in agen:  # type: ignore[attr-defined]
                yield event
        except Exception as e:
            self._handle_exception(e)
        finally:
            await agen.aclose()  # type: ignore[attr-defined]

    def stream(self, *args: Any, **kwargs: Any) -> TemplateStream:
        """Like `generate` but returns a `TemplateStream`."""
        return TemplateStream(self.generate(*args, **kwargs))

    # ─────────────────────────────────────────────────────────────────────────
    # Contexts and modules
    # ─────────────────────────────────────────────────────────────────────────

    def new_context(
        self,
        vars: dict[str, Any] | None = None,
        shared: bool = False,
        locals: MutableMapping[str, Any] | None = None,
    ) -> Context:
        """Create a render `Context` for this template.

        ``vars`` become the template variables; with ``shared`` they are used
        as is instead of being merged over the template globals.
        """
        return new_context(
            self.environment, self.name, self.blocks, vars, shared, self.globals, locals
        )

    def make_module(
        self,
        vars: dict[str, Any] | None = None,
        shared: bool = False,
        locals: MutableMapping[str, Any] | None = None,
    ) -> TemplateModule:
        """Render the template and expose its exported names as a module."""
        ctx = self.new_context(vars, shared, locals)
        return TemplateModule(self, ctx)

    async def make_module_async(
        self,
        vars: dict[str, Any] | None = None,
        shared: bool = False,
        locals: MutableMapping[str, Any] | None = None,
    ) -> TemplateModule:
        ctx = self.new_context(vars, shared, locals)
        body_stream = [x async for x in self.root_render_func(ctx)]  # type: ignore[attr-defined]
        return TemplateModule(self, ctx, body_stream)

    def _get_default_module(self, ctx: Context | None = None) -> TemplateModule:
        """The cached module of an import without context.

        When the importing context carries globals this template does not
        know, they are passed on and the module is built fresh.
        """
        if self.environment.is_async:
            raise RuntimeError("Module is not available in async mode.")

        if ctx is not None:
            keys = ctx.globals_keys - self.globals.keys()
            if keys:
                return self.make_module({k: ctx.parent[k] for k in keys})

        if self._module is None:
            self._module = self.make_module()
        return self._module

    async def _get_default_module_async(self, ctx: Context | None = None) -> TemplateModule:
        if ctx is not None:
            keys = ctx.globals_keys - self.globals.keys()
            if keys:
                return await self.make_module_async({k: ctx.parent[k] for k in keys})

        if self._module is None:
            self._module = await self.make_module_async()
        return self._module

    @property
    def module(self) -> TemplateModule:
        """The template as a module, rendered without variables.

        Example:
            >>> t = env.from_string("{% macro foo() %}42{% endmacro %}23")
            >>> str(t.module)
            '23'
            >>> t.module.foo()
            '42'
        """
        return self._get_default_module()

    @property
    def is_up_to_date(self) -> bool:
        """False when the source changed since the template was loaded."""
        if self._uptodate is None:
            return True
        return self._uptodate()

    # ─────────────────────────────────────────────────────────────────────────
    # Error handling
    # ─────────────────────────────────────────────────────────────────────────

    def _handle_exception(self, error: Exception) -> NoReturn:
        enhanced = enhance_error(error, self)
        if enhanced is error:
            raise error
        raise enhanced from error

    def __repr__(self) -> str:
        name = "memory:" + format(id(self), "x") if self.name is None else repr(self.name)
        return f"<{type(self).__name__} {name}>"


def _template_frame(tb: TracebackType | None) -> tuple[Template | None, int | None]:
    """The innermost traceback frame that runs template code."""
    template = None
    lineno = None
    while tb is not None:
        owner = tb.tb_frame.f_globals.get(TEMPLATE_MARKER)
        if owner is not None:
            template = owner
            lineno = tb.tb_lineno
        tb = tb.tb_next
    return template, lineno


def enhance_error(error: Exception, fallback: Template | None = None) -> Exception:
    """Attach template name, line and source snippet to a render error.

    Template errors are completed in place and returned as is; any other
    exception becomes a new `TemplateRuntimeError` for the caller to chain.
    Lookup and syntax errors of other templates pass through untouched.
    """
    if isinstance(error, (TemplateNotFoundError, TemplateSyntaxError)):
        return error

    template, lineno = _template_frame(error.__traceback__)
    if template is None:
        template = fallback
    template_name = template.name if template is not None else None
    source = template._source if template is not None else None
    snippet = build_source_snippet(source, lineno) if source and lineno else None

    if isinstance(error, TemplateRuntimeError):
        if error.template_name is None and error.lineno is None:
            error.template_name = template_name
            error.lineno = lineno
            error.source_snippet = snippet
        return error
    if isinstance(error, TemplateError):
        return error

    error_str = str(error).strip()
    if not error_str:
        error_str = f"{type(error).__name__} (no details available)"
    logger.debug("render of %s failed at line %s: %r", template_name, lineno, error)
    return TemplateRuntimeError(
        error_str,
        template_name=template_name,
        lineno=lineno,
        source_snippet=snippet,
    )


class TemplateModule:
    """A rendered template seen as a module.

    Exported names (public top-level macros and assignments) are attributes;
    ``str(module)`` is the rendered body.
    """

    def __init__(
        self,
        template: Template,
        context: Context,
        body_stream: list[str] | None = None,
    ):
        if body_stream is None:
            if context.environment.is_async:
                raise RuntimeError(
                    "Async mode requires a body stream to be passed to"
                    " a template module. Use the async methods of the"
                    " API you are using."
                )
            body_stream = list(template.root_render_func(context))

        self._body_stream = body_stream
        self.__dict__.update(context.get_exported())
        self.__name__ = template.name

    def __html__(self) -> Markup:
        return Markup(concat(self._body_stream))

    def __str__(self) -> str:
        return concat(self._body_stream)

    def __repr__(self) -> str:
        name = "memory:" + format(id(self), "x") if self.__name__ is None else repr(self.__name__)
        return f"<{type(self).__name__} {name}>"


class TemplateExpression:
    """A compiled standalone expression, see `Environment.compile_expression`.

    Calling it with variables evaluates the expression and returns the raw
    Python value.
    """

    def __init__(self, template: Template, undefined_to_none: bool):
        self._template = template
        self._undefined_to_none = undefined_to_none

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        context = self._template.new_context(dict(*args, **kwargs))
        if self._template.environment.is_async:

            async def drain() -> None:
                async for _ in self._template.root_render_func(context):  # type: ignore[attr-defined]
                    pass

            asyncio.run(drain())
        else:
            for _ in self._template.root_render_func(context):
                pass
        rv = context.vars["result"]
        if self._undefined_to_none and isinstance(rv, Undefined):
            rv = None
        return rv


class TemplateStream:
    """Iterator over rendered output, optionally buffered into larger chunks.

    Example:
        >>> env.get_template("big.html").stream(items=items).dump("out.html")
    """

    def __init__(self, gen: Iterator[str]):
        self._gen = gen
        self.disable_buffering()

    def dump(
        self,
        fp: str | IO[Any],
        encoding: str | None = None,
        errors: str | None = "strict",
    ) -> None:
        """Write the whole stream to a filename or a file object."""
        close = False
        if isinstance(fp, str):
            if encoding is None:
                encoding = "utf-8"
            real_fp: IO[Any] = open(fp, "wb")  # noqa: SIM115
            close = True
        else:
            real_fp = fp

        try:
            if encoding is not None:
                iterable: Any = (x.encode(encoding, errors) for x in self)  # type: ignore[arg-type]
            else:
                iterable = self
            if hasattr(real_fp, "writelines"):
                real_fp.writelines(iterable)
            else:
                for item in iterable:
                    real_fp.write(item)
        finally:
            if close:
                real_fp.close()

    def disable_buffering(self) -> None:
        self._next = lambda: next(self._gen)
        self.buffered = False

    def _buffered_generator(self, size: int) -> Iterator[str]:
        buf: list[str] = []
        c_size = 0
        push = buf.append

        while True:
            try:
                while c_size < size:
                    c = next(self._gen)
                    push(c)
                    if c:
                        c_size += 1
            except StopIteration:
                if not c_size:
                    return
            yield concat(buf)
            del buf[:]
            c_size = 0

    def enable_buffering(self, size: int = 5) -> None:
        """Collect ``size`` non-empty items before yielding."""
        if size <= 1:
            raise ValueError("buffer size too small")

        self.buffered = True
        self._next = self._buffered_generator(size).__next__

    def __iter__(self) -> TemplateStream:
        return self

    def __next__(self) -> str:
        return self._next()  # type: ignore[no-any-return]
