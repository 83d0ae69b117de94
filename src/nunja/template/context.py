"""Render contexts.

A `Context` holds the variables of one render: a read-only ``parent``
mapping (globals and the render arguments) and ``vars``, the names the
template itself assigned at top level. Generated code resolves names with
`Context.resolve_or_missing` and calls everything through `Context.call`,
which passes the context, eval context or environment to callables marked
with `pass_context` and friends.

``blocks`` maps a block name to its chain of render functions, most derived
first; ``{{ super() }}`` walks down that chain via `BlockReference`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from markupsafe import Markup

from nunja.utils import PassArg, missing

if TYPE_CHECKING:
    from nunja.environment import Environment


class EvalContext:
    """Evaluation-time settings that templates can change while rendering.

    ``{% autoescape %}`` flips `autoescape` for its body; `save` and
    `revert` restore the previous state afterwards. The compiler uses the
    same class at compile time, where `volatile` marks an autoescape value
    that is only known at render time.
    """

    def __init__(self, environment: Environment, template_name: str | None = None):
        self.environment = environment
        if callable(environment.autoescape):
            self.autoescape = environment.autoescape(template_name)
        else:
            self.autoescape = environment.autoescape
        self.volatile = False

    def save(self) -> Mapping[str, Any]:
        return self.__dict__.copy()

    def revert(self, old: Mapping[str, Any]) -> None:
        self.__dict__.clear()
        self.__dict__.update(old)


def new_context(
    environment: Environment,
    template_name: str | None,
    blocks: dict[str, Callable[[Context], Iterator[str]]],
    vars: dict[str, Any] | None = None,
    shared: bool = False,
    globals: Mapping[str, Any] | None = None,
    locals: Mapping[str, Any] | None = None,
) -> Context:
    """Create the render context for a template.

    With ``shared`` the ``vars`` mapping becomes the parent as is; otherwise
    the parent is a fresh dict of ``globals`` overlaid with ``vars``.
    ``locals`` (template-local names at an include or import) are added on
    top, skipping unbound ones.
    """
    if vars is None:
        vars = {}
    if shared:
        parent = vars
    else:
        parent = dict(globals or (), **vars)
    if locals:
        if shared:
            parent = dict(parent)
        for key, value in locals.items():
            if value is not missing:
                parent[key] = value
    return environment.context_class(environment, parent, template_name, blocks, globals=globals)


class Context:
    """Variables and blocks of one template render.

    Attributes:
        parent: Globals plus render arguments, never modified
        vars: Names assigned at the template's top level
        exported_vars: Public top-level names, exported by imports
        blocks: Block name -> render functions, most derived first
        eval_ctx: The active `EvalContext`
        name: Template name

    Example:
        >>> ctx = Context(env, {"user": "Ada"}, "page.html", {})
        >>> ctx.resolve("user")
        'Ada'
        >>> ctx.resolve("nope")
        Undefined
    """

    def __init__(
        self,
        environment: Environment,
        parent: dict[str, Any],
        name: str | None,
        blocks: dict[str, Callable[[Context], Iterator[str]]],
        globals: Mapping[str, Any] | None = None,
    ):
        self.parent = parent
        self.vars: dict[str, Any] = {}
        self.environment = environment
        self.eval_ctx = EvalContext(self.environment, name)
        self.exported_vars: set[str] = set()
        self.name = name
        self.globals_keys = set() if globals is None else set(globals)
        self.blocks = {k: [v] for k, v in blocks.items()}

    # ── lookup ──────────────────────────────────────────────────────────────

    def resolve_or_missing(self, key: str) -> Any:
        """Look ``key`` up in the template's vars, then the parent, else ``missing``."""
        if key in self.vars:
            return self.vars[key]
        if key in self.parent:
            return self.parent[key]
        return missing

    def resolve(self, key: str) -> Any:
        """Look ``key`` up; an unknown name yields an undefined value."""
        rv = self.resolve_or_missing(key)
        if rv is missing:
            return self.environment.undefined(name=key)
        return rv

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def get_exported(self) -> dict[str, Any]:
        """Public top-level names the template defined."""
        return {k: self.vars[k] for k in self.exported_vars}

    def get_all(self) -> dict[str, Any]:
        """Parent and vars merged; may return one of them without copying."""
        if not self.vars:
            return self.parent
        if not self.parent:
            return self.vars
        return dict(self.parent, **self.vars)

    def __contains__(self, name: str) -> bool:
        return name in self.vars or name in self.parent

    def __getitem__(self, key: str) -> Any:
        item = self.resolve_or_missing(key)
        if item is missing:
            raise KeyError(key)
        return item

    def keys(self) -> Any:
        return self.get_all().keys()

    def values(self) -> Any:
        return self.get_all().values()

    def items(self) -> Any:
        return self.get_all().items()

    # ── calling ─────────────────────────────────────────────────────────────

    def call(self, obj: Any, /, *args: Any, **kwargs: Any) -> Any:
        """Call ``obj`` the way a template call expression does.

        Marked callables get the context, eval context or environment
        prepended; a callable object may mark its ``__call__`` instead.
        """
        if hasattr(obj, "__call__") and PassArg.from_obj(obj.__call__) is not None:  # noqa: B004
            obj = obj.__call__

        pass_arg = PassArg.from_obj(obj)
        if pass_arg is PassArg.context:
            args = (self, *args)
        elif pass_arg is PassArg.eval_context:
            args = (self.eval_ctx, *args)
        elif pass_arg is PassArg.environment:
            args = (self.environment, *args)

        try:
            return obj(*args, **kwargs)
        except StopIteration:
            return self.environment.undefined(
                "value was undefined because a callable raised a StopIteration exception"
            )

    # ── derived contexts and blocks ─────────────────────────────────────────

    def derived(self, locals: dict[str, Any] | None = None) -> Context:
        """Context seeing everything this one sees plus ``locals``.

        Used by scoped blocks and ``{% with %}``-style overlays; blocks and
        the eval context are shared with this context.
        """
        context = new_context(self.environment, self.name, {}, self.get_all(), True, None, locals)
        context.eval_ctx = self.eval_ctx
        context.blocks.update((k, list(v)) for k, v in self.blocks.items())
        return context

    def super(self, name: str, current: Callable[[Context], Iterator[str]]) -> Any:
        """Reference to the block that ``current`` overrides in the ``name`` chain."""
        try:
            blocks = self.blocks[name]
            index = blocks.index(current) + 1
            blocks[index]
        except LookupError:
            return self.environment.undefined(
                f"there is no parent block called {name!r}.", name="super"
            )
        return BlockReference(name, self, blocks, index)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.get_all()!r} of {self.name!r}>"


class BlockReference:
    """A block in a ``blocks`` chain, rendered by calling it.

    ``{{ super() }}`` calls the reference to the parent block; its own
    `super` property reaches one level further up.
    """

    def __init__(
        self,
        name: str,
        context: Context,
        stack: list[Callable[[Context], Iterator[str]]],
        depth: int,
    ):
        self.name = name
        self._context = context
        self._stack = stack
        self._depth = depth

    @property
    def super(self) -> Any:
        if self._depth + 1 >= len(self._stack):
            return self._context.environment.undefined(
                f"there is no parent block called {self.name!r}.", name="super"
            )
        return BlockReference(self.name, self._context, self._stack, self._depth + 1)

    async def _async_call(self) -> str:
        rv = self._context.environment.concat(
            [x async for x in self._stack[self._depth](self._context)]  # type: ignore[attr-defined]
        )
        if self._context.eval_ctx.autoescape:
            return Markup(rv)
        return rv

    def __call__(self) -> Any:
        if self._context.environment.is_async:
            return self._async_call()
        rv = self._context.environment.concat(self._stack[self._depth](self._context))
        if self._context.eval_ctx.autoescape:
            return Markup(rv)
        return rv


class TemplateReference:
    """``self`` in templates: ``{{ self.title() }}`` renders block ``title`` again."""

    def __init__(self, context: Context):
        self.__context = context

    def __getitem__(self, name: str) -> BlockReference:
        blocks = self.__context.blocks[name]
        return BlockReference(name, self.__context, blocks, 0)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.__context.name!r}>"
