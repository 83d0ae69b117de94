"""Runtime wrapper for compiled macros and call blocks.

A compiled macro body is a plain function taking one positional parameter
per declared argument, followed by ``caller``, ``kwargs`` and ``varargs``
when the body uses them. `Macro` maps a template-level call onto that
signature:

1. positional arguments fill declared arguments in order
2. keyword arguments fill the remaining declared arguments by name
3. declared arguments still unfilled receive ``missing``; the compiled body
   substitutes the default or an undefined value
4. ``caller`` comes from the ``caller=`` keyword (a call block), or is an
   undefined value
5. leftover keywords go to ``kwargs``, leftover positionals to ``varargs``;
   either is a `TypeError` when the body does not read them
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from markupsafe import Markup

from nunja.template.context import EvalContext
from nunja.utils import missing, pass_eval_context

if TYPE_CHECKING:
    from nunja.environment import Environment


class Macro:
    """A macro or call block, callable from templates and from Python.

    Attributes:
        name: Macro name, None for call blocks
        arguments: Declared argument names in order
        catch_kwargs: The body reads ``kwargs``
        catch_varargs: The body reads ``varargs``
        caller: The body reads ``caller``

    Example:
        >>> env = Environment()
        >>> t = env.from_string("{% macro hello(name) %}Hello {{ name }}{% endmacro %}")
        >>> t.module.hello("World")
        'Hello World'
    """

    def __init__(
        self,
        environment: Environment,
        func: Callable[..., Any],
        name: str | None,
        arguments: tuple[str, ...],
        catch_kwargs: bool,
        catch_varargs: bool,
        caller: bool,
        default_autoescape: bool | None = None,
    ):
        self._environment = environment
        self._func = func
        self._argument_count = len(arguments)
        self.name = name
        self.arguments = arguments
        self.catch_kwargs = catch_kwargs
        self.catch_varargs = catch_varargs
        self.caller = caller
        self.explicit_caller = "caller" in arguments

        if default_autoescape is None:
            if callable(environment.autoescape):
                default_autoescape = environment.autoescape(None)
            else:
                default_autoescape = environment.autoescape
        self._default_autoescape = default_autoescape

    @pass_eval_context
    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        # Called from a template the active eval context comes first; its
        # autoescape setting wins over the one at definition time.
        if args and isinstance(args[0], EvalContext):
            autoescape = args[0].autoescape
            args = args[1:]
        else:
            autoescape = self._default_autoescape

        arguments = list(args[: self._argument_count])
        off = len(arguments)

        found_caller = False
        if off != self._argument_count:
            for name in self.arguments[off:]:
                try:
                    value = kwargs.pop(name)
                except KeyError:
                    value = missing
                if name == "caller":
                    found_caller = True
                arguments.append(value)
        else:
            found_caller = self.explicit_caller

        # Order matches the compiled signature: caller, kwargs, varargs.
        if self.caller and not found_caller:
            caller = kwargs.pop("caller", None)
            if caller is None:
                caller = self._environment.undefined("No caller defined", name="caller")
            arguments.append(caller)

        if self.catch_kwargs:
            arguments.append(kwargs)
        elif kwargs:
            if "caller" in kwargs:
                raise TypeError(
                    f"macro {self.name!r} was invoked with two values for the special"
                    " caller argument. This is most likely a bug."
                )
            raise TypeError(
                f"macro {self.name!r} takes no keyword argument {next(iter(kwargs))!r}"
            )
        if self.catch_varargs:
            arguments.append(args[self._argument_count :])
        elif len(args) > self._argument_count:
            raise TypeError(
                f"macro {self.name!r} takes not more than {len(self.arguments)} argument(s)"
            )

        return self._invoke(arguments, autoescape)

    async def _async_invoke(self, arguments: list[Any], autoescape: bool) -> str:
        rv = await self._func(*arguments)
        if autoescape:
            return Markup(rv)
        return rv  # type: ignore[no-any-return]

    def _invoke(self, arguments: list[Any], autoescape: bool) -> Any:
        if self._environment.is_async:
            return self._async_invoke(arguments, autoescape)
        rv = self._func(*arguments)
        if autoescape:
            rv = Markup(rv)
        return rv

    def __repr__(self) -> str:
        name = "anonymous" if self.name is None else repr(self.name)
        return f"<{type(self).__name__} {name}>"
