"""Undefined values.

Looking up a name or attribute that does not exist yields an `Undefined`
instead of raising. It renders as an empty string, iterates as empty and is
falsy; any other use (arithmetic, calling, attribute access) raises
`UndefinedError` with a message naming what was missing. The error only
happens when the value is actually used.

Variants:
    - `Undefined`: the default, lenient on print/iterate/test
    - `ChainableUndefined`: attribute and item access return itself
    - `DebugUndefined`: prints as ``{{ name }}``
    - `StrictUndefined`: fails on print, iterate and truth tests too
    - `make_logging_undefined`: logs every use of an undefined value
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from typing import Any, NoReturn

from nunja.environment.exceptions import UndefinedError
from nunja.utils import missing


def object_type_repr(obj: Any) -> str:
    """Name of an object's type for messages (``None`` and builtins unqualified)."""
    if obj is None:
        return "None"
    if obj is Ellipsis:
        return "Ellipsis"
    cls = type(obj)
    if cls.__module__ == "builtins":
        return f"{cls.__name__} object"
    return f"{cls.__module__}.{cls.__name__} object"


class Undefined:
    """Stand-in for a missing value.

    Example:
        >>> foo = Undefined(name="foo")
        >>> str(foo), len(foo), bool(foo)
        ('', 0, False)
        >>> foo + 42
        Traceback (most recent call last):
          ...
        nunja.environment.exceptions.UndefinedError: 'foo' is undefined
    """

    __slots__ = (
        "_undefined_exception",
        "_undefined_hint",
        "_undefined_name",
        "_undefined_obj",
    )

    def __init__(
        self,
        hint: str | None = None,
        obj: Any = missing,
        name: str | None = None,
        exc: type[UndefinedError] = UndefinedError,
    ):
        self._undefined_hint = hint
        self._undefined_obj = obj
        self._undefined_name = name
        self._undefined_exception = exc

    @property
    def _undefined_message(self) -> str:
        if self._undefined_hint:
            return self._undefined_hint
        if self._undefined_obj is missing:
            return f"{self._undefined_name!r} is undefined"
        if not isinstance(self._undefined_name, str):
            return (
                f"{object_type_repr(self._undefined_obj)} has no"
                f" element {self._undefined_name!r}"
            )
        return (
            f"{object_type_repr(self._undefined_obj)!r} has no"
            f" attribute {self._undefined_name!r}"
        )

    def _fail_with_undefined_error(self, *args: Any, **kwargs: Any) -> NoReturn:
        raise self._undefined_exception(self._undefined_message, name=self._undefined_name)

    def __getattr__(self, name: str) -> Any:
        # Dunder lookups come from Python protocols, not templates.
        if name[:2] == "__":
            raise AttributeError(name)
        return self._fail_with_undefined_error()

    __add__ = __radd__ = __sub__ = __rsub__ = _fail_with_undefined_error
    __mul__ = __rmul__ = __div__ = __rdiv__ = _fail_with_undefined_error
    __truediv__ = __rtruediv__ = _fail_with_undefined_error
    __floordiv__ = __rfloordiv__ = _fail_with_undefined_error
    __mod__ = __rmod__ = _fail_with_undefined_error
    __pos__ = __neg__ = _fail_with_undefined_error
    __call__ = __getitem__ = _fail_with_undefined_error
    __lt__ = __le__ = __gt__ = __ge__ = _fail_with_undefined_error
    __int__ = __float__ = __complex__ = _fail_with_undefined_error
    __pow__ = __rpow__ = _fail_with_undefined_error

    def __eq__(self, other: Any) -> bool:
        return type(self) is type(other)

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return id(type(self))

    def __str__(self) -> str:
        return ""

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[Any]:
        yield from ()

    async def __aiter__(self) -> AsyncIterator[Any]:
        for _ in ():
            yield

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Undefined"


class ChainableUndefined(Undefined):
    """Undefined that survives attribute and item chains.

    ``{{ user.address.city }}`` renders empty instead of failing when
    ``user`` is missing.
    """

    __slots__ = ()

    def __html__(self) -> str:
        return str(self)

    def __getattr__(self, name: str) -> ChainableUndefined:
        if name[:2] == "__":
            raise AttributeError(name)
        return self

    def __getitem__(self, key: Any) -> ChainableUndefined:  # type: ignore[override]
        return self


class DebugUndefined(Undefined):
    """Undefined that prints the expression it stands for."""

    __slots__ = ()

    def __str__(self) -> str:
        if self._undefined_hint:
            message = f"undefined value printed: {self._undefined_hint}"
        elif self._undefined_obj is missing:
            message = self._undefined_name  # type: ignore[assignment]
        else:
            message = (
                f"no such element: {object_type_repr(self._undefined_obj)}"
                f"[{self._undefined_name!r}]"
            )
        return f"{{{{ {message} }}}}"


class StrictUndefined(Undefined):
    """Undefined that fails on every use, printing and truth tests included."""

    __slots__ = ()

    __iter__ = __str__ = __len__ = Undefined._fail_with_undefined_error  # type: ignore[assignment]
    __eq__ = __ne__ = __bool__ = __hash__ = Undefined._fail_with_undefined_error  # type: ignore[assignment]
    __contains__ = Undefined._fail_with_undefined_error


def make_logging_undefined(
    logger: logging.Logger | None = None, base: type[Undefined] = Undefined
) -> type[Undefined]:
    """Build an Undefined class that logs every use of an undefined value.

    Printing, iterating and testing log a warning; failing operations log
    an error before raising.

    Example:
        >>> LoggingUndefined = make_logging_undefined(logging.getLogger("templates"))
        >>> env = Environment(undefined=LoggingUndefined)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    def _log_message(undef: Undefined) -> None:
        logger.warning("Template variable warning: %s", undef._undefined_message)

    class LoggingUndefined(base):  # type: ignore[valid-type,misc]
        __slots__ = ()

        def _fail_with_undefined_error(self, *args: Any, **kwargs: Any) -> NoReturn:
            try:
                super()._fail_with_undefined_error(*args, **kwargs)
            except self._undefined_exception as e:
                logger.error("Template variable error: %s", e.message)
                raise

        def __str__(self) -> str:
            _log_message(self)
            return super().__str__()

        def __iter__(self) -> Iterator[Any]:
            _log_message(self)
            return super().__iter__()

        def __bool__(self) -> bool:
            _log_message(self)
            return super().__bool__()

    return LoggingUndefined
