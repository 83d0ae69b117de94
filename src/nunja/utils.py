"""Small helpers shared by the runtime, the environment and templates.

Contents:
    - `missing`: sentinel for "no value" where None is a valid value
    - `pass_context` / `pass_eval_context` / `pass_environment`: mark
      filters, tests and globals that want the active context passed in
    - `Namespace`, `Cycler`, `Joiner`: objects behind the ``namespace``,
      ``cycler`` and ``joiner`` globals
    - `LRUCache`: bounded, thread-safe mapping used as the template cache
    - `select_autoescape`, `import_string`

"""

from __future__ import annotations

import enum
import importlib
import inspect
import threading
from collections import OrderedDict
from collections.abc import Callable, Collection, Iterable, Iterator
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class _MissingType:
    def __repr__(self) -> str:
        return "missing"

    def __reduce__(self) -> str:
        return "missing"


missing: Any = _MissingType()


def concat(values: Iterable[str]) -> str:
    return "".join(values)


# ─────────────────────────────────────────────────────────────────────────────
# Argument passing
# ─────────────────────────────────────────────────────────────────────────────


class PassArg(enum.Enum):
    """What a marked callable receives as its first argument."""

    context = enum.auto()
    eval_context = enum.auto()
    environment = enum.auto()

    @classmethod
    def from_obj(cls, obj: Any) -> PassArg | None:
        return getattr(obj, "nunja_pass_arg", None)

    @staticmethod
    def is_async(obj: Any) -> bool:
        return inspect.iscoroutinefunction(obj)


def pass_context(f: F) -> F:
    """Pass the active `Context` as the first argument when called."""
    f.nunja_pass_arg = PassArg.context  # type: ignore[attr-defined]
    return f


def pass_eval_context(f: F) -> F:
    """Pass the active `EvalContext` as the first argument when called."""
    f.nunja_pass_arg = PassArg.eval_context  # type: ignore[attr-defined]
    return f


def pass_environment(f: F) -> F:
    """Pass the `Environment` as the first argument when called."""
    f.nunja_pass_arg = PassArg.environment  # type: ignore[attr-defined]
    return f


# ─────────────────────────────────────────────────────────────────────────────
# Template globals
# ─────────────────────────────────────────────────────────────────────────────


class Namespace:
    """Attribute bag whose values survive scope boundaries.

    Example:
        >>> ns = Namespace(found=False)
        >>> ns["found"] = True
        >>> ns.found
        True
    """

    def __init__(*args: Any, **kwargs: Any):
        self, args = args[0], args[1:]
        self.__attrs = dict(*args, **kwargs)

    def __getattribute__(self, name: str) -> Any:
        if name in {"_Namespace__attrs", "__class__"}:
            return object.__getattribute__(self, name)
        try:
            return self.__attrs[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setitem__(self, name: str, value: Any) -> None:
        self.__attrs[name] = value

    def __repr__(self) -> str:
        return f"<Namespace {self.__attrs!r}>"


class Cycler:
    """Cycle through values, one per `next` call.

    Example:
        >>> row = Cycler("odd", "even")
        >>> row.next(), row.next(), row.next()
        ('odd', 'even', 'odd')
    """

    def __init__(self, *items: Any):
        if not items:
            raise RuntimeError("at least one item has to be provided")
        self.items = items
        self.pos = 0

    def reset(self) -> None:
        self.pos = 0

    @property
    def current(self) -> Any:
        return self.items[self.pos]

    def next(self) -> Any:
        rv = self.current
        self.pos = (self.pos + 1) % len(self.items)
        return rv

    __next__ = next


class Joiner:
    """Return ``sep`` on every call but the first."""

    def __init__(self, sep: str = ", "):
        self.sep = sep
        self.used = False

    def __call__(self) -> str:
        if not self.used:
            self.used = True
            return ""
        return self.sep


# ─────────────────────────────────────────────────────────────────────────────
# Caching
# ─────────────────────────────────────────────────────────────────────────────


class LRUCache:
    """Mapping that keeps at most ``capacity`` most recently used items.

    Thread-Safety:
        All operations hold an internal lock.
    """

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._mapping: OrderedDict[Any, Any] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Any, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def __getitem__(self, key: Any) -> Any:
        with self._lock:
            rv = self._mapping[key]
            self._mapping.move_to_end(key)
            return rv

    def __setitem__(self, key: Any, value: Any) -> None:
        with self._lock:
            self._mapping[key] = value
            self._mapping.move_to_end(key)
            while len(self._mapping) > self.capacity:
                self._mapping.popitem(last=False)

    def __delitem__(self, key: Any) -> None:
        with self._lock:
            del self._mapping[key]

    def __contains__(self, key: object) -> bool:
        return key in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._mapping))

    def clear(self) -> None:
        with self._lock:
            self._mapping.clear()

    def __repr__(self) -> str:
        return f"<LRUCache {len(self)}/{self.capacity}>"


# ─────────────────────────────────────────────────────────────────────────────
# Misc
# ─────────────────────────────────────────────────────────────────────────────


def select_autoescape(
    enabled_extensions: Collection[str] = ("html", "htm", "xml"),
    disabled_extensions: Collection[str] = (),
    default_for_string: bool = True,
    default: bool = False,
) -> Callable[[str | None], bool]:
    """Build an ``autoescape`` callable deciding by template file extension.

    Example:
        >>> autoescape = select_autoescape(["html"])
        >>> autoescape("page.html"), autoescape("mail.txt"), autoescape(None)
        (True, False, True)
    """
    enabled_patterns = tuple(f".{x.lstrip('.').lower()}" for x in enabled_extensions)
    disabled_patterns = tuple(f".{x.lstrip('.').lower()}" for x in disabled_extensions)

    def autoescape(template_name: str | None) -> bool:
        if template_name is None:
            return default_for_string
        template_name = template_name.lower()
        if template_name.endswith(enabled_patterns):
            return True
        if template_name.endswith(disabled_patterns):
            return False
        return default

    return autoescape


def import_string(import_name: str) -> Any:
    """Import an object by dotted path (``"pkg.module.attr"`` or ``"pkg.module:attr"``)."""
    if ":" in import_name:
        module, obj = import_name.split(":", 1)
    elif "." in import_name:
        module, _, obj = import_name.rpartition(".")
    else:
        return importlib.import_module(import_name)
    return getattr(importlib.import_module(module), obj)
