"""Filter and test registries of the nunja environment.

`Environment.filters` and `Environment.tests` are `FilterRegistry` views
over plain dicts held by the environment, so the usual dict idioms work:

    >>> env.filters["shout"] = lambda s: s.upper() + "!"
    >>> "shout" in env.filters
    True
    >>> env.tests.update({"short": lambda s: len(s) < 5})
"""

from __future__ import annotations

from collections.abc import Callable, ItemsView, Iterator, KeysView, ValuesView
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nunja.environment.core import Environment


class FilterRegistry:
    """Dict-like view of the filters or tests of an environment.

    Supports:
        - env.filters['name'] = func
        - env.filters.update({'name': func})
        - func = env.filters['name']
        - 'name' in env.filters
        - del env.filters['name']

    Mutations replace the underlying dict instead of changing it in place,
    so a render reading the old dict never sees a half-applied update.
    """

    __slots__ = ("_attr", "_env")

    def __init__(self, env: Environment, attr: str):
        self._env = env
        self._attr = attr

    def _get_dict(self) -> dict[str, Callable[..., Any]]:
        return getattr(self._env, self._attr)  # type: ignore[no-any-return]

    def _set_dict(self, d: dict[str, Callable[..., Any]]) -> None:
        setattr(self._env, self._attr, d)

    def __getitem__(self, name: str) -> Callable[..., Any]:
        return self._get_dict()[name]

    def __setitem__(self, name: str, func: Callable[..., Any]) -> None:
        new = self._get_dict().copy()
        new[name] = func
        self._set_dict(new)

    def __delitem__(self, name: str) -> None:
        new = self._get_dict().copy()
        del new[name]
        self._set_dict(new)

    def __contains__(self, name: object) -> bool:
        return name in self._get_dict()

    def __iter__(self) -> Iterator[str]:
        return iter(self._get_dict())

    def __len__(self) -> int:
        return len(self._get_dict())

    def get(self, name: str, default: Callable[..., Any] | None = None) -> Callable[..., Any] | None:
        return self._get_dict().get(name, default)

    def update(self, mapping: dict[str, Callable[..., Any]]) -> None:
        """Add several entries at once."""
        new = self._get_dict().copy()
        new.update(mapping)
        self._set_dict(new)

    def copy(self) -> dict[str, Callable[..., Any]]:
        """Return a copy of the underlying dict."""
        return self._get_dict().copy()

    def keys(self) -> KeysView[str]:
        return self._get_dict().keys()

    def values(self) -> ValuesView[Callable[..., Any]]:
        return self._get_dict().values()

    def items(self) -> ItemsView[str, Callable[..., Any]]:
        return self._get_dict().items()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._attr.lstrip('_')}: {len(self)}>"
