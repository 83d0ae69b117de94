"""Runtime helpers bound into every compiled template.

Generated code calls these by name (see `nunja.compiler.core.RUNTIME_NAMES`):

- `markup_join` / `str_join`: ``~`` concatenation with and without
  autoescaping
- `identity`: the no-op wrapper used where ``Markup`` would be applied under
  autoescape
- `auto_await` / `auto_aiter`: let async templates consume sync and async
  values alike
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Iterable
from itertools import chain
from typing import Any

from markupsafe import Markup, soft_str

from nunja.utils import concat


def markup_join(seq: Iterable[Any]) -> str:
    """Concatenate, switching to ``Markup`` joining once a safe value shows up."""
    buf = []
    iterator = map(soft_str, seq)
    for arg in iterator:
        buf.append(arg)
        if hasattr(arg, "__html__"):
            return Markup("").join(chain(buf, iterator))
    return concat(buf)


def str_join(seq: Iterable[Any]) -> str:
    return concat(map(str, seq))


def identity(x: Any) -> Any:
    return x


async def auto_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def auto_aiter(iterable: Any) -> AsyncIterator[Any]:
    """Iterate a sync or async iterable asynchronously."""
    if hasattr(iterable, "__aiter__"):
        async for item in iterable:
            yield item
    else:
        for item in iterable:
            yield item
