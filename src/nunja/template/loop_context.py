"""Loop iteration metadata for nunja ``{% for %}`` blocks."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from typing import Any

from nunja.template.helpers import auto_aiter
from nunja.utils import missing


class LoopContext:
    """Loop iteration metadata accessible as `loop` inside `{% for %}` blocks.

    Iterating a LoopContext yields ``(item, loop)`` pairs; the compiled loop
    unpacks them into the target and the ``loop`` variable.

    Properties:
        index: 1-based iteration count (1, 2, 3, ...)
        index0: 0-based iteration count (0, 1, 2, ...)
        revindex: Reverse 1-based index (counts down to 1)
        revindex0: Reverse 0-based index (counts down to 0)
        first: True on the first iteration
        last: True on the final iteration
        length: Total number of items in the sequence
        depth: Nesting level of a recursive loop, starting at 1
        depth0: Nesting level of a recursive loop, starting at 0
        previtem: Previous item (undefined on the first iteration)
        nextitem: Next item (undefined on the last iteration)

    Methods:
        cycle(*values): Return values[index0 % len(values)]
        changed(*values): True when the values differ from the last call
        loop(iterable): Re-enter a ``recursive`` loop for child items

    Iterables without ``len()`` are consumed lazily. Asking for ``length``
    (or ``revindex``) buffers the remaining items; ``last`` and ``nextitem``
    look one item ahead.

    Example:
            ```jinja
            {% for item in items %}
                <li class="{{ loop.cycle('odd', 'even') }}">
                    {{ loop.index }}/{{ loop.length }}: {{ item }}
                </li>
            {% endfor %}
            ```

    """

    index0 = -1
    _length: int | None = None
    _after: Any = missing
    _current: Any = missing
    _before: Any = missing
    _last_changed_value: Any = missing

    def __init__(
        self,
        iterable: Iterable[Any],
        undefined: Callable[..., Any],
        recurse: Callable[..., Any] | None = None,
        depth0: int = 0,
    ) -> None:
        self._iterable = iterable
        self._iterator = self._to_iterator(iterable)
        self._undefined = undefined
        self._recurse = recurse
        self.depth0 = depth0

    @staticmethod
    def _to_iterator(iterable: Iterable[Any]) -> Any:
        return iter(iterable)

    @property
    def length(self) -> int:
        """Total number of items in the sequence."""
        if self._length is not None:
            return self._length
        try:
            self._length = len(self._iterable)  # type: ignore[arg-type]
        except TypeError:
            iterable = list(self._iterator)
            self._iterator = self._to_iterator(iterable)
            self._length = len(iterable) + self.index + (self._after is not missing)
        return self._length

    def __len__(self) -> int:
        return self.length

    @property
    def depth(self) -> int:
        return self.depth0 + 1

    @property
    def index(self) -> int:
        """1-based iteration count."""
        return self.index0 + 1

    @property
    def revindex0(self) -> int:
        return self.length - self.index

    @property
    def revindex(self) -> int:
        return self.length - self.index0

    @property
    def first(self) -> bool:
        return self.index0 == 0

    def _peek_next(self) -> Any:
        if self._after is not missing:
            return self._after
        self._after = next(self._iterator, missing)
        return self._after

    @property
    def last(self) -> bool:
        """True if this is the last iteration."""
        return self._peek_next() is missing

    @property
    def previtem(self) -> Any:
        if self.first:
            return self._undefined("there is no previous item")
        return self._before

    @property
    def nextitem(self) -> Any:
        rv = self._peek_next()
        if rv is missing:
            return self._undefined("there is no next item")
        return rv

    def cycle(self, *args: Any) -> Any:
        """Cycle through the given values.

        Example:
            {{ loop.cycle('odd', 'even') }}
        """
        if not args:
            raise TypeError("no items for cycling given")
        return args[self.index0 % len(args)]

    def changed(self, *value: Any) -> bool:
        """True on the first call and whenever the values differ from the last call."""
        if self._last_changed_value != value:
            self._last_changed_value = value
            return True
        return False

    def __iter__(self) -> LoopContext:
        return self

    def __next__(self) -> tuple[Any, LoopContext]:
        if self._after is not missing:
            rv = self._after
            self._after = missing
        else:
            rv = next(self._iterator)
        self.index0 += 1
        self._before = self._current
        self._current = rv
        return rv, self

    def __call__(self, iterable: Iterable[Any]) -> Any:
        """Render the loop body again for ``iterable`` one level deeper."""
        if self._recurse is None:
            raise TypeError(
                "The loop must have the 'recursive' marker to be called recursively."
            )
        return self._recurse(iterable, self._recurse, depth=self.depth)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.index}/{self.length}>"


class AsyncLoopContext(LoopContext):
    """`LoopContext` for async templates.

    Accepts sync and async iterables. Size-dependent properties (``length``,
    ``revindex``, ``revindex0``, ``last``, ``nextitem``) are awaitables here;
    compiled async templates await every attribute lookup, so templates read
    them as usual.
    """

    _iterator: AsyncIterator[Any]  # type: ignore[assignment]

    @staticmethod
    def _to_iterator(iterable: Any) -> AsyncIterator[Any]:
        return auto_aiter(iterable)

    @property
    async def length(self) -> int:  # type: ignore[override]
        if self._length is not None:
            return self._length
        try:
            self._length = len(self._iterable)  # type: ignore[arg-type]
        except TypeError:
            iterable = [x async for x in self._iterator]
            self._iterator = self._to_iterator(iterable)
            self._length = len(iterable) + self.index + (self._after is not missing)
        return self._length

    @property
    async def revindex0(self) -> int:  # type: ignore[override]
        return await self.length - self.index

    @property
    async def revindex(self) -> int:  # type: ignore[override]
        return await self.length - self.index0

    async def _peek_next(self) -> Any:
        if self._after is not missing:
            return self._after
        try:
            self._after = await self._iterator.__anext__()
        except StopAsyncIteration:
            self._after = missing
        return self._after

    @property
    async def last(self) -> bool:  # type: ignore[override]
        return await self._peek_next() is missing

    @property
    async def nextitem(self) -> Any:
        rv = await self._peek_next()
        if rv is missing:
            return self._undefined("there is no next item")
        return rv

    def __aiter__(self) -> AsyncLoopContext:
        return self

    async def __anext__(self) -> tuple[Any, AsyncLoopContext]:
        if self._after is not missing:
            rv = self._after
            self._after = missing
        else:
            rv = await self._iterator.__anext__()
        self.index0 += 1
        self._before = self._current
        self._current = rv
        return rv, self

    def __iter__(self) -> Iterator[Any]:  # type: ignore[override]
        raise TypeError("AsyncLoopContext can only be iterated with 'async for'")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.index}>"
