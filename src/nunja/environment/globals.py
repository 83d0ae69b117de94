"""Default global functions and variables for templates.

Every environment starts with these names in `Environment.globals`:

    - ``range``: like Python's, refusing ranges longer than
      `nunja.defaults.MAX_RANGE`
    - ``dict``: build a dict from keyword arguments
    - ``cycler``: `nunja.utils.Cycler`, cycle through values across loops
    - ``joiner``: `nunja.utils.Joiner`, separator that skips the first call
    - ``namespace``: `nunja.utils.Namespace`, mutable bag for ``{% set ns.x %}``

Usage:
    {% set ns = namespace(found=false) %}
    {% for item in items %}
      {% if item.check %}{% set ns.found = true %}{% endif %}
    {% endfor %}
    Found: {{ ns.found }}
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from nunja import defaults
from nunja.utils import Cycler, Joiner, Namespace


def safe_range(*args: int) -> range:
    """``range`` bounded by `nunja.defaults.MAX_RANGE` items.

    Raises:
        OverflowError: The range would exceed the bound
    """
    rng = range(*args)

    if len(rng) > defaults.MAX_RANGE:
        raise OverflowError(
            "Range too big. Ranges are limited to"
            f" MAX_RANGE ({defaults.MAX_RANGE})."
        )

    return rng


# Default globals
DEFAULT_GLOBALS: dict[str, Callable[..., Any]] = {
    "range": safe_range,
    "dict": dict,
    "cycler": Cycler,
    "joiner": Joiner,
    "namespace": Namespace,
}
