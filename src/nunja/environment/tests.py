"""Built-in tests for nunja templates.

Tests are boolean predicates used with `is` in conditionals:
`{% if value is test %}` or `{% if value is test(arg) %}`

Categories:
**Type Tests**:
    - `defined` / `undefined`: Value is (not) an `Undefined`
    - `none`: Value is None
    - `boolean`, `integer`, `float`, `number`, `string`
    - `sequence`: Value supports ``len()`` and indexing
    - `mapping`: Value is a mapping
    - `iterable`: Value supports iteration
    - `callable`: Value is callable
    - `escaped`: Value has an ``__html__`` method

**Boolean Tests**:
    - `true`: Value is exactly True
    - `false`: Value is exactly False

**Number Tests**:
    - `odd`, `even`, `divisibleby(n)`

**Comparison Tests** (with operator aliases):
    - `eq(other)` / `equalto(other)` / `==(other)`
    - `ne(other)` / `!=(other)`
    - `lt(other)` / `lessthan(other)` / `<(other)`
    - `le(other)` / `<=(other)`
    - `gt(other)` / `greaterthan(other)` / `>(other)`
    - `ge(other)` / `>=(other)`
    - `sameas(other)`: Identity comparison (is)
    - `in(seq)`: Value is in sequence

**Environment Tests**:
    - `filter`: A filter with this name exists
    - `test`: A test with this name exists

**String Tests**:
    - `lower`, `upper`

Negation:
Use `is not` for negated tests:
`{% if user is not defined %}` or `{% if count is not even %}`

Example:
    ```jinja
    {% if posts is defined and posts is iterable %}
        {% for post in posts %}
            {% if loop.index is odd %}
                <div class="odd">{{ post.title }}</div>
            {% endif %}
        {% endfor %}
    {% endif %}
    ```

Custom Tests:
    >>> env.add_test('prime', lambda n: n > 1 and all(n % i for i in range(2, n)))
    >>> # {% if 17 is prime %}Yes{% endif %}

"""

from __future__ import annotations

import operator
from collections import abc
from collections.abc import Callable
from numbers import Number
from typing import TYPE_CHECKING, Any

from nunja.template.undefined import Undefined
from nunja.utils import pass_environment

if TYPE_CHECKING:
    from nunja.environment import Environment


def _test_odd(value: int) -> bool:
    """Test if value is odd."""
    return value % 2 == 1


def _test_even(value: int) -> bool:
    """Test if value is even."""
    return value % 2 == 0


def _test_divisible_by(value: int, num: int) -> bool:
    """Test if value is divisible by num."""
    return value % num == 0


def _test_defined(value: Any) -> bool:
    """Test if value is defined.

    Example:
        {% if variable is defined %}value of variable: {{ variable }}{% endif %}
    """
    return not isinstance(value, Undefined)


def _test_undefined(value: Any) -> bool:
    return isinstance(value, Undefined)


@pass_environment
def _test_filter(env: Environment, value: str) -> bool:
    """Test if a filter named ``value`` exists.

    Example:
        {% if 'markdown' is filter %}{{ text | markdown }}{% endif %}
    """
    return value in env.filters


@pass_environment
def _test_test(env: Environment, value: str) -> bool:
    """Test if a test named ``value`` exists."""
    return value in env.tests


def _test_none(value: Any) -> bool:
    return value is None


def _test_boolean(value: Any) -> bool:
    return value is True or value is False


def _test_false(value: Any) -> bool:
    return value is False


def _test_true(value: Any) -> bool:
    return value is True


def _test_integer(value: Any) -> bool:
    """Test if value is an int (booleans excluded)."""
    return isinstance(value, int) and value is not True and value is not False


def _test_float(value: Any) -> bool:
    return isinstance(value, float)


def _test_lower(value: str) -> bool:
    """Test if string is lowercase."""
    return str(value).islower()


def _test_upper(value: str) -> bool:
    """Test if string is uppercase."""
    return str(value).isupper()


def _test_string(value: Any) -> bool:
    return isinstance(value, str)


def _test_mapping(value: Any) -> bool:
    """Test if value is a mapping (dict or any `collections.abc.Mapping`)."""
    return isinstance(value, abc.Mapping)


def _test_number(value: Any) -> bool:
    """Test if value is a number (booleans included, as in Python)."""
    return isinstance(value, Number)


def _test_sequence(value: Any) -> bool:
    """Test if value supports ``len()`` and item access."""
    try:
        len(value)
        value.__getitem__  # noqa: B018
    except Exception:
        return False
    return True


def _test_sameas(value: Any, other: Any) -> bool:
    """Test if both values are the same object.

    Example:
        {% if foo.attribute is sameas false %}...{% endif %}
    """
    return value is other


def _test_iterable(value: Any) -> bool:
    """Test if value is iterable."""
    try:
        iter(value)
    except TypeError:
        return False
    return True


def _test_escaped(value: Any) -> bool:
    """Test if value is already escaped (has ``__html__``)."""
    return hasattr(value, "__html__")


def _test_in(value: Any, seq: Any) -> bool:
    """Test if value is in sequence."""
    return value in seq


# Default tests
DEFAULT_TESTS: dict[str, Callable[..., bool]] = {
    "odd": _test_odd,
    "even": _test_even,
    "divisibleby": _test_divisible_by,
    "defined": _test_defined,
    "undefined": _test_undefined,
    "filter": _test_filter,
    "test": _test_test,
    "none": _test_none,
    "boolean": _test_boolean,
    "false": _test_false,
    "true": _test_true,
    "integer": _test_integer,
    "float": _test_float,
    "lower": _test_lower,
    "upper": _test_upper,
    "string": _test_string,
    "mapping": _test_mapping,
    "number": _test_number,
    "sequence": _test_sequence,
    "iterable": _test_iterable,
    "callable": callable,
    "sameas": _test_sameas,
    "escaped": _test_escaped,
    "in": _test_in,
    "==": operator.eq,
    "eq": operator.eq,
    "equalto": operator.eq,
    "!=": operator.ne,
    "ne": operator.ne,
    ">": operator.gt,
    "gt": operator.gt,
    "greaterthan": operator.gt,
    "ge": operator.ge,
    ">=": operator.ge,
    "<": operator.lt,
    "lt": operator.lt,
    "lessthan": operator.lt,
    "<=": operator.le,
    "le": operator.le,
}
