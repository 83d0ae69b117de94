"""Built-in filters for nunja templates.

Filters transform values with the pipe syntax: `{{ value | filter(args) }}`.
The value is the first argument; filter arguments follow.

Categories:
**Strings**: capitalize, center, format, indent, lower, replace, title,
    trim, truncate, upper, wordcount, wordwrap, striptags
**Escaping**: e/escape, forceescape, safe, urlencode, xmlattr, tojson
**Numbers**: abs, filesizeformat, float, int, round, sum
**Sequences**: batch, count/length, first, join, last, list, max, min,
    reverse, slice, sort, unique
**Mappings**: dictsort, items
**Objects**: attr, default/d, pprint, string
**Higher order**: groupby, map, select, reject, selectattr, rejectattr

Attribute arguments (``sort(attribute='age')``) accept dotted paths, with
integer segments used as indexes: ``attribute='address.lines.0'``.

Filters that need the render state are marked with `pass_context`,
`pass_eval_context` or `pass_environment` and receive it as their first
argument.

Custom Filters:
    >>> env.add_filter("double", lambda x: x * 2)
    >>> env.from_string("{{ 21 | double }}").render()
    '42'

"""

from __future__ import annotations

import json
import math
import re
import textwrap
from collections import abc
from collections.abc import Callable, Iterable, Iterator, Mapping
from itertools import chain, groupby
from pprint import pformat
from typing import TYPE_CHECKING, Any, NamedTuple
from urllib.parse import quote, quote_plus

from markupsafe import Markup, escape, soft_str

from nunja.environment.exceptions import TemplateRuntimeError
from nunja.template.undefined import Undefined
from nunja.utils import pass_context, pass_environment, pass_eval_context

if TYPE_CHECKING:
    from nunja.environment import Environment
    from nunja.template.context import Context, EvalContext

_WORD_RE = re.compile(r"\w+")
# Attribute names ``xmlattr`` refuses: they would break out of the attribute.
_ATTR_KEY_RE = re.compile(r"[\s/>=]", flags=re.ASCII)

# Characters allowed to stay between a truncation point and the end.
TRUNCATE_LEEWAY = 5


# ─────────────────────────────────────────────────────────────────────────────
# Attribute access helpers
# ─────────────────────────────────────────────────────────────────────────────


def _prepare_attribute_parts(attr: str | int | None) -> list[str | int]:
    if attr is None:
        return []
    if isinstance(attr, str):
        return [int(x) if x.isdigit() else x for x in attr.split(".")]
    return [attr]


def make_attrgetter(
    environment: Environment,
    attribute: str | int | None,
    postprocess: Callable[[Any], Any] | None = None,
    default: Any = None,
) -> Callable[[Any], Any]:
    """Getter following a dotted ``attribute`` path through `Environment.getitem`.

    ``default`` replaces an undefined result; ``postprocess`` runs last.
    """
    parts = _prepare_attribute_parts(attribute)

    def attrgetter(item: Any) -> Any:
        for part in parts:
            item = environment.getitem(item, part)
            if default is not None and isinstance(item, Undefined):
                item = default
        if postprocess is not None:
            item = postprocess(item)
        return item

    return attrgetter


def make_multi_attrgetter(
    environment: Environment,
    attribute: str | int | None,
    postprocess: Callable[[Any], Any] | None = None,
) -> Callable[[Any], list[Any]]:
    """Like `make_attrgetter` for comma separated attributes (``"last,first"``)."""
    if isinstance(attribute, str):
        split: Iterable[str | int | None] = attribute.split(",")
    else:
        split = [attribute]
    parts = [_prepare_attribute_parts(item) for item in split]

    def attrgetter(item: Any) -> list[Any]:
        items = [None] * len(parts)
        for i, attribute_part in enumerate(parts):
            item_i = item
            for part in attribute_part:
                item_i = environment.getitem(item_i, part)
            if postprocess is not None:
                item_i = postprocess(item_i)
            items[i] = item_i
        return items

    return attrgetter


def ignore_case(value: Any) -> Any:
    """Lowercase strings for case-insensitive comparisons, pass others."""
    if isinstance(value, str):
        return value.lower()
    return value


# ─────────────────────────────────────────────────────────────────────────────
# Strings
# ─────────────────────────────────────────────────────────────────────────────


def _filter_capitalize(s: str) -> str:
    """First character uppercase, the rest lowercase."""
    return soft_str(s).capitalize()


def _filter_title(s: str) -> str:
    """Titlecase: every word starts uppercase, the rest is lowercase."""
    return "".join(
        [
            item[0].upper() + item[1:].lower()
            for item in re.compile(r"([-\s({\[<]+)").split(soft_str(s))
            if item
        ]
    )


def _filter_lower(s: str) -> str:
    return soft_str(s).lower()


def _filter_upper(s: str) -> str:
    return soft_str(s).upper()


def _filter_trim(value: str, chars: str | None = None) -> str:
    """Strip leading and trailing ``chars`` (whitespace by default)."""
    return soft_str(value).strip(chars)


def _filter_center(value: str, width: int = 80) -> str:
    return soft_str(value).center(width)


@pass_eval_context
def _filter_replace(
    eval_ctx: EvalContext, s: str, old: str, new: str, count: int | None = None
) -> str:
    """Replace occurrences of ``old`` with ``new``, at most ``count`` times.

    Under autoescape, plain strings are escaped before replacing.
    """
    if count is None:
        count = -1
    if not eval_ctx.autoescape:
        return str(s).replace(str(old), str(new), count)
    if hasattr(old, "__html__") or hasattr(new, "__html__") and not hasattr(s, "__html__"):
        s = escape(s)
    else:
        s = soft_str(s)
    return s.replace(soft_str(old), soft_str(new), count)


def _filter_format(value: str, *args: Any, **kwargs: Any) -> str:
    """Printf-style formatting: ``{{ "%s, %s!" | format(greeting, name) }}``."""
    if args and kwargs:
        raise TemplateRuntimeError("can't handle positional and keyword arguments at the same time")
    return soft_str(value) % (kwargs or args)


def _filter_indent(s: str, width: int | str = 4, first: bool = False, blank: bool = False) -> str:
    """Indent every line but the first by ``width`` spaces (or the given string).

    Args:
        width: Number of spaces, or a string used as indentation
        first: Indent the first line too
        blank: Indent blank lines too
    """
    if isinstance(width, str):
        indention = width
    else:
        indention = " " * width

    newline = "\n"
    if isinstance(s, Markup) and not isinstance(newline, Markup):
        indention = Markup(indention)
        newline = Markup(newline)

    s += newline  # this quirk is necessary for splitlines method

    if blank:
        rv = (newline + indention).join(s.splitlines())
    else:
        lines = s.splitlines()
        rv = lines.pop(0)
        if lines:
            rv += newline + newline.join(indention + line if line else line for line in lines)

    if first:
        rv = indention + rv
    return rv


def _filter_truncate(
    s: str,
    length: int = 255,
    killwords: bool = False,
    end: str = "...",
    leeway: int | None = None,
) -> str:
    """Shorten ``s`` to ``length`` characters, ``end`` included.

    Words are kept whole unless ``killwords``. Strings at most ``leeway``
    characters over the limit are returned unchanged.

    Example:
        {{ "foo bar baz qux" | truncate(9) }}  ->  "foo..."
    """
    if leeway is None:
        leeway = TRUNCATE_LEEWAY
    if length < len(end):
        raise TemplateRuntimeError(f"expected length >= {len(end)}, got {length}")
    if leeway < 0:
        raise TemplateRuntimeError(f"expected leeway >= 0, got {leeway}")
    if len(s) <= length + leeway:
        return s
    if killwords:
        return s[: length - len(end)] + end
    result = s[: length - len(end)].rsplit(" ", 1)[0]
    return result + end


@pass_environment
def _filter_wordwrap(
    env: Environment,
    s: str,
    width: int = 79,
    break_long_words: bool = True,
    wrapstring: str | None = None,
    break_on_hyphens: bool = True,
) -> str:
    """Wrap text to ``width`` columns, keeping existing newlines."""
    if wrapstring is None:
        wrapstring = env.newline_sequence

    # textwrap.wrap doesn't consider existing newlines when wrapping.
    return wrapstring.join(
        [
            wrapstring.join(
                textwrap.wrap(
                    line,
                    width=width,
                    expand_tabs=False,
                    replace_whitespace=False,
                    break_long_words=break_long_words,
                    break_on_hyphens=break_on_hyphens,
                )
            )
            for line in s.splitlines()
        ]
    )


def _filter_wordcount(s: str) -> int:
    return len(_WORD_RE.findall(soft_str(s)))


def _filter_striptags(value: str) -> str:
    """Strip SGML/XML tags and collapse whitespace."""
    if hasattr(value, "__html__"):
        value = value.__html__()
    return Markup(str(value)).striptags()


# ─────────────────────────────────────────────────────────────────────────────
# Escaping
# ─────────────────────────────────────────────────────────────────────────────


def _filter_forceescape(value: Any) -> Markup:
    """Escape even values already marked safe."""
    if hasattr(value, "__html__"):
        value = value.__html__()
    return escape(str(value))


def _filter_safe(value: Any) -> Markup:
    """Mark the value safe: it will not be escaped under autoescape."""
    return Markup(value)


def _url_quote(obj: Any, for_qs: bool = False) -> str:
    if not isinstance(obj, bytes):
        if not isinstance(obj, str):
            obj = str(obj)
        obj = obj.encode("utf-8")
    safe = b"" if for_qs else b"/"
    rv = quote_plus(obj, safe) if for_qs else quote(obj, safe)
    return rv


def _filter_urlencode(value: str | Mapping[str, Any] | Iterable[tuple[str, Any]]) -> str:
    """Percent-encode a string, or build a query string from a mapping or pairs."""
    if isinstance(value, str) or not isinstance(value, Iterable):
        return _url_quote(value)

    if isinstance(value, dict):
        items: Iterable[tuple[str, Any]] = value.items()
    else:
        items = iter(value)  # type: ignore[arg-type]

    return "&".join(f"{_url_quote(k, for_qs=True)}={_url_quote(v, for_qs=True)}" for k, v in items)


@pass_eval_context
def _filter_xmlattr(eval_ctx: EvalContext, d: Mapping[str, Any], autospace: bool = True) -> str:
    """Render a mapping as SGML/XML attributes, skipping None and undefined values.

    Example:
        <ul{{ {'class': 'my_list', 'id': 'list-42'} | xmlattr }}>
        ->  <ul class="my_list" id="list-42">
    """
    items = []

    for key, value in d.items():
        if value is None or isinstance(value, Undefined):
            continue
        if _ATTR_KEY_RE.search(key) is not None:
            raise ValueError(f"Invalid character in attribute name: {key!r}")
        items.append(f'{escape(key)}="{escape(value)}"')

    rv = " ".join(items)

    if autospace and rv:
        rv = " " + rv

    if eval_ctx.autoescape:
        rv = Markup(rv)

    return rv


_HTML_SAFE_JSON = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "'": "\\u0027",
}


def _filter_tojson(value: Any, indent: int | None = None) -> Markup:
    """Serialize to JSON that is safe inside HTML ``<script>`` tags and attributes."""
    dumped = json.dumps(value, indent=indent, sort_keys=True)
    for char, replacement in _HTML_SAFE_JSON.items():
        dumped = dumped.replace(char, replacement)
    return Markup(dumped)


# ─────────────────────────────────────────────────────────────────────────────
# Numbers
# ─────────────────────────────────────────────────────────────────────────────


def _filter_filesizeformat(value: str | float | int, binary: bool = False) -> str:
    """Human-readable file size: ``13 kB``, ``4.1 MB``. ``binary`` uses KiB/MiB."""
    bytes_ = float(value)
    base = 1024 if binary else 1000
    prefixes = [
        ("KiB" if binary else "kB"),
        ("MiB" if binary else "MB"),
        ("GiB" if binary else "GB"),
        ("TiB" if binary else "TB"),
        ("PiB" if binary else "PB"),
        ("EiB" if binary else "EB"),
        ("ZiB" if binary else "ZB"),
        ("YiB" if binary else "YB"),
    ]

    if bytes_ == 1:
        return "1 Byte"
    if bytes_ < base:
        return f"{int(bytes_)} Bytes"

    for i, prefix in enumerate(prefixes):
        unit = base ** (i + 2)
        if bytes_ < unit:
            return f"{base * bytes_ / unit:.1f} {prefix}"
    return f"{base * bytes_ / unit:.1f} {prefix}"


def _filter_int(value: Any, default: int = 0, base: int = 10) -> int:
    """Convert to int, ``default`` when that fails. Strings honor ``base`` prefixes."""
    try:
        if isinstance(value, str):
            return int(value, base)
        return int(value)
    except (TypeError, ValueError):
        # this quirk is necessary so that "42.23"|int gives 42.
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default


def _filter_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _filter_round(value: float, precision: int = 0, method: str = "common") -> float:
    """Round to ``precision`` digits.

    Methods: ``common`` (half away from zero as Python rounds), ``ceil``,
    ``floor``.
    """
    if method not in {"common", "ceil", "floor"}:
        raise TemplateRuntimeError("method must be common, ceil or floor")
    if method == "common":
        return round(value, precision)
    func = getattr(math, method)
    return func(value * (10**precision)) / (10**precision)  # type: ignore[no-any-return]


@pass_environment
def _filter_sum(
    env: Environment,
    iterable: Iterable[Any],
    attribute: str | int | None = None,
    start: Any = 0,
) -> Any:
    """Sum a sequence, optionally of one attribute of each item.

    Example:
        Total: {{ items | sum(attribute='price') }}
    """
    if attribute is not None:
        iterable = map(make_attrgetter(env, attribute), iterable)
    return sum(iterable, start)


# ─────────────────────────────────────────────────────────────────────────────
# Sequences
# ─────────────────────────────────────────────────────────────────────────────


def _filter_length(obj: Any) -> int:
    return len(obj)


def _filter_list(value: Any) -> list[Any]:
    """Convert to a list; strings become lists of characters."""
    return list(value)


def _filter_string(value: Any) -> str:
    """Convert to a string, keeping ``Markup`` as ``Markup``."""
    return soft_str(value)


@pass_environment
def _filter_first(env: Environment, seq: Iterable[Any]) -> Any:
    try:
        return next(iter(seq))
    except StopIteration:
        return env.undefined("No first item, sequence was empty.")


@pass_environment
def _filter_last(env: Environment, seq: Any) -> Any:
    try:
        return next(iter(reversed(seq)))
    except StopIteration:
        return env.undefined("No last item, sequence was empty.")


def _filter_reverse(value: Any) -> Any:
    """Reverse a string or sequence; iterables become reversed lists."""
    if isinstance(value, str):
        return value[::-1]
    try:
        return reversed(value)
    except TypeError:
        try:
            rv = list(value)
            rv.reverse()
            return rv
        except TypeError as e:
            raise TemplateRuntimeError("argument must be iterable") from e


@pass_eval_context
def _filter_join(
    eval_ctx: EvalContext,
    value: Iterable[Any],
    d: str = "",
    attribute: str | int | None = None,
) -> str:
    """Join items with ``d``, optionally one attribute of each item.

    Under autoescape the result is ``Markup``; unsafe items are escaped
    when any item or the separator is already safe.

    Example:
        {{ users | join(', ', attribute='username') }}
    """
    if attribute is not None:
        value = map(make_attrgetter(eval_ctx.environment, attribute), value)

    if not eval_ctx.autoescape:
        return str(d).join(map(str, value))

    # if the delimiter doesn't have an html representation we check
    # if any of the items has. If yes we do a coercion to Markup
    if not hasattr(d, "__html__"):
        value = list(value)
        do_escape = False

        for idx, item in enumerate(value):
            if hasattr(item, "__html__"):
                do_escape = True
            else:
                value[idx] = str(item)

        if do_escape:
            d = escape(d)
        else:
            d = str(d)

        return d.join(value)

    # no html involved, too normal joining
    return soft_str(d).join(map(soft_str, value))


def _filter_batch(value: Iterable[Any], linecount: int, fill_with: Any = None) -> Iterator[list[Any]]:
    """Split into lists of ``linecount`` items, padding the last with ``fill_with``.

    Example:
        {% for row in items | batch(3, '&nbsp;') %}<tr>...</tr>{% endfor %}
    """
    tmp: list[Any] = []

    for item in value:
        if len(tmp) == linecount:
            yield tmp
            tmp = []

        tmp.append(item)

    if tmp:
        if fill_with is not None and len(tmp) < linecount:
            tmp += [fill_with] * (linecount - len(tmp))

        yield tmp


def _filter_slice(value: Iterable[Any], slices: int, fill_with: Any = None) -> Iterator[list[Any]]:
    """Split into ``slices`` columns of nearly equal length."""
    seq = list(value)
    length = len(seq)
    items_per_slice = length // slices
    slices_with_extra = length % slices
    offset = 0

    for slice_number in range(slices):
        start = offset + slice_number * items_per_slice

        if slice_number < slices_with_extra:
            offset += 1

        end = offset + (slice_number + 1) * items_per_slice
        tmp = seq[start:end]

        if fill_with is not None and slice_number >= slices_with_extra:
            tmp.append(fill_with)

        yield tmp


@pass_environment
def _filter_sort(
    env: Environment,
    value: Iterable[Any],
    reverse: bool = False,
    case_sensitive: bool = False,
    attribute: str | int | None = None,
) -> list[Any]:
    """Sort an iterable; strings compare case-insensitively unless ``case_sensitive``.

    ``attribute`` may list several comma separated attributes:

        {% for user in users | sort(attribute="age,name") %}
    """
    key_func = make_multi_attrgetter(env, attribute, postprocess=ignore_case if not case_sensitive else None)
    return sorted(value, key=key_func, reverse=reverse)


@pass_environment
def _filter_unique(
    env: Environment,
    value: Iterable[Any],
    case_sensitive: bool = False,
    attribute: str | int | None = None,
) -> Iterator[Any]:
    """Unique items in first-seen order."""
    getter = make_attrgetter(env, attribute, postprocess=ignore_case if not case_sensitive else None)
    seen = set()

    for item in value:
        key = getter(item)

        if key not in seen:
            seen.add(key)
            yield item


def _min_or_max(
    env: Environment,
    value: Iterable[Any],
    func: Callable[..., Any],
    case_sensitive: bool,
    attribute: str | int | None,
) -> Any:
    it = iter(value)

    try:
        first = next(it)
    except StopIteration:
        return env.undefined("No aggregated item, sequence was empty.")

    key_func = make_attrgetter(env, attribute, postprocess=ignore_case if not case_sensitive else None)
    return func(chain([first], it), key=key_func)


@pass_environment
def _filter_min(
    env: Environment,
    value: Iterable[Any],
    case_sensitive: bool = False,
    attribute: str | int | None = None,
) -> Any:
    """Smallest item, undefined for an empty sequence."""
    return _min_or_max(env, value, min, case_sensitive, attribute)


@pass_environment
def _filter_max(
    env: Environment,
    value: Iterable[Any],
    case_sensitive: bool = False,
    attribute: str | int | None = None,
) -> Any:
    """Largest item, undefined for an empty sequence."""
    return _min_or_max(env, value, max, case_sensitive, attribute)


# ─────────────────────────────────────────────────────────────────────────────
# Mappings and objects
# ─────────────────────────────────────────────────────────────────────────────


def _filter_dictsort(
    value: Mapping[Any, Any],
    case_sensitive: bool = False,
    by: str = "key",
    reverse: bool = False,
) -> list[tuple[Any, Any]]:
    """Sort a mapping into ``(key, value)`` pairs, by key or by value."""
    if by == "key":
        pos = 0
    elif by == "value":
        pos = 1
    else:
        raise TemplateRuntimeError('You can only sort by either "key" or "value"')

    def sort_func(item: tuple[Any, Any]) -> Any:
        value = item[pos]

        if not case_sensitive:
            value = ignore_case(value)

        return value

    return sorted(value.items(), key=sort_func, reverse=reverse)


def _filter_items(value: Mapping[Any, Any] | Undefined) -> Iterator[tuple[Any, Any]]:
    """``(key, value)`` pairs of a mapping; an undefined value gives none."""
    if isinstance(value, Undefined):
        return

    if not isinstance(value, abc.Mapping):
        raise TypeError("Can only get item pairs from a mapping.")

    yield from value.items()


def _filter_default(value: Any, default_value: Any = "", boolean: bool = False) -> Any:
    """``default_value`` when ``value`` is undefined, or falsy with ``boolean``.

    Example:
        {{ user.nickname | default(user.name) }}
        {{ '' | d('empty', true) }}
    """
    if isinstance(value, Undefined) or (boolean and not value):
        return default_value

    return value


@pass_environment
def _filter_attr(env: Environment, obj: Any, name: str) -> Any:
    """Attribute lookup without the item fallback of ``obj.name``."""
    try:
        name = str(name)
    except UnicodeError:
        pass
    else:
        try:
            return getattr(obj, name)
        except AttributeError:
            pass

    return env.undefined(obj=obj, name=name)


def _filter_pprint(value: Any) -> str:
    """Pretty print a value, for debugging."""
    return pformat(value)


class _GroupTuple(NamedTuple):
    grouper: Any
    list: list[Any]

    # Use the regular tuple repr to hide this subclass if users print
    # out the value during debugging.
    def __repr__(self) -> str:
        return tuple.__repr__(self)

    def __str__(self) -> str:
        return tuple.__str__(self)


@pass_environment
def _filter_groupby(
    env: Environment,
    value: Iterable[Any],
    attribute: str | int,
    default: Any = None,
    case_sensitive: bool = False,
) -> list[_GroupTuple]:
    """Group items by an attribute into ``(grouper, list)`` tuples.

    Example:
        ```jinja
        {% for city, items in users | groupby("city") %}
          <li>{{ city }}: {{ items | map(attribute="name") | join(", ") }}</li>
        {% endfor %}
        ```
    """
    expr = make_attrgetter(
        env,
        attribute,
        postprocess=ignore_case if not case_sensitive else None,
        default=default,
    )
    out = [_GroupTuple(key, list(values)) for key, values in groupby(sorted(value, key=expr), expr)]

    if not case_sensitive:
        # Return the real key from the first value instead of the lowercase key.
        output_expr = make_attrgetter(env, attribute, default=default)
        out = [_GroupTuple(output_expr(values[0]), values) for _, values in out]

    return out


# ─────────────────────────────────────────────────────────────────────────────
# Higher order: map / select / reject
# ─────────────────────────────────────────────────────────────────────────────


def _prepare_map(context: Context, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Callable[[Any], Any]:
    if not args and "attribute" in kwargs:
        attribute = kwargs.pop("attribute")
        default = kwargs.pop("default", None)

        if kwargs:
            raise TemplateRuntimeError(f"Unexpected keyword argument {next(iter(kwargs))!r}")

        return make_attrgetter(context.environment, attribute, default=default)

    try:
        name = args[0]
        args = args[1:]
    except LookupError:
        raise TemplateRuntimeError("map requires a filter argument") from None

    def func(item: Any) -> Any:
        return context.environment.call_filter(name, item, args, kwargs, context=context)

    return func


def _prepare_select_or_reject(
    context: Context,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    modfunc: Callable[[Any], Any],
    lookup_attr: bool,
) -> Callable[[Any], Any]:
    if lookup_attr:
        try:
            attr = args[0]
        except LookupError:
            raise TemplateRuntimeError("Missing parameter for attribute name") from None

        transfunc = make_attrgetter(context.environment, attr)
        off = 1
    else:
        off = 0

        def transfunc(x: Any) -> Any:
            return x

    try:
        name = args[off]
        args = args[1 + off :]

        def func(item: Any) -> Any:
            return context.environment.call_test(name, item, args, kwargs, context=context)

    except LookupError:
        func = bool

    return lambda item: modfunc(func(transfunc(item)))


def _select_or_reject(
    context: Context,
    value: Iterable[Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    modfunc: Callable[[Any], Any],
    lookup_attr: bool,
) -> Iterator[Any]:
    if value:
        func = _prepare_select_or_reject(context, args, kwargs, modfunc, lookup_attr)

        for item in value:
            if func(item):
                yield item


@pass_context
def _filter_map(context: Context, value: Iterable[Any], *args: Any, **kwargs: Any) -> Iterator[Any]:
    """Apply a filter to every item, or look up an attribute of every item.

    Example:
        {{ users | map(attribute='username') | join(', ') }}
        {{ titles | map('lower') | join(', ') }}
    """
    if value:
        func = _prepare_map(context, args, kwargs)

        for item in value:
            yield func(item)


@pass_context
def _filter_select(context: Context, value: Iterable[Any], *args: Any, **kwargs: Any) -> Iterator[Any]:
    """Items passing a test (truthy items without a test name).

    Example:
        {{ numbers | select("odd") }}
        {{ numbers | select("divisibleby", 3) }}
    """
    return _select_or_reject(context, value, args, kwargs, lambda x: x, False)


@pass_context
def _filter_reject(context: Context, value: Iterable[Any], *args: Any, **kwargs: Any) -> Iterator[Any]:
    """Items failing a test."""
    return _select_or_reject(context, value, args, kwargs, lambda x: not x, False)


@pass_context
def _filter_selectattr(context: Context, value: Iterable[Any], *args: Any, **kwargs: Any) -> Iterator[Any]:
    """Items whose attribute passes a test.

    Example:
        {{ users | selectattr("is_active") }}
        {{ users | selectattr("email", "none") }}
    """
    return _select_or_reject(context, value, args, kwargs, lambda x: x, True)


@pass_context
def _filter_rejectattr(context: Context, value: Iterable[Any], *args: Any, **kwargs: Any) -> Iterator[Any]:
    """Items whose attribute fails a test."""
    return _select_or_reject(context, value, args, kwargs, lambda x: not x, True)


# Default filters
DEFAULT_FILTERS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "attr": _filter_attr,
    "batch": _filter_batch,
    "capitalize": _filter_capitalize,
    "center": _filter_center,
    "count": _filter_length,
    "d": _filter_default,
    "default": _filter_default,
    "dictsort": _filter_dictsort,
    "e": escape,
    "escape": escape,
    "filesizeformat": _filter_filesizeformat,
    "first": _filter_first,
    "float": _filter_float,
    "forceescape": _filter_forceescape,
    "format": _filter_format,
    "groupby": _filter_groupby,
    "indent": _filter_indent,
    "int": _filter_int,
    "items": _filter_items,
    "join": _filter_join,
    "last": _filter_last,
    "length": _filter_length,
    "list": _filter_list,
    "lower": _filter_lower,
    "map": _filter_map,
    "max": _filter_max,
    "min": _filter_min,
    "pprint": _filter_pprint,
    "reject": _filter_reject,
    "rejectattr": _filter_rejectattr,
    "replace": _filter_replace,
    "reverse": _filter_reverse,
    "round": _filter_round,
    "safe": _filter_safe,
    "select": _filter_select,
    "selectattr": _filter_selectattr,
    "slice": _filter_slice,
    "sort": _filter_sort,
    "string": _filter_string,
    "striptags": _filter_striptags,
    "sum": _filter_sum,
    "title": _filter_title,
    "tojson": _filter_tojson,
    "trim": _filter_trim,
    "truncate": _filter_truncate,
    "unique": _filter_unique,
    "upper": _filter_upper,
    "urlencode": _filter_urlencode,
    "wordcount": _filter_wordcount,
    "wordwrap": _filter_wordwrap,
    "xmlattr": _filter_xmlattr,
}
