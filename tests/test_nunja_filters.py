"""Test built-in filters in nunja templates.

Each filter is exercised through a template so argument passing, context
injection and output conversion are covered together.
"""

from types import SimpleNamespace

import pytest

from nunja import Environment, Markup, TemplateRuntimeError, TemplateAssertionError


def render(source, **context):
    return Environment().from_string(source).render(**context)


class TestStringFilters:
    """Case, whitespace and text manipulation."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{{ 'hello' | upper }}", "HELLO"),
            ("{{ 'HELLO' | lower }}", "hello"),
            ("{{ 'hELLO wORLD' | capitalize }}", "Hello world"),
            ("{{ 'hello big-world' | title }}", "Hello Big-World"),
            ("{{ '  pad  ' | trim }}", "pad"),
            ("{{ 'xxpadxx' | trim('x') }}", "pad"),
            ("{{ 'a' | center(5) }}", "  a  "),
            ("{{ 'aaa' | replace('a', 'b', 2) }}", "bba"),
            ("{{ '%s-%s' | format(1, 2) }}", "1-2"),
            ("{{ 'hello big world' | wordcount }}", "3"),
            ("{{ 'abc' | reverse }}", "cba"),
            ("{{ 42 | string }}", "42"),
        ],
    )
    def test_simple(self, source, expected):
        assert render(source) == expected

    def test_format_rejects_mixed_arguments(self):
        with pytest.raises(TemplateRuntimeError, match="positional and keyword"):
            render("{{ '%s' | format(1, a=2) }}")

    def test_indent(self):
        assert render("{{ text | indent(2) }}", text="a\nb\n\nc") == "a\n  b\n\n  c"

    def test_indent_first_and_blank(self):
        result = render("{{ text | indent('> ', first=true, blank=true) }}", text="a\n\nb")
        assert result == "> a\n> \n> b"

    def test_truncate_keeps_words(self):
        assert render("{{ 'foo bar baz qux' | truncate(9) }}") == "foo..."

    def test_truncate_killwords(self):
        assert render("{{ 'foo bar baz qux' | truncate(9, true) }}") == "foo ba..."

    def test_truncate_within_leeway(self):
        assert render("{{ 'foo bar baz' | truncate(9) }}") == "foo bar baz"

    def test_truncate_too_short(self):
        with pytest.raises(TemplateRuntimeError, match="expected length >= 3"):
            render("{{ 'foo bar' | truncate(2) }}")

    def test_wordwrap(self):
        assert render("{{ 'aaa bbb ccc' | wordwrap(7) }}") == "aaa bbb\nccc"

    def test_striptags(self):
        assert render("{{ '<p>a</p>\n  <b>b</b>' | striptags }}") == "a b"


class TestEscapingFilters:
    """Escaping and safety markers."""

    def test_escape_without_autoescape(self):
        assert render("{{ '<b>' | e }}") == "&lt;b&gt;"

    def test_safe_under_autoescape(self, env_autoescape):
        tmpl = env_autoescape.from_string("{{ html | safe }}")
        assert tmpl.render(html="<b>") == "<b>"

    def test_forceescape_escapes_markup(self):
        assert render("{{ html | forceescape }}", html=Markup("<b>")) == "&lt;b&gt;"

    def test_escape_keeps_markup(self):
        assert render("{{ html | escape }}", html=Markup("<b>")) == "<b>"

    def test_join_escapes_items_under_autoescape(self, env_autoescape):
        tmpl = env_autoescape.from_string("{{ items | join(sep) }}")
        result = tmpl.render(items=["<a>", Markup("<b>")], sep="|")
        assert result == "&lt;a&gt;|<b>"

    def test_replace_under_autoescape(self, env_autoescape):
        tmpl = env_autoescape.from_string("{{ text | replace('x', new) }}")
        assert tmpl.render(text="<x>", new=Markup("<br>")) == "&lt;<br>&gt;"

    def test_xmlattr(self):
        result = render("<p{{ attrs | xmlattr }}>", attrs={"class": "x", "id": None, "title": "a&b"})
        assert result == '<p class="x" title="a&amp;b">'

    def test_xmlattr_rejects_bad_keys(self):
        with pytest.raises(TemplateRuntimeError, match="Invalid character in attribute name"):
            render("{{ attrs | xmlattr }}", attrs={"a b": 1})

    def test_tojson_is_html_safe(self, env_autoescape):
        tmpl = env_autoescape.from_string("{{ data | tojson }}")
        assert tmpl.render(data={"b": "<i>", "a": 1}) == '{"a": 1, "b": "\\u003ci\\u003e"}'

    def test_urlencode_string(self):
        assert render("{{ 'a b/c' | urlencode }}") == "a%20b/c"

    def test_urlencode_mapping(self):
        assert render("{{ query | urlencode }}", query={"q": "x y", "n": 1}) == "q=x+y&n=1"


class TestNumberFilters:
    """Numeric conversion and formatting."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{{ -3 | abs }}", "3"),
            ("{{ '42' | int }}", "42"),
            ("{{ '42.7' | int }}", "42"),
            ("{{ 'nope' | int(7) }}", "7"),
            ("{{ '0x1A' | int(base=16) }}", "26"),
            ("{{ '1.5' | float }}", "1.5"),
            ("{{ 'x' | float }}", "0.0"),
            ("{{ 2.567 | round(2) }}", "2.57"),
            ("{{ 2.1 | round(method='ceil') }}", "3.0"),
            ("{{ 2.9 | round(method='floor') }}", "2.0"),
            ("{{ 1 | filesizeformat }}", "1 Byte"),
            ("{{ 100 | filesizeformat }}", "100 Bytes"),
            ("{{ 1500 | filesizeformat }}", "1.5 kB"),
            ("{{ 2048 | filesizeformat(true) }}", "2.0 KiB"),
            ("{{ 3000000 | filesizeformat }}", "3.0 MB"),
        ],
    )
    def test_simple(self, source, expected):
        assert render(source) == expected

    def test_round_rejects_unknown_method(self):
        with pytest.raises(TemplateRuntimeError, match="common, ceil or floor"):
            render("{{ 1.5 | round(method='up') }}")

    def test_sum(self):
        assert render("{{ [1, 2, 3] | sum }}") == "6"
        assert render("{{ [1, 2] | sum(start=10) }}") == "13"

    def test_sum_attribute(self):
        items = [{"price": 2}, {"price": 5}]
        assert render("{{ items | sum(attribute='price') }}", items=items) == "7"


class TestSequenceFilters:
    """Filters over lists and iterables."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{{ [4, 5, 6] | first }}", "4"),
            ("{{ [4, 5, 6] | last }}", "6"),
            ("{{ [] | first }}", ""),
            ("{{ [1, 2, 3] | length }}", "3"),
            ("{{ 'abcd' | count }}", "4"),
            ("{{ 'ab' | list }}", "['a', 'b']"),
            ("{{ [1, 2, 3] | reverse | list }}", "[3, 2, 1]"),
            ("{{ [3, 1, 2] | sort }}", "[1, 2, 3]"),
            ("{{ [3, 1, 2] | sort(reverse=true) }}", "[3, 2, 1]"),
            ("{{ ['b', 'A', 'c'] | sort }}", "['A', 'b', 'c']"),
            ("{{ ['b', 'A', 'c'] | sort(case_sensitive=true) }}", "['A', 'b', 'c']"),
            ("{{ ['a', 'A', 'b'] | unique | list }}", "['a', 'b']"),
            ("{{ [3, 1, 2] | min }}", "1"),
            ("{{ ['B', 'a'] | max }}", "B"),
            ("{{ [] | max }}", ""),
            ("{{ [1, 2, 3] | batch(2) | list }}", "[[1, 2], [3]]"),
            ("{{ [1, 2, 3] | batch(2, 0) | list }}", "[[1, 2], [3, 0]]"),
            ("{{ [1, 2, 3, 4, 5] | slice(2) | list }}", "[[1, 2, 3], [4, 5]]"),
            ("{{ [1, 2, 3] | join('-') }}", "1-2-3"),
            ("{{ [1, 2, 3, 4] | select('even') | list }}", "[2, 4]"),
            ("{{ [1, 2, 3, 4] | reject('even') | list }}", "[1, 3]"),
            ("{{ [0, 1, '', 'a'] | select | list }}", "[1, 'a']"),
            ("{{ [1, 2, 3] | select('divisibleby', 3) | list }}", "[3]"),
            ("{{ ['a', 'b'] | map('upper') | join }}", "AB"),
        ],
    )
    def test_simple(self, source, expected):
        assert render(source) == expected

    def test_sort_by_attributes(self):
        users = [
            {"name": "bo", "age": 30},
            {"name": "al", "age": 30},
            {"name": "cy", "age": 20},
        ]
        tmpl = "{{ users | sort(attribute='age,name') | map(attribute='name') | join(',') }}"
        assert render(tmpl, users=users) == "cy,al,bo"

    def test_join_attribute(self):
        users = [SimpleNamespace(name="a"), SimpleNamespace(name="b")]
        assert render("{{ users | join(', ', attribute='name') }}", users=users) == "a, b"

    def test_map_attribute_with_default(self):
        users = [{"name": "a"}, {}]
        tmpl = "{{ users | map(attribute='name', default='?') | join }}"
        assert render(tmpl, users=users) == "a?"

    def test_map_nested_attribute(self):
        rows = [{"user": {"id": 1}}, {"user": {"id": 2}}]
        assert render("{{ rows | map(attribute='user.id') | list }}", rows=rows) == "[1, 2]"

    def test_map_requires_filter(self):
        with pytest.raises(TemplateRuntimeError, match="map requires a filter argument"):
            render("{{ [1] | map | list }}")

    def test_selectattr_and_rejectattr(self):
        users = [{"name": "a", "active": True}, {"name": "b", "active": False}]
        tmpl = (
            "{{ users | selectattr('active') | map(attribute='name') | join }}/"
            "{{ users | rejectattr('active') | map(attribute='name') | join }}"
        )
        assert render(tmpl, users=users) == "a/b"

    def test_selectattr_with_test(self):
        users = [{"name": "a", "email": None}, {"name": "b", "email": "b@x"}]
        tmpl = "{{ users | selectattr('email', 'none') | map(attribute='name') | join }}"
        assert render(tmpl, users=users) == "a"

    def test_unknown_test_in_select(self):
        with pytest.raises(TemplateRuntimeError, match="No test named 'nope'"):
            render("{{ [1] | select('nope') | list }}")

    def test_groupby(self):
        users = [
            {"name": "a", "city": "Oslo"},
            {"name": "b", "city": "Bern"},
            {"name": "c", "city": "oslo"},
        ]
        tmpl = (
            "{% for city, people in users | groupby('city') %}"
            "{{ city }}={{ people | map(attribute='name') | join }};"
            "{% endfor %}"
        )
        assert render(tmpl, users=users) == "Bern=b;Oslo=ac;"

    def test_groupby_attributes(self):
        tmpl = "{% for group in items | groupby(0) %}{{ group.grouper }}:{{ group.list | length }} {% endfor %}"
        assert render(tmpl, items=[(1, "a"), (1, "b"), (2, "c")]) == "1:2 2:1 "


class TestMappingFilters:
    """Filters over dicts and objects."""

    def test_dictsort(self):
        assert render("{{ d | dictsort }}", d={"b": 1, "a": 2}) == "[('a', 2), ('b', 1)]"

    def test_dictsort_by_value(self):
        assert render("{{ d | dictsort(by='value') }}", d={"b": 1, "a": 2}) == "[('b', 1), ('a', 2)]"

    def test_dictsort_rejects_unknown_key(self):
        with pytest.raises(TemplateRuntimeError, match='"key" or "value"'):
            render("{{ d | dictsort(by='size') }}", d={})

    def test_items(self):
        tmpl = "{% for k, v in d | items %}{{ k }}={{ v }};{% endfor %}"
        assert render(tmpl, d={"a": 1, "b": 2}) == "a=1;b=2;"

    def test_items_of_undefined(self):
        assert render("{% for k, v in missing | items %}x{% endfor %}") == ""

    def test_attr_skips_item_lookup(self):
        obj = SimpleNamespace(size=3)
        assert render("{{ obj | attr('size') }}", obj=obj) == "3"
        assert render("{{ d | attr('size') }}", d={"size": 3}) == ""

    def test_pprint(self):
        assert render("{{ d | pprint }}", d={"a": [1, 2]}) == "{'a': [1, 2]}"


class TestDefaultFilter:
    """Fallback values."""

    def test_undefined_gets_default(self):
        assert render("{{ missing | default('x') }}") == "x"

    def test_defined_value_kept(self):
        assert render("{{ value | d('x') }}", value="") == ""

    def test_boolean_mode(self):
        assert render("{{ value | d('x', true) }}", value="") == "x"

    def test_none_is_defined(self):
        assert render("{{ value | default('x') }}", value=None) == "None"


class TestFilterErrors:
    """Unknown and misused filters."""

    def test_unknown_filter_is_compile_error(self):
        with pytest.raises(TemplateAssertionError, match="No filter named 'shout'"):
            Environment().from_string("{{ 'a' | shout }}")

    def test_custom_filter(self, env):
        env.add_filter("shout", lambda s, mark="!": s.upper() + mark)
        assert env.from_string("{{ 'a' | shout }}{{ 'b' | shout(mark='?') }}").render() == "A!B?"

    def test_filter_block(self, env):
        assert env.from_string("{% filter upper %}abc{% endfilter %}").render() == "ABC"

    def test_filter_block_with_arguments(self, env):
        tmpl = env.from_string("{% filter replace('a', 'o') | upper %}banana{% endfilter %}")
        assert tmpl.render() == "BONONO"
