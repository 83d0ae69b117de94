"""Tests for the statement dispatch table of the nunja parser."""

import pytest

from nunja import Environment, TemplateSyntaxError
from nunja.parser import Parser
from nunja.parser.core import _STATEMENTS


class TestDispatchTableStructure:
    """Every tag maps onto a parser method."""

    def test_values_are_parser_methods(self):
        for keyword, method_name in _STATEMENTS.items():
            assert method_name.startswith("parse_"), keyword
            assert callable(getattr(Parser, method_name)), method_name

    @pytest.mark.parametrize(
        "keyword",
        [
            "if",
            "for",
            "asyncEach",
            "asyncAll",
            "set",
            "block",
            "extends",
            "include",
            "import",
            "from",
            "macro",
            "call",
            "filter",
            "with",
            "autoescape",
            "print",
        ],
    )
    def test_keyword_in_dispatch_table(self, keyword):
        assert keyword in _STATEMENTS

    def test_end_tags_are_not_statements(self):
        assert not any(keyword.startswith("end") for keyword in _STATEMENTS)
        assert "else" not in _STATEMENTS
        assert "elif" not in _STATEMENTS


class TestDispatchTableBehavior:
    """Dispatched tags parse and render."""

    @pytest.fixture
    def env(self):
        return Environment()

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{% if true %}yes{% endif %}", "yes"),
            ("{% for i in [1, 2, 3] %}{{ i }}{% endfor %}", "123"),
            ("{% set x = 42 %}{{ x }}", "42"),
            ("{% with x = 5 %}{{ x }}{% endwith %}", "5"),
            ("{% raw %}{{ not rendered }}{% endraw %}", "{{ not rendered }}"),
            ("{% block content %}default{% endblock %}", "default"),
            ("{% filter upper %}loud{% endfilter %}", "LOUD"),
            ("{% print 'p' %}", "p"),
        ],
    )
    def test_tag_dispatches(self, env, source, expected):
        assert env.from_string(source).render() == expected

    def test_unknown_keyword(self, env):
        with pytest.raises(TemplateSyntaxError, match="Unknown tag 'unknown_keyword'"):
            env.from_string("{% unknown_keyword %}")


class TestEndAndContinuationTags:
    """End and continuation tags outside their blocks."""

    @pytest.fixture
    def env(self):
        return Environment()

    def test_mismatched_end_tag(self, env):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            env.from_string("{% if true %}yes{% endfor %}")
        message = str(exc_info.value)
        assert "'endif'" in message
        assert "innermost block that needs to be closed is 'if'" in message

    def test_nesting_mistake_hint(self, env):
        with pytest.raises(TemplateSyntaxError, match="nesting mistake"):
            env.from_string("{% for x in y %}{% if x %}{% endfor %}{% endif %}")

    @pytest.mark.parametrize("source", ["{% else %}", "{% elif true %}", "{% endfor %}"])
    def test_continuation_outside_block(self, env, source):
        with pytest.raises(TemplateSyntaxError, match="Unknown tag"):
            env.from_string(source)

    def test_unclosed_block(self, env):
        with pytest.raises(TemplateSyntaxError, match="Unexpected end of template"):
            env.from_string("{% if true %}open")
