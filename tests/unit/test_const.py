"""Tests for compile-time constant folding."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from markupsafe import Markup

from nunja import Environment, nodes
from nunja.compiler.const import Impossible, to_const
from nunja.nodes import builders as b
from nunja.parser import parse
from nunja.template.context import EvalContext
from nunja.utils import pass_context

from strategies import arithmetic_expression


def _expr(source: str) -> nodes.Node:
    return parse("{{ " + source + " }}").body[0].nodes[0]


@pytest.fixture
def eval_ctx():
    return EvalContext(Environment())


class TestFolding:
    """Expressions with a compile-time value."""

    def test_arithmetic(self):
        assert to_const(b.add(b.const(1), b.mul(b.const(2), b.const(3)))) == 7

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("7 // 2", 3),
            ("7 / 2", 3.5),
            ("2 ** 10", 1024),
            ("7 % 4", 3),
            ("-(3)", -3),
            ("not true", False),
            ("1 and 0", 0),
            ("0 or 'x'", "x"),
            ("'a' ~ 1 ~ none", "a1None"),
            ("(1, [2, 3])", (1, [2, 3])),
            ("{'k': 1}", {"k": 1}),
            ("'yes' if 1 else 'no'", "yes"),
            ("'yes' if 0 else 'no'", "no"),
        ],
    )
    def test_expressions(self, source, expected):
        assert to_const(_expr(source)) == expected

    def test_chained_compare(self):
        assert to_const(_expr("1 < 2 < 3")) is True
        assert to_const(_expr("1 < 3 < 2")) is False

    def test_template_data_marked_safe_with_autoescape(self):
        ctx = EvalContext(Environment(autoescape=True))
        value = to_const(nodes.TemplateData("<b>"), ctx)
        assert isinstance(value, Markup)

    def test_template_data_plain_without_eval_ctx(self):
        value = to_const(nodes.TemplateData("<b>"))
        assert value == "<b>"
        assert not isinstance(value, Markup)

    def test_plain_filter(self, eval_ctx):
        assert to_const(_expr("'abc' | upper"), eval_ctx) == "ABC"

    def test_eval_context_filter(self, eval_ctx):
        assert to_const(_expr("[1, 2] | join('-')"), eval_ctx) == "1-2"

    def test_environment_filter(self, eval_ctx):
        assert to_const(_expr("[4, 5] | first"), eval_ctx) == 4

    def test_test(self, eval_ctx):
        assert to_const(_expr("4 is even"), eval_ctx) is True

    def test_getattr_and_getitem(self, eval_ctx):
        assert to_const(_expr("'abc'.upper"), eval_ctx)() == "ABC"
        assert to_const(_expr("[1, 2, 3][1:]"), eval_ctx) == [2, 3]

    @given(case=arithmetic_expression)
    @settings(max_examples=100)
    def test_folds_like_python(self, case):
        source, value = case
        assert to_const(_expr(source)) == value


class TestImpossible:
    """Expressions that must be evaluated at render time."""

    @pytest.mark.parametrize(
        "source",
        [
            "x",
            "f()",
            "1 in [1]",
            "1 not in [1]",
            "'a' if 0",
        ],
    )
    def test_refused(self, source, eval_ctx):
        with pytest.raises(Impossible):
            to_const(_expr(source), eval_ctx)

    def test_environment_access_needs_eval_ctx(self):
        for source in ("'a'.upper", "[1][0]", "'a' | upper", "1 is odd"):
            with pytest.raises(Impossible):
                to_const(_expr(source))

    def test_volatile_context(self, eval_ctx):
        eval_ctx.volatile = True
        with pytest.raises(Impossible):
            to_const(b.const(1), eval_ctx)

    def test_unknown_filter(self, eval_ctx):
        with pytest.raises(Impossible):
            to_const(_expr("1 | no_such_filter"), eval_ctx)

    def test_context_filter(self):
        env = Environment()
        env.add_filter("ctx_aware", pass_context(lambda ctx, value: value))
        with pytest.raises(Impossible):
            to_const(_expr("1 | ctx_aware"), EvalContext(env))

    def test_runtime_error_becomes_impossible(self):
        with pytest.raises(Impossible) as exc_info:
            to_const(_expr("1 / 0"))
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_filter_block_has_no_operand(self, eval_ctx):
        node = nodes.Filter(None, "upper")
        with pytest.raises(Impossible):
            to_const(node, eval_ctx)
