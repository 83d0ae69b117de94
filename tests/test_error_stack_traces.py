"""Render errors carry the failing template's name, line and source."""

import pytest

from nunja import (
    DictLoader,
    Environment,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
)
from nunja.environment.exceptions import build_source_snippet


def make_env(**templates):
    return Environment(loader=DictLoader(templates))


class TestErrorLocation:
    """Line numbers and template names attached at render time."""

    def test_single_template(self, env):
        tmpl = env.from_string("first\n{{ x + 1 }}")
        with pytest.raises(UndefinedError) as exc_info:
            tmpl.render()

        error = exc_info.value
        assert error.lineno == 2
        assert error.template_name is None
        assert "Location: <template>:2" in str(error)

    def test_loaded_template_name(self):
        env = make_env(**{"page.html": "a\nb\n{{ 1 // zero }}"})
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.get_template("page.html").render(zero=0)

        error = exc_info.value
        assert error.template_name == "page.html"
        assert error.lineno == 3
        assert "page.html:3" in str(error)

    def test_error_inside_include_points_at_partial(self):
        env = make_env(
            **{
                "base.html": "<html>\n{% include 'nav.html' %}\n</html>",
                "nav.html": "<nav>\n{{ missing.attr }}</nav>",
            }
        )
        with pytest.raises(UndefinedError) as exc_info:
            env.get_template("base.html").render()

        error = exc_info.value
        assert error.template_name == "nav.html"
        assert error.lineno == 2

    def test_error_inside_macro(self):
        env = make_env(
            **{
                "macros.html": "{% macro broken(n) %}\n{{ 10 // n }}\n{% endmacro %}",
                "page.html": "{% import 'macros.html' as m %}{{ m.broken(0) }}",
            }
        )
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.get_template("page.html").render()
        assert exc_info.value.template_name == "macros.html"
        assert exc_info.value.lineno == 2

    def test_error_on_later_line_of_macro_output(self, env):
        tmpl = env.from_string("{% macro m(n) %}ok\n{{ n }}\n{{ 10 // n }}{% endmacro %}{{ m(0) }}")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            tmpl.render()
        assert exc_info.value.lineno == 3

    def test_error_inside_set_block(self, env):
        tmpl = env.from_string("{% set text %}\n\n{{ 1 // zero }}{% endset %}{{ text }}")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            tmpl.render(zero=0)
        assert exc_info.value.lineno == 3

    def test_error_in_child_block(self):
        env = make_env(
            base="{% block body %}{% endblock %}",
            child="{% extends 'base' %}\n{% block body %}\n{{ 1 // 0 }}{% endblock %}",
        )
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.get_template("child").render()
        assert exc_info.value.template_name == "child"
        assert exc_info.value.lineno == 3


class TestErrorWrapping:
    """Python exceptions raised while rendering."""

    def test_python_error_is_wrapped_and_chained(self, env):
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.from_string("{{ 1 // 0 }}").render()

        error = exc_info.value
        assert isinstance(error.__cause__, ZeroDivisionError)
        assert "zero" in error.message
        assert "Location: <template>:1" in str(error)

    def test_error_from_user_function(self, env):
        def explode():
            raise ValueError("boom")

        with pytest.raises(TemplateRuntimeError, match="boom") as exc_info:
            env.from_string("x\n{{ explode() }}").render(explode=explode)
        assert exc_info.value.lineno == 2

    def test_empty_message_gets_type_name(self, env):
        def explode():
            raise RuntimeError

        with pytest.raises(TemplateRuntimeError, match="RuntimeError \\(no details available\\)"):
            env.from_string("{{ explode() }}").render(explode=explode)

    def test_located_errors_are_kept(self, env):
        def explode():
            raise TemplateRuntimeError("elsewhere", template_name="other.html", lineno=9)

        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.from_string("\n\n{{ explode() }}").render(explode=explode)
        assert exc_info.value.template_name == "other.html"
        assert exc_info.value.lineno == 9

    def test_not_found_passes_through(self):
        env = make_env()
        with pytest.raises(TemplateNotFoundError) as exc_info:
            env.from_string("{% include 'gone.html' %}").render()
        assert exc_info.value.name == "gone.html"
        assert not isinstance(exc_info.value, TemplateRuntimeError)

    def test_syntax_error_in_include_passes_through(self):
        env = make_env(**{"bad.html": "ok\n{% if %}"})
        with pytest.raises(TemplateSyntaxError) as exc_info:
            env.from_string("{% include 'bad.html' %}").render()
        assert exc_info.value.name == "bad.html"
        assert exc_info.value.lineno == 2


class TestSourceSnippet:
    """Source lines shown around a failing line."""

    def test_snippet_attached(self, env):
        tmpl = env.from_string("one\ntwo\n{{ x + 1 }}\nfour\nfive\nsix")
        with pytest.raises(UndefinedError) as exc_info:
            tmpl.render()

        snippet = exc_info.value.source_snippet
        assert snippet.error_line == 3
        assert [n for n, _ in snippet.lines] == [1, 2, 3, 4, 5]
        assert ">  3 | {{ x + 1 }}" in str(exc_info.value)

    def test_snippet_window_clipped(self):
        snippet = build_source_snippet("a\nb\nc", 1, context_lines=1)
        assert snippet.lines == ((1, "a"), (2, "b"))

    def test_snippet_caret(self):
        text = build_source_snippet("{{ oops }}", 1, context_lines=0, column=3).format()
        assert ">  1 | {{ oops }}" in text
        assert "     |    ^" in text

    def test_format_compact_adds_code(self, env):
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.from_string("{{ 1 // 0 }}").render()

        error = exc_info.value
        compact = error.format_compact()
        assert compact.startswith(f"{error.code.value}: ")
        assert "Docs:" in compact
