"""Template inheritance, includes and imports across loaded templates."""

import pytest

from nunja import (
    DictLoader,
    Environment,
    TemplateAssertionError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    TemplatesNotFoundError,
    UndefinedError,
)


def make_env(**templates):
    return Environment(loader=DictLoader(templates))


class TestExtends:
    """Child templates filling parent blocks."""

    def test_child_overrides_block(self, env_with_loader):
        result = env_with_loader.get_template("child.html").render()
        assert result == "<html><head><title>Base</title></head><body>Hello World</body></html>"

    def test_parent_renders_defaults(self, env_with_loader):
        result = env_with_loader.get_template("base.html").render()
        assert result == "<html><head><title>Base</title></head><body></body></html>"

    def test_output_outside_blocks_is_ignored(self):
        env = make_env(
            base="[{% block a %}{% endblock %}]",
            child="{% extends 'base' %}ignored{% block a %}A{% endblock %}ignored",
        )
        assert env.get_template("child").render() == "[A]"

    def test_nested_block_override(self, env_with_loader):
        env_with_loader.loader.mapping["title.html"] = (
            '{% extends "base.html" %}{% block title %}Custom{% endblock %}'
        )
        result = env_with_loader.get_template("title.html").render()
        assert "<title>Custom</title>" in result

    def test_three_levels(self):
        env = make_env(
            a="{% block x %}a{% endblock %}|{% block y %}a{% endblock %}",
            b="{% extends 'a' %}{% block x %}b{% endblock %}",
            c="{% extends 'b' %}{% block y %}c{% endblock %}",
        )
        assert env.get_template("c").render() == "b|c"

    def test_dynamic_parent_name(self):
        env = make_env(
            one="1{% block b %}{% endblock %}",
            two="2{% block b %}{% endblock %}",
            child="{% extends layout %}{% block b %}!{% endblock %}",
        )
        tmpl = env.get_template("child")
        assert tmpl.render(layout="one") == "1!"
        assert tmpl.render(layout="two") == "2!"

    def test_parent_template_object(self):
        env = make_env(base="<{% block b %}{% endblock %}>")
        child = env.from_string("{% extends parent %}{% block b %}x{% endblock %}")
        assert child.render(parent=env.get_template("base")) == "<x>"

    def test_conditional_extends(self):
        env = make_env(base="[{% block b %}base{% endblock %}]")
        tmpl = env.from_string(
            "{% if wrap %}{% extends 'base' %}{% endif %}{% block b %}own{% endblock %}"
        )
        assert tmpl.render(wrap=True) == "[own]"
        assert tmpl.render(wrap=False) == "own"

    def test_extends_twice(self):
        env = make_env(base="{% block b %}{% endblock %}")
        tmpl = env.from_string("{% extends 'base' %}{% extends 'base' %}")
        with pytest.raises(TemplateRuntimeError, match="extended multiple times"):
            tmpl.render()

    def test_extends_inside_macro_rejected(self):
        env = make_env(base="")
        with pytest.raises(TemplateSyntaxError, match="non top-level"):
            env.from_string("{% macro m() %}{% extends 'base' %}{% endmacro %}")

    def test_missing_parent(self):
        env = make_env()
        tmpl = env.from_string("{% extends 'nowhere.html' %}")
        with pytest.raises(TemplateNotFoundError):
            tmpl.render()

    def test_child_sees_parent_exports(self):
        env = make_env(base="{% set greeting = 'hi' %}{% block b %}{% endblock %}")
        tmpl = env.from_string("{% extends 'base' %}{% block b %}{{ greeting }}{% endblock %}")
        assert tmpl.render() == "hi"


class TestSuper:
    """Calling the overridden block."""

    def test_super_renders_parent_block(self):
        env = make_env(
            base="{% block b %}base{% endblock %}",
            child="{% extends 'base' %}{% block b %}[{{ super() }}]{% endblock %}",
        )
        assert env.get_template("child").render() == "[base]"

    def test_super_chain(self):
        env = make_env(
            a="{% block b %}a{% endblock %}",
            b="{% extends 'a' %}{% block b %}b{{ super() }}{% endblock %}",
            c="{% extends 'b' %}{% block b %}c{{ super() }}{% endblock %}",
        )
        assert env.get_template("c").render() == "cba"

    def test_super_super(self):
        env = make_env(
            a="{% block b %}a{% endblock %}",
            b="{% extends 'a' %}{% block b %}b{% endblock %}",
            c="{% extends 'b' %}{% block b %}{{ super.super() }}{% endblock %}",
        )
        assert env.get_template("c").render() == "a"

    def test_super_without_parent_block(self):
        tmpl = Environment().from_string("{% block b %}{{ super() }}{% endblock %}")
        with pytest.raises(UndefinedError, match="no parent block called 'b'"):
            tmpl.render()

    def test_self_renders_block_again(self):
        tmpl = Environment().from_string(
            "<title>{% block title %}T{% endblock %}</title><h1>{{ self.title() }}</h1>"
        )
        assert tmpl.render() == "<title>T</title><h1>T</h1>"

    def test_super_keeps_autoescape(self):
        env = Environment(
            loader=DictLoader(
                {
                    "base": "{% block b %}<b>{{ value }}</b>{% endblock %}",
                    "child": "{% extends 'base' %}{% block b %}{{ super() }}{% endblock %}",
                }
            ),
            autoescape=True,
        )
        assert env.get_template("child").render(value="<i>") == "<b>&lt;i&gt;</b>"


class TestBlockOptions:
    """Scoped and required blocks."""

    def test_unscoped_block_misses_loop_variable(self, env):
        tmpl = env.from_string("{% for i in [1, 2] %}{% block item %}[{{ i }}]{% endblock %}{% endfor %}")
        assert tmpl.render() == "[][]"

    def test_scoped_block_sees_loop_variable(self, env):
        tmpl = env.from_string(
            "{% for i in [1, 2] %}{% block item scoped %}[{{ i }}]{% endblock %}{% endfor %}"
        )
        assert tmpl.render() == "[1][2]"

    def test_required_block_overridden(self):
        env = make_env(
            base="<{% block body required %}{% endblock %}>",
            child="{% extends 'base' %}{% block body %}ok{% endblock %}",
        )
        assert env.get_template("child").render() == "<ok>"

    def test_required_block_missing(self):
        env = make_env(
            base="<{% block body required %}{% endblock %}>",
            child="{% extends 'base' %}",
        )
        with pytest.raises(TemplateRuntimeError, match="Required block 'body' not found"):
            env.get_template("child").render()

    def test_required_block_with_content_rejected(self, env):
        with pytest.raises(TemplateSyntaxError, match="Required blocks can only contain"):
            env.from_string("{% block body required %}content{% endblock %}")

    def test_required_block_allows_comments(self, env):
        env.from_string("{% block body required %} {# note #} {% endblock %}")

    def test_hyphenated_block_name(self, env):
        with pytest.raises(TemplateSyntaxError, match="hyphens"):
            env.from_string("{% block foo-bar %}{% endblock %}")

    def test_end_tag_may_repeat_name(self, env):
        assert env.from_string("{% block b %}x{% endblock b %}").render() == "x"


class TestInclude:
    """Rendering other templates in place."""

    def test_include(self, env_with_loader):
        tmpl = env_with_loader.from_string('<div>{% include "partial.html" %}</div>')
        assert tmpl.render() == "<div><p>Partial content</p></div>"

    def test_include_sees_context_and_locals(self):
        env = make_env(item="[{{ prefix }}{{ i }}]")
        tmpl = env.from_string("{% for i in [1, 2] %}{% include 'item' %}{% endfor %}")
        assert tmpl.render(prefix="#") == "[#1][#2]"

    def test_include_without_context(self):
        env = make_env(item="[{{ prefix }}]")
        tmpl = env.from_string("{% include 'item' without context %}")
        assert tmpl.render(prefix="#") == "[]"

    def test_include_ignore_missing(self):
        env = make_env()
        tmpl = env.from_string("a{% include 'missing.html' ignore missing %}b")
        assert tmpl.render() == "ab"

    def test_include_missing_raises(self):
        env = make_env()
        tmpl = env.from_string("{% include 'missing.html' %}")
        with pytest.raises(TemplateNotFoundError, match="missing.html"):
            tmpl.render()

    def test_include_first_existing(self):
        env = make_env(second="two")
        tmpl = env.from_string("{% include ['first', 'second'] %}")
        assert tmpl.render() == "two"

    def test_include_list_none_found(self):
        env = make_env()
        tmpl = env.from_string("{% include ['first', 'second'] %}")
        with pytest.raises(TemplatesNotFoundError, match="first, second"):
            tmpl.render()

    def test_include_name_from_variable(self):
        env = make_env(a="A", b="B")
        tmpl = env.from_string("{% include name %}")
        assert tmpl.render(name="a") == "A"
        assert tmpl.render(name=["x", "b"]) == "B"

    def test_include_does_not_leak_assignments(self):
        env = make_env(setter="{% set x = 'inner' %}")
        tmpl = env.from_string("{% set x = 'outer' %}{% include 'setter' %}{{ x }}")
        assert tmpl.render() == "outer"


class TestImports:
    """Importing macros and exported variables."""

    def test_import_module(self, env_with_loader):
        tmpl = env_with_loader.from_string(
            '{% import "macros.html" as m %}{{ m.greet("Ann") }}/{{ m.add(1, 2) }}/{{ m.version }}'
        )
        assert tmpl.render() == "Hello Ann/3/1.0"

    def test_from_import(self, env_with_loader):
        tmpl = env_with_loader.from_string(
            '{% from "macros.html" import greet, add as plus %}{{ greet("Bo") }}{{ plus(2, 2) }}'
        )
        assert tmpl.render() == "Hello Bo4"

    def test_from_import_missing_name(self, env_with_loader):
        tmpl = env_with_loader.from_string('{% from "macros.html" import nope %}{{ nope() }}')
        with pytest.raises(UndefinedError, match="does not export the requested name 'nope'"):
            tmpl.render()

    def test_private_names_cannot_be_imported(self, env_with_loader):
        with pytest.raises(TemplateAssertionError, match="underline"):
            env_with_loader.from_string('{% from "macros.html" import _hidden %}')

    def test_import_without_context_by_default(self):
        env = make_env(lib="{% macro show() %}[{{ who }}]{% endmacro %}")
        tmpl = env.from_string("{% import 'lib' as lib %}{{ lib.show() }}")
        assert tmpl.render(who="me") == "[]"

    def test_import_with_context(self):
        env = make_env(lib="{% macro show() %}[{{ who }}]{% endmacro %}")
        tmpl = env.from_string("{% import 'lib' as lib with context %}{{ lib.show() }}")
        assert tmpl.render(who="me") == "[me]"

    def test_from_import_with_context(self):
        env = make_env(lib="{% macro show() %}[{{ who }}]{% endmacro %}")
        tmpl = env.from_string("{% from 'lib' import show with context %}{{ show() }}")
        assert tmpl.render(who="me") == "[me]"

    def test_imports_are_not_reexported(self, env_with_loader):
        module = env_with_loader.from_string(
            '{% import "macros.html" as m %}{% from "macros.html" import greet %}'
        ).module
        assert not hasattr(module, "m")
        assert not hasattr(module, "greet")

    def test_import_inside_macro(self, env_with_loader):
        tmpl = env_with_loader.from_string(
            '{% macro outer() %}{% import "macros.html" as m %}{{ m.greet("in") }}{% endmacro %}{{ outer() }}'
        )
        assert tmpl.render() == "Hello in"
