"""Rendering with ``enable_async``: coroutines, async iterables and async APIs."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from nunja import DictLoader, Environment, TemplateRuntimeError

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


async def async_range(n: int) -> AsyncIterator[int]:
    """Async generator that yields 0..n-1."""
    for i in range(n):
        yield i


async def async_empty() -> AsyncIterator[int]:
    return
    yield


async def fetch(value: str) -> str:
    await asyncio.sleep(0)
    return value


def render(env: Environment, source: str, **context) -> str:
    return asyncio.run(env.from_string(source).render_async(**context))


@pytest.fixture
def async_loader_env() -> Environment:
    loader = DictLoader(
        {
            "base.html": "<{% block body %}base{% endblock %}>",
            "child.html": "{% extends 'base.html' %}{% block body %}{{ super() }}+child{% endblock %}",
            "item.html": "[{{ item }}]",
            "macros.html": "{% macro shout(s) %}{{ s | upper }}!{% endmacro %}{% set answer = 42 %}",
        }
    )
    return Environment(loader=loader, enable_async=True)


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAsyncValues:
    """Awaitables are resolved wherever a value is produced."""

    def test_plain_template(self, env_async):
        assert render(env_async, "Hello {{ name }}", name="World") == "Hello World"

    def test_coroutine_function_call(self, env_async):
        assert render(env_async, "{{ fetch('x') }}", fetch=fetch) == "x"

    def test_async_filter(self, env_async):
        async def slow_upper(value):
            await asyncio.sleep(0)
            return value.upper()

        env_async.add_filter("slow_upper", slow_upper)
        assert render(env_async, "{{ 'a' | slow_upper }}") == "A"

    def test_awaited_value_in_condition(self, env_async):
        source = "{% if fetch('') %}yes{% else %}no{% endif %}"
        assert render(env_async, source, fetch=fetch) == "no"

    def test_sync_values_still_work(self, env_async):
        assert render(env_async, "{{ items | join(',') }}", items=[1, 2]) == "1,2"


class TestAsyncLoops:
    """Loops over sync and async iterables."""

    def test_for_over_async_generator(self, env_async):
        source = "{% for i in numbers %}{{ i }}{% endfor %}"
        assert render(env_async, source, numbers=async_range(3)) == "012"

    def test_for_over_list(self, env_async):
        assert render(env_async, "{% for i in [1, 2] %}{{ i }}{% endfor %}") == "12"

    def test_else_on_empty_async_iterable(self, env_async):
        source = "{% for i in numbers %}{{ i }}{% else %}empty{% endfor %}"
        assert render(env_async, source, numbers=async_empty()) == "empty"

    def test_loop_context_over_async_iterable(self, env_async):
        source = "{% for i in numbers %}{{ loop.index }}/{{ loop.length }}{% if not loop.last %},{% endif %}{% endfor %}"
        assert render(env_async, source, numbers=async_range(3)) == "1/3,2/3,3/3"

    def test_loop_filter(self, env_async):
        source = "{% for i in numbers if i is odd %}{{ i }}{% endfor %}"
        assert render(env_async, source, numbers=async_range(6)) == "135"

    def test_async_each(self, env_async):
        source = "{% asyncEach x in items %}{{ x }};{% endeach %}"
        assert render(env_async, source, items=async_range(2)) == "0;1;"

    def test_async_all_keeps_order(self, env_async):
        source = "{% asyncAll x in items %}{{ fetch(x) }}{% endall %}"
        assert render(env_async, source, items=["a", "b", "c"], fetch=fetch) == "abc"

    def test_async_loop_tags_in_sync_environment(self, env):
        tmpl = env.from_string("{% asyncEach x in [1, 2] %}{{ x }}{% endeach %}")
        assert tmpl.render() == "12"

    def test_recursive_loop(self, env_async):
        tree = [{"name": "a", "children": [{"name": "b", "children": []}]}]
        source = (
            "{% for node in tree recursive %}{{ node.name }}"
            "{% if node.children %}({{ loop(node.children) }}){% endif %}{% endfor %}"
        )
        assert render(env_async, source, tree=tree) == "a(b)"


class TestAsyncComposition:
    """Macros, inheritance, includes and imports in async mode."""

    def test_macro_call(self, env_async):
        source = "{% macro m(x) %}<{{ x }}>{% endmacro %}{{ m(fetch('v')) }}"
        assert render(env_async, source, fetch=fetch) == "<v>"

    def test_call_block(self, env_async):
        source = "{% macro wrap() %}[{{ caller() }}]{% endmacro %}{% call wrap() %}in{% endcall %}"
        assert render(env_async, source) == "[in]"

    def test_extends_and_super(self, async_loader_env):
        tmpl = async_loader_env.get_template("child.html")
        assert asyncio.run(tmpl.render_async()) == "<base+child>"

    def test_include(self, async_loader_env):
        tmpl = async_loader_env.from_string("{% for item in [1, 2] %}{% include 'item.html' %}{% endfor %}")
        assert asyncio.run(tmpl.render_async()) == "[1][2]"

    def test_include_without_context(self, async_loader_env):
        tmpl = async_loader_env.from_string("{% include 'item.html' without context %}")
        assert asyncio.run(tmpl.render_async(item="x")) == "[]"

    def test_import(self, async_loader_env):
        tmpl = async_loader_env.from_string(
            "{% import 'macros.html' as m %}{{ m.shout('hi') }} {{ m.answer }}"
        )
        assert asyncio.run(tmpl.render_async()) == "HI! 42"

    def test_from_import(self, async_loader_env):
        tmpl = async_loader_env.from_string("{% from 'macros.html' import shout %}{{ shout('yo') }}")
        assert asyncio.run(tmpl.render_async()) == "YO!"


class TestAsyncApi:
    """Entry points of templates in async environments."""

    def test_render_drives_event_loop(self, env_async):
        tmpl = env_async.from_string("{{ fetch('sync') }}")
        assert tmpl.render(fetch=fetch) == "sync"

    def test_generate_async(self, env_async):
        tmpl = env_async.from_string("a{{ x }}b")

        async def collect():
            return [piece async for piece in tmpl.generate_async(x=1)]

        assert "".join(asyncio.run(collect())) == "a1b"

    def test_generate_in_async_environment(self, env_async):
        tmpl = env_async.from_string("{% for i in [1, 2] %}{{ i }}{% endfor %}")
        assert "".join(tmpl.generate()) == "12"

    def test_make_module_async(self, env_async):
        tmpl = env_async.from_string("{% set title = 'T' %}{% macro m() %}M{% endmacro %}body")

        async def build():
            module = await tmpl.make_module_async()
            return module.title, str(module), await module.m()

        assert asyncio.run(build()) == ("T", "body", "M")

    def test_module_unavailable_in_async_mode(self, env_async):
        tmpl = env_async.from_string("x")
        with pytest.raises(RuntimeError, match="Module is not available in async mode"):
            tmpl.module

    def test_render_async_needs_async_environment(self, env):
        tmpl = env.from_string("x")
        with pytest.raises(RuntimeError, match="not created with async mode enabled"):
            asyncio.run(tmpl.render_async())

    def test_generate_async_needs_async_environment(self, env):
        tmpl = env.from_string("x")

        async def collect():
            return [piece async for piece in tmpl.generate_async()]

        with pytest.raises(RuntimeError, match="not created with async mode enabled"):
            asyncio.run(collect())

    def test_compile_expression_in_async_environment(self, env_async):
        expr = env_async.compile_expression("fetch('v') ~ '!'")
        assert expr(fetch=fetch) == "v!"

    def test_errors_are_enhanced(self, env_async):
        tmpl = env_async.from_string("line one\n{{ 1 // zero }}")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            tmpl.render(zero=0)
        assert exc_info.value.lineno == 2
