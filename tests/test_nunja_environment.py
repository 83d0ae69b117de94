"""Environment configuration, loaders, caching and template lookup."""

import os
import sys

import pytest

from nunja import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    PackageLoader,
    PrefixLoader,
    StrictUndefined,
    TemplateNotFoundError,
    TemplatesNotFoundError,
    TemplateSyntaxError,
    Undefined,
)


class TestConfiguration:
    """Constructor options and validation."""

    def test_defaults(self):
        env = Environment()
        assert env.autoescape is False
        assert env.loader is None
        assert env.is_async is False
        assert env.undefined is Undefined

    def test_undefined_must_subclass_undefined(self):
        with pytest.raises(TypeError, match="must be a subclass of 'nunja.Undefined'"):
            Environment(undefined=object)

    def test_start_strings_must_differ(self):
        with pytest.raises(RuntimeError, match="must be different"):
            Environment(variable_start_string="{%")

    def test_newline_sequence_checked(self):
        with pytest.raises(ValueError, match="newline_sequence"):
            Environment(newline_sequence="\t")

    def test_custom_delimiters(self):
        env = Environment(
            block_start_string="<%",
            block_end_string="%>",
            variable_start_string="${",
            variable_end_string="}",
            comment_start_string="<#",
            comment_end_string="#>",
        )
        tmpl = env.from_string("<% for x in xs %>${ x }<# skip #><% endfor %>")
        assert tmpl.render(xs=[1, 2]) == "12"

    def test_line_statements_and_comments(self):
        env = Environment(line_statement_prefix="#", line_comment_prefix="##")
        tmpl = env.from_string("# for x in xs\n${{ x }} ## note\n# endfor\n")
        assert tmpl.render(xs=[1, 2]) == "$1\n$2\n"

    def test_line_comments_without_line_statements(self):
        env = Environment(line_comment_prefix="##")
        assert env.from_string("a ## gone\nb").render() == "a\nb"
        assert env.from_string("## whole line\n{{ x }}").render(x=1) == "\n1"

    def test_strict_undefined(self):
        env = Environment(undefined=StrictUndefined)
        with pytest.raises(Exception, match="'missing' is undefined"):
            env.from_string("{{ missing }}").render()

    def test_repr(self):
        assert repr(Environment()) == "<Environment loader=None autoescape=False async=False>"


class TestRegistries:
    """Filters, tests and globals registered on the environment."""

    def test_add_filter(self, env):
        env.add_filter("shout", lambda s: s.upper() + "!")
        assert env.from_string("{{ 'hi' | shout }}").render() == "HI!"

    def test_filter_registry_is_dict_like(self, env):
        env.filters["double"] = lambda x: x * 2
        assert "double" in env.filters
        del env.filters["double"]
        assert "double" not in env.filters

    def test_registry_update_copies(self, env):
        before = env._filters
        env.filters.update({"one": lambda x: 1})
        assert env._filters is not before
        assert "one" not in before

    def test_add_test(self, env):
        env.add_test("short", lambda s: len(s) < 3)
        assert env.from_string("{{ 'ab' is short }}|{{ 'abcd' is short }}").render() == "True|False"

    def test_add_global(self, env):
        env.add_global("site", "nunja")
        assert env.from_string("{{ site }}").render() == "nunja"

    def test_template_globals_shadow_environment(self, env):
        env.add_global("site", "env")
        tmpl = env.from_string("{{ site }}", globals={"site": "template"})
        assert tmpl.render() == "template"
        assert env.globals["site"] == "env"

    def test_render_variables_shadow_globals(self, env):
        env.add_global("site", "env")
        assert env.from_string("{{ site }}").render(site="ctx") == "ctx"

    def test_unknown_filter_at_compile_time(self, env):
        with pytest.raises(TemplateSyntaxError, match="No filter named 'nope'"):
            env.from_string("{{ x | nope }}")

    def test_unknown_test_at_compile_time(self, env):
        with pytest.raises(TemplateSyntaxError, match="No test named 'nope'"):
            env.from_string("{{ x is nope }}")


class TestCompile:
    """Compiling sources, nodes and expressions."""

    def test_raw_compile_returns_python_source(self, env):
        source = env.compile("Hello {{ name }}", raw=True)
        assert "def root(context" in source

    def test_parse_then_compile_node(self, env):
        node = env.parse("{{ 1 + 2 }}")
        assert env.from_string(node).render() == "3"

    def test_syntax_error_carries_name_and_source(self, env):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            env.compile("line\n{% if %}", name="broken.html")
        assert exc_info.value.name == "broken.html"
        assert exc_info.value.lineno == 2
        assert exc_info.value.source == "line\n{% if %}"

    def test_compile_expression(self, env):
        expr = env.compile_expression("foo == 42")
        assert expr(foo=42) is True
        assert expr(foo=23) is False

    def test_compile_expression_returns_raw_values(self, env):
        assert env.compile_expression("items | sum")(items=[1, 2, 3]) == 6
        assert env.compile_expression("[a, b]")(a=1, b=2) == [1, 2]

    def test_compile_expression_undefined(self, env):
        assert env.compile_expression("missing")() is None
        keep = env.compile_expression("missing", undefined_to_none=False)
        assert isinstance(keep(), Undefined)

    def test_compile_expression_rejects_trailing_tokens(self, env):
        with pytest.raises(TemplateSyntaxError, match="chunk after expression"):
            env.compile_expression("1 2")
        with pytest.raises(TemplateSyntaxError, match="chunk after expression"):
            env.compile_expression("x }} y")


class TestLoaders:
    """Built-in template loaders."""

    def test_dict_loader(self):
        env = Environment(loader=DictLoader({"a.html": "A{{ x }}"}))
        assert env.get_template("a.html").render(x=1) == "A1"

    def test_dict_loader_suggests_close_name(self):
        env = Environment(loader=DictLoader({"index.html": ""}))
        with pytest.raises(TemplateNotFoundError, match="index.html"):
            env.get_template("indx.html")

    def test_filesystem_loader(self, tmp_path):
        (tmp_path / "pages").mkdir()
        (tmp_path / "pages" / "home.html").write_text("Home {{ n }}")
        env = Environment(loader=FileSystemLoader(tmp_path))
        tmpl = env.get_template("pages/home.html")
        assert tmpl.render(n=1) == "Home 1"
        assert tmpl.filename == os.path.normpath(str(tmp_path / "pages" / "home.html"))

    def test_filesystem_search_order(self, tmp_path):
        first, second = tmp_path / "first", tmp_path / "second"
        first.mkdir()
        second.mkdir()
        (first / "nav.html").write_text("first")
        (second / "nav.html").write_text("second")
        (second / "footer.html").write_text("footer")
        env = Environment(loader=FileSystemLoader([first, second]))
        assert env.get_template("nav.html").render() == "first"
        assert env.get_template("footer.html").render() == "footer"

    def test_filesystem_refuses_parent_directory(self, tmp_path):
        env = Environment(loader=FileSystemLoader(tmp_path))
        with pytest.raises(TemplateNotFoundError):
            env.get_template("../secret.html")

    def test_filesystem_list_templates(self, tmp_path):
        (tmp_path / "a.html").write_text("")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_text("")
        loader = FileSystemLoader(tmp_path)
        assert loader.list_templates() == ["a.html", "sub/b.txt"]

    def test_function_loader(self):
        def load(name):
            if name == "greeting.html":
                return "Hello, {{ name }}!"
            return None

        env = Environment(loader=FunctionLoader(load))
        assert env.get_template("greeting.html").render(name="World") == "Hello, World!"
        with pytest.raises(TemplateNotFoundError):
            env.get_template("other.html")

    def test_function_loader_tuple(self):
        env = Environment(loader=FunctionLoader(lambda name: ("{{ 7 }}", "virtual/" + name, None)))
        tmpl = env.get_template("seven")
        assert tmpl.render() == "7"
        assert tmpl.filename == "virtual/seven"

    def test_choice_loader(self):
        custom = DictLoader({"nav.html": "custom"})
        default = DictLoader({"nav.html": "default", "footer.html": "footer"})
        env = Environment(loader=ChoiceLoader([custom, default]))
        assert env.get_template("nav.html").render() == "custom"
        assert env.get_template("footer.html").render() == "footer"
        assert env.list_templates() == ["footer.html", "nav.html"]
        with pytest.raises(TemplateNotFoundError, match="any of 2 loaders"):
            env.get_template("missing.html")

    def test_prefix_loader(self):
        loader = PrefixLoader(
            {
                "app": DictLoader({"page.html": "app page"}),
                "shared": DictLoader({"header.html": "header"}),
            }
        )
        env = Environment(loader=loader)
        assert env.get_template("shared/header.html").render() == "header"
        assert env.list_templates() == ["app/page.html", "shared/header.html"]
        with pytest.raises(TemplateNotFoundError, match="no loader for its prefix"):
            env.get_template("other/page.html")
        with pytest.raises(TemplateNotFoundError, match="app/missing.html"):
            env.get_template("app/missing.html")


class TestPackageLoader:
    """Templates shipped inside an importable package."""

    @pytest.fixture()
    def templates_package(self, tmp_path):
        package = tmp_path / "nunja_templates_pkg"
        package.mkdir()
        (package / "__init__.py").write_text("")
        templates = package / "templates"
        templates.mkdir()
        (templates / "index.html").write_text("Hello, {{ name }}!")
        (templates / "pages").mkdir()
        (templates / "pages" / "about.html").write_text("<h1>About</h1>")

        sys.path.insert(0, str(tmp_path))
        yield "nunja_templates_pkg"
        sys.path.remove(str(tmp_path))
        sys.modules.pop("nunja_templates_pkg", None)

    def test_load(self, templates_package):
        env = Environment(loader=PackageLoader(templates_package))
        assert env.get_template("index.html").render(name="World") == "Hello, World!"
        assert env.get_template("pages/about.html").render() == "<h1>About</h1>"

    def test_missing(self, templates_package):
        env = Environment(loader=PackageLoader(templates_package))
        with pytest.raises(TemplateNotFoundError, match="not found in package"):
            env.get_template("nope.html")

    def test_list_templates(self, templates_package):
        loader = PackageLoader(templates_package)
        assert loader.list_templates() == ["index.html", "pages/about.html"]


class TestCaching:
    """Template cache and reloading."""

    def test_cache_returns_same_template(self, env_with_loader):
        first = env_with_loader.get_template("partial.html")
        assert env_with_loader.get_template("partial.html") is first

    def test_cache_disabled(self):
        env = Environment(loader=DictLoader({"a": "A"}), cache_size=0)
        assert env.cache is None
        assert env.get_template("a") is not env.get_template("a")

    def test_lru_eviction(self):
        env = Environment(loader=DictLoader({"a": "A", "b": "B"}), cache_size=1)
        first = env.get_template("a")
        env.get_template("b")
        assert env.get_template("a") is not first

    def test_auto_reload_picks_up_changes(self, tmp_path):
        path = tmp_path / "page.html"
        path.write_text("old")
        os.utime(path, (1_000_000, 1_000_000))
        env = Environment(loader=FileSystemLoader(tmp_path))
        first = env.get_template("page.html")
        assert first.is_up_to_date

        path.write_text("new")
        os.utime(path, (2_000_000, 2_000_000))
        assert not first.is_up_to_date
        assert env.get_template("page.html").render() == "new"

    def test_without_auto_reload_keeps_stale_template(self, tmp_path):
        path = tmp_path / "page.html"
        path.write_text("old")
        os.utime(path, (1_000_000, 1_000_000))
        env = Environment(loader=FileSystemLoader(tmp_path), auto_reload=False)
        env.get_template("page.html")

        path.write_text("new")
        os.utime(path, (2_000_000, 2_000_000))
        assert env.get_template("page.html").render() == "old"

    def test_cache_is_per_loader(self):
        env = Environment(loader=DictLoader({"a": "first"}))
        assert env.get_template("a").render() == "first"
        env.loader = DictLoader({"a": "second"})
        assert env.get_template("a").render() == "second"

    def test_globals_update_cached_template(self, env_with_loader):
        env_with_loader.get_template("partial.html")
        tmpl = env_with_loader.get_template("partial.html", globals={"extra": 1})
        assert tmpl.globals["extra"] == 1
        assert "extra" not in env_with_loader.globals


class TestLookup:
    """list_templates, select_template and get_or_select_template."""

    def test_list_templates_by_extension(self):
        env = Environment(loader=DictLoader({"a.html": "", "b.txt": "", "c.xml": ""}))
        assert env.list_templates(extensions=["html", "xml"]) == ["a.html", "c.xml"]

    def test_list_templates_by_predicate(self):
        env = Environment(loader=DictLoader({"a.html": "", "b.txt": ""}))
        assert env.list_templates(filter_func=lambda name: name.startswith("b")) == ["b.txt"]

    def test_list_templates_rejects_both_filters(self, env_with_loader):
        with pytest.raises(TypeError, match="not both"):
            env_with_loader.list_templates(extensions=["html"], filter_func=bool)

    def test_list_templates_needs_loader(self, env):
        with pytest.raises(TypeError, match="no loader"):
            env.list_templates()

    def test_get_template_needs_loader(self, env):
        with pytest.raises(TypeError, match="no loader"):
            env.get_template("a.html")

    def test_get_template_passes_template_through(self, env_with_loader):
        tmpl = env_with_loader.from_string("x")
        assert env_with_loader.get_template(tmpl) is tmpl

    def test_select_template(self, env_with_loader):
        tmpl = env_with_loader.select_template(["missing.html", "partial.html"])
        assert tmpl.name == "partial.html"

    def test_select_template_empty(self, env_with_loader):
        with pytest.raises(TemplatesNotFoundError, match="empty list of templates"):
            env_with_loader.select_template([])

    def test_select_template_none_found(self, env_with_loader):
        with pytest.raises(TemplatesNotFoundError) as exc_info:
            env_with_loader.select_template(["x.html", "y.html"])
        assert exc_info.value.templates == ["x.html", "y.html"]
        assert exc_info.value.name == "y.html"

    def test_get_or_select_template(self, env_with_loader):
        assert env_with_loader.get_or_select_template("partial.html").name == "partial.html"
        picked = env_with_loader.get_or_select_template(["nope.html", "child.html"])
        assert picked.name == "child.html"
