"""Tests for the template lexer."""

from __future__ import annotations

import pytest

from nunja._types import TokenType
from nunja.environment.exceptions import ErrorCode, TemplateSyntaxError
from nunja.lexer import Lexer, LexerConfig, tokenize


def _types(source: str, **options) -> list[TokenType]:
    return [t.type for t in tokenize(source, **options)]


def _values(source: str, **options) -> list:
    return [t.value for t in tokenize(source, **options)]


def _data(source: str, **options) -> str:
    return "".join(t.value for t in tokenize(source, **options) if t.type is TokenType.DATA)


class TestBasicTokens:
    """Tag shapes and expression tokens."""

    def test_plain_data(self):
        tokens = tokenize("Hello World")
        assert [t.type for t in tokens] == [TokenType.DATA, TokenType.EOF]
        assert tokens[0].value == "Hello World"

    def test_empty_source(self):
        assert _types("") == [TokenType.EOF]

    def test_variable(self):
        assert _types("{{ name }}") == [
            TokenType.VARIABLE_BEGIN,
            TokenType.NAME,
            TokenType.VARIABLE_END,
            TokenType.EOF,
        ]

    def test_delimiter_tokens_have_empty_values(self):
        assert _values("{% if x %}{{ y }}") == ["", "if", "x", "", "", "y", "", ""]

    def test_comment_dropped(self):
        assert _types("a{# note #}b") == [TokenType.DATA, TokenType.DATA, TokenType.EOF]
        assert _data("a{# note #}b") == "ab"

    def test_literals(self):
        tokens = tokenize("{{ 'a' 42 1.5 0x1f 1_000 }}")
        literals = [(t.type, t.value) for t in tokens[1:-2]]
        assert literals == [
            (TokenType.STRING, "a"),
            (TokenType.INTEGER, 42),
            (TokenType.FLOAT, 1.5),
            (TokenType.INTEGER, 31),
            (TokenType.INTEGER, 1000),
        ]

    def test_string_escapes(self):
        tokens = tokenize(r'{{ "a\nb" }}')
        assert tokens[1].value == "a\nb"

    def test_operators_longest_first(self):
        types = _types("{{ a // b ** c != d }}")[1:-2]
        assert types == [
            TokenType.NAME,
            TokenType.FLOORDIV,
            TokenType.NAME,
            TokenType.POW,
            TokenType.NAME,
            TokenType.NE,
            TokenType.NAME,
        ]

    def test_brackets_may_contain_delimiter_text(self):
        """A closing delimiter inside brackets does not end the tag."""
        types = _types("{{ {'a': 1} }}")
        assert types.count(TokenType.VARIABLE_END) == 1
        assert TokenType.RBRACE in types

    def test_positions(self):
        tokens = tokenize("line one\n  {{ x }}")
        name = next(t for t in tokens if t.type is TokenType.NAME)
        assert name.lineno == 2
        assert name.col_offset == 5
        assert name.pos == 14


class TestNewlines:
    """Line ending normalization and the trailing newline."""

    def test_crlf_normalized(self):
        assert _data("a\r\nb\rc") == "a\nb\nc"

    def test_trailing_newline_dropped(self):
        assert _data("hello\n") == "hello"

    def test_only_one_trailing_newline_dropped(self):
        assert _data("hello\n\n") == "hello\n"

    def test_keep_trailing_newline(self):
        assert _data("hello\n", keep_trailing_newline=True) == "hello\n"

    def test_newline_sequence(self):
        assert _data("a\nb", newline_sequence="\r\n") == "a\r\nb"


class TestWhitespaceControl:
    """Manual whitespace signs and the trim/lstrip options."""

    def test_minus_strips_before(self):
        assert _data("a  \n {%- if x %}{% endif %}") == "a"

    def test_minus_strips_after(self):
        assert _data("{% if x -%}\n   b{% endif %}") == "b"

    def test_variable_minus(self):
        assert _data("a {{- x -}} b") == "ab"

    def test_comment_minus(self):
        assert _data("a {#- c -#} b") == "ab"

    def test_trim_blocks(self):
        assert _values("{% if x %}\nhi{% endif %}", trim_blocks=True) == [
            "",
            "if",
            "x",
            "",
            "hi",
            "",
            "endif",
            "",
            "",
        ]

    def test_trim_blocks_plus_opts_out(self):
        assert _data("{% if x +%}\nhi{% endif %}", trim_blocks=True) == "\nhi"

    def test_trim_blocks_ignores_variables(self):
        assert _data("{{ x }}\nhi", trim_blocks=True) == "\nhi"

    def test_lstrip_blocks(self):
        assert _data("a\n    {% if x %}b{% endif %}", lstrip_blocks=True) == "a\nb"

    def test_lstrip_blocks_only_at_line_start(self):
        assert _data("a  {% if x %}b{% endif %}", lstrip_blocks=True) == "a  b"

    def test_lstrip_blocks_plus_opts_out(self):
        assert _data("a\n  {%+ if x %}b{% endif %}", lstrip_blocks=True) == "a\n  b"


class TestRawAndComments:
    """Raw sections and comment handling."""

    def test_raw_becomes_data(self):
        tokens = tokenize("{% raw %}{{ not lexed }}{% endraw %}")
        assert [t.type for t in tokens] == [TokenType.DATA, TokenType.EOF]
        assert tokens[0].value == "{{ not lexed }}"

    def test_verbatim_alias(self):
        assert _data("{% verbatim %}{% x %}{% endverbatim %}") == "{% x %}"

    def test_raw_whitespace_signs(self):
        assert _data("{% raw -%}  x  {%- endraw %}") == "x"

    def test_unclosed_raw(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            tokenize("{% raw %}oops")
        assert exc_info.value.code is ErrorCode.UNCLOSED_RAW

    def test_unclosed_comment(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            tokenize("a {# never closed")
        assert exc_info.value.code is ErrorCode.UNCLOSED_COMMENT


class TestErrors:
    """Lexer errors carry a code, a line and a column."""

    def test_unclosed_variable(self):
        with pytest.raises(TemplateSyntaxError, match="Missing end of print statement") as exc_info:
            tokenize("\n{{ x ")
        assert exc_info.value.code is ErrorCode.UNCLOSED_TAG
        assert exc_info.value.lineno == 2

    def test_unclosed_block(self):
        with pytest.raises(TemplateSyntaxError, match="Missing end of statement block"):
            tokenize("{% if x ")

    def test_unexpected_char(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            tokenize("{{ a $ b }}")
        assert exc_info.value.code is ErrorCode.UNEXPECTED_CHAR
        assert exc_info.value.col_offset == 5

    def test_unbalanced_closer(self):
        with pytest.raises(TemplateSyntaxError, match="unexpected '\\)'"):
            tokenize("{{ a) }}")

    def test_mismatched_bracket(self):
        with pytest.raises(TemplateSyntaxError, match="expected '\\]'"):
            tokenize("{{ [a) }}")

    def test_unterminated_string(self):
        with pytest.raises(TemplateSyntaxError, match="unexpected end of string"):
            tokenize("{{ 'abc }}")

    def test_name_in_message(self):
        lexer = Lexer()
        with pytest.raises(TemplateSyntaxError) as exc_info:
            lexer.tokenize("{{ x", name="page.html")
        assert exc_info.value.name == "page.html"
        assert "page.html:1" in str(exc_info.value)


class TestCustomSyntax:
    """Custom delimiters and line syntax."""

    def test_custom_delimiters(self):
        config = LexerConfig(
            block_start="<%",
            block_end="%>",
            variable_start="${",
            variable_end="}",
            comment_start="<#",
            comment_end="#>",
        )
        tokens = Lexer(config).tokenize("<% if a %>${ b }<# c #><% endif %>")
        assert [t.value for t in tokens] == ["", "if", "a", "", "", "b", "", "", "endif", "", ""]

    def test_config_from_options(self):
        lexer = Lexer(variable_start="[[", variable_end="]]")
        assert [t.type for t in lexer.tokenize("[[ x ]]")][:3] == [
            TokenType.VARIABLE_BEGIN,
            TokenType.NAME,
            TokenType.VARIABLE_END,
        ]

    def test_line_statement(self):
        tokens = tokenize("# for x in y\n${x}\n# endfor\n", line_statement_prefix="#")
        values = [t.value for t in tokens if t.type is TokenType.NAME]
        assert values == ["for", "x", "in", "y", "endfor"]
        assert [t.type for t in tokens].count(TokenType.BLOCK_BEGIN) == 2

    def test_line_statement_spans_brackets(self):
        tokens = tokenize("% set x = [1,\n 2]\n", line_statement_prefix="%")
        ints = [t.value for t in tokens if t.type is TokenType.INTEGER]
        assert ints == [1, 2]
        assert [t.type for t in tokens].count(TokenType.BLOCK_END) == 1

    def test_line_comment(self):
        assert _data("a ## gone\nb", line_comment_prefix="##") == "a\nb"
