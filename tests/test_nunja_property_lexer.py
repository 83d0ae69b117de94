"""Property-based tests for the nunja lexer.

Uses hypothesis to check structural invariants over generated inputs:

- Plain text comes back unchanged from its DATA tokens
- A variable tag yields its begin and end delimiters
- Arbitrary input fails only with TemplateSyntaxError
- EOF closes every token stream
"""

from __future__ import annotations

from hypothesis import given, settings
from strategies import (
    arbitrary_template_source,
    nunja_variable,
    plain_text,
    template_fragment,
)

from nunja import TemplateSyntaxError, TokenType
from nunja.lexer import tokenize

_BEGIN_END_PAIRS = {
    TokenType.VARIABLE_BEGIN: TokenType.VARIABLE_END,
    TokenType.BLOCK_BEGIN: TokenType.BLOCK_END,
}


class TestLexerProperties:
    """Property-based lexer invariants."""

    @given(source=plain_text)
    @settings(max_examples=200)
    def test_plain_text_roundtrip(self, source: str) -> None:
        """Text without delimiters is reassembled from its DATA tokens."""
        tokens = tokenize(source, keep_trailing_newline=True)
        data = "".join(t.value for t in tokens if t.type == TokenType.DATA)
        assert data == source

    @given(source=nunja_variable)
    @settings(max_examples=200)
    def test_variable_has_balanced_delimiters(self, source: str) -> None:
        types = [t.type for t in tokenize(source)]
        assert TokenType.VARIABLE_BEGIN in types
        assert TokenType.VARIABLE_END in types
        assert TokenType.NAME in types

    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_no_unhandled_crash(self, source: str) -> None:
        """Malformed input raises TemplateSyntaxError and nothing else."""
        try:
            tokenize(source)
        except TemplateSyntaxError:
            pass

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_fragment_delimiter_balance(self, source: str) -> None:
        try:
            tokens = tokenize(source)
        except TemplateSyntaxError:
            return

        types = [t.type for t in tokens]
        for begin, end in _BEGIN_END_PAIRS.items():
            assert types.count(begin) == types.count(end), source

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_eof_always_last(self, source: str) -> None:
        try:
            tokens = tokenize(source)
        except TemplateSyntaxError:
            return
        assert tokens[-1].type == TokenType.EOF
        assert sum(t.type == TokenType.EOF for t in tokens) == 1
