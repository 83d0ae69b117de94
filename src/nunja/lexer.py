"""Template lexer.

Splits template source into a flat list of `Token` values: template data,
``{% ... %}`` statements, ``{{ ... }}`` expressions and the expression
tokens inside them. Comments are dropped, ``{% raw %}`` / ``{% verbatim %}``
sections become plain data, and line statements are emitted as ordinary
statement blocks, so the parser only ever sees three tag shapes.

Whitespace control:
    - ``{%-`` / ``{{-`` / ``{#-`` strip whitespace before the tag
    - ``-%}`` / ``-}}`` / ``-#}`` strip whitespace after the tag
    - ``trim_blocks`` drops the first newline after a statement or comment
      (``+%}`` opts out)
    - ``lstrip_blocks`` strips spaces and tabs between the start of a line
      and a statement or comment (``{%+`` opts out)

Example:
    >>> lexer = Lexer(LexerConfig(trim_blocks=True))
    >>> [t.value for t in lexer.tokenize("{% if x %}\\nhi{% endif %}")]
    ['', 'if', 'x', '', 'hi', '', 'endif', '', '']

"""

from __future__ import annotations

import re
from bisect import bisect_left
from dataclasses import dataclass
from typing import Any

from nunja import defaults
from nunja._types import OPERATORS, Token, TokenType
from nunja.environment.exceptions import ErrorCode, TemplateSyntaxError

_WHITESPACE_RE = re.compile(r"\s+")
_NAME_RE = re.compile(r"[^\W\d]\w*")
_STRING_RE = re.compile(r"('([^'\\]*(?:\\.[^'\\]*)*)'" r'|"([^"\\]*(?:\\.[^"\\]*)*)")', re.S)
_FLOAT_RE = re.compile(
    r"(?<!\.)(\d+_)*\d+((\.(\d+_)*\d+)?[eE][+\-]?(\d+_)*\d+|\.(\d+_)*\d+)"
)
_INTEGER_RE = re.compile(
    r"(0[bB](_?[0-1])+|0[oO](_?[0-7])+|0[xX](_?[\da-fA-F])+|[1-9](_?\d)*|0(_?0)*)"
)
_NEWLINE_RE = re.compile(r"(\r\n|\r|\n)")
_OPERATOR_RE = re.compile("|".join(re.escape(op) for op in sorted(OPERATORS, key=len, reverse=True)))

_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}


@dataclass(frozen=True, slots=True)
class LexerConfig:
    """Delimiters and whitespace options for the lexer."""

    block_start: str = defaults.BLOCK_START_STRING
    block_end: str = defaults.BLOCK_END_STRING
    variable_start: str = defaults.VARIABLE_START_STRING
    variable_end: str = defaults.VARIABLE_END_STRING
    comment_start: str = defaults.COMMENT_START_STRING
    comment_end: str = defaults.COMMENT_END_STRING
    line_statement_prefix: str | None = defaults.LINE_STATEMENT_PREFIX
    line_comment_prefix: str | None = defaults.LINE_COMMENT_PREFIX
    trim_blocks: bool = defaults.TRIM_BLOCKS
    lstrip_blocks: bool = defaults.LSTRIP_BLOCKS
    newline_sequence: str = defaults.NEWLINE_SEQUENCE
    keep_trailing_newline: bool = defaults.KEEP_TRAILING_NEWLINE


def _tag_start_pattern(config: LexerConfig) -> re.Pattern[str]:
    e = re.escape
    b_start, b_end = e(config.block_start), e(config.block_end)
    alternatives = [
        (
            len(config.block_start),
            rf"(?P<raw>{b_start}(?P<raw_sign>[-+]?)\s*(?P<raw_kind>raw|verbatim)\s*"
            rf"(?P<raw_end_sign>[-+]?){b_end})",
        ),
        (len(config.comment_start), rf"(?P<comment>{e(config.comment_start)}(?P<comment_sign>[-+]?))"),
        (len(config.block_start), rf"(?P<block>{b_start}(?P<block_sign>[-+]?))"),
        (len(config.variable_start), rf"(?P<variable>{e(config.variable_start)}(?P<variable_sign>[-+]?))"),
    ]
    if config.line_statement_prefix:
        alternatives.append(
            (
                len(config.line_statement_prefix),
                rf"(?P<linestatement>^[ \t\v]*{e(config.line_statement_prefix)})",
            )
        )
    if config.line_comment_prefix:
        alternatives.append(
            (
                len(config.line_comment_prefix),
                rf"(?P<linecomment>(?:^|(?<=\S))[^\S\r\n]*{e(config.line_comment_prefix)})",
            )
        )
    # Longest delimiters first; raw must win over a plain block start.
    alternatives.sort(key=lambda item: -item[0])
    ordered = [pattern for _, pattern in alternatives]
    raw = next(p for p in ordered if p.startswith("(?P<raw>"))
    ordered.remove(raw)
    return re.compile("|".join([raw, *ordered]), re.M | re.S)


class Lexer:
    """Tokenizer configured with delimiters and whitespace options."""

    def __init__(self, config: LexerConfig | None = None, **options: Any):
        if config is None:
            config = LexerConfig(**options)
        self.config = config
        e = re.escape
        self._tag_start_re = _tag_start_pattern(config)
        self._comment_end_re = re.compile(rf"(?P<sign>[-+]?){e(config.comment_end)}", re.S)
        self._raw_end_re = {
            kind: re.compile(
                rf"{e(config.block_start)}(?P<sign>[-+]?)\s*end{kind}\s*(?P<end_sign>[-+]?)"
                rf"{e(config.block_end)}",
                re.S,
            )
            for kind in ("raw", "verbatim")
        }

    # ── public API ──────────────────────────────────────────────────────────

    def tokenize(
        self,
        source: str,
        name: str | None = None,
        filename: str | None = None,
    ) -> list[Token]:
        """Tokenize ``source``; the last token is always EOF."""
        return _Scan(self, source, name, filename).run()


class _Scan:
    """State for tokenizing one source string."""

    def __init__(self, lexer: Lexer, source: str, name: str | None, filename: str | None):
        config = lexer.config
        lines = _NEWLINE_RE.split(source)[::2]
        if len(lines) > 1 and not config.keep_trailing_newline and lines[-1] == "":
            lines.pop()
        text = "\n".join(lines)
        self.lexer = lexer
        self.config = config
        self.source = text
        self.name = name
        self.filename = filename
        self.tokens: list[Token] = []
        self.pos = 0
        # Set by a closing "-" sign: strip whitespace at the start of the next data.
        self.strip_next = False
        self._newlines = [i for i, ch in enumerate(text) if ch == "\n"]

    # ── helpers ─────────────────────────────────────────────────────────────

    def lineno_at(self, pos: int) -> int:
        return bisect_left(self._newlines, pos) + 1

    def col_at(self, pos: int) -> int:
        index = bisect_left(self._newlines, pos)
        return pos - (self._newlines[index - 1] + 1 if index else 0)

    def emit(self, token_type: TokenType, value: Any, pos: int, raw: str = "") -> None:
        self.tokens.append(
            Token(token_type, value, self.lineno_at(pos), self.col_at(pos), pos, raw)
        )

    def error(self, message: str, pos: int, code: ErrorCode) -> TemplateSyntaxError:
        return TemplateSyntaxError(
            message,
            lineno=self.lineno_at(pos),
            name=self.name,
            filename=self.filename,
            source=self.source,
            col_offset=self.col_at(pos),
            code=code,
        )

    def emit_data(self, data: str, pos: int) -> None:
        if data:
            value = data.replace("\n", self.config.newline_sequence)
            self.emit(TokenType.DATA, value, pos, data)

    def skip_trim_newline(self, sign: str) -> None:
        if self.config.trim_blocks and sign != "+" and self.source.startswith("\n", self.pos):
            self.pos += 1

    # ── main loop ───────────────────────────────────────────────────────────

    def run(self) -> list[Token]:
        source = self.source
        while self.pos < len(source):
            match = self.lexer._tag_start_re.search(source, self.pos)
            end = match.start() if match else len(source)
            data_pos = self.pos
            data = source[self.pos : end]
            if self.strip_next:
                stripped = data.lstrip()
                data_pos += len(data) - len(stripped)
                data = stripped
                self.strip_next = False
            if match is None:
                self.emit_data(data, data_pos)
                self.pos = len(source)
                break
            data = self.strip_before_tag(match, data, data_pos)
            self.emit_data(data, data_pos)
            self.pos = match.end()
            groups = match.groupdict()
            kind = next(
                k
                for k in ("raw", "comment", "block", "variable", "linestatement", "linecomment")
                if groups.get(k) is not None
            )
            getattr(self, f"lex_{kind}")(match)
        self.emit(TokenType.EOF, "", len(source))
        return self.tokens

    def strip_before_tag(self, match: re.Match[str], data: str, data_pos: int) -> str:
        groups = match.groupdict()
        sign = (
            groups.get("raw_sign")
            or groups.get("comment_sign")
            or groups.get("block_sign")
            or groups.get("variable_sign")
            or ""
        )
        if sign == "-":
            return data.rstrip()
        is_statement = any(groups.get(k) is not None for k in ("raw", "comment", "block"))
        if self.config.lstrip_blocks and is_statement and sign != "+":
            line_start = data.rfind("\n") + 1
            at_line_start = line_start > 0 or data_pos == 0 or self.source[data_pos - 1] == "\n"
            if at_line_start and data[line_start:].strip(" \t") == "":
                return data[:line_start]
        return data

    # ── tag handlers ────────────────────────────────────────────────────────

    def lex_comment(self, match: re.Match[str]) -> None:
        end = self.lexer._comment_end_re.search(self.source, self.pos)
        if end is None:
            raise self.error("Missing end of comment tag", match.start(), ErrorCode.UNCLOSED_COMMENT)
        self.pos = end.end()
        sign = end.group("sign")
        if sign == "-":
            self.strip_next = True
        else:
            self.skip_trim_newline(sign)

    def lex_raw(self, match: re.Match[str]) -> None:
        kind = match.group("raw_kind")
        end = self.lexer._raw_end_re[kind].search(self.source, self.pos)
        if end is None:
            raise self.error(f"Missing end of {kind} directive", match.start(), ErrorCode.UNCLOSED_RAW)
        content_pos = self.pos
        content = self.source[self.pos : end.start()]
        if match.group("raw_end_sign") == "-":
            stripped = content.lstrip()
            content_pos += len(content) - len(stripped)
            content = stripped
        if end.group("sign") == "-":
            content = content.rstrip()
        self.emit_data(content, content_pos)
        self.pos = end.end()
        if end.group("end_sign") == "-":
            self.strip_next = True
        else:
            self.skip_trim_newline(end.group("end_sign"))

    def lex_block(self, match: re.Match[str]) -> None:
        config = self.config
        self.emit(TokenType.BLOCK_BEGIN, "", match.start(), match.group(0))
        sign = self.lex_expression(
            config.block_end, TokenType.BLOCK_END, match.start(), "statement block"
        )
        if sign == "-":
            self.strip_next = True
        else:
            self.skip_trim_newline(sign)

    def lex_variable(self, match: re.Match[str]) -> None:
        self.emit(TokenType.VARIABLE_BEGIN, "", match.start(), match.group(0))
        sign = self.lex_expression(
            self.config.variable_end, TokenType.VARIABLE_END, match.start(), "print statement"
        )
        if sign == "-":
            self.strip_next = True

    def lex_linestatement(self, match: re.Match[str]) -> None:
        self.emit(TokenType.BLOCK_BEGIN, "", match.start(), match.group(0))
        self.lex_expression(None, TokenType.BLOCK_END, match.start(), "line statement")

    def lex_linecomment(self, match: re.Match[str]) -> None:
        newline = self.source.find("\n", self.pos)
        self.pos = len(self.source) if newline < 0 else newline

    # ── expressions ─────────────────────────────────────────────────────────

    def lex_expression(
        self, end_delimiter: str | None, end_type: TokenType, start: int, what: str
    ) -> str:
        """Lex expression tokens up to ``end_delimiter``.

        ``None`` means a line statement, which ends at the first newline
        outside of brackets. Returns the whitespace sign of the closing tag.
        """
        source = self.source
        length = len(source)
        stack: list[str] = []
        line_comment = self.config.line_comment_prefix
        while True:
            if end_delimiter is None and not stack:
                # Line statements end at the newline; spaces are insignificant.
                while self.pos < length and source[self.pos] in " \t\v\f":
                    self.pos += 1
                if line_comment and source.startswith(line_comment, self.pos):
                    newline = source.find("\n", self.pos)
                    self.pos = length if newline < 0 else newline
                if self.pos >= length or source[self.pos] == "\n":
                    self.emit(end_type, "", self.pos, source[self.pos : self.pos + 1])
                    self.pos = min(self.pos + 1, length)
                    return ""
            else:
                ws = _WHITESPACE_RE.match(source, self.pos)
                if ws:
                    self.pos = ws.end()
            if self.pos >= length:
                raise self.error(f"Missing end of {what}", start, ErrorCode.UNCLOSED_TAG)

            if end_delimiter is not None and not stack:
                for sign in ("-", "+", ""):
                    if source.startswith(sign + end_delimiter, self.pos):
                        raw = sign + end_delimiter
                        self.emit(end_type, "", self.pos, raw)
                        self.pos += len(raw)
                        return sign

            pos = self.pos
            m = _NAME_RE.match(source, pos)
            if m:
                self.emit(TokenType.NAME, m.group(), pos, m.group())
                self.pos = m.end()
                continue
            m = _STRING_RE.match(source, pos)
            if m:
                body = m.group()[1:-1]
                try:
                    value = body.encode("ascii", "backslashreplace").decode("unicode-escape")
                except UnicodeDecodeError as exc:
                    raise self.error(f"invalid string literal: {exc}", pos, ErrorCode.UNEXPECTED_CHAR) from exc
                self.emit(TokenType.STRING, value, pos, m.group())
                self.pos = m.end()
                continue
            m = _FLOAT_RE.match(source, pos)
            if m:
                self.emit(TokenType.FLOAT, float(m.group().replace("_", "")), pos, m.group())
                self.pos = m.end()
                continue
            m = _INTEGER_RE.match(source, pos)
            if m:
                self.emit(TokenType.INTEGER, int(m.group().replace("_", ""), 0), pos, m.group())
                self.pos = m.end()
                continue
            m = _OPERATOR_RE.match(source, pos)
            if m:
                op = m.group()
                if op in _BRACKETS:
                    stack.append(_BRACKETS[op])
                elif op in _CLOSERS:
                    if not stack:
                        raise self.error(f"unexpected '{op}'", pos, ErrorCode.UNEXPECTED_CHAR)
                    expected = stack.pop()
                    if expected != op:
                        raise self.error(
                            f"unexpected '{op}', expected '{expected}'",
                            pos,
                            ErrorCode.UNEXPECTED_CHAR,
                        )
                self.emit(OPERATORS[op], op, pos, op)
                self.pos = m.end()
                continue
            if source[pos] in "'\"":
                raise self.error("unexpected end of string", pos, ErrorCode.UNEXPECTED_CHAR)
            raise self.error(f"unexpected char {source[pos]!r} at {pos}", pos, ErrorCode.UNEXPECTED_CHAR)


def tokenize(source: str, **options: Any) -> list[Token]:
    """Tokenize ``source`` with default delimiters (and ``options``)."""
    return Lexer(**options).tokenize(source)
