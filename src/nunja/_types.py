"""Token types shared by the lexer and the parser.

The lexer produces a flat stream of `Token` values; the parser consumes them
through `nunja.parser.tokens.TokenStream`. Tokens are immutable.

Example:
    >>> from nunja.lexer import Lexer
    >>> [t.type for t in Lexer().tokenize("{{ x }}")]
    [<TokenType.VARIABLE_BEGIN: 'variable_begin'>, <TokenType.NAME: 'name'>,
     <TokenType.VARIABLE_END: 'variable_end'>]

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class TokenType(Enum):
    """Token categories emitted by the lexer."""

    # Structure
    DATA = "data"
    BLOCK_BEGIN = "block_begin"
    BLOCK_END = "block_end"
    VARIABLE_BEGIN = "variable_begin"
    VARIABLE_END = "variable_end"
    EOF = "eof"

    # Literals
    NAME = "name"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"

    # Operators
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    FLOORDIV = "floordiv"
    MOD = "mod"
    POW = "pow"
    TILDE = "tilde"
    PIPE = "pipe"
    DOT = "dot"
    COMMA = "comma"
    COLON = "colon"
    SEMICOLON = "semicolon"
    ASSIGN = "assign"
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTEQ = "gteq"
    LT = "lt"
    LTEQ = "lteq"
    LPAREN = "lparen"
    RPAREN = "rparen"
    LBRACKET = "lbracket"
    RBRACKET = "rbracket"
    LBRACE = "lbrace"
    RBRACE = "rbrace"


# Operator spellings, longest first so the lexer can match greedily.
OPERATORS: dict[str, TokenType] = {
    "//": TokenType.FLOORDIV,
    "**": TokenType.POW,
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    ">=": TokenType.GTEQ,
    "<=": TokenType.LTEQ,
    "+": TokenType.ADD,
    "-": TokenType.SUB,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
    "~": TokenType.TILDE,
    "|": TokenType.PIPE,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    ";": TokenType.SEMICOLON,
    "=": TokenType.ASSIGN,
    ">": TokenType.GT,
    "<": TokenType.LT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
}

# Human readable names used in "expected X" messages.
TOKEN_DESCRIPTIONS: dict[TokenType, str] = {
    TokenType.DATA: "template data / text",
    TokenType.BLOCK_BEGIN: "begin of statement block",
    TokenType.BLOCK_END: "end of statement block",
    TokenType.VARIABLE_BEGIN: "begin of print statement",
    TokenType.VARIABLE_END: "end of print statement",
    TokenType.EOF: "end of template",
    **{tt: repr(op) for op, tt in OPERATORS.items()},
}


def describe_token_type(token_type: TokenType) -> str:
    """Return a readable description of a token type."""
    return TOKEN_DESCRIPTIONS.get(token_type, token_type.value)


@dataclass(frozen=True, slots=True)
class Token:
    """A lexed token.

    Attributes:
        type: Token category
        value: Decoded value (str for names/data/strings, int/float for numbers)
        lineno: 1-based line of the first character
        col_offset: 0-based column of the first character
        pos: Absolute offset of the first character in the source
        raw: Source text the token was produced from
    """

    type: TokenType
    value: Any
    lineno: int
    col_offset: int = 0
    pos: int = 0
    raw: str = ""

    def test(self, token_type: TokenType, value: Any = None) -> bool:
        """Check the token type and, optionally, its value."""
        if self.type is not token_type:
            return False
        return value is None or self.value == value

    def test_any(self, *expressions: TokenType | tuple[TokenType, str]) -> bool:
        """Check against several ``TokenType`` or ``(TokenType, value)`` pairs."""
        for expr in expressions:
            if isinstance(expr, tuple):
                if self.test(*expr):
                    return True
            elif self.type is expr:
                return True
        return False

    def describe(self) -> str:
        """Describe the token for error messages."""
        if self.type is TokenType.NAME:
            return str(self.value)
        if self.type in (TokenType.STRING, TokenType.INTEGER, TokenType.FLOAT):
            return repr(self.value)
        return describe_token_type(self.type)

    @property
    def end_pos(self) -> int:
        return self.pos + len(self.raw)
