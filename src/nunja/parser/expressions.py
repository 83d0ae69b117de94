"""Expression parsing for the nunja parser.

Precedence, loosest binding first::

    condexpr   := or ('if' or ('else' condexpr)?)*
    or         := and ('or' and)*
    and        := not ('and' not)*
    not        := 'not' not | compare
    compare    := math1 (cmp_op math1 | 'in' math1 | 'not' 'in' math1)*
    math1      := concat (('+' | '-') concat)*
    concat     := math2 ('~' math2)*
    math2      := pow (('*' | '/' | '//' | '%') pow)*
    pow        := unary ('**' unary)*
    unary      := ('-' | '+') unary | primary postfix* filter_chain
    postfix    := '.' NAME | '.' INTEGER | '[' subscript ']' | call_args
    filter_chain := ('|' filter | 'is' test | call_args)*

Every node receives a ``loc`` spanning its first to its last token.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, NoReturn

from nunja import nodes
from nunja._types import Token, TokenType
from nunja.environment.exceptions import ErrorCode

if TYPE_CHECKING:
    from nunja.environment.exceptions import TemplateSyntaxError
    from nunja.nodes.base import Node, SourceLocation
    from nunja.parser.tokens import TokenExpr, TokenStream

_COMPARE_OPERATORS = {
    TokenType.EQ: "eq",
    TokenType.NE: "ne",
    TokenType.LT: "lt",
    TokenType.LTEQ: "lteq",
    TokenType.GT: "gt",
    TokenType.GTEQ: "gteq",
}

_MATH1 = {TokenType.ADD: "Add", TokenType.SUB: "Sub"}
_MATH2 = {
    TokenType.MUL: "Mul",
    TokenType.DIV: "Div",
    TokenType.FLOORDIV: "FloorDiv",
    TokenType.MOD: "Mod",
}

_CONSTANT_NAMES: dict[str, Any] = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "none": None,
    "None": None,
}

# Tokens that may start the bare argument of ``is test arg``.
_TEST_ARG_START = frozenset(
    {
        TokenType.NAME,
        TokenType.STRING,
        TokenType.INTEGER,
        TokenType.FLOAT,
        TokenType.LPAREN,
        TokenType.LBRACKET,
        TokenType.LBRACE,
    }
)

CallArgs = tuple[list["Node"], list["Node"], "Node | None", "Node | None"]


class ExpressionParsingMixin:
    """Mixin for parsing expressions, tuples and assignment targets."""

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        stream: TokenStream

        # From TokenNavigationMixin
        @property
        def _current(self) -> Token: ...
        def _peek(self, offset: int = 1) -> Token: ...
        def _advance(self) -> Token: ...
        def _expect(self, token_type: TokenType, value: Any = None) -> Token: ...
        def _match(self, *types: TokenType) -> bool: ...
        def _skip_if(self, token_type: TokenType, value: Any = None) -> bool: ...
        def _at_name(self, *values: str) -> bool: ...

        # From Parser
        def fail(
            self,
            message: str,
            lineno: int | None = None,
            exc: type[TemplateSyntaxError] = ...,
            *,
            token: Token | None = None,
            code: ErrorCode | None = None,
        ) -> NoReturn: ...
        def _loc(self, start: Token, end: Token | None = None) -> SourceLocation: ...

    # ── entry points ────────────────────────────────────────────────────────

    def parse_expression(self, with_condexpr: bool = True) -> Node:
        """Parse an expression, including ``a if b else c`` unless disabled."""
        if with_condexpr:
            return self.parse_condexpr()
        return self.parse_or()

    def parse_assign_target(
        self,
        with_tuple: bool = True,
        name_only: bool = False,
        extra_end_rules: Sequence[TokenExpr] | None = None,
        with_namespace: bool = False,
    ) -> Node:
        """Parse an assignment target and switch it to ``store`` context.

        Targets are primaries only: a name, ``ns.attr`` (with
        ``with_namespace``) or a tuple of those. Anything that cannot be
        assigned to (``true``, ``none``, a literal, a call...) fails.
        """
        start = self._current
        target: Node
        if name_only:
            token = self._expect(TokenType.NAME)
            target = nodes.Name(token.value, "store", loc=self._loc(token))
        else:
            if with_tuple:
                target = self.parse_tuple(
                    simplified=True,
                    extra_end_rules=extra_end_rules,
                    with_namespace=with_namespace,
                )
            else:
                target = self.parse_primary(with_namespace=with_namespace)
            target.set_ctx("store")
        if not nodes.can_assign(target):
            self.fail(
                f"Can't assign to {target.type}",
                token=start,
                code=ErrorCode.INVALID_TARGET,
            )
        return target

    # ── operators ───────────────────────────────────────────────────────────

    def parse_condexpr(self) -> Node:
        start = self._current
        expr1 = self.parse_or()
        while self._skip_if(TokenType.NAME, "if"):
            expr2 = self.parse_or()
            expr3 = self.parse_condexpr() if self._skip_if(TokenType.NAME, "else") else None
            expr1 = nodes.CondExpr(expr2, expr1, expr3, loc=self._loc(start))
        return expr1

    def parse_or(self) -> Node:
        start = self._current
        left = self.parse_and()
        while self._skip_if(TokenType.NAME, "or"):
            right = self.parse_and()
            left = nodes.Or(left, right, loc=self._loc(start))
        return left

    def parse_and(self) -> Node:
        start = self._current
        left = self.parse_not()
        while self._skip_if(TokenType.NAME, "and"):
            right = self.parse_not()
            left = nodes.And(left, right, loc=self._loc(start))
        return left

    def parse_not(self) -> Node:
        if self._at_name("not"):
            start = self._advance()
            operand = self.parse_not()
            return nodes.Not(operand, loc=self._loc(start))
        return self.parse_compare()

    def parse_compare(self) -> Node:
        start = self._current
        expr = self.parse_math1()
        ops: list[Node] = []
        while True:
            op_start = self._current
            token_type = op_start.type
            if token_type in _COMPARE_OPERATORS:
                self._advance()
                op = _COMPARE_OPERATORS[token_type]
            elif self._skip_if(TokenType.NAME, "in"):
                op = "in"
            elif self._at_name("not") and self._peek().test(TokenType.NAME, "in"):
                self.stream.skip(2)
                op = "notin"
            else:
                break
            operand = self.parse_math1()
            ops.append(nodes.Operand(op, operand, loc=self._loc(op_start)))
        if not ops:
            return expr
        return nodes.Compare(expr, ops, loc=self._loc(start))

    def _parse_binary(
        self,
        operand: Callable[[], Node],
        operators: dict[TokenType, str],
    ) -> Node:
        start = self._current
        left = operand()
        while self._current.type in operators:
            node_class = getattr(nodes, operators[self._advance().type])
            right = operand()
            left = node_class(left, right, loc=self._loc(start))
        return left

    def parse_math1(self) -> Node:
        return self._parse_binary(self.parse_concat, _MATH1)

    def parse_concat(self) -> Node:
        start = self._current
        args = [self.parse_math2()]
        while self._skip_if(TokenType.TILDE):
            args.append(self.parse_math2())
        if len(args) == 1:
            return args[0]
        return nodes.Concat(args, loc=self._loc(start))

    def parse_math2(self) -> Node:
        return self._parse_binary(self.parse_pow, _MATH2)

    def parse_pow(self) -> Node:
        return self._parse_binary(self.parse_unary, {TokenType.POW: "Pow"})

    def parse_unary(self, with_filter: bool = True) -> Node:
        start = self._current
        node: Node
        if start.type is TokenType.SUB:
            self._advance()
            node = nodes.Neg(self.parse_unary(False), loc=self._loc(start))
        elif start.type is TokenType.ADD:
            self._advance()
            node = nodes.Pos(self.parse_unary(False), loc=self._loc(start))
        else:
            node = self.parse_primary()
        node = self.parse_postfix(node, start)
        if with_filter:
            node = self.parse_filter_expr(node, start)
        return node

    # ── primaries ───────────────────────────────────────────────────────────

    def parse_primary(self, with_namespace: bool = False) -> Node:
        token = self._current
        node: Node
        if token.type is TokenType.NAME:
            self._advance()
            if token.value in _CONSTANT_NAMES:
                node = nodes.Const(_CONSTANT_NAMES[token.value], loc=self._loc(token))
            elif with_namespace and self._current.type is TokenType.DOT:
                self._advance()
                attr = self._expect(TokenType.NAME)
                node = nodes.NSRef(token.value, attr.value, loc=self._loc(token))
            else:
                node = nodes.Name(token.value, "load", loc=self._loc(token))
        elif token.type is TokenType.STRING:
            self._advance()
            buf = [token.value]
            # Adjacent string literals concatenate: {{ "a" "b" }}
            while self._current.type is TokenType.STRING:
                buf.append(self._advance().value)
            node = nodes.Const("".join(buf), loc=self._loc(token))
        elif token.type in (TokenType.INTEGER, TokenType.FLOAT):
            self._advance()
            node = nodes.Const(token.value, loc=self._loc(token))
        elif token.type is TokenType.LPAREN:
            self._advance()
            node = self.parse_tuple(explicit_parentheses=True)
            self._expect(TokenType.RPAREN)
        elif token.type is TokenType.LBRACKET:
            node = self.parse_list()
        elif token.type is TokenType.LBRACE:
            node = self.parse_dict()
        elif token.type is TokenType.EOF:
            self.fail("Unexpected end of template", token=token, code=ErrorCode.UNCLOSED_BLOCK)
        else:
            self.fail(
                f"Unexpected {token.describe()}",
                token=token,
                code=ErrorCode.UNEXPECTED_TOKEN,
            )
        return node

    def is_tuple_end(self, extra_end_rules: Sequence[TokenExpr] | None = None) -> bool:
        """True if the current token ends a bare tuple."""
        if self._current.type in (TokenType.VARIABLE_END, TokenType.BLOCK_END, TokenType.RPAREN):
            return True
        if extra_end_rules is not None:
            return self._current.test_any(*extra_end_rules)
        return False

    def parse_tuple(
        self,
        simplified: bool = False,
        with_condexpr: bool = True,
        extra_end_rules: Sequence[TokenExpr] | None = None,
        explicit_parentheses: bool = False,
        with_namespace: bool = False,
    ) -> Node:
        """Parse one or more comma separated expressions.

        A single expression without a trailing comma is returned as is;
        otherwise the items are wrapped in a ``Tuple``. An empty tuple needs
        ``explicit_parentheses``. In ``simplified`` mode only primaries are
        parsed (assignment targets).
        """
        start = self._current
        parse: Callable[[], Node]
        if simplified:

            def parse() -> Node:
                return self.parse_primary(with_namespace=with_namespace)

        elif with_condexpr:
            parse = self.parse_expression
        else:

            def parse() -> Node:
                return self.parse_expression(with_condexpr=False)

        args: list[Node] = []
        is_tuple = False
        while True:
            if args:
                self._expect(TokenType.COMMA)
            if self.is_tuple_end(extra_end_rules):
                break
            args.append(parse())
            if self._current.type is TokenType.COMMA:
                is_tuple = True
            else:
                break

        if not is_tuple:
            if args:
                return args[0]
            # "()" is an empty tuple, a bare "{{ }}" is an error.
            if not explicit_parentheses:
                self.fail(
                    f"Expected an expression, got {self._current.describe()!r}",
                    code=ErrorCode.INVALID_EXPRESSION,
                )
        return nodes.Tuple(args, "load", loc=self._loc(start))

    def parse_list(self) -> Node:
        start = self._expect(TokenType.LBRACKET)
        items: list[Node] = []
        while self._current.type is not TokenType.RBRACKET:
            if items:
                self._expect(TokenType.COMMA)
            if self._current.type is TokenType.RBRACKET:
                break
            items.append(self.parse_expression())
        self._expect(TokenType.RBRACKET)
        return nodes.List(items, loc=self._loc(start))

    def parse_dict(self) -> Node:
        start = self._expect(TokenType.LBRACE)
        items: list[Node] = []
        while self._current.type is not TokenType.RBRACE:
            if items:
                self._expect(TokenType.COMMA)
            if self._current.type is TokenType.RBRACE:
                break
            key_start = self._current
            key = self.parse_expression()
            self._expect(TokenType.COLON)
            value = self.parse_expression()
            items.append(nodes.Pair(key, value, loc=self._loc(key_start)))
        self._expect(TokenType.RBRACE)
        return nodes.Dict(items, loc=self._loc(start))

    # ── postfix, filters and tests ──────────────────────────────────────────

    def parse_postfix(self, node: Node, start: Token | None = None) -> Node:
        start = start or self._current
        while True:
            token_type = self._current.type
            if token_type in (TokenType.DOT, TokenType.LBRACKET):
                node = self.parse_subscript(node, start)
            elif token_type is TokenType.LPAREN:
                node = self.parse_call(node, start)
            else:
                break
        return node

    def parse_filter_expr(self, node: Node, start: Token | None = None) -> Node:
        start = start or self._current
        while True:
            token_type = self._current.type
            if token_type is TokenType.PIPE:
                node = self.parse_filter(node, start=start)
            elif self._at_name("is"):
                node = self.parse_test(node, start)
            elif token_type is TokenType.LPAREN:
                node = self.parse_call(node, start)
            else:
                break
        return node

    def parse_subscript(self, node: Node, start: Token) -> Node:
        token = self._advance()
        if token.type is TokenType.DOT:
            attr_token = self._advance()
            if attr_token.type is TokenType.NAME:
                return nodes.Getattr(node, attr_token.value, "load", loc=self._loc(start))
            if attr_token.type is not TokenType.INTEGER:
                self.fail("Expected name or number", token=attr_token)
            arg = nodes.Const(attr_token.value, loc=self._loc(attr_token))
            return nodes.Getitem(node, arg, "load", loc=self._loc(start))
        if token.type is TokenType.LBRACKET:
            args: list[Node] = []
            while self._current.type is not TokenType.RBRACKET:
                if args:
                    self._expect(TokenType.COMMA)
                args.append(self.parse_subscribed())
            self._expect(TokenType.RBRACKET)
            arg = args[0] if len(args) == 1 else nodes.Tuple(args, "load", loc=self._loc(token))
            return nodes.Getitem(node, arg, "load", loc=self._loc(start))
        self.fail("expected subscript expression", token=token)

    def parse_subscribed(self) -> Node:
        """Parse one subscript item: an expression or a ``start:stop:step`` slice."""
        start = self._current
        args: list[Node | None]
        if self._current.type is TokenType.COLON:
            self._advance()
            args = [None]
        else:
            node = self.parse_expression()
            if self._current.type is not TokenType.COLON:
                return node
            self._advance()
            args = [node]

        if self._current.type is TokenType.COLON:
            args.append(None)
        elif self._current.type not in (TokenType.RBRACKET, TokenType.COMMA):
            args.append(self.parse_expression())
        else:
            args.append(None)

        if self._current.type is TokenType.COLON:
            self._advance()
            if self._current.type not in (TokenType.RBRACKET, TokenType.COMMA):
                args.append(self.parse_expression())
            else:
                args.append(None)
        else:
            args.append(None)
        return nodes.Slice(*args, loc=self._loc(start))

    def parse_call_args(self) -> CallArgs:
        """Parse ``(a, b, k=v, *args, **kwargs)``.

        Positional arguments must precede keywords, and nothing may follow
        ``**kwargs``.
        """
        token = self._expect(TokenType.LPAREN)
        args: list[Node] = []
        kwargs: list[Node] = []
        dyn_args: Node | None = None
        dyn_kwargs: Node | None = None
        require_comma = False

        def ensure(expr: bool) -> None:
            if not expr:
                self.fail(
                    "Invalid syntax for function call expression",
                    token=token,
                    code=ErrorCode.INVALID_EXPRESSION,
                )

        while self._current.type is not TokenType.RPAREN:
            if require_comma:
                self._expect(TokenType.COMMA)
                # Trailing comma
                if self._current.type is TokenType.RPAREN:
                    break
            if self._current.type is TokenType.MUL:
                ensure(dyn_args is None and dyn_kwargs is None)
                self._advance()
                dyn_args = self.parse_expression()
            elif self._current.type is TokenType.POW:
                ensure(dyn_kwargs is None)
                self._advance()
                dyn_kwargs = self.parse_expression()
            elif self._current.type is TokenType.NAME and self._peek().type is TokenType.ASSIGN:
                ensure(dyn_kwargs is None)
                key_token = self._current
                self.stream.skip(2)
                value = self.parse_expression()
                kwargs.append(nodes.Keyword(key_token.value, value, loc=self._loc(key_token)))
            else:
                ensure(dyn_args is None and dyn_kwargs is None and not kwargs)
                args.append(self.parse_expression())
            require_comma = True

        self._expect(TokenType.RPAREN)
        return args, kwargs, dyn_args, dyn_kwargs

    def parse_call(self, node: Node, start: Token | None = None) -> Node:
        start = start or self._current
        args, kwargs, dyn_args, dyn_kwargs = self.parse_call_args()
        return nodes.Call(node, args, kwargs, dyn_args, dyn_kwargs, loc=self._loc(start))

    def _parse_dotted_name(self) -> str:
        name = self._expect(TokenType.NAME).value
        while self._current.type is TokenType.DOT:
            self._advance()
            name += "." + self._expect(TokenType.NAME).value
        return name

    def parse_filter(
        self,
        node: Node | None,
        start_inline: bool = False,
        start: Token | None = None,
    ) -> Node | None:
        """Parse ``|name(args)`` chains applied to ``node``.

        With ``start_inline`` the first filter has no leading pipe
        (``{% filter upper %}``, ``{% set x | upper %}``).
        """
        start = start or self._current
        while self._current.type is TokenType.PIPE or start_inline:
            if not start_inline:
                self._advance()
            name = self._parse_dotted_name()
            if self._current.type is TokenType.LPAREN:
                args, kwargs, dyn_args, dyn_kwargs = self.parse_call_args()
            else:
                args, kwargs, dyn_args, dyn_kwargs = [], [], None, None
            node = nodes.Filter(
                node, name, args, kwargs, dyn_args, dyn_kwargs, loc=self._loc(start)
            )
            start_inline = False
        return node

    def parse_test(self, node: Node, start: Token | None = None) -> Node:
        """Parse ``is [not] name [arg | (args)]`` applied to ``node``."""
        start = start or self._current
        self._expect(TokenType.NAME, "is")
        negated = self._skip_if(TokenType.NAME, "not")
        name = self._parse_dotted_name()
        args: list[Node] = []
        kwargs: list[Node] = []
        dyn_args: Node | None = None
        dyn_kwargs: Node | None = None
        current = self._current
        if current.type is TokenType.LPAREN:
            args, kwargs, dyn_args, dyn_kwargs = self.parse_call_args()
        elif current.type in _TEST_ARG_START and not (
            current.type is TokenType.NAME and current.value in ("else", "or", "and")
        ):
            if current.test(TokenType.NAME, "is"):
                self.fail(
                    "You cannot chain multiple tests with is",
                    code=ErrorCode.INVALID_EXPRESSION,
                )
            arg_start = self._current
            arg = self.parse_postfix(self.parse_primary(), arg_start)
            args = [arg]
        test: Node = nodes.Test(node, name, args, kwargs, dyn_args, dyn_kwargs, loc=self._loc(start))
        if negated:
            test = nodes.Not(test, loc=self._loc(start))
        return test
