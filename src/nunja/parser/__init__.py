"""Recursive-descent parser for nunja templates.

    >>> from nunja.parser import parse
    >>> template = parse("{% for x in xs %}{{ x }}{% endfor %}")
    >>> template.body[0].type
    'For'

"""

from __future__ import annotations

from nunja.parser.core import Parser, parse
from nunja.parser.tokens import TokenStream, describe_token_expr

__all__ = ["Parser", "TokenStream", "describe_token_expr", "parse"]
