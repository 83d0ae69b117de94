"""Default configuration values for `nunja.Environment`."""

from __future__ import annotations

BLOCK_START_STRING = "{%"
BLOCK_END_STRING = "%}"
VARIABLE_START_STRING = "{{"
VARIABLE_END_STRING = "}}"
COMMENT_START_STRING = "{#"
COMMENT_END_STRING = "#}"
LINE_STATEMENT_PREFIX: str | None = None
LINE_COMMENT_PREFIX: str | None = None
TRIM_BLOCKS = False
LSTRIP_BLOCKS = False
NEWLINE_SEQUENCE = "\n"
KEEP_TRAILING_NEWLINE = False

# Number of compiled templates kept per environment.
CACHE_SIZE = 400

# Upper bound for the ``range`` global, guards against runaway loops.
MAX_RANGE = 100_000
