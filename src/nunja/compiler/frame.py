"""Code generation frames.

A `Frame` describes the Python scope the generator is currently writing
into: its `Symbols`, whether output goes to a buffer list or is yielded, and
flags that change how statements lower (top level, loop body, block body,
soft frames for conditionals).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nunja.compiler.idtracking import Symbols

if TYPE_CHECKING:
    from nunja.nodes.base import Node
    from nunja.template.context import EvalContext


class MacroRef:
    """What a compiled macro or call block body turned out to access."""

    def __init__(self, node: Node):
        self.node = node
        self.accesses_caller = False
        self.accesses_kwargs = False
        self.accesses_varargs = False


class Frame:
    """Holds compile-time information for one generated scope.

    Attributes:
        eval_ctx: Compile-time evaluation context (autoescape, volatile)
        symbols: Name table of this scope
        require_output_check: Output must be guarded by
            ``if parent_template is None`` (template with a dynamic extends)
        buffer: Name of the list output is appended to, None to yield
        block: Name of the enclosing block, if any
        toplevel: Root frame or a soft frame of it
        rootlevel: The outermost frame, not even inside a conditional
        loop_frame: Body of a for loop
        block_frame: Body of a block function
        soft_frame: Inside ``if`` or a conditional expression; unknown
            filters and tests fail at runtime instead of compile time
    """

    def __init__(
        self,
        eval_ctx: EvalContext,
        parent: Frame | None = None,
        level: int | None = None,
    ):
        self.eval_ctx = eval_ctx
        self.parent = parent

        if parent is None:
            self.symbols = Symbols(level=level)
            self.require_output_check = False
            self.buffer: str | None = None
            self.block: str | None = None
        else:
            self.symbols = Symbols(parent.symbols, level=level)
            self.require_output_check = parent.require_output_check
            self.buffer = parent.buffer
            self.block = parent.block

        self.toplevel = False
        self.rootlevel = False
        self.loop_frame = False
        self.block_frame = False
        self.soft_frame = False

    def copy(self) -> Frame:
        """Shallow copy with an independent symbol table."""
        rv = object.__new__(type(self))
        rv.__dict__.update(self.__dict__)
        rv.symbols = self.symbols.copy()
        return rv

    def inner(self, isolated: bool = False) -> Frame:
        """Child frame; an isolated one does not see the parent's names."""
        if isolated:
            return Frame(self.eval_ctx, level=self.symbols.level + 1)
        return Frame(self.eval_ctx, self)

    def soft(self) -> Frame:
        """Frame for conditional code: same scope, no longer root level."""
        rv = self.copy()
        rv.rootlevel = False
        rv.soft_frame = True
        return rv

    __copy__ = copy
