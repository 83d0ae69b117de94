"""Symbol tracking for the code generator.

Every lexical scope the generator opens (template root, block, macro, loop
body, filter block, with block) owns a `Symbols` table mapping template
names to generated Python identifiers (``l_<level>_<name>``) and recording
how each identifier obtains its value when the scope is entered:

    - ``param``: bound by the calling convention (macro or loop argument)
    - ``resolve``: fetched from the render context
    - ``alias``: copied from an identifier of an enclosing scope
    - ``undefined``: starts out as the ``missing`` sentinel

Example:
    >>> from nunja.parser import parse
    >>> symbols = Symbols()
    >>> symbols.analyze_node(parse("{% set x = y %}{{ x }}"))
    >>> symbols.loads
    {'l_0_y': ('resolve', 'y'), 'l_0_x': ('undefined', None)}

"""

from __future__ import annotations

from typing import Any

from nunja.analysis.path import Path
from nunja.analysis.visitor import PathVisitor
from nunja.nodes.base import Node

VAR_LOAD_PARAMETER = "param"
VAR_LOAD_RESOLVE = "resolve"
VAR_LOAD_ALIAS = "alias"
VAR_LOAD_UNDEFINED = "undefined"

Load = tuple[str, Any]


def find_symbols(nodes: list[Node], parent_symbols: Symbols | None = None) -> Symbols:
    """Analyze a flat list of statements in a fresh child scope."""
    sym = Symbols(parent=parent_symbols)
    visitor = FrameSymbolVisitor(sym)
    for node in nodes:
        visitor.visit(node)
    return sym


def symbols_for_node(node: Node, parent_symbols: Symbols | None = None) -> Symbols:
    sym = Symbols(parent=parent_symbols)
    sym.analyze_node(node)
    return sym


class Symbols:
    """Name -> identifier table of one scope, chained to its parent."""

    def __init__(self, parent: Symbols | None = None, level: int | None = None):
        if level is None:
            level = 0 if parent is None else parent.level + 1
        self.level = level
        self.parent = parent
        self.refs: dict[str, str] = {}
        self.loads: dict[str, Load] = {}
        self.stores: set[str] = set()

    def analyze_node(self, node: Node, **kwargs: Any) -> None:
        """Classify the names used directly in ``node``'s scope.

        ``for_branch`` (``"body"``, ``"else"`` or ``"test"``) selects which
        part of a loop is analyzed.
        """
        RootVisitor(self).visit(node, kwargs)

    def _define_ref(self, name: str, load: Load | None = None) -> str:
        ident = f"l_{self.level}_{name}"
        self.refs[name] = ident
        if load is not None:
            self.loads[ident] = load
        return ident

    def find_load(self, target: str) -> Load | None:
        if target in self.loads:
            return self.loads[target]
        if self.parent is not None:
            return self.parent.find_load(target)
        return None

    def find_ref(self, name: str) -> str | None:
        if name in self.refs:
            return self.refs[name]
        if self.parent is not None:
            return self.parent.find_ref(name)
        return None

    def ref(self, name: str) -> str:
        rv = self.find_ref(name)
        if rv is None:
            raise AssertionError(
                "Tried to resolve a name to a reference that was unknown to the "
                f"frame ({name!r})"
            )
        return rv

    def copy(self) -> Symbols:
        rv = object.__new__(type(self))
        rv.__dict__.update(self.__dict__)
        rv.refs = self.refs.copy()
        rv.loads = self.loads.copy()
        rv.stores = self.stores.copy()
        return rv

    def store(self, name: str) -> None:
        """Record an assignment to ``name`` in this scope."""
        self.stores.add(name)
        if name in self.refs:
            return
        # A binding from an enclosing scope is aliased, not shadowed.
        if self.parent is not None:
            outer_ref = self.parent.find_ref(name)
            if outer_ref is not None:
                self._define_ref(name, load=(VAR_LOAD_ALIAS, outer_ref))
                return
        self._define_ref(name, load=(VAR_LOAD_UNDEFINED, None))

    def declare_parameter(self, name: str) -> str:
        self.stores.add(name)
        return self._define_ref(name, load=(VAR_LOAD_PARAMETER, None))

    def load(self, name: str) -> None:
        if self.find_ref(name) is None:
            self._define_ref(name, load=(VAR_LOAD_RESOLVE, name))

    def branch_update(self, branch_symbols: list[Symbols]) -> None:
        """Merge sibling branches (if/elif/else) back into this scope.

        A name stored in only some of the branches cannot be trusted after
        the conditional: its load falls back to the enclosing binding, or to
        a context lookup when there is none.
        """
        stores: dict[str, int] = {}
        for branch in branch_symbols:
            for target in branch.stores:
                if target in self.stores:
                    continue
                stores[target] = stores.get(target, 0) + 1

        for sym in branch_symbols:
            self.refs.update(sym.refs)
            self.loads.update(sym.loads)
            self.stores.update(sym.stores)

        for name, branch_count in stores.items():
            if branch_count == len(branch_symbols):
                continue
            target = self.ref(name)
            if self.parent is not None:
                outer_target = self.parent.find_ref(name)
                if outer_target is not None:
                    self.loads[target] = (VAR_LOAD_ALIAS, outer_target)
                    continue
            self.loads[target] = (VAR_LOAD_RESOLVE, name)

    def dump_stores(self) -> dict[str, str]:
        """Every name stored in this scope or above, mapped to its identifier."""
        rv: dict[str, str] = {}
        node: Symbols | None = self
        while node is not None:
            for name in sorted(node.stores):
                if name not in rv:
                    rv[name] = self.ref(name)
            node = node.parent
        return rv

    def dump_param_targets(self) -> set[str]:
        """Identifiers that are still plain parameters, in this scope or above."""
        rv: set[str] = set()
        node: Symbols | None = self
        while node is not None:
            for target, (instr, _) in node.loads.items():
                if instr == VAR_LOAD_PARAMETER:
                    rv.add(target)
            node = node.parent
        return rv

    def __repr__(self) -> str:
        return f"<Symbols level={self.level} refs={self.refs!r}>"


# ─────────────────────────────────────────────────────────────────────────────
# Visitors
# ─────────────────────────────────────────────────────────────────────────────


class RootVisitor(PathVisitor):
    """Walks the statements that belong to the analyzed scope.

    Nested scopes (loops, blocks, macros, call and filter blocks) are not
    entered; `FrameSymbolVisitor` only sees their scope-level parts.
    """

    def __init__(self, symbols: Symbols):
        super().__init__()
        self.sym_visitor = FrameSymbolVisitor(symbols)

    def _visit_all(self, nodes: Any) -> bool:
        for child in nodes:
            self.sym_visitor.visit(child, {})
        return False

    def _simple_visit(self, path: Path, state: Any) -> bool:
        return self._visit_all(path.value.iter_child_nodes())

    visit_Template = _simple_visit
    visit_Block = _simple_visit
    visit_Macro = _simple_visit
    visit_FilterBlock = _simple_visit
    visit_Scope = _simple_visit
    visit_If = _simple_visit
    visit_ScopedEvalContextModifier = _simple_visit

    def visit_AssignBlock(self, path: Path, state: Any) -> bool:
        return self._visit_all(path.value.body)

    def visit_CallBlock(self, path: Path, state: Any) -> bool:
        return self._visit_all(path.value.iter_child_nodes(exclude=("call",)))

    def visit_OverlayScope(self, path: Path, state: Any) -> bool:
        return self._visit_all(path.value.body)

    def visit_For(self, path: Path, state: Any) -> bool:
        node = path.value
        for_branch = state.get("for_branch", "body")
        if for_branch == "body":
            self.sym_visitor.visit(node.target, {"store_as_param": True})
            branch = node.body
        elif for_branch == "else":
            branch = node.else_
        elif for_branch == "test":
            self.sym_visitor.visit(node.target, {"store_as_param": True})
            if node.test is not None:
                self.sym_visitor.visit(node.test, {})
            return False
        else:
            raise RuntimeError(f"Unknown for branch {for_branch!r}")
        return self._visit_all(branch)

    def visit_With(self, path: Path, state: Any) -> bool:
        node = path.value
        self._visit_all(node.targets)
        return self._visit_all(node.body)

    def generic_visit(self, path: Path, state: Any) -> Any:
        raise NotImplementedError(f"Cannot find symbols for {path.value.type!r}")


class FrameSymbolVisitor(PathVisitor):
    """Classifies the names of one scope into a `Symbols` table.

    The state is a dict; ``store_as_param`` turns stores into parameter
    declarations (loop targets).
    """

    def __init__(self, symbols: Symbols):
        super().__init__()
        self.symbols = symbols

    def visit_Name(self, path: Path, state: Any) -> bool:
        node = path.value
        if state.get("store_as_param") or node.ctx == "param":
            self.symbols.declare_parameter(node.name)
        elif node.ctx == "store":
            self.symbols.store(node.name)
        elif node.ctx == "load":
            self.symbols.load(node.name)
        return False

    def visit_NSRef(self, path: Path, state: Any) -> bool:
        self.symbols.load(path.value.name)
        return False

    def visit_If(self, path: Path, state: Any) -> bool:
        node = path.value
        self.visit(node.test, state)
        original_symbols = self.symbols

        def inner_visit(nodes: list[Node]) -> Symbols:
            self.symbols = rv = original_symbols.copy()
            for subnode in nodes:
                self.visit(subnode, state)
            self.symbols = original_symbols
            return rv

        body_symbols = inner_visit(node.body)
        elif_symbols = inner_visit(node.elif_)
        else_symbols = inner_visit(node.else_)
        self.symbols.branch_update([body_symbols, elif_symbols, else_symbols])
        return False

    def visit_Macro(self, path: Path, state: Any) -> bool:
        self.symbols.store(path.value.name)
        return False

    def visit_Import(self, path: Path, state: Any) -> bool:
        self.traverse(path)
        self.symbols.store(path.value.target)
        return False

    def visit_FromImport(self, path: Path, state: Any) -> bool:
        self.traverse(path)
        for name in path.value.names:
            self.symbols.store(name if isinstance(name, str) else name[1])
        return False

    def visit_Assign(self, path: Path, state: Any) -> bool:
        # The value is evaluated before the target is bound.
        self.visit(path.value.node, state)
        self.visit(path.value.target, state)
        return False

    def visit_For(self, path: Path, state: Any) -> bool:
        # Only the iterable belongs to the enclosing scope.
        self.visit(path.value.iter, state)
        return False

    def visit_CallBlock(self, path: Path, state: Any) -> bool:
        self.visit(path.value.call, state)
        return False

    def visit_FilterBlock(self, path: Path, state: Any) -> bool:
        self.visit(path.value.filter, state)
        return False

    def visit_With(self, path: Path, state: Any) -> bool:
        for value in path.value.values:
            self.visit(value, {})
        return False

    def visit_AssignBlock(self, path: Path, state: Any) -> bool:
        self.visit(path.value.target, state)
        return False

    def visit_Scope(self, path: Path, state: Any) -> bool:
        return False

    def visit_Block(self, path: Path, state: Any) -> bool:
        return False

    def visit_OverlayScope(self, path: Path, state: Any) -> bool:
        return False
