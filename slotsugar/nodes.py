"""Syntax tree — immutable tagged variants for the host JavaScript subset."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ConfigDict, computed_field


class SourceLocation(BaseModel):
    """Structured source span from tree-sitter AST nodes."""

    model_config = ConfigDict(frozen=True)

    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def is_unknown(self) -> bool:
        return (
            self.start_line == 0
            and self.start_col == 0
            and self.end_line == 0
            and self.end_col == 0
        )

    def __str__(self) -> str:
        if self.is_unknown():
            return "<unknown>"
        return f"{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


NO_SOURCE_LOCATION = SourceLocation(start_line=0, start_col=0, end_line=0, end_col=0)


class AccessorShape(str, Enum):
    """Receiver discipline of a generated accessor.

    BOUND accessors close over one hoisted receiver; UNBOUND accessors take
    the receiver as their first explicit argument.
    """

    BOUND = "bound"
    UNBOUND = "unbound"


class Node(BaseModel):
    model_config = ConfigDict(frozen=True)

    loc: SourceLocation = NO_SOURCE_LOCATION

    @computed_field
    @property
    def node_type(self) -> str:
        return type(self).__name__


# ── expressions ──────────────────────────────────────────────────


class Identifier(Node):
    name: str


class Literal(Node):
    value: Any = None


class This(Node):
    pass


class MemberAccess(Node):
    object: Node
    key: Node  # Identifier when not computed
    computed: bool = False


class PrivateFieldRef(Node):
    """``receiver.#field_name``; receiver is None for a bare ``#field_name``."""

    receiver: Node | None = None
    field_name: str


class Call(Node):
    callee: Node
    args: tuple[Node, ...] = ()


class New(Node):
    callee: Node
    args: tuple[Node, ...] = ()


class SuperCall(Node):
    args: tuple[Node, ...] = ()


class UnaryOp(Node):
    op: str
    operand: Node


class BinaryOp(Node):
    op: str
    left: Node
    right: Node


class Conditional(Node):
    test: Node
    consequent: Node
    alternate: Node


class Assignment(Node):
    target: Node
    value: Node


class CompoundAssignment(Node):
    """``target op= value``; ``op`` is the bare operator (``+``, ``&&``, ...)."""

    target: Node
    op: str
    value: Node


class IncDec(Node):
    target: Node
    op: str  # "++" or "--"
    prefix: bool = False


class Sequence(Node):
    exprs: tuple[Node, ...]


class Property(Node):
    key: str
    value: Node


class ObjectLiteral(Node):
    entries: tuple[Property, ...] = ()


class ArrayLiteral(Node):
    elements: tuple[Node, ...] = ()


class Arrow(Node):
    params: tuple[str, ...] = ()
    body: Node  # expression, or Block
    is_async: bool = False
    shape: AccessorShape | None = None


class Await(Node):
    operand: Node


class Yield(Node):
    operand: Node | None = None


class UnaryReify(Node):
    operand: Node


class UnaryReifyUnbound(Node):
    operand: Node


# ── statements ───────────────────────────────────────────────────


class Program(Node):
    body: tuple[Node, ...] = ()


class Block(Node):
    body: tuple[Node, ...] = ()


class ExprStmt(Node):
    expr: Node


class BindingDecl(Node):
    kind: str  # "let", "const" or "var"
    name: str
    init: Node | None = None
    reified: bool = False


class Return(Node):
    value: Node | None = None


class Throw(Node):
    value: Node


class If(Node):
    test: Node
    consequent: Node
    alternate: Node | None = None


class While(Node):
    test: Node
    body: Node


class FunctionDecl(Node):
    name: str
    params: tuple[str, ...] = ()
    body: Block
    is_async: bool = False
    is_generator: bool = False


# ── classes ──────────────────────────────────────────────────────


class FieldDef(Node):
    name: str
    is_private: bool = False
    is_static: bool = False
    value: Node | None = None


class MethodDef(Node):
    name: str
    params: tuple[str, ...] = ()
    body: Block
    is_private: bool = False
    is_static: bool = False
    is_async: bool = False

    @property
    def is_constructor(self) -> bool:
        return self.name == "constructor" and not self.is_static and not self.is_private


class StaticBlock(Node):
    body: tuple[Node, ...] = ()


class SlotExport(Node):
    """``slot.export(this.#f);`` as a statement of a static block."""

    field_name: str


class SlotImport(Node):
    field_name: str


class ClassBody(Node):
    """Class elements in source order (initialization order matters)."""

    members: tuple[Node, ...] = ()

    @property
    def fields(self) -> tuple[FieldDef, ...]:
        return tuple(m for m in self.members if isinstance(m, FieldDef))

    @property
    def methods(self) -> tuple[MethodDef, ...]:
        return tuple(m for m in self.members if isinstance(m, MethodDef))

    @property
    def static_blocks(self) -> tuple[StaticBlock, ...]:
        return tuple(m for m in self.members if isinstance(m, StaticBlock))

    @property
    def exports(self) -> tuple[SlotExport, ...]:
        return self._block_statements(SlotExport)

    @property
    def imports(self) -> tuple[SlotImport, ...]:
        return self._block_statements(SlotImport)

    def _block_statements(self, kind: type[Node]) -> tuple[Node, ...]:
        return tuple(
            stmt
            for block in self.static_blocks
            for stmt in block.body
            if isinstance(stmt, kind)
        )

    def private_names(self) -> frozenset[str]:
        return frozenset(
            m.name
            for m in self.members
            if isinstance(m, (FieldDef, MethodDef)) and m.is_private
        )


class ClassDecl(Node):
    name: str
    superclass: Node | None = None
    body: ClassBody


FUNCTION_NODES: tuple[type[Node], ...] = (FunctionDecl, Arrow, MethodDef)
MARKER_NODES: tuple[type[Node], ...] = (
    UnaryReify,
    UnaryReifyUnbound,
    SlotExport,
    SlotImport,
)


# ── traversal ────────────────────────────────────────────────────


def iter_children(node: Node) -> Iterator[Node]:
    """Yield the direct child nodes of *node* in field order."""
    for name in type(node).model_fields:
        value = getattr(node, name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            yield from (item for item in value if isinstance(item, Node))


def map_children(node: Node, fn: Callable[[Node], Node]) -> Node:
    """Return *node* with every direct child replaced by ``fn(child)``.

    The original node is returned untouched when no child changed.
    """
    changes: dict[str, Any] = {}
    for name in type(node).model_fields:
        value = getattr(node, name)
        if isinstance(value, Node):
            new_value = fn(value)
            if new_value is not value:
                changes[name] = new_value
        elif isinstance(value, tuple) and any(isinstance(i, Node) for i in value):
            new_items = tuple(fn(i) if isinstance(i, Node) else i for i in value)
            if any(a is not b for a, b in zip(new_items, value)):
                changes[name] = new_items
    return node.model_copy(update=changes) if changes else node


def walk(node: Node, *, into_functions: bool = True) -> Iterator[Node]:
    """Pre-order traversal; optionally stops at nested function boundaries."""
    yield node
    for child in iter_children(node):
        if not into_functions and isinstance(child, FUNCTION_NODES):
            continue
        yield from walk(child, into_functions=into_functions)


def fresh_copy(node: Node) -> Node:
    """Deep copy so that a reused subtree has its own node identities."""
    return node.model_copy(deep=True)
