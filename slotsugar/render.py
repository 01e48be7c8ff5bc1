"""Render a syntax tree back to JavaScript source text."""

from __future__ import annotations

import json
import re
from typing import Callable

from .nodes import (
    ArrayLiteral,
    Arrow,
    Assignment,
    Await,
    BinaryOp,
    BindingDecl,
    Block,
    Call,
    ClassDecl,
    CompoundAssignment,
    Conditional,
    ExprStmt,
    FieldDef,
    FunctionDecl,
    Identifier,
    If,
    IncDec,
    Literal,
    MemberAccess,
    MethodDef,
    New,
    Node,
    ObjectLiteral,
    PrivateFieldRef,
    Program,
    Return,
    Sequence,
    SlotExport,
    SlotImport,
    StaticBlock,
    SuperCall,
    This,
    Throw,
    UnaryOp,
    UnaryReify,
    UnaryReifyUnbound,
    While,
    Yield,
)
from . import constants

INDENT = "  "

# Binding power, loosest first.
SEQUENCE = 1
ASSIGN = 2
CONDITIONAL = 3
UNARY = 16
POSTFIX = 17
CALL = 18
MEMBER = 19
PRIMARY = 20

BINARY_PRECEDENCE: dict[str, int] = {
    "??": 4,
    "||": 5,
    "&&": 6,
    "|": 7,
    "^": 8,
    "&": 9,
    "==": 10,
    "!=": 10,
    "===": 10,
    "!==": 10,
    "<": 11,
    ">": 11,
    "<=": 11,
    ">=": 11,
    "instanceof": 11,
    "in": 11,
    "<<": 12,
    ">>": 12,
    ">>>": 12,
    "+": 13,
    "-": 13,
    "*": 14,
    "/": 14,
    "%": 14,
    "**": 15,
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_STATEMENT_START_CONFLICTS = ("{", "function", "class", "let [")


def _precedence(node: Node) -> int:
    if isinstance(node, Sequence):
        return SEQUENCE
    if isinstance(node, (Assignment, CompoundAssignment, Arrow, Yield)):
        return ASSIGN
    if isinstance(node, Conditional):
        return CONDITIONAL
    if isinstance(node, BinaryOp):
        return BINARY_PRECEDENCE.get(node.op, 13)
    if isinstance(node, (UnaryOp, Await)):
        return UNARY
    if isinstance(node, IncDec):
        return UNARY if node.prefix else POSTFIX
    if isinstance(node, (Call, SuperCall, UnaryReify, UnaryReifyUnbound)):
        return CALL
    if isinstance(node, (MemberAccess, PrivateFieldRef, New)):
        return MEMBER
    return PRIMARY


def _mixes_nullish(parent: str, child: Node) -> bool:
    if not isinstance(child, BinaryOp):
        return False
    short_circuit = {"||", "&&"}
    return (parent == "??" and child.op in short_circuit) or (
        parent in short_circuit and child.op == "??"
    )


class JsRenderer:
    """Precedence-aware printer; parenthesises only where binding demands."""

    def __init__(self):
        self._EXPR_DISPATCH: dict[type[Node], Callable[[Node], str]] = {
            Identifier: lambda n: n.name,
            Literal: self._literal,
            This: lambda n: "this",
            MemberAccess: self._member,
            PrivateFieldRef: self._private,
            Call: self._call,
            New: self._new,
            SuperCall: lambda n: f"super({self._args(n.args)})",
            UnaryOp: self._unary,
            BinaryOp: self._binary,
            Conditional: self._conditional,
            Assignment: self._assignment,
            CompoundAssignment: self._assignment,
            IncDec: self._inc_dec,
            Sequence: lambda n: ", ".join(self._expr(e, ASSIGN) for e in n.exprs),
            ObjectLiteral: self._object,
            ArrayLiteral: lambda n: f"[{self._args(n.elements)}]",
            Arrow: self._arrow,
            Await: lambda n: f"await {self._expr(n.operand, UNARY)}",
            Yield: self._yield,
            UnaryReify: lambda n: f"{constants.MARKER_NAME}({self._expr(n.operand, ASSIGN)})",
            UnaryReifyUnbound: lambda n: (
                f"{constants.MARKER_NAME}.{constants.MARKER_UNBOUND}"
                f"({self._expr(n.operand, ASSIGN)})"
            ),
        }
        self._STMT_DISPATCH: dict[type[Node], Callable[[Node, int], list[str]]] = {
            Program: lambda n, d: self._statements(n.body, d),
            Block: self._block_stmt,
            ExprStmt: self._expr_stmt,
            BindingDecl: self._binding_decl,
            Return: self._return,
            Throw: lambda n, d: [
                f"{INDENT * d}throw {self._expr(n.value, SEQUENCE)};"
            ],
            If: self._if,
            While: self._while,
            FunctionDecl: self._function,
            ClassDecl: self._class,
            FieldDef: self._field,
            MethodDef: self._method,
            StaticBlock: self._static_block,
            SlotExport: lambda n, d: self._marker_stmt(n, d, constants.MARKER_EXPORT),
            SlotImport: lambda n, d: self._marker_stmt(n, d, constants.MARKER_IMPORT),
        }

    # ── entry point ──────────────────────────────────────────────

    def render(self, node: Node) -> str:
        if type(node) in self._STMT_DISPATCH:
            return "\n".join(self._stmt(node, 0))
        return self._expr(node, SEQUENCE)

    # ── expressions ──────────────────────────────────────────────

    def _expr(self, node: Node, minimum: int) -> str:
        text = self._EXPR_DISPATCH[type(node)](node)
        if _precedence(node) < minimum:
            return f"({text})"
        return text

    def _args(self, args: tuple[Node, ...]) -> str:
        return ", ".join(self._expr(a, ASSIGN) for a in args)

    def _literal(self, node: Literal) -> str:
        value = node.value
        if value is None:
            return "null"
        if value is True:
            return "true"
        if value is False:
            return "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)):
            return repr(value)
        return json.dumps(value)

    def _object_part(self, node: Node) -> str:
        text = self._expr(node, CALL)
        if isinstance(node, Literal) and isinstance(node.value, (int, float)):
            return f"({text})"
        return text

    def _member(self, node: MemberAccess) -> str:
        obj = self._object_part(node.object)
        if node.computed:
            return f"{obj}[{self._expr(node.key, SEQUENCE)}]"
        return f"{obj}.{node.key.name}"

    def _private(self, node: PrivateFieldRef) -> str:
        if node.receiver is None:
            return f"#{node.field_name}"
        return f"{self._object_part(node.receiver)}.#{node.field_name}"

    def _call(self, node: Call) -> str:
        return f"{self._expr(node.callee, CALL)}({self._args(node.args)})"

    def _new(self, node: New) -> str:
        return f"new {self._expr(node.callee, MEMBER)}({self._args(node.args)})"

    def _unary(self, node: UnaryOp) -> str:
        operand = self._expr(node.operand, UNARY)
        if node.op.isalpha() or operand.startswith(node.op[-1]):
            return f"{node.op} {operand}"
        return f"{node.op}{operand}"

    def _binary(self, node: BinaryOp) -> str:
        power = BINARY_PRECEDENCE.get(node.op, 13)
        if node.op == "**":
            left_min, right_min = POSTFIX, power
        else:
            left_min, right_min = power, power + 1
        left = self._expr(node.left, left_min)
        right = self._expr(node.right, right_min)
        if _mixes_nullish(node.op, node.left) and not left.startswith("("):
            left = f"({left})"
        if _mixes_nullish(node.op, node.right) and not right.startswith("("):
            right = f"({right})"
        return f"{left} {node.op} {right}"

    def _conditional(self, node: Conditional) -> str:
        return (
            f"{self._expr(node.test, CONDITIONAL + 1)} ? "
            f"{self._expr(node.consequent, ASSIGN)} : "
            f"{self._expr(node.alternate, ASSIGN)}"
        )

    def _assignment(self, node: Assignment | CompoundAssignment) -> str:
        op = "=" if isinstance(node, Assignment) else f"{node.op}="
        return f"{self._expr(node.target, CALL)} {op} {self._expr(node.value, ASSIGN)}"

    def _inc_dec(self, node: IncDec) -> str:
        if node.prefix:
            return f"{node.op}{self._expr(node.target, UNARY)}"
        return f"{self._expr(node.target, CALL)}{node.op}"

    def _property_key(self, key: str) -> str:
        return key if _IDENTIFIER_RE.match(key) else json.dumps(key)

    def _object(self, node: ObjectLiteral) -> str:
        if not node.entries:
            return "{}"
        entries = ", ".join(
            f"{self._property_key(p.key)}: {self._expr(p.value, ASSIGN)}"
            for p in node.entries
        )
        return f"{{ {entries} }}"

    def _arrow(self, node: Arrow) -> str:
        prefix = "async " if node.is_async else ""
        head = f"{prefix}({', '.join(node.params)}) =>"
        if isinstance(node.body, Block):
            return f"{head} {self._inline_block(node.body)}"
        body = self._expr(node.body, ASSIGN)
        if body.startswith("{"):
            body = f"({body})"
        return f"{head} {body}"

    def _yield(self, node: Yield) -> str:
        if node.operand is None:
            return "yield"
        return f"yield {self._expr(node.operand, ASSIGN)}"

    def _inline_block(self, block: Block) -> str:
        """A block used inside an expression is printed on one line."""
        if not block.body:
            return "{}"
        inner = " ".join(line.strip() for line in self._statements(block.body, 0))
        return f"{{ {inner} }}"

    # ── statements ───────────────────────────────────────────────

    def _stmt(self, node: Node, depth: int) -> list[str]:
        return self._STMT_DISPATCH[type(node)](node, depth)

    def _statements(self, stmts: tuple[Node, ...], depth: int) -> list[str]:
        lines: list[str] = []
        for stmt in stmts:
            lines.extend(self._stmt(stmt, depth))
        return lines

    def _braced(self, head: str, body: tuple[Node, ...], depth: int) -> list[str]:
        pad = INDENT * depth
        if not body:
            return [f"{pad}{head}{{}}"]
        return [f"{pad}{head}{{", *self._statements(body, depth + 1), f"{pad}}}"]

    def _block_stmt(self, node: Block, depth: int) -> list[str]:
        return self._braced("", node.body, depth)

    def _expr_stmt(self, node: ExprStmt, depth: int) -> list[str]:
        text = self._expr(node.expr, SEQUENCE)
        if text.startswith(_STATEMENT_START_CONFLICTS):
            text = f"({text})"
        return [f"{INDENT * depth}{text};"]

    def _binding_decl(self, node: BindingDecl, depth: int) -> list[str]:
        pad = INDENT * depth
        if node.reified:
            init = self._expr(node.init, ASSIGN) if node.init is not None else ""
            marker = f"{constants.MARKER_NAME}.{constants.MARKER_BINDING}"
            return [f"{pad}{node.kind} {node.name} = {marker}({init});"]
        if node.init is None:
            return [f"{pad}{node.kind} {node.name};"]
        return [f"{pad}{node.kind} {node.name} = {self._expr(node.init, ASSIGN)};"]

    def _return(self, node: Return, depth: int) -> list[str]:
        pad = INDENT * depth
        if node.value is None:
            return [f"{pad}return;"]
        return [f"{pad}return {self._expr(node.value, SEQUENCE)};"]

    def _nested(self, head: str, body: Node, depth: int) -> list[str]:
        pad = INDENT * depth
        if isinstance(body, Block):
            return self._braced(head, body.body, depth)
        return [f"{pad}{head.rstrip()}", *self._stmt(body, depth + 1)]

    def _if(self, node: If, depth: int) -> list[str]:
        lines = self._nested(f"if ({self._expr(node.test, SEQUENCE)}) ", node.consequent, depth)
        if node.alternate is not None:
            lines.extend(self._nested("else ", node.alternate, depth))
        return lines

    def _while(self, node: While, depth: int) -> list[str]:
        return self._nested(f"while ({self._expr(node.test, SEQUENCE)}) ", node.body, depth)

    def _function(self, node: FunctionDecl, depth: int) -> list[str]:
        prefix = "async " if node.is_async else ""
        star = "*" if node.is_generator else ""
        head = f"{prefix}function{star} {node.name}({', '.join(node.params)}) "
        return self._braced(head, node.body.body, depth)

    def _class(self, node: ClassDecl, depth: int) -> list[str]:
        heritage = (
            f" extends {self._expr(node.superclass, CALL)}"
            if node.superclass is not None
            else ""
        )
        return self._braced(f"class {node.name}{heritage} ", node.body.members, depth)

    def _member_name(self, name: str, is_private: bool) -> str:
        return f"#{name}" if is_private else name

    def _field(self, node: FieldDef, depth: int) -> list[str]:
        static = "static " if node.is_static else ""
        name = self._member_name(node.name, node.is_private)
        value = f" = {self._expr(node.value, ASSIGN)}" if node.value is not None else ""
        return [f"{INDENT * depth}{static}{name}{value};"]

    def _method(self, node: MethodDef, depth: int) -> list[str]:
        static = "static " if node.is_static else ""
        prefix = "async " if node.is_async else ""
        name = self._member_name(node.name, node.is_private)
        head = f"{static}{prefix}{name}({', '.join(node.params)}) "
        return self._braced(head, node.body.body, depth)

    def _static_block(self, node: StaticBlock, depth: int) -> list[str]:
        return self._braced("static ", node.body, depth)

    def _marker_stmt(self, node: SlotExport | SlotImport, depth: int, kind: str) -> list[str]:
        call = f"{constants.MARKER_NAME}.{kind}(this.#{node.field_name});"
        return [f"{INDENT * depth}{call}"]


def render(node: Node) -> str:
    """Render *node* (a statement, program or expression) as JavaScript."""
    return JsRenderer().render(node)
