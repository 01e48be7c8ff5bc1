"""ScopedTransformer — bottom-up tree rebuilding with hoisted temporaries."""

from __future__ import annotations

import logging
from typing import Callable

from .errors import Rejection, TargetRejected
from .names import TempNameAllocator
from .nodes import (
    Arrow,
    BindingDecl,
    Block,
    Call,
    ClassBody,
    FieldDef,
    FunctionDecl,
    If,
    MethodDef,
    Node,
    Program,
    Return,
    StaticBlock,
    While,
    map_children,
)

logger = logging.getLogger(__name__)


class ScopedTransformer:
    """Base class for rewrite passes.

    Subclasses populate ``_DISPATCH`` with handlers keyed by node class. Every
    handler receives the original node and returns its replacement; in a
    statement list a handler may return a tuple to splice several statements.

    Temporaries requested through ``_hoist`` are declared with ``let`` at the
    top of the nearest program, function, method, static block or field
    initializer. A ``TargetRejected`` raised while visiting a statement or
    class member is collected and the original statement is kept, so one pass
    reports every rejection in the unit.
    """

    def __init__(self, allocator: TempNameAllocator):
        self._allocator = allocator
        self._hoisted: list[list[str]] = []
        self.rejections: list[Rejection] = []
        self._DISPATCH: dict[type[Node], Callable] = {}

    # ── entry point ──────────────────────────────────────────────

    def transform(self, program: Program) -> Program:
        self.rejections = []
        self._hoisted = []
        return self._visit(program)

    # ── helpers ──────────────────────────────────────────────────

    def _hoist(self, hint: str) -> str:
        name = self._allocator.fresh(hint)
        self._hoisted[-1].append(name)
        return name

    def _hoist_names(self, names: list[str]):
        self._hoisted[-1].extend(names)

    def _collect(self, rejection: Rejection):
        logger.debug("%s collected: %s", type(self).__name__, rejection)
        self.rejections.append(rejection)

    # ── dispatchers ──────────────────────────────────────────────

    def _visit(self, node: Node):
        handler = self._DISPATCH.get(type(node))
        if handler is not None:
            return handler(node)
        return self._visit_default(node)

    def _visit_stmt(self, node: Node) -> Node:
        """Visit a statement outside a statement list; splices become a Block."""
        result = self._visit(node)
        if isinstance(result, tuple):
            return Block(body=result, loc=node.loc)
        return result

    def _visit_statements(self, stmts: tuple[Node, ...]) -> tuple[Node, ...]:
        out: list[Node] = []
        for stmt in stmts:
            try:
                result = self._visit(stmt)
            except TargetRejected as exc:
                self._collect(exc.rejection)
                result = stmt
            out.extend(result if isinstance(result, tuple) else (result,))
        return tuple(out)

    def _scoped_body(self, stmts: tuple[Node, ...]) -> tuple[Node, ...]:
        self._hoisted.append([])
        try:
            body = self._visit_statements(stmts)
        finally:
            temps = self._hoisted.pop()
        return _temp_declarations(temps) + body

    def _scoped_expr(self, expr: Node) -> tuple[Node, list[str]]:
        self._hoisted.append([])
        try:
            result = self._visit(expr)
        finally:
            temps = self._hoisted.pop()
        return result, temps

    def _visit_default(self, node: Node):
        if isinstance(node, Program):
            return node.model_copy(update={"body": self._scoped_body(node.body)})
        if isinstance(node, (FunctionDecl, MethodDef)):
            body = Block(body=self._scoped_body(node.body.body), loc=node.body.loc)
            return node.model_copy(update={"body": body})
        if isinstance(node, StaticBlock):
            return node.model_copy(update={"body": self._scoped_body(node.body)})
        if isinstance(node, Arrow):
            return self._visit_arrow(node)
        if isinstance(node, FieldDef):
            return self._visit_field(node)
        if isinstance(node, Block):
            return node.model_copy(update={"body": self._visit_statements(node.body)})
        if isinstance(node, ClassBody):
            members = self._visit_statements(node.members)
            return node.model_copy(update={"members": members})
        if isinstance(node, If):
            return node.model_copy(
                update={
                    "test": self._visit(node.test),
                    "consequent": self._visit_stmt(node.consequent),
                    "alternate": (
                        self._visit_stmt(node.alternate)
                        if node.alternate is not None
                        else None
                    ),
                }
            )
        if isinstance(node, While):
            return node.model_copy(
                update={
                    "test": self._visit(node.test),
                    "body": self._visit_stmt(node.body),
                }
            )
        return map_children(node, self._visit)

    def _visit_arrow(self, node: Arrow) -> Arrow:
        if isinstance(node.body, Block):
            body = Block(body=self._scoped_body(node.body.body), loc=node.body.loc)
            return node.model_copy(update={"body": body})
        expr, temps = self._scoped_expr(node.body)
        if not temps:
            return node.model_copy(update={"body": expr})
        body = Block(
            body=_temp_declarations(temps) + (Return(value=expr, loc=expr.loc),),
            loc=node.body.loc,
        )
        return node.model_copy(update={"body": body})

    def _visit_field(self, node: FieldDef) -> FieldDef:
        if node.value is None:
            return node
        expr, temps = self._scoped_expr(node.value)
        if temps:
            # Field initializers have no statement list; give them one.
            expr = Call(
                callee=Arrow(
                    body=Block(
                        body=_temp_declarations(temps)
                        + (Return(value=expr, loc=expr.loc),)
                    )
                ),
                loc=expr.loc,
            )
        return node.model_copy(update={"value": expr})


def _temp_declarations(names: list[str]) -> tuple[Node, ...]:
    return tuple(BindingDecl(kind="let", name=name) for name in names)
