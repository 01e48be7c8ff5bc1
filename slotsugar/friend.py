"""Friend/protected slots over private class fields.

Two accessor shapes exist:

* BOUND — ``slot(expr.#f)``: the receiver is hoisted and closed over. The
  slot reaches exactly one instance.
* UNBOUND — ``slot.unbound(this.#f)``: the receiver is *not* hoisted;
  ``peek(obj)`` and ``poke(obj, v)`` take it explicitly. Anyone holding the
  slot reaches the field on *every* instance of the declaring class. This is
  a per-class guarantee, strictly weaker than private-field protection, and
  handing the slot out is a deliberate widening of access.

Export/import: ``slot.export(this.#f)`` in a static block makes the class build
its unbound slot at that point of static initialisation and store it in a
hidden variable declared beside the class. A subclass declaring
``slot.import(this.#f)`` then reads and writes ``obj.#f`` through that slot.
"""

from __future__ import annotations

import logging
from typing import Callable

from .errors import TargetRejected
from .extract import extract
from .names import TempNameAllocator
from .nodes import (
    AccessorShape,
    Assignment,
    BindingDecl,
    Call,
    ExprStmt,
    Identifier,
    MemberAccess,
    Node,
    PrivateFieldRef,
    Sequence,
    SlotExport,
    This,
)
from .reify import ExpressionReifier, receiverless_call
from .scope import ClassInfo, PrivateName
from . import constants

logger = logging.getLogger(__name__)


class FriendSlotGenerator:
    def __init__(
        self,
        allocator: TempNameAllocator,
        reifier: ExpressionReifier,
        hoist: Callable[[str], str],
    ):
        self._allocator = allocator
        self._reifier = reifier
        self._hoist = hoist
        self._exports: dict[tuple[str, str], str] = {}

    def export_name(self, private: PrivateName) -> str:
        key = (private.owner.uid, private.name)
        if key not in self._exports:
            self._exports[key] = self._allocator.fresh(
                f"{private.owner.name}_{private.name}"
            )
        return self._exports[key]

    # ── shapes ───────────────────────────────────────────────────

    def bound(self, operand: PrivateFieldRef, private: PrivateName) -> Node:
        plan = extract(operand, self._allocator)
        if not private.imported:
            return self._reifier.reify(plan, writable=private.writable, loc=operand.loc)
        shared = self.export_name(private)
        return self._reifier.reify(
            plan,
            writable=private.writable,
            reader=lambda residual: receiverless_call(
                Identifier(name=shared), constants.PEEK, (residual.receiver,)
            ),
            writer=lambda residual, value: receiverless_call(
                Identifier(name=shared), constants.POKE, (residual.receiver, value)
            ),
            loc=operand.loc,
        )

    def unbound(self, operand: Node, private: PrivateName) -> Node:
        if not isinstance(operand, PrivateFieldRef):
            raise TargetRejected.malformed(
                "the unbound marker applies only to private fields", operand
            )
        if private.imported:
            return Identifier(name=self.export_name(private), loc=operand.loc)
        receiver = self._allocator.fresh(constants.TARGET_HINT)
        plan = extract(operand, self._allocator, receiver_param=receiver)
        return self._reifier.reify(
            plan,
            writable=private.writable,
            shape=AccessorShape.UNBOUND,
            loc=operand.loc,
        )

    # ── export / import protocol ─────────────────────────────────

    def export_statement(self, node: SlotExport, private: PrivateName) -> ExprStmt:
        slot = self.unbound(
            PrivateFieldRef(receiver=This(), field_name=node.field_name, loc=node.loc),
            private,
        )
        store = Assignment(target=Identifier(name=self.export_name(private)), value=slot)
        logger.info(
            "Exporting #%s of %s as %s",
            private.name,
            private.owner.name,
            self.export_name(private),
        )
        return ExprStmt(expr=store, loc=node.loc)

    def export_declarations(self, info: ClassInfo) -> tuple[BindingDecl, ...]:
        return tuple(
            BindingDecl(
                kind="let",
                name=self.export_name(PrivateName(owner=info.binding, name=name)),
                loc=info.decl.loc,
            )
            for name in sorted(info.exports)
        )

    def imported_read(
        self, private: PrivateName, receiver: Node, node: PrivateFieldRef
    ) -> Node:
        return receiverless_call(
            Identifier(name=self.export_name(private)),
            constants.PEEK,
            (receiver,),
            loc=node.loc,
        )

    def imported_write(
        self, private: PrivateName, receiver: Node, value: Node, node: Assignment
    ) -> Node:
        if not private.writable:
            raise TargetRejected.malformed(
                f"private method '#{private.name}' is not assignable", node
            )
        target = self._hoist(constants.RECEIVER_HINT)
        assigned = self._hoist(constants.ASSIGNED_HINT)
        poke = receiverless_call(
            Identifier(name=self.export_name(private)),
            constants.POKE,
            (Identifier(name=target), Identifier(name=assigned)),
        )
        return Sequence(
            exprs=(
                Assignment(target=Identifier(name=target), value=receiver),
                Assignment(target=Identifier(name=assigned), value=value),
                poke,
                Identifier(name=assigned),
            ),
            loc=node.loc,
        )

    def imported_call(
        self, private: PrivateName, receiver: Node, args: tuple[Node, ...], node: Call
    ) -> Node:
        """``recv.#m(...)`` through an imported slot keeps ``recv`` as receiver."""
        target = self._hoist(constants.RECEIVER_HINT)
        method = self.imported_read(private, Identifier(name=target), node.callee)
        call = Call(
            callee=MemberAccess(object=method, key=Identifier(name="call")),
            args=(Identifier(name=target),) + args,
            loc=node.loc,
        )
        return Sequence(
            exprs=(Assignment(target=Identifier(name=target), value=receiver), call),
            loc=node.loc,
        )
