"""Expression reification — building SlotDescriptor records from a plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .extract import AddressingPlan
from .names import TempNameAllocator
from .nodes import (
    AccessorShape,
    Arrow,
    Assignment,
    Block,
    Call,
    ExprStmt,
    Identifier,
    Literal,
    MemberAccess,
    Node,
    ObjectLiteral,
    Property,
    Sequence,
    SourceLocation,
    NO_SOURCE_LOCATION,
    UnaryOp,
)
from . import constants

logger = logging.getLogger(__name__)

Reader = Callable[[Node], Node]
Writer = Callable[[Node, Node], Node]


def absent() -> Node:
    """The absent-capability marker (``void 0``, immune to shadowing)."""
    return UnaryOp(op="void", operand=Literal(value=0))


def receiverless_call(
    slot: Node,
    capability: str,
    args: tuple[Node, ...] = (),
    loc: SourceLocation = NO_SOURCE_LOCATION,
) -> Call:
    """``(0, slot.capability)(...args)`` — invoked with no ambient receiver."""
    callee = Sequence(
        exprs=(
            Literal(value=0),
            MemberAccess(object=slot, key=Identifier(name=capability)),
        )
    )
    return Call(callee=callee, args=args, loc=loc)


@dataclass
class SlotDescriptor:
    """An open capability record; ``peek``/``poke`` plus any extensions."""

    peek: Node
    poke: Node
    extras: dict[str, Node] = field(default_factory=dict)

    def to_record(self, freeze_name: str | None, loc: SourceLocation) -> Node:
        entries = [
            Property(key=constants.PEEK, value=self.peek),
            Property(key=constants.POKE, value=self.poke),
        ]
        entries.extend(Property(key=k, value=v) for k, v in self.extras.items())
        record = ObjectLiteral(entries=tuple(entries), loc=loc)
        if freeze_name is None:
            return record
        return Call(callee=Identifier(name=freeze_name), args=(record,), loc=loc)


class ExpressionReifier:
    """Turns an AddressingPlan into an expression yielding a locked slot.

    Addressing temporaries become parameters of an immediately-invoked arrow,
    so each evaluation of the marker produces a slot closed over its own
    temporaries.
    """

    def __init__(self, allocator: TempNameAllocator, freeze_name: str | None = None):
        self._allocator = allocator
        self._freeze_name = freeze_name
        self.slots_built: int = 0

    def reify(
        self,
        plan: AddressingPlan,
        *,
        writable: bool = True,
        shape: AccessorShape = AccessorShape.BOUND,
        reader: Reader | None = None,
        writer: Writer | None = None,
        loc: SourceLocation = NO_SOURCE_LOCATION,
    ) -> Node:
        descriptor = self.descriptor(
            plan, writable=writable, shape=shape, reader=reader, writer=writer
        )
        record = descriptor.to_record(self._freeze_name, loc)
        self.slots_built += 1
        logger.debug(
            "Built %s slot (%d temporaries, writable=%s)",
            shape.value,
            len(plan.temps),
            writable,
        )
        if not plan.temps:
            return record
        return Call(
            callee=Arrow(params=plan.names, body=record),
            args=plan.values,
            loc=loc,
        )

    def descriptor(
        self,
        plan: AddressingPlan,
        *,
        writable: bool = True,
        shape: AccessorShape = AccessorShape.BOUND,
        reader: Reader | None = None,
        writer: Writer | None = None,
    ) -> SlotDescriptor:
        receiver: tuple[str, ...] = ()
        if shape is AccessorShape.UNBOUND:
            receiver = (plan.receiver_param,)
        read = plan.residual_copy()
        peek = Arrow(
            params=receiver,
            body=reader(read) if reader is not None else read,
            shape=shape,
        )
        if not writable:
            return SlotDescriptor(peek=peek, poke=absent())
        value = self._allocator.fresh(constants.VALUE_HINT)
        target = plan.residual_copy()
        store = (
            writer(target, Identifier(name=value))
            if writer is not None
            else Assignment(target=target, value=Identifier(name=value))
        )
        poke = Arrow(
            params=receiver + (value,),
            body=Block(body=(ExprStmt(expr=store),)),
            shape=shape,
        )
        return SlotDescriptor(peek=peek, poke=poke)
