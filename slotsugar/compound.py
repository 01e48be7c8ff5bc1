"""Compound-access desugaring — read-write occurrences to read/compute/write."""

from __future__ import annotations

import logging

from .extract import AddressingPlan, extract
from .names import TempNameAllocator
from .nodes import (
    Assignment,
    BinaryOp,
    CompoundAssignment,
    Identifier,
    IncDec,
    Node,
    Sequence,
    map_children,
)
from .transform import ScopedTransformer
from . import constants

logger = logging.getLogger(__name__)


class CompoundAccessDesugarer(ScopedTransformer):
    """Splits ``x op= v``, ``x++`` and friends before any reification runs.

    Afterwards every user occurrence is a pure Read or a pure Write:

    * ``t op= v`` → ``(a = …, t' = t' op v)``               value: new value
    * ``t &&= v`` → ``(a = …, t' && (t' = v))``             write only if selected
    * ``++t``     → ``(a = …, n = t', t' = ++n)``           value: new value
    * ``t++``     → ``(a = …, n = t', o = n++, t' = n, o)`` value: old value

    where ``a = …`` are the hoisted addressing temporaries of ``t`` and ``t'``
    its residual. The update itself only ever touches the temporary ``n``.
    Addressing temporaries are bound inline, so an ``await`` in a receiver is
    still evaluated exactly once.
    """

    def __init__(self, allocator: TempNameAllocator):
        super().__init__(allocator)
        self.desugared: int = 0
        self._DISPATCH = {
            CompoundAssignment: self._desugar_compound,
            IncDec: self._desugar_inc_dec,
        }

    def _plan(self, target: Node) -> AddressingPlan:
        target = map_children(target, self._visit)
        plan = extract(target, self._allocator, check_suspension=False)
        self._hoist_names(list(plan.names))
        return plan

    def _desugar_compound(self, node: CompoundAssignment) -> Node:
        plan = self._plan(node.target)
        value = self._visit(node.value)
        read = plan.residual_copy()
        write = plan.residual_copy()
        if node.op in constants.LOGICAL_OPERATORS:
            result: Node = BinaryOp(
                op=node.op,
                left=read,
                right=Assignment(target=write, value=value, loc=node.loc),
                loc=node.loc,
            )
        else:
            result = Assignment(
                target=write,
                value=BinaryOp(op=node.op, left=read, right=value, loc=node.loc),
                loc=node.loc,
            )
        self.desugared += 1
        return _sequence(_bind_temps(plan) + [result], node)

    def _desugar_inc_dec(self, node: IncDec) -> Node:
        plan = self._plan(node.target)
        number = self._hoist(constants.NUMERIC_HINT)
        exprs = _bind_temps(plan)
        exprs.append(
            Assignment(target=Identifier(name=number), value=plan.residual_copy())
        )
        # The host operator does the numeric conversion, BigInt included.
        update = IncDec(
            target=Identifier(name=number),
            op=node.op,
            prefix=node.prefix,
            loc=node.loc,
        )
        if node.prefix:
            exprs.append(
                Assignment(target=plan.residual_copy(), value=update, loc=node.loc)
            )
        else:
            old = self._hoist(constants.OLD_VALUE_HINT)
            exprs.extend(
                [
                    Assignment(target=Identifier(name=old), value=update),
                    Assignment(
                        target=plan.residual_copy(),
                        value=Identifier(name=number),
                        loc=node.loc,
                    ),
                    Identifier(name=old),
                ]
            )
        self.desugared += 1
        return _sequence(exprs, node)


def _bind_temps(plan: AddressingPlan) -> list[Node]:
    return [
        Assignment(target=Identifier(name=name), value=value, loc=value.loc)
        for name, value in plan.temps
    ]


def _sequence(exprs: list[Node], origin: Node) -> Node:
    if len(exprs) == 1:
        return exprs[0]
    return Sequence(exprs=tuple(exprs), loc=origin.loc)
