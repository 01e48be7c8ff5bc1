"""Addressing-subexpression extraction.

An assignable expression is split into the subexpressions that decide *which*
location it denotes (receivers, computed keys) and a residual location that
mentions only temporaries. The temporaries are evaluated once, left to right,
before any accessor runs; the residual may then be read or written any number
of times without re-running a side effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import TargetRejected
from .names import TempNameAllocator
from .nodes import (
    FUNCTION_NODES,
    Await,
    Identifier,
    Literal,
    MemberAccess,
    Node,
    PrivateFieldRef,
    This,
    Yield,
    fresh_copy,
    walk,
)
from . import constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressingPlan:
    """Ordered once-evaluated temporaries plus a residual location."""

    temps: tuple[tuple[str, Node], ...]
    residual: Node
    receiver_param: str | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.temps)

    @property
    def values(self) -> tuple[Node, ...]:
        return tuple(value for _, value in self.temps)

    def residual_copy(self) -> Node:
        return fresh_copy(self.residual)


def extract(
    target: Node,
    allocator: TempNameAllocator,
    *,
    receiver_param: str | None = None,
    check_suspension: bool = True,
) -> AddressingPlan:
    """Build the addressing plan for *target*.

    With ``receiver_param`` the implicit receiver of a private field reference
    is not hoisted; the residual addresses the named parameter instead.

    Raises ``TargetRejected`` for non-assignable shapes and, unless
    ``check_suspension`` is false, for addressing subexpressions containing a
    suspension point. Only temporaries captured by a slot need the check;
    temporaries bound inline in the enclosing body do not.
    """
    if isinstance(target, Identifier):
        if receiver_param is not None:
            raise TargetRejected.malformed(
                "the unbound marker applies only to private fields", target
            )
        return AddressingPlan(temps=(), residual=fresh_copy(target))
    if isinstance(target, MemberAccess):
        if receiver_param is not None:
            raise TargetRejected.malformed(
                "the unbound marker applies only to private fields", target
            )
        return _extract_member(target, allocator, check_suspension)
    if isinstance(target, PrivateFieldRef):
        if receiver_param is not None:
            return _unbound_private(target, receiver_param)
        return _extract_private(target, allocator, check_suspension)
    raise TargetRejected.malformed(
        f"{type(target).__name__} is not an assignable expression", target
    )


def _extract_member(
    target: MemberAccess, allocator: TempNameAllocator, check_suspension: bool
) -> AddressingPlan:
    temps: list[tuple[str, Node]] = []
    receiver = _hoist(
        target.object, constants.RECEIVER_HINT, allocator, temps, check_suspension
    )
    key = fresh_copy(target.key)
    if target.computed and not isinstance(target.key, Literal):
        key = _hoist(
            target.key, constants.KEY_HINT, allocator, temps, check_suspension
        )
    residual = MemberAccess(
        object=receiver, key=key, computed=target.computed, loc=target.loc
    )
    logger.debug("Member target hoisted %d temporaries", len(temps))
    return AddressingPlan(temps=tuple(temps), residual=residual)


def _extract_private(
    target: PrivateFieldRef, allocator: TempNameAllocator, check_suspension: bool
) -> AddressingPlan:
    if target.receiver is None:
        raise TargetRejected.malformed(
            f"bare private name '#{target.field_name}' needs the unbound marker", target
        )
    temps: list[tuple[str, Node]] = []
    receiver = _hoist(
        target.receiver, constants.RECEIVER_HINT, allocator, temps, check_suspension
    )
    residual = PrivateFieldRef(
        receiver=receiver, field_name=target.field_name, loc=target.loc
    )
    return AddressingPlan(temps=tuple(temps), residual=residual)


def _unbound_private(target: PrivateFieldRef, receiver_param: str) -> AddressingPlan:
    if target.receiver is not None and not isinstance(target.receiver, This):
        raise TargetRejected.malformed(
            "the unbound marker takes 'this.#field' or a bare private name", target
        )
    residual = PrivateFieldRef(
        receiver=Identifier(name=receiver_param),
        field_name=target.field_name,
        loc=target.loc,
    )
    return AddressingPlan(temps=(), residual=residual, receiver_param=receiver_param)


def _hoist(
    expr: Node,
    hint: str,
    allocator: TempNameAllocator,
    temps: list[tuple[str, Node]],
    check_suspension: bool,
) -> Identifier:
    if check_suspension:
        _check_no_suspension(expr)
    name = allocator.fresh(hint)
    temps.append((name, expr))
    return Identifier(name=name, loc=expr.loc)


def _check_no_suspension(expr: Node):
    if isinstance(expr, FUNCTION_NODES):
        return
    for node in walk(expr, into_functions=False):
        if isinstance(node, (Await, Yield)):
            raise TargetRejected.unsafe(
                f"'{type(node).__name__.lower()}' inside an addressing subexpression "
                "would break once-only evaluation",
                node,
            )
