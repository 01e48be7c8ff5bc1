"""Binding reification — ``let y = slot.binding(init)`` and its occurrences."""

from __future__ import annotations

import logging
from typing import Callable

from .errors import TargetRejected
from .extract import AddressingPlan
from .names import TempNameAllocator
from .nodes import Assignment, BindingDecl, Identifier, Node, Sequence
from .reify import ExpressionReifier, absent, receiverless_call
from .scope import Binding
from . import constants

logger = logging.getLogger(__name__)


class BindingReifier:
    """Replaces a reified declaration with a hidden constant holding a slot.

    The slot wraps a private mutable cell (an arrow parameter initialised to
    the declaration's initializer). Reads of the original name become
    ``(0, hidden.peek)()``; writes become a poke that still yields the
    assigned value.
    """

    def __init__(
        self,
        allocator: TempNameAllocator,
        reifier: ExpressionReifier,
        hoist: Callable[[str], str],
    ):
        self._allocator = allocator
        self._reifier = reifier
        self._hoist = hoist
        self._hidden: dict[str, str] = {}

    def hidden_name(self, binding: Binding) -> str:
        if binding.uid not in self._hidden:
            self._hidden[binding.uid] = self._allocator.fresh(binding.name)
        return self._hidden[binding.uid]

    def declare(self, node: BindingDecl, binding: Binding, init: Node | None) -> BindingDecl:
        hidden = self.hidden_name(binding)
        cell = self._allocator.fresh(constants.CELL_HINT)
        plan = AddressingPlan(
            temps=((cell, init if init is not None else absent()),),
            residual=Identifier(name=cell),
        )
        slot = self._reifier.reify(plan, writable=True, loc=node.loc)
        logger.debug("Reified binding %s as %s", binding.uid, hidden)
        return BindingDecl(kind="const", name=hidden, init=slot, loc=node.loc)

    def read(self, binding: Binding, node: Identifier) -> Node:
        return receiverless_call(
            Identifier(name=self.hidden_name(binding)), constants.PEEK, loc=node.loc
        )

    def write(self, binding: Binding, value: Node, node: Assignment) -> Node:
        if not binding.mutable:
            raise TargetRejected.malformed(
                f"assignment to constant reified binding '{binding.name}'", node
            )
        assigned = self._hoist(constants.ASSIGNED_HINT)
        poke = receiverless_call(
            Identifier(name=self.hidden_name(binding)),
            constants.POKE,
            (Identifier(name=assigned),),
        )
        return Sequence(
            exprs=(
                Assignment(target=Identifier(name=assigned), value=value),
                poke,
                Identifier(name=assigned),
            ),
            loc=node.loc,
        )

    def capture(self, binding: Binding, node: Node) -> Identifier:
        """The hidden slot itself, for a marker applied to a reified name."""
        return Identifier(name=self.hidden_name(binding), loc=node.loc)
