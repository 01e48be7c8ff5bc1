"""Rewrite engine — compound desugaring, scope resolution, slot rewriting."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .binding import BindingReifier
from .compound import CompoundAccessDesugarer
from .errors import (
    OutputInvariantError,
    RewriteResult,
    TargetRejected,
    dedupe,
)
from .extract import extract
from .friend import FriendSlotGenerator
from .names import TempNameAllocator, is_reserved
from .nodes import (
    AccessorShape,
    Arrow,
    Assignment,
    BindingDecl,
    Call,
    ClassDecl,
    CompoundAssignment,
    Identifier,
    IncDec,
    MARKER_NODES,
    MemberAccess,
    Node,
    PrivateFieldRef,
    Program,
    SlotExport,
    SlotImport,
    This,
    UnaryReify,
    UnaryReifyUnbound,
    map_children,
    walk,
)
from .reify import ExpressionReifier
from .scope import Access, ResolvedUnit, ScopeResolver, reserved_name_rejections
from .transform import ScopedTransformer
from . import constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Groups rewrite configuration."""

    lock_slots: bool = True


@dataclass
class RewriteStats:
    """Counters and stage timings of one rewrite."""

    compound_desugared: int = 0
    bindings_resolved: int = 0
    reified_bindings: int = 0
    slots_built: int = 0
    temporaries: int = 0
    rejections: int = 0

    desugar_time: float = 0.0
    resolve_time: float = 0.0
    rewrite_time: float = 0.0

    def report(self) -> str:
        lines = [
            "═══ Rewrite Statistics ═══",
            f"  compound accesses desugared: {self.compound_desugared}",
            f"  bindings resolved:           {self.bindings_resolved}",
            f"  reified bindings:            {self.reified_bindings}",
            f"  slots built:                 {self.slots_built}",
            f"  temporaries issued:          {self.temporaries}",
            f"  rejections:                  {self.rejections}",
            "",
            f"  desugar: {self.desugar_time * 1000:.1f}ms"
            f"  resolve: {self.resolve_time * 1000:.1f}ms"
            f"  rewrite: {self.rewrite_time * 1000:.1f}ms",
        ]
        return "\n".join(lines)


class SlotRewriter(ScopedTransformer):
    """Replaces markers and reified-binding occurrences with slot code.

    Runs on the desugared tree the resolver annotated; occurrences are looked
    up by node identity, so the tree must be exactly the one resolved.
    """

    def __init__(
        self,
        allocator: TempNameAllocator,
        unit: ResolvedUnit,
        reifier: ExpressionReifier,
    ):
        super().__init__(allocator)
        self._unit = unit
        self._reifier = reifier
        self.bindings = BindingReifier(allocator, reifier, self._hoist)
        self.friends = FriendSlotGenerator(allocator, reifier, self._hoist)
        self._DISPATCH: dict[type[Node], Callable] = {
            Identifier: self._rewrite_identifier,
            Assignment: self._rewrite_assignment,
            BindingDecl: self._rewrite_binding_decl,
            UnaryReify: self._rewrite_reify,
            UnaryReifyUnbound: self._rewrite_reify_unbound,
            PrivateFieldRef: self._rewrite_private,
            Call: self._rewrite_call,
            ClassDecl: self._rewrite_class,
            SlotExport: self._rewrite_export,
            SlotImport: self._rewrite_import,
        }

    # ── reified bindings ─────────────────────────────────────────

    def _rewrite_identifier(self, node: Identifier) -> Node:
        occurrence = self._unit.occurrence(node)
        if occurrence is None or not occurrence.binding.reified:
            return node
        if occurrence.access is Access.READ_WRITE:
            raise TargetRejected.malformed(
                f"ambiguous use of reified binding '{node.name}'", node
            )
        return self.bindings.read(occurrence.binding, node)

    def _rewrite_assignment(self, node: Assignment) -> Node:
        target = node.target
        if isinstance(target, Identifier):
            occurrence = self._unit.occurrence(target)
            if occurrence is not None and occurrence.binding.reified:
                return self.bindings.write(
                    occurrence.binding, self._visit(node.value), node
                )
            return node.model_copy(update={"value": self._visit(node.value)})
        if isinstance(target, PrivateFieldRef):
            private = self._unit.private(target)
            if private is not None and private.imported:
                receiver = self._receiver_of(target)
                return self.friends.imported_write(
                    private, receiver, self._visit(node.value), node
                )
            target = self._keep_private(target)
            return node.model_copy(
                update={"target": target, "value": self._visit(node.value)}
            )
        return map_children(node, self._visit)

    def _rewrite_binding_decl(self, node: BindingDecl) -> Node:
        init = self._visit(node.init) if node.init is not None else None
        binding = self._unit.declared(node)
        if not node.reified or binding is None:
            return node.model_copy(update={"init": init})
        if node.kind not in constants.LEXICAL_KINDS:
            return node
        return self.bindings.declare(node, binding, init)

    # ── markers ──────────────────────────────────────────────────

    def _rewrite_reify(self, node: UnaryReify) -> Node:
        operand = node.operand
        if isinstance(operand, Identifier):
            occurrence = self._unit.occurrence(operand)
            if occurrence is not None and occurrence.binding.reified:
                return self.bindings.capture(occurrence.binding, node)
            writable = occurrence is None or occurrence.binding.mutable
            return self._reifier.reify(
                extract(operand, self._allocator), writable=writable, loc=node.loc
            )
        if isinstance(operand, PrivateFieldRef):
            private = self._unit.private(operand)
            if private is None:
                return node
            return self.friends.bound(self._keep_private(operand), private)
        if isinstance(operand, MemberAccess):
            operand = map_children(operand, self._visit)
        return self._reifier.reify(extract(operand, self._allocator), loc=node.loc)

    def _rewrite_reify_unbound(self, node: UnaryReifyUnbound) -> Node:
        operand = node.operand
        private = self._unit.private(operand)
        if private is None:
            if not isinstance(operand, PrivateFieldRef):
                raise TargetRejected.malformed(
                    "the unbound marker applies only to private fields", operand
                )
            return node
        return self.friends.unbound(operand, private)

    # ── private names ────────────────────────────────────────────

    def _receiver_of(self, node: PrivateFieldRef) -> Node:
        if node.receiver is None:
            raise TargetRejected.malformed(
                f"bare private name '#{node.field_name}' has no receiver", node
            )
        return self._visit(node.receiver)

    def _keep_private(self, node: PrivateFieldRef) -> PrivateFieldRef:
        if node.receiver is None:
            return node
        return node.model_copy(update={"receiver": self._visit(node.receiver)})

    def _rewrite_private(self, node: PrivateFieldRef) -> Node:
        private = self._unit.private(node)
        if private is not None and private.imported:
            return self.friends.imported_read(private, self._receiver_of(node), node)
        return self._keep_private(node)

    def _rewrite_call(self, node: Call) -> Node:
        callee = node.callee
        if isinstance(callee, PrivateFieldRef):
            private = self._unit.private(callee)
            if private is not None and private.imported:
                receiver = self._receiver_of(callee)
                args = tuple(self._visit(arg) for arg in node.args)
                return self.friends.imported_call(private, receiver, args, node)
        return map_children(node, self._visit)

    # ── classes ──────────────────────────────────────────────────

    def _rewrite_class(self, node: ClassDecl):
        rewritten = map_children(node, self._visit)
        info = self._unit.class_info(node)
        if info is None or not info.exports:
            return rewritten
        return self.friends.export_declarations(info) + (rewritten,)

    def _rewrite_export(self, node: SlotExport) -> Node:
        private = self._unit.private(node)
        if private is None:
            return node
        return self.friends.export_statement(node, private)

    def _rewrite_import(self, node: SlotImport) -> tuple[Node, ...]:
        return ()


class RewriteEngine:
    """Runs every pass over one compilation unit.

    The result is all-or-nothing: a unit with any rejection yields no tree.
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self.stats = RewriteStats()

    def rewrite(self, program: Program) -> RewriteResult:
        self.stats = RewriteStats()
        reserved = reserved_name_rejections(program)
        if reserved:
            logger.warning("Rejected %d reserved-prefix identifiers", len(reserved))

        allocator = TempNameAllocator()

        t0 = time.perf_counter()
        desugarer = CompoundAccessDesugarer(allocator)
        desugared = desugarer.transform(program)
        self.stats.desugar_time = time.perf_counter() - t0
        self.stats.compound_desugared = desugarer.desugared

        t0 = time.perf_counter()
        unit = ScopeResolver().resolve(desugared)
        self.stats.resolve_time = time.perf_counter() - t0
        self.stats.bindings_resolved = len(unit.bindings)
        self.stats.reified_bindings = len(unit.reified_bindings)

        freeze_name = (
            allocator.fresh(constants.FREEZE_HINT) if self.config.lock_slots else None
        )
        reifier = ExpressionReifier(allocator, freeze_name)
        rewriter = SlotRewriter(allocator, unit, reifier)
        t0 = time.perf_counter()
        rewritten = rewriter.transform(desugared)
        self.stats.rewrite_time = time.perf_counter() - t0
        self.stats.slots_built = reifier.slots_built
        self.stats.temporaries = len(allocator.issued)

        rejections = dedupe(
            reserved + desugarer.rejections + unit.rejections + rewriter.rejections
        )
        self.stats.rejections = len(rejections)
        if rejections:
            logger.warning("Rewrite rejected with %d problems", len(rejections))
            for rejection in rejections:
                logger.debug("  %s", rejection)
            return RewriteResult.rejected(rejections)

        if freeze_name is not None and reifier.slots_built:
            rewritten = rewritten.model_copy(
                update={"body": (_freeze_alias(freeze_name),) + rewritten.body}
            )
        verify_output(rewritten, allocator.issued)
        logger.info(
            "Rewrote unit: %d slots, %d temporaries",
            reifier.slots_built,
            len(allocator.issued),
        )
        return RewriteResult.success(rewritten)


def _freeze_alias(name: str) -> BindingDecl:
    """``const <name> = Object.freeze;`` captured before user code runs."""
    return BindingDecl(
        kind="const",
        name=name,
        init=MemberAccess(
            object=Identifier(name=constants.FREEZE_OWNER),
            key=Identifier(name=constants.FREEZE_METHOD),
        ),
    )


def _updates_temporary(node: IncDec, allowed: frozenset[str]) -> bool:
    return isinstance(node.target, Identifier) and node.target.name in allowed


def verify_output(tree: Program, issued: tuple[str, ...] = ()):
    """Check the structural guarantees of a rewritten tree.

    * no marker, compound assignment or reified declaration survives, and
      update expressions only touch issued temporaries;
    * accessor bodies never mention ``this``;
    * unbound accessors take their receiver explicitly;
    * every reserved-prefix name was issued by the unit's allocator.

    Raises ``OutputInvariantError`` on the first violation.
    """
    allowed = frozenset(issued)
    for node in walk(tree):
        if isinstance(node, MARKER_NODES + (CompoundAssignment,)) or (
            isinstance(node, IncDec) and not _updates_temporary(node, allowed)
        ):
            raise OutputInvariantError(
                f"{type(node).__name__} survived rewriting at {node.loc}"
            )
        if isinstance(node, BindingDecl) and node.reified:
            raise OutputInvariantError(
                f"reified declaration of '{node.name}' survived at {node.loc}"
            )
        if isinstance(node, Arrow) and node.shape is not None:
            if any(isinstance(inner, This) for inner in walk(node.body)):
                raise OutputInvariantError(
                    f"accessor at {node.loc} depends on an ambient receiver"
                )
            if node.shape is AccessorShape.UNBOUND and not node.params:
                raise OutputInvariantError(
                    f"unbound accessor at {node.loc} takes no receiver"
                )
        name = getattr(node, "name", None)
        if isinstance(name, str) and is_reserved(name) and name not in allowed:
            raise OutputInvariantError(f"unissued reserved name '{name}'")
