"""Static scope resolution — bindings and Read/Write/ReadWrite occurrences."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .errors import Rejection, malformed
from .names import is_reserved
from .nodes import (
    Arrow,
    Assignment,
    BindingDecl,
    Block,
    Call,
    ClassDecl,
    CompoundAssignment,
    FieldDef,
    FunctionDecl,
    Identifier,
    If,
    IncDec,
    MemberAccess,
    MethodDef,
    Node,
    PrivateFieldRef,
    Program,
    StaticBlock,
    UnaryOp,
    UnaryReify,
    While,
    iter_children,
    walk,
)
from . import constants

logger = logging.getLogger(__name__)


class Access(str, Enum):
    READ = "read"
    WRITE = "write"
    READ_WRITE = "read_write"


@dataclass(eq=False)
class Binding:
    """A declared name; identity is the ``uid``, never the spelling."""

    name: str
    kind: str  # let, const, var, param, function, class, global
    uid: str
    decl: Node | None = None
    reified: bool = False

    @property
    def mutable(self) -> bool:
        return self.kind not in constants.IMMUTABLE_KINDS

    @property
    def is_global(self) -> bool:
        return self.kind == "global"

    def __repr__(self) -> str:
        return f"Binding({self.uid}, {self.kind})"


@dataclass(frozen=True)
class Occurrence:
    binding: Binding
    access: Access
    node: Identifier


@dataclass(frozen=True)
class PrivateName:
    """A private field name resolved to the class that declares its storage."""

    owner: Binding
    name: str
    imported: bool = False
    writable: bool = True


@dataclass
class ClassInfo:
    binding: Binding
    decl: ClassDecl
    exports: frozenset[str] = frozenset()
    imports: frozenset[str] = frozenset()


@dataclass(eq=False)
class Scope:
    kind: str  # program, function, block, class
    parent: Scope | None = None
    names: dict[str, Binding] = field(default_factory=dict)
    privates: dict[str, PrivateName] = field(default_factory=dict)
    dynamic: bool = False

    def lookup(self, name: str) -> Binding | None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.names:
                return scope.names[name]
            scope = scope.parent
        return None

    def lookup_private(self, name: str) -> PrivateName | None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.privates:
                return scope.privates[name]
            scope = scope.parent
        return None

    def function_scope(self) -> Scope:
        scope = self
        while scope.kind not in ("program", "function") and scope.parent is not None:
            scope = scope.parent
        return scope


@dataclass
class ResolvedUnit:
    """Complete static resolution of one compilation unit."""

    tree: Program
    bindings: list[Binding] = field(default_factory=list)
    occurrences: dict[int, Occurrence] = field(default_factory=dict)
    declarations: dict[int, Binding] = field(default_factory=dict)
    private_refs: dict[int, PrivateName] = field(default_factory=dict)
    classes: dict[int, ClassInfo] = field(default_factory=dict)
    rejections: list[Rejection] = field(default_factory=list)

    def occurrence(self, node: Identifier) -> Occurrence | None:
        return self.occurrences.get(id(node))

    def declared(self, node: Node) -> Binding | None:
        return self.declarations.get(id(node))

    def private(self, node: Node) -> PrivateName | None:
        return self.private_refs.get(id(node))

    def class_info(self, node: ClassDecl) -> ClassInfo | None:
        return self.classes.get(id(node))

    @property
    def reified_bindings(self) -> list[Binding]:
        return [b for b in self.bindings if b.reified]


class ScopeResolver:
    """Resolves every identifier occurrence of a unit in one static pass."""

    def __init__(self):
        self._uid_counter: int = 0
        self._unit: ResolvedUnit | None = None
        self._globals: dict[str, Binding] = {}
        self._binding_scopes: dict[str, Scope] = {}
        self._scope: Scope = Scope("program")
        self._DISPATCH: dict[type[Node], Callable] = {
            Program: self._resolve_program,
            Block: self._resolve_block,
            BindingDecl: self._resolve_binding_decl,
            FunctionDecl: self._resolve_function_decl,
            Arrow: self._resolve_arrow,
            ClassDecl: self._resolve_class,
            Identifier: self._resolve_identifier,
            Assignment: self._resolve_assignment,
            CompoundAssignment: self._resolve_read_write_target,
            IncDec: self._resolve_read_write_target,
            UnaryReify: self._resolve_read_write_target,
            UnaryOp: self._resolve_unary,
            MemberAccess: self._resolve_member,
            PrivateFieldRef: self._resolve_private,
            Call: self._resolve_call,
        }

    # ── entry point ──────────────────────────────────────────────

    def resolve(self, program: Program) -> ResolvedUnit:
        self._uid_counter = 0
        self._globals = {}
        self._binding_scopes = {}
        self._unit = ResolvedUnit(tree=program)
        self._scope = Scope("program")
        self._visit(program)
        self._check_dynamic_scopes()
        logger.info(
            "Resolved %d bindings, %d occurrences, %d rejections",
            len(self._unit.bindings),
            len(self._unit.occurrences),
            len(self._unit.rejections),
        )
        return self._unit

    # ── helpers ──────────────────────────────────────────────────

    def _visit(self, node: Node | None):
        if node is None:
            return
        handler = self._DISPATCH.get(type(node))
        if handler is not None:
            handler(node)
            return
        for child in iter_children(node):
            self._visit(child)

    def _reject(self, rejection: Rejection):
        logger.debug("Resolver rejection: %s", rejection)
        self._unit.rejections.append(rejection)

    def _push(self, kind: str) -> Scope:
        self._scope = Scope(kind, parent=self._scope)
        return self._scope

    def _pop(self):
        self._scope = self._scope.parent

    def _declare(
        self, scope: Scope, name: str, kind: str, decl: Node | None = None
    ) -> Binding:
        existing = scope.names.get(name)
        if existing is not None:
            return existing
        binding = Binding(
            name=name,
            kind=kind,
            uid=f"{name}#{self._uid_counter}",
            decl=decl,
            reified=isinstance(decl, BindingDecl) and decl.reified,
        )
        self._uid_counter += 1
        scope.names[name] = binding
        self._binding_scopes[binding.uid] = scope
        self._unit.bindings.append(binding)
        if decl is not None:
            self._unit.declarations[id(decl)] = binding
        return binding

    def _global(self, name: str) -> Binding:
        if name not in self._globals:
            binding = Binding(name=name, kind="global", uid=f"{name}#global")
            self._globals[name] = binding
            self._unit.bindings.append(binding)
        return self._globals[name]

    def _declare_lexical(self, stmts: tuple[Node, ...], scope: Scope):
        for stmt in stmts:
            if isinstance(stmt, BindingDecl) and stmt.kind in constants.LEXICAL_KINDS:
                self._declare(scope, stmt.name, stmt.kind, stmt)
            elif isinstance(stmt, FunctionDecl):
                self._declare(scope, stmt.name, "function", stmt)
            elif isinstance(stmt, ClassDecl):
                self._declare(scope, stmt.name, "class", stmt)

    def _hoist_vars(self, stmts: tuple[Node, ...], scope: Scope):
        for stmt in stmts:
            if isinstance(stmt, BindingDecl) and stmt.kind == "var":
                self._declare(scope, stmt.name, "var", stmt)
            elif isinstance(stmt, Block):
                self._hoist_vars(stmt.body, scope)
            elif isinstance(stmt, If):
                self._hoist_vars(
                    tuple(s for s in (stmt.consequent, stmt.alternate) if s is not None),
                    scope,
                )
            elif isinstance(stmt, While):
                self._hoist_vars((stmt.body,), scope)

    def _reference(self, node: Identifier, access: Access):
        binding = self._scope.lookup(node.name) or self._global(node.name)
        self._unit.occurrences[id(node)] = Occurrence(binding, access, node)

    def _function_body(self, params: tuple[str, ...], stmts: tuple[Node, ...]):
        scope = self._scope
        for param in params:
            self._declare(scope, param, "param")
        self._hoist_vars(stmts, scope)
        self._declare_lexical(stmts, scope)
        for stmt in stmts:
            self._visit(stmt)

    # ── scopes ───────────────────────────────────────────────────

    def _resolve_program(self, node: Program):
        self._function_body((), node.body)

    def _resolve_block(self, node: Block):
        scope = self._push("block")
        self._declare_lexical(node.body, scope)
        for stmt in node.body:
            self._visit(stmt)
        self._pop()

    def _resolve_binding_decl(self, node: BindingDecl):
        if self._unit.declared(node) is None:
            # Declarations reached outside a statement list (e.g. a lone if-branch).
            target = self._scope if node.kind != "var" else self._scope.function_scope()
            self._declare(target, node.name, node.kind, node)
        if node.reified and node.kind not in constants.LEXICAL_KINDS:
            self._reject(
                malformed(
                    f"reified declaration of '{node.name}' must use let or const", node
                )
            )
        self._visit(node.init)

    def _resolve_function_decl(self, node: FunctionDecl):
        if self._unit.declared(node) is None:
            self._declare(self._scope, node.name, "function", node)
        self._push("function")
        self._function_body(node.params, node.body.body)
        self._pop()

    def _resolve_arrow(self, node: Arrow):
        self._push("function")
        if isinstance(node.body, Block):
            self._function_body(node.params, node.body.body)
        else:
            self._function_body(node.params, ())
            self._visit(node.body)
        self._pop()

    def _resolve_class(self, node: ClassDecl):
        binding = self._unit.declared(node) or self._declare(
            self._scope, node.name, "class", node
        )
        self._visit(node.superclass)
        info = ClassInfo(binding=binding, decl=node)
        scope = self._push("class")
        declared = node.body.private_names()
        for name in declared:
            scope.privates[name] = PrivateName(
                owner=binding, name=name, writable=_is_private_field(node, name)
            )
        info.exports = self._check_exports(node, declared, binding)
        info.imports = self._bind_imports(node, declared, scope)
        self._unit.classes[id(node)] = info
        for member in node.body.members:
            self._resolve_member_def(member)
        self._pop()

    def _check_exports(
        self, node: ClassDecl, declared: frozenset[str], binding: Binding
    ) -> frozenset[str]:
        exported: set[str] = set()
        for export in node.body.exports:
            if export.field_name not in declared:
                self._reject(
                    malformed(
                        f"class '{node.name}' exports undeclared private field "
                        f"'#{export.field_name}'",
                        export,
                    )
                )
                continue
            exported.add(export.field_name)
            self._unit.private_refs[id(export)] = PrivateName(
                owner=binding,
                name=export.field_name,
                writable=_is_private_field(node, export.field_name),
            )
        return frozenset(exported)

    def _bind_imports(
        self, node: ClassDecl, declared: frozenset[str], scope: Scope
    ) -> frozenset[str]:
        imported: set[str] = set()
        base = self._superclass_decl(node)
        for imp in node.body.imports:
            name = imp.field_name
            if name in declared:
                self._reject(
                    malformed(
                        f"class '{node.name}' both declares and imports '#{name}'", imp
                    )
                )
                continue
            if base is None:
                self._reject(
                    malformed(
                        f"class '{node.name}' imports '#{name}' but has no statically "
                        "known superclass",
                        imp,
                    )
                )
                continue
            base_decl, base_binding = base
            if name not in {e.field_name for e in base_decl.body.exports}:
                self._reject(
                    malformed(
                        f"superclass '{base_decl.name}' has no matching export for "
                        f"'#{name}'",
                        imp,
                    )
                )
                continue
            private = PrivateName(
                owner=base_binding,
                name=name,
                imported=True,
                writable=_is_private_field(base_decl, name),
            )
            scope.privates[name] = private
            self._unit.private_refs[id(imp)] = private
            imported.add(name)
        return frozenset(imported)

    def _superclass_decl(self, node: ClassDecl) -> tuple[ClassDecl, Binding] | None:
        if not isinstance(node.superclass, Identifier):
            return None
        binding = self._scope.lookup(node.superclass.name)
        if binding is None or not isinstance(binding.decl, ClassDecl):
            return None
        return binding.decl, binding

    def _resolve_member_def(self, member: Node):
        if isinstance(member, MethodDef):
            self._push("function")
            self._function_body(member.params, member.body.body)
            self._pop()
        elif isinstance(member, FieldDef):
            self._push("function")
            self._visit(member.value)
            self._pop()
        elif isinstance(member, StaticBlock):
            self._push("function")
            self._function_body((), member.body)
            self._pop()
        else:
            self._visit(member)

    # ── references ───────────────────────────────────────────────

    def _resolve_identifier(self, node: Identifier):
        self._reference(node, Access.READ)

    def _resolve_assignment(self, node: Assignment):
        if isinstance(node.target, Identifier):
            self._reference(node.target, Access.WRITE)
        else:
            self._visit(node.target)
        self._visit(node.value)

    def _resolve_read_write_target(self, node: Node):
        target = node.operand if isinstance(node, UnaryReify) else node.target
        if isinstance(target, Identifier):
            self._reference(target, Access.READ_WRITE)
        else:
            self._visit(target)
        if isinstance(node, CompoundAssignment):
            self._visit(node.value)

    def _resolve_unary(self, node: UnaryOp):
        if node.op == "delete" and isinstance(node.operand, Identifier):
            self._reference(node.operand, Access.READ_WRITE)
            return
        self._visit(node.operand)

    def _resolve_member(self, node: MemberAccess):
        self._visit(node.object)
        if node.computed:
            self._visit(node.key)

    def _resolve_private(self, node: PrivateFieldRef):
        self._visit(node.receiver)
        private = self._scope.lookup_private(node.field_name)
        if private is None:
            self._reject(
                malformed(
                    f"private name '#{node.field_name}' is not declared by an "
                    "enclosing class",
                    node,
                )
            )
            return
        self._unit.private_refs[id(node)] = private

    def _resolve_call(self, node: Call):
        callee = node.callee
        if (
            isinstance(callee, Identifier)
            and callee.name == constants.DYNAMIC_EVAL_NAME
            and self._scope.lookup(callee.name) is None
        ):
            scope: Scope | None = self._scope
            while scope is not None:
                scope.dynamic = True
                scope = scope.parent
        self._visit(callee)
        for arg in node.args:
            self._visit(arg)

    # ── post-pass checks ─────────────────────────────────────────

    def _check_dynamic_scopes(self):
        for binding in self._unit.reified_bindings:
            scope = self._binding_scopes.get(binding.uid)
            if scope is not None and scope.dynamic:
                self._reject(
                    malformed(
                        f"occurrences of reified binding '{binding.name}' cannot be "
                        "statically classified (direct eval in scope)",
                        binding.decl,
                    )
                )


def reserved_name_rejections(program: Program) -> list[Rejection]:
    """Reject source identifiers that intrude on the generated-name namespace."""
    rejections: list[Rejection] = []
    for node in walk(program):
        name = None
        if isinstance(node, (Identifier, BindingDecl, FunctionDecl, ClassDecl)):
            name = node.name
        if name is not None and is_reserved(name):
            rejections.append(
                malformed(f"identifier '{name}' uses the reserved prefix", node)
            )
        for param in getattr(node, "params", ()):
            if is_reserved(param):
                rejections.append(
                    malformed(f"parameter '{param}' uses the reserved prefix", node)
                )
    return rejections


def _is_private_field(node: ClassDecl, name: str) -> bool:
    """Private methods share the namespace but are not assignable."""
    return any(f.is_private and f.name == name for f in node.body.fields)
