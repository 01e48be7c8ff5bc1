"""Reference evaluator — a tree-walking interpreter for the host subset.

Executes marker-free programs (original sources without markers, or the
engine's output) so rewritten code can be checked against the behaviour it
must preserve. All code runs with strict-mode semantics: writes to frozen
objects, constants and undeclared names throw.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

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
from .runtime import (
    UNDEFINED,
    UNINITIALIZED,
    BuiltinFunction,
    Environment,
    EvaluationError,
    JsArray,
    JsClass,
    JsFunction,
    JsObject,
    Operators,
    ThrownValue,
    property_key,
    reference_error,
    to_display,
    truthy,
    type_error,
)
from . import constants

logger = logging.getLogger(__name__)

MAX_CALL_DEPTH = 500


class _ReturnSignal(Exception):
    def __init__(self, value: Any):
        super().__init__()
        self.value = value


class Evaluator:
    """Runs one program; ``output`` collects ``console.log`` lines."""

    def __init__(self, max_call_depth: int = MAX_CALL_DEPTH):
        self.output: list[str] = []
        self._depth = 0
        self._max_depth = max_call_depth
        self._brand_classes: dict[object, JsClass] = {}
        self._function_proto = JsObject()
        self._array_proto = JsObject()
        self._object_proto = JsObject()
        self._function_proto.properties["call"] = BuiltinFunction(
            name="call",
            impl=lambda this, args: self.call_function(
                this, args[0] if args else UNDEFINED, list(args[1:])
            ),
        )
        self._array_proto.properties["push"] = BuiltinFunction(
            name="push", impl=self._array_push
        )
        self._STMT_DISPATCH: dict[type[Node], Callable] = {
            ExprStmt: self._exec_expr_stmt,
            BindingDecl: self._exec_binding_decl,
            Block: self._exec_block,
            Return: self._exec_return,
            Throw: self._exec_throw,
            If: self._exec_if,
            While: self._exec_while,
            FunctionDecl: lambda node, env: UNDEFINED,
            ClassDecl: self._exec_class,
        }
        self._EXPR_DISPATCH: dict[type[Node], Callable] = {
            Identifier: self._eval_identifier,
            Literal: lambda node, env: node.value,
            This: lambda node, env: env.function_env().this,
            MemberAccess: self._eval_member,
            PrivateFieldRef: self._eval_private,
            Call: self._eval_call,
            New: self._eval_new,
            SuperCall: self._eval_super_call,
            UnaryOp: self._eval_unary,
            BinaryOp: self._eval_binary,
            Conditional: self._eval_conditional,
            Assignment: self._eval_assignment,
            CompoundAssignment: self._eval_compound,
            IncDec: self._eval_inc_dec,
            Sequence: self._eval_sequence,
            ObjectLiteral: self._eval_object,
            ArrayLiteral: self._eval_array,
            Arrow: self._eval_arrow,
            Await: lambda node, env: self.evaluate(node.operand, env),
        }

    # ── entry point ──────────────────────────────────────────────

    def run(self, program: Program) -> Any:
        """Execute *program*; returns the value of the last expression statement."""
        env = Environment(is_function=True)
        self._install_globals(env)
        self._hoist(program.body, env, env)
        completion: Any = UNDEFINED
        try:
            for stmt in program.body:
                result = self.execute(stmt, env)
                if isinstance(stmt, ExprStmt):
                    completion = result
        except RecursionError:
            # Host stack ran out before max_call_depth was reached.
            raise EvaluationError("RangeError", "Maximum call stack size exceeded") from None
        logger.info("Evaluation finished; %d lines of output", len(self.output))
        return completion

    def _install_globals(self, env: Environment):
        freeze = BuiltinFunction(
            name=constants.FREEZE_METHOD, impl=lambda this, args: self._freeze(args)
        )
        object_ctor = JsObject(properties={constants.FREEZE_METHOD: freeze})
        console = JsObject(
            properties={"log": BuiltinFunction(name="log", impl=self._console_log)}
        )
        env.declare(constants.FREEZE_OWNER, "global", object_ctor)
        env.declare("console", "global", console)
        env.declare("undefined", "const", UNDEFINED)

    def _freeze(self, args: list[Any]) -> Any:
        target = args[0] if args else UNDEFINED
        if isinstance(target, JsObject):
            target.frozen = True
        return target

    def _console_log(self, this: Any, args: list[Any]) -> Any:
        self.output.append(" ".join(to_display(a) for a in args))
        return UNDEFINED

    def _array_push(self, this: Any, args: list[Any]) -> Any:
        if not isinstance(this, JsArray):
            raise type_error("push called on non-array")
        if this.frozen:
            raise type_error("Cannot add property, object is not extensible")
        this.elements.extend(args)
        return len(this.elements)

    # ── dispatchers ──────────────────────────────────────────────

    def execute(self, node: Node, env: Environment) -> Any:
        handler = self._STMT_DISPATCH.get(type(node))
        if handler is None:
            raise self._not_executable(node)
        return handler(node, env)

    def evaluate(self, node: Node, env: Environment) -> Any:
        handler = self._EXPR_DISPATCH.get(type(node))
        if handler is None:
            raise self._not_executable(node)
        return handler(node, env)

    def _not_executable(self, node: Node) -> EvaluationError:
        if isinstance(node, (UnaryReify, UnaryReifyUnbound, SlotExport, SlotImport)) or (
            isinstance(node, BindingDecl) and node.reified
        ):
            return EvaluationError(
                "SyntaxError", f"slot marker at {node.loc} must be rewritten first"
            )
        if isinstance(node, Yield):
            return EvaluationError("SyntaxError", "generators are not evaluated")
        return EvaluationError("SyntaxError", f"cannot evaluate {type(node).__name__}")

    # ── declarations ─────────────────────────────────────────────

    def _hoist(self, stmts: tuple[Node, ...], env: Environment, function_env: Environment):
        for stmt in stmts:
            if isinstance(stmt, BindingDecl):
                if stmt.reified:
                    raise self._not_executable(stmt)
                if stmt.kind == "var":
                    if stmt.name not in function_env.cells:
                        function_env.declare(stmt.name, "var", UNDEFINED)
                else:
                    env.declare(stmt.name, stmt.kind)
            elif isinstance(stmt, FunctionDecl):
                env.declare(stmt.name, "function", self._make_function(stmt, env))
            elif isinstance(stmt, ClassDecl):
                env.declare(stmt.name, "class")
            elif isinstance(stmt, (Block, If, While)):
                self._hoist_vars(stmt, function_env)

    def _hoist_vars(self, stmt: Node | None, function_env: Environment):
        """Declare `var` names found in nested statements at function level."""
        if isinstance(stmt, BindingDecl) and stmt.kind == "var":
            if stmt.name not in function_env.cells:
                function_env.declare(stmt.name, "var", UNDEFINED)
        elif isinstance(stmt, Block):
            for inner in stmt.body:
                self._hoist_vars(inner, function_env)
        elif isinstance(stmt, If):
            self._hoist_vars(stmt.consequent, function_env)
            self._hoist_vars(stmt.alternate, function_env)
        elif isinstance(stmt, While):
            self._hoist_vars(stmt.body, function_env)

    def _make_function(
        self,
        node: FunctionDecl | MethodDef,
        env: Environment,
        home: JsClass | None = None,
    ) -> JsFunction:
        return JsFunction(
            name=node.name,
            params=node.params,
            body=node.body,
            env=env,
            home=home,
            proto=self._function_proto,
        )

    # ── statements ───────────────────────────────────────────────

    def _run_statements(self, stmts: tuple[Node, ...], env: Environment):
        self._hoist(stmts, env, env.function_env())
        for stmt in stmts:
            self.execute(stmt, env)

    def _exec_expr_stmt(self, node: ExprStmt, env: Environment) -> Any:
        return self.evaluate(node.expr, env)

    def _exec_binding_decl(self, node: BindingDecl, env: Environment) -> Any:
        if node.kind == "var":
            if node.init is not None:
                self._assign_name(node.name, self.evaluate(node.init, env), env)
            return UNDEFINED
        value = self.evaluate(node.init, env) if node.init is not None else UNDEFINED
        cell = env.cells.get(node.name) or env.declare(node.name, node.kind)
        cell.value = value
        return UNDEFINED

    def _exec_block(self, node: Block, env: Environment) -> Any:
        self._run_statements(node.body, Environment(parent=env))
        return UNDEFINED

    def _exec_return(self, node: Return, env: Environment) -> Any:
        value = self.evaluate(node.value, env) if node.value is not None else UNDEFINED
        raise _ReturnSignal(value)

    def _exec_throw(self, node: Throw, env: Environment) -> Any:
        raise ThrownValue(self.evaluate(node.value, env))

    def _exec_if(self, node: If, env: Environment) -> Any:
        if truthy(self.evaluate(node.test, env)):
            self._exec_nested(node.consequent, env)
        elif node.alternate is not None:
            self._exec_nested(node.alternate, env)
        return UNDEFINED

    def _exec_while(self, node: While, env: Environment) -> Any:
        while truthy(self.evaluate(node.test, env)):
            self._exec_nested(node.body, env)
        return UNDEFINED

    def _exec_nested(self, node: Node, env: Environment):
        if isinstance(node, Block):
            self._exec_block(node, env)
            return
        inner = Environment(parent=env)
        self._hoist((node,), inner, env.function_env())
        self.execute(node, inner)

    # ── classes ──────────────────────────────────────────────────

    def _exec_class(self, node: ClassDecl, env: Environment) -> Any:
        parent = None
        if node.superclass is not None:
            parent = self.evaluate(node.superclass, env)
            if not isinstance(parent, JsClass):
                raise type_error(f"Class extends value {to_display(parent)} is not a class")
        class_env = Environment(parent=env)
        cls = JsClass(
            name=node.name,
            parent=parent,
            env=class_env,
            proto=parent if parent is not None else self._function_proto,
        )
        cls.properties["prototype"] = JsObject(
            proto=parent.prototype if parent is not None else self._object_proto
        )
        self._brand_classes[cls.brand] = cls
        class_env.declare(node.name, "const", cls)
        class_env.brands = {name: cls.brand for name in node.body.private_names()}

        for member in node.body.members:
            if isinstance(member, MethodDef):
                self._define_method(cls, member)
            elif isinstance(member, FieldDef) and not member.is_static:
                cls.instance_fields.append(member)

        cls.brands.add(cls.brand)
        for member in node.body.members:
            if isinstance(member, FieldDef) and member.is_static:
                self._define_field(cls, cls, member)
            elif isinstance(member, StaticBlock):
                static_env = Environment(
                    parent=class_env, is_function=True, this=cls, home=cls
                )
                self._call_body(member.body, static_env)

        cell = env.lookup(node.name)
        if cell is not None and cell.value is UNINITIALIZED:
            cell.value = cls
        else:
            env.declare(node.name, "class", cls)
        logger.debug("Defined class %s", node.name)
        return UNDEFINED

    def _define_method(self, cls: JsClass, member: MethodDef):
        fn = self._make_function(member, cls.env, home=cls)
        if member.is_constructor:
            cls.ctor = fn
        elif member.is_private and member.is_static:
            cls.privates[(cls.brand, member.name)] = fn
        elif member.is_private:
            cls.private_methods[member.name] = fn
        elif member.is_static:
            cls.properties[member.name] = fn
        else:
            cls.prototype.properties[member.name] = fn

    def _define_field(self, cls: JsClass, target: JsObject, member: FieldDef):
        field_env = Environment(parent=cls.env, is_function=True, this=target, home=cls)
        value = (
            self.evaluate(member.value, field_env) if member.value is not None else UNDEFINED
        )
        if member.is_private:
            target.privates[(cls.brand, member.name)] = value
        else:
            target.put(member.name, value)

    def _initialize_instance(self, cls: JsClass, obj: JsObject):
        if cls.brand in obj.brands:
            raise type_error(f"Cannot initialize private members of {cls.name} twice")
        obj.brands.add(cls.brand)
        for member in cls.instance_fields:
            self._define_field(cls, obj, member)

    def construct(self, cls: Any, args: list[Any]) -> JsObject:
        if isinstance(cls, JsFunction):
            obj = JsObject(proto=self._prototype_of(cls))
            self.call_function(cls, obj, args)
            return obj
        if not isinstance(cls, JsClass):
            raise type_error(f"{to_display(cls)} is not a constructor")
        obj = JsObject(proto=cls.prototype)
        self._construct_into(cls, obj, args)
        return obj

    def _prototype_of(self, fn: JsFunction) -> JsObject:
        if "prototype" not in fn.properties:
            fn.properties["prototype"] = JsObject(proto=self._object_proto)
        return fn.properties["prototype"]

    def _construct_into(self, cls: JsClass, obj: JsObject, args: list[Any]):
        if cls.ctor is None:
            if cls.parent is not None:
                self._construct_into(cls.parent, obj, args)
            self._initialize_instance(cls, obj)
            return
        if cls.parent is None:
            self._initialize_instance(cls, obj)
        self.call_function(cls.ctor, obj, args)

    def _eval_super_call(self, node: SuperCall, env: Environment) -> Any:
        function_env = env.function_env()
        cls = function_env.home
        if cls is None or cls.parent is None:
            raise EvaluationError("SyntaxError", "'super' call outside a derived constructor")
        args = [self.evaluate(a, env) for a in node.args]
        this = function_env.this
        self._construct_into(cls.parent, this, args)
        self._initialize_instance(cls, this)
        return UNDEFINED

    # ── functions ────────────────────────────────────────────────

    def _eval_arrow(self, node: Arrow, env: Environment) -> JsFunction:
        return JsFunction(
            name="",
            params=node.params,
            body=node.body,
            env=env,
            is_arrow=True,
            proto=self._function_proto,
        )

    def call_function(self, fn: Any, this: Any, args: list[Any]) -> Any:
        if isinstance(fn, BuiltinFunction):
            return fn.impl(this, args)
        if isinstance(fn, JsClass):
            raise type_error(f"Class constructor {fn.name} cannot be invoked without 'new'")
        if not isinstance(fn, JsFunction):
            raise type_error(f"{to_display(fn)} is not a function")
        if self._depth >= self._max_depth:
            raise EvaluationError("RangeError", "Maximum call stack size exceeded")
        if fn.is_arrow:
            env = Environment(parent=fn.env)
        else:
            env = Environment(parent=fn.env, is_function=True, this=this, home=fn.home)
        for index, param in enumerate(fn.params):
            env.declare(param, "param", args[index] if index < len(args) else UNDEFINED)
        self._depth += 1
        try:
            if isinstance(fn.body, Block):
                return self._call_body(fn.body.body, env)
            return self.evaluate(fn.body, env)
        finally:
            self._depth -= 1

    def _call_body(self, stmts: tuple[Node, ...], env: Environment) -> Any:
        try:
            self._hoist(stmts, env, env.function_env())
            for stmt in stmts:
                self.execute(stmt, env)
        except _ReturnSignal as ret:
            return ret.value
        return UNDEFINED

    # ── names ────────────────────────────────────────────────────

    def _eval_identifier(self, node: Identifier, env: Environment) -> Any:
        cell = env.lookup(node.name)
        if cell is None:
            raise reference_error(f"{node.name} is not defined")
        if cell.value is UNINITIALIZED:
            raise reference_error(f"Cannot access '{node.name}' before initialization")
        return cell.value

    def _assign_name(self, name: str, value: Any, env: Environment):
        cell = env.lookup(name)
        if cell is None:
            raise reference_error(f"{name} is not defined")
        if cell.value is UNINITIALIZED:
            raise reference_error(f"Cannot access '{name}' before initialization")
        if not cell.mutable:
            raise type_error("Assignment to constant variable.")
        cell.value = value

    # ── properties ───────────────────────────────────────────────

    def get_property(self, obj: Any, key: str) -> Any:
        if obj is None or obj is UNDEFINED:
            raise type_error(f"Cannot read properties of {to_display(obj)} (reading '{key}')")
        if isinstance(obj, JsObject):
            return obj.lookup(key)
        if isinstance(obj, str):
            if key == "length":
                return len(obj)
            if key.isdigit() and int(key) < len(obj):
                return obj[int(key)]
        return UNDEFINED

    def set_property(self, obj: Any, key: str, value: Any):
        if not isinstance(obj, JsObject):
            raise type_error(
                f"Cannot create property '{key}' on {to_display(obj)}"
            )
        obj.put(key, value)

    def _member_key(self, node: MemberAccess, env: Environment) -> str:
        if node.computed:
            return property_key(self.evaluate(node.key, env))
        return node.key.name

    def _eval_member(self, node: MemberAccess, env: Environment) -> Any:
        obj = self.evaluate(node.object, env)
        return self.get_property(obj, self._member_key(node, env))

    def _private_brand(self, node: PrivateFieldRef, env: Environment) -> object:
        brand = env.brand(node.field_name)
        if brand is None:
            raise EvaluationError(
                "SyntaxError", f"Private field '#{node.field_name}' must be declared"
            )
        return brand

    def get_private(self, obj: Any, brand: object, name: str) -> Any:
        if not isinstance(obj, JsObject) or brand not in obj.brands:
            raise type_error(
                f"Cannot read private member #{name} from an object whose class "
                "did not declare it"
            )
        if (brand, name) in obj.privates:
            return obj.privates[(brand, name)]
        return self._brand_classes[brand].private_methods[name]

    def set_private(self, obj: Any, brand: object, name: str, value: Any):
        if not isinstance(obj, JsObject) or brand not in obj.brands:
            raise type_error(
                f"Cannot write private member #{name} to an object whose class "
                "did not declare it"
            )
        if (brand, name) not in obj.privates:
            raise type_error(f"Private method #{name} is not writable")
        obj.privates[(brand, name)] = value

    def _eval_private(self, node: PrivateFieldRef, env: Environment) -> Any:
        brand = self._private_brand(node, env)
        obj = self.evaluate(node.receiver, env)
        return self.get_private(obj, brand, node.field_name)

    # ── references (read / write through one evaluated location) ─

    def _reference(self, target: Node, env: Environment):
        """Evaluate the addressing parts of *target* once; return (get, put)."""
        if isinstance(target, Identifier):
            return (
                lambda: self._eval_identifier(target, env),
                lambda value: self._assign_name(target.name, value, env),
            )
        if isinstance(target, MemberAccess):
            obj = self.evaluate(target.object, env)
            key = self._member_key(target, env)
            return (
                lambda: self.get_property(obj, key),
                lambda value: self.set_property(obj, key, value),
            )
        if isinstance(target, PrivateFieldRef):
            brand = self._private_brand(target, env)
            obj = self.evaluate(target.receiver, env)
            name = target.field_name
            return (
                lambda: self.get_private(obj, brand, name),
                lambda value: self.set_private(obj, brand, name, value),
            )
        raise EvaluationError("SyntaxError", "Invalid left-hand side in assignment")

    def _eval_assignment(self, node: Assignment, env: Environment) -> Any:
        _, put = self._reference(node.target, env)
        value = self.evaluate(node.value, env)
        put(value)
        return value

    def _eval_compound(self, node: CompoundAssignment, env: Environment) -> Any:
        get, put = self._reference(node.target, env)
        current = get()
        if node.op in constants.LOGICAL_OPERATORS:
            if not self._selects_right(node.op, current):
                return current
            value = self.evaluate(node.value, env)
        else:
            value = Operators.eval_binop(node.op, current, self.evaluate(node.value, env))
        put(value)
        return value

    def _eval_inc_dec(self, node: IncDec, env: Environment) -> Any:
        get, put = self._reference(node.target, env)
        old = Operators.eval_unop("+", get())
        new = Operators.eval_binop("+" if node.op == "++" else "-", old, 1)
        put(new)
        return new if node.prefix else old

    # ── operators ────────────────────────────────────────────────

    def _selects_right(self, op: str, left: Any) -> bool:
        if op == "&&":
            return truthy(left)
        if op == "||":
            return not truthy(left)
        return left is None or left is UNDEFINED

    def _eval_binary(self, node: BinaryOp, env: Environment) -> Any:
        left = self.evaluate(node.left, env)
        if node.op in constants.LOGICAL_OPERATORS:
            if self._selects_right(node.op, left):
                return self.evaluate(node.right, env)
            return left
        right = self.evaluate(node.right, env)
        if node.op == "instanceof":
            return self._instance_of(left, right)
        if node.op == "in":
            if not isinstance(right, JsObject):
                raise type_error("Cannot use 'in' operator on a non-object")
            return right.has(property_key(left))
        return Operators.eval_binop(node.op, left, right)

    def _instance_of(self, value: Any, cls: Any) -> bool:
        if not isinstance(value, JsObject) or not isinstance(cls, (JsClass, JsFunction)):
            return False
        target = cls.properties.get("prototype")
        proto = value.proto
        while proto is not None:
            if proto is target:
                return True
            proto = proto.proto
        return False

    def _eval_unary(self, node: UnaryOp, env: Environment) -> Any:
        if node.op == "delete":
            return self._eval_delete(node.operand, env)
        if node.op == "typeof" and isinstance(node.operand, Identifier):
            cell = env.lookup(node.operand.name)
            if cell is None:
                return "undefined"
        return Operators.eval_unop(node.op, self.evaluate(node.operand, env))

    def _eval_delete(self, operand: Node, env: Environment) -> bool:
        if not isinstance(operand, MemberAccess):
            return True
        obj = self.evaluate(operand.object, env)
        key = self._member_key(operand, env)
        if not isinstance(obj, JsObject):
            return True
        if obj.frozen:
            raise type_error(f"Cannot delete property '{key}' of frozen object")
        obj.properties.pop(key, None)
        return True

    def _eval_conditional(self, node: Conditional, env: Environment) -> Any:
        if truthy(self.evaluate(node.test, env)):
            return self.evaluate(node.consequent, env)
        return self.evaluate(node.alternate, env)

    def _eval_sequence(self, node: Sequence, env: Environment) -> Any:
        value: Any = UNDEFINED
        for expr in node.exprs:
            value = self.evaluate(expr, env)
        return value

    # ── calls ────────────────────────────────────────────────────

    def _eval_call(self, node: Call, env: Environment) -> Any:
        callee = node.callee
        if isinstance(callee, MemberAccess):
            this = self.evaluate(callee.object, env)
            fn = self.get_property(this, self._member_key(callee, env))
        elif isinstance(callee, PrivateFieldRef):
            brand = self._private_brand(callee, env)
            this = self.evaluate(callee.receiver, env)
            fn = self.get_private(this, brand, callee.field_name)
        else:
            this = UNDEFINED
            fn = self.evaluate(callee, env)
        args = [self.evaluate(a, env) for a in node.args]
        return self.call_function(fn, this, args)

    def _eval_new(self, node: New, env: Environment) -> Any:
        cls = self.evaluate(node.callee, env)
        args = [self.evaluate(a, env) for a in node.args]
        return self.construct(cls, args)

    # ── literals ─────────────────────────────────────────────────

    def _eval_object(self, node: ObjectLiteral, env: Environment) -> JsObject:
        obj = JsObject(proto=self._object_proto)
        for entry in node.entries:
            obj.properties[entry.key] = self.evaluate(entry.value, env)
        return obj

    def _eval_array(self, node: ArrayLiteral, env: Environment) -> JsArray:
        return JsArray(
            elements=[self.evaluate(e, env) for e in node.elements],
            proto=self._array_proto,
        )

