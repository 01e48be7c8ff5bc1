"""Reference evaluator — value types, environments and operator semantics."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

from .nodes import FieldDef, Node

# ── sentinels ────────────────────────────────────────────────────


class _Undefined:
    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


class _Uninitialized:
    """Marks a lexical binding still in its temporal dead zone."""

    def __repr__(self) -> str:
        return "<uninitialized>"


UNINITIALIZED = _Uninitialized()


# ── errors ───────────────────────────────────────────────────────


class EvaluationError(Exception):
    """A host runtime error (TypeError, ReferenceError, ...)."""

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


class ThrownValue(Exception):
    """A value raised by a ``throw`` statement and never caught."""

    def __init__(self, value: Any):
        super().__init__(f"Uncaught {to_display(value)}")
        self.value = value


def type_error(message: str) -> EvaluationError:
    return EvaluationError("TypeError", message)


def reference_error(message: str) -> EvaluationError:
    return EvaluationError("ReferenceError", message)


# ── heap values ──────────────────────────────────────────────────


@dataclass(eq=False)
class JsObject:
    properties: dict[str, Any] = field(default_factory=dict)
    proto: JsObject | None = None
    frozen: bool = False
    privates: dict[tuple[object, str], Any] = field(default_factory=dict)
    brands: set[object] = field(default_factory=set)

    def lookup(self, key: str) -> Any:
        obj: JsObject | None = self
        while obj is not None:
            if key in obj.properties:
                return obj.properties[key]
            obj = obj.proto
        return UNDEFINED

    def has(self, key: str) -> bool:
        obj: JsObject | None = self
        while obj is not None:
            if key in obj.properties:
                return True
            obj = obj.proto
        return False

    def put(self, key: str, value: Any):
        if self.frozen:
            raise type_error(f"Cannot assign to read only property '{key}' of object")
        self.properties[key] = value


@dataclass(eq=False)
class JsArray(JsObject):
    elements: list[Any] = field(default_factory=list)

    def lookup(self, key: str) -> Any:
        if key == "length":
            return len(self.elements)
        if key.isdigit():
            index = int(key)
            return self.elements[index] if index < len(self.elements) else UNDEFINED
        return super().lookup(key)

    def put(self, key: str, value: Any):
        if self.frozen:
            raise type_error(f"Cannot assign to read only property '{key}' of object")
        if key.isdigit():
            index = int(key)
            while len(self.elements) <= index:
                self.elements.append(UNDEFINED)
            self.elements[index] = value
            return
        super().put(key, value)


@dataclass(eq=False)
class JsFunction(JsObject):
    name: str = ""
    params: tuple[str, ...] = ()
    body: Node | None = None
    env: Environment | None = None
    is_arrow: bool = False
    home: JsClass | None = None


@dataclass(eq=False)
class BuiltinFunction(JsObject):
    name: str = ""
    impl: Callable[[Any, list[Any]], Any] | None = None


@dataclass(eq=False)
class JsClass(JsObject):
    name: str = ""
    parent: JsClass | None = None
    ctor: JsFunction | None = None
    env: Environment | None = None
    brand: object = field(default_factory=object)
    instance_fields: list[FieldDef] = field(default_factory=list)
    private_methods: dict[str, JsFunction] = field(default_factory=dict)

    @property
    def prototype(self) -> JsObject:
        return self.properties["prototype"]


# ── environments ─────────────────────────────────────────────────


@dataclass
class Cell:
    value: Any
    kind: str

    @property
    def mutable(self) -> bool:
        return self.kind != "const"


@dataclass(eq=False)
class Environment:
    """One lexical scope; function scopes also carry ``this``."""

    parent: Environment | None = None
    is_function: bool = False
    this: Any = UNDEFINED
    home: JsClass | None = None
    cells: dict[str, Cell] = field(default_factory=dict)
    brands: dict[str, object] = field(default_factory=dict)

    def lookup(self, name: str) -> Cell | None:
        env: Environment | None = self
        while env is not None:
            if name in env.cells:
                return env.cells[name]
            env = env.parent
        return None

    def declare(self, name: str, kind: str, value: Any = UNINITIALIZED) -> Cell:
        cell = Cell(value=value, kind=kind)
        self.cells[name] = cell
        return cell

    def function_env(self) -> Environment:
        env = self
        while not env.is_function and env.parent is not None:
            env = env.parent
        return env

    def brand(self, name: str) -> object | None:
        env: Environment | None = self
        while env is not None:
            if name in env.brands:
                return env.brands[name]
            env = env.parent
        return None


# ── conversions ──────────────────────────────────────────────────


def property_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, str):
        return value
    raise type_error("unsupported property key")


def to_number(value: Any) -> float | int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text) if text.lstrip("-").isdigit() else float(text)
        except ValueError:
            return math.nan
    return math.nan


def truthy(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (bool, int, float, str)):
        return bool(value)
    return True


def type_of(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (JsFunction, BuiltinFunction, JsClass)):
        return "function"
    return "object"


def to_display(value: Any) -> str:
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, JsArray):
        return "[" + ", ".join(to_display(v) for v in value.elements) + "]"
    if isinstance(value, JsClass):
        return f"[class {value.name}]"
    if isinstance(value, (JsFunction, BuiltinFunction)):
        return f"[Function: {value.name or 'anonymous'}]"
    if isinstance(value, JsObject):
        entries = ", ".join(f"{k}: {to_display(v)}" for k, v in value.properties.items())
        return "{ " + entries + " }" if entries else "{}"
    return str(value)


def _to_string(value: Any) -> str:
    return to_display(value)


def strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, (JsObject, _Undefined)) or isinstance(b, (JsObject, _Undefined)):
        return a is b
    return type(a) is type(b) and a == b


def loose_equals(a: Any, b: Any) -> bool:
    nullish = (None, UNDEFINED)
    if a in nullish or b in nullish:
        return a in nullish and b in nullish
    if isinstance(a, str) and isinstance(b, (int, float)) and not isinstance(b, bool):
        return to_number(a) == b
    if isinstance(b, str) and isinstance(a, (int, float)) and not isinstance(a, bool):
        return a == to_number(b)
    return strict_equals(a, b)


def _divide(a: Any, b: Any) -> float:
    a, b = to_number(a), to_number(b)
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1, b)
    return a / b


def _remainder(a: Any, b: Any) -> float:
    a, b = to_number(a), to_number(b)
    if b == 0:
        return math.nan
    return math.fmod(a, b)


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        return _to_string(a) + _to_string(b)
    return to_number(a) + to_number(b)


def _int32(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    number = int(number) & 0xFFFFFFFF
    return number - (1 << 32) if number >= (1 << 31) else number


class Operators:
    """Binary and unary operator evaluation for the host subset."""

    BINOP_TABLE: dict[str, Callable[[Any, Any], Any]] = {
        "+": _add,
        "-": lambda a, b: to_number(a) - to_number(b),
        "*": lambda a, b: to_number(a) * to_number(b),
        "/": _divide,
        "%": _remainder,
        "**": lambda a, b: to_number(a) ** to_number(b),
        "==": loose_equals,
        "!=": lambda a, b: not loose_equals(a, b),
        "===": strict_equals,
        "!==": lambda a, b: not strict_equals(a, b),
        "<": lambda a, b: _compare(a, b, lambda x, y: x < y),
        ">": lambda a, b: _compare(a, b, lambda x, y: x > y),
        "<=": lambda a, b: _compare(a, b, lambda x, y: x <= y),
        ">=": lambda a, b: _compare(a, b, lambda x, y: x >= y),
        "&": lambda a, b: _int32(a) & _int32(b),
        "|": lambda a, b: _int32(a) | _int32(b),
        "^": lambda a, b: _int32(a) ^ _int32(b),
        "<<": lambda a, b: _int32(_int32(a) << (_int32(b) & 31)),
        ">>": lambda a, b: _int32(a) >> (_int32(b) & 31),
        ">>>": lambda a, b: (_int32(a) & 0xFFFFFFFF) >> (_int32(b) & 31),
    }

    @classmethod
    def eval_binop(cls, op: str, lhs: Any, rhs: Any) -> Any:
        fn = cls.BINOP_TABLE.get(op)
        if fn is None:
            raise EvaluationError("SyntaxError", f"unsupported operator {op}")
        return fn(lhs, rhs)

    @classmethod
    def eval_unop(cls, op: str, operand: Any) -> Any:
        if op == "-":
            return -to_number(operand)
        if op == "+":
            return to_number(operand)
        if op == "!":
            return not truthy(operand)
        if op == "~":
            return ~_int32(operand)
        if op == "typeof":
            return type_of(operand)
        if op == "void":
            return UNDEFINED
        raise EvaluationError("SyntaxError", f"unsupported operator {op}")


def _compare(a: Any, b: Any, cmp: Callable[[Any, Any], bool]) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return cmp(a, b)
    x, y = to_number(a), to_number(b)
    if math.isnan(x) or math.isnan(y):
        return False
    return cmp(x, y)
