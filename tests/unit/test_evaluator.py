"""Tests for the reference evaluator on marker-free programs."""

from __future__ import annotations

import math

import pytest

from slotsugar.api import parse_source
from slotsugar.evaluator import Evaluator
from slotsugar.nodes import ExprStmt, Identifier, Program, UnaryReify
from slotsugar.runtime import UNDEFINED, EvaluationError, JsArray, ThrownValue


def _run(source: str):
    program, rejections = parse_source(source)
    assert rejections == []
    evaluator = Evaluator()
    value = evaluator.run(program)
    return value, evaluator.output


def _value(source: str):
    return _run(source)[0]


class TestExpressions:
    def test_arithmetic_and_precedence(self):
        assert _value("1 + 2 * 3 - 4 / 2;") == 5

    def test_string_concatenation(self):
        assert _value('"a" + 1 + 2;') == "a12"

    def test_division_by_zero(self):
        assert _value("1 / 0;") == math.inf
        assert math.isnan(_value("0 / 0;"))

    def test_logical_operators_return_operands(self):
        assert _value('0 || "x";') == "x"
        assert _value("null ?? 3;") == 3
        assert _value("1 && 0;") == 0

    def test_equality(self):
        assert _value('1 == "1";') is True
        assert _value('1 === "1";') is False
        assert _value("null == undefined;") is True

    def test_typeof_undeclared_name(self):
        assert _value("typeof nope;") == "undefined"

    def test_conditional_and_sequence(self):
        assert _value("let a = 1; a > 0 ? (a, 2) : 3;") == 2

    def test_void_yields_undefined(self):
        assert _value("void 0;") is UNDEFINED

    def test_array_literal(self):
        value = _value("[1, 2, 3];")
        assert isinstance(value, JsArray)
        assert value.elements == [1, 2, 3]


class TestBindings:
    def test_closures_capture_bindings(self):
        source = """
        function counter() {
          let n = 0;
          return () => { n = n + 1; return n; };
        }
        const c = counter();
        c(); c();
        c();
        """
        assert _value(source) == 3

    def test_function_declarations_are_hoisted(self):
        assert _value("f(); function f() { return 7; }") == 7

    def test_var_is_function_scoped(self):
        assert _value("function f() { if (true) { var v = 4; } return v; } f();") == 4

    def test_const_assignment_is_a_type_error(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("const a = 1; a = 2;")
        assert exc_info.value.kind == "TypeError"

    def test_temporal_dead_zone(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("a; let a = 1;")
        assert exc_info.value.kind == "ReferenceError"

    def test_undeclared_name(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("missing;")
        assert exc_info.value.kind == "ReferenceError"

    def test_undeclared_assignment_is_strict(self):
        with pytest.raises(EvaluationError):
            _run("missing = 1;")

    def test_while_loop(self):
        assert _value("let i = 0; let s = 0; while (i < 4) { s += i; i++; } s;") == 6


class TestObjects:
    def test_member_writes(self):
        assert _value("const o = {a: 1}; o.a = 5; o['a'];") == 5

    def test_array_index_writes_and_push(self):
        value = _value("const xs = [1]; xs[2] = 3; xs.push(4); xs;")
        assert value.elements == [1, UNDEFINED, 3, 4]

    def test_frozen_object_rejects_writes(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("const o = Object.freeze({a: 1}); o.a = 2;")
        assert exc_info.value.kind == "TypeError"

    def test_reading_from_undefined(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("const o = {}; o.a.b;")
        assert exc_info.value.kind == "TypeError"

    def test_function_call_method_sets_receiver(self):
        source = """
        function who() { return this.name; }
        who.call({name: "x"});
        """
        assert _value(source) == "x"


class TestClasses:
    def test_methods_and_private_fields(self):
        source = """
        class P {
          #v = 2;
          double() { return this.#v * 2; }
        }
        new P().double();
        """
        assert _value(source) == 4

    def test_private_access_on_foreign_object(self):
        source = """
        class P { #v = 1; static read(o) { return o.#v; } }
        P.read({});
        """
        with pytest.raises(EvaluationError) as exc_info:
            _run(source)
        assert exc_info.value.kind == "TypeError"

    def test_static_members_run_in_order(self):
        source = """
        const log = [];
        class A {
          static a = log.push(1);
          static { log.push(2); }
        }
        log;
        """
        assert _value(source).elements == [1, 2]

    def test_super_call_initialises_derived_fields(self):
        source = """
        class A { constructor(x) { this.x = x; } }
        class B extends A {
          #y = 3;
          constructor() { super(4); }
          sum() { return this.x + this.#y; }
        }
        new B().sum();
        """
        assert _value(source) == 7

    def test_inherited_methods_and_instanceof(self):
        source = """
        class A { m() { return "a"; } }
        class B extends A {}
        const b = new B();
        [b.m(), b instanceof A];
        """
        assert _value(source).elements == ["a", True]

    def test_private_methods_are_not_writable(self):
        source = """
        class A { #m() {} f() { this.#m = 1; } }
        new A().f();
        """
        with pytest.raises(EvaluationError):
            _run(source)

    def test_class_called_without_new(self):
        with pytest.raises(EvaluationError):
            _run("class A {} A();")


class TestControl:
    def test_uncaught_throw(self):
        with pytest.raises(ThrownValue) as exc_info:
            _run('throw "boom";')
        assert exc_info.value.value == "boom"

    def test_console_log_lines(self):
        _, output = _run('console.log("a", 1, [2, 3]); console.log({k: null});')
        assert output == ["a 1 [2, 3]", "{ k: null }"]

    def test_completion_is_last_expression_statement(self):
        assert _value("1; let x = 2;") == 1

    def test_empty_program(self):
        assert _value("") is UNDEFINED

    def test_recursion_limit(self):
        program, _ = parse_source("function f() { return f(); } f();")
        with pytest.raises(EvaluationError) as exc_info:
            Evaluator(max_call_depth=50).run(program)
        assert exc_info.value.kind == "RangeError"

    def test_await_is_evaluated_synchronously(self):
        assert _value("async function f(p) { return await p; } f(5);") == 5


class TestMarkers:
    def test_unrewritten_marker_is_not_executable(self):
        program = Program(body=(ExprStmt(expr=UnaryReify(operand=Identifier(name="x"))),))
        with pytest.raises(EvaluationError) as exc_info:
            Evaluator().run(program)
        assert exc_info.value.kind == "SyntaxError"
        assert "must be rewritten" in exc_info.value.message

    def test_reified_declaration_is_not_executable(self):
        program, _ = parse_source("let y = slot.binding(1);")
        with pytest.raises(EvaluationError):
            Evaluator().run(program)

    def test_unrewritten_export_statement_is_not_executable(self):
        program, _ = parse_source("class A { #f = 1; static { slot.export(this.#f); } }")
        with pytest.raises(EvaluationError) as exc_info:
            Evaluator().run(program)
        assert "must be rewritten" in exc_info.value.message
