"""End-to-end behaviour of rewritten slot code, checked with the reference evaluator."""

from __future__ import annotations

import pytest

from slotsugar.api import run_source
from slotsugar.engine import EngineConfig
from slotsugar.runtime import UNDEFINED, EvaluationError, JsArray


def _run(source: str, config: EngineConfig | None = None):
    value, _ = run_source(source, config=config)
    return value


def _elements(value) -> list:
    assert isinstance(value, JsArray)
    return value.elements


class TestExpressionReification:
    def test_peek_yields_current_value(self):
        assert _run("let x = 5; const s = slot(x); s.peek();") == 5

    def test_poke_then_peek_round_trips(self):
        source = """
        let x = 5;
        const s = slot(x);
        s.poke(7);
        [s.peek(), x];
        """
        assert _elements(_run(source)) == [7, 7]

    def test_peek_sees_later_writes(self):
        assert _run("let x = 1; const s = slot(x); x = 2; s.peek();") == 2

    def test_member_slot_writes_through(self):
        source = """
        const o = {a: 1};
        const s = slot(o.a);
        s.poke(5);
        o.a;
        """
        assert _run(source) == 5

    def test_receiver_is_fixed_when_slot_is_built(self):
        source = """
        let o = {a: 1};
        const s = slot(o.a);
        const first = o;
        o = {a: 2};
        s.poke(9);
        [first.a, o.a];
        """
        assert _elements(_run(source)) == [9, 2]

    def test_each_slot_closes_over_its_own_temporaries(self):
        source = """
        const items = [{v: 1}, {v: 2}];
        function at(i) { return slot(items[i].v); }
        const a = at(0);
        const b = at(1);
        a.poke(10);
        [items[0].v, items[1].v, b.peek()];
        """
        assert _elements(_run(source)) == [10, 2, 2]

    def test_addressing_side_effects_run_exactly_once(self):
        source = """
        let calls = 0;
        const arr = [1, 2, 3];
        function foo() { calls = calls + 1; return arr; }
        let i = 0;
        const s = slot(foo()[i + 1]);
        s.peek();
        s.poke(9);
        s.peek();
        s.poke(s.peek() + 1);
        [calls, arr[1], s.peek()];
        """
        assert _elements(_run(source)) == [1, 10, 10]

    def test_computed_key_is_evaluated_once(self):
        source = """
        const arr = [0, 0, 0];
        let i = 0;
        const s = slot(arr[i]);
        i = 2;
        s.poke(4);
        [arr[0], arr[2]];
        """
        assert _elements(_run(source)) == [4, 0]


class TestImmutableTargets:
    def test_const_binding_has_no_poke(self):
        source = """
        const x = 3;
        const s = slot(x);
        [s.peek(), s.poke === undefined];
        """
        assert _elements(_run(source)) == [3, True]

    def test_absent_poke_is_not_callable(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("const x = 3; const s = slot(x); s.poke(4);")
        assert exc_info.value.kind == "TypeError"


class TestLocking:
    def test_slot_record_is_frozen(self):
        with pytest.raises(EvaluationError) as exc_info:
            _run("let x = 1; const s = slot(x); s.peek = null;")
        assert exc_info.value.kind == "TypeError"

    def test_unlocked_slot_record_is_writable(self):
        source = "let x = 1; const s = slot(x); s.extra = 2; s.extra;"
        assert _run(source, EngineConfig(lock_slots=False)) == 2

    def test_receiver_substitution_has_no_effect(self):
        source = """
        let x = 1;
        const s = slot(x);
        const evil = {x: 99};
        s.peek.call(evil);
        """
        assert _run(source) == 1


class TestCompoundAccess:
    def test_compound_assignment_yields_new_value(self):
        source = "let x = 5; const r = (x += 1); [r, x];"
        assert _elements(_run(source)) == [6, 6]

    def test_postfix_increment_yields_old_value(self):
        source = "let x = 5; const r = x++; [r, x];"
        assert _elements(_run(source)) == [5, 6]

    def test_prefix_decrement_yields_new_value(self):
        source = "let x = 5; const r = --x; [r, x];"
        assert _elements(_run(source)) == [4, 4]

    def test_postfix_converts_to_number(self):
        source = 'let x = "5"; const r = x++; [r, x];'
        assert _elements(_run(source)) == [5, 6]

    def test_member_receiver_is_evaluated_once(self):
        source = """
        let n = 0;
        const o = {a: 1};
        function get() { n = n + 1; return o; }
        get().a += 2;
        [n, o.a];
        """
        assert _elements(_run(source)) == [1, 3]

    def test_nested_update_in_computed_key(self):
        source = """
        let i = 0;
        const arr = [5, 5];
        arr[i++] += 1;
        [arr[0], arr[1], i];
        """
        assert _elements(_run(source)) == [6, 5, 1]

    def test_awaited_receiver_in_compound_assignment(self):
        source = """
        async function f(p) { (await p).n += 1; (await p).n++; return p.n; }
        f({n: 1});
        """
        assert _run(source) == 3

    def test_logical_assignment_short_circuits(self):
        source = """
        let hits = 0;
        function f() { hits = hits + 1; return 7; }
        let x = 0;
        x ||= f();
        x ||= f();
        [x, hits];
        """
        assert _elements(_run(source)) == [7, 1]

    def test_logical_assignment_skips_write_to_frozen_object(self):
        source = """
        const o = Object.freeze({a: 0});
        o.a &&= 5;
        o.a;
        """
        assert _run(source) == 0

    def test_nullish_assignment(self):
        source = "let a = null; let b = 1; a ??= 2; b ??= 3; [a, b];"
        assert _elements(_run(source)) == [2, 1]


class TestBindingReification:
    def test_assignment_reads_once_writes_once_and_yields_value(self):
        source = """
        let reads = 0;
        function foo() { reads = reads + 1; return 10; }
        let y = slot.binding(foo());
        const r = (y = y + 1);
        [r, y, reads];
        """
        assert _elements(_run(source)) == [11, 11, 1]

    def test_closures_share_the_hidden_cell(self):
        source = """
        let y = slot.binding(1);
        function read() { return y; }
        function write(v) { y = v; }
        write(7);
        [read(), y];
        """
        assert _elements(_run(source)) == [7, 7]

    def test_marker_on_reified_binding_yields_its_slot(self):
        source = """
        let y = slot.binding(1);
        const s = slot(y);
        s.poke(42);
        [y, s.peek()];
        """
        assert _elements(_run(source)) == [42, 42]

    def test_update_expressions_on_reified_binding(self):
        source = """
        let c = slot.binding(1);
        c++;
        c += 4;
        c *= 2;
        c;
        """
        assert _run(source) == 12

    def test_uninitialised_reified_binding_is_undefined(self):
        assert _run("let z = slot.binding(); z;") is UNDEFINED

    def test_const_reified_binding_is_readable(self):
        assert _run("const k = slot.binding(3); k + 1;") == 4

    def test_shadowing_declaration_is_untouched(self):
        source = """
        let y = slot.binding(1);
        function f() { let y = 5; y = 6; return y; }
        [f(), y];
        """
        assert _elements(_run(source)) == [6, 1]


class TestFriendSlots:
    def test_bound_slot_reaches_one_instance(self):
        source = """
        class Counter {
          #count = 0;
          handle() { return slot(this.#count); }
          value() { return this.#count; }
        }
        const a = new Counter();
        const b = new Counter();
        const h = a.handle();
        h.poke(5);
        [a.value(), b.value(), h.peek()];
        """
        assert _elements(_run(source)) == [5, 0, 5]

    def test_unbound_slot_reaches_every_instance_independently(self):
        source = """
        let shared;
        class Box {
          #v = 1;
          static { shared = slot.unbound(this.#v); }
        }
        const a = new Box();
        const b = new Box();
        shared.poke(a, 10);
        [shared.peek(a), shared.peek(b)];
        """
        assert _elements(_run(source)) == [10, 1]

    def test_unbound_slot_rejects_foreign_objects(self):
        source = """
        let shared;
        class Box {
          #v = 1;
          static { shared = slot.unbound(this.#v); }
        }
        shared.peek({});
        """
        with pytest.raises(EvaluationError) as exc_info:
            _run(source)
        assert exc_info.value.kind == "TypeError"

    def test_protected_import_reads_and_writes_base_field(self):
        source = """
        class Base {
          #n = 1;
          static { slot.export(this.#n); }
          n() { return this.#n; }
        }
        class Derived extends Base {
          static { slot.import(this.#n); }
          handle() { return slot(this.#n); }
          bump() { this.#n = this.#n + 10; return this.#n; }
        }
        const d = new Derived();
        const r = d.bump();
        const h = d.handle();
        h.poke(3);
        [r, d.n(), h.peek()];
        """
        assert _elements(_run(source)) == [11, 3, 3]

    def test_imported_compound_assignment(self):
        source = """
        class Counter {
          #count = 0;
          static { slot.export(this.#count); }
          value() { return this.#count; }
        }
        class Doubler extends Counter {
          static { slot.import(this.#count); }
          bump() { this.#count += 2; return this; }
        }
        new Doubler().bump().bump().value();
        """
        assert _run(source) == 4

    def test_imported_private_method_keeps_receiver(self):
        source = """
        class Base {
          #secret() { return this.tag; }
          static { slot.export(this.#secret); }
        }
        class Derived extends Base {
          static { slot.import(this.#secret); }
          constructor() { super(); this.tag = "derived"; }
          reveal() { return this.#secret(); }
        }
        new Derived().reveal();
        """
        assert _run(source) == "derived"

    def test_private_method_slot_has_no_poke(self):
        source = """
        class A {
          #m() { return 1; }
          handle() { return slot(this.#m); }
        }
        const h = new A().handle();
        [h.peek()(), h.poke === undefined];
        """
        assert _elements(_run(source)) == [1, True]

    def test_bound_slot_built_in_field_initialiser(self):
        source = """
        class A {
          #x = 2;
          h = slot(this.#x);
          x() { return this.#x; }
        }
        const a = new A();
        a.h.poke(8);
        a.x();
        """
        assert _run(source) == 8

    def test_static_block_declarations_span_the_export(self):
        source = """
        class A {
          #f = 1;
          static { let a = 1; slot.export(this.#f); console.log(a); }
        }
        """
        _, output = run_source(source)
        assert output == ["1"]

    def test_export_runs_at_its_position_in_static_initialisation(self):
        source = """
        const seen = [];
        class A {
          #f = 1;
          static { seen.push(1); slot.export(this.#f); seen.push(2); }
        }
        class B extends A {
          static { slot.import(this.#f); seen.push(3); }
          bump() { this.#f += 1; return this.#f; }
        }
        [new B().bump(), seen.length];
        """
        assert _elements(_run(source)) == [2, 3]
