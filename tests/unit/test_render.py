"""Tests for JsRenderer — precedence-aware JavaScript printing."""

from __future__ import annotations

from slotsugar.api import parse_source, render_source, run_program, run_source
from slotsugar.engine import EngineConfig
from slotsugar.nodes import (
    Arrow,
    BinaryOp,
    Block,
    Call,
    ExprStmt,
    Identifier,
    Literal,
    MemberAccess,
    ObjectLiteral,
    Sequence,
    UnaryOp,
    UnaryReify,
)
from slotsugar.render import render
from slotsugar.runtime import JsArray


def _id(name: str) -> Identifier:
    return Identifier(name=name)


def _num(value) -> Literal:
    return Literal(value=value)


class TestExpressionPrecedence:
    def test_lower_precedence_operand_is_parenthesised(self):
        expr = BinaryOp(op="*", left=BinaryOp(op="+", left=_num(1), right=_num(2)), right=_num(3))
        assert render(expr) == "(1 + 2) * 3"

    def test_left_associative_chain_needs_no_parentheses(self):
        expr = BinaryOp(op="-", left=BinaryOp(op="-", left=_id("a"), right=_id("b")), right=_id("c"))
        assert render(expr) == "a - b - c"

    def test_right_operand_of_same_precedence_is_parenthesised(self):
        expr = BinaryOp(op="-", left=_id("a"), right=BinaryOp(op="-", left=_id("b"), right=_id("c")))
        assert render(expr) == "a - (b - c)"

    def test_nullish_never_mixes_with_logical_operators(self):
        expr = BinaryOp(op="??", left=BinaryOp(op="||", left=_id("a"), right=_id("b")), right=_id("c"))
        assert render(expr) == "(a || b) ?? c"

    def test_sequence_callee(self):
        callee = Sequence(exprs=(_num(0), MemberAccess(object=_id("s"), key=_id("peek"))))
        assert render(Call(callee=callee)) == "(0, s.peek)()"

    def test_arrow_callee_is_parenthesised(self):
        call = Call(callee=Arrow(params=("a",), body=_id("a")), args=(_num(1),))
        assert render(call) == "((a) => a)(1)"

    def test_arrow_returning_object(self):
        assert render(Arrow(body=ObjectLiteral())) == "() => ({})"

    def test_number_receiver(self):
        assert render(MemberAccess(object=_num(1), key=_id("x"))) == "(1).x"

    def test_nested_unary_minus(self):
        assert render(UnaryOp(op="-", operand=UnaryOp(op="-", operand=_id("x")))) == "- -x"

    def test_string_literal_is_escaped(self):
        assert render(Literal(value='a"b')) == '"a\\"b"'

    def test_markers_render_in_source_form(self):
        assert render(UnaryReify(operand=_id("x"))) == "slot(x)"


class TestStatements:
    def test_expression_statement_starting_with_brace(self):
        assert render(ExprStmt(expr=ObjectLiteral())) == "({});"

    def test_block_bodied_arrow_is_inline(self):
        arrow = Arrow(params=("v",), body=Block(body=(ExprStmt(expr=_id("v")),)))
        assert render(arrow) == "(v) => { v; }"


class TestRenderedRewrites:
    def test_identifier_slot(self):
        text = render_source("let x = 1;\nconst s = slot(x);")
        assert text.splitlines() == [
            "const $$freeze_0 = Object.freeze;",
            "let x = 1;",
            "const s = $$freeze_0({ peek: () => x, poke: ($$v_1) => { x = $$v_1; } });",
        ]

    def test_unlocked_slot(self):
        text = render_source("let x = 1;\nconst s = slot(x);", config=EngineConfig(lock_slots=False))
        assert "freeze" not in text
        assert "const s = { peek: () => x" in text

    def test_reified_binding_reads_through_comma_call(self):
        text = render_source("let y = slot.binding(1);\ny;")
        assert text.splitlines()[-1] == "(0, $$y_1.peek)();"

    def test_update_applies_the_host_operator_to_a_temporary(self):
        text = render_source("let n = 5;\nlet r = n++;")
        assert text.splitlines() == [
            "let $$n_0;",
            "let $$old_1;",
            "let n = 5;",
            "let r = ($$n_0 = n, $$old_1 = $$n_0++, n = $$n_0, $$old_1);",
        ]

    def test_rendered_output_reparses_and_behaves_identically(self):
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
        let y = slot.binding(0);
        y++;
        const o = {a: [1, 2]};
        const s = slot(o.a[y]);
        s.poke(s.peek() * 10);
        [new Doubler().bump().value(), o.a[1], y];
        """
        direct, _ = run_source(source)
        program, _ = parse_source(render_source(source))
        reparsed, _ = run_program(program)
        assert isinstance(direct, JsArray)
        assert direct.elements == [2, 20, 1]
        assert reparsed.elements == direct.elements

    def test_static_block_stays_one_block_around_export(self):
        source = (
            "class A { #f = 1; static { let a = 1; slot.export(this.#f); console.log(a); } }"
        )
        text = render_source(source)
        assert text.count("static {") == 1
        program, _ = parse_source(text)
        _, output = run_program(program)
        assert output == ["1"]
