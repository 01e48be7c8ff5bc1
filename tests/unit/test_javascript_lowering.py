"""Tests for JavaScriptFrontend — tree-sitter JavaScript AST to slot syntax tree."""

from __future__ import annotations

import pytest
from tree_sitter_language_pack import get_parser

from slotsugar.errors import RejectionKind
from slotsugar.frontends import SUPPORTED_LANGUAGES, UnsupportedSyntaxError, get_frontend
from slotsugar.frontends.javascript import JavaScriptFrontend
from slotsugar.nodes import (
    Arrow,
    Assignment,
    BindingDecl,
    Call,
    ClassDecl,
    CompoundAssignment,
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
    PrivateFieldRef,
    Program,
    SlotExport,
    SlotImport,
    StaticBlock,
    SuperCall,
    This,
    UnaryReify,
    UnaryReifyUnbound,
    While,
)


def _lower(source: str) -> tuple[Program, JavaScriptFrontend]:
    parser = get_parser("javascript")
    tree = parser.parse(source.encode("utf-8"))
    frontend = JavaScriptFrontend()
    return frontend.lower(tree, source.encode("utf-8")), frontend


def _parse_js(source: str) -> Program:
    program, frontend = _lower(source)
    assert frontend.rejections == []
    return program


def _expr(source: str):
    (stmt,) = _parse_js(source).body
    assert isinstance(stmt, ExprStmt)
    return stmt.expr


def _class(source: str) -> ClassDecl:
    (cls,) = _parse_js(source).body
    assert isinstance(cls, ClassDecl)
    return cls


class TestFrontendRegistry:
    def test_javascript_is_registered(self):
        assert "javascript" in SUPPORTED_LANGUAGES
        assert isinstance(get_frontend("javascript"), JavaScriptFrontend)

    def test_unknown_language_raises(self):
        with pytest.raises(ValueError):
            get_frontend("cobol")


class TestMarkers:
    def test_expression_marker(self):
        expr = _expr("slot(x);")
        assert isinstance(expr, UnaryReify)
        assert expr.operand.name == "x"

    def test_unbound_marker(self):
        expr = _expr("slot.unbound(this.#f);")
        assert isinstance(expr, UnaryReifyUnbound)
        assert expr.operand == PrivateFieldRef(
            receiver=This(loc=expr.operand.receiver.loc),
            field_name="f",
            loc=expr.operand.loc,
        )

    def test_binding_marker(self):
        (decl,) = _parse_js("let y = slot.binding(foo());").body
        assert isinstance(decl, BindingDecl)
        assert decl.reified
        assert decl.kind == "let"
        assert isinstance(decl.init, Call)

    def test_binding_marker_without_initialiser(self):
        (decl,) = _parse_js("const y = slot.binding();").body
        assert decl.reified
        assert decl.init is None

    def test_export_and_import_stay_inside_the_static_block(self):
        cls = _class("class B extends A { static { slot.import(this.#f); slot.export(this.#g); } }")
        (block,) = cls.body.members
        first, second = block.body
        assert first == SlotImport(field_name="f", loc=first.loc)
        assert isinstance(second, SlotExport)
        assert second.field_name == "g"
        assert cls.body.imports == (first,)
        assert cls.body.exports == (second,)

    def test_static_block_statements_keep_their_order(self):
        cls = _class("class A { #f; static { a(); slot.export(this.#f); b(); } }")
        kinds = [type(m) for m in cls.body.members]
        assert kinds == [FieldDef, StaticBlock]
        block = cls.body.members[1]
        assert [type(s) for s in block.body] == [ExprStmt, SlotExport, ExprStmt]

    def test_plain_member_call_named_slot_is_not_a_marker(self):
        expr = _expr("obj.slot(x);")
        assert isinstance(expr, Call)

    def test_marker_location(self):
        expr = _expr("slot(x);")
        assert expr.loc.start_line == 1
        assert expr.loc.start_col == 0


class TestMarkerMisuse:
    def _rejections(self, source: str) -> list:
        _, frontend = _lower(source)
        return frontend.rejections

    def test_unknown_marker(self):
        (rejection,) = self._rejections("slot.frob(x);")
        assert rejection.kind == RejectionKind.MALFORMED_TARGET
        assert "unknown slot marker" in rejection.message

    def test_wrong_arity(self):
        (rejection,) = self._rejections("slot(a, b);")
        assert "exactly one argument" in rejection.message

    def test_binding_marker_in_expression_position(self):
        (rejection,) = self._rejections("x = slot.binding(1);")
        assert "let or const" in rejection.message

    def test_export_outside_static_block(self):
        (rejection,) = self._rejections("slot.export(this.#f);")
        assert "static block" in rejection.message

    def test_export_needs_this_private_argument(self):
        (rejection,) = self._rejections("class A { static { slot.export(x); } }")
        assert "this.#field" in rejection.message

    def test_misuse_is_lowered_as_plain_call(self):
        program, _ = _lower("slot.frob(x);")
        assert isinstance(program.body[0].expr, Call)


class TestExpressions:
    def test_compound_assignment_keeps_bare_operator(self):
        expr = _expr("x += 1;")
        assert isinstance(expr, CompoundAssignment)
        assert expr.op == "+"

    def test_logical_assignment(self):
        assert _expr("x ??= 1;").op == "??"

    def test_postfix_and_prefix_update(self):
        postfix = _expr("x++;")
        prefix = _expr("--x;")
        assert isinstance(postfix, IncDec) and not postfix.prefix
        assert isinstance(prefix, IncDec) and prefix.prefix and prefix.op == "--"

    def test_private_member(self):
        expr = _expr("this.#f = 1;")
        assert isinstance(expr, Assignment)
        assert isinstance(expr.target, PrivateFieldRef)

    def test_computed_member(self):
        expr = _expr("a[i + 1];")
        assert isinstance(expr, MemberAccess)
        assert expr.computed

    def test_literals(self):
        assert _expr("0x10;").value == 16
        assert _expr("1.5;").value == 1.5
        assert _expr('"a\\n";').value == "a\n"
        assert isinstance(_expr("null;"), Literal)
        assert _expr("null;").value is None

    @pytest.mark.parametrize(
        "source,expected",
        [
            ('"\\u{1F600}";', "\U0001F600"),
            ('"\\uD83D\\uDE00";', "\U0001F600"),
            ('"\\x41\\u0042";', "AB"),
            ("'it\\'s';", "it's"),
            ('"a\\\\b";', "a\\b"),
            ('"\\0";', "\0"),
            ('"\\q";', "q"),
            ('"a\\\nb";', "ab"),
        ],
    )
    def test_string_escapes(self, source, expected):
        assert _expr(source).value == expected

    def test_astral_escape_in_a_slotted_program(self):
        program = _parse_js('let s = "\\u{1F600}"; let t = slot(s);')
        assert program.body[0].init.value == "\U0001F600"

    def test_arrow_and_new(self):
        arrow = _expr("(a, b) => a;")
        assert isinstance(arrow, Arrow)
        assert arrow.params == ("a", "b")
        assert isinstance(_expr("new C(1);"), New)

    def test_super_call(self):
        cls = _class("class B extends A { constructor() { super(1); } }")
        (ctor,) = cls.body.methods
        assert ctor.is_constructor
        assert isinstance(ctor.body.body[0].expr, SuperCall)


class TestStatements:
    def test_multiple_declarators(self):
        decls = _parse_js("let a = 1, b;").body
        assert [d.name for d in decls] == ["a", "b"]
        assert decls[1].init is None

    def test_control_flow(self):
        program = _parse_js("if (a) b(); else { c(); } while (d) e();")
        assert isinstance(program.body[0], If)
        assert isinstance(program.body[1], While)

    def test_function_declaration(self):
        (func,) = _parse_js("async function f(a) { return a; }").body
        assert isinstance(func, FunctionDecl)
        assert func.is_async
        assert func.params == ("a",)

    def test_class_members(self):
        cls = _class("class A { static n = 1; #x; #m() {} static s() {} }")
        field, private_field, private_method, static_method = cls.body.members
        assert field == FieldDef(name="n", is_static=True, value=field.value, loc=field.loc)
        assert private_field.is_private
        assert isinstance(private_method, MethodDef) and private_method.is_private
        assert static_method.is_static
        assert cls.body.private_names() == frozenset({"x", "m"})

    def test_comments_are_ignored(self):
        program = _parse_js("// note\nx; /* more */")
        assert len(program.body) == 1
        assert program.body[0].expr == Identifier(name="x", loc=program.body[0].expr.loc)


class TestUnsupportedSyntax:
    @pytest.mark.parametrize(
        "source",
        [
            "a?.b;",
            "1n;",
            "let big = 10n;",
            "f(...xs);",
            "for (;;) {}",
            "let {a} = o;",
            "class A { get x() { return 1; } }",
            "class B extends A { m() { return super.m(); } }",
        ],
    )
    def test_raises_unsupported(self, source):
        with pytest.raises(UnsupportedSyntaxError):
            _lower(source)

    def test_syntax_error_is_reported_with_location(self):
        with pytest.raises(UnsupportedSyntaxError) as exc_info:
            _lower("let = ;")
        assert exc_info.value.node_type == "ERROR"

    def test_unsupported_error_is_a_value_error(self):
        assert issubclass(UnsupportedSyntaxError, ValueError)

    def test_bigint_literal_names_the_construct(self):
        with pytest.raises(UnsupportedSyntaxError) as exc_info:
            _lower("let n = 1n;")
        assert exc_info.value.node_type == "bigint literal"
