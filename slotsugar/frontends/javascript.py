"""JavaScriptFrontend — tree-sitter JavaScript AST → slot syntax tree."""

from __future__ import annotations

import logging
import re
from typing import Callable

from ._base import BaseFrontend, UnsupportedSyntaxError
from ..nodes import (
    ArrayLiteral,
    Arrow,
    Assignment,
    Await,
    BinaryOp,
    BindingDecl,
    Block,
    Call,
    ClassBody,
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
    Property,
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
from .. import constants

logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v"}
_LINE_CONTINUATIONS = frozenset({"\n", "\r\n", "\r", "\u2028", "\u2029"})
_OCTAL_DIGITS = frozenset("01234567")
_SURROGATE_PAIR = re.compile("[\ud800-\udbff][\udc00-\udfff]")


def _decode_escape(text: str) -> str:
    """Decode one JavaScript escape sequence such as ``\\x41`` or ``\\u{1F600}``."""
    body = text[1:]
    if body in _LINE_CONTINUATIONS:
        return ""
    head = body[0]
    if head in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[head]
    if head == "x":
        return chr(int(body[1:], 16))
    if head == "u":
        digits = body[2:-1] if body.startswith("u{") else body[1:]
        return chr(int(digits, 16))
    if set(body) <= _OCTAL_DIGITS:
        return chr(int(body, 8))
    return body


def _join_surrogates(text: str) -> str:
    """Combine ``\\uD83D\\uDE00``-style pairs into one code point."""
    return _SURROGATE_PAIR.sub(
        lambda m: chr(0x10000 + ((ord(m[0][0]) - 0xD800) << 10) + ord(m[0][1]) - 0xDC00),
        text,
    )


class JavaScriptFrontend(BaseFrontend):
    """Lowers a JavaScript tree-sitter AST, recognising the slot markers.

    Marker surface syntax:

    * ``slot(E)``                      — reify an assignable expression
    * ``slot.unbound(this.#f)``        — unbound friend slot
    * ``let y = slot.binding(I)``      — reified binding declaration
    * ``static { slot.export(this.#f); }`` / ``slot.import(...)`` — class protocol
    """

    def __init__(self):
        super().__init__()
        self._EXPR_DISPATCH: dict[str, Callable] = {
            "identifier": self._lower_identifier,
            "undefined": self._lower_identifier,
            "this": lambda node: This(loc=self._source_loc(node)),
            "number": self._lower_number,
            "string": self._lower_string,
            "true": lambda node: Literal(value=True, loc=self._source_loc(node)),
            "false": lambda node: Literal(value=False, loc=self._source_loc(node)),
            "null": lambda node: Literal(value=None, loc=self._source_loc(node)),
            "binary_expression": self._lower_binop,
            "unary_expression": self._lower_unop,
            "update_expression": self._lower_update_expr,
            "assignment_expression": self._lower_assignment_expr,
            "augmented_assignment_expression": self._lower_augmented_assignment,
            "call_expression": self._lower_call,
            "new_expression": self._lower_new_expression,
            "member_expression": self._lower_attribute,
            "subscript_expression": self._lower_js_subscript,
            "parenthesized_expression": self._lower_paren,
            "array": self._lower_list_literal,
            "object": self._lower_js_object_literal,
            "arrow_function": self._lower_arrow_function,
            "ternary_expression": self._lower_ternary,
            "await_expression": self._lower_await_expression,
            "yield_expression": self._lower_yield_expression,
            "sequence_expression": self._lower_sequence_expression,
        }
        self._STMT_DISPATCH: dict[str, Callable] = {
            "expression_statement": self._lower_expression_statement,
            "lexical_declaration": self._lower_var_declaration,
            "variable_declaration": self._lower_var_declaration,
            "return_statement": self._lower_return,
            "throw_statement": self._lower_throw,
            "if_statement": self._lower_if,
            "while_statement": self._lower_while,
            "statement_block": self._lower_statement_block,
            "function_declaration": self._lower_function_def,
            "generator_function_declaration": self._lower_function_def,
            "class_declaration": self._lower_class_def,
        }

    # ── markers ──────────────────────────────────────────────────

    def _marker_kind(self, func_node) -> str | None:
        """``""`` for ``slot(...)``, the member name for ``slot.<x>(...)``."""
        if func_node.type == "identifier":
            if self._node_text(func_node) == constants.MARKER_NAME:
                return ""
            return None
        if func_node.type != "member_expression":
            return None
        obj = func_node.child_by_field_name("object")
        prop = func_node.child_by_field_name("property")
        if (
            obj is not None
            and obj.type == "identifier"
            and self._node_text(obj) == constants.MARKER_NAME
            and prop is not None
            and prop.type == "property_identifier"
        ):
            return self._node_text(prop)
        return None

    def _marker_call(self, node):
        """Return ``(kind, call_node)`` when *node* is a marker call."""
        if node is None or node.type != "call_expression":
            return None, None
        func_node = node.child_by_field_name("function")
        kind = self._marker_kind(func_node) if func_node is not None else None
        return kind, node

    def _single_marker_argument(self, node, spelling: str) -> Node | None:
        args = self._call_args(node)
        if len(args) != 1:
            self._reject(
                f"'{spelling}' takes exactly one argument, got {len(args)}",
                Identifier(name=spelling, loc=self._source_loc(node)),
            )
            return None
        return args[0]

    def _plain_call(self, node) -> Call:
        func_node = node.child_by_field_name("function")
        return Call(
            callee=self._lower_expr(func_node),
            args=tuple(self._call_args(node)),
            loc=self._source_loc(node),
        )

    def _lower_marker(self, kind: str, node) -> Node:
        loc = self._source_loc(node)
        if kind == "":
            operand = self._single_marker_argument(node, constants.MARKER_NAME)
            if operand is None:
                return self._plain_call(node)
            return UnaryReify(operand=operand, loc=loc)
        spelling = f"{constants.MARKER_NAME}.{kind}"
        if kind == constants.MARKER_UNBOUND:
            operand = self._single_marker_argument(node, spelling)
            if operand is None:
                return self._plain_call(node)
            return UnaryReifyUnbound(operand=operand, loc=loc)
        if kind == constants.MARKER_BINDING:
            message = f"'{spelling}' may only initialise a let or const declaration"
        elif kind in (constants.MARKER_EXPORT, constants.MARKER_IMPORT):
            message = f"'{spelling}' may only appear as a statement of a static block"
        else:
            message = f"unknown slot marker '{spelling}'"
        self._reject(message, Identifier(name=spelling, loc=loc))
        return self._plain_call(node)

    def _lower_class_marker(self, kind: str, node) -> Node | None:
        spelling = f"{constants.MARKER_NAME}.{kind}"
        loc = self._source_loc(node)
        args = [c for c in self._arg_nodes(node)]
        if len(args) != 1 or not self._is_this_private(args[0]):
            self._reject(
                f"'{spelling}' takes exactly one 'this.#field' argument",
                Identifier(name=spelling, loc=loc),
            )
            return None
        prop = args[0].child_by_field_name("property")
        field_name = self._node_text(prop)[1:]
        if kind == constants.MARKER_EXPORT:
            return SlotExport(field_name=field_name, loc=loc)
        return SlotImport(field_name=field_name, loc=loc)

    def _is_this_private(self, node) -> bool:
        if node.type != "member_expression":
            return False
        obj = node.child_by_field_name("object")
        prop = node.child_by_field_name("property")
        return (
            obj is not None
            and obj.type == "this"
            and prop is not None
            and prop.type == "private_property_identifier"
        )

    # ── literals and names ───────────────────────────────────────

    def _lower_identifier(self, node) -> Identifier:
        return Identifier(name=self._node_text(node), loc=self._source_loc(node))

    def _lower_number(self, node) -> Literal:
        text = self._node_text(node).replace("_", "")
        if text.endswith("n"):
            raise UnsupportedSyntaxError("bigint literal", self._source_loc(node))
        try:
            value: int | float = int(text, 0)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                raise self._unsupported(node) from None
        return Literal(value=value, loc=self._source_loc(node))

    def _lower_string(self, node) -> Literal:
        parts: list[str] = []
        for child in node.children:
            if child.type == "string_fragment":
                parts.append(self._node_text(child))
            elif child.type == "escape_sequence":
                try:
                    parts.append(_decode_escape(self._node_text(child)))
                except ValueError:
                    raise self._unsupported(child) from None
        return Literal(value=_join_surrogates("".join(parts)), loc=self._source_loc(node))

    # ── operators ────────────────────────────────────────────────

    def _lower_binop(self, node) -> BinaryOp:
        left = node.child_by_field_name("left")
        if left.type == "private_property_identifier":
            raise self._unsupported(left)
        return BinaryOp(
            op=self._node_text(node.child_by_field_name("operator")),
            left=self._lower_expr(left),
            right=self._lower_expr(node.child_by_field_name("right")),
            loc=self._source_loc(node),
        )

    def _lower_unop(self, node) -> UnaryOp:
        return UnaryOp(
            op=self._node_text(node.child_by_field_name("operator")),
            operand=self._lower_expr(node.child_by_field_name("argument")),
            loc=self._source_loc(node),
        )

    def _lower_update_expr(self, node) -> IncDec:
        """Lower i++ / i-- / ++i / --i update expressions."""
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        return IncDec(
            target=self._lower_expr(argument),
            op=self._node_text(operator),
            prefix=operator.start_byte < argument.start_byte,
            loc=self._source_loc(node),
        )

    def _lower_assignment_expr(self, node) -> Assignment:
        return Assignment(
            target=self._lower_target(node.child_by_field_name("left")),
            value=self._lower_expr(node.child_by_field_name("right")),
            loc=self._source_loc(node),
        )

    def _lower_augmented_assignment(self, node) -> CompoundAssignment:
        op = self._node_text(node.child_by_field_name("operator"))
        return CompoundAssignment(
            target=self._lower_target(node.child_by_field_name("left")),
            op=op[:-1],
            value=self._lower_expr(node.child_by_field_name("right")),
            loc=self._source_loc(node),
        )

    def _lower_target(self, node) -> Node:
        if node.type in ("object_pattern", "array_pattern"):
            raise self._unsupported(node)
        return self._lower_expr(node)

    def _lower_ternary(self, node) -> Conditional:
        return Conditional(
            test=self._lower_expr(node.child_by_field_name("condition")),
            consequent=self._lower_expr(node.child_by_field_name("consequence")),
            alternate=self._lower_expr(node.child_by_field_name("alternative")),
            loc=self._source_loc(node),
        )

    def _lower_sequence_expression(self, node) -> Sequence:
        exprs: list[Node] = []
        for child in self._named_children(node):
            lowered = self._lower_expr(child)
            if isinstance(lowered, Sequence) and child.type == "sequence_expression":
                exprs.extend(lowered.exprs)
            else:
                exprs.append(lowered)
        return Sequence(exprs=tuple(exprs), loc=self._source_loc(node))

    def _lower_await_expression(self, node) -> Await:
        children = self._named_children(node)
        return Await(operand=self._lower_expr(children[0]), loc=self._source_loc(node))

    def _lower_yield_expression(self, node) -> Yield:
        if any(c.type == "*" for c in node.children):
            raise self._unsupported(node)
        children = self._named_children(node)
        operand = self._lower_expr(children[0]) if children else None
        return Yield(operand=operand, loc=self._source_loc(node))

    # ── member access and calls ──────────────────────────────────

    def _check_no_optional_chain(self, node):
        if any(c.type == "optional_chain" for c in node.children):
            raise self._unsupported(node)

    def _lower_object(self, node) -> Node:
        if node.type == "super":
            raise self._unsupported(node)
        return self._lower_expr(node)

    def _lower_attribute(self, node) -> Node:
        self._check_no_optional_chain(node)
        obj = self._lower_object(node.child_by_field_name("object"))
        prop = node.child_by_field_name("property")
        loc = self._source_loc(node)
        if prop.type == "private_property_identifier":
            return PrivateFieldRef(
                receiver=obj, field_name=self._node_text(prop)[1:], loc=loc
            )
        if prop.type != "property_identifier":
            raise self._unsupported(prop)
        key = Identifier(name=self._node_text(prop), loc=self._source_loc(prop))
        return MemberAccess(object=obj, key=key, computed=False, loc=loc)

    def _lower_js_subscript(self, node) -> MemberAccess:
        self._check_no_optional_chain(node)
        return MemberAccess(
            object=self._lower_object(node.child_by_field_name("object")),
            key=self._lower_expr(node.child_by_field_name("index")),
            computed=True,
            loc=self._source_loc(node),
        )

    def _arg_nodes(self, node) -> list:
        args_node = node.child_by_field_name("arguments")
        if args_node is None:
            return []
        args = self._named_children(args_node)
        for arg in args:
            if arg.type == "spread_element":
                raise self._unsupported(arg)
        return args

    def _call_args(self, node) -> list[Node]:
        return [self._lower_expr(arg) for arg in self._arg_nodes(node)]

    def _lower_call(self, node) -> Node:
        self._check_no_optional_chain(node)
        func_node = node.child_by_field_name("function")
        if func_node.type == "super":
            return SuperCall(
                args=tuple(self._call_args(node)), loc=self._source_loc(node)
            )
        kind = self._marker_kind(func_node)
        if kind is not None:
            return self._lower_marker(kind, node)
        return self._plain_call(node)

    def _lower_new_expression(self, node) -> New:
        constructor_node = node.child_by_field_name("constructor")
        return New(
            callee=self._lower_expr(constructor_node),
            args=tuple(self._call_args(node)),
            loc=self._source_loc(node),
        )

    # ── literals with structure ──────────────────────────────────

    def _lower_list_literal(self, node) -> ArrayLiteral:
        elements = []
        for child in self._named_children(node):
            if child.type == "spread_element":
                raise self._unsupported(child)
            elements.append(self._lower_expr(child))
        return ArrayLiteral(elements=tuple(elements), loc=self._source_loc(node))

    def _lower_js_object_literal(self, node) -> ObjectLiteral:
        entries: list[Property] = []
        for child in self._named_children(node):
            loc = self._source_loc(child)
            if child.type == "pair":
                entries.append(
                    Property(
                        key=self._property_key(child.child_by_field_name("key")),
                        value=self._lower_expr(child.child_by_field_name("value")),
                        loc=loc,
                    )
                )
            elif child.type == "shorthand_property_identifier":
                name = self._node_text(child)
                entries.append(
                    Property(key=name, value=Identifier(name=name, loc=loc), loc=loc)
                )
            else:
                raise self._unsupported(child)
        return ObjectLiteral(entries=tuple(entries), loc=self._source_loc(node))

    def _property_key(self, node) -> str:
        if node.type == "property_identifier":
            return self._node_text(node)
        if node.type == "string":
            return self._lower_string(node).value
        if node.type == "number":
            return str(self._lower_number(node).value)
        raise self._unsupported(node)

    # ── functions ────────────────────────────────────────────────

    def _params(self, params_node) -> tuple[str, ...]:
        if params_node is None:
            return ()
        if params_node.type == "identifier":
            return (self._node_text(params_node),)
        names: list[str] = []
        for child in self._named_children(params_node):
            if child.type != "identifier":
                raise self._unsupported(child)
            names.append(self._node_text(child))
        return tuple(names)

    def _has_token(self, node, token: str) -> bool:
        return any(not c.is_named and c.type == token for c in node.children)

    def _lower_arrow_function(self, node) -> Arrow:
        params_node = node.child_by_field_name(
            "parameters"
        ) or node.child_by_field_name("parameter")
        body_node = node.child_by_field_name("body")
        if body_node.type == "statement_block":
            body: Node = self._lower_statement_block(body_node)
        else:
            body = self._lower_expr(body_node)
        return Arrow(
            params=self._params(params_node),
            body=body,
            is_async=self._has_token(node, "async"),
            loc=self._source_loc(node),
        )

    def _lower_function_def(self, node) -> FunctionDecl:
        return FunctionDecl(
            name=self._node_text(node.child_by_field_name("name")),
            params=self._params(node.child_by_field_name("parameters")),
            body=self._lower_statement_block(node.child_by_field_name("body")),
            is_async=self._has_token(node, "async"),
            is_generator=self._has_token(node, "*"),
            loc=self._source_loc(node),
        )

    # ── statements ───────────────────────────────────────────────

    def _lower_single(self, node) -> Node:
        """Lower a statement in single-statement position (if/while bodies)."""
        lowered = self._lower_stmt(node)
        loc = self._source_loc(node)
        if lowered is None:
            return Block(loc=loc)
        if isinstance(lowered, tuple):
            return Block(body=lowered, loc=loc)
        return lowered

    def _lower_statement_block(self, node) -> Block:
        return Block(body=self._lower_statements(node), loc=self._source_loc(node))

    def _lower_expression_statement(self, node) -> ExprStmt:
        children = self._named_children(node)
        return ExprStmt(expr=self._lower_expr(children[0]), loc=self._source_loc(node))

    def _lower_var_declaration(self, node) -> tuple[Node, ...]:
        """Lower lexical_declaration / variable_declaration."""
        kind = self._node_text(node.children[0])
        decls: list[Node] = []
        for child in node.children:
            if child.type != "variable_declarator":
                continue
            name_node = child.child_by_field_name("name")
            if name_node.type != "identifier":
                raise self._unsupported(name_node)
            value_node = child.child_by_field_name("value")
            decls.append(self._lower_declarator(kind, name_node, value_node, child))
        return tuple(decls)

    def _lower_declarator(self, kind: str, name_node, value_node, node) -> BindingDecl:
        name = self._node_text(name_node)
        loc = self._source_loc(node)
        marker, call = self._marker_call(value_node)
        if marker == constants.MARKER_BINDING:
            args = self._call_args(call)
            if len(args) > 1:
                self._reject(
                    f"'{constants.MARKER_NAME}.{marker}' takes at most one argument",
                    Identifier(name=name, loc=loc),
                )
            return BindingDecl(
                kind=kind,
                name=name,
                init=args[0] if args else None,
                reified=True,
                loc=loc,
            )
        init = self._lower_expr(value_node) if value_node is not None else None
        return BindingDecl(kind=kind, name=name, init=init, loc=loc)

    def _lower_return(self, node) -> Return:
        children = self._named_children(node)
        value = self._lower_expr(children[0]) if children else None
        return Return(value=value, loc=self._source_loc(node))

    def _lower_throw(self, node) -> Throw:
        children = self._named_children(node)
        return Throw(value=self._lower_expr(children[0]), loc=self._source_loc(node))

    def _lower_if(self, node) -> If:
        alternative = node.child_by_field_name("alternative")
        alternate = None
        if alternative is not None:
            if alternative.type == "else_clause":
                alternative = self._named_children(alternative)[0]
            alternate = self._lower_single(alternative)
        return If(
            test=self._lower_expr(node.child_by_field_name("condition")),
            consequent=self._lower_single(node.child_by_field_name("consequence")),
            alternate=alternate,
            loc=self._source_loc(node),
        )

    def _lower_while(self, node) -> While:
        return While(
            test=self._lower_expr(node.child_by_field_name("condition")),
            body=self._lower_single(node.child_by_field_name("body")),
            loc=self._source_loc(node),
        )

    # ── classes ──────────────────────────────────────────────────

    def _lower_class_def(self, node) -> ClassDecl:
        name_node = node.child_by_field_name("name")
        body_node = node.child_by_field_name("body")
        superclass = None
        for child in node.children:
            if child.type == "class_heritage":
                superclass = self._lower_expr(self._named_children(child)[0])
        members: list[Node] = []
        for child in self._named_children(body_node):
            if child.type == "method_definition":
                members.append(self._lower_method_def(child))
            elif child.type == "field_definition":
                members.append(self._lower_field_def(child))
            elif child.type == "class_static_block":
                members.append(self._lower_class_static_block(child))
            else:
                raise self._unsupported(child)
        return ClassDecl(
            name=self._node_text(name_node),
            superclass=superclass,
            body=ClassBody(members=tuple(members), loc=self._source_loc(body_node)),
            loc=self._source_loc(node),
        )

    def _member_name(self, node) -> tuple[str, bool]:
        if node.type == "private_property_identifier":
            return self._node_text(node)[1:], True
        if node.type == "property_identifier":
            return self._node_text(node), False
        raise self._unsupported(node)

    def _lower_method_def(self, node) -> MethodDef:
        for token in ("get", "set", "*"):
            if self._has_token(node, token):
                raise self._unsupported(node)
        name, is_private = self._member_name(node.child_by_field_name("name"))
        return MethodDef(
            name=name,
            params=self._params(node.child_by_field_name("parameters")),
            body=self._lower_statement_block(node.child_by_field_name("body")),
            is_private=is_private,
            is_static=self._has_token(node, "static"),
            is_async=self._has_token(node, "async"),
            loc=self._source_loc(node),
        )

    def _lower_field_def(self, node) -> FieldDef:
        name, is_private = self._member_name(node.child_by_field_name("property"))
        value_node = node.child_by_field_name("value")
        return FieldDef(
            name=name,
            is_private=is_private,
            is_static=self._has_token(node, "static"),
            value=self._lower_expr(value_node) if value_node is not None else None,
            loc=self._source_loc(node),
        )

    def _lower_class_static_block(self, node) -> StaticBlock:
        """Lower ``static { ... }``; export/import markers stay in place."""
        body_node = node.child_by_field_name("body")
        body: list[Node] = []
        for child in body_node.children:
            if not child.is_named or child.type in self.COMMENT_TYPES:
                continue
            marker = None
            if child.type == "expression_statement":
                marker, call = self._marker_call(self._named_children(child)[0])
            if marker in (constants.MARKER_EXPORT, constants.MARKER_IMPORT):
                stmt = self._lower_class_marker(marker, call)
                if stmt is not None:
                    body.append(stmt)
                continue
            lowered = self._lower_stmt(child)
            if lowered is not None:
                body.extend(lowered if isinstance(lowered, tuple) else (lowered,))
        return StaticBlock(body=tuple(body), loc=self._source_loc(node))
