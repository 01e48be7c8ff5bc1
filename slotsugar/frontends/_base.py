"""BaseFrontend — tree-sitter AST → slot syntax tree lowering infrastructure."""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import Rejection, malformed
from ..nodes import NO_SOURCE_LOCATION, Node, Program, SourceLocation

logger = logging.getLogger(__name__)


class UnsupportedSyntaxError(ValueError):
    """Source uses a construct outside the supported host subset."""

    def __init__(self, node_type: str, location: SourceLocation = NO_SOURCE_LOCATION):
        super().__init__(f"{location}: unsupported syntax: {node_type}")
        self.node_type = node_type
        self.location = location


class BaseFrontend:
    """Base class for tree-sitter frontends.

    Subclasses populate ``_STMT_DISPATCH`` and ``_EXPR_DISPATCH`` tables keyed
    by tree-sitter node type. Misused slot markers are recorded in
    ``rejections`` and lowering continues, so a unit reports every problem at
    once; constructs outside the subset raise ``UnsupportedSyntaxError``.
    """

    COMMENT_TYPES: frozenset[str] = frozenset({"comment"})
    NOISE_TYPES: frozenset[str] = frozenset({";", "empty_statement"})

    PAREN_EXPR_TYPE: str = "parenthesized_expression"

    # ── init ─────────────────────────────────────────────────────

    def __init__(self):
        self._source: bytes = b""
        self.rejections: list[Rejection] = []
        self._STMT_DISPATCH: dict[str, Callable] = {}
        self._EXPR_DISPATCH: dict[str, Callable] = {}

    # ── helpers ──────────────────────────────────────────────────

    def _node_text(self, node) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8")

    def _source_loc(self, node) -> SourceLocation:
        s, e = node.start_point, node.end_point
        return SourceLocation(
            start_line=s[0] + 1,
            start_col=s[1],
            end_line=e[0] + 1,
            end_col=e[1],
        )

    def _named_children(self, node) -> list:
        return [
            c
            for c in node.children
            if c.is_named and c.type not in self.COMMENT_TYPES
        ]

    def _reject(self, message: str, node: Node) -> Rejection:
        rejection = malformed(message, node)
        logger.debug("Frontend rejection: %s", rejection)
        self.rejections.append(rejection)
        return rejection

    def _unsupported(self, node) -> UnsupportedSyntaxError:
        return UnsupportedSyntaxError(node.type, self._source_loc(node))

    # ── entry point ──────────────────────────────────────────────

    def lower(self, tree, source: bytes) -> Program:
        self._source = source
        self.rejections = []
        root = tree.root_node
        if root.has_error:
            raise UnsupportedSyntaxError("ERROR", self._first_error(root))
        body = self._lower_statements(root)
        logger.info(
            "Lowered %d top-level statements (%d marker rejections)",
            len(body),
            len(self.rejections),
        )
        return Program(body=body, loc=self._source_loc(root))

    def _first_error(self, node) -> SourceLocation:
        if node.type == "ERROR" or node.is_missing:
            return self._source_loc(node)
        for child in node.children:
            if child.has_error:
                return self._first_error(child)
        return self._source_loc(node)

    # ── dispatchers ──────────────────────────────────────────────

    def _lower_statements(self, node) -> tuple[Node, ...]:
        out: list[Node] = []
        for child in node.children:
            if not child.is_named:
                continue
            lowered = self._lower_stmt(child)
            if lowered is None:
                continue
            out.extend(lowered if isinstance(lowered, tuple) else (lowered,))
        return tuple(out)

    def _lower_stmt(self, node):
        ntype = node.type
        if ntype in self.COMMENT_TYPES or ntype in self.NOISE_TYPES:
            return None
        handler = self._STMT_DISPATCH.get(ntype)
        if handler is None:
            raise self._unsupported(node)
        return handler(node)

    def _lower_expr(self, node) -> Node:
        handler = self._EXPR_DISPATCH.get(node.type)
        if handler is None:
            raise self._unsupported(node)
        return handler(node)

    def _lower_paren(self, node) -> Node:
        inner = self._named_children(node)
        if len(inner) != 1:
            raise self._unsupported(node)
        return self._lower_expr(inner[0])
