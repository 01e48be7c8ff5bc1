"""Named constants — eliminates magic strings across the codebase."""

from __future__ import annotations

# ── marker spellings (frontend) ──────────────────────────────────

MARKER_NAME = "slot"
MARKER_UNBOUND = "unbound"
MARKER_BINDING = "binding"
MARKER_EXPORT = "export"
MARKER_IMPORT = "import"

# ── generated names ──────────────────────────────────────────────

RESERVED_PREFIX = "$$"
TEMP_NAME_TEMPLATE = RESERVED_PREFIX + "{hint}_{n}"

FREEZE_HINT = "freeze"
RECEIVER_HINT = "recv"
KEY_HINT = "key"
CELL_HINT = "cell"
VALUE_HINT = "v"
OLD_VALUE_HINT = "old"
NUMERIC_HINT = "n"
ASSIGNED_HINT = "rhs"
TARGET_HINT = "obj"

# ── slot descriptor shape ────────────────────────────────────────

PEEK = "peek"
POKE = "poke"

FREEZE_OWNER = "Object"
FREEZE_METHOD = "freeze"

# ── host language ────────────────────────────────────────────────

LANGUAGE_JAVASCRIPT = "javascript"

LEXICAL_KINDS: frozenset[str] = frozenset({"let", "const"})
IMMUTABLE_KINDS: frozenset[str] = frozenset({"const", "import"})

LOGICAL_OPERATORS: frozenset[str] = frozenset({"&&", "||", "??"})
DYNAMIC_EVAL_NAME = "eval"
