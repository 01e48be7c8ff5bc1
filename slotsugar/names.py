"""Temporary name allocation for hygienic rewrites."""

from __future__ import annotations

import logging

from . import constants

logger = logging.getLogger(__name__)


class TempNameAllocator:
    """Issues synthetic identifiers from a single monotonic counter.

    One allocator serves a whole compilation unit, so a name is never issued
    twice within it. Every issued name carries the reserved prefix, which
    source identifiers are not allowed to use.
    """

    def __init__(self):
        self._counter: int = 0
        self._issued: list[str] = []

    def fresh(self, hint: str = "t") -> str:
        name = constants.TEMP_NAME_TEMPLATE.format(hint=_sanitize(hint), n=self._counter)
        self._counter += 1
        self._issued.append(name)
        logger.debug("Allocated temporary %s", name)
        return name

    @property
    def issued(self) -> tuple[str, ...]:
        return tuple(self._issued)


def is_reserved(name: str) -> bool:
    return name.startswith(constants.RESERVED_PREFIX)


def _sanitize(hint: str) -> str:
    cleaned = "".join(ch for ch in hint if ch.isalnum() or ch == "_")
    return cleaned or "t"
