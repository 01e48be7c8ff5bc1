"""Rejection taxonomy and the engine's tagged result."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel

from .nodes import NO_SOURCE_LOCATION, Node, Program, SourceLocation


class RejectionKind(str, Enum):
    MALFORMED_TARGET = "MalformedTarget"
    UNSAFE_EXTRACTION = "UnsafeExtraction"


class Rejection(BaseModel):
    """A compile-time rejection naming the offending location."""

    kind: RejectionKind
    message: str
    location: SourceLocation = NO_SOURCE_LOCATION

    def __str__(self) -> str:
        return f"{self.location}: {self.kind.value}: {self.message}"


class TargetRejected(Exception):
    """Raised at the offending node; collected by the enclosing transformer."""

    def __init__(self, rejection: Rejection):
        super().__init__(str(rejection))
        self.rejection = rejection

    @classmethod
    def malformed(cls, message: str, node: Node | None = None) -> TargetRejected:
        return cls(_rejection(RejectionKind.MALFORMED_TARGET, message, node))

    @classmethod
    def unsafe(cls, message: str, node: Node | None = None) -> TargetRejected:
        return cls(_rejection(RejectionKind.UNSAFE_EXTRACTION, message, node))


class OutputInvariantError(RuntimeError):
    """The rewritten tree violates a structural guarantee of the engine."""


def malformed(message: str, node: Node | None = None) -> Rejection:
    return _rejection(RejectionKind.MALFORMED_TARGET, message, node)


def _rejection(kind: RejectionKind, message: str, node: Node | None) -> Rejection:
    location = node.loc if node is not None else NO_SOURCE_LOCATION
    return Rejection(kind=kind, message=message, location=location)


def dedupe(rejections: list[Rejection]) -> list[Rejection]:
    """Drop repeated reports of the same problem, keeping first-seen order."""
    seen: set[tuple[RejectionKind, str, str]] = set()
    unique: list[Rejection] = []
    for rejection in rejections:
        key = (rejection.kind, rejection.message, str(rejection.location))
        if key in seen:
            continue
        seen.add(key)
        unique.append(rejection)
    return unique


@dataclass(frozen=True)
class RewriteResult:
    """Either a rewritten tree or every rejection found in the unit."""

    tree: Program | None = None
    rejections: tuple[Rejection, ...] = ()

    @property
    def ok(self) -> bool:
        return self.tree is not None

    @classmethod
    def success(cls, tree: Program) -> RewriteResult:
        return cls(tree=tree)

    @classmethod
    def rejected(cls, rejections: list[Rejection]) -> RewriteResult:
        return cls(rejections=tuple(rejections))
