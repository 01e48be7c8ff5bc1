"""Composable API functions for the slot rewrite pipeline.

Each function corresponds to a CLI workflow (--tree, default rewrite, --run)
but is callable programmatically without argparse.
"""

from __future__ import annotations

import logging
from typing import Any

from .engine import EngineConfig, RewriteEngine
from .errors import RewriteResult, dedupe
from .evaluator import Evaluator
from .frontends import get_frontend
from .nodes import Program
from .parser import Parser, TreeSitterParserFactory
from .render import render
from . import constants

logger = logging.getLogger(__name__)


class RewriteRejectedError(ValueError):
    """The unit could not be rewritten; ``result.rejections`` says why."""

    def __init__(self, result: RewriteResult):
        lines = "\n".join(f"  {r}" for r in result.rejections)
        super().__init__(f"{len(result.rejections)} rejection(s):\n{lines}")
        self.result = result


def parse_source(
    source: str, language: str = constants.LANGUAGE_JAVASCRIPT
) -> tuple[Program, list]:
    """Parse and lower source text to the slot syntax tree.

    Args:
        source: The source code text.
        language: Source language name (only "javascript" is registered).

    Returns:
        The lowered program and the marker rejections found while lowering.

    Raises:
        UnsupportedSyntaxError: the source leaves the supported subset.
    """
    logger.info("Parsing source (%s, %d bytes)", language, len(source))
    frontend = get_frontend(language)
    tree = Parser(TreeSitterParserFactory()).parse(source, language)
    program = frontend.lower(tree, source.encode("utf-8"))
    return program, list(frontend.rejections)


def rewrite_program(
    program: Program, config: EngineConfig | None = None
) -> RewriteResult:
    """Run the rewrite engine over an already lowered program."""
    return RewriteEngine(config).rewrite(program)


def rewrite_source(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    config: EngineConfig | None = None,
    engine: RewriteEngine | None = None,
) -> RewriteResult:
    """Parse *source* and rewrite every slot marker in it.

    Marker misuse found by the frontend is reported together with the
    engine's own rejections; the result carries a tree only when there are
    none at all. Pass *engine* to read its ``stats`` afterwards; *config* is
    ignored when an engine is given.
    """
    program, frontend_rejections = parse_source(source, language)
    engine = engine or RewriteEngine(config)
    result = engine.rewrite(program)
    if not frontend_rejections:
        return result
    merged = dedupe(frontend_rejections + list(result.rejections))
    engine.stats.rejections = len(merged)
    return RewriteResult.rejected(merged)


def render_source(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    config: EngineConfig | None = None,
) -> str:
    """Rewrite *source* and render the result as JavaScript.

    Raises:
        RewriteRejectedError: the unit had at least one rejection.
    """
    result = rewrite_source(source, language, config)
    if not result.ok:
        raise RewriteRejectedError(result)
    return render(result.tree)


def run_program(program: Program) -> tuple[Any, list[str]]:
    """Evaluate a marker-free program with the reference evaluator.

    Returns:
        The completion value of the last top-level expression statement and
        the lines written through ``console.log``.
    """
    evaluator = Evaluator()
    value = evaluator.run(program)
    return value, evaluator.output


def run_source(
    source: str,
    language: str = constants.LANGUAGE_JAVASCRIPT,
    config: EngineConfig | None = None,
) -> tuple[Any, list[str]]:
    """Rewrite *source*, then evaluate the rewritten program."""
    result = rewrite_source(source, language, config)
    if not result.ok:
        raise RewriteRejectedError(result)
    logger.info("Running rewritten program")
    return run_program(result.tree)

