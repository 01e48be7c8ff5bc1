"""Command-line entry point: rewrite (and optionally run) a source file."""

from __future__ import annotations

import argparse
import logging
import sys

from .api import rewrite_source, run_program
from .engine import EngineConfig, RewriteEngine
from .errors import RewriteResult
from .frontends import SUPPORTED_LANGUAGES, UnsupportedSyntaxError
from .render import render
from .runtime import EvaluationError, ThrownValue, to_display
from . import constants

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_UNSUPPORTED = 2
EXIT_RUNTIME_ERROR = 3

DEMO_SOURCE = """\
class Counter {
  #count = 0;
  static { slot.export(this.#count); }
  value() { return this.#count; }
}

class Doubler extends Counter {
  static { slot.import(this.#count); }
  bump() { this.#count += 2; return this; }
}

let total = slot.binding(10);
const t = slot(total);
t.poke(t.peek() + 5);

const d = new Doubler().bump().bump();
console.log(total, d.value());
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slotsugar",
        description="Rewrite slot markers into plain JavaScript",
    )
    parser.add_argument("file", nargs="?", help="Source file to rewrite")
    parser.add_argument(
        "--language",
        "-l",
        default=constants.LANGUAGE_JAVASCRIPT,
        choices=list(SUPPORTED_LANGUAGES),
        help="Source language (default: javascript)",
    )
    parser.add_argument(
        "--tree",
        action="store_true",
        help="Print the rewritten syntax tree as JSON instead of source",
    )
    parser.add_argument(
        "--run",
        action="store_true",
        help="Evaluate the rewritten program and print its console output",
    )
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Emit slot records without Object.freeze",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print rewrite statistics",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _print_rejections(result: RewriteResult):
    print(f"═══ {len(result.rejections)} rejection(s) ═══", file=sys.stderr)
    for rejection in result.rejections:
        print(f"  {rejection}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if not args.file:
        source = DEMO_SOURCE
        print("No file provided. Using built-in demo:\n")
        print(source)
    else:
        with open(args.file) as f:
            source = f.read()

    engine = RewriteEngine(EngineConfig(lock_slots=not args.no_lock))
    try:
        result = rewrite_source(source, args.language, engine=engine)
    except UnsupportedSyntaxError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_UNSUPPORTED
    if args.stats:
        print(engine.stats.report())
    if not result.ok:
        _print_rejections(result)
        return EXIT_REJECTED

    if args.tree:
        print(result.tree.model_dump_json(indent=2, serialize_as_any=True))
    else:
        print(render(result.tree))

    if args.run:
        try:
            value, output = run_program(result.tree)
        except (EvaluationError, ThrownValue) as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_RUNTIME_ERROR
        print("\n═══ Output ═══")
        for line in output:
            print(f"  {line}")
        print(f"  => {to_display(value)}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
