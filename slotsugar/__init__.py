"""Slot sugar — first-class references to assignable locations for JavaScript."""

from .engine import EngineConfig, RewriteEngine  # noqa: F401
from .errors import Rejection, RejectionKind, RewriteResult  # noqa: F401
from .api import (  # noqa: F401
    RewriteRejectedError,
    parse_source,
    render_source,
    rewrite_program,
    rewrite_source,
    run_program,
    run_source,
)
