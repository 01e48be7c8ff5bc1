"""Tree-sitter frontends lowering host source into the slot syntax tree."""

from __future__ import annotations

import importlib

from ._base import BaseFrontend, UnsupportedSyntaxError

# Lazy imports to avoid loading every grammar binding at startup
_FRONTEND_CLASSES: dict[str, str] = {
    "javascript": "javascript.JavaScriptFrontend",
}


def get_frontend(language: str) -> BaseFrontend:
    """Instantiate the frontend for *language*.

    Raises ``ValueError`` if *language* has no registered frontend.
    """
    spec = _FRONTEND_CLASSES.get(language)
    if spec is None:
        raise ValueError(f"Unsupported language: {language}")
    module_name, class_name = spec.split(".")
    mod = importlib.import_module(f".{module_name}", package=__package__)
    cls = getattr(mod, class_name)
    return cls()


SUPPORTED_LANGUAGES: tuple[str, ...] = tuple(_FRONTEND_CLASSES.keys())

__all__ = [
    "BaseFrontend",
    "UnsupportedSyntaxError",
    "get_frontend",
    "SUPPORTED_LANGUAGES",
]
