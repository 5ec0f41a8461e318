"""General utility functions for loading objects by dotted path."""

import sys
from importlib import import_module
from typing import Any

__all__ = ("import_string",)


def _is_loaded(module_path: str) -> bool:
    module = sys.modules.get(module_path)
    spec = getattr(module, "__spec__", None)
    return bool(spec is not None and getattr(spec, "_initializing", False) is False)


def _cached_import(module_path: str, attribute: str) -> Any:
    if not _is_loaded(module_path):
        import_module(module_path)
    return getattr(sys.modules[module_path], attribute)


def import_string(dotted_path: str) -> Any:
    """Import an object by dotted path.

    Accepts both ``package.module.attribute`` and ``package.module:attribute``.

    Args:
        dotted_path: The path of the object to import.

    Raises:
        ImportError: If the module or the attribute cannot be found.

    Returns:
        The imported object.
    """
    if ":" in dotted_path:
        module_path, _, attribute = dotted_path.partition(":")
    else:
        module_path, _, attribute = dotted_path.rpartition(".")
    if not module_path or not attribute:
        msg = f"{dotted_path!r} doesn't look like a module path"
        raise ImportError(msg)
    try:
        return _cached_import(module_path, attribute)
    except AttributeError as exc:
        msg = f"Module {module_path!r} does not define a {attribute!r} attribute"
        raise ImportError(msg) from exc
