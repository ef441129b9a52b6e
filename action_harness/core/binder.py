from __future__ import annotations

import types
from typing import Any, Callable

from action_harness.core.errors import (
    PROPAGATED,
    EntryPointNotCallable,
    ModuleLoadError,
    wrap_error,
)
from action_harness.core.loaders import ModuleLoader

_MISSING = object()


def bind_callable(
    loader: ModuleLoader,
    symbol: str,
    specifier: str,
) -> Callable[[Any], Any]:
    """
    Load the module and resolve a dotted symbol path against it.

    The result must be callable; anything else (including a missing name)
    is reported against the handler specifier the caller supplied. Errors
    raised by attribute access along the path are load failures.
    """
    module = loader.load()
    try:
        target = resolve_symbol(module, symbol)
    except PROPAGATED:
        raise
    except BaseException as exc:
        raise wrap_error(
            exc,
            kind=ModuleLoadError,
            message=f"Failed to resolve action entrypoint '{specifier}'.",
        ) from exc
    if target is _MISSING or not callable(target):
        raise EntryPointNotCallable(
            message=f"Action entrypoint '{specifier}' is not a function.",
        )
    return target


def resolve_symbol(module: types.ModuleType, symbol: str) -> Any:
    current: Any = module
    for part in symbol.split("."):
        if not part:
            return _MISSING
        current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return _MISSING
    return current
