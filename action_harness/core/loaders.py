from __future__ import annotations

import importlib.util
import sys
import types
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from action_harness.core.errors import PROPAGATED, ModuleLoadError, wrap_error

INLINE_FILENAME = "<action>"


class ModuleLoader(Protocol):
    def load(self) -> types.ModuleType: ...


def _unique_module_name() -> str:
    return f"_action_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ArchiveModuleLoader:
    """
    Import a module file from a staged archive under a fresh module name.

    Sibling modules imported while the entry module executes are dropped from
    ``sys.modules`` afterwards, so a later archive that ships a module with the
    same name gets its own copy instead of this one.
    """

    path: Path
    search_root: Path

    def load(self) -> types.ModuleType:
        name = _unique_module_name()
        locations = [str(self.path.parent)] if self.path.name == "__init__.py" else None

        spec = importlib.util.spec_from_file_location(
            name,
            self.path,
            submodule_search_locations=locations,
        )
        if spec is None or spec.loader is None:
            raise ModuleLoadError(
                message=f"Unable to load module from {self.path.name}.",
                detail=str(self.path),
            )

        root = str(self.search_root)
        if root in sys.path:
            sys.path.remove(root)
        sys.path.insert(0, root)

        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except PROPAGATED:
            sys.modules.pop(name, None)
            raise
        except BaseException as exc:
            sys.modules.pop(name, None)
            raise wrap_error(
                exc,
                kind=ModuleLoadError,
                message=f"Failed to load module {self.path.name}.",
            ) from exc
        finally:
            _evict_staged_modules(self.search_root, keep=name)
        return module


def _evict_staged_modules(root: Path, *, keep: str) -> None:
    # __file__ follows the sys.path entry, which may be unresolved.
    roots = {root, root.resolve()}
    for module_name, module in list(sys.modules.items()):
        if module_name == keep or module_name.startswith(f"{keep}."):
            continue
        if any(_is_under(location, roots) for location in _module_locations(module)):
            sys.modules.pop(module_name, None)


def _module_locations(module: object) -> Iterable[str]:
    location = getattr(module, "__file__", None)
    if location:
        return [location]
    # Namespace packages carry only a search path.
    try:
        return [str(entry) for entry in getattr(module, "__path__", None) or ()]
    except TypeError:
        return []


def _is_under(location: str, roots: set[Path]) -> bool:
    path = Path(location)
    return any(path.is_relative_to(root) for root in roots)


@dataclass(frozen=True)
class InlineSourceLoader:
    """Evaluate source text inside a fresh, isolated module namespace."""

    source: str

    def load(self) -> types.ModuleType:
        module = types.ModuleType(_unique_module_name())
        module.__file__ = INLINE_FILENAME
        try:
            code = compile(self.source, INLINE_FILENAME, "exec")
            exec(code, module.__dict__)
        except PROPAGATED:
            raise
        except BaseException as exc:
            raise wrap_error(
                exc,
                kind=ModuleLoadError,
                message="Failed to evaluate action source.",
            ) from exc
        return module
