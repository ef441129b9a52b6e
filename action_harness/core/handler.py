from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

from action_harness.core.config import HarnessConfig
from action_harness.core.errors import (
    InvalidHandlerSpecifier,
    MissingModuleRoot,
    ModuleLoadError,
)
from action_harness.core.staging import is_safe_member_name

# "main" or "module.path.to.main"; the module part ends at the first dot.
HANDLER_RE = re.compile(r"(?P<bare>[^.]+)|(?P<module>[^.]+)\.(?P<symbol>.+)", re.DOTALL)


@dataclass(frozen=True, slots=True)
class HandlerSpec:
    module: str | None
    symbol: str


def parse_handler(specifier: str) -> HandlerSpec:
    """Split a handler specifier into its module locator and symbol path."""
    match = HANDLER_RE.fullmatch(specifier) if isinstance(specifier, str) else None
    if match is None:
        raise InvalidHandlerSpecifier(
            message="Name of main function is not valid.",
            detail=repr(specifier),
        )

    bare = match.group("bare")
    if bare is not None:
        return HandlerSpec(module=None, symbol=bare)
    return HandlerSpec(module=match.group("module"), symbol=match.group("symbol"))


def resolve_module_path(
    staged_dir: Path,
    handler: HandlerSpec,
    config: HarnessConfig,
) -> Path:
    if handler.module is not None:
        return _resolve_named_module(staged_dir, handler.module)
    return _resolve_module_root(staged_dir, config)


def _resolve_named_module(staged_dir: Path, module: str) -> Path:
    for candidate in (staged_dir / f"{module}.py", staged_dir / module / "__init__.py"):
        if candidate.is_file() and _is_inside(staged_dir, candidate):
            return candidate
    raise ModuleLoadError(
        message=f"Cannot find module '{module}'.",
        detail=str(staged_dir / module),
    )


def _resolve_module_root(staged_dir: Path, config: HarnessConfig) -> Path:
    manifest = staged_dir / config.manifest_name
    default_entry = staged_dir / config.default_entry

    if not manifest.is_file() and not default_entry.is_file():
        raise MissingModuleRoot(
            message=(
                f"Zipped actions must contain either {config.manifest_name} "
                f"or {config.default_entry} at the root."
            ),
        )

    entry = default_entry
    if manifest.is_file() and config.honor_manifest_entry:
        declared = _read_manifest_entry(manifest)
        if declared is not None:
            entry = staged_dir / declared

    if not _is_inside(staged_dir, entry):
        raise ModuleLoadError(
            message="Manifest 'entrypoint' must stay inside the action archive.",
            detail=str(entry),
        )
    if not entry.is_file():
        raise ModuleLoadError(
            message="Cannot find the action entry file.",
            detail=str(entry),
        )
    return entry


def _is_inside(staged_dir: Path, candidate: Path) -> bool:
    # Symlinked members are followed before comparing.
    return candidate.resolve().is_relative_to(staged_dir.resolve())


def _read_manifest_entry(manifest: Path) -> str | None:
    try:
        payload = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ModuleLoadError(
            message=f"Unable to read {manifest.name}.",
            detail=str(exc),
        ) from exc

    if not isinstance(payload, dict):
        raise ModuleLoadError(
            message=f"{manifest.name} must contain a JSON object.",
        )

    entry = payload.get("entrypoint")
    if entry is None:
        return None
    if not isinstance(entry, str) or not entry.strip():
        raise ModuleLoadError(
            message=f"Manifest 'entrypoint' in {manifest.name} must be a non-empty string.",
        )
    if not is_safe_member_name(entry):
        raise ModuleLoadError(
            message="Manifest 'entrypoint' must stay inside the action archive.",
            detail=entry,
        )
    return entry.replace("\\", "/")
