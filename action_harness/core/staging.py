from __future__ import annotations

import base64
import binascii
import subprocess
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Sequence

from action_harness.core.config import HarnessConfig
from action_harness.core.errors import ArchiveExtractError, ArchiveWriteError
from action_harness.core.logging import get_logger, log_event

ARCHIVE_FILENAME = "action.zip"
_STAGING_PREFIX = "action-"

logger = get_logger(__name__)


def stage_archive(code: str, config: HarnessConfig) -> Path:
    """
    Materialize a base64 zip archive and return the extracted directory.

    Two fresh directories are created, one holding the raw archive and one
    holding its contents. Neither is removed afterwards.
    """
    archive_path = _write_archive(code, config)
    output_dir = _make_temp_dir(config, error=ArchiveExtractError)

    if config.extractor == "zipfile":
        _extract_in_process(archive_path, output_dir)
    else:
        _extract_with_command(config.unzip_command, archive_path, output_dir)

    staged = output_dir.resolve()
    log_event(logger, "archive.staged", archive=str(archive_path), path=str(staged))
    return staged


def _write_archive(code: str, config: HarnessConfig) -> Path:
    try:
        payload = base64.b64decode("".join(code.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ArchiveWriteError(
            message="There was an error reading the action archive.",
            detail=str(exc),
        ) from exc

    temp_dir = _make_temp_dir(config, error=ArchiveWriteError)
    archive_path = temp_dir / ARCHIVE_FILENAME
    try:
        archive_path.write_bytes(payload)
    except OSError as exc:
        raise ArchiveWriteError(
            message="There was an error reading the action archive.",
            detail=str(exc),
        ) from exc
    return archive_path


def _make_temp_dir(
    config: HarnessConfig,
    *,
    error: type[ArchiveWriteError] | type[ArchiveExtractError],
) -> Path:
    root = config.staging_root
    try:
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=root))
    except OSError as exc:
        raise error(
            message="Unable to create a staging directory.",
            detail=str(exc),
        ) from exc


def _extract_with_command(
    command: Sequence[str],
    archive_path: Path,
    output_dir: Path,
) -> None:
    argv = [*command, str(archive_path), "-d", str(output_dir)]
    try:
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise ArchiveExtractError(
            message="There was an error uncompressing the action archive.",
            detail=str(exc),
        ) from exc

    if completed.returncode != 0:
        raise ArchiveExtractError(
            message="There was an error uncompressing the action archive.",
            detail=completed.stderr.strip() or f"exit code {completed.returncode}",
        )


def _extract_in_process(archive_path: Path, output_dir: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path, "r") as archive:
            _validate_member_names(archive.namelist())
            archive.extractall(output_dir)
    except ArchiveExtractError:
        raise
    except (zipfile.BadZipFile, OSError, ValueError) as exc:
        raise ArchiveExtractError(
            message="There was an error uncompressing the action archive.",
            detail=str(exc),
        ) from exc


def _validate_member_names(names: Sequence[str]) -> None:
    for name in names:
        if not is_safe_member_name(name):
            raise ArchiveExtractError(
                message="Archive contains unsafe paths.",
                detail=name,
            )


def is_safe_member_name(name: str) -> bool:
    normalized = name.replace("\\", "/")
    if not normalized or normalized.startswith("/"):
        return False
    path = PurePosixPath(normalized)
    if path.parts and path.parts[0].endswith(":"):
        return False
    return ".." not in path.parts
