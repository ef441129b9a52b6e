from __future__ import annotations

import base64
import io
import sys
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from action_harness.core.config import HarnessConfig, get_harness_config
from action_harness.core.runner import ActionRunner


def build_archive(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch):
    # Archive loads prepend staged directories to sys.path.
    monkeypatch.setattr(sys, "path", list(sys.path))
    get_harness_config.cache_clear()
    yield
    get_harness_config.cache_clear()


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    return HarnessConfig(staging_root=tmp_path / "staging", extractor="zipfile")


@pytest.fixture
def runner(config: HarnessConfig) -> ActionRunner:
    return ActionRunner(config=config)


@pytest.fixture
def make_archive() -> Callable[[dict[str, str]], str]:
    def _make(files: dict[str, str]) -> str:
        return base64.b64encode(build_archive(files)).decode("ascii")

    return _make
