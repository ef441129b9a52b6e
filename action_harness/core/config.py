from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ACTION_", case_sensitive=False)

    staging_root: Path | None = None
    extractor: Literal["unzip", "zipfile"] = "unzip"
    unzip_command: list[str] = Field(default_factory=lambda: ["unzip", "-qq"])
    manifest_name: str = "manifest.json"
    default_entry: str = "__main__.py"
    honor_manifest_entry: bool = True
    log_level: str = "info"
    log_format: str = "json"


@lru_cache
def get_harness_config() -> HarnessConfig:
    return HarnessConfig()
