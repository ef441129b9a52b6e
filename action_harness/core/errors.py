from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

E = TypeVar("E", bound="HarnessError")


@dataclass
class HarnessError(Exception):
    message: str
    detail: str | None = None

    code: ClassVar[str] = "harness_error"

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class InvalidInitMessage(HarnessError):
    code = "invalid_init_message"


class ArchiveWriteError(HarnessError):
    code = "archive_write_failed"


class ArchiveExtractError(HarnessError):
    code = "archive_extract_failed"


class InvalidHandlerSpecifier(HarnessError):
    code = "invalid_handler"


class MissingModuleRoot(HarnessError):
    code = "missing_module_root"


class ModuleLoadError(HarnessError):
    code = "module_load_failed"


class EntryPointNotCallable(HarnessError):
    code = "entrypoint_not_callable"


class InvalidStateTransition(HarnessError):
    code = "invalid_state"


def format_error(error: BaseException) -> str:
    if isinstance(error, HarnessError):
        return f"[{error.code}] {error}"
    return f"{error}"


def wrap_error(
    error: BaseException,
    *,
    kind: type[E],
    message: str,
) -> HarnessError:
    if isinstance(error, HarnessError):
        return error
    detail = str(error) or type(error).__name__
    return kind(message=message, detail=detail)


# Never captured as action faults or load failures.
PROPAGATED = (asyncio.CancelledError, KeyboardInterrupt)
