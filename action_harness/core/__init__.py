from .errors import (
    ArchiveExtractError,
    ArchiveWriteError,
    EntryPointNotCallable,
    HarnessError,
    InvalidHandlerSpecifier,
    InvalidInitMessage,
    InvalidStateTransition,
    MissingModuleRoot,
    ModuleLoadError,
)
from .handler import HandlerSpec, parse_handler
from .outcome import Fault, Rejection, Value, normalize
from .runner import ActionRunner, InitMessage, RunnerState

__all__ = [
    "ActionRunner",
    "ArchiveExtractError",
    "ArchiveWriteError",
    "EntryPointNotCallable",
    "Fault",
    "HandlerSpec",
    "HarnessError",
    "InitMessage",
    "InvalidHandlerSpecifier",
    "InvalidInitMessage",
    "InvalidStateTransition",
    "MissingModuleRoot",
    "ModuleLoadError",
    "Rejection",
    "RunnerState",
    "Value",
    "normalize",
    "parse_handler",
]
