from __future__ import annotations

import inspect
from enum import Enum, auto
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, ValidationError

from action_harness.core.binder import bind_callable
from action_harness.core.config import HarnessConfig, get_harness_config
from action_harness.core.errors import (
    PROPAGATED,
    HarnessError,
    InvalidInitMessage,
    InvalidStateTransition,
)
from action_harness.core.handler import parse_handler, resolve_module_path
from action_harness.core.loaders import ArchiveModuleLoader, InlineSourceLoader
from action_harness.core.logging import get_logger, log_event
from action_harness.core.outcome import Fault, Outcome, Value, normalize
from action_harness.core.staging import stage_archive

logger = get_logger(__name__)


class RunnerState(Enum):
    """
    Lifecycle of a single runner instance.
    """

    UNINITIALIZED = auto()  # Nothing bound yet
    BOUND = auto()          # Callable bound, runs accepted
    FAILED = auto()         # init failed, instance unusable


class InitMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    binary: StrictBool = False
    code: StrictStr
    main: StrictStr


class ActionRunner:
    """
    Holds exactly one user callable and invokes it per request.
    """

    def __init__(self, config: HarnessConfig | None = None) -> None:
        self.config = config or get_harness_config()
        self.state: RunnerState = RunnerState.UNINITIALIZED
        self._main: Callable[[Any], Any] | None = None
        self._handler: str | None = None

    @property
    def handler(self) -> str | None:
        return self._handler

    # -------------------------
    # Initialization
    # -------------------------

    def init(self, message: InitMessage | Mapping[str, Any]) -> bool:
        """
        Bind the action's entry point. Returns True once bound.

        Failures are raised, as a HarnessError unless interrupted, and leave
        the runner in FAILED; the caller is expected to discard it.
        """
        if self.state is not RunnerState.UNINITIALIZED:
            raise InvalidStateTransition(
                message="Action has already been initialized.",
                detail=self.state.name,
            )

        try:
            parsed = self._parse_message(message)
            if parsed.binary:
                main = self._bind_archive(parsed)
            else:
                main = bind_callable(
                    InlineSourceLoader(parsed.code),
                    parsed.main,
                    parsed.main,
                )
        except HarnessError as exc:
            self.state = RunnerState.FAILED
            log_event(logger, "action.init_failed", code=exc.code, error=str(exc))
            raise
        except BaseException as exc:
            self.state = RunnerState.FAILED
            log_event(
                logger,
                "action.init_failed",
                code=None,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise

        self._main = main
        self._handler = parsed.main
        self.state = RunnerState.BOUND
        log_event(logger, "action.init", binary=parsed.binary, main=parsed.main)
        return True

    def _parse_message(self, message: InitMessage | Mapping[str, Any]) -> InitMessage:
        if isinstance(message, InitMessage):
            return message
        try:
            return InitMessage.model_validate(message)
        except ValidationError as exc:
            raise InvalidInitMessage(
                message="Initialization message is malformed.",
                detail="; ".join(
                    f"{'.'.join(str(p) for p in err['loc']) or 'message'}: {err['msg']}"
                    for err in exc.errors()
                ),
            ) from exc

    def _bind_archive(self, message: InitMessage) -> Callable[[Any], Any]:
        staged_dir = stage_archive(message.code, self.config)
        handler = parse_handler(message.main)
        module_path = resolve_module_path(staged_dir, handler, self.config)
        loader = ArchiveModuleLoader(path=module_path, search_root=staged_dir)
        return bind_callable(loader, handler.symbol, message.main)

    # -------------------------
    # Invocation
    # -------------------------

    async def run(self, args: Any) -> Any:
        """
        Invoke the bound callable once and return its result envelope.

        Faults raised by the callable, synchronously or from an awaitable,
        are returned as ``{"error": ...}``, ``SystemExit`` included. Only
        cancellation and ``KeyboardInterrupt`` propagate.
        """
        main = self._main
        if self.state is not RunnerState.BOUND or main is None:
            raise InvalidStateTransition(
                message="Action has not been initialized.",
                detail=self.state.name,
            )

        outcome = await self._invoke(main, args)
        if isinstance(outcome, Fault):
            log_event(
                logger,
                "action.fault",
                main=self._handler,
                kind=type(outcome.reason).__name__,
            )
        else:
            log_event(logger, "action.run", main=self._handler)
        return normalize(outcome)

    async def _invoke(self, main: Callable[[Any], Any], args: Any) -> Outcome:
        try:
            result = main(args)
        except PROPAGATED:
            raise
        except BaseException as exc:
            return Fault(exc)

        if not inspect.isawaitable(result):
            return Value(result)

        try:
            return Value(await result)
        except PROPAGATED:
            raise
        except BaseException as exc:
            return Fault(exc)
