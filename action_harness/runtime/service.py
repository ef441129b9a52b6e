from __future__ import annotations

import asyncio
import sys
from contextlib import redirect_stdout
from typing import Any, Optional

from action_harness.core.errors import HarnessError
from action_harness.core.logging import get_logger, log_event
from action_harness.core.outcome import to_plain_data
from action_harness.core.runner import ActionRunner
from action_harness.runtime.errors import ProtocolViolation, RuntimeFault
from action_harness.runtime.io import StreamTransport, Transport
from action_harness.runtime.messages import Message, MessageType
from action_harness.runtime.state import RuntimeState
from action_harness.runtime.validator import Endpoint, ProtocolValidator

logger = get_logger(__name__)


class ActionRuntime:
    """
    Line-protocol driver around a single ActionRunner.
    """

    def __init__(
        self,
        runner: Optional[ActionRunner] = None,
        validator: Optional[ProtocolValidator] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        self.state: RuntimeState = RuntimeState.BOOT
        self.runner = runner or ActionRunner()
        self.validator = validator or ProtocolValidator()
        self.transport = transport or StreamTransport()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def serve(self) -> None:
        """
        Main blocking loop. Returns on EOF or shutdown.
        """
        self._loop = asyncio.new_event_loop()
        try:
            while self.state is not RuntimeState.EXITING:
                try:
                    msg = self._receive()
                except EOFError:
                    self.state = RuntimeState.EXITING
                    break

                log_event(logger, "runtime.message", type=msg.type.value)
                self._handle_message(msg)

        except RuntimeFault as exc:
            self.state = RuntimeState.ERR_PROTOCOL
            self._emit_log("error", str(exc))
            raise

        except BaseException as exc:
            self.state = RuntimeState.ERR_FATAL
            self._emit_log("error", f"{type(exc).__name__}: {exc}")
            raise

        finally:
            self._emit_exit(code=1 if self.state.name.startswith("ERR") else 0)
            self._loop.close()
            self._loop = None

    def _receive(self) -> Message:
        try:
            msg = Message.from_dict(self.transport.receive())
        except ValueError as exc:
            raise ProtocolViolation(str(exc)) from exc
        self.validator.validate(msg, sender=Endpoint.HOST)
        return msg

    # -------------------------
    # Message handlers
    # -------------------------

    def _handle_message(self, msg: Message) -> None:
        if msg.type == MessageType.INIT:
            self._handle_init(msg)
        elif msg.type == MessageType.RUN:
            self._handle_run(msg)
        elif msg.type == MessageType.SHUTDOWN:
            self.state = RuntimeState.EXITING
        else:
            raise ProtocolViolation(f"Unhandled message type: {msg.type}")

    def _handle_init(self, msg: Message) -> None:
        try:
            with redirect_stdout(sys.stderr):
                self.runner.init(msg.payload)
        except HarnessError as exc:
            self._emit(MessageType.INIT_RESULT, {"ok": False, "error": exc.to_dict()})
        else:
            self._emit(MessageType.INIT_RESULT, {"ok": True})

        if self.state is RuntimeState.BOOT:
            self.state = RuntimeState.READY

    def _handle_run(self, msg: Message) -> None:
        assert self._loop is not None
        previous = self.state
        self.state = RuntimeState.RUNNING
        try:
            with redirect_stdout(sys.stderr):
                envelope = self._loop.run_until_complete(
                    self.runner.run(msg.payload.get("value"))
                )
        except HarnessError as exc:
            self._emit(MessageType.RESULT, {"error": exc.to_dict()})
        else:
            self._emit(MessageType.RESULT, {"value": to_plain_data(envelope)})
        finally:
            self.state = previous

    # -------------------------
    # Emit helpers
    # -------------------------

    def _emit(self, msg_type: MessageType, payload: dict[str, Any]) -> None:
        msg = Message(type=msg_type, payload=payload)
        self.validator.validate(msg, sender=Endpoint.RUNTIME)
        self.transport.send(msg.to_dict())

    def _emit_log(self, level: str, message: str) -> None:
        self._emit(MessageType.LOG, {"level": level, "message": message})

    def _emit_exit(self, *, code: int) -> None:
        self._emit(MessageType.EXIT, {"code": code})
