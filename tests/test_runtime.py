from __future__ import annotations

import io
import json
import sys
import threading
from multiprocessing import Pipe

import pytest

from action_harness.core.runner import ActionRunner
from action_harness.runtime.errors import ProtocolViolation
from action_harness.runtime.io import StreamTransport
from action_harness.runtime.messages import PROTOCOL, Message, MessageType
from action_harness.runtime.service import ActionRuntime
from action_harness.runtime.state import RuntimeState
from action_harness.runtime.validator import Endpoint, ProtocolValidator
from action_harness.runtime.worker import run_runtime


def _frame(msg_type: str, payload: dict) -> dict:
    return {"protocol": PROTOCOL, "type": msg_type, "payload": payload}


def _serve(monkeypatch, capsys, runtime: ActionRuntime, *frames: dict) -> list[dict]:
    lines = "".join(json.dumps(frame) + "\n" for frame in frames)
    monkeypatch.setattr(sys, "stdin", io.StringIO(lines))
    runtime.serve()
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line.strip()]


@pytest.fixture
def runtime(runner: ActionRunner) -> ActionRuntime:
    return ActionRuntime(runner=runner)


INIT = _frame(
    "init",
    {"binary": False, "code": "def main(args):\n    return {'hello': args['name']}\n", "main": "main"},
)


def test_init_and_run_round_trip(monkeypatch, capsys, runtime):
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        INIT,
        _frame("run", {"value": {"name": "a"}}),
        _frame("run", {"value": {"name": "b"}}),
    )

    assert [f["type"] for f in frames] == ["init_result", "result", "result", "exit"]
    assert frames[0]["payload"] == {"ok": True}
    assert frames[1]["payload"] == {"value": {"hello": "a"}}
    assert frames[2]["payload"] == {"value": {"hello": "b"}}
    assert frames[3]["payload"] == {"code": 0}
    assert runtime.state is RuntimeState.EXITING


def test_faults_are_reported_as_values(monkeypatch, capsys, runtime):
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        INIT,
        _frame("run", {"value": {}}),
    )
    error = frames[1]["payload"]["value"]["error"]
    assert error["name"] == "KeyError"


def test_failed_init_is_reported(monkeypatch, capsys, runtime):
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        _frame("init", {"binary": False, "code": "x = 1\n", "main": "main"}),
        _frame("run", {"value": {}}),
    )

    assert frames[0]["payload"]["ok"] is False
    assert frames[0]["payload"]["error"]["code"] == "entrypoint_not_callable"
    assert frames[1]["payload"]["error"]["code"] == "invalid_state"
    assert frames[-1]["payload"] == {"code": 0}


def test_run_before_init_is_reported(monkeypatch, capsys, runtime):
    frames = _serve(monkeypatch, capsys, runtime, _frame("run", {"value": 1}))
    assert frames[0]["type"] == "result"
    assert frames[0]["payload"]["error"]["code"] == "invalid_state"


def test_shutdown_stops_reading(monkeypatch, capsys, runtime):
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        INIT,
        _frame("shutdown", {}),
        _frame("run", {"value": {"name": "ignored"}}),
    )
    assert [f["type"] for f in frames] == ["init_result", "exit"]


def test_action_output_stays_off_the_protocol_stream(monkeypatch, capsys, runtime):
    init = _frame(
        "init",
        {"code": "print('loading')\ndef main(args):\n    print('running')\n    return 1\n", "main": "main"},
    )
    lines = "".join(json.dumps(f) + "\n" for f in (init, _frame("run", {"value": None})))
    monkeypatch.setattr(sys, "stdin", io.StringIO(lines))

    runtime.serve()
    captured = capsys.readouterr()

    assert "loading" in captured.err
    assert "running" in captured.err
    frames = [json.loads(line) for line in captured.out.splitlines()]
    assert frames[1]["payload"] == {"value": 1}


def test_awaitables_share_one_loop_across_runs(monkeypatch, capsys, runtime):
    init = _frame(
        "init",
        {
            "code": (
                "import asyncio\n"
                "loops = []\n"
                "async def main(args):\n"
                "    loops.append(asyncio.get_running_loop())\n"
                "    await asyncio.sleep(0)\n"
                "    return len(set(map(id, loops)))\n"
            ),
            "main": "main",
        },
    )
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        init,
        _frame("run", {"value": {}}),
        _frame("run", {"value": {}}),
    )
    assert frames[2]["payload"] == {"value": 1}


def test_unknown_protocol_is_a_violation(monkeypatch, capsys, runtime):
    monkeypatch.setattr(sys, "stdin", io.StringIO(json.dumps({"protocol": "other", "type": "init"}) + "\n"))

    with pytest.raises(ProtocolViolation):
        runtime.serve()

    frames = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert frames[0]["type"] == "log"
    assert frames[0]["payload"]["level"] == "error"
    assert frames[-1]["payload"] == {"code": 1}
    assert runtime.state is RuntimeState.ERR_PROTOCOL


def test_invalid_json_is_a_violation(monkeypatch, capsys, runtime):
    monkeypatch.setattr(sys, "stdin", io.StringIO("{not json\n"))
    with pytest.raises(ProtocolViolation):
        runtime.serve()


def test_host_cannot_send_runtime_messages(monkeypatch, capsys, runtime):
    monkeypatch.setattr(sys, "stdin", io.StringIO(json.dumps(_frame("exit", {"code": 0})) + "\n"))
    with pytest.raises(ProtocolViolation):
        runtime.serve()


def test_validator_requires_run_value():
    validator = ProtocolValidator()
    with pytest.raises(ProtocolViolation):
        validator.validate(Message(type=MessageType.RUN, payload={}), sender=Endpoint.HOST)


def test_validator_checks_outbound_messages():
    validator = ProtocolValidator()
    validator.validate(
        Message(type=MessageType.LOG, payload={"level": "info", "message": "hi"}),
        sender=Endpoint.RUNTIME,
    )
    with pytest.raises(ProtocolViolation):
        validator.validate(
            Message(type=MessageType.LOG, payload={"level": "loud", "message": "hi"}),
            sender=Endpoint.RUNTIME,
        )


def test_pipe_transport():
    parent, child = Pipe()
    worker = threading.Thread(target=run_runtime, args=(child,))
    worker.start()

    parent.send(INIT)
    parent.send(_frame("run", {"value": {"name": "pipe"}}))
    parent.send(_frame("shutdown", {}))
    worker.join(timeout=10)

    received = [parent.recv() for _ in range(3)]
    assert [m["type"] for m in received] == ["init_result", "result", "exit"]
    assert received[1]["payload"] == {"value": {"hello": "pipe"}}


def test_system_exit_in_action_does_not_stop_the_runtime(monkeypatch, capsys, runtime):
    frames = _serve(
        monkeypatch,
        capsys,
        runtime,
        _frame("init", {"code": "import sys\ndef main(args):\n    sys.exit(args)\n", "main": "main"}),
        _frame("run", {"value": 3}),
        _frame("run", {"value": 4}),
    )

    assert [f["type"] for f in frames] == ["init_result", "result", "result", "exit"]
    assert frames[1]["payload"]["value"]["error"]["name"] == "SystemExit"
    assert frames[2]["payload"]["value"]["error"]["message"] == "4"
    assert frames[3]["payload"] == {"code": 0}


def test_entrypoint_lookup_error_is_reported_as_failed_init(monkeypatch, capsys, runtime):
    code = (
        "class Handlers:\n"
        "    @property\n"
        "    def go(self):\n"
        "        raise ValueError('lookup failed')\n"
        "obj = Handlers()\n"
    )
    frames = _serve(monkeypatch, capsys, runtime, _frame("init", {"code": code, "main": "obj.go"}))

    assert frames[0]["payload"]["ok"] is False
    assert frames[0]["payload"]["error"]["code"] == "module_load_failed"
    assert frames[-1]["payload"] == {"code": 0}


def test_blank_lines_between_frames_are_skipped(monkeypatch, capsys, runtime):
    lines = "\n" + json.dumps(INIT) + "\n\n   \n" + json.dumps(_frame("run", {"value": {"name": "c"}})) + "\n"
    monkeypatch.setattr(sys, "stdin", io.StringIO(lines))

    runtime.serve()
    frames = [json.loads(line) for line in capsys.readouterr().out.splitlines()]

    assert frames[1]["payload"] == {"value": {"hello": "c"}}


def test_non_object_frame_is_a_violation(monkeypatch, capsys, runtime):
    monkeypatch.setattr(sys, "stdin", io.StringIO("[1, 2]\n"))
    with pytest.raises(ProtocolViolation, match="JSON object"):
        runtime.serve()


def test_explicit_streams_bypass_stdio(runner: ActionRunner):
    reader = io.StringIO(json.dumps(INIT) + "\n" + json.dumps(_frame("run", {"value": {"name": "s"}})) + "\n")
    writer = io.StringIO()

    ActionRuntime(runner=runner, transport=StreamTransport(reader, writer)).serve()

    frames = [json.loads(line) for line in writer.getvalue().splitlines()]
    assert [f["type"] for f in frames] == ["init_result", "result", "exit"]
    assert frames[1]["payload"] == {"value": {"hello": "s"}}


def test_validator_names_the_sender_that_broke_direction():
    validator = ProtocolValidator()
    with pytest.raises(ProtocolViolation, match="Runtime is not allowed to send 'run'"):
        validator.validate(Message(type=MessageType.RUN, payload={"value": 1}), sender=Endpoint.RUNTIME)
