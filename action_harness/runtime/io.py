from __future__ import annotations

import json
import sys
from multiprocessing.connection import Connection
from typing import Any, Mapping, Protocol, TextIO


class Transport(Protocol):
    def receive(self) -> dict[str, Any]: ...

    def send(self, frame: Mapping[str, Any]) -> None: ...


def decode_frame(line: str) -> dict[str, Any]:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON from host: {exc}") from exc
    return _require_object(payload)


def _require_object(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"Host frame must be a JSON object, got {type(payload).__name__}")
    return payload


class StreamTransport:
    """
    One JSON document per line. Without explicit streams, ``sys.stdin`` and
    ``sys.stdout`` are looked up on every call.
    """

    def __init__(self, reader: TextIO | None = None, writer: TextIO | None = None) -> None:
        self._reader = reader
        self._writer = writer

    def receive(self) -> dict[str, Any]:
        reader = self._reader or sys.stdin
        for line in iter(reader.readline, ""):
            if line.strip():
                return decode_frame(line)
        raise EOFError("Host closed the input stream.")

    def send(self, frame: Mapping[str, Any]) -> None:
        writer = self._writer or sys.stdout
        writer.write(json.dumps(frame) + "\n")
        writer.flush()


class PipeTransport:
    """Frames travel as pickled dicts over a ``multiprocessing`` connection."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def receive(self) -> dict[str, Any]:
        try:
            payload = self._conn.recv()
        except EOFError as exc:
            raise EOFError("Host closed the pipe.") from exc
        return _require_object(payload)

    def send(self, frame: Mapping[str, Any]) -> None:
        self._conn.send(dict(frame))
