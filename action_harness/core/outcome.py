from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Union

from pydantic_core import to_jsonable_python

CIRCULAR = "[Circular]"
_MAX_DEPTH = 32


class Rejection(Exception):
    """
    Fail an action with an arbitrary reason, or with none at all.

    ``raise Rejection()`` settles the invocation as ``{"error": {}}`` while
    ``raise Rejection({"status": 404})`` reports the reason as given.
    """

    def __init__(self, reason: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True, slots=True)
class Value:
    value: Any


@dataclass(frozen=True, slots=True)
class Fault:
    reason: Any


Outcome = Union[Value, Fault]


def normalize(outcome: Outcome) -> Any:
    """Map an outcome to the envelope returned across the harness boundary."""
    if isinstance(outcome, Value):
        return {} if outcome.value is None else outcome.value

    reason = outcome.reason
    if isinstance(reason, Rejection):
        reason = reason.reason

    try:
        if not reason:
            return {"error": {}}
        return {"error": serialize_error(reason)}
    except Exception as exc:
        return {"error": _fallback_error(reason, exc)}


def serialize_error(reason: Any) -> Any:
    """Flatten an exception (or any rejection reason) into plain data."""
    return to_plain_data(reason)


def to_plain_data(value: Any) -> Any:
    """Convert a value into JSON-compatible data, marking reference cycles."""
    return _flatten(value, seen=set(), depth=0)


def _flatten(value: Any, *, seen: set[int], depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth >= _MAX_DEPTH:
        return repr(value)

    marker = id(value)
    if marker in seen:
        return CIRCULAR
    seen.add(marker)
    try:
        if isinstance(value, BaseException):
            return _flatten_exception(value, seen=seen, depth=depth)
        if isinstance(value, dict):
            return {
                str(key): _flatten(item, seen=seen, depth=depth + 1)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return [_flatten(item, seen=seen, depth=depth + 1) for item in value]
        try:
            return to_jsonable_python(value, fallback=repr)
        except (TypeError, ValueError):
            return repr(value)
    finally:
        seen.discard(marker)


def _flatten_exception(exc: BaseException, *, seen: set[int], depth: int) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, item in vars(exc).items():
        if key.startswith("_") or callable(item):
            continue
        payload[key] = _flatten(item, seen=seen, depth=depth + 1)

    payload["name"] = type(exc).__name__
    payload["message"] = str(exc)
    stack = _format_stack(exc)
    if stack:
        payload["stack"] = stack

    cause = exc.__cause__
    if cause is None and not exc.__suppress_context__:
        cause = exc.__context__
    if cause is not None:
        payload["cause"] = _flatten(cause, seen=seen, depth=depth + 1)
    return payload


def _format_stack(exc: BaseException) -> str:
    lines = traceback.format_exception(type(exc), exc, exc.__traceback__, chain=False)
    return "".join(lines).rstrip()


def _fallback_error(reason: Any, error: Exception) -> dict[str, Any]:
    try:
        message = str(reason)
    except Exception:
        message = f"<unprintable {type(reason).__name__}>"
    return {
        "name": type(reason).__name__,
        "message": message,
        "serializationError": f"{type(error).__name__}: {error}",
    }
