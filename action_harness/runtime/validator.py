from __future__ import annotations

import json
from enum import Enum, auto
from functools import lru_cache
from importlib.resources import files
from typing import Any, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match
from referencing import Registry, Resource

from action_harness.runtime.errors import ProtocolViolation
from action_harness.runtime.messages import Message, MessageType

SCHEMA_PACKAGE = "action_harness.runtime.schemas"


class Endpoint(Enum):
    HOST = auto()
    RUNTIME = auto()


ALLOWED_TYPES: Mapping[Endpoint, frozenset[MessageType]] = {
    Endpoint.HOST: frozenset({MessageType.INIT, MessageType.RUN, MessageType.SHUTDOWN}),
    Endpoint.RUNTIME: frozenset(
        {
            MessageType.INIT_RESULT,
            MessageType.RESULT,
            MessageType.LOG,
            MessageType.EXIT,
        }
    ),
}


@lru_cache
def load_schemas() -> dict[str, dict[str, Any]]:
    """Bundled ``action/1.0`` schemas keyed by file stem (``run``, ``common``...)."""
    directory = files(SCHEMA_PACKAGE) / "action" / "1.0"
    return {
        entry.name.removesuffix(".json"): json.loads(entry.read_text(encoding="utf-8"))
        for entry in directory.iterdir()
        if entry.name.endswith(".json")
    }


def build_registry(schemas: Mapping[str, Mapping[str, Any]]) -> Registry:
    return Registry().with_resources(
        (schema["$id"], Resource.from_contents(schema)) for schema in schemas.values()
    )


class ProtocolValidator:
    """
    Checks that a frame's sender may emit its type and that the frame
    matches the schema for that type. ``$ref``s into ``common.json`` are
    resolved through a shared registry.
    """

    def __init__(self) -> None:
        schemas = load_schemas()
        registry = build_registry(schemas)
        self._validators = {
            msg_type: Draft202012Validator(schemas[msg_type.value], registry=registry)
            for msg_type in MessageType
        }

    def validate(self, msg: Message, *, sender: Endpoint) -> None:
        allowed = ALLOWED_TYPES.get(sender)
        if allowed is None:
            raise ProtocolViolation(f"Unknown sender endpoint: {sender!r}")
        if msg.type not in allowed:
            raise ProtocolViolation(
                f"{sender.name.capitalize()} is not allowed to send '{msg.type.value}'"
            )

        error = best_match(self._validators[msg.type].iter_errors(msg.to_dict()))
        if error is not None:
            raise ProtocolViolation(f"Invalid {msg.type.value} message: {error.message}")
