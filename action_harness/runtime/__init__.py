from .errors import ProtocolViolation, RuntimeFault
from .messages import Message, MessageType
from .service import ActionRuntime
from .state import RuntimeState
from .validator import Endpoint, ProtocolValidator

__all__ = [
    "ActionRuntime",
    "Endpoint",
    "Message",
    "MessageType",
    "ProtocolValidator",
    "ProtocolViolation",
    "RuntimeFault",
    "RuntimeState",
]
