from enum import Enum, IntEnum, auto


class RuntimeState(Enum):
    """
    Driver-side state machine for the line protocol.
    """

    BOOT = auto()       # Process started, nothing received
    READY = auto()      # init handled, waiting for run messages
    RUNNING = auto()    # run in flight
    EXITING = auto()    # shutdown or EOF, exit being emitted

    ERR_PROTOCOL = auto()  # Host violated protocol
    ERR_FATAL = auto()     # Unhandled exception


class ExitStatus(IntEnum):
    """Process exit status of ``python -m action_harness.runtime``."""

    OK = 0
    PROTOCOL_ERROR = 2
    CRASHED = 3
