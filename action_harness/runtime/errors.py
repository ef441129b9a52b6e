class RuntimeFault(Exception):
    """Base class for runtime driver errors."""


class ProtocolViolation(RuntimeFault):
    """Host sent an invalid or illegal protocol message."""
