from multiprocessing.connection import Connection

from action_harness.runtime.io import PipeTransport
from action_harness.runtime.service import ActionRuntime


def run_runtime(conn: Connection) -> None:
    """Target for ``multiprocessing.Process``: serve frames over ``conn``."""
    ActionRuntime(transport=PipeTransport(conn)).serve()
