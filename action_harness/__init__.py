from action_harness.__version__ import __version__
from action_harness.core import ActionRunner, HarnessError, Rejection

__all__ = ["ActionRunner", "HarnessError", "Rejection", "__version__"]
