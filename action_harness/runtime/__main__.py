"""``python -m action_harness.runtime``: serve the line protocol on stdio."""

from __future__ import annotations

import sys

from action_harness.core.config import get_harness_config
from action_harness.core.logging import configure_logging, get_logger
from action_harness.runtime.errors import RuntimeFault
from action_harness.runtime.service import ActionRuntime
from action_harness.runtime.state import ExitStatus

logger = get_logger("action_harness.runtime")


def main() -> int:
    config = get_harness_config()
    configure_logging(level=config.log_level, format_name=config.log_format)

    try:
        ActionRuntime().serve()
    except RuntimeFault as exc:
        logger.error("Protocol violation: %s", exc)
        return ExitStatus.PROTOCOL_ERROR
    except Exception:
        logger.exception("Action runtime crashed")
        return ExitStatus.CRASHED
    return ExitStatus.OK


if __name__ == "__main__":
    sys.exit(main())
