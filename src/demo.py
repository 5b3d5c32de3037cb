# src/demo.py

"""
Headless reference run: admit the five demo processes, wait for the
worker pool to drain, then log what happened.
"""

import logging

from src.schedsim import config
from src.schedsim.controller import SimulationController

logger = logging.getLogger(__name__)


def main():
    config.configure_logging()
    controller = SimulationController()
    summary = controller.run_demo()

    snapshot = controller.get_state_snapshot()
    for p in snapshot["processes"]:
        logger.info(f"Process ID: {p['id']} | state={p['state']} remaining={p['remaining']} "
                    f"memory={p['memory']} admitted={p['admitted']}")
    logger.info(f"Memory blocks: {snapshot['memory']}")
    logger.info(f"Summary: {summary}")
    return 0 if summary["drained"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
