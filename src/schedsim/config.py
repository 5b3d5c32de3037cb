# src/schedsim/config.py

"""
Simulation settings. Every value can be overridden from the environment
before the package is imported.
"""

import logging
import os


def _blocks_from_env(raw):
    return tuple(int(part) for part in raw.split(",") if part.strip())


# Seconds of wall-clock time per tick of burst time
TICK_INTERVAL = float(os.environ.get("SCHEDSIM_TICK_INTERVAL", 1.0))

# Worker pool
POOL_SIZE = int(os.environ.get("SCHEDSIM_POOL_SIZE", 5))
DRAIN_TIMEOUT = float(os.environ.get("SCHEDSIM_DRAIN_TIMEOUT", 10 * 60))

# Memory pool (block sizes, in order)
MEMORY_BLOCKS = _blocks_from_env(
    os.environ.get("SCHEDSIM_MEMORY_BLOCKS", "100,400,200,500,250,450,150,1000,150,550")
)

# Five-digit process ids, inclusive
ID_RANGE = (10000, 99999)

# Reference run: (priority, arrival_time, burst_time, memory)
DEMO_PROCESSES = (
    (2, 0, 5, 300),
    (1, 2, 3, 200),
    (6, 1, 4, 150),
    (3, 5, 7, 440),
    (7, 10, 20, 1000),
)

LOG_LEVEL = os.environ.get("SCHEDSIM_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"


def configure_logging(level=None):
    """Entry points only; library modules just use getLogger."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
