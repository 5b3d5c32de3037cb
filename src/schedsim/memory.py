# src/schedsim/memory.py

"""
Best-fit memory allocation over a fixed list of blocks.
Blocks only shrink: there is no free/merge path.
"""

import logging
import threading
from typing import Iterable, List, Optional

from . import config
from .core import ProcessObserver, notify

logger = logging.getLogger(__name__)


class BestFitAllocator:
    def __init__(self, blocks: Optional[Iterable[int]] = None,
                 observer: Optional[ProcessObserver] = None):
        self.blocks: List[int] = list(config.MEMORY_BLOCKS if blocks is None else blocks)
        if any(b < 0 for b in self.blocks):
            raise ValueError(f"block sizes must be >= 0: {self.blocks}")
        self.observer = observer or ProcessObserver()
        # re-entrant so an observer may call snapshot() from its callback
        self.lock = threading.RLock()

    def find_best_fit(self, size: int) -> Optional[int]:
        """Index of the smallest block >= size; first one wins on ties."""
        with self.lock:
            best_index = None
            for i, block in enumerate(self.blocks):
                if block >= size and (best_index is None or block < self.blocks[best_index]):
                    best_index = i
            return best_index

    def allocate(self, size: int) -> bool:
        """
        Scan and decrement as one atomic step.
        Returns False when no block can hold `size`.
        """
        if size < 0:
            raise ValueError(f"requested size must be >= 0, got {size}")

        with self.lock:
            index = self.find_best_fit(size)
            if index is None:
                logger.debug(f"No block can hold {size}; layout {self.blocks}")
                return False

            self.blocks[index] -= size
            layout = list(self.blocks)
            logger.debug(f"Allocated {size} from block {index}; layout {layout}")
            notify(self.observer, "on_memory_layout_changed", layout)
            return True

    def snapshot(self) -> List[int]:
        with self.lock:
            return list(self.blocks)

    def total_free(self) -> int:
        with self.lock:
            return sum(self.blocks)
