"""Shared window of fetched block contents."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

LOGGER = logging.getLogger(__name__)


class RangeCache:
    """Block contents keyed by block number, bounded below by a movable boundary.

    Blocks below the boundary are never stored. ``put`` silently drops the
    leading positions a late job no longer owns, which keeps out-of-order
    completion of cache-populating jobs safe.
    """

    def __init__(self) -> None:
        self._blocks: Dict[int, Any] = {}
        self._boundary: Optional[int] = None

    @property
    def boundary(self) -> Optional[int]:
        return self._boundary

    def set_boundary(self, block_number: int) -> None:
        self._boundary = int(block_number)
        LOGGER.debug("Cache boundary set to %d", self._boundary)

    def get(self, block_number: int) -> Optional[Any]:
        return self._blocks.get(block_number)

    def put(self, start_block: int, blocks: Sequence[Any]) -> int:
        """Store ``blocks`` at consecutive numbers from ``start_block``.

        Returns the number of entries written.
        """
        if self._boundary is None or not blocks:
            return 0

        last_block = start_block + len(blocks) - 1
        if last_block < self._boundary:
            return 0

        offset = max(self._boundary - start_block, 0)
        for index in range(offset, len(blocks)):
            self._blocks[start_block + index] = blocks[index]
        return len(blocks) - offset

    def clear(self) -> None:
        self._blocks.clear()
        self._boundary = None

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_number: object) -> bool:
        return block_number in self._blocks


__all__ = ["RangeCache"]
