"""Real-time tracking once the historical backlog has drained."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .ledger import TraversalLedger
from .records import TransferEvent
from .strategies import ScanStrategy

LOGGER = logging.getLogger(__name__)


class LiveSubscriptionHandler:
    """Follows traced funds through newly observed transfers.

    Only senders that still hold a positive traced balance are followed, so
    an address stops being tracked once it has forwarded what it received.
    """

    def __init__(
        self,
        endpoint: Any,
        strategy: ScanStrategy,
        ledger: TraversalLedger,
        on_transfer: Callable[[TransferEvent], None],
        on_finished: Optional[Callable[[Optional[BaseException]], None]] = None,
    ) -> None:
        self.endpoint = endpoint
        self.strategy = strategy
        self.ledger = ledger
        self._on_transfer = on_transfer
        self._on_finished = on_finished
        self._task: Optional[asyncio.Task] = None
        self.observed = 0
        self.applied = 0

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Live tracking already started")
        self._task = asyncio.get_running_loop().create_task(self.run())
        self._task.add_done_callback(self._finished)

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _finished(self, task: asyncio.Task) -> None:
        """Report a stream that ended on its own; cancellation is not reported."""
        if task.cancelled():
            return
        exc = task.exception()
        if self._on_finished is not None:
            self._on_finished(exc)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        LOGGER.info("Live tracking started on %s", getattr(self.endpoint, "url", self.endpoint))
        try:
            async for event in self.strategy.stream(self.endpoint):
                self.handle(event)
        except asyncio.CancelledError:
            LOGGER.info("Live tracking stopped")
            raise
        except Exception:
            LOGGER.exception("Live subscription failed")
            raise

    def handle(self, event: TransferEvent) -> bool:
        """Apply one observed transfer; returns True if it was traced."""
        self.observed += 1
        if event.value <= 0 or not self.ledger.holds_traced_funds(event.sender):
            return False
        self.applied += 1
        self._on_transfer(event)
        return True


__all__ = ["LiveSubscriptionHandler"]
