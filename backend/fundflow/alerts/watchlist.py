"""Client for the external watchlist service notified about traced recipients."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

import requests
from fastapi.concurrency import run_in_threadpool

LOGGER = logging.getLogger(__name__)


class WatchlistClient:
    """Fire-and-forget alert checks; failures are logged and never raised."""

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    def check_address(self, address: str, summary: Dict[str, Any]) -> Optional[str]:
        """POST the recipient and transfer summary; returns the service message."""
        payload = {"address": address, "txDetail": json.dumps(summary)}
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            LOGGER.warning("Watchlist check failed for %s: %s", address, exc)
            return None
        except ValueError as exc:
            LOGGER.warning("Watchlist returned a non-JSON body for %s: %s", address, exc)
            return None

        message = body.get("message", "") if isinstance(body, dict) else ""
        LOGGER.info("Watchlist response for %s: %s", address, message)
        return message

    def notify(self, address: str, summary: Dict[str, Any]) -> asyncio.Task:
        """Schedule ``check_address`` off the event loop without awaiting it."""
        task = asyncio.get_running_loop().create_task(
            run_in_threadpool(self.check_address, address, summary)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)


__all__ = ["WatchlistClient"]
