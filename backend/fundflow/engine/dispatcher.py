"""Worker pool and the periodic dispatch loop that drains the job queues."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

import aiohttp
import requests

from fundflow.errors import RateLimited

from .queues import JobQueues
from .records import Job, TransferEvent

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "too many requests", "limit")

FetchFn = Callable[["Worker", Job], Awaitable[List[TransferEvent]]]
ResultFn = Callable[[Job, List[TransferEvent]], None]
DrainedFn = Callable[[], None]


@dataclass
class Worker:
    """One RPC endpoint with a single job slot and a cooldown timer (seconds)."""

    index: int
    endpoint: Any
    active_job: Optional[Job] = None
    cooldown: float = 0.0

    @property
    def url(self) -> str:
        return getattr(self.endpoint, "url", repr(self.endpoint))

    @property
    def is_idle(self) -> bool:
        return self.active_job is None


def is_rate_limited(exc: BaseException) -> bool:
    """Classify a fetch failure as provider throttling."""
    if isinstance(exc, RateLimited):
        return True
    if isinstance(exc, aiohttp.ClientResponseError) and exc.status == 429:
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None and exc.response.status_code == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


class DispatchLoop:
    """Assigns queued jobs to idle workers on a fixed tick.

    Fetches run as asyncio tasks; their results are applied by ``on_result``
    on the event loop, one completion at a time. Failed jobs are requeued
    indefinitely: throttled workers sit out ``cooldown_penalty`` seconds,
    shrinking by ``cooldown_step`` every tick.
    """

    def __init__(
        self,
        workers: Sequence[Worker],
        queues: JobQueues,
        fetch: FetchFn,
        on_result: ResultFn,
        on_drained: Optional[DrainedFn] = None,
        tick_interval: float = 1.1,
        cooldown_penalty: float = 2.0,
        cooldown_step: float = 1.0,
    ) -> None:
        self.workers = list(workers)
        self.queues = queues
        self._fetch = fetch
        self._on_result = on_result
        self._on_drained = on_drained
        self.tick_interval = tick_interval
        self.cooldown_penalty = cooldown_penalty
        self.cooldown_step = cooldown_step

        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._cancelled = False
        self._drained = False
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None

    # ----------------------------------------------------------------- control

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Dispatch loop already started")
        self.started_at = time.monotonic()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Stop ticking; fetches still in flight resolve but their results are dropped."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.finished_at is None and self.started_at is not None:
            self.finished_at = time.monotonic()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def drained(self) -> bool:
        return self._drained

    @property
    def elapsed(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.tick_interval)
            if self.tick():
                break

    async def settle(self) -> None:
        """Wait for every fetch currently in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # -------------------------------------------------------------------- tick

    def tick(self) -> bool:
        """Run one assignment pass; returns True once the backlog is drained."""
        if self._cancelled or self._drained:
            return self._drained
        if self.started_at is None:
            self.started_at = time.monotonic()

        for worker in self.workers:
            self._assign(worker)

        if self.queues.is_empty() and all(worker.is_idle for worker in self.workers):
            self._drained = True
            self.finished_at = time.monotonic()
            LOGGER.info("Backlog drained after %.1f seconds", self.elapsed or 0.0)
            if self._on_drained is not None:
                self._on_drained()
            return True
        return False

    def _assign(self, worker: Worker) -> None:
        if not worker.is_idle:
            return

        if worker.cooldown > 0:
            worker.cooldown = max(worker.cooldown - self.cooldown_step, 0.0)
            LOGGER.debug("Worker %d cooling down (%.1fs left)", worker.index, worker.cooldown)
            return

        job = self.queues.pop()
        if job is None:
            return

        worker.active_job = job
        LOGGER.debug("Worker %d took job %s", worker.index, job.describe())
        task = asyncio.get_running_loop().create_task(self._execute(worker, job))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _execute(self, worker: Worker, job: Job) -> None:
        try:
            events = await self._fetch(worker, job)
        except asyncio.CancelledError:
            self._release(worker, job)
            raise
        except Exception as exc:  # every steady-state failure is retried
            self._release(worker, job)
            if self._cancelled:
                return
            self._handle_failure(worker, job, exc)
            return

        self._release(worker, job)
        if self._cancelled:
            LOGGER.debug("Discarding result of %s after termination", job.describe())
            return

        LOGGER.debug("Worker %d completed %s with %d transfers", worker.index, job.describe(), len(events))
        self._on_result(job, events)

    @staticmethod
    def _release(worker: Worker, job: Job) -> None:
        if worker.active_job is job:
            worker.active_job = None

    def _handle_failure(self, worker: Worker, job: Job, exc: Exception) -> None:
        if is_rate_limited(exc):
            worker.cooldown = self.cooldown_penalty
            prioritized = self.queues.requeue(job, rate_limited=True)
            LOGGER.warning(
                "Worker %d rate limited on %s; cooling down %.1fs, requeued%s",
                worker.index,
                job.describe(),
                self.cooldown_penalty,
                " with priority" if prioritized else "",
            )
            return

        self.queues.requeue(job, rate_limited=False)
        LOGGER.warning("Worker %d failed %s: %s; requeued", worker.index, job.describe(), exc)


__all__ = ["Worker", "DispatchLoop", "is_rate_limited"]
