"""The single coordinator owning all traversal state for one trace."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from fundflow.alerts.watchlist import WatchlistClient
from fundflow.config import Settings, TokenSpec, get_settings
from fundflow.errors import NoQualifyingTransferEvent, SessionStateError, TransactionNotFound
from fundflow.ingest.seed_lookup import lookup_seed_transfer
from fundflow.rpc.endpoint import CONNECTION_ERRORS, connect_endpoints
from fundflow.utils.formatting import format_amount, to_token_amount

from .cache import RangeCache
from .dispatcher import DispatchLoop, Worker
from .ledger import TraversalLedger
from .live import LiveSubscriptionHandler
from .projection import GraphProjection
from .queues import JobQueues
from .records import Job, SeedTransfer, Transfer, TransferEvent
from .strategies import ScanStrategy, strategy_for

LOGGER = logging.getLogger(__name__)

Connector = Callable[[Sequence[str], int, float], Awaitable[List[Any]]]


class SessionStatus(str, Enum):
    INITIAL = "initial"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PROCESSING = "processing"
    AWAITING_LIVE_CONFIRMATION = "awaiting_live_confirmation"
    LIVE_TRACKING = "live_tracking"
    COMPLETED = "completed"


RUNNING_STATES = (SessionStatus.PROCESSING, SessionStatus.LIVE_TRACKING)


class TraceSession:
    """Seed lookup, backfill, live tracking and reset for one operator session.

    Every mutation of the ledger, cache and projection goes through this
    object on the event loop thread; workers only hand results back.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        watchlist: Optional[WatchlistClient] = None,
        connector: Connector = connect_endpoints,
    ) -> None:
        self.settings = settings or get_settings()
        self.watchlist = watchlist or WatchlistClient(
            self.settings.watchlist_url, self.settings.watchlist_timeout
        )
        self._connector = connector

        self.workers: List[Worker] = []
        self.status = SessionStatus.INITIAL
        self.cache = RangeCache()
        self.queues = JobQueues()

        self.token: Optional[TokenSpec] = None
        self.strategy: Optional[ScanStrategy] = None
        self.seed: Optional[SeedTransfer] = None
        self.ledger: Optional[TraversalLedger] = None
        self.projection: Optional[GraphProjection] = None
        self.dispatcher: Optional[DispatchLoop] = None
        self.live: Optional[LiveSubscriptionHandler] = None
        self.live_error: Optional[str] = None

    # --------------------------------------------------------------- endpoints

    @property
    def primary(self) -> Any:
        if not self.workers:
            raise SessionStateError("No RPC endpoints connected")
        return self.workers[0].endpoint

    async def connect(self, urls: Sequence[str]) -> List[Worker]:
        """Validate ``urls`` and replace the worker pool with them.

        An empty list falls back to the configured ``FUNDFLOW_RPC_ENDPOINTS``.
        """
        if self.status in RUNNING_STATES:
            raise SessionStateError("Cannot change endpoints while a trace is running")

        urls = list(urls) or list(self.settings.rpc_endpoints)
        endpoints = await self._connector(
            urls, self.settings.chain_id, self.settings.validation_timeout
        )
        await self._close_endpoints()
        self.workers = [Worker(index=index, endpoint=endpoint) for index, endpoint in enumerate(endpoints)]
        LOGGER.info("Connected %d worker(s)", len(self.workers))
        return self.workers

    async def _close_endpoints(self) -> None:
        for worker in self.workers:
            close = getattr(worker.endpoint, "close", None)
            if close is not None:
                await close()
        self.workers = []

    # -------------------------------------------------------------------- seed

    async def submit_seed(self, tx_hash: str, token_symbol: str) -> SeedTransfer:
        if self.status not in (SessionStatus.INITIAL, SessionStatus.AWAITING_CONFIRMATION):
            raise SessionStateError(f"Cannot submit a transaction while {self.status.value}")

        token = self.settings.token(token_symbol)
        strategy = strategy_for(token)
        try:
            seed = await lookup_seed_transfer(self.primary, strategy, tx_hash)
        except (TransactionNotFound, NoQualifyingTransferEvent, ValueError) + CONNECTION_ERRORS:
            self._clear_trace()
            self.status = SessionStatus.INITIAL
            raise

        self._clear_trace()
        self.token = token
        self.strategy = strategy
        self.seed = seed
        self.ledger = TraversalLedger(self.queues, self.cache, token.chunk_size, token.cache_depth)
        self.projection = GraphProjection(self.ledger)
        self.status = SessionStatus.AWAITING_CONFIRMATION
        return seed

    async def confirm(self, until_block: Optional[int] = None, cache_depth: Optional[int] = None) -> int:
        """Fix the scan window, seed the ledger and start the dispatch loop.

        Returns the effective upper bound, capped at the chain head.
        """
        if self.status is not SessionStatus.AWAITING_CONFIRMATION:
            raise SessionStateError("No transaction awaiting confirmation")

        latest = await self.primary.get_latest_block_number()
        upper_bound = latest if until_block is None or until_block > latest else until_block

        depth = self.token.cache_depth if cache_depth is None else cache_depth
        if not self.token.is_native:
            depth = 0
        self.ledger.configure_window(self.seed.block_number, upper_bound, depth)

        seed_transfer = self._make_transfer(self.seed)
        jobs = self.ledger.seed(seed_transfer)
        self.projection.register([self.seed.sender, self.seed.recipient])
        self.projection.add_connections(self.seed.sender, [seed_transfer])
        LOGGER.info("Seeded trace with %d job(s) up to block %d", len(jobs), upper_bound)

        self.dispatcher = DispatchLoop(
            self.workers,
            self.queues,
            fetch=self._fetch,
            on_result=self.record_scan_result,
            on_drained=self._on_drained,
            tick_interval=self.settings.tick_interval,
            cooldown_penalty=self.settings.cooldown_penalty,
            cooldown_step=self.settings.cooldown_step,
        )
        self.status = SessionStatus.PROCESSING
        self.dispatcher.start()
        return upper_bound

    # ---------------------------------------------------------------- backfill

    async def _fetch(self, worker: Worker, job: Job) -> List[TransferEvent]:
        return await self.strategy.fetch(worker.endpoint, job, self.cache, self.ledger.chunk_size)

    def record_scan_result(self, job: Job, events: List[TransferEvent]) -> None:
        """Fold a completed job into the ledger and projection."""
        transfers: List[Transfer] = []
        for event in events:
            self.ledger.request_scan(event.recipient, event.block_number)
            self.ledger.apply_transfer(event.sender, event.recipient, event.value)
            transfers.append(self._make_transfer(event))

        if not transfers:
            return

        self.projection.register(transfer.recipient for transfer in transfers)
        self.ledger.append_transfers(job.from_address, transfers)
        self.projection.add_connections(job.from_address, transfers)

    def _on_drained(self) -> None:
        self.status = SessionStatus.AWAITING_LIVE_CONFIRMATION
        LOGGER.info(
            "Backfill complete: %d address(es), %d transfer(s)",
            len(self.ledger),
            len(self.projection.transfer_list()),
        )

    # -------------------------------------------------------------------- live

    def start_live(self) -> None:
        if self.status is not SessionStatus.AWAITING_LIVE_CONFIRMATION:
            raise SessionStateError("Live tracking is only offered once the backlog has drained")

        self.live = LiveSubscriptionHandler(
            self.primary,
            self.strategy,
            self.ledger,
            self._apply_live_transfer,
            on_finished=self._on_live_finished,
        )
        self.status = SessionStatus.LIVE_TRACKING
        self.live.start()

    def decline_live(self) -> None:
        if self.status is not SessionStatus.AWAITING_LIVE_CONFIRMATION:
            raise SessionStateError("Live tracking has not been offered")
        self.status = SessionStatus.COMPLETED

    def _apply_live_transfer(self, event: TransferEvent) -> None:
        transfer = self._make_transfer(event)
        if self.ledger.record_live_transfer(transfer):
            LOGGER.info("Discovered new address %s", transfer.recipient)
        else:
            LOGGER.info("Traced funds moved to known address %s", transfer.recipient)

        self.projection.register([transfer.recipient])
        self.projection.add_connections(transfer.sender, [transfer])
        self.watchlist.notify(transfer.recipient, transfer.summary())

    def _on_live_finished(self, exc: Optional[BaseException]) -> None:
        if self.status is not SessionStatus.LIVE_TRACKING:
            return
        if exc is not None:
            self.live_error = str(exc) or type(exc).__name__
            LOGGER.error("Live tracking ended: %s", self.live_error)
        else:
            LOGGER.info("Live subscription closed")
        self.status = SessionStatus.COMPLETED

    # --------------------------------------------------------------- lifecycle

    def terminate(self) -> None:
        if self.status is SessionStatus.PROCESSING:
            self.dispatcher.stop()
            self.queues.clear()
            LOGGER.info("Backfill terminated after %.1f seconds", self.dispatcher.elapsed or 0.0)
        elif self.status is SessionStatus.LIVE_TRACKING:
            self.live.stop()
        else:
            raise SessionStateError("Nothing is running")
        self.status = SessionStatus.COMPLETED

    def reset(self) -> None:
        if self.status in RUNNING_STATES:
            raise SessionStateError("Terminate the running trace before resetting")
        self._clear_trace()
        self.status = SessionStatus.INITIAL

    def _clear_trace(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.stop()
        if self.live is not None:
            self.live.stop()
        # Fetches still in flight keep the old slots, cache and queues.
        self.queues = JobQueues()
        self.cache = RangeCache()
        self.workers = [Worker(index=worker.index, endpoint=worker.endpoint) for worker in self.workers]
        self.live_error = None
        self.token = None
        self.strategy = None
        self.seed = None
        self.ledger = None
        self.projection = None
        self.dispatcher = None
        self.live = None

    async def close(self) -> None:
        self._clear_trace()
        await self._close_endpoints()
        self.status = SessionStatus.INITIAL

    # ----------------------------------------------------------------- helpers

    def _make_transfer(self, event: Any) -> Transfer:
        return Transfer(
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            sender=event.sender.lower(),
            recipient=event.recipient.lower(),
            value=event.value,
            amount=to_token_amount(event.value, self.token.decimals),
            formatted_amount=format_amount(event.value, self.token.decimals, self.token.symbol),
        )

    def graph(self) -> List[Dict[str, Any]]:
        return self.projection.snapshot() if self.projection else []

    def transfers(self) -> List[Transfer]:
        return self.projection.transfer_list() if self.projection else []

    def address_profile(self, address: str) -> Dict[str, Any]:
        """Traversal state for one address; raises ``KeyError`` if it is not part of the trace."""
        record = self.ledger.get(address) if self.ledger else None
        if record is None:
            raise KeyError(f"{address} is not part of the current trace")

        counterparties = {transfer.recipient for transfer in record.transfers}
        return {
            "address": record.address,
            "graph_index": record.graph_index,
            "earliest_scheduled_block": record.earliest_scheduled_block,
            "net_traced_balance": record.net_traced_balance,
            "net_traced_amount": format_amount(
                record.net_traced_balance, self.token.decimals, self.token.symbol
            ),
            "out_count": len(record.transfers),
            "unique_counterparties": len(counterparties),
            "transfers": list(record.transfers),
        }

    def worker_states(self) -> List[Dict[str, Any]]:
        return [
            {
                "index": worker.index,
                "url": worker.url,
                "active_job": worker.active_job.describe() if worker.active_job else None,
                "cooldown": worker.cooldown,
            }
            for worker in self.workers
        ]

    def snapshot(self) -> Dict[str, Any]:
        """Status summary for the operator."""
        return {
            "status": self.status.value,
            "token": self.token.symbol if self.token else None,
            "seed_tx_hash": self.seed.tx_hash if self.seed else None,
            "upper_bound": self.ledger.upper_bound if self.ledger else None,
            "cache_boundary": self.cache.boundary,
            "cached_blocks": len(self.cache),
            "queued_jobs": len(self.queues.normal),
            "priority_jobs": len(self.queues.priority),
            "addresses": len(self.ledger) if self.ledger else 0,
            "workers": self.worker_states(),
            "elapsed_seconds": self.dispatcher.elapsed if self.dispatcher else None,
            "live_observed": self.live.observed if self.live else 0,
            "live_applied": self.live.applied if self.live else 0,
            "live_error": self.live_error,
        }


_SESSION: Optional[TraceSession] = None


def get_session() -> TraceSession:
    """Return the process-wide trace session, creating it if needed."""
    global _SESSION

    if _SESSION is None:
        _SESSION = TraceSession()
    return _SESSION


async def close_session() -> None:
    """Stop any running trace and close endpoint connections."""
    global _SESSION

    if _SESSION is not None:
        LOGGER.info("Closing trace session")
        await _SESSION.close()
        _SESSION = None


__all__ = ["SessionStatus", "TraceSession", "get_session", "close_session"]
