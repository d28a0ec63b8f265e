"""Incremental ingestion-and-reconciliation pipeline.

One run walks a fixed state machine:

  RESOLVE_CURSOR -> FETCH_EVENTS -> (EARLY_EXIT) -> RECONCILE_TOKENS
    -> FETCH_PRICE_SERIES -> MATCH_AND_NORMALIZE -> PERSIST_BATCH -> DONE

A fatal external failure (FetchError, NoPriceDataError, run timeout) jumps
straight to DONE. Nothing is written before RECONCILE_TOKENS, and transfers
are only written in PERSIST_BATCH, so an aborted run leaves the watermark
where it was. Persistence is at-least-once: chunks are independent and the
tx_hash primary key turns re-delivery into a no-op.

The price series is fetched concurrently with the token upsert once the
filtered event batch is known to be non-empty.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

import structlog

from indexer.classifier import ChainClassifier, ConstantChainClassifier
from indexer.config import AppSettings
from indexer.cursor import WatermarkCursor
from indexer.data.store import TransferStore
from indexer.exceptions import FetchError, NoPriceDataError, PersistenceError
from indexer.logging import get_logger
from indexer.models import Token, TransferEvent, TransferRecord
from indexer.pricing.matcher import PriceSeriesMatcher
from indexer.pricing.normalizer import UsdValuer
from indexer.registry import build_token_registry
from indexer.sources.client import EventSource, PriceFeed

logger = get_logger(__name__)


class PipelineState(str, Enum):
    """Stages of one ingestion run."""

    RESOLVE_CURSOR = "resolve_cursor"
    FETCH_EVENTS = "fetch_events"
    EARLY_EXIT = "early_exit"
    RECONCILE_TOKENS = "reconcile_tokens"
    FETCH_PRICE_SERIES = "fetch_price_series"
    MATCH_AND_NORMALIZE = "match_and_normalize"
    PERSIST_BATCH = "persist_batch"
    DONE = "done"


@dataclass
class RunReport:
    """What one pipeline run did. Callers are free to ignore it."""

    run_id: str
    states: list[PipelineState] = field(default_factory=list)
    from_block: int | None = None
    fetched: int = 0
    filtered: int = 0
    duplicates: int = 0
    tokens_registered: int = 0
    inserted: int = 0
    failed_chunks: int = 0
    stablecoin_transfers: int = 0
    unpriced_btc_transfers: int = 0
    error: str | None = None
    error_stage: PipelineState | None = None

    @property
    def state(self) -> PipelineState | None:
        return self.states[-1] if self.states else None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.failed_chunks == 0

    def enter(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.debug("pipeline_state", state=state.value)


class IngestionPipeline:
    """Scheduled entry point: fetch, enrich and persist new bridge transfers.

    All collaborators are injected so tests can run the pipeline against
    fakes and a temporary SQLite database.

    Args:
        store: Token registry and transfer persistence.
        event_source: Block explorer adapter.
        price_feed: Historical price series adapter.
        settings: Application-wide settings.
        classifier: Destination-chain classifier (defaults to the
            configured constant placeholder).
        cursor: Watermark cursor (defaults to one over ``store``).
    """

    def __init__(
        self,
        store: TransferStore,
        event_source: EventSource,
        price_feed: PriceFeed,
        settings: AppSettings,
        classifier: ChainClassifier | None = None,
        cursor: WatermarkCursor | None = None,
    ) -> None:
        self._store = store
        self._event_source = event_source
        self._price_feed = price_feed
        self._settings = settings
        self._pipeline = settings.pipeline
        self._classifier = classifier or ConstantChainClassifier(
            self._pipeline.destination_chain
        )
        self._cursor = cursor or WatermarkCursor(store, self._pipeline.genesis_block)

    async def run(self) -> RunReport:
        """Execute one ingestion run under the configured hard timeout."""
        report = RunReport(run_id=uuid.uuid4().hex[:12])
        start_time = time.monotonic()

        with structlog.contextvars.bound_contextvars(run_id=report.run_id):
            logger.info("pipeline_run_started")
            try:
                await asyncio.wait_for(
                    self._run(report), timeout=self._pipeline.run_timeout_seconds
                )
            except asyncio.TimeoutError:
                self._abort(
                    report,
                    report.state or PipelineState.RESOLVE_CURSOR,
                    f"run exceeded {self._pipeline.run_timeout_seconds}s",
                )

            logger.info(
                "pipeline_run_finished",
                succeeded=report.succeeded,
                from_block=report.from_block,
                fetched=report.fetched,
                filtered=report.filtered,
                inserted=report.inserted,
                failed_chunks=report.failed_chunks,
                duration_seconds=round(time.monotonic() - start_time, 2),
            )
        return report

    # ──────────────────────────────────────────────
    # State machine
    # ──────────────────────────────────────────────

    async def _run(self, report: RunReport) -> None:
        # 1. RESOLVE_CURSOR
        report.enter(PipelineState.RESOLVE_CURSOR)
        from_block = await self._cursor.get_resume_block()
        report.from_block = from_block

        # 2. FETCH_EVENTS
        report.enter(PipelineState.FETCH_EVENTS)
        try:
            events = await self._event_source.fetch_transfers(
                from_block,
                self._settings.explorer.end_block_sentinel,
                self._settings.explorer.filter_address,
            )
        except FetchError as e:
            self._abort(report, PipelineState.FETCH_EVENTS, e)
            return

        mints = self._filter_mints(events)
        report.fetched = len(events)
        report.filtered = len(mints)

        if not mints:
            report.enter(PipelineState.EARLY_EXIT)
            logger.info(
                "no_new_transfers",
                from_block=from_block,
                fetched=len(events),
            )
            report.enter(PipelineState.DONE)
            return

        logger.info(
            "transfers_discovered",
            from_block=from_block,
            fetched=len(events),
            mints=len(mints),
            first_timestamp=mints[0].timestamp,
            last_timestamp=mints[-1].timestamp,
        )

        price_task = asyncio.create_task(
            self._price_feed.fetch_series(self._settings.price_feed.asset)
        )
        try:
            # 3. RECONCILE_TOKENS
            report.enter(PipelineState.RECONCILE_TOKENS)
            registry = build_token_registry(mints, self._pipeline.default_decimals)
            await self._register_tokens(registry, report)

            # 4. FETCH_PRICE_SERIES
            report.enter(PipelineState.FETCH_PRICE_SERIES)
            try:
                series = await price_task
                matcher = PriceSeriesMatcher(series)
            except (FetchError, NoPriceDataError) as e:
                self._abort(report, PipelineState.FETCH_PRICE_SERIES, e)
                return
        finally:
            if not price_task.done():
                price_task.cancel()
            elif not price_task.cancelled():
                # Marks a failed fetch as retrieved when an earlier stage raised
                price_task.exception()

        # 5. MATCH_AND_NORMALIZE
        report.enter(PipelineState.MATCH_AND_NORMALIZE)
        records = self._build_records(mints, registry, matcher, report)

        # 6. PERSIST_BATCH
        report.enter(PipelineState.PERSIST_BATCH)
        result = await self._store.insert_transfers(
            records, chunk_size=self._pipeline.chunk_size
        )
        report.inserted = result.inserted
        report.failed_chunks = result.failed_chunks

        if result.ok:
            logger.info(
                "transfers_persisted",
                records=len(records),
                inserted=result.inserted,
                chunks=result.chunks,
                last_block=records[-1].block_num,
            )
        else:
            logger.error(
                "transfers_partially_persisted",
                records=len(records),
                inserted=result.inserted,
                chunks=result.chunks,
                failed_chunks=result.failed_chunks,
                failed_records=result.failed_records,
            )

        report.enter(PipelineState.DONE)

    # ──────────────────────────────────────────────
    # Stage helpers
    # ──────────────────────────────────────────────

    def _filter_mints(self, events: list[TransferEvent]) -> list[TransferEvent]:
        """Keep zero-address (mint/bridge-inbound) transfers, time-ordered.

        The explorer is asked for ascending order but this is not trusted:
        the price sweep requires ascending timestamps, so the batch is
        sorted (stable) by timestamp then block.
        """
        mints = [e for e in events if e.is_mint]
        mints.sort(key=lambda e: (e.timestamp_seconds, e.block_number))
        return mints

    async def _register_tokens(
        self, registry: dict[str, Token], report: RunReport
    ) -> None:
        """Upsert tokens; a failure is logged and the run continues.

        Transfers whose token row is missing will then fail their chunk on the
        foreign key and be retried on the next run.
        """
        try:
            report.tokens_registered = await self._store.insert_tokens(
                registry.values()
            )
        except PersistenceError as e:
            logger.error(
                "token_registration_failed",
                stage=PipelineState.RECONCILE_TOKENS.value,
                tokens=len(registry),
                error=str(e),
            )
            return

        logger.info(
            "tokens_reconciled",
            seen=len(registry),
            registered=report.tokens_registered,
        )

    def _build_records(
        self,
        mints: list[TransferEvent],
        registry: dict[str, Token],
        matcher: PriceSeriesMatcher,
        report: RunReport,
    ) -> list[TransferRecord]:
        """Price every transfer in one forward sweep of the series."""
        valuer = UsdValuer(
            matcher,
            stablecoin_tickers=self._pipeline.stablecoin_tickers,
            btc_tickers=self._pipeline.btc_tickers,
            skip_btc=self._pipeline.skip_btc_tokens,
        )

        records: list[TransferRecord] = []
        seen: set[str] = set()
        for event in mints:
            # Multi-log transactions repeat the hash; the first log wins
            if event.tx_hash in seen:
                report.duplicates += 1
                continue
            seen.add(event.tx_hash)

            contract_addr = event.contract_addr.lower()
            token = registry.get(contract_addr) or Token(
                contract_addr=contract_addr,
                decimals=self._pipeline.default_decimals,
            )
            records.append(
                TransferRecord(
                    tx_hash=event.tx_hash,
                    token_addr=contract_addr,
                    token_count=event.value,
                    usd=valuer.value(token, event.value, event.timestamp_seconds),
                    block_num=event.block_number,
                    timestamp=event.timestamp,
                    to_chain=self._classifier.classify(event),
                )
            )

        report.stablecoin_transfers = valuer.stablecoin_count
        report.unpriced_btc_transfers = valuer.skipped_btc_count

        if report.duplicates:
            logger.warning("duplicate_tx_hashes_dropped", count=report.duplicates)
        if valuer.skipped_btc_count:
            logger.warning(
                "btc_transfers_unpriced",
                count=valuer.skipped_btc_count,
                note="no BTC price series configured; usd left at 0",
            )
        return records

    def _abort(
        self,
        report: RunReport,
        stage: PipelineState,
        error: Exception | str,
    ) -> None:
        source = getattr(error, "source", None)
        logger.error(
            "pipeline_aborted",
            stage=stage.value,
            source=source,
            error_type=type(error).__name__ if isinstance(error, Exception) else "Timeout",
            error=str(error),
        )
        report.error = str(error)
        report.error_stage = stage
        report.enter(PipelineState.DONE)


class IndexerScheduler:
    """In-process timer that triggers the pipeline every ``interval_seconds``.

    Runs are serialised under a lock. A run that raises unexpectedly is
    logged and the loop keeps going.
    """

    def __init__(self, pipeline: IngestionPipeline, interval_seconds: float) -> None:
        self._pipeline = pipeline
        self._interval = interval_seconds
        self._running = False
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> RunReport:
        async with self._run_lock:
            return await self._pipeline.run()

    async def start(self) -> None:
        logger.info("scheduler_starting", interval_seconds=self._interval)
        self._running = True
        try:
            await self._run_loop()
        finally:
            self._running = False
            logger.info("scheduler_stopped")

    async def stop(self) -> None:
        logger.info("scheduler_stopping")
        self._running = False

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("scheduled_run_error", error=str(e), exc_info=True)
            if self._running:
                await asyncio.sleep(self._interval)
