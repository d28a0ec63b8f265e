"""Entry point for the transfer indexer.

Wires settings, logging, the SQLite store, the explorer and price feed
adapters and the ingestion pipeline, then either:
- runs a single pipeline invocation (``--once``, for cron/serverless hosts),
- prints the per-token liquidity summary (``--report``), or
- runs the in-process scheduler until SIGINT/SIGTERM (default).
"""

import argparse
import asyncio
import json
import signal
from dataclasses import asdict

from indexer.config import AppSettings
from indexer.data.database import IndexerDatabase
from indexer.data.store import TransferStore
from indexer.logging import get_logger, setup_logging
from indexer.pipeline import IndexerScheduler, IngestionPipeline
from indexer.sources import ExplorerEventSource, create_price_feed


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="gmp-indexer",
        description="Index bridge-inbound token transfers with USD values.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="run the pipeline once and exit")
    mode.add_argument(
        "--report", action="store_true", help="print per-token liquidity totals as JSON"
    )
    return parser.parse_args(argv)


def _setup_signal_handlers(scheduler: IndexerScheduler, task: asyncio.Task) -> None:
    """SIGINT/SIGTERM stop the scheduler and cancel any in-flight run.

    Chunks committed before cancellation stay valid; the next run resumes
    from the recomputed watermark.
    """
    logger = get_logger("indexer.main")
    loop = asyncio.get_running_loop()

    def _shutdown_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(scheduler.stop())
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown_handler)


async def _report(store: TransferStore) -> None:
    summary = await store.get_liquidity_summary()
    rows = []
    for entry in summary:
        row = asdict(entry)
        row["token_count"] = str(entry.token_count)  # uint256 as string for JSON consumers
        rows.append(row)
    print(json.dumps(rows, indent=2))


async def run(argv: list[str] | None = None) -> None:
    """Run the indexer in the mode selected on the command line."""
    args = _parse_args(argv)

    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("indexer.main")

    async with IndexerDatabase(settings.database.path) as database:
        store = TransferStore(database)

        if args.report:
            await _report(store)
            return

        event_source = ExplorerEventSource(
            settings.explorer,
            max_retries=settings.pipeline.max_retries,
            retry_base_delay=settings.pipeline.retry_base_delay,
        )
        price_feed = create_price_feed(settings)
        pipeline = IngestionPipeline(store, event_source, price_feed, settings)

        try:
            if args.once:
                await pipeline.run()
                return

            scheduler = IndexerScheduler(pipeline, settings.pipeline.interval_seconds)
            loop_task = asyncio.create_task(scheduler.start())
            _setup_signal_handlers(scheduler, loop_task)
            logger.info(
                "indexer_started",
                interval_seconds=settings.pipeline.interval_seconds,
                filter_address=settings.explorer.filter_address,
                price_provider=settings.price_feed.provider,
            )
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        finally:
            await event_source.close()
            await price_feed.close()
            logger.info("indexer_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
