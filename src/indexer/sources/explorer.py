"""Etherscan-compatible block explorer adapter (Moonscan by default).

Queries ``module=account&action=tokentx`` for ERC-20 transfer events
touching one address, sorted ascending. The response is treated as
untrusted input: malformed numeric fields are defaulted and rows that are
not objects are skipped, never fatal.
"""

import httpx

from indexer.config import ExplorerSettings
from indexer.exceptions import FetchError, ParseError
from indexer.logging import get_logger
from indexer.models import TransferEvent
from indexer.sources.client import EventSource
from indexer.sources.retry import fetch_with_retry

logger = get_logger(__name__)

_SOURCE = "explorer"
_NO_TRANSACTIONS = "No transactions found"
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_MAX_RESULT_ROWS = 10_000  # Etherscan-family cap on one tokentx response


def _parse_uint(raw: object, field: str) -> int:
    if raw is None or raw == "":
        raise ParseError(f"{field} missing")
    text = str(raw).strip()
    try:
        value = int(text, 16) if text.startswith("0x") else int(text)
    except ValueError as e:
        raise ParseError(f"{field} not an integer: {raw!r}") from e
    if value < 0:
        raise ParseError(f"{field} negative: {raw!r}")
    return value


def parse_transfer_event(raw: dict) -> TransferEvent:
    """Convert one explorer ``tokentx`` row into a TransferEvent.

    Missing or malformed block numbers and values default to 0.
    Addresses are lowercased.
    """
    tx_hash = str(raw.get("hash", "")).lower()

    try:
        block_number = _parse_uint(raw.get("blockNumber"), "blockNumber")
    except ParseError as e:
        logger.warning("event_block_defaulted", tx_hash=tx_hash, error=str(e))
        block_number = 0

    try:
        value = _parse_uint(raw.get("value"), "value")
    except ParseError as e:
        logger.warning("event_value_defaulted", tx_hash=tx_hash, error=str(e))
        value = 0

    return TransferEvent(
        tx_hash=tx_hash,
        from_addr=str(raw.get("from", "")).lower(),
        to_addr=str(raw.get("to", "")).lower(),
        contract_addr=str(raw.get("contractAddress", "")).lower(),
        value=value,
        block_number=block_number,
        timestamp=str(raw.get("timeStamp", "")),
        token_name=str(raw.get("tokenName", "")),
        token_symbol=str(raw.get("tokenSymbol", "")),
        token_decimal=str(raw.get("tokenDecimal", "")),
    )


def _drop_last_block(events: list[TransferEvent]) -> list[TransferEvent]:
    """Trim a capped response back to whole blocks.

    A response at the row cap may end part-way through its highest block.
    The resume watermark is max(block) + 1, so those rows are dropped and
    the block is fetched whole on the next run. A response holding a single
    block is kept as is.
    """
    last_block = max(e.block_number for e in events)
    kept = [e for e in events if e.block_number < last_block]
    if not kept:
        logger.warning("explorer_result_capped_single_block", block=last_block)
        return events
    logger.warning(
        "explorer_result_capped",
        cap=_MAX_RESULT_ROWS,
        dropped_block=last_block,
        dropped=len(events) - len(kept),
    )
    return kept


class ExplorerEventSource(EventSource):
    """Fetches ERC-20 transfer events from an Etherscan-compatible API.

    Usage:
        source = ExplorerEventSource(settings.explorer)
        try:
            events = await source.fetch_transfers(4164121, 999999999, gmp_addr)
        finally:
            await source.close()
    """

    def __init__(
        self,
        settings: ExplorerSettings,
        client: httpx.AsyncClient | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_transfers(
        self,
        from_block: int,
        to_block: int,
        filter_address: str,
    ) -> list[TransferEvent]:
        rows = await fetch_with_retry(
            self._request,
            from_block,
            to_block,
            filter_address,
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
        )
        events: list[TransferEvent] = []
        for row in rows:
            if not isinstance(row, dict):
                logger.warning("event_row_skipped", row=repr(row)[:200])
                continue
            events.append(parse_transfer_event(row))

        if events and len(rows) >= _MAX_RESULT_ROWS:
            events = _drop_last_block(events)
        logger.info(
            "explorer_transfers_fetched",
            from_block=from_block,
            to_block=to_block,
            address=filter_address,
            count=len(events),
        )
        return events

    async def _request(
        self,
        from_block: int,
        to_block: int,
        filter_address: str,
    ) -> list[dict]:
        """Perform one ``tokentx`` call and return the raw result rows."""
        params = {
            "module": "account",
            "action": "tokentx",
            "address": filter_address,
            "startblock": from_block,
            "endblock": to_block,
            "page": 0,
            "offset": 0,
            "sort": "asc",
            "apikey": self._settings.api_key.get_secret_value(),
        }

        try:
            response = await self._client.get(self._settings.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            raise FetchError(
                _SOURCE,
                f"HTTP {code}",
                retryable=code in _RETRYABLE_STATUS_CODES,
            ) from e
        except httpx.TransportError as e:
            raise FetchError(_SOURCE, f"{type(e).__name__}: {e}", retryable=True) from e
        except ValueError as e:
            raise FetchError(_SOURCE, f"malformed JSON body: {e}") from e

        if not isinstance(payload, dict):
            raise FetchError(_SOURCE, "unexpected response shape")

        result = payload.get("result")
        if str(payload.get("status")) == "1" and isinstance(result, list):
            return result

        message = str(payload.get("message", ""))
        if _NO_TRANSACTIONS in message and not result:
            return []

        detail = result if isinstance(result, str) and result else message
        raise FetchError(_SOURCE, detail, retryable="rate limit" in detail.lower())
