"""Tests for ExplorerEventSource.

All tests use httpx.MockTransport to avoid real API calls.
"""

import httpx
import pytest

from indexer.config import ExplorerSettings
from indexer.exceptions import FetchError
from indexer.models import ZERO_ADDRESS
from indexer.sources import explorer
from indexer.sources.explorer import ExplorerEventSource, parse_transfer_event

GMP = "0x0000000000000000000000000000000000000816"

# ---------------------------------------------------------------------------
# Sample tokentx rows (mimic the Etherscan/Moonscan response)
# ---------------------------------------------------------------------------

MINT_ROW = {
    "blockNumber": "4164200",
    "timeStamp": "1687975200",
    "hash": "0xAAA1",
    "from": ZERO_ADDRESS,
    "to": "0xRecipient",
    "contractAddress": "0xWETH",
    "value": "1500000000000000000",
    "tokenName": "Wrapped Ether",
    "tokenSymbol": "WETH.wh",
    "tokenDecimal": "18",
}

TRANSFER_ROW = {
    **MINT_ROW,
    "hash": "0xAAA2",
    "from": "0x1111111111111111111111111111111111111111",
}


def _ok(rows: list[dict]) -> dict:
    return {"status": "1", "message": "OK", "result": rows}


def _source(handler, max_retries: int = 1) -> ExplorerEventSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExplorerEventSource(
        ExplorerSettings(api_key="test-key"),  # type: ignore[arg-type]
        client=client,
        max_retries=max_retries,
        retry_base_delay=0,
    )


class TestParseTransferEvent:
    def test_fields(self) -> None:
        event = parse_transfer_event(MINT_ROW)
        assert event.tx_hash == "0xaaa1"
        assert event.contract_addr == "0xweth"
        assert event.to_addr == "0xrecipient"
        assert event.value == 1_500_000_000_000_000_000
        assert event.block_number == 4_164_200
        assert event.timestamp_seconds == 1_687_975_200
        assert event.token_decimal == "18"
        assert event.is_mint

    def test_non_zero_sender_is_not_mint(self) -> None:
        assert not parse_transfer_event(TRANSFER_ROW).is_mint

    def test_missing_block_defaults_to_zero(self) -> None:
        row = {k: v for k, v in MINT_ROW.items() if k != "blockNumber"}
        assert parse_transfer_event(row).block_number == 0

    def test_malformed_value_defaults_to_zero(self) -> None:
        assert parse_transfer_event({**MINT_ROW, "value": "lots"}).value == 0

    def test_hex_value(self) -> None:
        assert parse_transfer_event({**MINT_ROW, "value": "0x10"}).value == 16

    def test_malformed_timestamp(self) -> None:
        assert parse_transfer_event({**MINT_ROW, "timeStamp": "soon"}).timestamp_seconds == 0


class TestFetchTransfers:
    @pytest.mark.asyncio
    async def test_request_params_and_parsing(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_ok([MINT_ROW, TRANSFER_ROW]))

        source = _source(handler)
        events = await source.fetch_transfers(4_164_121, 999_999_999, GMP)
        await source.close()

        assert [e.tx_hash for e in events] == ["0xaaa1", "0xaaa2"]
        params = seen[0].url.params
        assert params["module"] == "account"
        assert params["action"] == "tokentx"
        assert params["address"] == GMP
        assert params["startblock"] == "4164121"
        assert params["endblock"] == "999999999"
        assert params["sort"] == "asc"
        assert params["apikey"] == "test-key"

    @pytest.mark.asyncio
    async def test_no_transactions_is_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": "0", "message": "No transactions found", "result": []}
            )

        assert await _source(handler).fetch_transfers(1, 2, GMP) == []

    @pytest.mark.asyncio
    async def test_invalid_key_is_fatal(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
            )

        with pytest.raises(FetchError, match="Invalid API Key") as exc_info:
            await _source(handler, max_retries=3).fetch_transfers(1, 2, GMP)
        assert not exc_info.value.retryable
        assert calls == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self) -> None:
        responses = [
            httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
            ),
            httpx.Response(200, json=_ok([MINT_ROW])),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        events = await _source(handler, max_retries=2).fetch_transfers(1, 2, GMP)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(502)

        with pytest.raises(FetchError, match="HTTP 502"):
            await _source(handler, max_retries=3).fetch_transfers(1, 2, GMP)
        assert calls == 3

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            await _source(handler).fetch_transfers(1, 2, GMP)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_non_object_rows_are_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok(["garbage", MINT_ROW, 42, None]))

        events = await _source(handler).fetch_transfers(1, 2, GMP)

        assert [e.tx_hash for e in events] == ["0xaaa1"]

    @pytest.mark.asyncio
    async def test_capped_response_drops_highest_block(self, monkeypatch) -> None:
        monkeypatch.setattr(explorer, "_MAX_RESULT_ROWS", 4)
        rows = [
            {**MINT_ROW, "hash": "0x1", "blockNumber": "100"},
            {**MINT_ROW, "hash": "0x2", "blockNumber": "101"},
            {**MINT_ROW, "hash": "0x3", "blockNumber": "102"},
            {**MINT_ROW, "hash": "0x4", "blockNumber": "102"},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok(rows))

        events = await _source(handler).fetch_transfers(1, 2, GMP)

        assert [e.tx_hash for e in events] == ["0x1", "0x2"]

    @pytest.mark.asyncio
    async def test_capped_single_block_is_kept(self, monkeypatch) -> None:
        monkeypatch.setattr(explorer, "_MAX_RESULT_ROWS", 2)
        rows = [
            {**MINT_ROW, "hash": "0x1", "blockNumber": "100"},
            {**MINT_ROW, "hash": "0x2", "blockNumber": "100"},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok(rows))

        events = await _source(handler).fetch_transfers(1, 2, GMP)

        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_below_cap_keeps_every_block(self) -> None:
        rows = [
            {**MINT_ROW, "hash": "0x1", "blockNumber": "100"},
            {**MINT_ROW, "hash": "0x2", "blockNumber": "101"},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok(rows))

        events = await _source(handler).fetch_transfers(1, 2, GMP)

        assert [e.block_number for e in events] == [100, 101]

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>gateway</html>")

        with pytest.raises(FetchError, match="malformed JSON"):
            await _source(handler).fetch_transfers(1, 2, GMP)
