"""
Tests for ledger gateways and the quote cache store.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from core.config import EngineConfig
from core.exceptions import AccountNotFound, GatewayError, RateLimitError
from quote_aggregator.cache import QuoteCacheStore
from quote_aggregator.gateway import InMemoryLedgerGateway
from quote_aggregator.rpc import RpcLedgerGateway

from tests.fixtures import key, quote


# ============================================================
# HELPERS
# ============================================================

def mock_session(status=200, payload=None, headers=None, error=None):
    """aiohttp session whose post() yields one canned response."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload or {})

    context = MagicMock()
    if error is not None:
        context.__aenter__ = AsyncMock(side_effect=error)
    else:
        context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=context)
    session.close = AsyncMock()
    return session


def account_result(data: bytes) -> dict:
    return {"jsonrpc": "2.0", "id": 1, "result": {
        "context": {"slot": 1},
        "value": {"data": [base64.b64encode(data).decode(), "base64"], "owner": "x"},
    }}


# ============================================================
# IN-MEMORY GATEWAY
# ============================================================

class TestInMemoryGateway:
    """Tests for InMemoryLedgerGateway."""

    @pytest.mark.asyncio
    async def test_read(self):
        """Stored accounts are returned and reads recorded."""
        gateway = InMemoryLedgerGateway({key(1): b"abc"})
        assert await gateway.read_account(key(1)) == b"abc"
        assert gateway.reads == [key(1)]

    @pytest.mark.asyncio
    async def test_missing(self):
        """Unknown addresses raise AccountNotFound."""
        with pytest.raises(AccountNotFound):
            await InMemoryLedgerGateway().read_account(key(1))

    @pytest.mark.asyncio
    async def test_injected_failure(self):
        """Injected errors are raised for that address only."""
        gateway = InMemoryLedgerGateway({key(1): b"a", key(2): b"b"})
        gateway.fail(key(1), GatewayError("boom"))

        with pytest.raises(GatewayError):
            await gateway.read_account(key(1))
        assert await gateway.read_account(key(2)) == b"b"

    @pytest.mark.asyncio
    async def test_read_accounts(self):
        """Batch reads return None for missing accounts."""
        gateway = InMemoryLedgerGateway({key(1): b"a"})
        assert await gateway.read_accounts([key(1), key(2)]) == [b"a", None]

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Gateways are async context managers."""
        async with InMemoryLedgerGateway({key(1): b"a"}) as gateway:
            assert await gateway.read_account(key(1)) == b"a"


# ============================================================
# RPC GATEWAY
# ============================================================

class TestRpcGateway:
    """Tests for RpcLedgerGateway against a mocked session."""

    @pytest.fixture
    def config(self):
        return EngineConfig.for_testing()

    @pytest.mark.asyncio
    async def test_read_account(self, config):
        """getAccountInfo data is base64-decoded."""
        session = mock_session(payload=account_result(b"\x01\x02\x03"))
        gateway = RpcLedgerGateway(config, session=session)

        data = await gateway.read_account(key(7))

        assert data == b"\x01\x02\x03"
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "getAccountInfo"
        assert payload["params"][0] == str(key(7))
        assert payload["params"][1] == {"encoding": "base64", "commitment": "confirmed"}

    @pytest.mark.asyncio
    async def test_missing_account(self, config):
        """A null value is AccountNotFound."""
        session = mock_session(payload={"result": {"context": {}, "value": None}})
        gateway = RpcLedgerGateway(config, session=session)

        with pytest.raises(AccountNotFound):
            await gateway.read_account(key(7))

    @pytest.mark.asyncio
    async def test_rate_limited(self, config):
        """HTTP 429 is RateLimitError with Retry-After."""
        session = mock_session(status=429, headers={"Retry-After": "3"})
        gateway = RpcLedgerGateway(config, session=session)

        with pytest.raises(RateLimitError) as exc_info:
            await gateway.read_account(key(7))
        assert exc_info.value.retry_after_seconds == 3

    @pytest.mark.asyncio
    async def test_http_error(self, config):
        """Other non-200 statuses are GatewayError."""
        gateway = RpcLedgerGateway(config, session=mock_session(status=503))
        with pytest.raises(GatewayError) as exc_info:
            await gateway.read_account(key(7))
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_rpc_error(self, config):
        """A JSON-RPC error object is GatewayError."""
        payload = {"error": {"code": -32602, "message": "Invalid param"}}
        gateway = RpcLedgerGateway(config, session=mock_session(payload=payload))
        with pytest.raises(GatewayError, match="Invalid param"):
            await gateway.read_account(key(7))

    @pytest.mark.asyncio
    async def test_network_error(self, config):
        """Transport errors are wrapped."""
        session = mock_session(error=aiohttp.ClientConnectionError("refused"))
        gateway = RpcLedgerGateway(config, session=session)
        with pytest.raises(GatewayError, match="Network error"):
            await gateway.read_account(key(7))

    @pytest.mark.asyncio
    async def test_read_accounts(self, config):
        """getMultipleAccounts keeps order and maps null to None."""
        payload = {"result": {"context": {}, "value": [
            {"data": [base64.b64encode(b"a").decode(), "base64"]},
            None,
        ]}}
        gateway = RpcLedgerGateway(config, session=mock_session(payload=payload))

        assert await gateway.read_accounts([key(1), key(2)]) == [b"a", None]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [
        {"owner": "x"},
        {"data": ["!!!not-base64", "base64"]},
        {"data": None},
        {"data": ["AQID"]},
    ], ids=["no-data", "bad-base64", "null-data", "short-pair"])
    async def test_malformed_value(self, config, value):
        """Unreadable account values are GatewayError."""
        payload = {"result": {"context": {}, "value": value}}
        gateway = RpcLedgerGateway(config, session=mock_session(payload=payload))

        with pytest.raises(GatewayError, match="Malformed account value") as exc_info:
            await gateway.read_account(key(7))
        assert exc_info.value.__cause__ is not None

    @pytest.mark.asyncio
    async def test_malformed_value_in_batch(self, config):
        """A bad entry fails the whole batch read."""
        payload = {"result": {"context": {}, "value": [
            {"data": [base64.b64encode(b"a").decode(), "base64"]},
            {"data": ["%%%", "base64"]},
        ]}}
        gateway = RpcLedgerGateway(config, session=mock_session(payload=payload))

        with pytest.raises(GatewayError, match="Malformed account value"):
            await gateway.read_accounts([key(1), key(2)])

    @pytest.mark.asyncio
    async def test_does_not_close_borrowed_session(self, config):
        """A session passed in belongs to the caller."""
        session = mock_session()
        gateway = RpcLedgerGateway(config, session=session)
        await gateway.close()
        session.close.assert_not_called()


# ============================================================
# QUOTE CACHE
# ============================================================

class TestQuoteCacheStore:
    """Tests for QuoteCacheStore."""

    def test_keyed_by_seqno(self):
        """A new seqno is a miss."""
        store = QuoteCacheStore()
        store.put(quote(key(1)))

        assert store.get(key(1), 1) is not None
        assert store.get(key(1), 2) is None
        assert store.hits == 1
        assert store.misses == 1

    def test_evicts_oldest(self):
        """The least recently used entry is evicted first."""
        store = QuoteCacheStore(max_entries=2)
        store.put(quote(key(1)))
        store.put(quote(key(2)))
        store.get(key(1), 1)
        store.put(quote(key(3)))

        assert len(store) == 2
        assert store.get(key(2), 1) is None
        assert store.get(key(1), 1) is not None
