"""
RPC Ledger Gateway - JSON-RPC account reads over aiohttp.

Uses getAccountInfo / getMultipleAccounts with base64 encoding.
Rate limits vary by RPC provider; a 429 is surfaced as RateLimitError
and retrying is left to the caller.
"""

import base64
import logging
from typing import Any, List, Optional, Sequence

import aiohttp

from account_codec.pubkey import PublicKey
from core.config import EngineConfig, get_config
from core.exceptions import AccountNotFound, GatewayError, RateLimitError
from core.logging_setup import short_key

from .gateway import LedgerGateway


logger = logging.getLogger(__name__)


MAX_MULTIPLE_ACCOUNTS = 100


class RpcLedgerGateway(LedgerGateway):
    """
    Ledger gateway backed by a JSON-RPC node.

    Usage:
        async with RpcLedgerGateway() as gateway:
            data = await gateway.read_account(address)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rpc_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or get_config()
        self.rpc_url = rpc_url or self.config.gateway.rpc_url
        self.commitment = self.config.gateway.commitment

        self._session = session
        self._owns_session = session is None
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.gateway.request_timeout_seconds)
            headers = {"Content-Type": "application/json"}
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
            )
            self._owns_session = True
        return self._session

    def _next_request_id(self) -> int:
        """Get next JSON-RPC request ID."""
        self._request_id += 1
        return self._request_id

    async def _rpc_call(
        self,
        method: str,
        params: List[Any],
    ) -> Any:
        """Make a JSON-RPC call."""
        session = await self._get_session()

        payload = {
            "jsonrpc": "2.0",
            "id": self._next_request_id(),
            "method": method,
            "params": params,
        }

        try:
            async with session.post(self.rpc_url, json=payload) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        "RPC rate limit exceeded",
                        rpc_url=self.rpc_url,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    )

                if response.status != 200:
                    raise GatewayError(
                        f"RPC error: {response.status}",
                        rpc_url=self.rpc_url,
                        status_code=response.status,
                    )

                data = await response.json()

                if "error" in data:
                    error = data["error"]
                    raise GatewayError(
                        f"RPC error: {error.get('message', 'Unknown')}",
                        rpc_url=self.rpc_url,
                        context={"rpc_error": error},
                    )

                return data.get("result")

        except aiohttp.ClientError as e:
            raise GatewayError(
                f"Network error: {e}",
                rpc_url=self.rpc_url,
                cause=e,
            )

    def _account_config(self) -> dict:
        return {"encoding": "base64", "commitment": self.commitment}

    @staticmethod
    def _decode_value(value: Optional[dict]) -> Optional[bytes]:
        if value is None:
            return None
        try:
            encoded, encoding = value["data"]
            if encoding != "base64":
                raise GatewayError(f"Unexpected account encoding: {encoding}")
            return base64.b64decode(encoded, validate=True)
        except (KeyError, ValueError, TypeError) as e:
            raise GatewayError(f"Malformed account value: {e!r}", cause=e) from e

    async def read_account(self, address: PublicKey) -> bytes:
        result = await self._rpc_call(
            "getAccountInfo",
            [str(address), self._account_config()],
        )
        data = self._decode_value((result or {}).get("value"))
        if data is None:
            raise AccountNotFound(str(address))

        logger.debug(f"Read {len(data)} bytes from {short_key(address)}")
        return data

    async def read_accounts(self, addresses: Sequence[PublicKey]) -> List[Optional[bytes]]:
        """Batch read via getMultipleAccounts, chunked to the RPC limit."""
        out: List[Optional[bytes]] = []
        for start in range(0, len(addresses), MAX_MULTIPLE_ACCOUNTS):
            chunk = addresses[start:start + MAX_MULTIPLE_ACCOUNTS]
            result = await self._rpc_call(
                "getMultipleAccounts",
                [[str(address) for address in chunk], self._account_config()],
            )
            values = (result or {}).get("value") or []
            if len(values) != len(chunk):
                raise GatewayError(
                    f"getMultipleAccounts returned {len(values)} values for {len(chunk)} addresses",
                    rpc_url=self.rpc_url,
                )
            out.extend(self._decode_value(value) for value in values)
        return out

    async def get_slot(self) -> int:
        """Current slot, used as a liveness probe."""
        return int(await self._rpc_call("getSlot", [{"commitment": self.commitment}]))

    async def close(self) -> None:
        """Close the HTTP session if this gateway created it."""
        if self._session and not self._session.closed and self._owns_session:
            await self._session.close()
        self._session = None
