"""
Ledger Gateway - Read interface to the remote system of record.

The engine only ever reads accounts. Submission of signed payloads is
handled by a separate signing layer and is not part of this interface.

Implementations:
- RpcLedgerGateway (rpc.py): JSON-RPC over aiohttp
- InMemoryLedgerGateway: dict-backed, for fixtures and tests
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence

from account_codec.pubkey import PublicKey
from core.exceptions import AccountNotFound


logger = logging.getLogger(__name__)


class LedgerGateway(ABC):
    """
    Abstract read-only ledger client.

    All methods are coroutines; no implementation may block the loop.
    """

    @abstractmethod
    async def read_account(self, address: PublicKey) -> bytes:
        """
        Read one account's raw data.

        Raises:
            AccountNotFound: the account does not exist
            GatewayError: transport or RPC failure
        """
        pass

    async def read_accounts(self, addresses: Sequence[PublicKey]) -> List[Optional[bytes]]:
        """
        Read several accounts; missing ones come back as None.

        Default implementation issues the reads concurrently.
        """
        results = await asyncio.gather(
            *(self.read_account(address) for address in addresses),
            return_exceptions=True,
        )
        out: List[Optional[bytes]] = []
        for result in results:
            if isinstance(result, AccountNotFound):
                out.append(None)
            elif isinstance(result, BaseException):
                raise result
            else:
                out.append(result)
        return out

    async def close(self) -> None:
        """Release any transport resources."""
        pass

    async def __aenter__(self) -> "LedgerGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class InMemoryLedgerGateway(LedgerGateway):
    """
    Gateway over a fixed account snapshot.

    Failures can be injected per address to exercise degradation paths;
    a per-address delay simulates slow venues.
    """

    def __init__(
        self,
        accounts: Optional[Mapping[PublicKey, bytes]] = None,
        failures: Optional[Mapping[PublicKey, Exception]] = None,
        delays: Optional[Mapping[PublicKey, float]] = None,
    ) -> None:
        self._accounts: Dict[PublicKey, bytes] = dict(accounts or {})
        self._failures: Dict[PublicKey, Exception] = dict(failures or {})
        self._delays: Dict[PublicKey, float] = dict(delays or {})
        self.reads: List[PublicKey] = []

    def set_account(self, address: PublicKey, data: bytes) -> None:
        self._accounts[address] = bytes(data)

    def remove_account(self, address: PublicKey) -> None:
        self._accounts.pop(address, None)

    def fail(self, address: PublicKey, error: Exception) -> None:
        self._failures[address] = error

    async def read_account(self, address: PublicKey) -> bytes:
        self.reads.append(address)

        delay = self._delays.get(address)
        if delay:
            await asyncio.sleep(delay)

        error = self._failures.get(address)
        if error is not None:
            raise error

        data = self._accounts.get(address)
        if data is None:
            raise AccountNotFound(str(address))
        return data
