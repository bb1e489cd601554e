"""
Quote Aggregator Package.

============================================================
PURPOSE
============================================================
Read venue state from the ledger and turn it into decoded quotes.

- LedgerGateway: read-only account access (RPC or in-memory)
- QuoteAggregator: concurrent per-venue fetch with failure exclusion
- QuoteCacheStore: advisory memo keyed by (address, seqno)

============================================================
"""

from .aggregator import (
    AggregationResult,
    QuoteAggregator,
    fetch_instrument_quotes,
    require_fresh_price,
)
from .cache import QuoteCacheStore
from .gateway import InMemoryLedgerGateway, LedgerGateway
from .rpc import RpcLedgerGateway


__all__ = [
    "AggregationResult",
    "QuoteAggregator",
    "fetch_instrument_quotes",
    "require_fresh_price",
    "QuoteCacheStore",
    "InMemoryLedgerGateway",
    "LedgerGateway",
    "RpcLedgerGateway",
]
