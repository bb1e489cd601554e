"""
Quote Aggregator - Concurrent top-of-book fetch across venues.

============================================================
PURPOSE
============================================================
For an instrument, read and decode every venue's quote cache.

- All venue reads start together and are awaited together
- One venue's failure never cancels or delays the others
- Failed venues are logged and excluded (VenueUnreadable)
- Stale sources are excluded (StalePrice)
- Zero survivors raise NoLiquidityAvailable

Decoding is pure and reads have no side effects, so an abandoned
aggregation (task cancelled by the caller) leaves nothing behind.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from account_codec.decoders import decode_oracle, decode_slab
from account_codec.pubkey import PublicKey
from account_codec.records import OraclePrice, SlabHeader, SlabQuote, VenueRegistry, VenueRegistryEntry
from core.clock import get_clock
from core.config import EngineConfig, get_config
from core.exceptions import (
    EngineError,
    NoLiquidityAvailable,
    StalePrice,
    VenueUnreadable,
)
from core.logging_setup import short_key

from .cache import QuoteCacheStore
from .gateway import LedgerGateway


logger = logging.getLogger(__name__)


Venue = Union[PublicKey, VenueRegistryEntry]


@dataclass
class AggregationResult:
    """Outcome of one fan-out: surviving quotes plus per-venue failures."""
    quotes: List[SlabQuote] = field(default_factory=list)
    failures: List[EngineError] = field(default_factory=list)

    @property
    def all_stale(self) -> bool:
        return bool(self.failures) and all(isinstance(f, StalePrice) for f in self.failures)


def _venue_address(venue: Venue) -> PublicKey:
    return venue.slab_id if isinstance(venue, VenueRegistryEntry) else venue


def require_fresh_price(price: OraclePrice, address: Optional[PublicKey] = None) -> OraclePrice:
    """Raise StalePrice unless the oracle price is fresh."""
    if price.stale:
        raise StalePrice(
            f"Oracle price is stale ({price.age_seconds}s old)",
            address=str(address) if address else None,
            age_seconds=price.age_seconds,
        )
    return price


class QuoteAggregator:
    """
    Fetches and decodes venue quotes through a LedgerGateway.

    Usage:
        aggregator = QuoteAggregator(gateway)
        venues = await aggregator.list_venues_for_instrument(instrument, registry)
        quotes = await aggregator.fetch_quotes(venues)
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        config: Optional[EngineConfig] = None,
        cache: Optional[QuoteCacheStore] = None,
        require_cache_seqno: bool = True,
    ) -> None:
        self.gateway = gateway
        self.config = config or get_config()
        self.cache = cache
        self.require_cache_seqno = require_cache_seqno

    @property
    def _timeout(self) -> float:
        return self.config.staleness.venue_fetch_timeout_seconds

    # ============================================================
    # VENUE DISCOVERY
    # ============================================================

    async def _read_header(self, entry: VenueRegistryEntry) -> SlabHeader:
        data = await asyncio.wait_for(
            self.gateway.read_account(entry.slab_id),
            timeout=self._timeout,
        )
        return decode_slab(data, entry.slab_id).header

    async def list_venues_for_instrument(
        self,
        instrument: PublicKey,
        registry: VenueRegistry,
    ) -> List[VenueRegistryEntry]:
        """
        Registry entries whose venue lists `instrument`.

        Each active entry's header is read concurrently; unreadable
        venues are skipped with a warning. Order follows the registry.
        """
        entries = registry.active_entries()
        tasks = [asyncio.create_task(self._read_header(entry)) for entry in entries]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        matches = []
        for entry, result in zip(entries, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"[{short_key(entry.slab_id)}] Header read failed: {result}")
                continue
            if instrument in result.instruments:
                matches.append(entry)

        logger.info(
            f"Found {len(matches)}/{len(entries)} venues for instrument {short_key(instrument)}"
        )
        return matches

    # ============================================================
    # QUOTES
    # ============================================================

    async def _fetch_one(self, venue: Venue, check_oracle: bool) -> SlabQuote:
        address = _venue_address(venue)
        data = await self.gateway.read_account(address)
        state = decode_slab(data, address)

        if self.require_cache_seqno and state.quote_cache.seqno < state.header.seqno:
            raise StalePrice(
                f"Quote cache seqno {state.quote_cache.seqno} behind venue seqno {state.header.seqno}",
                address=str(address),
            )

        if check_oracle and isinstance(venue, VenueRegistryEntry):
            await self.fetch_fresh_oracle(venue.oracle_id)

        quote = SlabQuote.from_state(address, state)
        if self.cache is not None:
            # Same seqno and header fields: hand back the memoized quote
            cached = self.cache.get(address, quote.cache.seqno)
            if cached == quote:
                return cached
            self.cache.put(quote)
        return quote

    async def collect_quotes(
        self,
        venues: Sequence[Venue],
        check_oracles: bool = False,
    ) -> AggregationResult:
        """
        Fan out one read per venue and partition the outcomes.

        Never raises for per-venue failures.
        """
        tasks = [
            asyncio.create_task(
                asyncio.wait_for(self._fetch_one(venue, check_oracles), timeout=self._timeout)
            )
            for venue in venues
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcome = AggregationResult()
        for venue, result in zip(venues, results):
            address = _venue_address(venue)
            if isinstance(result, SlabQuote):
                outcome.quotes.append(result)
            elif isinstance(result, StalePrice):
                logger.warning(f"[{short_key(address)}] Excluded stale source: {result.message}")
                outcome.failures.append(result)
            elif isinstance(result, asyncio.TimeoutError):
                logger.warning(f"[{short_key(address)}] Fetch timeout")
                outcome.failures.append(VenueUnreadable(str(address), result))
            elif isinstance(result, Exception):
                logger.warning(f"[{short_key(address)}] Fetch error: {result}")
                outcome.failures.append(VenueUnreadable(str(address), result))
            else:
                raise result

        return outcome

    async def fetch_quotes(
        self,
        venues: Sequence[Venue],
        check_oracles: bool = False,
    ) -> List[SlabQuote]:
        """
        Quotes for every venue that could be read and decoded.

        Args:
            venues: Venue addresses or registry entries
            check_oracles: Also require each entry's oracle to be fresh

        Raises:
            StalePrice: every venue was excluded only for staleness
            NoLiquidityAvailable: no venue survived
        """
        outcome = await self.collect_quotes(venues, check_oracles)

        if not outcome.quotes:
            if outcome.all_stale:
                raise outcome.failures[0]
            raise NoLiquidityAvailable(
                f"No liquidity available: all {len(venues)} venues excluded",
                failures=outcome.failures,
            )

        logger.debug(f"Fetched {len(outcome.quotes)}/{len(venues)} venue quotes")
        return outcome.quotes

    # ============================================================
    # ORACLES
    # ============================================================

    async def fetch_oracle(self, address: PublicKey, now: Optional[int] = None) -> OraclePrice:
        """Read and decode an oracle; stale prices are tagged, not raised."""
        data = await self.gateway.read_account(address)
        return decode_oracle(
            data,
            address,
            now=now if now is not None else get_clock().unix_seconds(),
            max_age_seconds=self.config.staleness.oracle_max_age_seconds,
        )

    async def fetch_fresh_oracle(self, address: PublicKey, now: Optional[int] = None) -> OraclePrice:
        return require_fresh_price(await self.fetch_oracle(address, now), address)


async def fetch_instrument_quotes(
    aggregator: QuoteAggregator,
    instrument: PublicKey,
    registry: VenueRegistry,
    check_oracles: bool = False,
) -> Tuple[List[VenueRegistryEntry], List[SlabQuote]]:
    """Discover venues for an instrument, then fetch their quotes."""
    venues = await aggregator.list_venues_for_instrument(instrument, registry)
    if not venues:
        raise NoLiquidityAvailable(f"No venue lists instrument {instrument}")
    quotes = await aggregator.fetch_quotes(venues, check_oracles)
    return venues, quotes
