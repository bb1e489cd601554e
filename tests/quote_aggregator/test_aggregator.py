"""
Tests for Quote Aggregator.

============================================================
TEST PRINCIPLES
============================================================
- One venue's failure never fails the aggregation
- Zero survivors raise NoLiquidityAvailable
- Stale sources are excluded, and reported only when nothing else is
- All venue reads run concurrently

============================================================
"""

import asyncio

import pytest

from account_codec.decoders import decode_registry
from account_codec.records import OracleKind
from core.config import EngineConfig
from core.exceptions import (
    AccountNotFound,
    GatewayError,
    NoLiquidityAvailable,
    StalePrice,
    VenueUnreadable,
)
from quote_aggregator.aggregator import (
    QuoteAggregator,
    fetch_instrument_quotes,
    require_fresh_price,
)
from quote_aggregator.cache import QuoteCacheStore
from quote_aggregator.gateway import InMemoryLedgerGateway

from tests.fixtures import (
    NOW,
    custom_oracle_bytes,
    key,
    registry_bytes,
    registry_entry,
    scaled,
    slab_bytes,
)


INSTRUMENT = key(100)
OTHER_INSTRUMENT = key(101)

SLAB_A, SLAB_B, SLAB_C = key(10), key(11), key(12)
ORACLE_A, ORACLE_B, ORACLE_C = key(20), key(21), key(22)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def accounts():
    """Three venues on one instrument with asks 101, 100, 102."""
    return {
        SLAB_A: slab_bytes(INSTRUMENT, asks=[(scaled(101), scaled(5))]),
        SLAB_B: slab_bytes(INSTRUMENT, asks=[(scaled(100), scaled(5))]),
        SLAB_C: slab_bytes(INSTRUMENT, asks=[(scaled(102), scaled(5))]),
        ORACLE_A: custom_oracle_bytes(scaled(100), timestamp=NOW - 5),
        ORACLE_B: custom_oracle_bytes(scaled(100), timestamp=NOW - 5),
        ORACLE_C: custom_oracle_bytes(scaled(100), timestamp=NOW - 5),
    }


@pytest.fixture
def registry():
    return decode_registry(registry_bytes([
        registry_entry(SLAB_A, oracle=ORACLE_A),
        registry_entry(SLAB_B, oracle=ORACLE_B),
        registry_entry(SLAB_C, oracle=ORACLE_C),
    ]))


@pytest.fixture
def gateway(accounts):
    return InMemoryLedgerGateway(accounts)


@pytest.fixture
def aggregator(gateway):
    return QuoteAggregator(gateway)


# ============================================================
# FETCH QUOTES
# ============================================================

class TestFetchQuotes:
    """Tests for QuoteAggregator.fetch_quotes."""

    @pytest.mark.asyncio
    async def test_all_venues(self, aggregator):
        """Every readable venue yields a quote, in input order."""
        quotes = await aggregator.fetch_quotes([SLAB_A, SLAB_B, SLAB_C])

        assert [q.slab for q in quotes] == [SLAB_A, SLAB_B, SLAB_C]
        assert quotes[1].cache.best_ask.price == scaled(100)
        assert quotes[0].instrument == INSTRUMENT

    @pytest.mark.asyncio
    async def test_one_unreadable_venue_excluded(self, aggregator, gateway):
        """A missing account drops only that venue."""
        gateway.remove_account(SLAB_B)

        quotes = await aggregator.fetch_quotes([SLAB_A, SLAB_B, SLAB_C])

        assert [q.slab for q in quotes] == [SLAB_A, SLAB_C]

    @pytest.mark.asyncio
    async def test_decode_failure_excluded(self, aggregator, gateway):
        """Garbage in one account drops only that venue."""
        gateway.set_account(SLAB_C, b"garbage")

        quotes = await aggregator.fetch_quotes([SLAB_A, SLAB_B, SLAB_C])

        assert [q.slab for q in quotes] == [SLAB_A, SLAB_B]

    @pytest.mark.asyncio
    async def test_all_unreadable(self, aggregator, gateway):
        """No survivors raises NoLiquidityAvailable with every failure."""
        for slab in (SLAB_A, SLAB_B, SLAB_C):
            gateway.fail(slab, GatewayError("connection reset"))

        with pytest.raises(NoLiquidityAvailable) as exc_info:
            await aggregator.fetch_quotes([SLAB_A, SLAB_B, SLAB_C])

        failures = exc_info.value.failures
        assert len(failures) == 3
        assert all(isinstance(f, VenueUnreadable) for f in failures)

    @pytest.mark.asyncio
    async def test_empty_venue_list(self, aggregator):
        """Nothing to fetch is no liquidity."""
        with pytest.raises(NoLiquidityAvailable):
            await aggregator.fetch_quotes([])

    @pytest.mark.asyncio
    async def test_reads_are_concurrent(self, accounts):
        """Slow venues overlap instead of adding up."""
        gateway = InMemoryLedgerGateway(
            accounts, delays={SLAB_A: 0.2, SLAB_B: 0.2, SLAB_C: 0.2},
        )
        aggregator = QuoteAggregator(gateway)

        loop = asyncio.get_running_loop()
        started = loop.time()
        quotes = await aggregator.fetch_quotes([SLAB_A, SLAB_B, SLAB_C])
        elapsed = loop.time() - started

        assert len(quotes) == 3
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_slow_venue_times_out(self, accounts):
        """A venue slower than the fetch timeout is excluded."""
        config = EngineConfig.for_testing()
        config.staleness.venue_fetch_timeout_seconds = 0.05
        gateway = InMemoryLedgerGateway(accounts, delays={SLAB_A: 1.0})
        aggregator = QuoteAggregator(gateway, config=config)

        outcome = await aggregator.collect_quotes([SLAB_A, SLAB_B])

        assert [q.slab for q in outcome.quotes] == [SLAB_B]
        assert isinstance(outcome.failures[0], VenueUnreadable)

    @pytest.mark.asyncio
    async def test_stale_cache_excluded(self, aggregator, gateway):
        """A quote cache behind the venue sequence number is stale."""
        gateway.set_account(SLAB_A, slab_bytes(INSTRUMENT, asks=[(scaled(99), scaled(5))], seqno=9, cache_seqno=8))

        quotes = await aggregator.fetch_quotes([SLAB_A, SLAB_B])

        assert [q.slab for q in quotes] == [SLAB_B]

    @pytest.mark.asyncio
    async def test_only_stale_sources(self, aggregator, gateway):
        """When every venue is stale the caller sees StalePrice."""
        gateway.set_account(SLAB_A, slab_bytes(INSTRUMENT, seqno=9, cache_seqno=8))

        with pytest.raises(StalePrice):
            await aggregator.fetch_quotes([SLAB_A])

    @pytest.mark.asyncio
    async def test_stale_oracle_excluded(self, aggregator, gateway, registry):
        """With oracle checks on, a venue whose oracle is stale is dropped."""
        gateway.set_account(ORACLE_A, custom_oracle_bytes(scaled(100), timestamp=NOW - 3_600))

        quotes = await aggregator.fetch_quotes(list(registry.entries), check_oracles=True)

        assert [q.slab for q in quotes] == [SLAB_B, SLAB_C]

    @pytest.mark.asyncio
    async def test_cache_populated(self, gateway):
        """Decoded quotes are memoized by address and seqno."""
        cache = QuoteCacheStore()
        aggregator = QuoteAggregator(gateway, cache=cache)

        await aggregator.fetch_quotes([SLAB_A])

        assert cache.get(SLAB_A, 7) is not None
        assert cache.get(SLAB_A, 8) is None

    @pytest.mark.asyncio
    async def test_cache_reused_for_unchanged_venue(self, gateway):
        """An unchanged venue returns the memoized quote."""
        cache = QuoteCacheStore()
        aggregator = QuoteAggregator(gateway, cache=cache)

        first = await aggregator.fetch_quotes([SLAB_A])
        second = await aggregator.fetch_quotes([SLAB_A])

        assert second[0] is first[0]
        assert cache.hits == 1
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_cache_replaced_on_header_change(self, gateway):
        """A new mark price at the same seqno is not served from cache."""
        cache = QuoteCacheStore()
        aggregator = QuoteAggregator(gateway, cache=cache)
        await aggregator.fetch_quotes([SLAB_A])

        gateway.set_account(SLAB_A, slab_bytes(INSTRUMENT, mark_px=scaled(105), asks=[(scaled(101), scaled(5))]))
        quotes = await aggregator.fetch_quotes([SLAB_A])

        assert quotes[0].mark_price == scaled(105)
        assert cache.get(SLAB_A, 7).mark_price == scaled(105)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, accounts):
        """Cancelling the caller cancels the fan-out."""
        gateway = InMemoryLedgerGateway(accounts, delays={SLAB_A: 5.0})
        aggregator = QuoteAggregator(gateway)

        task = asyncio.create_task(aggregator.fetch_quotes([SLAB_A]))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


# ============================================================
# VENUE DISCOVERY
# ============================================================

class TestListVenues:
    """Tests for list_venues_for_instrument."""

    @pytest.mark.asyncio
    async def test_matches_instrument(self, aggregator, gateway, registry):
        """Only venues listing the instrument are returned."""
        gateway.set_account(SLAB_C, slab_bytes(OTHER_INSTRUMENT))

        venues = await aggregator.list_venues_for_instrument(INSTRUMENT, registry)

        assert [v.slab_id for v in venues] == [SLAB_A, SLAB_B]

    @pytest.mark.asyncio
    async def test_unreadable_skipped(self, aggregator, gateway, registry):
        """An unreadable venue is skipped, not fatal."""
        gateway.remove_account(SLAB_A)

        venues = await aggregator.list_venues_for_instrument(INSTRUMENT, registry)

        assert [v.slab_id for v in venues] == [SLAB_B, SLAB_C]

    @pytest.mark.asyncio
    async def test_inactive_entries_ignored(self, gateway):
        """Inactive registry entries are never read."""
        registry = decode_registry(registry_bytes([
            registry_entry(SLAB_A, active=False),
            registry_entry(SLAB_B),
        ]))
        aggregator = QuoteAggregator(gateway)

        venues = await aggregator.list_venues_for_instrument(INSTRUMENT, registry)

        assert [v.slab_id for v in venues] == [SLAB_B]
        assert SLAB_A not in gateway.reads

    @pytest.mark.asyncio
    async def test_discover_then_fetch(self, aggregator, registry):
        """fetch_instrument_quotes chains discovery and fetch."""
        venues, quotes = await fetch_instrument_quotes(aggregator, INSTRUMENT, registry)
        assert len(venues) == len(quotes) == 3

    @pytest.mark.asyncio
    async def test_no_venue_for_instrument(self, aggregator, registry):
        """An instrument nobody lists has no liquidity."""
        with pytest.raises(NoLiquidityAvailable):
            await fetch_instrument_quotes(aggregator, OTHER_INSTRUMENT, registry)


# ============================================================
# ORACLES
# ============================================================

class TestOracles:
    """Tests for oracle reads."""

    @pytest.mark.asyncio
    async def test_fetch_oracle(self, aggregator):
        """Oracle reads decode with the configured threshold."""
        price = await aggregator.fetch_oracle(ORACLE_A)

        assert price.kind == OracleKind.CUSTOM
        assert price.price == scaled(100)
        assert not price.stale

    @pytest.mark.asyncio
    async def test_stale_oracle_tagged_not_raised(self, aggregator, gateway):
        """fetch_oracle tags staleness; require_fresh_price raises."""
        gateway.set_account(ORACLE_A, custom_oracle_bytes(scaled(100), timestamp=NOW - 3_600))

        price = await aggregator.fetch_oracle(ORACLE_A)
        assert price.stale

        with pytest.raises(StalePrice) as exc_info:
            require_fresh_price(price, ORACLE_A)
        assert exc_info.value.age_seconds == 3_600

    @pytest.mark.asyncio
    async def test_missing_oracle(self, aggregator):
        """A missing oracle account propagates AccountNotFound."""
        with pytest.raises(AccountNotFound):
            await aggregator.fetch_oracle(key(222))
