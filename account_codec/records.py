"""
Account Codec - Decoded Records.

Typed, immutable views of ledger accounts. Values keep the ledger's
fixed-point integers; nothing here rescales.

Scales:
- prices and quantities: 1e6
- settlement amounts: 1e9
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.constants import BPS_DENOMINATOR

from .layouts import low_word
from .pubkey import PublicKey


# ============================================================
# PORTFOLIO
# ============================================================

class VenueKind(Enum):
    """Kind of venue an LP bucket provides liquidity to."""
    SLAB = 0
    AMM = 1


@dataclass(frozen=True)
class Exposure:
    """Signed venue-local position size (positive = long)."""
    slab_index: int
    instrument_index: int
    quantity: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.slab_index, self.instrument_index)


@dataclass(frozen=True)
class VenueId:
    market_id: PublicKey
    venue_kind: VenueKind


@dataclass(frozen=True)
class AmmLp:
    lp_shares: int
    share_price_cached: int
    last_update_ts: int


@dataclass(frozen=True)
class SlabLp:
    reserved_quote: int
    reserved_base: int
    open_order_count: int
    open_order_ids: Tuple[int, ...]  # non-zero ids only


@dataclass(frozen=True)
class LpBucket:
    """Liquidity-provision exposure; decoded for layout fidelity only."""
    venue: VenueId
    amm: Optional[AmmLp]
    slab: Optional[SlabLp]
    im: int
    mm: int
    active: bool


@dataclass(frozen=True)
class Portfolio:
    """
    One trader's cross-margin account.

    Only non-zero exposures and active LP buckets are kept.
    """
    router_id: PublicKey
    user: PublicKey

    # Cross-margin state (1e9)
    equity: int
    im: int
    mm: int
    free_collateral: int
    last_mark_ts: int
    exposure_count: int
    bump: int

    # Liquidation tracking
    health: int
    last_liquidation_ts: int
    cooldown_seconds: int

    # PnL vesting
    principal: int
    pnl: int
    vested_pnl: int
    last_slot: int
    pnl_index_checkpoint: int

    exposures: Tuple[Exposure, ...] = ()
    lp_buckets: Tuple[LpBucket, ...] = ()
    lp_bucket_count: int = 0

    def is_consistent(self) -> bool:
        """Equity must equal principal plus accumulated PnL."""
        return self.equity == self.principal + self.pnl

    def exposure_for(self, slab_index: int, instrument_index: int) -> Optional[Exposure]:
        for exposure in self.exposures:
            if exposure.key == (slab_index, instrument_index):
                return exposure
        return None


# ============================================================
# VENUE REGISTRY
# ============================================================

@dataclass(frozen=True)
class VenueRegistryEntry:
    """A registered venue; margin ratios in basis points."""
    slab_id: PublicKey
    version_hash: bytes
    oracle_id: PublicKey
    imr: int
    mmr: int
    maker_fee_cap: int
    taker_fee_cap: int
    latency_sla_ms: int
    max_exposure: int
    registered_ts: int
    active: bool


@dataclass(frozen=True)
class VenueRegistry:
    """
    Immutable snapshot of the venue registry.

    Entry position equals the venue-local index used by Portfolio
    exposures.
    """
    router_id: PublicKey
    governance: PublicKey
    slab_count: int
    bump: int

    # Global risk parameters
    imr: int
    mmr: int
    liq_band_bps: int
    preliq_buffer: int
    preliq_band_bps: int
    router_cap_per_slab: int
    min_equity_to_quote: int
    oracle_tolerance_bps: int

    entries: Tuple[VenueRegistryEntry, ...] = ()

    def entry(self, slab_index: int) -> Optional[VenueRegistryEntry]:
        if 0 <= slab_index < len(self.entries):
            return self.entries[slab_index]
        return None

    def index_of(self, slab_id: PublicKey) -> Optional[int]:
        for index, entry in enumerate(self.entries):
            if entry.slab_id == slab_id:
                return index
        return None

    def active_entries(self) -> Tuple[VenueRegistryEntry, ...]:
        return tuple(e for e in self.entries if e.active)


# ============================================================
# COLLATERAL VAULT
# ============================================================

@dataclass(frozen=True)
class CollateralVault:
    mint: PublicKey
    total_deposits: int
    total_withdrawals: int
    balance: int


# ============================================================
# SLAB
# ============================================================

@dataclass(frozen=True)
class SlabHeader:
    version: int
    seqno: int
    program_id: PublicKey
    lp_owner: PublicKey
    router_id: PublicKey
    instrument: PublicKey
    contract_size: int
    tick: int
    lot: int
    mark_px: int
    taker_fee_bps: int
    bump: int

    @property
    def instruments(self) -> Tuple[PublicKey, ...]:
        """Instrument table; v0 slabs list a single instrument at index 0."""
        return (self.instrument,)

    def instrument_at(self, index: int) -> Optional[PublicKey]:
        table = self.instruments
        if 0 <= index < len(table):
            return table[index]
        return None


@dataclass(frozen=True)
class QuoteLevel:
    price: int
    quantity: int


@dataclass(frozen=True)
class QuoteCache:
    """Best bids (descending) and asks (ascending); empty levels dropped."""
    seqno: int
    bids: Tuple[QuoteLevel, ...] = ()
    asks: Tuple[QuoteLevel, ...] = ()

    @property
    def best_bid(self) -> Optional[QuoteLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[QuoteLevel]:
        return self.asks[0] if self.asks else None

    @property
    def spread(self) -> Optional[int]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask.price - self.best_bid.price


@dataclass(frozen=True)
class SlabState:
    header: SlabHeader
    quote_cache: QuoteCache


@dataclass(frozen=True)
class SlabQuote:
    """A venue's resolved instrument, mark price and quote cache."""
    slab: PublicKey
    instrument: PublicKey
    mark_price: int
    cache: QuoteCache
    taker_fee_bps: int = 0

    @classmethod
    def from_state(cls, slab: PublicKey, state: SlabState) -> "SlabQuote":
        return cls(
            slab=slab,
            instrument=state.header.instrument,
            mark_price=state.header.mark_px,
            cache=state.quote_cache,
            taker_fee_bps=state.header.taker_fee_bps,
        )


# ============================================================
# ORACLE
# ============================================================

class OracleKind(Enum):
    CUSTOM = "custom"
    PYTH = "pyth"


@dataclass(frozen=True)
class OraclePrice:
    """
    Oracle price normalised to the 1e6 scale.

    A stale price decodes successfully; callers must check `stale`
    before trading on it.
    """
    kind: OracleKind
    price: int
    confidence: int
    timestamp: int
    instrument: Optional[PublicKey] = None
    authority: Optional[PublicKey] = None
    expo: int = -6
    stale: bool = False
    age_seconds: Optional[int] = None

    @property
    def confidence_bps(self) -> int:
        if self.price == 0:
            return 0
        return abs(self.confidence) * BPS_DENOMINATOR // abs(self.price)


# ============================================================
# POSITION DETAILS
# ============================================================

@dataclass(frozen=True)
class PositionDetails:
    """Entry price, PnL and margin tracking for one venue-local position."""
    portfolio: PublicKey
    slab_index: int
    instrument_index: int
    bump: int
    avg_entry_price: int
    total_qty: int
    realized_pnl: int
    total_fees: int
    trade_count: int
    last_update_ts: int
    margin_held: int
    leverage: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.slab_index, self.instrument_index)

    # Display helpers: the ledger's CLI shows only the low 64-bit word
    # of these wide values. Arithmetic must use the full fields.

    @property
    def display_realized_pnl(self) -> int:
        return low_word(self.realized_pnl)

    @property
    def display_total_fees(self) -> int:
        return low_word(self.total_fees)

    @property
    def display_margin_held(self) -> int:
        return low_word(self.margin_held)

    @property
    def is_open(self) -> bool:
        return self.total_qty != 0
