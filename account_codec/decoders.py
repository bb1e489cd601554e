"""
Account Codec - Record Decoders.

============================================================
PURPOSE
============================================================
Pure functions mapping raw account bytes to typed records.

Every decoder:
1. Checks the discriminator / magic value (InvalidDiscriminator)
2. Checks the minimum buffer length (TruncatedRecord)
3. Walks the record's schema (MalformedOptionTag on a bad tag)

Errors carry the account address when the caller supplies it.

============================================================
"""

import logging
import struct
from typing import Any, Dict, List, Optional, Union

from core.clock import get_clock
from core.config import get_config
from core.exceptions import DecodeError, InvalidDiscriminator
from core.constants import MAX_SLABS, PRICE_SCALE

from .layouts import LayoutReader
from .pubkey import PublicKey
from .records import (
    AmmLp,
    CollateralVault,
    Exposure,
    LpBucket,
    OracleKind,
    OraclePrice,
    Portfolio,
    PositionDetails,
    QuoteCache,
    QuoteLevel,
    SlabHeader,
    SlabLp,
    SlabState,
    VenueId,
    VenueKind,
    VenueRegistry,
    VenueRegistryEntry,
)
from .schemas import (
    CUSTOM_ORACLE,
    ORACLE_MAGIC,
    PORTFOLIO,
    PORTFOLIO_DISCRIMINATOR,
    POSITION_DETAILS,
    POSITION_DETAILS_MAGIC,
    PYTH_MAGIC,
    PYTH_PRICE,
    REGISTRY_DISCRIMINATOR,
    REGISTRY_HEADER,
    SLAB,
    SLAB_ENTRY,
    SLAB_MAGIC,
    VAULT,
    VAULT_DISCRIMINATOR,
)


logger = logging.getLogger(__name__)


Address = Union[PublicKey, str, None]

PYTH_STATUS_TRADING = 1
PRICE_DECIMALS = 6


# ============================================================
# HELPERS
# ============================================================

def _reader(data: bytes, record: str, address: Address) -> LayoutReader:
    return LayoutReader(data, record, str(address) if address is not None else None)


def _check_magic(reader: LayoutReader, expected: bytes) -> None:
    reader.require(len(expected))
    actual = reader.data[:len(expected)]
    if actual != expected:
        raise InvalidDiscriminator(reader.record, expected, actual, reader.address)


def _levels(raw_levels: List[Dict[str, Any]], descending: bool) -> tuple:
    levels = [
        QuoteLevel(price=level["price"], quantity=level["quantity"])
        for level in raw_levels
        if level["price"] != 0 or level["quantity"] != 0
    ]
    levels.sort(key=lambda level: level.price, reverse=descending)
    return tuple(levels)


def normalize_price(value: int, expo: int) -> int:
    """
    Rescale a vendor price with exponent `expo` to the 1e6 scale.

    Truncates toward zero when the vendor carries more decimals.
    """
    shift = expo + PRICE_DECIMALS
    if shift >= 0:
        return value * 10 ** shift
    magnitude = abs(value) // 10 ** (-shift)
    return magnitude if value >= 0 else -magnitude


# ============================================================
# PORTFOLIO
# ============================================================

def _decode_lp_bucket(raw: Dict[str, Any]) -> LpBucket:
    amm = raw["amm"]
    slab = raw["slab"]
    return LpBucket(
        venue=VenueId(
            market_id=raw["venue"]["market_id"],
            venue_kind=VenueKind(raw["venue"]["venue_kind"]),
        ),
        amm=AmmLp(
            lp_shares=amm["lp_shares"],
            share_price_cached=amm["share_price_cached"],
            last_update_ts=amm["last_update_ts"],
        ) if amm is not None else None,
        slab=SlabLp(
            reserved_quote=slab["reserved_quote"],
            reserved_base=slab["reserved_base"],
            open_order_count=slab["open_order_count"],
            open_order_ids=tuple(o["order_id"] for o in slab["open_order_ids"] if o["order_id"]),
        ) if slab is not None else None,
        im=raw["im"],
        mm=raw["mm"],
        active=raw["active"] == 1,
    )


def decode_portfolio(data: bytes, address: Address = None) -> Portfolio:
    """Decode a trader Portfolio account."""
    reader = _reader(data, "Portfolio", address)
    _check_magic(reader, PORTFOLIO_DISCRIMINATOR)
    raw = reader.read(PORTFOLIO)

    exposures = tuple(
        Exposure(e["slab_index"], e["instrument_index"], e["quantity"])
        for e in raw["exposures"]
        if e["quantity"] != 0
    )

    buckets = []
    for index, raw_bucket in enumerate(raw["lp_buckets"]):
        if raw_bucket["active"] != 1:
            continue
        if raw_bucket["venue"]["venue_kind"] not in (VenueKind.SLAB.value, VenueKind.AMM.value):
            raise DecodeError(
                f"Unknown venue kind {raw_bucket['venue']['venue_kind']} in LP bucket {index}",
                address=reader.address,
                record=reader.record,
            )
        bucket = _decode_lp_bucket(raw_bucket)
        if bucket.im or bucket.mm or bucket.amm or bucket.slab:
            buckets.append(bucket)

    return Portfolio(
        router_id=raw["router_id"],
        user=raw["user"],
        equity=raw["equity"],
        im=raw["im"],
        mm=raw["mm"],
        free_collateral=raw["free_collateral"],
        last_mark_ts=raw["last_mark_ts"],
        exposure_count=raw["exposure_count"],
        bump=raw["bump"],
        health=raw["health"],
        last_liquidation_ts=raw["last_liquidation_ts"],
        cooldown_seconds=raw["cooldown_seconds"],
        principal=raw["principal"],
        pnl=raw["pnl"],
        vested_pnl=raw["vested_pnl"],
        last_slot=raw["last_slot"],
        pnl_index_checkpoint=raw["pnl_index_checkpoint"],
        exposures=exposures,
        lp_buckets=tuple(buckets),
        lp_bucket_count=raw["lp_bucket_count"],
    )


# ============================================================
# VENUE REGISTRY
# ============================================================

def decode_registry(data: bytes, address: Address = None) -> VenueRegistry:
    """
    Decode the venue registry.

    The slab entry array follows the fixed header; only the first
    `slab_count` entries are meaningful.
    """
    reader = _reader(data, "VenueRegistry", address)
    _check_magic(reader, REGISTRY_DISCRIMINATOR)
    header = reader.read(REGISTRY_HEADER)

    count = min(header["slab_count"], MAX_SLABS)
    reader.require(REGISTRY_HEADER.size + count * SLAB_ENTRY.size)

    entries = []
    for i in range(count):
        raw = reader.read(SLAB_ENTRY, REGISTRY_HEADER.size + i * SLAB_ENTRY.size)
        entries.append(VenueRegistryEntry(
            slab_id=raw["slab_id"],
            version_hash=raw["version_hash"],
            oracle_id=raw["oracle_id"],
            imr=raw["imr"],
            mmr=raw["mmr"],
            maker_fee_cap=raw["maker_fee_cap"],
            taker_fee_cap=raw["taker_fee_cap"],
            latency_sla_ms=raw["latency_sla_ms"],
            max_exposure=raw["max_exposure"],
            registered_ts=raw["registered_ts"],
            active=raw["active"] == 1,
        ))

    return VenueRegistry(
        router_id=header["router_id"],
        governance=header["governance"],
        slab_count=header["slab_count"],
        bump=header["bump"],
        imr=header["imr"],
        mmr=header["mmr"],
        liq_band_bps=header["liq_band_bps"],
        preliq_buffer=header["preliq_buffer"],
        preliq_band_bps=header["preliq_band_bps"],
        router_cap_per_slab=header["router_cap_per_slab"],
        min_equity_to_quote=header["min_equity_to_quote"],
        oracle_tolerance_bps=header["oracle_tolerance_bps"],
        entries=tuple(entries),
    )


# ============================================================
# COLLATERAL VAULT
# ============================================================

def decode_vault(data: bytes, address: Address = None) -> CollateralVault:
    reader = _reader(data, "CollateralVault", address)
    _check_magic(reader, VAULT_DISCRIMINATOR)
    raw = reader.read(VAULT)
    return CollateralVault(
        mint=raw["mint"],
        total_deposits=raw["total_deposits"],
        total_withdrawals=raw["total_withdrawals"],
        balance=raw["balance"],
    )


# ============================================================
# SLAB
# ============================================================

def decode_slab(data: bytes, address: Address = None) -> SlabState:
    """Decode a venue header and its quote cache."""
    reader = _reader(data, "Slab", address)
    _check_magic(reader, SLAB_MAGIC)
    raw = reader.read(SLAB)
    header = raw["header"]
    cache = raw["quote_cache"]

    return SlabState(
        header=SlabHeader(
            version=header["version"],
            seqno=header["seqno"],
            program_id=header["program_id"],
            lp_owner=header["lp_owner"],
            router_id=header["router_id"],
            instrument=header["instrument"],
            contract_size=header["contract_size"],
            tick=header["tick"],
            lot=header["lot"],
            mark_px=header["mark_px"],
            taker_fee_bps=header["taker_fee_bps"],
            bump=header["bump"],
        ),
        quote_cache=QuoteCache(
            seqno=cache["seqno_snapshot"],
            bids=_levels(cache["bids"], descending=True),
            asks=_levels(cache["asks"], descending=False),
        ),
    )


# ============================================================
# ORACLE
# ============================================================

def decode_oracle(
    data: bytes,
    address: Address = None,
    now: Optional[int] = None,
    max_age_seconds: Optional[int] = None,
) -> OraclePrice:
    """
    Decode either oracle format and tag the result when stale.

    Args:
        data: Raw account bytes
        address: Account address for error reporting
        now: Current Unix time (defaults to the engine clock)
        max_age_seconds: Staleness threshold (defaults to config)
    """
    reader = _reader(data, "Oracle", address)
    reader.require(4)
    (short_magic,) = struct.unpack_from("<I", reader.data, 0)

    if short_magic == PYTH_MAGIC:
        raw = reader.read(PYTH_PRICE)
        kind = OracleKind.PYTH
        expo = raw["expo"]
        price = normalize_price(raw["price"], expo)
        confidence = normalize_price(raw["confidence"], expo)
        instrument = None
        authority = None
        trading = raw["status"] == PYTH_STATUS_TRADING
    else:
        reader.require(8)
        (magic,) = struct.unpack_from("<Q", reader.data, 0)
        if magic != ORACLE_MAGIC:
            raise InvalidDiscriminator(reader.record, ORACLE_MAGIC, magic, reader.address)
        raw = reader.read(CUSTOM_ORACLE)
        kind = OracleKind.CUSTOM
        expo = -PRICE_DECIMALS
        price = raw["price"]
        confidence = raw["confidence"]
        instrument = raw["instrument"]
        authority = raw["authority"]
        trading = True

    timestamp = raw["timestamp"]
    if now is None:
        now = get_clock().unix_seconds()
    if max_age_seconds is None:
        max_age_seconds = get_config().staleness.oracle_max_age_seconds

    age = now - timestamp
    stale = age > max_age_seconds or not trading
    if stale:
        logger.debug(
            f"Oracle {reader.address or '?'} stale: age={age}s max={max_age_seconds}s "
            f"trading={trading}"
        )

    return OraclePrice(
        kind=kind,
        price=price,
        confidence=confidence,
        timestamp=timestamp,
        instrument=instrument,
        authority=authority,
        expo=expo,
        stale=stale,
        age_seconds=age,
    )


def price_to_float(price: int) -> float:
    """Human-readable price for display."""
    return price / PRICE_SCALE


# ============================================================
# POSITION DETAILS
# ============================================================

def decode_position_details(data: bytes, address: Address = None) -> PositionDetails:
    reader = _reader(data, "PositionDetails", address)
    _check_magic(reader, POSITION_DETAILS_MAGIC)
    raw = reader.read(POSITION_DETAILS)
    return PositionDetails(
        portfolio=raw["portfolio"],
        slab_index=raw["slab_index"],
        instrument_index=raw["instrument_index"],
        bump=raw["bump"],
        avg_entry_price=raw["avg_entry_price"],
        total_qty=raw["total_qty"],
        realized_pnl=raw["realized_pnl"],
        total_fees=raw["total_fees"],
        trade_count=raw["trade_count"],
        last_update_ts=raw["last_update_ts"],
        margin_held=raw["margin_held"],
        leverage=raw["leverage"],
    )
