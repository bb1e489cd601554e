"""
Shared byte fixtures.

Builds ledger account buffers through the same schemas the decoders
use, so tests state values instead of offsets.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from account_codec.layouts import pack
from account_codec.pubkey import PublicKey
from account_codec.records import QuoteCache, QuoteLevel, SlabQuote
from account_codec.schemas import (
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
from core.constants import PRICE_SCALE


NOW = 1_700_000_000

Levels = Sequence[Tuple[int, int]]


def key(n: int) -> PublicKey:
    """Deterministic test key: 32 copies of byte n."""
    return PublicKey(bytes([n]) * 32)


def scaled(value: float) -> int:
    """Human units to 1e6 fixed point."""
    return int(round(value * PRICE_SCALE))


# ============================================================
# ACCOUNT BUFFERS
# ============================================================

def portfolio_bytes(
    exposures: Iterable[Tuple[int, int, int]] = (),
    lp_buckets: Sequence[Dict[str, Any]] = (),
    **fields: Any,
) -> bytes:
    values: Dict[str, Any] = {
        "discriminator": PORTFOLIO_DISCRIMINATOR,
        "router_id": key(1),
        "user": key(2),
        "equity": 10 * 10**9,
        "principal": 10 * 10**9,
        "bump": 254,
    }
    values.update(fields)
    values["exposures"] = [
        {"slab_index": s, "instrument_index": i, "quantity": q}
        for s, i, q in exposures
    ]
    values.setdefault("exposure_count", len(values["exposures"]))
    values["lp_buckets"] = list(lp_buckets)
    values.setdefault("lp_bucket_count", len(values["lp_buckets"]))
    return pack(PORTFOLIO, values)


def registry_entry(slab: PublicKey, oracle: Optional[PublicKey] = None, active: bool = True, **fields: Any) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        "slab_id": slab,
        "version_hash": b"\x07" * 32,
        "oracle_id": oracle or key(200),
        "imr": 500,
        "mmr": 250,
        "taker_fee_cap": 20,
        "registered_ts": NOW - 86_400,
        "active": 1 if active else 0,
    }
    values.update(fields)
    return values


def registry_bytes(entries: Sequence[Dict[str, Any]] = (), **fields: Any) -> bytes:
    values: Dict[str, Any] = {
        "discriminator": REGISTRY_DISCRIMINATOR,
        "router_id": key(1),
        "governance": key(3),
        "slab_count": len(entries),
        "bump": 255,
        "imr": 500,
        "mmr": 250,
        "liq_band_bps": 200,
        "oracle_tolerance_bps": 50,
    }
    values.update(fields)
    return pack(REGISTRY_HEADER, values) + b"".join(pack(SLAB_ENTRY, e) for e in entries)


def vault_bytes(**fields: Any) -> bytes:
    values: Dict[str, Any] = {
        "discriminator": VAULT_DISCRIMINATOR,
        "mint": key(9),
        "total_deposits": 5 * 10**9,
        "total_withdrawals": 10**9,
        "balance": 4 * 10**9,
    }
    values.update(fields)
    return pack(VAULT, values)


def slab_bytes(
    instrument: PublicKey,
    mark_px: int = scaled(100),
    bids: Levels = (),
    asks: Levels = (),
    seqno: int = 7,
    cache_seqno: Optional[int] = None,
    **fields: Any,
) -> bytes:
    header: Dict[str, Any] = {
        "magic": SLAB_MAGIC,
        "version": 1,
        "seqno": seqno,
        "program_id": key(4),
        "lp_owner": key(5),
        "router_id": key(1),
        "instrument": instrument,
        "contract_size": PRICE_SCALE,
        "tick": 1,
        "lot": 1,
        "mark_px": mark_px,
        "taker_fee_bps": 5,
        "bump": 253,
    }
    header.update(fields)
    cache = {
        "seqno_snapshot": seqno if cache_seqno is None else cache_seqno,
        "bids": [{"price": p, "quantity": q} for p, q in bids],
        "asks": [{"price": p, "quantity": q} for p, q in asks],
    }
    return pack(SLAB, {"header": header, "quote_cache": cache})


def custom_oracle_bytes(price: int, timestamp: int = NOW, confidence: int = 1_000, **fields: Any) -> bytes:
    values: Dict[str, Any] = {
        "magic": ORACLE_MAGIC,
        "version": 1,
        "bump": 250,
        "authority": key(6),
        "instrument": key(100),
        "price": price,
        "timestamp": timestamp,
        "confidence": confidence,
    }
    values.update(fields)
    return pack(CUSTOM_ORACLE, values)


def pyth_oracle_bytes(price: int, expo: int = -8, timestamp: int = NOW, confidence: int = 0, status: int = 1) -> bytes:
    return pack(PYTH_PRICE, {
        "magic": PYTH_MAGIC,
        "version": 2,
        "account_type": 3,
        "size": PYTH_PRICE.size,
        "expo": expo,
        "timestamp": timestamp,
        "price": price,
        "confidence": confidence,
        "status": status,
    })


def position_details_bytes(
    slab_index: int = 0,
    instrument_index: int = 0,
    avg_entry_price: int = scaled(100),
    total_qty: int = scaled(1),
    margin_held: int = 10**9,
    **fields: Any,
) -> bytes:
    values: Dict[str, Any] = {
        "magic": POSITION_DETAILS_MAGIC,
        "portfolio": key(50),
        "slab_index": slab_index,
        "instrument_index": instrument_index,
        "bump": 252,
        "avg_entry_price": avg_entry_price,
        "total_qty": total_qty,
        "trade_count": 1,
        "last_update_ts": NOW,
        "margin_held": margin_held,
        "leverage": 1,
    }
    values.update(fields)
    return pack(POSITION_DETAILS, values)


# ============================================================
# DECODED QUOTES
# ============================================================

def quote(
    slab: PublicKey,
    asks: Levels = (),
    bids: Levels = (),
    instrument: Optional[PublicKey] = None,
    mark_price: int = scaled(100),
) -> SlabQuote:
    """A SlabQuote built directly, for router tests."""
    return SlabQuote(
        slab=slab,
        instrument=instrument or key(100),
        mark_price=mark_price,
        cache=QuoteCache(
            seqno=1,
            bids=tuple(QuoteLevel(p, q) for p, q in sorted(bids, reverse=True)),
            asks=tuple(QuoteLevel(p, q) for p, q in sorted(asks)),
        ),
    )


def flat_levels(levels: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
    return [(scaled(p), scaled(q)) for p, q in levels]
