"""
Account Codec - Record Schemas.

Concrete layouts of every ledger record the engine reads. Offsets are
derived from the item order; see Layout.offset_of().
"""

from core.constants import (
    MAX_INSTRUMENTS,
    MAX_LP_BUCKETS,
    MAX_OPEN_ORDERS_PER_BUCKET,
    MAX_SLABS,
    QUOTE_LEVELS,
)

from .layouts import Array, Blob, Field, Layout, Nested, Optional_, Pad


# ============================================================
# DISCRIMINATORS
# ============================================================

PORTFOLIO_DISCRIMINATOR = b"PERPPORT"
REGISTRY_DISCRIMINATOR = b"PERPREGY"
VAULT_DISCRIMINATOR = b"PERPVALT"
SLAB_MAGIC = b"PERP10\x00\x00"
POSITION_DETAILS_MAGIC = b"BARTPOSN"
ORACLE_MAGIC = int.from_bytes(b"PERPORCL", "little")
PYTH_MAGIC = 0xA1B2C3D4


# ============================================================
# PORTFOLIO
# ============================================================

EXPOSURE = Layout("Exposure", [
    Field("slab_index", "u16"),
    Field("instrument_index", "u16"),
    Field("quantity", "i64"),
])

VENUE_ID = Layout("VenueId", [
    Field("market_id", "pubkey"),
    Field("venue_kind", "u8"),
    Pad(7),
])

AMM_LP = Layout("AmmLp", [
    Field("lp_shares", "u64"),
    Field("share_price_cached", "i64"),
    Field("last_update_ts", "u64"),
    Pad(8),
])

OPEN_ORDER_ID = Layout("OpenOrderId", [
    Field("order_id", "u64"),
])

SLAB_LP = Layout("SlabLp", [
    Field("reserved_quote", "u128"),
    Field("reserved_base", "u128"),
    Field("open_order_count", "u16"),
    Pad(6),
    Array("open_order_ids", OPEN_ORDER_ID, MAX_OPEN_ORDERS_PER_BUCKET),
])

LP_BUCKET = Layout("LpBucket", [
    Nested("venue", VENUE_ID),
    Optional_("amm", AMM_LP),
    Optional_("slab", SLAB_LP),
    Field("im", "u128"),
    Field("mm", "u128"),
    Field("active", "u8"),
    Pad(7),
])

PORTFOLIO = Layout("Portfolio", [
    Blob("discriminator", 8),
    # identity
    Field("router_id", "pubkey"),
    Field("user", "pubkey"),
    # cross-margin state
    Field("equity", "i128"),
    Field("im", "u128"),
    Field("mm", "u128"),
    Field("free_collateral", "i128"),
    Field("last_mark_ts", "u64"),
    Field("exposure_count", "u16"),
    Field("bump", "u8"),
    Pad(5),
    # liquidation tracking
    Field("health", "i128"),
    Field("last_liquidation_ts", "u64"),
    Field("cooldown_seconds", "u64"),
    Pad(8),
    # pnl vesting
    Field("principal", "i128"),
    Field("pnl", "i128"),
    Field("vested_pnl", "i128"),
    Field("last_slot", "u64"),
    Field("pnl_index_checkpoint", "i128"),
    Pad(8),
    Array("exposures", EXPOSURE, MAX_SLABS * MAX_INSTRUMENTS),
    Array("lp_buckets", LP_BUCKET, MAX_LP_BUCKETS),
    Field("lp_bucket_count", "u16"),
    Pad(6),
])


# ============================================================
# VENUE REGISTRY
# ============================================================

REGISTRY_RESERVED_BYTES = 376

SLAB_ENTRY = Layout("SlabEntry", [
    Field("slab_id", "pubkey"),
    Blob("version_hash", 32),
    Field("oracle_id", "pubkey"),
    Field("imr", "u64"),
    Field("mmr", "u64"),
    Field("maker_fee_cap", "u64"),
    Field("taker_fee_cap", "u64"),
    Field("latency_sla_ms", "u64"),
    Field("max_exposure", "u128"),
    Field("registered_ts", "u64"),
    Field("active", "u8"),
    Pad(7),
])

REGISTRY_HEADER = Layout("RegistryHeader", [
    Blob("discriminator", 8),
    Field("router_id", "pubkey"),
    Field("governance", "pubkey"),
    Field("slab_count", "u16"),
    Field("bump", "u8"),
    Pad(5),
    Field("imr", "u64"),
    Field("mmr", "u64"),
    Field("liq_band_bps", "u64"),
    Field("preliq_buffer", "i128"),
    Field("preliq_band_bps", "u64"),
    Field("router_cap_per_slab", "u64"),
    Field("min_equity_to_quote", "i128"),
    Field("oracle_tolerance_bps", "u64"),
    Pad(8),
    # insurance, pnl vesting, haircut and warmup state
    Pad(REGISTRY_RESERVED_BYTES),
])


# ============================================================
# COLLATERAL VAULT
# ============================================================

VAULT = Layout("Vault", [
    Blob("discriminator", 8),
    Field("mint", "pubkey"),
    Field("total_deposits", "u128"),
    Field("total_withdrawals", "u128"),
    Field("balance", "u128"),
])


# ============================================================
# SLAB (VENUE HEADER + QUOTE CACHE)
# ============================================================

SLAB_HEADER_SIZE = 256

SLAB_HEADER = Layout("SlabHeader", [
    Blob("magic", 8),
    Field("version", "u32"),
    Field("seqno", "u32"),
    Field("program_id", "pubkey"),
    Field("lp_owner", "pubkey"),
    Field("router_id", "pubkey"),
    Field("instrument", "pubkey"),
    Field("contract_size", "i64"),
    Field("tick", "i64"),
    Field("lot", "i64"),
    Field("mark_px", "i64"),
    Field("taker_fee_bps", "i64"),
    Field("bump", "u8"),
    Pad(SLAB_HEADER_SIZE - 185),
])

QUOTE_LEVEL = Layout("QuoteLevel", [
    Field("price", "i64"),
    Field("quantity", "i64"),
])

QUOTE_CACHE = Layout("QuoteCache", [
    Field("seqno_snapshot", "u32"),
    Pad(4),
    Array("bids", QUOTE_LEVEL, QUOTE_LEVELS),
    Array("asks", QUOTE_LEVEL, QUOTE_LEVELS),
])

SLAB = Layout("Slab", [
    Nested("header", SLAB_HEADER),
    Nested("quote_cache", QUOTE_CACHE),
])


# ============================================================
# ORACLES
# ============================================================

CUSTOM_ORACLE = Layout("CustomOracle", [
    Field("magic", "u64"),
    Field("version", "u8"),
    Field("bump", "u8"),
    Pad(6),
    Field("authority", "pubkey"),
    Field("instrument", "pubkey"),
    Field("price", "i64"),
    Field("timestamp", "i64"),
    Field("confidence", "i64"),
    Pad(24),
])

PYTH_PRICE = Layout("PythPrice", [
    Field("magic", "u32"),
    Field("version", "u32"),
    Field("account_type", "u32"),
    Field("size", "u32"),
    Field("price_type", "u32"),
    Field("expo", "i32"),
    Field("num_components", "u32"),
    Field("num_quoters", "u32"),
    Field("last_slot", "u64"),
    Field("valid_slot", "u64"),
    Pad(48),
    Field("timestamp", "i64"),
    Pad(8),
    Field("product", "pubkey"),
    Field("next_price", "pubkey"),
    Pad(32),
    Field("price", "i64"),
    Field("confidence", "u64"),
    Field("status", "u32"),
    Pad(4),
    Field("publish_slot", "u64"),
])


# ============================================================
# POSITION DETAILS
# ============================================================

POSITION_DETAILS = Layout("PositionDetails", [
    Blob("magic", 8),
    Field("portfolio", "pubkey"),
    Field("slab_index", "u16"),
    Field("instrument_index", "u16"),
    Field("bump", "u8"),
    Pad(3),
    Field("avg_entry_price", "i64"),
    Field("total_qty", "i64"),
    Field("realized_pnl", "i128"),
    Field("total_fees", "i128"),
    Field("trade_count", "u32"),
    Pad(4),
    Field("last_update_ts", "i64"),
    Field("margin_held", "u128"),
    Field("leverage", "u8"),
    # 7 reserved bytes plus alignment to 16
    Pad(15),
])
