"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines the protocol-wide constants shared with the ledger programs.

- Fixed-point scales
- Array capacities that drive record layouts
- Trading limits

============================================================
"""

# ============================================================
# FIXED-POINT SCALES
# ============================================================

PRICE_SCALE = 1_000_000
"""Prices and instrument-denominated quantities (1e6)."""

COLLATERAL_SCALE = 1_000_000_000
"""Settlement-currency amounts (1e9)."""

BPS_DENOMINATOR = 10_000

# ============================================================
# LAYOUT CAPACITIES
# ============================================================

MAX_SLABS = 256
MAX_INSTRUMENTS = 32
MAX_LP_BUCKETS = 16
MAX_OPEN_ORDERS_PER_BUCKET = 8
QUOTE_LEVELS = 4

MAX_SPLITS = 8
"""Maximum venue fills in one cross-venue execution."""

MAX_CANCEL_ORDERS = 16

# ============================================================
# TRADING LIMITS
# ============================================================

MIN_LEVERAGE = 1
MAX_LEVERAGE = 10

LIMIT_PRICE_BAND_BPS = 2_000
"""Limit orders must lie within +/-20% of the oracle price."""

MARKET_ORDER_SLIPPAGE_BPS = 50
"""Market orders are sent with a +/-0.5% protective limit."""

DEFAULT_ORACLE_MAX_AGE_SECONDS = 300

DEFAULT_ORACLE_MAX_CONFIDENCE_BPS = 200
"""Oracle prices with a wider confidence interval than 2% are not traded on."""

# ============================================================
# INTEGER BOUNDS
# ============================================================

U8_MAX = 2**8 - 1
U16_MAX = 2**16 - 1
U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1
U128_MAX = 2**128 - 1
I128_MIN = -(2**127)
I128_MAX = 2**127 - 1
