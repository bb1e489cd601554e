"""
Account Codec Package.

============================================================
PURPOSE
============================================================
Bit-exact mapping between ledger account bytes and typed records,
and construction of outbound instruction payloads.

No I/O happens here; every function is deterministic.

============================================================
RECORD KINDS
============================================================
- Portfolio           decode_portfolio
- Venue Registry      decode_registry
- Collateral Vault    decode_vault
- Venue Header+Quotes decode_slab
- Price Oracle        decode_oracle (custom and vendor formats)
- PositionDetails     decode_position_details

============================================================
"""

from .decoders import (
    decode_oracle,
    decode_portfolio,
    decode_position_details,
    decode_registry,
    decode_slab,
    decode_vault,
    normalize_price,
    price_to_float,
)
from .instructions import (
    AccountMeta,
    BurnLpShares,
    CancelLpOrders,
    CommitFill,
    CrossSlabAccounts,
    CrossSlabLeg,
    Deposit,
    ExecuteCrossSlab,
    InitializePortfolio,
    InitializeRouter,
    InitializeSlab,
    Instruction,
    InstructionData,
    LiquidateUser,
    LiquidationAccounts,
    OrderType,
    ProgramKind,
    Side,
    SplitOrder,
    Withdraw,
    burn_lp_shares,
    cancel_lp_orders,
    commit_fill,
    decode_instruction_data,
    deposit,
    execute_cross_slab,
    initialize_portfolio,
    initialize_router,
    initialize_slab,
    liquidate_user,
    withdraw,
)
from .layouts import join_words, low_word, split_words
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
    SlabQuote,
    SlabState,
    VenueId,
    VenueKind,
    VenueRegistry,
    VenueRegistryEntry,
)


__version__ = "0.1.0"

__all__ = [
    # Decoders
    "decode_oracle",
    "decode_portfolio",
    "decode_position_details",
    "decode_registry",
    "decode_slab",
    "decode_vault",
    "normalize_price",
    "price_to_float",
    # Instructions
    "AccountMeta",
    "BurnLpShares",
    "CancelLpOrders",
    "CommitFill",
    "CrossSlabAccounts",
    "CrossSlabLeg",
    "Deposit",
    "ExecuteCrossSlab",
    "InitializePortfolio",
    "InitializeRouter",
    "InitializeSlab",
    "Instruction",
    "InstructionData",
    "LiquidateUser",
    "LiquidationAccounts",
    "OrderType",
    "ProgramKind",
    "Side",
    "SplitOrder",
    "Withdraw",
    "burn_lp_shares",
    "cancel_lp_orders",
    "commit_fill",
    "decode_instruction_data",
    "deposit",
    "execute_cross_slab",
    "initialize_portfolio",
    "initialize_router",
    "initialize_slab",
    "liquidate_user",
    "withdraw",
    # Wide values
    "join_words",
    "low_word",
    "split_words",
    # Records
    "PublicKey",
    "AmmLp",
    "CollateralVault",
    "Exposure",
    "LpBucket",
    "OracleKind",
    "OraclePrice",
    "Portfolio",
    "PositionDetails",
    "QuoteCache",
    "QuoteLevel",
    "SlabHeader",
    "SlabLp",
    "SlabQuote",
    "SlabState",
    "VenueId",
    "VenueKind",
    "VenueRegistry",
    "VenueRegistryEntry",
]
