"""
Account Codec - Instruction Encoders.

============================================================
PURPOSE
============================================================
Build the exact instruction payloads the router and slab programs
expect, plus the account ordering metadata each one requires.

Requests are pydantic models so that integer widths are checked
before any bytes are produced. Every payload starts with a one-byte
discriminator followed by the little-endian body.

Submission and signing belong to the caller; this module only
produces Instruction values.

============================================================
ROUTER PROGRAM
============================================================
0 Initialize          governance(32)
1 InitializePortfolio user(32)
2 Deposit             amount u64
3 Withdraw            amount u64
4 ExecuteCrossSlab    num_splits u8, order_type u8,
                      splits[side u8, qty i64, limit_px i64]
5 LiquidateUser       num_oracles u8, num_slabs u8, is_preliq u8,
                      current_ts u64
6 BurnLpShares        market_id(32), shares u64, share_price i64,
                      current_ts u64, max_staleness u64
7 CancelLpOrders      market_id(32), count u8, order_ids u64[count],
                      freed_quote u128, freed_base u128

============================================================
SLAB PROGRAM
============================================================
0 Initialize          lp_owner(32), router_id(32), instrument(32),
                      mark_px i64, taker_fee_bps i64,
                      contract_size i64, bump u8
1 CommitFill          expected_seqno u32, order_type u8, side u8,
                      qty i64, limit_px i64

============================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Annotated, ClassVar, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.constants import (
    I64_MAX,
    I64_MIN,
    MAX_CANCEL_ORDERS,
    MAX_SPLITS,
    U8_MAX,
    U32_MAX,
    U64_MAX,
    U128_MAX,
)
from core.exceptions import DecodeError, InvalidDiscriminator, TruncatedRecord

from .layouts import Array, Field as LayoutField, Layout, LayoutReader, pack
from .pubkey import PublicKey


logger = logging.getLogger(__name__)


U8 = Annotated[int, Field(ge=0, le=U8_MAX)]
U32 = Annotated[int, Field(ge=0, le=U32_MAX)]
U64 = Annotated[int, Field(ge=0, le=U64_MAX)]
I64 = Annotated[int, Field(ge=I64_MIN, le=I64_MAX)]
U128 = Annotated[int, Field(ge=0, le=U128_MAX)]

SYSTEM_PROGRAM_ID = PublicKey.default()


# ============================================================
# ENUMS
# ============================================================

class Side(IntEnum):
    """Order side as encoded on the wire."""
    BUY = 0
    SELL = 1

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self == Side.BUY else Side.BUY


class OrderType(IntEnum):
    """Execution type; market orders still carry a protective limit."""
    MARKET = 0
    LIMIT = 1


class ProgramKind(Enum):
    ROUTER = "router"
    SLAB = "slab"


# ============================================================
# INSTRUCTION CONTAINERS
# ============================================================

@dataclass(frozen=True)
class AccountMeta:
    pubkey: PublicKey
    is_signer: bool = False
    is_writable: bool = False


def _meta(pubkey: PublicKey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


@dataclass(frozen=True)
class Instruction:
    """A ready-to-sign instruction: target program, ordered accounts, payload."""
    program_id: PublicKey
    keys: Tuple[AccountMeta, ...]
    data: bytes


# ============================================================
# REQUEST BASE
# ============================================================

class InstructionData(BaseModel):
    """
    Base for typed instruction payloads.

    Subclasses with a fixed body declare LAYOUT; variable-length
    payloads override _encode_body/_decode_body.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    PROGRAM: ClassVar[ProgramKind]
    DISCRIMINATOR: ClassVar[int]
    LAYOUT: ClassVar[Optional[Layout]] = None

    def encode(self) -> bytes:
        return bytes([self.DISCRIMINATOR]) + self._encode_body()

    def _encode_body(self) -> bytes:
        return pack(self.LAYOUT, dict(self))

    @classmethod
    def _decode_body(cls, reader: LayoutReader) -> "InstructionData":
        return cls(**reader.read(cls.LAYOUT, 1))


# ============================================================
# ROUTER INSTRUCTIONS
# ============================================================

class InitializeRouter(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 0
    LAYOUT = Layout("InitializeRouter", [LayoutField("governance", "pubkey")])

    governance: PublicKey


class InitializePortfolio(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 1
    LAYOUT = Layout("InitializePortfolio", [LayoutField("user", "pubkey")])

    user: PublicKey


class Deposit(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 2
    LAYOUT = Layout("Deposit", [LayoutField("amount", "u64")])

    amount: U64


class Withdraw(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 3
    LAYOUT = Layout("Withdraw", [LayoutField("amount", "u64")])

    amount: U64


class SplitOrder(BaseModel):
    """One venue leg of a cross-slab execution."""

    model_config = ConfigDict(frozen=True)

    LAYOUT: ClassVar[Layout] = Layout("SplitOrder", [
        LayoutField("side", "u8"),
        LayoutField("quantity", "i64"),
        LayoutField("limit_price", "i64"),
    ])

    side: Side
    quantity: I64
    limit_price: I64


_CROSS_SLAB_HEADER = Layout("ExecuteCrossSlabHeader", [
    LayoutField("num_splits", "u8"),
    LayoutField("order_type", "u8"),
])


class ExecuteCrossSlab(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 4

    order_type: OrderType
    splits: List[SplitOrder] = Field(min_length=1, max_length=MAX_SPLITS)

    def _encode_body(self) -> bytes:
        body = pack(_CROSS_SLAB_HEADER, {
            "num_splits": len(self.splits),
            "order_type": self.order_type,
        })
        for split in self.splits:
            body += pack(SplitOrder.LAYOUT, dict(split))
        return body

    @classmethod
    def _decode_body(cls, reader: LayoutReader) -> "ExecuteCrossSlab":
        header = reader.read(_CROSS_SLAB_HEADER, 1)
        offset = 1 + _CROSS_SLAB_HEADER.size
        splits = reader.read(
            Layout("Splits", [Array("splits", SplitOrder.LAYOUT, header["num_splits"])]),
            offset,
        )["splits"]
        return cls(
            order_type=header["order_type"],
            splits=[SplitOrder(**split) for split in splits],
        )


class LiquidateUser(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 5
    LAYOUT = Layout("LiquidateUser", [
        LayoutField("num_oracles", "u8"),
        LayoutField("num_slabs", "u8"),
        LayoutField("is_preliq", "u8"),
        LayoutField("current_ts", "u64"),
    ])

    num_oracles: U8
    num_slabs: U8
    is_preliq: bool
    current_ts: U64


class BurnLpShares(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 6
    LAYOUT = Layout("BurnLpShares", [
        LayoutField("market_id", "pubkey"),
        LayoutField("shares", "u64"),
        LayoutField("share_price", "i64"),
        LayoutField("current_ts", "u64"),
        LayoutField("max_staleness_seconds", "u64"),
    ])

    market_id: PublicKey
    shares: U64
    share_price: I64
    current_ts: U64
    max_staleness_seconds: U64


_CANCEL_HEADER = Layout("CancelLpOrdersHeader", [
    LayoutField("market_id", "pubkey"),
    LayoutField("order_count", "u8"),
])

_CANCEL_TRAILER = Layout("CancelLpOrdersTrailer", [
    LayoutField("freed_quote", "u128"),
    LayoutField("freed_base", "u128"),
])

_ORDER_ID = Layout("OrderId", [LayoutField("order_id", "u64")])


class CancelLpOrders(InstructionData):
    PROGRAM = ProgramKind.ROUTER
    DISCRIMINATOR = 7

    market_id: PublicKey
    order_ids: List[U64] = Field(max_length=MAX_CANCEL_ORDERS)
    freed_quote: U128
    freed_base: U128

    def _encode_body(self) -> bytes:
        body = pack(_CANCEL_HEADER, {
            "market_id": self.market_id,
            "order_count": len(self.order_ids),
        })
        for order_id in self.order_ids:
            body += pack(_ORDER_ID, {"order_id": order_id})
        return body + pack(_CANCEL_TRAILER, {
            "freed_quote": self.freed_quote,
            "freed_base": self.freed_base,
        })

    @classmethod
    def _decode_body(cls, reader: LayoutReader) -> "CancelLpOrders":
        header = reader.read(_CANCEL_HEADER, 1)
        count = header["order_count"]
        offset = 1 + _CANCEL_HEADER.size
        ids = reader.read(Layout("OrderIds", [Array("ids", _ORDER_ID, count)]), offset)["ids"]
        trailer = reader.read(_CANCEL_TRAILER, offset + count * _ORDER_ID.size)
        return cls(
            market_id=header["market_id"],
            order_ids=[entry["order_id"] for entry in ids],
            freed_quote=trailer["freed_quote"],
            freed_base=trailer["freed_base"],
        )


# ============================================================
# SLAB INSTRUCTIONS
# ============================================================

class InitializeSlab(InstructionData):
    PROGRAM = ProgramKind.SLAB
    DISCRIMINATOR = 0
    LAYOUT = Layout("InitializeSlab", [
        LayoutField("lp_owner", "pubkey"),
        LayoutField("router_id", "pubkey"),
        LayoutField("instrument", "pubkey"),
        LayoutField("mark_px", "i64"),
        LayoutField("taker_fee_bps", "i64"),
        LayoutField("contract_size", "i64"),
        LayoutField("bump", "u8"),
    ])

    lp_owner: PublicKey
    router_id: PublicKey
    instrument: PublicKey
    mark_px: I64
    taker_fee_bps: I64
    contract_size: I64
    bump: U8


class CommitFill(InstructionData):
    PROGRAM = ProgramKind.SLAB
    DISCRIMINATOR = 1
    LAYOUT = Layout("CommitFill", [
        LayoutField("expected_seqno", "u32"),
        LayoutField("order_type", "u8"),
        LayoutField("side", "u8"),
        LayoutField("quantity", "i64"),
        LayoutField("limit_price", "i64"),
    ])

    expected_seqno: U32
    order_type: OrderType
    side: Side
    quantity: I64
    limit_price: I64


# ============================================================
# DECODING (INVERSE)
# ============================================================

_REGISTRY: Dict[ProgramKind, Dict[int, Type[InstructionData]]] = {
    ProgramKind.ROUTER: {
        cls.DISCRIMINATOR: cls
        for cls in (
            InitializeRouter,
            InitializePortfolio,
            Deposit,
            Withdraw,
            ExecuteCrossSlab,
            LiquidateUser,
            BurnLpShares,
            CancelLpOrders,
        )
    },
    ProgramKind.SLAB: {
        cls.DISCRIMINATOR: cls
        for cls in (InitializeSlab, CommitFill)
    },
}


def decode_instruction_data(data: bytes, program: ProgramKind) -> InstructionData:
    """
    Parse an instruction payload back into its typed request.

    Raises:
        TruncatedRecord: payload shorter than its layout
        InvalidDiscriminator: unknown instruction tag for `program`
        DecodeError: field values outside what the request allows
    """
    record = f"{program.value} instruction"
    if not data:
        raise TruncatedRecord(record, 1, 0)

    cls = _REGISTRY[program].get(data[0])
    if cls is None:
        raise InvalidDiscriminator(record, sorted(_REGISTRY[program]), data[0])

    try:
        return cls._decode_body(LayoutReader(data, cls.__name__))
    except ValidationError as e:
        raise DecodeError(
            f"Malformed {cls.__name__} payload: {e.error_count()} invalid field(s)",
            record=cls.__name__,
            context={"errors": [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]},
        ) from e


# ============================================================
# ROUTER INSTRUCTION BUILDERS
# ============================================================

def initialize_router(
    program_id: PublicKey,
    registry: PublicKey,
    payer: PublicKey,
    governance: PublicKey,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(registry, writable=True),
            _meta(payer, signer=True, writable=True),
            _meta(SYSTEM_PROGRAM_ID),
        ),
        data=InitializeRouter(governance=governance).encode(),
    )


def initialize_portfolio(
    program_id: PublicKey,
    portfolio: PublicKey,
    payer: PublicKey,
    user: PublicKey,
) -> Instruction:
    """The ledger rejects this when the portfolio already exists."""
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(portfolio, writable=True),
            _meta(payer, signer=True, writable=True),
        ),
        data=InitializePortfolio(user=user).encode(),
    )


def deposit(
    program_id: PublicKey,
    portfolio: PublicKey,
    user: PublicKey,
    amount: int,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(portfolio, writable=True),
            _meta(user, signer=True, writable=True),
            _meta(SYSTEM_PROGRAM_ID),
        ),
        data=Deposit(amount=amount).encode(),
    )


def withdraw(
    program_id: PublicKey,
    portfolio: PublicKey,
    user: PublicKey,
    registry: PublicKey,
    amount: int,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(portfolio, writable=True),
            _meta(user, signer=True, writable=True),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(registry),
        ),
        data=Withdraw(amount=amount).encode(),
    )


@dataclass(frozen=True)
class CrossSlabAccounts:
    """Fixed accounts of an ExecuteCrossSlab instruction."""
    user_portfolio: PublicKey
    user: PublicKey
    dlp_portfolio: PublicKey
    registry: PublicKey
    router_authority: PublicKey
    slab_program: PublicKey


@dataclass(frozen=True)
class CrossSlabLeg:
    """Per-venue accounts and order for one split."""
    slab: PublicKey
    receipt: PublicKey
    oracle: PublicKey
    position_details: PublicKey
    side: Side
    quantity: int
    limit_price: int


def execute_cross_slab(
    program_id: PublicKey,
    accounts: CrossSlabAccounts,
    legs: Sequence[CrossSlabLeg],
    order_type: OrderType = OrderType.LIMIT,
) -> Instruction:
    """
    Build an atomic multi-venue execution.

    Account order: the seven fixed accounts, then all slabs, all
    receipts, all oracles and all position-details accounts, each
    group in leg order.
    """
    request = ExecuteCrossSlab(
        order_type=order_type,
        splits=[
            SplitOrder(side=leg.side, quantity=leg.quantity, limit_price=leg.limit_price)
            for leg in legs
        ],
    )

    keys = [
        _meta(accounts.user_portfolio, writable=True),
        _meta(accounts.user, signer=True, writable=True),
        _meta(accounts.dlp_portfolio, writable=True),
        _meta(accounts.registry, writable=True),
        _meta(accounts.router_authority),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(accounts.slab_program),
    ]
    keys += [_meta(leg.slab, writable=True) for leg in legs]
    keys += [_meta(leg.receipt, writable=True) for leg in legs]
    keys += [_meta(leg.oracle) for leg in legs]
    keys += [_meta(leg.position_details, writable=True) for leg in legs]

    logger.debug(f"ExecuteCrossSlab: {len(legs)} legs, {order_type.name}")

    return Instruction(program_id=program_id, keys=tuple(keys), data=request.encode())


@dataclass(frozen=True)
class LiquidationAccounts:
    portfolio: PublicKey
    dlp_portfolio: PublicKey
    registry: PublicKey
    vault: PublicKey
    router_authority: PublicKey
    slab_program: PublicKey


def liquidate_user(
    program_id: PublicKey,
    accounts: LiquidationAccounts,
    oracles: Sequence[PublicKey],
    slabs: Sequence[PublicKey],
    receipts: Sequence[PublicKey],
    is_preliq: bool,
    current_ts: int,
) -> Instruction:
    if len(receipts) != len(slabs):
        raise ValueError("one receipt account is required per slab")

    request = LiquidateUser(
        num_oracles=len(oracles),
        num_slabs=len(slabs),
        is_preliq=is_preliq,
        current_ts=current_ts,
    )
    keys = [
        _meta(accounts.portfolio, writable=True),
        _meta(accounts.dlp_portfolio, writable=True),
        _meta(accounts.registry, writable=True),
        _meta(accounts.vault, writable=True),
        _meta(accounts.router_authority),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(accounts.slab_program),
    ]
    keys += [_meta(oracle) for oracle in oracles]
    keys += [_meta(slab, writable=True) for slab in slabs]
    keys += [_meta(receipt, writable=True) for receipt in receipts]

    return Instruction(program_id=program_id, keys=tuple(keys), data=request.encode())


def burn_lp_shares(
    program_id: PublicKey,
    portfolio: PublicKey,
    user: PublicKey,
    request: BurnLpShares,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(_meta(portfolio, writable=True), _meta(user, signer=True)),
        data=request.encode(),
    )


def cancel_lp_orders(
    program_id: PublicKey,
    portfolio: PublicKey,
    user: PublicKey,
    request: CancelLpOrders,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(_meta(portfolio, writable=True), _meta(user, signer=True)),
        data=request.encode(),
    )


# ============================================================
# SLAB INSTRUCTION BUILDERS
# ============================================================

def initialize_slab(
    program_id: PublicKey,
    slab: PublicKey,
    payer: PublicKey,
    request: InitializeSlab,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(slab, writable=True),
            _meta(payer, signer=True, writable=True),
            _meta(SYSTEM_PROGRAM_ID),
        ),
        data=request.encode(),
    )


def commit_fill(
    program_id: PublicKey,
    slab: PublicKey,
    receipt: PublicKey,
    router_signer: PublicKey,
    oracle: PublicKey,
    request: CommitFill,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        keys=(
            _meta(slab, writable=True),
            _meta(receipt, writable=True),
            _meta(router_signer, signer=True),
            _meta(oracle),
        ),
        data=request.encode(),
    )
