"""
Account Codec - Layout Schema.

============================================================
PURPOSE
============================================================
Declarative description of the fixed binary layouts shared with the
ledger programs, plus the single reader/writer that walks them.

Every record is a sequence of items read strictly in order:

- Field     fixed-width integer or public key
- Pad       reserved bytes, skipped and never interpreted
- Blob      raw fixed-width bytes (magic values, hashes)
- Optional  1-byte tag (0 = absent, 1 = present) followed by a
            fixed-size region that is skipped even when absent
- Array     fixed count of a sub-layout
- Nested    a sub-layout stored inline

128-bit values travel as two little-endian 64-bit words (low first)
and are reassembled here, so call sites never see the halves.

All multi-byte values are little-endian.

============================================================
"""

import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from core.exceptions import MalformedOptionTag, TruncatedRecord

from .pubkey import PUBKEY_LENGTH, PublicKey


# ============================================================
# PRIMITIVES
# ============================================================

_PRIMITIVES: Dict[str, str] = {
    "u8": "B",
    "u16": "H",
    "u32": "I",
    "u64": "Q",
    "i8": "b",
    "i16": "h",
    "i32": "i",
    "i64": "q",
}

_WIDE: Dict[str, bool] = {
    "u128": False,
    "i128": True,
}

_SIZES: Dict[str, int] = {
    "u8": 1, "u16": 2, "u32": 4, "u64": 8,
    "i8": 1, "i16": 2, "i32": 4, "i64": 8,
    "u128": 16, "i128": 16, "pubkey": PUBKEY_LENGTH,
}

_U64_MASK = (1 << 64) - 1


def join_words(low: int, high: int, signed: bool) -> int:
    """Reassemble a 128-bit value from its low and high 64-bit words."""
    value = (high << 64) | (low & _U64_MASK)
    if signed and value >= 1 << 127:
        value -= 1 << 128
    return value


def split_words(value: int, signed: bool) -> Tuple[int, int]:
    """Split a 128-bit value into (low, high) unsigned 64-bit words."""
    lower = -(1 << 127) if signed else 0
    upper = (1 << 127) - 1 if signed else (1 << 128) - 1
    if not lower <= value <= upper:
        raise ValueError(f"{value} out of range for {'i128' if signed else 'u128'}")
    value &= (1 << 128) - 1
    return value & _U64_MASK, value >> 64


def low_word(value: int) -> int:
    """
    Low 64 bits of a wide value, as a signed integer.

    Used where the ledger keeps redundant 128-bit halves purely for
    display; precision above 64 bits is deliberately dropped.
    """
    low = value & _U64_MASK
    return low - (1 << 64) if low >= 1 << 63 else low


# ============================================================
# LAYOUT ITEMS
# ============================================================

@dataclass(frozen=True)
class Field:
    """A named fixed-width integer or public key."""
    name: str
    kind: str

    def __post_init__(self) -> None:
        if self.kind not in _SIZES:
            raise ValueError(f"Unknown field kind: {self.kind}")

    @property
    def size(self) -> int:
        return _SIZES[self.kind]

    @property
    def format(self) -> str:
        if self.kind == "pubkey":
            return f"{PUBKEY_LENGTH}s"
        if self.kind in _WIDE:
            return "Qq" if _WIDE[self.kind] else "QQ"
        return _PRIMITIVES[self.kind]


@dataclass(frozen=True)
class Pad:
    """Reserved bytes."""
    size: int

    @property
    def format(self) -> str:
        return f"{self.size}x"


@dataclass(frozen=True)
class Blob:
    """Raw bytes, returned as-is."""
    name: str
    length: int

    @property
    def size(self) -> int:
        return self.length

    @property
    def format(self) -> str:
        return f"{self.length}s"


@dataclass(frozen=True)
class Optional_:
    """Tagged optional region; absent regions still occupy their bytes."""
    name: str
    layout: "Layout"

    @property
    def size(self) -> int:
        return 1 + self.layout.size


@dataclass(frozen=True)
class Array:
    """Fixed number of repetitions of a sub-layout."""
    name: str
    layout: "Layout"
    count: int

    @property
    def size(self) -> int:
        return self.layout.size * self.count


@dataclass(frozen=True)
class Nested:
    """Sub-layout stored inline under one name."""
    name: str
    layout: "Layout"

    @property
    def size(self) -> int:
        return self.layout.size


Item = Union[Field, Pad, Blob, Optional_, Array, Nested]


# ============================================================
# LAYOUT
# ============================================================

class Layout:
    """
    Ordered list of items with precomputed size and offsets.

    Layouts made only of Field/Pad/Blob are "flat" and are compiled
    to a single struct.Struct for fast bulk decoding (exposure arrays
    hold 8192 entries).
    """

    def __init__(self, name: str, items: Sequence[Item]):
        self.name = name
        self.items: Tuple[Item, ...] = tuple(items)
        self.size = sum(item.size for item in self.items)

        self._offsets: Dict[str, int] = {}
        offset = 0
        for item in self.items:
            item_name = getattr(item, "name", None)
            if item_name:
                if item_name in self._offsets:
                    raise ValueError(f"Duplicate field {item_name} in {name}")
                self._offsets[item_name] = offset
            offset += item.size

        self._struct: Optional[struct.Struct] = None
        if all(isinstance(item, (Field, Pad, Blob)) for item in self.items):
            self._struct = struct.Struct("<" + "".join(item.format for item in self.items))

    @property
    def is_flat(self) -> bool:
        return self._struct is not None

    def offset_of(self, name: str) -> int:
        """Byte offset of a top-level item."""
        return self._offsets[name]

    def __repr__(self) -> str:
        return f"Layout({self.name!r}, size={self.size})"


# ============================================================
# READER
# ============================================================

class LayoutReader:
    """
    Decodes layouts from one buffer.

    Carries the record name and account address so every error it
    raises points at the offending account.
    """

    def __init__(self, data: bytes, record: str, address: Optional[str] = None):
        self.data = bytes(data)
        self.record = record
        self.address = address

    def require(self, length: int) -> None:
        """Fail with TruncatedRecord unless the buffer holds `length` bytes."""
        if len(self.data) < length:
            raise TruncatedRecord(self.record, length, len(self.data), self.address)

    def read(self, layout: Layout, offset: int = 0) -> Dict[str, Any]:
        """Decode `layout` starting at `offset`."""
        self.require(offset + layout.size)
        if layout.is_flat:
            return _assemble(layout, layout._struct.unpack_from(self.data, offset))

        values: Dict[str, Any] = {}
        for item in layout.items:
            if isinstance(item, Pad):
                pass
            elif isinstance(item, (Field, Blob)):
                values[item.name] = self._read_simple(item, offset)
            elif isinstance(item, Optional_):
                values[item.name] = self._read_optional(item, offset)
            elif isinstance(item, Array):
                values[item.name] = self._read_array(item, offset)
            elif isinstance(item, Nested):
                values[item.name] = self.read(item.layout, offset)
            offset += item.size
        return values

    def _read_simple(self, item: Union[Field, Blob], offset: int) -> Any:
        raw = struct.unpack_from("<" + item.format, self.data, offset)
        return _convert(item, list(raw))

    def _read_optional(self, item: Optional_, offset: int) -> Optional[Dict[str, Any]]:
        tag = self.data[offset]
        if tag == 0:
            return None
        if tag != 1:
            raise MalformedOptionTag(self.record, tag, offset, self.address)
        return self.read(item.layout, offset + 1)

    def _read_array(self, item: Array, offset: int) -> List[Dict[str, Any]]:
        layout = item.layout
        if layout.is_flat:
            chunk = self.data[offset:offset + item.size]
            return [_assemble(layout, raw) for raw in layout._struct.iter_unpack(chunk)]
        return [
            self.read(layout, offset + i * layout.size)
            for i in range(item.count)
        ]


def _convert(item: Union[Field, Blob], raw: List[Any]) -> Any:
    if isinstance(item, Blob):
        return raw[0]
    if item.kind == "pubkey":
        return PublicKey(raw[0])
    if item.kind in _WIDE:
        return join_words(raw[0], raw[1], _WIDE[item.kind])
    return raw[0]


def _assemble(layout: Layout, raw: Tuple[Any, ...]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    index = 0
    for item in layout.items:
        if isinstance(item, Pad):
            continue
        width = 2 if isinstance(item, Field) and item.kind in _WIDE else 1
        values[item.name] = _convert(item, list(raw[index:index + width]))
        index += width
    return values


# ============================================================
# WRITER
# ============================================================

def pack(layout: Layout, values: Mapping[str, Any]) -> bytes:
    """
    Encode `values` with `layout`.

    Missing fields encode as zero; absent optional regions encode as a
    zero tag followed by zeroed bytes; short arrays are zero-filled.
    """
    out = bytearray()
    for item in layout.items:
        if isinstance(item, Pad):
            out += bytes(item.size)
        elif isinstance(item, Blob):
            raw = bytes(values.get(item.name, b""))
            if len(raw) > item.length:
                raise ValueError(f"{item.name}: {len(raw)} bytes exceeds {item.length}")
            out += raw.ljust(item.length, b"\x00")
        elif isinstance(item, Field):
            out += _pack_field(item, values.get(item.name))
        elif isinstance(item, Optional_):
            sub = values.get(item.name)
            if sub is None:
                out += bytes(item.size)
            else:
                out += b"\x01" + pack(item.layout, sub)
        elif isinstance(item, Array):
            entries = list(values.get(item.name) or [])
            if len(entries) > item.count:
                raise ValueError(f"{item.name}: {len(entries)} entries exceeds {item.count}")
            for entry in entries:
                out += pack(item.layout, entry)
            out += bytes(item.layout.size * (item.count - len(entries)))
        elif isinstance(item, Nested):
            out += pack(item.layout, values.get(item.name) or {})
    return bytes(out)


def _pack_field(item: Field, value: Any) -> bytes:
    if item.kind == "pubkey":
        if value is None:
            return bytes(PUBKEY_LENGTH)
        return bytes(PublicKey(value))
    value = value or 0
    if item.kind in _WIDE:
        low, high = split_words(value, _WIDE[item.kind])
        return struct.pack("<QQ", low, high)
    try:
        return struct.pack("<" + _PRIMITIVES[item.kind], value)
    except struct.error as e:
        raise ValueError(f"{item.name}: {value} out of range for {item.kind}") from e
