"""
Public key value type.

A public key is 32 opaque bytes identifying an account, venue,
instrument or trader. Text form is base58, as used by the ledger.
"""

from typing import Union

import base58


PUBKEY_LENGTH = 32


class PublicKey:
    """Immutable 32-byte account identifier."""

    __slots__ = ("_key",)

    def __init__(self, value: Union[bytes, bytearray, memoryview, str, "PublicKey"]):
        if isinstance(value, PublicKey):
            raw = value._key
        elif isinstance(value, str):
            try:
                raw = base58.b58decode(value)
            except ValueError as e:
                raise ValueError(f"Invalid base58 public key: {value!r}") from e
        else:
            raw = bytes(value)

        if len(raw) != PUBKEY_LENGTH:
            raise ValueError(
                f"Public key must be {PUBKEY_LENGTH} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "_key", raw)

    def __setattr__(self, name, value):
        raise AttributeError("PublicKey is immutable")

    @classmethod
    def from_string(cls, text: str) -> "PublicKey":
        return cls(text)

    @classmethod
    def default(cls) -> "PublicKey":
        """The all-zero key (unset field on the ledger)."""
        return cls(bytes(PUBKEY_LENGTH))

    def is_default(self) -> bool:
        return self._key == bytes(PUBKEY_LENGTH)

    def to_base58(self) -> str:
        return base58.b58encode(self._key).decode("ascii")

    def __bytes__(self) -> bytes:
        return self._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __lt__(self, other: "PublicKey") -> bool:
        return self._key < other._key

    def __str__(self) -> str:
        return self.to_base58()

    def __repr__(self) -> str:
        return f"PublicKey({self.to_base58()!r})"
