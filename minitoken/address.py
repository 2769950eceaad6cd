"""
Address types and the key codec for ledger lookups.

An address is either an account (`AccountHash`) or a contract
(`ContractHash`), each a 32-byte identifier. The canonical byte form is a
one-byte tag followed by the identifier, which keeps the two variants
apart even when their bytes are equal.
"""

import logging

from nacl.encoding import Base64Encoder, HexEncoder, RawEncoder
from nacl.hash import blake2b
from nacl.signing import VerifyKey

from minitoken.config import HASH_LENGTH

logger = logging.getLogger(__name__)

ED25519_TAG = b"ed25519"


class Address:
    TAG = None
    PREFIX = None

    __slots__ = ("value",)

    def __init__(self, value: bytes):
        if self.TAG is None:
            raise TypeError("Address is abstract; use AccountHash or ContractHash")
        if isinstance(value, bytearray):
            value = bytes(value)
        if not isinstance(value, bytes):
            raise TypeError(f"{type(self).__name__} expects bytes, got {type(value).__name__}")
        if len(value) != HASH_LENGTH:
            raise ValueError(f"{type(self).__name__} must be {HASH_LENGTH} bytes, got {len(value)}")
        self.value = value

    def to_bytes(self) -> bytes:
        return bytes([self.TAG]) + self.value

    def __bytes__(self):
        return self.to_bytes()

    def is_null(self) -> bool:
        return self.value == bytes(HASH_LENGTH)

    def to_formatted_str(self) -> str:
        return self.PREFIX + self.value.hex()

    def __str__(self):
        return self.to_formatted_str()

    def __repr__(self):
        return f"{type(self).__name__}({self.value.hex()[:8]}...)"

    def __eq__(self, other):
        return isinstance(other, Address) and self.TAG == other.TAG and self.value == other.value

    def __hash__(self):
        return hash((self.TAG, self.value))

    @staticmethod
    def from_bytes(data: bytes) -> "Address":
        """Parse the canonical tagged form produced by `to_bytes()`."""
        if len(data) != HASH_LENGTH + 1:
            raise ValueError(f"Address bytes must be {HASH_LENGTH + 1} long, got {len(data)}")
        for cls in (AccountHash, ContractHash):
            if data[0] == cls.TAG:
                return cls(data[1:])
        raise ValueError(f"Unknown address tag {data[0]}")

    @staticmethod
    def from_formatted_str(text: str) -> "Address":
        """Parse `account-hash-<hex>` or `hash-<hex>`."""
        for cls in (AccountHash, ContractHash):
            if text.startswith(cls.PREFIX):
                raw = text[len(cls.PREFIX):]
                try:
                    value = bytes.fromhex(raw)
                except ValueError:
                    raise ValueError(f"Invalid hex in address: {text!r}") from None
                return cls(value)
        raise ValueError(f"Unrecognized address format: {text!r}")


class AccountHash(Address):
    TAG = 0
    PREFIX = "account-hash-"

    __slots__ = ()

    @classmethod
    def from_public_key(cls, public_key) -> "AccountHash":
        """
        Derive the account hash of an Ed25519 public key.
        Accepts a nacl VerifyKey, raw key bytes, or a hex string.
        """
        if isinstance(public_key, VerifyKey):
            key_bytes = public_key.encode()
        elif isinstance(public_key, str):
            key_bytes = VerifyKey(public_key, encoder=HexEncoder).encode()
        else:
            key_bytes = VerifyKey(bytes(public_key)).encode()
        preimage = ED25519_TAG + b"\x00" + key_bytes
        return cls(blake2b(preimage, digest_size=HASH_LENGTH, encoder=RawEncoder))


class ContractHash(Address):
    """The hash variant: identifies a stored contract or contract package."""

    TAG = 1
    PREFIX = "hash-"

    __slots__ = ()


NULL_ACCOUNT = AccountHash(bytes(HASH_LENGTH))
NULL_HASH = ContractHash(bytes(HASH_LENGTH))


def balance_key(address: Address) -> str:
    """Dictionary item key for an address's balance: base64 of its tagged bytes."""
    return Base64Encoder.encode(address.to_bytes()).decode("ascii")


def allowance_key(owner: Address, spender: Address) -> str:
    """
    Dictionary item key for an (owner, spender) allowance.

    BLAKE2b-256 over owner bytes then spender bytes, as lowercase hex.
    allowance_key(a, b) != allowance_key(b, a).
    """
    preimage = owner.to_bytes() + spender.to_bytes()
    key = blake2b(preimage, digest_size=HASH_LENGTH, encoder=HexEncoder).decode("ascii")
    logger.debug("Allowance key for %r -> %r: %s", owner, spender, key)
    return key
