"""secp256k1 keys, hashing helpers, and P2PKH addresses."""

from __future__ import annotations

import hashlib
from functools import cached_property

import base58
from Crypto.Hash import RIPEMD160
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Mainnet P2PKH version byte
ADDRESS_VERSION = b"\x00"

_ECDSA = ec.ECDSA(Prehashed(hashes.SHA256()))


def sha256d(data: bytes) -> bytes:
    """Double SHA-256, as used for transaction ids and sighashes."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def address_from_hash160(digest: bytes) -> str:
    return base58.b58encode_check(ADDRESS_VERSION + digest).decode()


def address_from_public_key(public_key: bytes) -> str:
    """Base58Check P2PKH address for a compressed public key."""
    return address_from_hash160(hash160(public_key))


def address_to_hash160(address: str) -> bytes:
    """Decode a P2PKH address back to its 20-byte public key hash.

    Raises ValueError on a bad checksum or an unexpected version byte.
    """
    raw = base58.b58decode_check(address)
    if len(raw) != 21 or raw[:1] != ADDRESS_VERSION:
        raise ValueError(f"Not a mainnet P2PKH address: {address!r}")
    return raw[1:]


class PrivateKey:
    """A secp256k1 private key that signs 32-byte digests."""

    def __init__(self, secret: int) -> None:
        if not 0 < secret < CURVE_ORDER:
            raise ValueError("private key out of range")
        self.secret = secret
        self._key = ec.derive_private_key(secret, ec.SECP256K1())

    @classmethod
    def from_bytes(cls, raw: bytes) -> PrivateKey:
        return cls(int.from_bytes(raw, "big"))

    def to_bytes(self) -> bytes:
        return self.secret.to_bytes(32, "big")

    @cached_property
    def public_key(self) -> bytes:
        """33-byte compressed SEC encoding."""
        return self._key.public_key().public_bytes(
            Encoding.X962, PublicFormat.CompressedPoint
        )

    @cached_property
    def address(self) -> str:
        return address_from_public_key(self.public_key)

    def sign(self, digest: bytes) -> bytes:
        """DER signature over *digest* with a low S value."""
        der = self._key.sign(digest, _ECDSA)
        r, s = decode_dss_signature(der)
        if s > CURVE_ORDER // 2:
            s = CURVE_ORDER - s
        return encode_dss_signature(r, s)

    def verify(self, signature: bytes, digest: bytes) -> bool:
        try:
            self._key.public_key().verify(signature, digest, _ECDSA)
        except InvalidSignature:
            return False
        return True

    def __repr__(self) -> str:
        return f"PrivateKey(address={self.address!r})"
