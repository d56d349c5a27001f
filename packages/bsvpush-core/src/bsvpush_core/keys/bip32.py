"""BIP32 private key derivation.

Every metanet node's address is derived from the master key along the
node's key path (``m/0/3/1``), so the derivation here must stay pure and
deterministic: the same master key and path always give the same key.
"""

from __future__ import annotations

import secrets

import base58
from cryptography.hazmat.primitives import hashes, hmac

from bsvpush_core.keys.ecc import CURVE_ORDER, PrivateKey, hash160

HARDENED = 0x80000000
XPRV_VERSION = bytes.fromhex("0488ade4")


def _hmac_sha512(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA512())
    h.update(data)
    return h.finalize()


def parse_path(path: str) -> list[int]:
    """Split ``m/0/1'/2`` into child indices (hardened segments offset by 2^31)."""
    parts = [p for p in path.strip().split("/") if p]
    if parts and parts[0] in ("m", "M"):
        parts = parts[1:]
    indices: list[int] = []
    for part in parts:
        hardened = part[-1] in "'hH"
        digits = part[:-1] if hardened else part
        if not digits.isdigit():
            raise ValueError(f"Invalid derivation path segment {part!r} in {path!r}")
        index = int(digits)
        if index >= HARDENED:
            raise ValueError(f"Derivation index too large in {path!r}")
        indices.append(index + HARDENED if hardened else index)
    return indices


class ExtendedKey:
    """An extended private key (xprv) at some depth of a BIP32 tree."""

    def __init__(
        self,
        private_key: PrivateKey,
        chain_code: bytes,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
    ) -> None:
        if len(chain_code) != 32:
            raise ValueError("chain code must be 32 bytes")
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_seed(cls, seed: bytes) -> ExtendedKey:
        digest = _hmac_sha512(b"Bitcoin seed", seed)
        return cls(PrivateKey.from_bytes(digest[:32]), digest[32:])

    @classmethod
    def generate(cls) -> ExtendedKey:
        """A fresh random master key."""
        return cls.from_seed(secrets.token_bytes(32))

    @classmethod
    def from_xprv(cls, xprv: str) -> ExtendedKey:
        """Parse a Base58Check ``xprv...`` string."""
        try:
            raw = base58.b58decode_check(xprv.strip())
        except ValueError as e:
            raise ValueError(f"Invalid extended key: {e}") from e
        if len(raw) != 78 or raw[:4] != XPRV_VERSION:
            raise ValueError("Not a mainnet extended private key")
        if raw[45] != 0:
            raise ValueError("Extended key does not hold a private key")
        return cls(
            private_key=PrivateKey.from_bytes(raw[46:78]),
            chain_code=raw[13:45],
            depth=raw[4],
            parent_fingerprint=raw[5:9],
            child_number=int.from_bytes(raw[9:13], "big"),
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @property
    def xprv(self) -> str:
        raw = (
            XPRV_VERSION
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + b"\x00"
            + self.private_key.to_bytes()
        )
        return base58.b58encode_check(raw).decode()

    @property
    def public_key(self) -> bytes:
        return self.private_key.public_key

    @property
    def address(self) -> str:
        return self.private_key.address

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.public_key)[:4]

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def child(self, index: int) -> ExtendedKey:
        """Derive the private child at *index*."""
        if index >= HARDENED:
            data = b"\x00" + self.private_key.to_bytes()
        else:
            data = self.public_key
        digest = _hmac_sha512(self.chain_code, data + index.to_bytes(4, "big"))
        tweak = int.from_bytes(digest[:32], "big")
        secret = (tweak + self.private_key.secret) % CURVE_ORDER
        if tweak >= CURVE_ORDER or secret == 0:
            raise ValueError(f"Invalid child key at index {index}")
        return ExtendedKey(
            private_key=PrivateKey(secret),
            chain_code=digest[32:],
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
        )

    def derive(self, path: str) -> ExtendedKey:
        """Derive along a path such as ``m/0/1``, relative to this key."""
        key = self
        for index in parse_path(path):
            key = key.child(index)
        return key


class KeyChain:
    """Memoised key-path lookups against one master key."""

    def __init__(self, master: ExtendedKey) -> None:
        self.master = master
        self._cache: dict[str, ExtendedKey] = {}

    def extended(self, key_path: str) -> ExtendedKey:
        if key_path not in self._cache:
            parent_path, _, last = key_path.rpartition("/")
            if parent_path:
                self._cache[key_path] = self.extended(parent_path).derive(last)
            else:
                self._cache[key_path] = self.master.derive(key_path)
        return self._cache[key_path]

    def key(self, key_path: str) -> PrivateKey:
        return self.extended(key_path).private_key

    def address(self, key_path: str) -> str:
        return self.extended(key_path).address
