"""Key derivation and addresses for metanet nodes."""

from bsvpush_core.keys.bip32 import ExtendedKey, KeyChain, parse_path
from bsvpush_core.keys.ecc import (
    PrivateKey,
    address_from_hash160,
    address_from_public_key,
    address_to_hash160,
    hash160,
    sha256d,
)

__all__ = [
    "ExtendedKey",
    "KeyChain",
    "PrivateKey",
    "address_from_hash160",
    "address_from_public_key",
    "address_to_hash160",
    "hash160",
    "parse_path",
    "sha256d",
]
