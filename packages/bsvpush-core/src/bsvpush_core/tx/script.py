"""Script push-data encoding for data outputs and P2PKH locking scripts."""

from __future__ import annotations

from collections.abc import Sequence

from bsvpush_core.errors import FormatError
from bsvpush_core.keys.ecc import address_to_hash160

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_HASH160 = 0xA9
OP_EQUALVERIFY = 0x88
OP_CHECKSIG = 0xAC


def encode_push(data: bytes) -> bytes:
    """Prefix *data* with the shortest push opcode for its length."""
    n = len(data)
    if n <= 75:
        return bytes([n]) + data
    if n <= 0xFF:
        return bytes([OP_PUSHDATA1, n]) + data
    if n <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + n.to_bytes(2, "little") + data
    return bytes([OP_PUSHDATA4]) + n.to_bytes(4, "little") + data


def data_script(fields: Sequence[bytes]) -> bytes:
    """An unspendable data script: OP_RETURN followed by one push per field."""
    return bytes([OP_RETURN]) + b"".join(encode_push(f) for f in fields)


def parse_pushes(script: bytes) -> list[bytes]:
    """Split a data script into fields.

    Field 0 is the leading opcode byte itself; every following field is
    the payload of one push. Length bytes 1-75 are direct counts, 76/77/78
    introduce a 1/2/4-byte little-endian length, and 0 is an empty push.
    """
    if not script:
        raise FormatError("empty script")
    fields = [script[:1]]
    pos = 1
    end = len(script)
    while pos < end:
        op = script[pos]
        pos += 1
        if op <= 75:
            length = op
        elif op == OP_PUSHDATA1:
            length = _read_length(script, pos, 1)
            pos += 1
        elif op == OP_PUSHDATA2:
            length = _read_length(script, pos, 2)
            pos += 2
        elif op == OP_PUSHDATA4:
            length = _read_length(script, pos, 4)
            pos += 4
        else:
            raise FormatError(f"unexpected opcode 0x{op:02x} at byte {pos - 1}")
        if pos + length > end:
            raise FormatError(
                f"push of {length} bytes at byte {pos} runs past end of script"
            )
        fields.append(script[pos:pos + length])
        pos += length
    return fields


def _read_length(script: bytes, pos: int, size: int) -> int:
    if pos + size > len(script):
        raise FormatError("truncated push length")
    return int.from_bytes(script[pos:pos + size], "little")


def p2pkh_script(address: str) -> bytes:
    """Standard pay-to-public-key-hash locking script for *address*."""
    return (
        bytes([OP_DUP, OP_HASH160])
        + encode_push(address_to_hash160(address))
        + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    )


def p2pkh_hash160(script: bytes) -> bytes | None:
    """Return the public key hash of a P2PKH script, or None for other scripts."""
    if (
        len(script) == 25
        and script[:3] == bytes([OP_DUP, OP_HASH160, 20])
        and script[23:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    ):
        return script[3:23]
    return None
