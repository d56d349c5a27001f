"""Transaction construction, serialization, and P2PKH signing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from bsvpush_core.errors import FormatError
from bsvpush_core.keys.ecc import PrivateKey, sha256d
from bsvpush_core.tx.script import encode_push, p2pkh_script

SIGHASH_ALL_FORKID = 0x41

# Upper bound for a P2PKH unlocking script: 73-byte signature + 34-byte pubkey push
P2PKH_UNLOCK_SIZE = 107


def varint(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    if n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    return b"\xff" + n.to_bytes(8, "little")


@dataclass(frozen=True)
class UnspentOutput:
    """An outpoint together with the value and script it locks."""

    tx_id: str
    output_index: int
    satoshis: int
    script: bytes = b""

    @classmethod
    def p2pkh(cls, tx_id: str, output_index: int, satoshis: int, address: str) -> UnspentOutput:
        return cls(tx_id, output_index, satoshis, p2pkh_script(address))

    def outpoint(self) -> bytes:
        return bytes.fromhex(self.tx_id)[::-1] + self.output_index.to_bytes(4, "little")


@dataclass
class TxInput:
    utxo: UnspentOutput
    unlocking_script: bytes = b""
    sequence: int = 0xFFFFFFFF


@dataclass
class TxOutput:
    satoshis: int
    script: bytes

    def serialize(self) -> bytes:
        return (
            self.satoshis.to_bytes(8, "little")
            + varint(len(self.script))
            + self.script
        )


@dataclass
class Transaction:
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    version: int = 1
    locktime: int = 0

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_input(self, utxo: UnspentOutput) -> Transaction:
        self.inputs.append(TxInput(utxo))
        return self

    def add_output(self, satoshis: int, script: bytes) -> Transaction:
        self.outputs.append(TxOutput(satoshis, script))
        return self

    @property
    def input_total(self) -> int:
        return sum(i.utxo.satoshis for i in self.inputs)

    @property
    def output_total(self) -> int:
        return sum(o.satoshis for o in self.outputs)

    @property
    def fee(self) -> int:
        return self.input_total - self.output_total

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self, estimate: bool = False) -> bytes:
        """Wire encoding. With *estimate*, unsigned inputs are sized as P2PKH spends."""
        parts = [self.version.to_bytes(4, "little"), varint(len(self.inputs))]
        for txin in self.inputs:
            script = txin.unlocking_script
            if estimate and not script:
                script = b"\x00" * P2PKH_UNLOCK_SIZE
            parts.append(txin.utxo.outpoint())
            parts.append(varint(len(script)) + script)
            parts.append(txin.sequence.to_bytes(4, "little"))
        parts.append(varint(len(self.outputs)))
        parts.extend(o.serialize() for o in self.outputs)
        parts.append(self.locktime.to_bytes(4, "little"))
        return b"".join(parts)

    def hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return sha256d(self.serialize())[::-1].hex()

    def size(self) -> int:
        return len(self.serialize())

    def estimated_size(self) -> int:
        return len(self.serialize(estimate=True))

    def estimated_fee(self, fee_rate: float) -> int:
        """Satoshis needed at *fee_rate* per byte of the estimated size."""
        return math.ceil(self.estimated_size() * fee_rate)

    @classmethod
    def parse(cls, raw: bytes) -> Transaction:
        """Decode a wire transaction. Input values and locking scripts are unknown."""
        reader = _Reader(raw)
        version = reader.uint(4)
        inputs = []
        for _ in range(reader.varint()):
            prev = reader.take(32)[::-1].hex()
            index = reader.uint(4)
            script = reader.take(reader.varint())
            sequence = reader.uint(4)
            inputs.append(TxInput(UnspentOutput(prev, index, 0), script, sequence))
        outputs = []
        for _ in range(reader.varint()):
            satoshis = reader.uint(8)
            outputs.append(TxOutput(satoshis, reader.take(reader.varint())))
        locktime = reader.uint(4)
        if not reader.done():
            raise FormatError("trailing bytes after transaction")
        return cls(inputs, outputs, version, locktime)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sighash(self, index: int, sighash_type: int = SIGHASH_ALL_FORKID) -> bytes:
        """Digest signed by input *index* (BIP143 layout with the fork id flag)."""
        txin = self.inputs[index]
        hash_prevouts = sha256d(b"".join(i.utxo.outpoint() for i in self.inputs))
        hash_sequence = sha256d(
            b"".join(i.sequence.to_bytes(4, "little") for i in self.inputs)
        )
        hash_outputs = sha256d(b"".join(o.serialize() for o in self.outputs))
        preimage = b"".join([
            self.version.to_bytes(4, "little"),
            hash_prevouts,
            hash_sequence,
            txin.utxo.outpoint(),
            varint(len(txin.utxo.script)) + txin.utxo.script,
            txin.utxo.satoshis.to_bytes(8, "little"),
            txin.sequence.to_bytes(4, "little"),
            hash_outputs,
            self.locktime.to_bytes(4, "little"),
            sighash_type.to_bytes(4, "little"),
        ])
        return sha256d(preimage)

    def sign(self, key: PrivateKey) -> Transaction:
        """Sign every input as a P2PKH spend by *key*."""
        for index, txin in enumerate(self.inputs):
            signature = key.sign(self.sighash(index)) + bytes([SIGHASH_ALL_FORKID])
            txin.unlocking_script = encode_push(signature) + encode_push(key.public_key)
        return self


class _Reader:
    def __init__(self, raw: bytes) -> None:
        self._raw = raw
        self._pos = 0

    def take(self, n: int) -> bytes:
        if self._pos + n > len(self._raw):
            raise FormatError("truncated transaction")
        chunk = self._raw[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def uint(self, n: int) -> int:
        return int.from_bytes(self.take(n), "little")

    def varint(self) -> int:
        first = self.uint(1)
        if first < 0xFD:
            return first
        return self.uint({0xFD: 2, 0xFE: 4, 0xFF: 8}[first])

    def done(self) -> bool:
        return self._pos == len(self._raw)
