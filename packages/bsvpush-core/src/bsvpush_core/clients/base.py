"""Chain and chain-index client interfaces and the records they return."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from bsvpush_core.errors import FormatError
from bsvpush_core.tx.script import OP_RETURN
from bsvpush_core.tx.transaction import UnspentOutput


class TxOutputInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    script_hex: str
    satoshis: int = 0


class TransactionInfo(BaseModel):
    """A transaction as reported by a chain client."""

    model_config = ConfigDict(frozen=True)

    tx_id: str
    outputs: list[TxOutputInfo] = []
    confirmations: int | None = None

    def data_script(self) -> bytes:
        """The first output script that starts with OP_RETURN."""
        for out in self.outputs:
            script = bytes.fromhex(out.script_hex)
            if script[:1] == bytes([OP_RETURN]):
                return script
        raise FormatError(f"Transaction {self.tx_id} has no OP_RETURN output")


class Utxo(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_id: str
    output_index: int
    satoshis: int
    height: int = 0

    def to_unspent(self, address: str) -> UnspentOutput:
        return UnspentOutput.p2pkh(self.tx_id, self.output_index, self.satoshis, address)


class MetanetRecord(BaseModel):
    """One metanet node as reported by the index.

    ``protocol`` is the type field of the payload; for directories that
    is the directory name itself.
    """

    model_config = ConfigDict(frozen=True)

    tx_id: str
    address: str
    parent_tx_id: str | None = None
    protocol: str
    name: str


@runtime_checkable
class ChainClient(Protocol):
    """Broadcasts transactions and answers transaction and UTXO lookups."""

    def broadcast(self, raw_hex: str) -> str: ...

    def fetch_transaction(self, tx_id: str) -> TransactionInfo: ...

    def unspent_outputs(self, address: str) -> list[Utxo]: ...

    def close(self) -> None: ...


@runtime_checkable
class ChainIndexClient(Protocol):
    """Answers metanet graph queries and mempool visibility questions."""

    def node_by_tx(self, tx_id: str) -> MetanetRecord: ...

    def children_by_parent_tx(self, tx_id: str) -> list[MetanetRecord]: ...

    def transaction_seen(self, tx_id: str) -> bool: ...

    def unconfirmed_output_count(self, address: str) -> int: ...

    def close(self) -> None: ...
