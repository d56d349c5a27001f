"""Shared test fixtures for bsvpush."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from bsvpush_core.clients.base import MetanetRecord, TransactionInfo, TxOutputInfo, Utxo
from bsvpush_core.config.models import BsvPushConfig
from bsvpush_core.errors import BroadcastRejected, FormatError, TransactionNotFound
from bsvpush_core.keys import ExtendedKey, PrivateKey, address_from_public_key, address_from_hash160
from bsvpush_core.protocol.constants import META_TAG, NULL_PARENT
from bsvpush_core.tree import MetanetCache, MetanetNode
from bsvpush_core.tx import OP_RETURN, Transaction, p2pkh_hash160, parse_pushes

MASTER_SEED = bytes(range(16))
FUNDING_SECRET = 0xC0FFEE


class FakeChain:
    """In-memory ledger implementing both ChainClient and ChainIndexClient.

    Broadcast transactions are parsed, their inputs checked against known
    unspent outputs (including that the signer owns the spent address),
    and their P2PKH outputs become new unspent outputs. Metanet data
    outputs are indexed the way the metanet query endpoint reports them.
    """

    def __init__(self) -> None:
        self.transactions: dict[str, Transaction] = {}
        self.broadcast_order: list[str] = []
        self.outputs: dict[tuple[str, int], tuple[str, Utxo]] = {}
        self.nodes: dict[str, MetanetRecord] = {}
        self.unconfirmed = 0
        self.reject_after: int | None = None
        self.closed = False
        # Index lookups that report the transaction as not yet seen
        self.unseen_polls = 0
        # Lookups each broadcast output stays hidden from unspent_outputs
        self.output_delay = 0
        self._funded = 0
        self._hidden: dict[tuple[str, int], int] = {}

    # ── helpers ──────────────────────────────────────────────────────

    def fund(self, address: str, satoshis: int) -> Utxo:
        self._funded += 1
        tx_id = hashlib.sha256(f"{address}:{self._funded}".encode()).hexdigest()
        utxo = Utxo(tx_id=tx_id, output_index=0, satoshis=satoshis)
        self.outputs[(tx_id, 0)] = (address, utxo)
        return utxo

    def _index(self, tx_id: str, script: bytes) -> None:
        try:
            fields = parse_pushes(script)
        except FormatError:
            return
        if len(fields) < 5 or fields[1] != META_TAG.encode():
            return
        protocol = fields[4].decode()
        parent = fields[3].decode()
        name = fields[8].decode() if len(fields) > 8 else protocol
        self.nodes[tx_id] = MetanetRecord(
            tx_id=tx_id,
            address=fields[2].decode(),
            parent_tx_id=None if parent == NULL_PARENT else parent,
            protocol=protocol,
            name=name,
        )

    # ── ChainClient ──────────────────────────────────────────────────

    def broadcast(self, raw_hex: str) -> str:
        tx = Transaction.parse(bytes.fromhex(raw_hex))
        tx_id = tx.txid
        if self.reject_after is not None and len(self.broadcast_order) >= self.reject_after:
            raise BroadcastRejected(tx_id, "rejected by test")

        spent = 0
        for txin in tx.inputs:
            key = (txin.utxo.tx_id, txin.utxo.output_index)
            if key not in self.outputs:
                raise BroadcastRejected(tx_id, f"missing input {key}")
            address, utxo = self.outputs[key]
            sig_len = txin.unlocking_script[0]
            public_key = txin.unlocking_script[sig_len + 2:]
            if address_from_public_key(public_key) != address:
                raise BroadcastRejected(tx_id, f"input {key} not signed by {address}")
            spent += utxo.satoshis
        if sum(o.satoshis for o in tx.outputs) > spent:
            raise BroadcastRejected(tx_id, "outputs exceed inputs")

        for txin in tx.inputs:
            del self.outputs[(txin.utxo.tx_id, txin.utxo.output_index)]
        for i, out in enumerate(tx.outputs):
            digest = p2pkh_hash160(out.script)
            if digest is not None:
                utxo = Utxo(tx_id=tx_id, output_index=i, satoshis=out.satoshis)
                self.outputs[(tx_id, i)] = (address_from_hash160(digest), utxo)
                if self.output_delay:
                    self._hidden[(tx_id, i)] = self.output_delay
            elif out.script[:1] == bytes([OP_RETURN]) and tx_id not in self.nodes:
                self._index(tx_id, out.script)

        self.transactions[tx_id] = tx
        self.broadcast_order.append(tx_id)
        return tx_id

    def fetch_transaction(self, tx_id: str) -> TransactionInfo:
        if tx_id not in self.transactions:
            raise TransactionNotFound(tx_id)
        tx = self.transactions[tx_id]
        return TransactionInfo(
            tx_id=tx_id,
            outputs=[TxOutputInfo(script_hex=o.script.hex(), satoshis=o.satoshis) for o in tx.outputs],
        )

    def unspent_outputs(self, address: str) -> list[Utxo]:
        found = []
        for key, (owner, utxo) in self.outputs.items():
            if owner != address:
                continue
            if self._hidden.get(key):
                self._hidden[key] -= 1
                continue
            found.append(utxo)
        return found

    # ── ChainIndexClient ─────────────────────────────────────────────

    def node_by_tx(self, tx_id: str) -> MetanetRecord:
        if tx_id not in self.nodes:
            raise TransactionNotFound(tx_id)
        return self.nodes[tx_id]

    def children_by_parent_tx(self, tx_id: str) -> list[MetanetRecord]:
        return [r for r in self.nodes.values() if r.parent_tx_id == tx_id]

    def transaction_seen(self, tx_id: str) -> bool:
        if self.unseen_polls:
            self.unseen_polls -= 1
            return False
        return tx_id in self.transactions

    def unconfirmed_output_count(self, address: str) -> int:
        return self.unconfirmed

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def master_key() -> ExtendedKey:
    return ExtendedKey.from_seed(MASTER_SEED)


@pytest.fixture
def funding_key(fake_chain: FakeChain) -> PrivateKey:
    key = PrivateKey(FUNDING_SECRET)
    fake_chain.fund(key.address, 10_000_000)
    return key


@pytest.fixture
def cache(master_key: ExtendedKey) -> MetanetCache:
    return MetanetCache(master_key, MetanetNode(name="project"))


@pytest.fixture
def config() -> BsvPushConfig:
    return BsvPushConfig()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root
