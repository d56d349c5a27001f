"""Push a local directory tree onto the ledger as metanet transactions.

The pipeline runs as a fixed sequence of states (see :class:`PushState`).
Every child payload embeds its parent's txid, which does not exist until
the parent is broadcast, so estimation runs against placeholder ids and
the real ids are patched in while sending.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from bsvpush_core.clients.base import ChainClient, ChainIndexClient, Utxo
from bsvpush_core.config.models import BsvPushConfig
from bsvpush_core.errors import UnencodableName
from bsvpush_core.fees import FeeEstimator
from bsvpush_core.funding import FundingEntry, FundingTransaction, FundingTxBuilder
from bsvpush_core.keys.bip32 import KeyChain
from bsvpush_core.keys.ecc import PrivateKey
from bsvpush_core.polling import poll_until
from bsvpush_core.protocol.codec import (
    ChunkedFileBody,
    DirectoryBody,
    FileBody,
    NodeBody,
    Payload,
    encode_chunk,
    encode_node,
)
from bsvpush_core.tree.cache import MetanetCache
from bsvpush_core.tree.node import ConfirmedId, MetanetNode, NodeKind
from bsvpush_core.tx.transaction import Transaction

logger = logging.getLogger(__name__)


class PushState(str, Enum):
    STAGE = "stage"
    ESTIMATE = "estimate"
    CONFIRM = "confirm"
    BROADCAST_FUNDING = "broadcast_funding"
    AWAIT_PROPAGATION = "await_propagation"
    AWAIT_MEMPOOL_HEADROOM = "await_mempool_headroom"
    SEND_TREE = "send_tree"
    PERSIST_CACHE = "persist_cache"
    DONE = "done"


@dataclass(frozen=True)
class FeeSummary:
    """What the operator is asked to approve before anything is broadcast."""

    funding_address: str
    transaction_count: int
    node_fees: int
    funding_fee: int

    @property
    def total(self) -> int:
        return self.node_fees + self.funding_fee


@dataclass
class PushReport:
    states: list[PushState] = field(default_factory=list)
    summary: FeeSummary | None = None
    funding_tx_id: ConfirmedId | None = None
    root_tx_id: ConfirmedId | None = None
    broadcast: list[ConfirmedId] = field(default_factory=list)
    aborted: bool = False


def _always(summary: FeeSummary) -> bool:
    return True


class PushPipeline:
    """Stage, estimate, fund, and send one directory tree.

    *confirm* is asked once with the fee summary; returning False aborts
    before anything is broadcast. *sleep* and *cancel* are passed to every
    polling wait.
    """

    def __init__(
        self,
        root_dir: Path,
        cache: MetanetCache,
        funding_key: PrivateKey,
        chain: ChainClient,
        index: ChainIndexClient,
        config: BsvPushConfig | None = None,
        *,
        cache_path: Path | None = None,
        ignore: frozenset[str] = frozenset(),
        root_name: str | None = None,
        confirm: Callable[[FeeSummary], bool] = _always,
        sleep: Callable[[float], None] = time.sleep,
        cancel: threading.Event | None = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.cache = cache
        self.funding_key = funding_key
        self.chain = chain
        self.index = index
        self.config = config or BsvPushConfig()
        self.cache_path = cache_path
        self.ignore = ignore
        self.root_name = root_name or self.root_dir.name
        self.confirm = confirm
        self.sleep = sleep
        self.cancel = cancel or threading.Event()

        self.keychain = KeyChain(cache.master_key)
        self.estimator = FeeEstimator(self.config.fees, self.config.payload)
        self.builder = FundingTxBuilder(chain, self.keychain, funding_key, self.config.fees)
        self._funding: FundingTransaction | None = None

    @property
    def root(self) -> MetanetNode:
        return self.cache.root

    def _enter(self, state: PushState, report: PushReport) -> None:
        logger.info("Push state: %s", state.value)
        report.states.append(state)

    def _wait(self, check: Callable, description: str):
        return poll_until(
            check,
            description=description,
            interval=self.config.network.poll_interval,
            sleep=self.sleep,
            cancel=self.cancel,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> PushReport:
        report = PushReport()

        self._enter(PushState.STAGE, report)
        self.stage()

        self._enter(PushState.ESTIMATE, report)
        entries = self.estimate()
        funding = self._funding = self.builder.build(entries, self.root.payload)
        report.summary = FeeSummary(
            funding_address=self.funding_key.address,
            transaction_count=len(entries) + 1,
            node_fees=funding.node_fees,
            funding_fee=funding.fee,
        )

        self._enter(PushState.CONFIRM, report)
        if not self.confirm(report.summary):
            logger.info("Push declined, nothing was broadcast")
            report.aborted = True
            return report

        self._enter(PushState.BROADCAST_FUNDING, report)
        funding_id = ConfirmedId(self.chain.broadcast(funding.tx.hex()))
        report.funding_tx_id = funding_id
        report.broadcast.append(funding_id)
        # The root payload is output 0 of the funding transaction
        self.root.tx_id = funding_id
        report.root_tx_id = funding_id

        self._enter(PushState.AWAIT_PROPAGATION, report)
        self._wait(
            lambda: self.index.transaction_seen(funding_id),
            f"funding transaction {funding_id} to appear",
        )

        self._enter(PushState.AWAIT_MEMPOOL_HEADROOM, report)
        limit = self.config.network.ancestor_limit
        address = self.funding_key.address
        self._wait(
            lambda: self.index.unconfirmed_output_count(address) < limit,
            f"fewer than {limit} unconfirmed outputs from {address}",
        )

        self._enter(PushState.SEND_TREE, report)
        self.send_tree(funding_id, report)

        self._enter(PushState.PERSIST_CACHE, report)
        if self.cache_path is not None:
            self.cache.save(self.cache_path)

        self._enter(PushState.DONE, report)
        return report

    # ------------------------------------------------------------------
    # Stage
    # ------------------------------------------------------------------

    def stage(self) -> None:
        """Reconcile the node tree with the directory on disk."""
        self.root.name = self.root_name
        self.root.source = self.root_dir
        self.root.kind = NodeKind.DIRECTORY
        self._stage_dir(self.root, self.root_dir)

    def _stage_dir(self, node: MetanetNode, directory: Path) -> None:
        present = set()
        for path in sorted(directory.iterdir(), key=lambda p: p.name):
            name = path.name
            if name in self.ignore or not (path.is_dir() or path.is_file()):
                continue
            try:
                name.encode("utf-8")
            except UnicodeEncodeError as e:
                raise UnencodableName(path) from e
            present.add(name)

            child = node.child(name)
            if child is None:
                child = node.create_child(name)
                logger.debug("New node %s %s", child.key_path, path)
            elif child.removed:
                child.restore()
                logger.info("Restoring %s %s", child.key_path, path)
            child.source = path

            if path.is_dir():
                child.kind = NodeKind.DIRECTORY
                self._stage_dir(child, path)
                continue

            # A directory replaced by a file leaves no children behind
            for stale in child.unremoved_children():
                logger.info("Removing %s %s", stale.key_path, path / stale.name)
                stale.remove()
            if path.stat().st_size > self.config.payload.max_file_size:
                child.kind = NodeKind.CHUNKED_FILE
            else:
                child.kind = NodeKind.FILE

        # Ignored or deleted entries are soft-deleted so their index is never reused
        for name in node.unremoved_child_names():
            if name not in present:
                logger.info("Removing %s %s", node.children[name].key_path, name)
                node.children[name].remove()

    # ------------------------------------------------------------------
    # Estimate
    # ------------------------------------------------------------------

    def estimate(self) -> list[FundingEntry]:
        """Encode and price every unremoved node, parents before children.

        Returns the funding entries for every node except the root, in
        send order. Each node's ``vout_index`` (and ``chunk_vouts``) is its
        position in that list.
        """
        entries: list[FundingEntry] = []
        self._estimate_node(self.root, None, entries)
        return entries

    def _body(self, node: MetanetNode) -> NodeBody:
        match node.kind:
            case NodeKind.DIRECTORY:
                return DirectoryBody(node.name)
            case NodeKind.FILE:
                return FileBody(node.name, node.source.read_bytes())
            case NodeKind.CHUNKED_FILE:
                return ChunkedFileBody(
                    node.name,
                    node.source.read_bytes(),
                    self.config.payload.max_file_size,
                )

    def _estimate_node(
        self,
        node: MetanetNode,
        parent: MetanetNode | None,
        entries: list[FundingEntry],
    ) -> None:
        body = self._body(node)
        node.payload = encode_node(
            body,
            self.keychain.address(node.key_path),
            parent.tx_id if parent is not None else None,
            self.config.payload.gzip_threshold,
        )
        estimate = self.estimator.estimate(node.payload)
        node.fee = estimate.fee
        node.tx_id = estimate.placeholder_id
        node.chunk_payloads = []
        node.chunk_fees = []
        node.chunk_vouts = []

        if parent is not None:
            node.vout_index = len(entries)
            entries.append(FundingEntry(parent.key_path, node.fee))
            # Chunk parts are paid from the same parent key as their header
            if isinstance(body, ChunkedFileBody):
                for chunk in body.chunks():
                    payload = encode_chunk(chunk)
                    chunk_estimate = self.estimator.estimate(payload)
                    node.chunk_payloads.append(payload)
                    node.chunk_fees.append(chunk_estimate.fee)
                    node.chunk_vouts.append(len(entries))
                    entries.append(FundingEntry(parent.key_path, chunk_estimate.fee))

        logger.debug(
            "[%s] %s (%d satoshis, %d chunks)",
            node.key_path, node.source, node.fee, len(node.chunk_payloads),
        )
        for child in node.unremoved_children():
            self._estimate_node(child, node, entries)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def send_tree(self, funding_id: ConfirmedId, report: PushReport) -> None:
        for child in self.root.unremoved_children():
            self._send_node(child, self.root, funding_id, report)

    def _send_node(
        self,
        node: MetanetNode,
        parent: MetanetNode,
        funding_id: ConfirmedId,
        report: PushReport,
    ) -> None:
        parent_key = self.keychain.key(parent.key_path)

        if node.kind is NodeKind.CHUNKED_FILE:
            chunk_ids = [
                self._send_payload(
                    payload, parent_key, funding_id, vout, f"{node.key_path} part {i}", report
                )
                for i, (payload, vout) in enumerate(zip(node.chunk_payloads, node.chunk_vouts))
            ]
            node.payload.set_chunk_ids(chunk_ids)

        node.payload.set_parent(parent.tx_id)
        node.tx_id = self._send_payload(
            node.payload, parent_key, funding_id, node.vout_index, node.key_path, report
        )

        for child in node.unremoved_children():
            self._send_node(child, node, funding_id, report)

    def _send_payload(
        self,
        payload: Payload,
        key: PrivateKey,
        funding_id: ConfirmedId,
        position: int,
        label: str,
        report: PushReport,
    ) -> ConfirmedId:
        address = key.address
        vout = self._funding.vout(position)
        utxo: Utxo = self._wait(
            lambda: self._find_utxo(address, funding_id, vout),
            f"funding output {funding_id}:{vout} for {address}",
        )
        tx = Transaction()
        tx.add_input(utxo.to_unspent(address))
        tx.add_output(0, payload.signable_script())
        tx.sign(key)
        tx_id = ConfirmedId(self.chain.broadcast(tx.hex()))
        logger.info("[%s] Sent %s", label, tx_id)
        report.broadcast.append(tx_id)
        return tx_id

    def _find_utxo(self, address: str, tx_id: str, vout: int) -> Utxo | None:
        for utxo in self.chain.unspent_outputs(address):
            if utxo.tx_id == tx_id and utxo.output_index == vout:
                return utxo
        return None
