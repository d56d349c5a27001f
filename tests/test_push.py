"""Tests for the push pipeline against the in-memory chain."""

from __future__ import annotations

import os
import random
import shutil
import sys
import threading
from pathlib import Path

import pytest

from bsvpush_core.clone import ClonePipeline
from bsvpush_core.errors import BroadcastRejected, InsufficientFunds, PollCancelled, UnencodableName
from bsvpush_core.protocol import BCAT_PROTOCOL, B_PROTOCOL, decode_chunk, decode_node
from bsvpush_core.push import PushPipeline, PushState
from bsvpush_core.tree import ConfirmedId, MetanetCache, NodeKind, PlaceholderId

from conftest import FakeChain

BIG = random.Random(7).randbytes(200_000)


def _no_sleep(seconds: float) -> None:
    raise AssertionError("pipeline should not have needed to wait")


def _pipeline(project: Path, cache, funding_key, chain, config, **kwargs) -> PushPipeline:
    kwargs.setdefault("sleep", _no_sleep)
    return PushPipeline(project, cache, funding_key, chain, chain, config, **kwargs)


def _make_tree(project: Path) -> None:
    (project / "a.txt").write_text("hello")
    (project / "sub").mkdir()
    (project / "sub" / "b.txt").write_bytes(BIG)


# ── Stage ────────────────────────────────────────────────────────────


def test_stage_assigns_key_paths_in_name_order(project, cache, funding_key, fake_chain, config):
    """New entries get consecutive indices under their parent's key path."""
    _make_tree(project)
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()

    root = cache.root
    assert root.child("a.txt").key_path == "m/0/0"
    assert root.child("sub").key_path == "m/0/1"
    assert root.child("sub").child("b.txt").key_path == "m/0/1/0"
    assert root.child("a.txt").kind is NodeKind.FILE
    assert root.child("sub").kind is NodeKind.DIRECTORY
    assert root.child("sub").child("b.txt").kind is NodeKind.CHUNKED_FILE


def test_restage_is_idempotent(project, cache, funding_key, fake_chain, config):
    """Staging an unchanged tree twice keeps every key path and index."""
    _make_tree(project)
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()
    before = cache.root.to_dict()
    pipeline.stage()
    assert cache.root.to_dict() == before


def test_stage_soft_deletes_missing_and_ignored(project, cache, funding_key, fake_chain, config):
    """Entries that vanish or become ignored are marked removed, not dropped."""
    _make_tree(project)
    (project / "secret.key").write_text("x")
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()

    (project / "a.txt").unlink()
    pipeline.ignore = frozenset({"secret.key"})
    pipeline.stage()

    root = cache.root
    assert root.child("a.txt").removed
    assert root.child("secret.key").removed
    assert root.unremoved_child_names() == ["sub"]

    # A new name never reuses a removed sibling's index
    (project / "c.txt").write_text("c")
    pipeline.stage()
    assert root.child("c.txt").index == 3


def test_stage_restores_reappearing_entry(project, cache, funding_key, fake_chain, config):
    """A removed name that shows up again is restored with its old key path."""
    (project / "a.txt").write_text("hello")
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()
    (project / "a.txt").unlink()
    pipeline.stage()
    (project / "a.txt").write_text("hello again")
    pipeline.stage()

    node = cache.root.child("a.txt")
    assert not node.removed
    assert node.key_path == "m/0/0"


def test_chunk_threshold_boundary(project, cache, funding_key, fake_chain, config):
    """A file of exactly max_file_size stays whole; one byte more is chunked."""
    limit = config.payload.max_file_size
    (project / "exact.bin").write_bytes(b"\x01" * limit)
    (project / "over.bin").write_bytes(b"\x02" * (limit + 1))
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()
    pipeline.estimate()

    exact = cache.root.child("exact.bin")
    over = cache.root.child("over.bin")
    assert exact.kind is NodeKind.FILE
    assert exact.chunk_payloads == []
    assert over.kind is NodeKind.CHUNKED_FILE
    assert len(over.chunk_payloads) == 2
    assert [len(p.field(2)) for p in over.chunk_payloads] == [limit, 1]


# ── Estimate ─────────────────────────────────────────────────────────


def test_estimate_orders_chunk_entries_after_header(project, cache, funding_key, fake_chain, config):
    """Chunk parts are funded from the parent's key, right after their header."""
    _make_tree(project)
    pipeline = _pipeline(project, cache, funding_key, fake_chain, config)
    pipeline.stage()
    entries = pipeline.estimate()

    b = cache.root.child("sub").child("b.txt")
    assert [e.parent_key_path for e in entries] == ["m/0", "m/0", "m/0/1", "m/0/1", "m/0/1", "m/0/1"]
    assert b.vout_index == 2
    assert b.chunk_vouts == [3, 4, 5]
    assert [e.fee for e in entries[3:]] == b.chunk_fees
    assert all(isinstance(n.tx_id, PlaceholderId) for n in cache.root.walk())
    assert not b.payload.resolved


# ── Full push ────────────────────────────────────────────────────────


def test_push_end_to_end(project, cache, funding_key, fake_chain, config, tmp_path):
    """Pushing {a.txt, sub/b.txt} yields the expected metanet graph."""
    _make_tree(project)
    cache_path = tmp_path / "metanet.json"
    report = _pipeline(project, cache, funding_key, fake_chain, config, cache_path=cache_path).run()

    assert report.states == list(PushState)
    assert not report.aborted
    # funding (with root), a.txt, sub, 3 chunks, b.txt header
    assert len(report.broadcast) == 7
    assert report.broadcast == fake_chain.broadcast_order

    root_id = report.root_tx_id
    assert root_id == report.funding_tx_id
    root = fake_chain.node_by_tx(root_id)
    assert root.parent_tx_id is None
    assert root.name == "project"

    children = {r.name: r for r in fake_chain.children_by_parent_tx(root_id)}
    assert set(children) == {"a.txt", "sub"}
    assert children["a.txt"].protocol == B_PROTOCOL
    sub_id = children["sub"].tx_id

    (b_record,) = fake_chain.children_by_parent_tx(sub_id)
    assert b_record.name == "b.txt"
    assert b_record.protocol == BCAT_PROTOCOL

    header = decode_node(fake_chain.fetch_transaction(b_record.tx_id).data_script())
    assert header.parent_tx_id == sub_id
    assert len(header.chunk_ids) == 3
    # Chunks are broadcast immediately before their header, in order
    header_pos = fake_chain.broadcast_order.index(b_record.tx_id)
    assert header.chunk_ids == fake_chain.broadcast_order[header_pos - 3:header_pos]
    parts = [decode_chunk(fake_chain.fetch_transaction(c).data_script()) for c in header.chunk_ids]
    assert all(len(p) <= config.payload.max_file_size for p in parts)
    assert b"".join(parts) == BIG

    # Every node address is derived from its key path
    assert children["sub"].address == cache.master_key.derive("m/0/1").address

    saved = MetanetCache.load(cache_path)
    assert saved.root.tx_id == root_id
    assert saved.root.child("sub").tx_id == sub_id
    assert all(isinstance(n.tx_id, ConfirmedId) for n in cache.root.walk())


def test_clone_reproduces_pushed_tree(project, cache, funding_key, fake_chain, config, tmp_path):
    """Cloning the pushed root recreates byte-identical files."""
    _make_tree(project)
    report = _pipeline(project, cache, funding_key, fake_chain, config).run()

    out = tmp_path / "out"
    clone = ClonePipeline(fake_chain, fake_chain).clone(report.root_tx_id, out)

    assert clone.ok
    assert (out / "a.txt").read_bytes() == b"hello"
    assert (out / "sub" / "b.txt").read_bytes() == BIG
    assert len(clone.files) == 2
    assert len(clone.directories) == 2


def test_second_push_keeps_key_paths(project, cache, funding_key, fake_chain, config, tmp_path):
    """A re-push of an unchanged tree reuses key paths and re-links new txids."""
    _make_tree(project)
    cache_path = tmp_path / "metanet.json"
    first = _pipeline(project, cache, funding_key, fake_chain, config, cache_path=cache_path).run()

    reloaded = MetanetCache.load(cache_path)
    second = _pipeline(project, reloaded, funding_key, fake_chain, config, cache_path=cache_path).run()

    assert second.root_tx_id != first.root_tx_id
    saved = MetanetCache.load(cache_path)
    assert saved.root.child("sub").child("b.txt").key_path == "m/0/1/0"
    children = {r.name for r in fake_chain.children_by_parent_tx(second.root_tx_id)}
    assert children == {"a.txt", "sub"}


def test_removed_file_is_not_sent(project, cache, funding_key, fake_chain, config, tmp_path):
    """Files deleted locally are left out of the next push."""
    _make_tree(project)
    cache_path = tmp_path / "metanet.json"
    _pipeline(project, cache, funding_key, fake_chain, config, cache_path=cache_path).run()

    (project / "a.txt").unlink()
    reloaded = MetanetCache.load(cache_path)
    report = _pipeline(project, reloaded, funding_key, fake_chain, config, cache_path=cache_path).run()

    names = {r.name for r in fake_chain.children_by_parent_tx(report.root_tx_id)}
    assert names == {"sub"}
    assert MetanetCache.load(cache_path).root.child("a.txt").removed


def test_directory_replaced_by_file_drops_its_children(project, cache, funding_key, fake_chain, config, tmp_path):
    """When a directory becomes a file, its old entries are removed, not sent."""
    (project / "sub").mkdir()
    (project / "sub" / "x.txt").write_text("inside")
    cache_path = tmp_path / "metanet.json"
    _pipeline(project, cache, funding_key, fake_chain, config, cache_path=cache_path).run()

    shutil.rmtree(project / "sub")
    (project / "sub").write_text("now a file")
    reloaded = MetanetCache.load(cache_path)
    report = _pipeline(project, reloaded, funding_key, fake_chain, config, cache_path=cache_path).run()

    sub = reloaded.root.child("sub")
    assert sub.kind is NodeKind.FILE
    assert sub.child("x.txt").removed
    assert fake_chain.children_by_parent_tx(sub.tx_id) == []
    # funding and the sub file node only
    assert len(report.broadcast) == 2
    assert fake_chain.node_by_tx(sub.tx_id).protocol == B_PROTOCOL
    assert MetanetCache.load(cache_path).root.child("sub").child("x.txt").removed


@pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that accepts non-UTF-8 names")
def test_undecodable_name_fails_before_broadcast(project, cache, funding_key, fake_chain, config):
    (project / "a.txt").write_text("hello")
    (project / os.fsdecode(b"bad\xff.txt")).write_text("x")

    with pytest.raises(UnencodableName) as exc:
        _pipeline(project, cache, funding_key, fake_chain, config).run()
    assert exc.value.path.name == os.fsdecode(b"bad\xff.txt")
    assert fake_chain.broadcast_order == []


# ── Failure paths ────────────────────────────────────────────────────


def test_declined_confirmation_broadcasts_nothing(project, cache, funding_key, fake_chain, config):
    """Declining the fee prompt aborts before the funding broadcast."""
    _make_tree(project)
    seen = []

    def decline(summary):
        seen.append(summary)
        return False

    report = _pipeline(project, cache, funding_key, fake_chain, config, confirm=decline).run()

    assert report.aborted
    assert report.states[-1] is PushState.CONFIRM
    assert fake_chain.broadcast_order == []
    (summary,) = seen
    assert summary.transaction_count == 7
    assert summary.total == summary.node_fees + summary.funding_fee
    assert summary.funding_address == funding_key.address


def test_broadcast_rejection_leaves_cache_untouched(project, cache, funding_key, fake_chain, config, tmp_path):
    """A rejected node transaction halts the push before the cache is saved."""
    _make_tree(project)
    cache_path = tmp_path / "metanet.json"
    cache.save(cache_path)
    before = cache_path.read_text()
    fake_chain.reject_after = 2

    with pytest.raises(BroadcastRejected):
        _pipeline(project, cache, funding_key, fake_chain, config, cache_path=cache_path).run()

    assert cache_path.read_text() == before
    assert len(fake_chain.broadcast_order) == 2


def test_no_funds(project, cache, fake_chain, config):
    """A funding key without UTXOs fails during estimation."""
    from bsvpush_core.keys import PrivateKey

    (project / "a.txt").write_text("hello")
    broke = PrivateKey(12345)
    with pytest.raises(InsufficientFunds) as exc:
        _pipeline(project, cache, broke, fake_chain, config).run()
    assert broke.address in str(exc.value)
    assert fake_chain.broadcast_order == []


# ── Waiting ──────────────────────────────────────────────────────────


def test_waits_for_mempool_headroom(project, cache, funding_key, fake_chain, config):
    """The pipeline polls until unconfirmed outputs drop below the limit."""
    (project / "a.txt").write_text("hello")
    fake_chain.unconfirmed = 40
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        fake_chain.unconfirmed -= 10

    report = _pipeline(project, cache, funding_key, fake_chain, config, sleep=sleep).run()

    assert report.states[-1] is PushState.DONE
    assert sleeps == [config.network.poll_interval] * 2


def test_waits_for_funding_to_reach_index(project, cache, funding_key, fake_chain, config):
    """Nothing is sent until the index has seen the funding transaction."""
    (project / "a.txt").write_text("hello")
    fake_chain.unseen_polls = 3
    broadcasts_while_waiting = []

    def sleep(seconds):
        broadcasts_while_waiting.append(len(fake_chain.broadcast_order))

    report = _pipeline(project, cache, funding_key, fake_chain, config, sleep=sleep).run()

    assert report.states[-1] is PushState.DONE
    assert broadcasts_while_waiting == [1, 1, 1]
    assert len(report.broadcast) == 2


def test_waits_for_funding_outputs(project, cache, funding_key, fake_chain, config):
    """Each node polls for its own funding output, then spends exactly that vout."""
    (project / "a.txt").write_text("hello")
    (project / "c.txt").write_text("world")
    fake_chain.output_delay = 2
    sleeps = []

    report = _pipeline(project, cache, funding_key, fake_chain, config, sleep=sleeps.append).run()

    assert report.states[-1] is PushState.DONE
    # Both outputs pay the root address, so they surface together
    assert sleeps == [config.network.poll_interval] * 2
    funding_id = report.funding_tx_id
    spent = [
        (txin.utxo.tx_id, txin.utxo.output_index)
        for tx_id in report.broadcast[1:]
        for txin in fake_chain.transactions[tx_id].inputs
    ]
    assert spent == [(funding_id, 1), (funding_id, 2)]
    assert [cache.root.child(n).vout_index for n in ("a.txt", "c.txt")] == [0, 1]


def test_cancelled_wait_stops_push(project, cache, funding_key, fake_chain, config):
    """A set cancellation token stops the first wait after funding."""
    (project / "a.txt").write_text("hello")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PollCancelled):
        _pipeline(project, cache, funding_key, fake_chain, config, cancel=cancel).run()
    assert len(fake_chain.broadcast_order) == 1


def test_fake_chain_is_shared_type():
    """The fake satisfies both client protocols."""
    from bsvpush_core.clients import ChainClient, ChainIndexClient

    chain = FakeChain()
    assert isinstance(chain, ChainClient)
    assert isinstance(chain, ChainIndexClient)
