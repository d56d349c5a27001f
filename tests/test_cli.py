"""Tests for the bsvpush CLI commands, against an in-memory ledger."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from bsvpush.cli import app
from bsvpush_core.keys import ExtendedKey

from conftest import FakeChain

runner = CliRunner()

FUNDING_SEED = b"\x07" * 32


def _flat(result) -> str:
    """Command output with rich line wrapping undone."""
    return " ".join(result.output.split())


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> tuple[Path, FakeChain]:
    """A project directory as cwd, a private home, and a fake ledger."""
    root = tmp_path / "project"
    root.mkdir()
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.chdir(root)
    monkeypatch.setattr("pathlib.Path.home", lambda: home)
    chain = FakeChain()
    monkeypatch.setattr("bsvpush.cli._make_clients", lambda cfg: (chain, chain))
    return root, chain


def _ready_to_push(root: Path, chain: FakeChain) -> None:
    """Run init, then fill in the funding key and package info."""
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output

    master = ExtendedKey.from_seed(FUNDING_SEED)
    home_key = Path.home() / ".bsvpush" / "funding_key"
    home_key.write_text(json.dumps({"xprv": master.xprv, "derivationPath": "m/0/0"}))
    chain.fund(master.derive("m/0/0").address, 5_000_000)

    (root / "bsvpush.json").write_text(json.dumps({"name": "demo"}))
    (root / ".bsvignore").write_text(".bsvpush\n.git\n.gitignore\n.bsvignore\nbsvpush.json\n")
    (root / "README.md").write_text("# demo\n")
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("print('hello')\n")


# ── bsvpush init ─────────────────────────────────────────────────────


def test_init_creates_project_files(workspace):
    root, _ = workspace
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert "Created" in result.output
    assert (root / ".bsvpush" / "metanet.json").is_file()
    assert (root / "bsvpush.json").is_file()
    assert (root / ".bsvignore").is_file()
    assert (Path.home() / ".bsvpush" / "funding_key").is_file()


def test_init_twice(workspace):
    runner.invoke(app, ["init"])
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert "Already initialised" in _flat(result)


# ── bsvpush push ─────────────────────────────────────────────────────


def test_push_before_init_lists_missing_files(workspace):
    _, chain = workspace
    result = runner.invoke(app, ["push", "--yes"])
    assert result.exit_code == 1
    assert "Error" in result.output
    assert "bsvpush init" in _flat(result)
    assert chain.broadcast_order == []


def test_push_without_xprv(workspace):
    runner.invoke(app, ["init"])
    result = runner.invoke(app, ["push", "--yes"])
    assert result.exit_code == 1
    assert "xprv" in result.output


def test_push_yes(workspace):
    root, chain = workspace
    _ready_to_push(root, chain)

    result = runner.invoke(app, ["push", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Pushed" in result.output
    # funding, README.md, src, src/main.py
    assert len(chain.broadcast_order) == 4
    assert f"?tx={chain.broadcast_order[0]}" in result.output.replace("\n", "")
    assert chain.closed
    saved = json.loads((root / ".bsvpush" / "metanet.json").read_text())
    assert saved["root"]["txId"] == chain.broadcast_order[0]


def test_push_declined(workspace):
    root, chain = workspace
    _ready_to_push(root, chain)

    result = runner.invoke(app, ["push"], input="n\n")

    assert result.exit_code == 0
    assert "Push Fees" in result.output
    assert "cancelled" in result.output
    assert chain.broadcast_order == []


def test_push_rejected(workspace):
    root, chain = workspace
    _ready_to_push(root, chain)
    chain.reject_after = 1

    result = runner.invoke(app, ["push", "--yes"])

    assert result.exit_code == 1
    assert "Error" in result.output


# ── bsvpush clone ────────────────────────────────────────────────────


def test_clone_after_push(workspace, tmp_path: Path):
    root, chain = workspace
    _ready_to_push(root, chain)
    runner.invoke(app, ["push", "--yes"])
    root_tx = chain.broadcast_order[0]

    out = tmp_path / "copy"
    result = runner.invoke(app, ["clone", root_tx, str(out)])

    assert result.exit_code == 0, result.output
    assert (out / "README.md").read_text() == "# demo\n"
    assert (out / "src" / "main.py").read_text() == "print('hello')\n"
    assert not (out / ".bsvpush").exists()


def test_clone_unknown_tx(workspace):
    result = runner.invoke(app, ["clone", "ff" * 32])
    assert result.exit_code == 1
    assert "Error" in result.output


# ── bsvpush config ───────────────────────────────────────────────────


def test_config_show(workspace):
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert "fee_rate" in result.output
    assert "ancestor_limit" in result.output


def test_config_init(workspace):
    root, _ = workspace
    result = runner.invoke(app, ["config", "init"])
    assert result.exit_code == 0
    data = yaml.safe_load((root / "bsvpush.yaml").read_text())
    assert data["fees"]["fee_rate"] == 1.1

    again = runner.invoke(app, ["config", "init"])
    assert again.exit_code == 1
    assert "already exists" in _flat(again)


def test_bad_config_file(workspace):
    root, _ = workspace
    (root / "bsvpush.yaml").write_text("fees:\n  fee_rate: nope\n")
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 1
    assert "Invalid config" in _flat(result)
