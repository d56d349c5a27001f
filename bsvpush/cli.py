"""CLI entry point for bsvpush."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from bsvpush_core.clients import BitQueryIndexClient, ChainClient, ChainIndexClient, WhatsOnChainClient
from bsvpush_core.clone import ClonePipeline, CloneReport
from bsvpush_core.config import (
    BsvPushConfig,
    ProjectPaths,
    init_project,
    load_config,
    load_funding_key,
    load_ignore_list,
    load_package_info,
    preflight,
)
from bsvpush_core.config.loader import DEFAULT_CONFIG_TEMPLATE
from bsvpush_core.errors import BsvPushError
from bsvpush_core.push import FeeSummary, PushPipeline
from bsvpush_core.tree import MetanetCache, MetanetNode

app = typer.Typer(
    name="bsvpush",
    help="Push a directory tree onto the BSV ledger as metanet transactions, and clone it back.",
)

config_app = typer.Typer(help="Manage bsvpush configuration.")
app.add_typer(config_app, name="config")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Global state
_config: BsvPushConfig | None = None


def _get_config() -> BsvPushConfig:
    if _config is None:
        return load_config()
    return _config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS.get(level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to bsvpush.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    _setup_logging(_config.log_level)


def _make_clients(cfg: BsvPushConfig) -> tuple[ChainClient, ChainIndexClient]:
    net = cfg.network
    chain = WhatsOnChainClient(net.whatsonchain_url, timeout=net.timeout)
    index = BitQueryIndexClient(net.metanet_url, net.bitdb_url, net.bitdb_key, timeout=net.timeout)
    return chain, index


def _display_fees(summary: FeeSummary) -> None:
    table = Table(title="Push Fees")
    table.add_column("Item", style="cyan")
    table.add_column("Satoshis", justify="right")
    table.add_row(f"Node transactions ({summary.transaction_count - 1})", str(summary.node_fees))
    table.add_row("Funding transaction", str(summary.funding_fee))
    table.add_row("[bold]Total[/bold]", f"[bold]{summary.total}[/bold]")
    rprint(table)
    rprint(f"[dim]Funding address:[/dim] {summary.funding_address}")


def _confirm(summary: FeeSummary) -> bool:
    _display_fees(summary)
    return typer.confirm("Continue?", default=True)


def _display_fees_and_accept(summary: FeeSummary) -> bool:
    _display_fees(summary)
    return True


def _display_tree(root: MetanetNode) -> None:
    def add(branch: Tree, node: MetanetNode) -> None:
        for child in sorted(node.unremoved_children(), key=lambda n: n.name):
            label = f"[green]{child.name}[/green] [dim]{child.key_path} {child.tx_id}[/dim]"
            add(branch.add(label), child)

    tree = Tree(f"[bold]{root.name or '/'}[/bold] [dim]{root.key_path} {root.tx_id}[/dim]")
    add(tree, root)
    rprint(tree)


def _display_clone_report(report: CloneReport, destination: Path | None) -> None:
    rprint(
        f"[green]Cloned[/green] {len(report.files)} files and "
        f"{len(report.directories)} directories"
        + (f" into {destination}" if destination else "")
    )
    if report.failed:
        table = Table(title=f"Failed ({len(report.failed)})")
        table.add_column("Transaction", style="cyan")
        table.add_column("Reason", style="red")
        for tx_id, reason in report.failed:
            table.add_row(tx_id, reason)
        rprint(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init() -> None:
    """Create the bsvpush files for the current directory."""
    paths = ProjectPaths.discover()
    created = init_project(paths)
    if not created:
        rprint("[yellow]Already initialised.[/yellow]")
        return
    for p in created:
        rprint(f"[green]Created[/green] {p}")
    rprint(
        f"\nSet [bold]xprv[/bold] in {paths.funding_key} and fill in "
        f"{paths.package_info}, then run [bold]bsvpush push[/bold]."
    )


@app.command()
def push(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the fee confirmation")] = False,
) -> None:
    """Push the current directory to the ledger."""
    cfg = _get_config()
    paths = ProjectPaths.discover()
    try:
        preflight(paths)
        package = load_package_info(paths.package_info)
        cache = MetanetCache.load(paths.cache)
        funding_key = load_funding_key(paths.funding_key)
        ignore = load_ignore_list(paths.ignore_file)
    except (BsvPushError, ValueError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    chain, index = _make_clients(cfg)
    try:
        pipeline = PushPipeline(
            paths.root,
            cache,
            funding_key,
            chain,
            index,
            cfg,
            cache_path=paths.cache,
            ignore=ignore,
            root_name=package.name or None,
            confirm=_display_fees_and_accept if yes else _confirm,
        )
        report = pipeline.run()
    except BsvPushError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        chain.close()
        index.close()

    if report.aborted:
        rprint("[yellow]Push cancelled, nothing was broadcast.[/yellow]")
        return

    _display_tree(cache.root)
    rprint(
        f"\n[green]Pushed[/green] {len(report.broadcast)} transactions. "
        f"View at: {cfg.network.viewer_url}?tx={report.root_tx_id}"
    )


@app.command()
def clone(
    tx_id: Annotated[str, typer.Argument(help="Transaction id of the root node")],
    destination: Annotated[
        Path | None, typer.Argument(help="Directory to clone into (default: ./<name>)")
    ] = None,
) -> None:
    """Rebuild a pushed directory tree from the ledger."""
    cfg = _get_config()
    chain, index = _make_clients(cfg)
    try:
        report = ClonePipeline(chain, index).clone(tx_id, destination)
    except BsvPushError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        chain.close()
        index.close()

    _display_clone_report(report, destination)
    if report.failed:
        raise typer.Exit(1)


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default bsvpush.yaml in current directory."""
    target = Path("bsvpush.yaml")
    if target.exists() and not force:
        rprint("[yellow]bsvpush.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")
