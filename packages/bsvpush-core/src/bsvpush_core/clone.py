"""Rebuild a directory tree from its metanet transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from bsvpush_core.clients.base import ChainClient, ChainIndexClient, MetanetRecord
from bsvpush_core.errors import FormatError
from bsvpush_core.protocol.codec import decode_chunk, decode_node, digest_matches
from bsvpush_core.protocol.constants import B_PROTOCOL, BCAT_PROTOCOL, FILE_PROTOCOLS

logger = logging.getLogger(__name__)


@dataclass
class CloneReport:
    files: list[Path] = field(default_factory=list)
    directories: list[Path] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (tx_id, reason)

    @property
    def ok(self) -> bool:
        return not self.failed


def safe_name(name: str) -> str:
    """Reject names that would escape the directory they are written into."""
    if name in ("", ".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise FormatError(f"Refusing to write unsafe name {name!r}")
    return name


class ClonePipeline:
    def __init__(self, chain: ChainClient, index: ChainIndexClient) -> None:
        self.chain = chain
        self.index = index

    def clone(self, tx_id: str, destination: Path | None = None) -> CloneReport:
        """Materialize the node *tx_id* and everything below it.

        The node itself maps to *destination*, which defaults to a
        directory named after the node in the working directory.
        """
        record = self.index.node_by_tx(tx_id)
        if destination is None:
            destination = Path.cwd() / safe_name(record.name)
        report = CloneReport()
        logger.info("Cloning %s into %s", tx_id, destination)
        self._clone(record, Path(destination), report)
        logger.info(
            "Cloned %d files, %d directories, %d failed",
            len(report.files), len(report.directories), len(report.failed),
        )
        return report

    def _clone(self, record: MetanetRecord, path: Path, report: CloneReport) -> None:
        if record.protocol in FILE_PROTOCOLS:
            try:
                data = self.fetch_file(record.tx_id)
            except FormatError as e:
                logger.warning("Skipping %s (%s): %s", path, record.tx_id, e)
                report.failed.append((record.tx_id, str(e)))
                return
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            logger.debug("Wrote %s (%d bytes)", path, len(data))
            report.files.append(path)
            return

        path.mkdir(parents=True, exist_ok=True)
        report.directories.append(path)
        for child in sorted(self.index.children_by_parent_tx(record.tx_id), key=lambda r: r.name):
            try:
                child_path = path / safe_name(child.name)
            except FormatError as e:
                logger.warning("Skipping child %s of %s: %s", child.tx_id, path, e)
                report.failed.append((child.tx_id, str(e)))
                continue
            self._clone(child, child_path, report)

    def fetch_file(self, tx_id: str) -> bytes:
        """Fetch and decode the content of a B:// or Bcat:// node."""
        node = decode_node(self.chain.fetch_transaction(tx_id).data_script())
        if node.protocol == B_PROTOCOL:
            return node.data or b""
        if node.protocol != BCAT_PROTOCOL:
            raise FormatError(f"Transaction {tx_id} is not a file node")

        parts = [
            decode_chunk(self.chain.fetch_transaction(chunk_id).data_script())
            for chunk_id in node.chunk_ids
        ]
        data = b"".join(parts)
        if node.digest is not None and not digest_matches(data, node.hash_algorithm, node.digest):
            raise FormatError(f"{node.hash_algorithm} digest mismatch for {node.name!r}")
        return data
