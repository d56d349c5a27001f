"""Metanet node tree mirroring the local filesystem."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bsvpush_core.protocol.codec import Payload

ROOT_KEY_PATH = "m/0"


class PlaceholderId(str):
    """Scratch transaction id computed during fee estimation."""

    __slots__ = ()


class ConfirmedId(str):
    """Id of a transaction that was broadcast (or loaded from the cache)."""

    __slots__ = ()


TxRef = PlaceholderId | ConfirmedId


class NodeKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"
    CHUNKED_FILE = "chunked_file"


@dataclass
class MetanetNode:
    """A directory or file tracked on the metanet.

    Only ``key_path``, ``index``, ``name``, ``tx_id``, ``removed`` and
    ``children`` are persisted. Everything else is per-run state filled in
    while staging and estimating. Children are keyed by name and hold no
    reference back to their parent; the key path alone encodes ancestry.
    """

    key_path: str = ROOT_KEY_PATH
    index: int = 0
    name: str = ""
    tx_id: TxRef | None = None
    removed: bool = False
    children: dict[str, MetanetNode] = field(default_factory=dict)

    # Transient, never persisted
    source: Path | None = field(default=None, repr=False, compare=False)
    kind: NodeKind = field(default=NodeKind.DIRECTORY, repr=False, compare=False)
    fee: int = field(default=0, repr=False, compare=False)
    payload: Payload | None = field(default=None, repr=False, compare=False)
    vout_index: int | None = field(default=None, repr=False, compare=False)
    chunk_payloads: list[Payload] = field(default_factory=list, repr=False, compare=False)
    chunk_fees: list[int] = field(default_factory=list, repr=False, compare=False)
    chunk_vouts: list[int] = field(default_factory=list, repr=False, compare=False)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    def child_exists(self, name: str) -> bool:
        return name in self.children

    def child(self, name: str) -> MetanetNode | None:
        return self.children.get(name)

    def next_index(self) -> int:
        """One past the highest index ever handed out among the children.

        Removed children still count, so an index is never reused.
        """
        if not self.children:
            return 0
        return max(c.index for c in self.children.values()) + 1

    def create_child(self, name: str) -> MetanetNode:
        return self.add_child(MetanetNode(name=name))

    def add_child(self, node: MetanetNode) -> MetanetNode:
        """Attach a pre-built node under its name, allocating index and key path."""
        if node.name in self.children:
            raise ValueError(f"{self.key_path} already has a child named {node.name!r}")
        node.index = self.next_index()
        node.key_path = f"{self.key_path}/{node.index}"
        self.children[node.name] = node
        return node

    def remove(self) -> None:
        self.removed = True

    def restore(self) -> None:
        self.removed = False

    def unremoved_child_names(self) -> list[str]:
        return [name for name, c in self.children.items() if not c.removed]

    def unremoved_children(self) -> list[MetanetNode]:
        return [self.children[name] for name in self.unremoved_child_names()]

    def walk(self) -> Iterator[MetanetNode]:
        """Pre-order traversal over this node and its unremoved descendants."""
        yield self
        for c in self.unremoved_children():
            yield from c.walk()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyPath": self.key_path,
            "txId": self.tx_id,
            "index": self.index,
            "name": self.name,
            "removed": self.removed,
            "children": {name: c.to_dict() for name, c in self.children.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetanetNode:
        tx_id = data.get("txId")
        return cls(
            key_path=data["keyPath"],
            index=data.get("index", 0),
            name=data.get("name") or "",
            tx_id=ConfirmedId(tx_id) if tx_id else None,
            removed=data.get("removed", False),
            children={
                name: cls.from_dict(child)
                for name, child in data.get("children", {}).items()
            },
        )
