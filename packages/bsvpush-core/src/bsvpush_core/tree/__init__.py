"""Node tree and local cache."""

from bsvpush_core.tree.cache import MetanetCache
from bsvpush_core.tree.node import (
    ROOT_KEY_PATH,
    ConfirmedId,
    MetanetNode,
    NodeKind,
    PlaceholderId,
    TxRef,
)

__all__ = [
    "ROOT_KEY_PATH",
    "ConfirmedId",
    "MetanetCache",
    "MetanetNode",
    "NodeKind",
    "PlaceholderId",
    "TxRef",
]
