"""Chain and index clients."""

from bsvpush_core.clients.base import (
    ChainClient,
    ChainIndexClient,
    MetanetRecord,
    TransactionInfo,
    TxOutputInfo,
    Utxo,
)
from bsvpush_core.clients.bitquery import BitQueryIndexClient
from bsvpush_core.clients.whatsonchain import WhatsOnChainClient

__all__ = [
    "BitQueryIndexClient",
    "ChainClient",
    "ChainIndexClient",
    "MetanetRecord",
    "TransactionInfo",
    "TxOutputInfo",
    "Utxo",
    "WhatsOnChainClient",
]
