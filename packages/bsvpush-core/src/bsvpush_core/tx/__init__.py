"""Transactions and scripts."""

from bsvpush_core.tx.script import (
    OP_RETURN,
    data_script,
    encode_push,
    p2pkh_hash160,
    p2pkh_script,
    parse_pushes,
)
from bsvpush_core.tx.transaction import (
    SIGHASH_ALL_FORKID,
    Transaction,
    TxInput,
    TxOutput,
    UnspentOutput,
)

__all__ = [
    "OP_RETURN",
    "SIGHASH_ALL_FORKID",
    "Transaction",
    "TxInput",
    "TxOutput",
    "UnspentOutput",
    "data_script",
    "encode_push",
    "p2pkh_hash160",
    "p2pkh_script",
    "parse_pushes",
]
