"""Per-node fee estimation against a scratch transaction."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from bsvpush_core.config.models import FeeConfig, PayloadConfig
from bsvpush_core.errors import PayloadTooLarge
from bsvpush_core.protocol.codec import Payload
from bsvpush_core.protocol.constants import DUMMY_TX_ID
from bsvpush_core.tree.node import PlaceholderId
from bsvpush_core.tx.script import OP_CHECKSIG, OP_DUP, OP_EQUALVERIFY, OP_HASH160
from bsvpush_core.tx.transaction import Transaction, UnspentOutput

logger = logging.getLogger(__name__)

DUMMY_SATOSHIS = 5_000_000_000

# Any P2PKH locking script will do; only its shape matters for sizing
_DUMMY_LOCK = bytes([OP_DUP, OP_HASH160, 20]) + b"\x00" * 20 + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
DUMMY_UTXO = UnspentOutput(DUMMY_TX_ID, 0, DUMMY_SATOSHIS, _DUMMY_LOCK)


@dataclass(frozen=True)
class Estimate:
    fee: int
    placeholder_id: PlaceholderId
    size: int


class FeeEstimator:
    """Prices one payload as the single data output of a one-input transaction.

    Node transactions have exactly that shape, so the estimate is also
    the amount the funding transaction reserves for the node.
    """

    def __init__(self, fees: FeeConfig, payload: PayloadConfig) -> None:
        self.fees = fees
        self.payload = payload

    def estimate(self, payload: Payload) -> Estimate:
        script = payload.script()
        if len(script) > self.payload.max_script_size:
            raise PayloadTooLarge(len(script), self.payload.max_script_size)

        scratch = Transaction().add_input(DUMMY_UTXO).add_output(0, script)
        size = scratch.estimated_size()
        fee = max(math.ceil(size * self.fees.fee_rate), self.fees.minimum_output_value)
        placeholder = PlaceholderId(scratch.txid)
        logger.debug("Estimated %d bytes, fee %d, placeholder %s", size, fee, placeholder)
        return Estimate(fee=fee, placeholder_id=placeholder, size=size)
