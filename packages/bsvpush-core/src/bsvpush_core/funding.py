"""The single funding transaction that pre-allocates value to every node."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bsvpush_core.clients.base import ChainClient
from bsvpush_core.config.models import FeeConfig
from bsvpush_core.errors import InsufficientFunds
from bsvpush_core.keys.bip32 import KeyChain
from bsvpush_core.keys.ecc import PrivateKey
from bsvpush_core.protocol.codec import Payload
from bsvpush_core.tx.script import p2pkh_script
from bsvpush_core.tx.transaction import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundingEntry:
    """Pay *fee* to the address derived for *parent_key_path*."""

    parent_key_path: str
    fee: int


@dataclass
class FundingTransaction:
    tx: Transaction
    fee: int
    vout_offset: int
    node_fees: int

    @property
    def total(self) -> int:
        return self.fee + self.node_fees

    def vout(self, position: int) -> int:
        """Output index of the funding entry at *position*."""
        return self.vout_offset + position


class FundingTxBuilder:
    """Spends every UTXO of the funding key into one output per node.

    Layout: the root payload (if any) at output 0, then one P2PKH output
    per entry in the order given, then change back to the funding key.
    """

    def __init__(
        self,
        chain: ChainClient,
        keychain: KeyChain,
        funding_key: PrivateKey,
        fees: FeeConfig,
    ) -> None:
        self.chain = chain
        self.keychain = keychain
        self.funding_key = funding_key
        self.fees = fees

    def build(
        self,
        entries: list[FundingEntry],
        root_payload: Payload | None = None,
    ) -> FundingTransaction:
        address = self.funding_key.address
        utxos = self.chain.unspent_outputs(address)
        if not utxos:
            raise InsufficientFunds(address)

        tx = Transaction()
        for utxo in utxos:
            tx.add_input(utxo.to_unspent(address))

        vout_offset = 0
        if root_payload is not None:
            tx.add_output(0, root_payload.signable_script())
            vout_offset = 1

        for entry in entries:
            tx.add_output(entry.fee, p2pkh_script(self.keychain.address(entry.parent_key_path)))
        node_fees = sum(e.fee for e in entries)

        # Size the transaction with the change output in place, then fill it in
        tx.add_output(0, p2pkh_script(address))
        fee = tx.estimated_fee(self.fees.fee_rate)
        change = tx.input_total - node_fees - fee
        if change < 0:
            raise InsufficientFunds(address, needed=node_fees + fee, available=tx.input_total)
        if change < self.fees.dust_limit:
            logger.debug("Dropping %d satoshi change output below dust", change)
            tx.outputs.pop()
        else:
            tx.outputs[-1].satoshis = change

        tx.sign(self.funding_key)
        logger.info(
            "Funding transaction %s: %d outputs, %d satoshis to nodes, fee %d",
            tx.txid, len(tx.outputs), node_fees, tx.fee,
        )
        return FundingTransaction(tx=tx, fee=tx.fee, vout_offset=vout_offset, node_fees=node_fees)
