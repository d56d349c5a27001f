"""ChainClient backed by the WhatsOnChain REST API."""

from __future__ import annotations

import logging

import httpx

from bsvpush_core.clients.base import TransactionInfo, TxOutputInfo, Utxo
from bsvpush_core.errors import BroadcastRejected, NetworkError, TransactionNotFound
from bsvpush_core.keys.ecc import sha256d

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.whatsonchain.com/v1/bsv/main"
SATOSHIS_PER_COIN = 100_000_000


class WhatsOnChainClient:
    """Broadcast, transaction lookup and UTXO listing over httpx.

    Pass *transport* (e.g. ``httpx.MockTransport``) to run without the network.
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> WhatsOnChainClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(operation, e) from e
        if resp.status_code >= 500:
            raise NetworkError(operation, f"HTTP {resp.status_code}: {resp.text[:200]}")
        return resp

    @staticmethod
    def _json(operation: str, resp: httpx.Response):
        try:
            return resp.json()
        except ValueError as e:
            raise NetworkError(operation, f"invalid JSON response: {e}") from e

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------

    def broadcast(self, raw_hex: str) -> str:
        tx_id = sha256d(bytes.fromhex(raw_hex))[::-1].hex()
        resp = self._request("broadcast", "POST", "/tx/raw", json={"txhex": raw_hex})
        if resp.is_error:
            raise BroadcastRejected(tx_id, resp.text.strip() or f"HTTP {resp.status_code}")
        returned = resp.text.strip().strip('"')
        if returned and returned != tx_id:
            logger.warning("Broadcast returned %s, expected %s", returned, tx_id)
        logger.info("Broadcast %s", tx_id)
        return returned or tx_id

    def fetch_transaction(self, tx_id: str) -> TransactionInfo:
        operation = f"fetch transaction {tx_id}"
        resp = self._request(operation, "GET", f"/tx/hash/{tx_id}")
        if resp.status_code == 404:
            raise TransactionNotFound(tx_id)
        if resp.is_error:
            raise NetworkError(operation, f"HTTP {resp.status_code}")
        data = self._json(operation, resp)
        if not data:
            raise TransactionNotFound(tx_id)
        outputs = [
            TxOutputInfo(
                script_hex=out.get("scriptPubKey", {}).get("hex", ""),
                satoshis=round(float(out.get("value", 0)) * SATOSHIS_PER_COIN),
            )
            for out in data.get("vout", [])
        ]
        return TransactionInfo(
            tx_id=data.get("txid", tx_id),
            outputs=outputs,
            confirmations=data.get("confirmations"),
        )

    def unspent_outputs(self, address: str) -> list[Utxo]:
        operation = f"list unspent outputs of {address}"
        resp = self._request(operation, "GET", f"/address/{address}/unspent")
        if resp.status_code == 404:
            return []
        if resp.is_error:
            raise NetworkError(operation, f"HTTP {resp.status_code}")
        return [
            Utxo(
                tx_id=item["tx_hash"],
                output_index=item["tx_pos"],
                satoshis=item["value"],
                height=item.get("height", 0),
            )
            for item in self._json(operation, resp) or []
        ]
