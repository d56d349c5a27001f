"""ChainIndexClient backed by Planaria metanet and BitDB query endpoints.

Both endpoints take a JSON query, base64-encoded into the URL path, and
require an API key in the ``key`` header.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

import httpx

from bsvpush_core.clients.base import MetanetRecord
from bsvpush_core.errors import NetworkError, TransactionNotFound

logger = logging.getLogger(__name__)

_NODE_PROJECTION = {"node": 1, "out": 1, "out.s4": 1, "out.s8": 1, "parent": 1}


def encode_query(query: dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(query).encode()).decode()


class BitQueryIndexClient:
    def __init__(
        self,
        metanet_url: str,
        bitdb_url: str,
        key: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._metanet_url = metanet_url.rstrip("/")
        self._bitdb_url = bitdb_url.rstrip("/")
        self._client = httpx.Client(
            headers={"key": key},
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> BitQueryIndexClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _query(self, operation: str, base: str, query: dict[str, Any]) -> dict[str, Any]:
        url = f"{base}/{encode_query(query)}"
        try:
            resp = self._client.get(url)
        except httpx.TransportError as e:
            raise NetworkError(operation, e) from e
        if resp.is_error:
            raise NetworkError(operation, f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as e:
            raise NetworkError(operation, f"invalid JSON response: {e}") from e

    def _metanet(self, operation: str, find: dict[str, str]) -> list[dict[str, Any]]:
        query = {"q": {"find": find, "project": _NODE_PROJECTION}}
        return self._query(operation, f"{self._metanet_url}/q", query).get("metanet", [])

    def _bitdb(self, operation: str, q: dict[str, Any]) -> dict[str, Any]:
        return self._query(operation, self._bitdb_url, {"v": 3, "q": q})

    @staticmethod
    def _record(item: dict[str, Any], tx_id: str | None = None) -> MetanetRecord:
        node = item.get("node", {})
        outputs = item.get("out") or [{}]
        protocol = outputs[0].get("s4") or ""
        parent = item.get("parent") or {}
        return MetanetRecord(
            tx_id=tx_id or node.get("tx", ""),
            address=node.get("a", ""),
            parent_tx_id=parent.get("tx"),
            protocol=protocol,
            name=outputs[0].get("s8") or protocol,
        )

    # ------------------------------------------------------------------
    # ChainIndexClient
    # ------------------------------------------------------------------

    def node_by_tx(self, tx_id: str) -> MetanetRecord:
        items = self._metanet(f"look up node {tx_id}", {"node.tx": tx_id})
        if not items:
            raise TransactionNotFound(tx_id)
        return self._record(items[0], tx_id)

    def children_by_parent_tx(self, tx_id: str) -> list[MetanetRecord]:
        items = self._metanet(f"list children of {tx_id}", {"parent.tx": tx_id})
        return [self._record(item) for item in items]

    def transaction_seen(self, tx_id: str) -> bool:
        data = self._bitdb(
            f"look up transaction {tx_id}",
            {"find": {"tx.h": tx_id}, "project": {"tx.h": 1}},
        )
        return bool(data.get("u", []) or data.get("c", []))

    def unconfirmed_output_count(self, address: str) -> int:
        data = self._bitdb(
            f"count unconfirmed outputs from {address}",
            {
                "db": ["u"],
                "find": {"in.e.a": address},
                "project": {"tx.h": 1, "out.i": 1},
            },
        )
        return sum(len(tx.get("out", [])) for tx in data.get("u", []))
