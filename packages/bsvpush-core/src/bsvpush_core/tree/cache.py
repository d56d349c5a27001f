"""The local metanet cache: master key plus the persisted node tree."""

from __future__ import annotations

import json
from pathlib import Path

from bsvpush_core.errors import ConfigurationMissing
from bsvpush_core.keys.bip32 import ExtendedKey
from bsvpush_core.tree.node import ROOT_KEY_PATH, MetanetNode


class MetanetCache:
    """Contents of ``.bsvpush/metanet.json``.

    This is the only persisted state and the authority for key path and
    index allocation, so it must survive load, mutate, save unchanged
    apart from the mutations.
    """

    def __init__(self, master_key: ExtendedKey, root: MetanetNode) -> None:
        self.master_key = master_key
        self.root = root

    @classmethod
    def new(cls, name: str = "") -> MetanetCache:
        """A cache with a freshly generated master key and an empty root."""
        return cls(ExtendedKey.generate(), MetanetNode(key_path=ROOT_KEY_PATH, name=name))

    def to_json(self) -> str:
        data = {
            "masterKey": self.master_key.xprv,
            "root": self.root.to_dict(),
        }
        return json.dumps(data, indent=2)

    @classmethod
    def from_json(cls, data: str) -> MetanetCache:
        obj = json.loads(data)
        return cls(
            master_key=ExtendedKey.from_xprv(obj["masterKey"]),
            root=MetanetNode.from_dict(obj["root"]),
        )

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json())

    @classmethod
    def load(cls, path: Path) -> MetanetCache:
        if not path.is_file():
            raise ConfigurationMissing([path])
        try:
            return cls.from_json(path.read_text())
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise ValueError(f"Error loading master key from {path}: {e}") from e
