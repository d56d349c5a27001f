"""Local project files: package info, ignore list, cache, and funding key."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from bsvpush_core.errors import ConfigurationMissing
from bsvpush_core.keys.bip32 import ExtendedKey
from bsvpush_core.keys.ecc import PrivateKey
from bsvpush_core.tree.cache import MetanetCache

logger = logging.getLogger(__name__)

# Always skipped: the cache directory holds the master private key
DEFAULT_IGNORE = frozenset({".bsvpush"})

DEFAULT_IGNORE_FILE = ".bsvpush\n.git\n"
FUNDING_DERIVATION_PATH = "m/0/0"


class Sponsor(BaseModel):
    to: str = ""


class PackageInfo(BaseModel):
    """Contents of ``bsvpush.json``; ``name`` becomes the root directory name."""

    name: str = ""
    owner: str = ""
    description: str = ""
    sponsor: Sponsor = Field(default_factory=Sponsor)
    version: str = ""
    hidden: bool = False


@dataclass(frozen=True)
class ProjectPaths:
    """Where bsvpush keeps its files for one project directory."""

    root: Path
    home: Path

    @classmethod
    def discover(cls, root: Path | None = None, home: Path | None = None) -> ProjectPaths:
        return cls(
            root=(root or Path.cwd()).resolve(),
            home=(home or Path.home()).resolve(),
        )

    @property
    def project_dir(self) -> Path:
        return self.root / ".bsvpush"

    @property
    def cache(self) -> Path:
        return self.project_dir / "metanet.json"

    @property
    def ignore_file(self) -> Path:
        return self.root / ".bsvignore"

    @property
    def package_info(self) -> Path:
        return self.root / "bsvpush.json"

    @property
    def home_dir(self) -> Path:
        return self.home / ".bsvpush"

    @property
    def funding_key(self) -> Path:
        return self.home_dir / "funding_key"

    def required(self) -> list[Path]:
        return [
            self.home_dir,
            self.funding_key,
            self.project_dir,
            self.cache,
            self.ignore_file,
            self.package_info,
        ]


def preflight(paths: ProjectPaths) -> None:
    """Raise ConfigurationMissing listing every required path that does not exist."""
    missing = [p for p in paths.required() if not p.exists()]
    if missing:
        raise ConfigurationMissing(missing)


def load_package_info(path: Path) -> PackageInfo:
    if not path.is_file():
        raise ConfigurationMissing([path])
    try:
        return PackageInfo.model_validate_json(path.read_text())
    except ValidationError as e:
        raise ValueError(f"Error loading {path}: {e}") from e


def load_ignore_list(path: Path) -> frozenset[str]:
    """Names to skip while staging. One exact name per line."""
    names = set(DEFAULT_IGNORE)
    if path.is_file():
        for line in path.read_text().splitlines():
            line = line.strip()
            if line:
                names.add(line)
    return frozenset(names)


def load_funding_key(path: Path) -> PrivateKey:
    """Read ``{"xprv": ..., "derivationPath": ...}`` and derive the funding key."""
    if not path.is_file():
        raise ConfigurationMissing([path])
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Error loading funding key from {path}: {e}") from e
    xprv = (data.get("xprv") or "").strip()
    if not xprv:
        raise ConfigurationMissing(
            [path], hint="Set 'xprv' to the extended private key that funds pushes."
        )
    master = ExtendedKey.from_xprv(xprv)
    return master.derive(data.get("derivationPath") or FUNDING_DERIVATION_PATH).private_key


def init_project(paths: ProjectPaths) -> list[Path]:
    """Create whichever bsvpush files are missing and return the ones created.

    Also appends ``.bsvpush`` to ``.gitignore``, since the cache holds the
    master private key.
    """
    created: list[Path] = []

    if not paths.ignore_file.exists():
        paths.ignore_file.write_text(DEFAULT_IGNORE_FILE)
        created.append(paths.ignore_file)

    if not paths.project_dir.exists():
        paths.project_dir.mkdir(parents=True)
        created.append(paths.project_dir)

    if not paths.cache.exists():
        MetanetCache.new().save(paths.cache)
        created.append(paths.cache)

    if not paths.package_info.exists():
        paths.package_info.write_text(PackageInfo().model_dump_json(indent=2))
        created.append(paths.package_info)

    if not paths.home_dir.exists():
        paths.home_dir.mkdir(parents=True)
        created.append(paths.home_dir)

    if not paths.funding_key.exists():
        template = {"xprv": "", "derivationPath": FUNDING_DERIVATION_PATH}
        paths.funding_key.write_text(json.dumps(template, indent=2))
        created.append(paths.funding_key)

    gitignore = paths.root / ".gitignore"
    existing = gitignore.read_text().splitlines() if gitignore.is_file() else []
    if ".bsvpush" not in (line.strip() for line in existing):
        prefix = "\n" if existing else ""
        with open(gitignore, "a") as f:
            f.write(f"{prefix}.bsvpush\n")

    for p in created:
        logger.info("Created %s", p)
    return created
