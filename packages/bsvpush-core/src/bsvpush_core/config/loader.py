"""YAML config loading with env var expansion."""

import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import BsvPushConfig

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def load_config(cli_path: str | None = None) -> BsvPushConfig:
    """Load config with resolution order: CLI > project-local > user-global > defaults.

    An explicit ``network.bitdb_key`` that expands to nothing raises
    ValueError naming the unset variable.
    """
    config_paths = [
        Path(cli_path) if cli_path else None,
        Path("./bsvpush.yaml"),
        Path.home() / ".bsvpush" / "config.yaml",
    ]

    for path in config_paths:
        if path and path.exists():
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f)
                if raw is None:
                    continue
                unset = _unset_env_vars(raw)
                if unset:
                    logger.warning("Unset variables in %s: %s", path, ", ".join(unset))
                expanded = _expand_env_vars(raw)
                _check_bitdb_key(raw, expanded, path)
                return BsvPushConfig(**expanded)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
            except ValidationError as e:
                raise ValueError(f"Invalid config in {path}: {e}") from e

    return BsvPushConfig()


def _check_bitdb_key(raw: object, expanded: object, path: Path) -> None:
    if not isinstance(raw, dict) or not isinstance(raw.get("network"), dict):
        return
    given = raw["network"].get("bitdb_key")
    if not isinstance(given, str) or not given:
        return
    if not expanded["network"]["bitdb_key"].strip():
        names = ", ".join(_unset_env_vars(given)) or "bitdb_key"
        raise ValueError(f"network.bitdb_key in {path} is empty (set {names})")


def _unset_env_vars(obj: object) -> list[str]:
    """Names referenced as ${VAR} anywhere in *obj* that are not set."""
    if isinstance(obj, str):
        return [name for name in _ENV_REF.findall(obj) if name not in os.environ]
    if isinstance(obj, dict):
        return [name for v in obj.values() for name in _unset_env_vars(v)]
    if isinstance(obj, list):
        return [name for v in obj for name in _unset_env_vars(v)]
    return []


def _expand_env_vars(obj: object) -> object:
    """Recursively expand ${VAR} references in strings."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


# Default YAML template for `bsvpush config init`
DEFAULT_CONFIG_TEMPLATE = """\
# bsvpush.yaml

# Fees
fees:
  fee_rate: 1.1                # satoshis per byte
  minimum_output_value: 546    # smallest fee assigned to a node transaction
  dust_limit: 546              # change below this is left to the miners

# Payload limits
payload:
  max_file_size: 90000         # larger files are split into Bcat chunks
  gzip_threshold: 1000         # files above this size are gzipped when it helps
  max_script_size: 100000

# Chain access
network:
  whatsonchain_url: "https://api.whatsonchain.com/v1/bsv/main"
  metanet_url: "https://metanaria.planaria.network"
  bitdb_url: "https://genesis.bitdb.network/q/1FnauZ9aUH2Bex6JzdcV4eNX7oLSSEbxtN"
  # bitdb_key: "${BITDB_KEY}"
  timeout: 30
  poll_interval: 1.0           # seconds between polls while waiting on the network
  ancestor_limit: 25           # unconfirmed chain depth the network will relay

# Logging
log_level: "info"              # debug | info | warn | error
"""
