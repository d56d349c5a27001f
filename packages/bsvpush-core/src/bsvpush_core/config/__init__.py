from .loader import load_config
from .models import (
    BsvPushConfig,
    FeeConfig,
    NetworkConfig,
    PayloadConfig,
)
from .project import (
    PackageInfo,
    ProjectPaths,
    init_project,
    load_funding_key,
    load_ignore_list,
    load_package_info,
    preflight,
)

__all__ = [
    "BsvPushConfig",
    "FeeConfig",
    "NetworkConfig",
    "PackageInfo",
    "PayloadConfig",
    "ProjectPaths",
    "init_project",
    "load_config",
    "load_funding_key",
    "load_ignore_list",
    "load_package_info",
    "preflight",
]
