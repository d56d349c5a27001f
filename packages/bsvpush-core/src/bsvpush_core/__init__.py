"""bsvpush core - mirror a directory tree onto the BSV ledger as metanet transactions."""

from bsvpush_core.clients import BitQueryIndexClient, ChainClient, ChainIndexClient, WhatsOnChainClient
from bsvpush_core.clone import ClonePipeline, CloneReport
from bsvpush_core.config import BsvPushConfig, load_config
from bsvpush_core.fees import Estimate, FeeEstimator
from bsvpush_core.funding import FundingEntry, FundingTransaction, FundingTxBuilder
from bsvpush_core.push import FeeSummary, PushPipeline, PushReport, PushState
from bsvpush_core.tree import MetanetCache, MetanetNode

__version__ = "0.1.0"

__all__ = [
    "BitQueryIndexClient",
    "BsvPushConfig",
    "ChainClient",
    "ChainIndexClient",
    "ClonePipeline",
    "CloneReport",
    "Estimate",
    "FeeEstimator",
    "FeeSummary",
    "FundingEntry",
    "FundingTransaction",
    "FundingTxBuilder",
    "MetanetCache",
    "MetanetNode",
    "PushPipeline",
    "PushReport",
    "PushState",
    "WhatsOnChainClient",
    "load_config",
]
