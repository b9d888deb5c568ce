"""
Retryable tracker package.

Cross-chain message tracker for Arbitrum bridge transactions.
"""

from .config import MonitoringConfig, TrackerConfig
from .models import L1ToL2MessageStatus, L2ToL1MessageStatus, LookupResult, ReceiptState
from .networks import Network, NetworkRegistry
from .tracker import MessageTracker, QuerySupervisor

__all__ = [
    "MessageTracker",
    "QuerySupervisor",
    "TrackerConfig",
    "MonitoringConfig",
    "Network",
    "NetworkRegistry",
    "LookupResult",
    "ReceiptState",
    "L1ToL2MessageStatus",
    "L2ToL1MessageStatus",
]
__version__ = "0.1.0"
