"""Base (EVM) settlement pipeline."""
from .client import BaseConfig, BaseRPCClient, get_base_config
from .facilitator import BaseX402Facilitator
from .matcher import TRANSFER_EVENT_SIGNATURE, match_settled_payment

__all__ = [
    "BaseConfig",
    "BaseRPCClient",
    "get_base_config",
    "BaseX402Facilitator",
    "TRANSFER_EVENT_SIGNATURE",
    "match_settled_payment",
]
