"""x402 payment facilitator for Solana and Base.

Validates client-signed payment transactions against a payment requirement,
settles them on chain and reports a tri-state outcome.
"""

from .config import FacilitatorSettings, NetworkTier, get_settings, set_settings
from .dispatcher import X402Facilitator
from .errors import (
    ConfigurationError,
    FacilitatorError,
    FeePayerKeyError,
    UnsupportedChainError,
)
from .models import (
    AssetKind,
    Chain,
    PaymentRequirement,
    ValidationOutcome,
    ValidationStatus,
)
from .schemas import FacilitatorRequest, FacilitatorResponse, http_status_for

__version__ = "0.1.0"

__all__ = [
    "X402Facilitator",
    "FacilitatorSettings",
    "NetworkTier",
    "get_settings",
    "set_settings",
    "FacilitatorError",
    "ConfigurationError",
    "FeePayerKeyError",
    "UnsupportedChainError",
    "AssetKind",
    "Chain",
    "PaymentRequirement",
    "ValidationOutcome",
    "ValidationStatus",
    "FacilitatorRequest",
    "FacilitatorResponse",
    "http_status_for",
]
