"""Domain types shared by both settlement pipelines."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from .config import NetworkTier


class Chain(str, Enum):
    """Chains the facilitator settles on."""
    SOLANA = "solana"
    BASE = "base"

    @classmethod
    def parse(cls, value: object) -> "Chain":
        from .errors import UnsupportedChainError

        if isinstance(value, Chain):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedChainError(value) from None


class ValidationStatus(str, Enum):
    """Tri-state outcome of a validation request."""
    SUCCESS = "success"
    PAYMENT_REQUIRED = "payment_required"
    FAILURE = "failure"


class AssetKind(str, Enum):
    """Which kind of asset a settled transfer moved."""
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True, slots=True)
class PaymentRequirement:
    """What a transaction must transfer to unlock the resource."""
    expected_recipient: str
    expected_amount_atomic: int  # smallest unit (lamports, wei, token base units)
    asset_identifier: Optional[str] = None  # None = chain's native asset
    network: NetworkTier = NetworkTier.MAINNET

    @property
    def is_native(self) -> bool:
        return self.asset_identifier is None


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Externally visible result of a validation request."""
    status: ValidationStatus
    settlement_id: Optional[str] = None
    error: Optional[str] = None
    submitter_identity: Optional[str] = None
    asset_label: Optional[str] = None
    asset_kind: Optional[AssetKind] = None
    trace: tuple[str, ...] = field(default_factory=tuple)

    @property
    def allowed(self) -> bool:
        return self.status == ValidationStatus.SUCCESS

    def with_trace(self, trace: tuple[str, ...]) -> "ValidationOutcome":
        return replace(self, trace=trace)


def parse_atomic_amount(value: object) -> int:
    """
    Parse an atomic amount given as an int or a decimal-digit string.

    Floats and booleans are rejected so a fractional amount can never be
    compared against on-chain integers.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be an integer, not a boolean")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValueError(f"amount is not a valid non-negative integer: {value!r}")
        amount = int(text)
    else:
        raise ValueError(f"amount must be an integer or integer string, got {type(value).__name__}")
    if amount < 0:
        raise ValueError("amount must be non-negative")
    return amount
