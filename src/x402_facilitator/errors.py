"""Exception hierarchy for the facilitator.

Only exceptional conditions are raised (node unreachable, key missing,
confirmation window expired). Expected validation outcomes are returned
as values and never raised.
"""
from __future__ import annotations

from typing import Any, Optional


class FacilitatorError(Exception):
    """Base exception for all facilitator errors."""


class ConfigurationError(FacilitatorError):
    """Raised when configuration is missing or invalid."""


class FeePayerKeyError(ConfigurationError):
    """Raised when the fee-payer signing key cannot be loaded."""


class UnsupportedChainError(FacilitatorError):
    """Raised for a chain discriminator the facilitator does not serve."""

    def __init__(self, chain: Any):
        self.chain = chain
        super().__init__(f"Unsupported chain: {chain}")


class RPCError(FacilitatorError):
    """JSON-RPC error returned by a node."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class SolanaRPCError(RPCError):
    """Solana RPC error."""

    @classmethod
    def from_error_member(cls, error: dict[str, Any]) -> "SolanaRPCError":
        return cls(
            error.get("message", "Unknown RPC error"),
            code=error.get("code"),
            data=error.get("data"),
        )


class EVMRPCError(RPCError):
    """EVM (Base) RPC error."""

    @classmethod
    def from_error_member(cls, error: dict[str, Any]) -> "EVMRPCError":
        return cls(
            error.get("message", "Unknown RPC error"),
            code=error.get("code"),
            data=error.get("data"),
        )


class SigningError(FacilitatorError):
    """Raised when a transaction cannot be co-signed by the fee payer."""


class TransactionFailedError(FacilitatorError):
    """Transaction landed on chain but its execution failed."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class TransactionExpiredError(FacilitatorError):
    """Blockhash validity window passed before the transaction was confirmed."""

    def __init__(self, signature: str, last_valid_block_height: int):
        self.signature = signature
        self.last_valid_block_height = last_valid_block_height
        super().__init__(
            f"Signature {signature} has expired: block height exceeded "
            f"{last_valid_block_height}"
        )


class ConfirmationTimeoutError(FacilitatorError):
    """Required confirmations were not reached in time."""

    def __init__(self, tx_hash: str, confirmations: int, timeout_seconds: float):
        self.tx_hash = tx_hash
        self.confirmations = confirmations
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction {tx_hash} did not reach {confirmations} confirmations "
            f"within {timeout_seconds:.0f}s"
        )
