"""Service-held Solana fee-payer key.

The fee payer co-signs client transactions so that network fees are charged
to the service instead of the submitter.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config import FacilitatorSettings, get_settings
from ..errors import FeePayerKeyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeePayer:
    """Immutable fee-payer identity."""
    keypair: Keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())


def load_fee_payer(secret: str) -> FeePayer:
    """Decode a base58 64-byte secret key into a fee payer."""
    secret = secret.strip()
    if not secret:
        raise FeePayerKeyError("Missing Solana fee-payer private key")
    try:
        raw = base58.b58decode(secret)
    except ValueError as e:
        raise FeePayerKeyError(f"Fee-payer key is not valid base58: {e}") from e
    if len(raw) != 64:
        raise FeePayerKeyError(
            f"Fee-payer key must decode to 64 bytes, got {len(raw)}"
        )
    try:
        keypair = Keypair.from_bytes(raw)
    except Exception as e:
        raise FeePayerKeyError(f"Fee-payer key is not a valid ed25519 keypair: {e}") from e
    return FeePayer(keypair=keypair)


class FeePayerKeyProvider:
    """Loads the fee-payer key once and hands out the same value afterwards."""

    def __init__(self, fee_payer: Optional[FeePayer] = None, error: Optional[str] = None):
        self._fee_payer = fee_payer
        self._error = error

    @classmethod
    def from_settings(cls, settings: Optional[FacilitatorSettings] = None) -> "FeePayerKeyProvider":
        """Parse the configured key. A missing or bad key is reported on first use."""
        settings = settings or get_settings()
        secret = settings.solana_fee_payer_private_key
        if secret is None:
            return cls(error="Missing SOLANA_FEE_PAYER_PRIVATE_KEY in environment")
        try:
            fee_payer = load_fee_payer(secret.get_secret_value())
        except FeePayerKeyError as e:
            logger.error("Fee-payer key could not be loaded: %s", e)
            return cls(error=str(e))
        logger.info("Loaded Solana fee payer %s", fee_payer.address)
        return cls(fee_payer=fee_payer)

    @property
    def available(self) -> bool:
        return self._fee_payer is not None

    def get(self) -> FeePayer:
        """Return the fee payer or raise FeePayerKeyError."""
        if self._fee_payer is None:
            raise FeePayerKeyError(self._error or "Solana fee payer is not configured")
        return self._fee_payer
