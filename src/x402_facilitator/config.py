"""
Configuration management for x402-facilitator.

Provides centralized configuration for:
- Solana and Base RPC endpoints per network tier
- The Solana fee-payer signing key
- Broadcast and confirmation parameters
- Logging configuration

Values are read from environment variables with prefix X402_FACILITATOR_
(or a .env file).
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "X402_FACILITATOR_"


class NetworkTier(str, Enum):
    """Network tier requested by a client."""
    MAINNET = "mainnet"
    DEVNET = "devnet"
    TESTNET = "testnet"

    @classmethod
    def parse(cls, value: "str | NetworkTier | None", default: "NetworkTier") -> "NetworkTier":
        """Parse a client-supplied tier, falling back to ``default`` when absent."""
        if value is None or value == "":
            return default
        if isinstance(value, NetworkTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported network: {value}") from None


class FacilitatorSettings(BaseSettings):
    """Main facilitator configuration."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Fee payer (Solana). The unprefixed name is what older deployments export.
    solana_fee_payer_private_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "solana_fee_payer_private_key",
            f"{ENV_PREFIX}SOLANA_FEE_PAYER_PRIVATE_KEY",
            "SOLANA_FEE_PAYER_PRIVATE_KEY",
        ),
    )

    # Solana RPC endpoints
    solana_rpc_mainnet: str = "https://api.mainnet-beta.solana.com"
    solana_rpc_devnet: str = "https://api.devnet.solana.com"
    solana_rpc_testnet: str = "https://api.testnet.solana.com"
    solana_default_network: NetworkTier = NetworkTier.MAINNET
    solana_commitment: str = "confirmed"
    solana_send_max_retries: int = 3
    solana_poll_interval_seconds: float = 0.5

    # Base RPC endpoints (devnet requests are served by the testnet endpoint)
    base_rpc_mainnet: str = "https://mainnet.base.org"
    base_rpc_testnet: str = "https://sepolia.base.org"
    base_default_network: NetworkTier = NetworkTier.TESTNET
    base_confirmations: int = 3
    base_poll_interval_seconds: float = 2.0
    base_confirmation_timeout_seconds: float = 300.0

    # Transport
    rpc_timeout_seconds: float = 30.0

    # Payment-required messaging
    wallet_help_url: str = "https://pypi.org/project/latinum-wallet-mcp"
    wallet_instructions_url: str = "https://latinum.ai/articles/latinum-wallet"

    # Logging
    log_level: str = "INFO"

    def solana_rpc_url(self, network: NetworkTier) -> str:
        """Get the Solana RPC URL for a network tier."""
        return {
            NetworkTier.MAINNET: self.solana_rpc_mainnet,
            NetworkTier.DEVNET: self.solana_rpc_devnet,
            NetworkTier.TESTNET: self.solana_rpc_testnet,
        }[network]

    def base_rpc_url(self, network: NetworkTier) -> str:
        """Get the Base RPC URL for a network tier."""
        if network == NetworkTier.MAINNET:
            return self.base_rpc_mainnet
        return self.base_rpc_testnet

    @property
    def has_fee_payer(self) -> bool:
        """Check if a Solana fee-payer key is configured."""
        key = self.solana_fee_payer_private_key
        return key is not None and bool(key.get_secret_value().strip())


# Global configuration instance
_global_settings: Optional[FacilitatorSettings] = None


def get_settings() -> FacilitatorSettings:
    """Get the global settings instance."""
    global _global_settings
    if _global_settings is None:
        _global_settings = FacilitatorSettings()
        logger.debug(
            "Loaded facilitator settings (fee payer configured=%s)",
            _global_settings.has_fee_payer,
        )
    return _global_settings


def set_settings(settings: Optional[FacilitatorSettings]) -> None:
    """Set (or reset, with None) the global settings instance."""
    global _global_settings
    _global_settings = settings
