"""
Pytest configuration for x402-facilitator tests.
"""
from __future__ import annotations

import pytest
from solders.keypair import Keypair

from x402_facilitator.config import FacilitatorSettings, set_settings
from x402_facilitator.solana.fee_payer import FeePayer, FeePayerKeyProvider



@pytest.fixture(autouse=True)
def reset_settings():
    """Drop the cached global settings between tests."""
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture
def settings() -> FacilitatorSettings:
    """Settings isolated from the environment and .env files."""
    return FacilitatorSettings(
        _env_file=None,
        solana_rpc_mainnet="http://solana-mainnet.test",
        solana_rpc_devnet="http://solana-devnet.test",
        base_rpc_mainnet="http://base-mainnet.test",
        base_rpc_testnet="http://base-testnet.test",
        solana_poll_interval_seconds=0,
        base_poll_interval_seconds=0,
    )


@pytest.fixture
def fee_payer_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def fee_payers(fee_payer_keypair) -> FeePayerKeyProvider:
    return FeePayerKeyProvider(fee_payer=FeePayer(fee_payer_keypair))


@pytest.fixture
def user_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def recipient() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def sample_eth_address():
    """Valid Ethereum address for testing."""
    return "0x1234567890123456789012345678901234567890"


@pytest.fixture
def sample_tx_hash():
    """Valid transaction hash for testing."""
    return "0x" + "a" * 64
