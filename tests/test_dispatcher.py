"""Tests for x402_facilitator.dispatcher."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from x402_facilitator.dispatcher import X402Facilitator
from x402_facilitator.errors import FeePayerKeyError, UnsupportedChainError
from x402_facilitator.evm.client import BaseConfig, BaseRPCClient
from x402_facilitator.evm.facilitator import BaseX402Facilitator
from x402_facilitator.models import ValidationOutcome, ValidationStatus
from x402_facilitator.solana.client import SolanaClient, SolanaConfig
from x402_facilitator.solana.facilitator import SolanaX402Facilitator
from x402_facilitator.solana.fee_payer import FeePayerKeyProvider


@pytest.fixture
def solana():
    pipeline = MagicMock(spec=SolanaX402Facilitator)
    pipeline.validate = AsyncMock(
        return_value=ValidationOutcome(status=ValidationStatus.SUCCESS, settlement_id="sig", trace=("a",))
    )
    pipeline.close = AsyncMock()
    return pipeline


@pytest.fixture
def base():
    pipeline = MagicMock(spec=BaseX402Facilitator)
    pipeline.validate = AsyncMock(
        return_value=ValidationOutcome(status=ValidationStatus.PAYMENT_REQUIRED, error="pay")
    )
    pipeline.close = AsyncMock()
    return pipeline


@pytest.fixture
def facilitator(settings, solana, base):
    return X402Facilitator(settings=settings, solana=solana, base=base)


class TestDispatch:
    """Tests for chain routing."""

    @pytest.mark.asyncio
    async def test_routes_solana(self, facilitator, solana, base):
        outcome = await facilitator.validate({"chain": "solana"})

        assert outcome.settlement_id == "sig"
        solana.validate.assert_awaited_once()
        base.validate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_routes_base_case_insensitive(self, facilitator, solana, base):
        outcome = await facilitator.validate({"chain": "BASE"})

        assert outcome.status == ValidationStatus.PAYMENT_REQUIRED
        base.validate.assert_awaited_once()
        solana.validate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_chain(self, facilitator, solana, base):
        outcome = await facilitator.validate({"chain": "dogecoin"})

        assert outcome.status == ValidationStatus.FAILURE
        assert "Unsupported chain" in outcome.error
        solana.validate.assert_not_awaited()
        base.validate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_chain(self, facilitator):
        outcome = await facilitator.validate({"expectedRecipient": "x"})

        assert outcome.status == ValidationStatus.FAILURE
        assert "Missing chain" in outcome.error

    @pytest.mark.asyncio
    async def test_handle_maps_http_status(self, facilitator):
        status, body = await facilitator.handle({"chain": "solana"})

        assert status == 200
        assert body == {"status": "success", "allowed": True, "settlementId": "sig", "trace": ["a"]}

        status, body = await facilitator.handle({"chain": "base"})
        assert status == 402
        assert body["allowed"] is False


class TestFeePayerAddress:
    """Tests for fee_payer_address."""

    def test_solana(self, settings, fee_payers, fee_payer_keypair):
        facilitator = X402Facilitator(
            settings=settings,
            solana=SolanaX402Facilitator(fee_payers=fee_payers, settings=settings),
        )

        assert facilitator.fee_payer_address("solana") == str(fee_payer_keypair.pubkey())

    def test_base_has_no_fee_payer(self, facilitator):
        with pytest.raises(UnsupportedChainError):
            facilitator.fee_payer_address("base")

    def test_unknown_chain(self, facilitator):
        with pytest.raises(UnsupportedChainError):
            facilitator.fee_payer_address("tron")

    def test_missing_key(self, settings):
        facilitator = X402Facilitator(
            settings=settings,
            solana=SolanaX402Facilitator(fee_payers=FeePayerKeyProvider(error="no key"), settings=settings),
        )

        with pytest.raises(FeePayerKeyError):
            facilitator.fee_payer_address("solana")


@pytest.fixture
def pipelines(settings, fee_payers):
    solana_client = AsyncMock(spec=SolanaClient)
    solana_client.config = SolanaConfig(rpc_url="http://solana.test")
    base_client = AsyncMock(spec=BaseRPCClient)
    base_client.config = BaseConfig(rpc_url="http://base.test")
    facilitator = X402Facilitator(
        settings=settings,
        solana=SolanaX402Facilitator(
            fee_payers=fee_payers, settings=settings, client_factory=lambda network: solana_client
        ),
        base=BaseX402Facilitator(settings=settings, client_factory=lambda network: base_client),
    )
    return facilitator, solana_client, base_client


class TestWrongFieldTypes:
    """Wrongly typed fields are input errors once the chain is known."""

    @pytest.mark.asyncio
    async def test_solana_numeric_recipient(self, pipelines):
        facilitator, solana_client, _ = pipelines

        outcome = await facilitator.validate(
            {"chain": "solana", "expectedRecipient": 12345, "expectedAmountAtomic": "1000"}
        )

        assert outcome.status == ValidationStatus.PAYMENT_REQUIRED
        assert "Payment required" in outcome.error
        assert "Invalid recipient address: 12345" in outcome.trace
        solana_client.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_solana_numeric_transaction(self, pipelines, recipient):
        facilitator, solana_client, _ = pipelines

        outcome = await facilitator.validate(
            {
                "chain": "solana",
                "expectedRecipient": recipient,
                "expectedAmountAtomic": "1000",
                "signedTransactionB64": 42,
            }
        )

        assert outcome.status == ValidationStatus.PAYMENT_REQUIRED
        assert "signedTransactionB64 must be a string, got int" in outcome.trace
        solana_client.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_base_numeric_network(self, pipelines):
        facilitator, _, base_client = pipelines

        outcome = await facilitator.validate(
            {
                "chain": "base",
                "network": 5,
                "expectedRecipient": "0x1234567890123456789012345678901234567890",
                "expectedAmountWei": "1000",
                "signedTransactionHex": "0x00",
            }
        )

        assert outcome.status == ValidationStatus.PAYMENT_REQUIRED
        assert "Unsupported network: 5" in outcome.error
        base_client.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_base_list_transaction(self, pipelines):
        facilitator, _, base_client = pipelines

        outcome = await facilitator.validate(
            {
                "chain": "base",
                "expectedRecipient": "0x1234567890123456789012345678901234567890",
                "expectedAmountWei": "1000",
                "signedTransactionHex": ["0x00"],
            }
        )

        assert outcome.status == ValidationStatus.PAYMENT_REQUIRED
        base_client.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_body_not_an_object(self, pipelines):
        facilitator, _, _ = pipelines

        outcome = await facilitator.validate(["solana"])

        assert outcome.status == ValidationStatus.FAILURE
        assert outcome.error.startswith("Invalid request")

    @pytest.mark.asyncio
    async def test_numeric_chain_is_unsupported(self, pipelines):
        facilitator, _, _ = pipelines

        outcome = await facilitator.validate({"chain": 7})

        assert outcome.status == ValidationStatus.FAILURE
        assert "Unsupported chain: 7" in outcome.error
