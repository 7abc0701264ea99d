"""Tests for the x402-facilitator CLI."""
from __future__ import annotations

import json

import base58
import pytest
from click.testing import CliRunner

from x402_facilitator import cli as cli_module
from x402_facilitator.cli import cli
from x402_facilitator.models import ValidationOutcome, ValidationStatus


class FakeFacilitator:
    """Stands in for X402Facilitator without touching the network."""

    def __init__(self, outcome: ValidationOutcome):
        self.outcome = outcome
        self.bodies = []

    async def validate(self, body):
        self.bodies.append(body)
        return self.outcome

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


@pytest.fixture
def runner():
    return CliRunner()


def _install(monkeypatch, outcome: ValidationOutcome) -> FakeFacilitator:
    fake = FakeFacilitator(outcome)
    monkeypatch.setattr(cli_module, "X402Facilitator", lambda: fake)
    return fake


class TestValidateCommand:
    def test_success_json(self, runner, monkeypatch):
        fake = _install(
            monkeypatch,
            ValidationOutcome(status=ValidationStatus.SUCCESS, settlement_id="sig", trace=("done",)),
        )

        result = runner.invoke(cli, ["validate", "--json", "-"], input=json.dumps({"chain": "solana"}))

        assert result.exit_code == 0
        assert json.loads(result.output)["settlementId"] == "sig"
        assert fake.bodies == [{"chain": "solana"}]

    def test_payment_required_exit_code(self, runner, monkeypatch):
        _install(
            monkeypatch,
            ValidationOutcome(
                status=ValidationStatus.PAYMENT_REQUIRED, error="Payment required", trace=("step",)
            ),
        )

        result = runner.invoke(cli, ["validate", "-"], input=json.dumps({"chain": "base"}))

        assert result.exit_code == 2
        assert "payment_required" in result.output
        assert "step" in result.output

    def test_failure_exit_code(self, runner, monkeypatch):
        _install(monkeypatch, ValidationOutcome(status=ValidationStatus.FAILURE, error="boom"))

        result = runner.invoke(cli, ["validate", "-"], input="{}")

        assert result.exit_code == 1

    def test_rejects_invalid_json(self, runner, monkeypatch):
        _install(monkeypatch, ValidationOutcome(status=ValidationStatus.SUCCESS))

        result = runner.invoke(cli, ["validate", "-"], input="not json")

        assert result.exit_code != 0
        assert "not valid JSON" in result.output


class TestPayerAddressCommand:
    def test_prints_solana_address(self, runner, monkeypatch, fee_payer_keypair):
        monkeypatch.setenv(
            "SOLANA_FEE_PAYER_PRIVATE_KEY", base58.b58encode(bytes(fee_payer_keypair)).decode()
        )

        result = runner.invoke(cli, ["payer-address"])

        assert result.exit_code == 0
        assert str(fee_payer_keypair.pubkey()) in result.output

    def test_base_is_unsupported(self, runner):
        result = runner.invoke(cli, ["payer-address", "--chain", "base"])

        assert result.exit_code == 1
        assert "Unsupported chain" in result.output
