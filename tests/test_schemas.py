"""Tests for x402_facilitator.schemas."""
from __future__ import annotations

import pytest

from x402_facilitator.models import AssetKind, ValidationOutcome, ValidationStatus
from x402_facilitator.schemas import FacilitatorRequest, FacilitatorResponse, http_status_for, text_field


class TestFacilitatorRequest:
    def test_camel_case_fields(self):
        request = FacilitatorRequest.model_validate(
            {
                "chain": "solana",
                "signedTransactionB64": "AAAA",
                "expectedRecipient": "recipient",
                "expectedAmountAtomic": "100",
                "mint": "mint",
                "network": "devnet",
                "unrelated": True,
            }
        )

        assert request.signed_transaction_b64 == "AAAA"
        assert request.expected_amount_atomic == "100"
        assert request.network == "devnet"
        assert request.has_detached_signature is False

    def test_amount_kept_raw(self):
        """Should not coerce amounts so pipelines can reject floats."""
        request = FacilitatorRequest.model_validate({"expectedAmountWei": 1.5})

        assert request.expected_amount_atomic == 1.5

    def test_wrong_types_kept_raw(self):
        """Should accept wrongly typed fields so pipelines can answer payment required."""
        request = FacilitatorRequest.model_validate(
            {"chain": "solana", "expectedRecipient": 12345, "network": 5, "mint": ["x"]}
        )

        assert request.expected_recipient == 12345
        assert request.network == 5
        assert request.mint == ["x"]

    def test_detached_signature(self):
        request = FacilitatorRequest.model_validate({"submitterIdentity": "abc"})

        assert request.has_detached_signature is True


class TestFacilitatorResponse:
    def test_wire_form(self):
        outcome = ValidationOutcome(
            status=ValidationStatus.SUCCESS,
            settlement_id="0xabc",
            submitter_identity="0xsender",
            asset_label="ERC-20",
            asset_kind=AssetKind.TOKEN,
            trace=("one", "two"),
        )

        response = FacilitatorResponse.from_outcome(outcome)

        assert response.http_status == 200
        assert response.to_wire() == {
            "status": "success",
            "allowed": True,
            "settlementId": "0xabc",
            "submitterIdentity": "0xsender",
            "assetLabel": "ERC-20",
            "assetKind": "token",
            "trace": ["one", "two"],
        }

    def test_http_status(self):
        assert http_status_for(ValidationOutcome(status=ValidationStatus.PAYMENT_REQUIRED)) == 402
        assert http_status_for(ValidationOutcome(status=ValidationStatus.FAILURE)) == 502


class TestTextField:
    def test_absent(self):
        assert text_field(None, "mint") is None
        assert text_field("", "mint") is None

    def test_string(self):
        assert text_field("abc", "mint") == "abc"

    def test_wrong_type(self):
        with pytest.raises(ValueError, match="expectedRecipient must be a string, got int"):
            text_field(12345, "expectedRecipient")
