"""Request and response schemas for the facilitator entry point."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .models import AssetKind, ValidationOutcome, ValidationStatus

HTTP_STATUS_BY_OUTCOME = {
    ValidationStatus.SUCCESS: 200,
    ValidationStatus.PAYMENT_REQUIRED: 402,
    ValidationStatus.FAILURE: 502,
}


class FacilitatorRequest(BaseModel):
    """A validation request as submitted by a resource server.

    Fields are kept raw so the chain pipelines can reject wrong types, floats
    or malformed strings with a payment-required answer instead of a parse
    error. Only a body that is not an object fails here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chain: Any = None

    # Chain A: base64 wire bytes. Chain B: hex raw transaction.
    signed_transaction_b64: Any = Field(default=None, alias="signedTransactionB64")
    signed_transaction_hex: Any = Field(default=None, alias="signedTransactionHex")
    signed_transaction: Any = Field(default=None, alias="signedTransaction")

    # Chain A alternative form: message plus detached submitter signature.
    submitter_identity: Any = Field(default=None, alias="submitterIdentity")
    message_b64: Any = Field(default=None, alias="messageB64")
    submitter_signature: Any = Field(default=None, alias="submitterSignature")

    expected_recipient: Any = Field(default=None, alias="expectedRecipient")
    expected_amount_atomic: Any = Field(
        default=None,
        validation_alias=AliasChoices(
            "expectedAmountAtomic", "expectedAmountWei", "expected_amount_atomic"
        ),
    )
    mint: Any = None
    network: Any = None

    @property
    def has_detached_signature(self) -> bool:
        return any(
            value is not None and value != ""
            for value in (self.submitter_identity, self.message_b64, self.submitter_signature)
        )


def text_field(value: Any, name: str) -> Optional[str]:
    """A string request field, or None when absent.

    Raises:
        ValueError: if the field is present but not a string
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    return value


class FacilitatorResponse(BaseModel):
    """Wire form of a ``ValidationOutcome``."""

    model_config = ConfigDict(populate_by_name=True)

    status: ValidationStatus
    allowed: bool
    settlement_id: Optional[str] = Field(default=None, alias="settlementId")
    error: Optional[str] = None
    submitter_identity: Optional[str] = Field(default=None, alias="submitterIdentity")
    asset_label: Optional[str] = Field(default=None, alias="assetLabel")
    asset_kind: Optional[AssetKind] = Field(default=None, alias="assetKind")
    trace: list[str] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: ValidationOutcome) -> "FacilitatorResponse":
        return cls(
            status=outcome.status,
            allowed=outcome.allowed,
            settlement_id=outcome.settlement_id,
            error=outcome.error,
            submitter_identity=outcome.submitter_identity,
            asset_label=outcome.asset_label,
            asset_kind=outcome.asset_kind,
            trace=list(outcome.trace),
        )

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_OUTCOME[self.status]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def http_status_for(outcome: ValidationOutcome) -> int:
    """HTTP status a transport layer should answer with."""
    return HTTP_STATUS_BY_OUTCOME[outcome.status]
