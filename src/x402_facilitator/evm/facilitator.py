"""x402 payment facilitator for Base.

The client signs and pays for its own transaction; the facilitator only
broadcasts it, waits for confirmations and checks that the confirmed
transaction paid the requirement, either as a native value transfer or as
an ERC-20 ``Transfer`` event.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx
from eth_account import Account
from web3 import Web3

from ..config import FacilitatorSettings, NetworkTier, get_settings
from ..errors import ConfirmationTimeoutError, EVMRPCError
from ..logging_utils import OperationType, SettlementTrace, operation_context
from ..models import (
    AssetKind,
    Chain,
    PaymentRequirement,
    ValidationOutcome,
    ValidationStatus,
    parse_atomic_amount,
)
from ..schemas import FacilitatorRequest, text_field
from .client import BaseRPCClient, get_base_config, hex_to_int
from .matcher import match_settled_payment

logger = logging.getLogger(__name__)

NATIVE_LABEL = "ETH"
TOKEN_LABEL = "ERC-20"

# Node rejections that mean the raw bytes themselves are unusable
MALFORMED_MARKERS = ("rlp", "invalid transaction", "decode", "invalid sender", "typed transaction too short")

ClientFactory = Callable[[NetworkTier], BaseRPCClient]


class BaseX402Facilitator:
    """Facilitates x402 payments on Base."""

    def __init__(
        self,
        settings: Optional[FacilitatorSettings] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client_factory = client_factory or (
            lambda network: BaseRPCClient(get_base_config(network, self.settings))
        )
        self._clients: dict[NetworkTier, BaseRPCClient] = {}

    def client_for(self, network: NetworkTier) -> BaseRPCClient:
        if network not in self._clients:
            self._clients[network] = self._client_factory(network)
        return self._clients[network]

    def _remediation(self, recipient: Optional[str], amount: Optional[int]) -> str:
        what = f"{amount} wei" if amount is not None else "the requested amount"
        return (
            f"Payment required: {what} to {recipient or 'the expected recipient'}. "
            "Please sign a transaction with your wallet. "
            f"If you don't have a wallet, see {self.settings.wallet_help_url} "
            f"(instructions: {self.settings.wallet_instructions_url})."
        )

    async def validate(self, request: FacilitatorRequest) -> ValidationOutcome:
        """Run the Base settlement pipeline for one request. Never raises."""
        trace = SettlementTrace(chain=Chain.BASE.value)
        try:
            outcome = await self._validate(request, trace)
        except Exception as e:
            logger.exception("Unexpected error while validating Base payment")
            trace.record(f"Unexpected error: {e}")
            outcome = ValidationOutcome(
                status=ValidationStatus.FAILURE,
                error=f"Internal error: {e}",
            )
        return outcome.with_trace(trace.notes)

    async def _validate(self, request: FacilitatorRequest, trace: SettlementTrace) -> ValidationOutcome:
        recipient = request.expected_recipient
        amount: Optional[int] = None
        problems: list[str] = []

        try:
            network = NetworkTier.parse(request.network, self.settings.base_default_network)
        except ValueError as e:
            problems.append(str(e))
            network = self.settings.base_default_network

        if not isinstance(recipient, str) or not Web3.is_address(recipient):
            problems.append(f"Invalid recipient address: {recipient!r}")
        try:
            amount = parse_atomic_amount(request.expected_amount_atomic)
        except ValueError as e:
            problems.append(f"Invalid amount: {e}")
        token = request.mint if request.mint not in (None, "") else None
        if token is not None and (not isinstance(token, str) or not Web3.is_address(token)):
            problems.append(f"Invalid token contract address: {token!r}")

        raw_tx = ""
        try:
            raw_tx = (
                text_field(request.signed_transaction_hex, "signedTransactionHex")
                or text_field(request.signed_transaction, "signedTransaction")
                or ""
            ).strip()
        except ValueError as e:
            problems.append(str(e))
        else:
            if not raw_tx:
                problems.append("Missing signed transaction")

        if problems:
            for problem in problems:
                trace.record(problem)
            return ValidationOutcome(
                status=ValidationStatus.PAYMENT_REQUIRED,
                error=f"{problems[0]}. {self._remediation(recipient, amount)}",
            )

        requirement = PaymentRequirement(
            expected_recipient=recipient,
            expected_amount_atomic=amount,
            asset_identifier=token,
            network=network,
        )
        return await self.settle(requirement, raw_tx, self.client_for(network), trace)

    async def settle(
        self,
        requirement: PaymentRequirement,
        raw_tx: str,
        client: BaseRPCClient,
        trace: SettlementTrace,
    ) -> ValidationOutcome:
        """Decode, broadcast, confirm and match a raw signed transaction."""
        trace.record(f"Network: {requirement.network.value}")

        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx
        try:
            sender = Account.recover_transaction(raw_tx)
        except Exception as e:
            trace.record(f"Could not decode transaction: {e}")
            return ValidationOutcome(
                status=ValidationStatus.PAYMENT_REQUIRED,
                error=(
                    "Invalid transaction format. "
                    f"{self._remediation(requirement.expected_recipient, requirement.expected_amount_atomic)}"
                ),
            )
        trace.record(f"Sender: {sender}")

        # Broadcast
        try:
            async with operation_context(OperationType.TRANSACTION_SUBMIT, Chain.BASE.value):
                tx_hash = await client.send_raw_transaction(raw_tx)
        except EVMRPCError as e:
            trace.record(f"Broadcast rejected: {e}")
            text = str(e).lower()
            if any(marker in text for marker in MALFORMED_MARKERS):
                return ValidationOutcome(
                    status=ValidationStatus.PAYMENT_REQUIRED,
                    error=(
                        "Invalid transaction format. "
                        f"{self._remediation(requirement.expected_recipient, requirement.expected_amount_atomic)}"
                    ),
                    submitter_identity=sender,
                )
            if "nonce" in text:
                error = f"Transaction nonce already used: {e}"
            else:
                error = f"Transaction rejected by node: {e}"
            return ValidationOutcome(
                status=ValidationStatus.FAILURE, error=error, submitter_identity=sender
            )
        except httpx.HTTPError as e:
            trace.record(f"Broadcast failed: {e}")
            return ValidationOutcome(
                status=ValidationStatus.FAILURE,
                error=f"Network connection error: {e}",
                submitter_identity=sender,
            )
        trace.record(f"Transaction submitted. Hash: {tx_hash}")

        def outcome(status: ValidationStatus, **fields) -> ValidationOutcome:
            return ValidationOutcome(
                status=status, settlement_id=tx_hash, submitter_identity=sender, **fields
            )

        # Confirm
        confirmations = client.config.confirmations
        try:
            async with operation_context(
                OperationType.TRANSACTION_CONFIRM, Chain.BASE.value, tx_hash=tx_hash
            ):
                receipt = await client.wait_for_confirmations(tx_hash, confirmations)
        except ConfirmationTimeoutError as e:
            trace.record(str(e))
            return outcome(ValidationStatus.FAILURE, error=f"Confirmation timed out: {e}")
        except Exception as e:
            trace.record(f"Confirmation failed: {e}")
            return outcome(ValidationStatus.FAILURE, error=f"Transaction confirmation failed: {e}")
        trace.record(f"Transaction reached {confirmations} confirmations")

        try:
            succeeded = hex_to_int(receipt.get("status")) == 1
        except ValueError:
            succeeded = False
        if not succeeded:
            trace.record(f"Receipt status: {receipt.get('status')}")
            return outcome(ValidationStatus.FAILURE, error="Transaction failed")

        # Match
        try:
            async with operation_context(
                OperationType.TRANSACTION_FETCH, Chain.BASE.value, tx_hash=tx_hash
            ):
                tx = await client.get_transaction(tx_hash)
        except Exception as e:
            trace.record(f"Could not fetch transaction: {e}")
            return outcome(ValidationStatus.FAILURE, error=f"Could not fetch transaction: {e}")
        if tx is None:
            trace.record("Transaction not found after confirmation")
            return outcome(ValidationStatus.FAILURE, error="Could not fetch transaction")

        kind = match_settled_payment(tx, receipt, requirement)
        if kind is None:
            trace.record("Transfer mismatch or invalid format")
            return outcome(
                ValidationStatus.PAYMENT_REQUIRED,
                error=(
                    "Transfer mismatch or invalid format. "
                    f"{self._remediation(requirement.expected_recipient, requirement.expected_amount_atomic)}"
                ),
            )

        trace.record(f"Matched {kind.value} transfer")
        return outcome(
            ValidationStatus.SUCCESS,
            asset_label=NATIVE_LABEL if kind == AssetKind.NATIVE else TOKEN_LABEL,
            asset_kind=kind,
        )

    async def close(self) -> None:
        """Close all RPC clients."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
