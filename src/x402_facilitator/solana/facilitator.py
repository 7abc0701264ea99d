"""x402 payment facilitator for Solana.

Validates a client-signed payment transaction against a payment
requirement, co-signs it with the service fee payer, broadcasts it, waits for
confirmation and re-checks the settled transaction before granting access.

Stages run strictly in order; the first stage that decides the request
returns its outcome and nothing after it runs:

    inputs -> metadata -> decode -> pre-match -> co-sign -> broadcast
           -> confirm -> post-match
"""
from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import FacilitatorSettings, NetworkTier, get_settings
from ..errors import FeePayerKeyError
from ..logging_utils import OperationType, SettlementTrace, mask_address, operation_context
from ..models import (
    Chain,
    PaymentRequirement,
    ValidationOutcome,
    ValidationStatus,
    parse_atomic_amount,
)
from ..schemas import FacilitatorRequest, text_field
from .client import SolanaClient, get_solana_config
from .decoder import DecodedTransaction, DecodeFailure, decode_transaction, reconstruct_transaction
from .fee_payer import FeePayerKeyProvider
from .labels import TokenLabelResolver, format_amount
from .transfer import (
    expected_destination,
    find_matching_transfer,
    find_settled_transfer,
    is_valid_address,
    iter_program_ids,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[NetworkTier], SolanaClient]


@dataclass(frozen=True)
class SolanaPaymentPayload:
    """Client-supplied transaction, in either accepted form."""
    signed_transaction: Optional[bytes] = None
    submitter_identity: Optional[str] = None
    message: Optional[bytes] = None
    submitter_signature: Optional[str] = None

    @property
    def is_detached(self) -> bool:
        return self.message is not None


def _b64(value: str) -> bytes:
    return base64.b64decode(value.strip(), validate=True)


class SolanaX402Facilitator:
    """Facilitates x402 payments on Solana.

    One instance serves many concurrent requests. RPC clients are created
    per network tier on first use and shared afterwards.
    """

    def __init__(
        self,
        fee_payers: Optional[FeePayerKeyProvider] = None,
        settings: Optional[FacilitatorSettings] = None,
        labels: Optional[TokenLabelResolver] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.fee_payers = fee_payers or FeePayerKeyProvider.from_settings(self.settings)
        self.labels = labels or TokenLabelResolver()
        self._client_factory = client_factory or (
            lambda network: SolanaClient(get_solana_config(network, self.settings))
        )
        self._clients: dict[NetworkTier, SolanaClient] = {}

    def client_for(self, network: NetworkTier) -> SolanaClient:
        if network not in self._clients:
            self._clients[network] = self._client_factory(network)
        return self._clients[network]

    def fee_payer_address(self) -> str:
        """Base58 fee-payer address clients must name as their fee payer."""
        return self.fee_payers.get().address

    async def validate(self, request: FacilitatorRequest) -> ValidationOutcome:
        """Run the settlement pipeline for one request.

        Never raises: anything unexpected becomes a failure outcome. The
        outcome always carries this request's trace.
        """
        trace = SettlementTrace(chain=Chain.SOLANA.value)
        try:
            outcome = await self._validate(request, trace)
        except FeePayerKeyError as e:
            trace.record(f"Fee payer unavailable: {e}")
            outcome = ValidationOutcome(status=ValidationStatus.FAILURE, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error while validating Solana payment")
            trace.record(f"Unexpected error: {e}")
            outcome = ValidationOutcome(
                status=ValidationStatus.FAILURE,
                error=f"Internal error: {e}",
            )
        return outcome.with_trace(trace.notes)

    async def _validate(self, request: FacilitatorRequest, trace: SettlementTrace) -> ValidationOutcome:
        problems: list[str] = []

        try:
            network = NetworkTier.parse(request.network, self.settings.solana_default_network)
        except ValueError as e:
            problems.append(str(e))
            network = self.settings.solana_default_network

        recipient = request.expected_recipient
        if not is_valid_address(recipient):
            problems.append(f"Invalid recipient address: {recipient!r}")

        amount: Optional[int] = None
        try:
            amount = parse_atomic_amount(request.expected_amount_atomic)
        except ValueError as e:
            problems.append(f"Invalid amount: {e}")

        mint = request.mint if request.mint not in (None, "") else None
        if mint is not None and not is_valid_address(mint):
            problems.append(f"Invalid mint address: {mint!r}")

        payload: Optional[SolanaPaymentPayload] = None
        try:
            payload = self._payload(request)
        except ValueError as e:
            problems.append(str(e))

        client = self.client_for(network)

        if problems or payload is None or amount is None:
            trace.record("Missing or invalid parameters")
            for problem in problems:
                trace.record(problem)
            return await self._payment_required(client, trace, recipient, amount, mint)

        requirement = PaymentRequirement(
            expected_recipient=recipient,
            expected_amount_atomic=amount,
            asset_identifier=mint,
            network=network,
        )
        return await self.settle(requirement, payload, client, trace)

    def _payload(self, request: FacilitatorRequest) -> SolanaPaymentPayload:
        if request.has_detached_signature:
            submitter = text_field(request.submitter_identity, "submitterIdentity")
            message_b64 = text_field(request.message_b64, "messageB64")
            signature = text_field(request.submitter_signature, "submitterSignature")
            if not (submitter and message_b64 and signature):
                raise ValueError(
                    "submitterIdentity, messageB64 and submitterSignature must be supplied together"
                )
            try:
                message = _b64(message_b64)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"messageB64 is not valid base64: {e}") from e
            if not message:
                raise ValueError("messageB64 is empty")
            if not is_valid_address(submitter):
                raise ValueError(f"Invalid submitter identity: {submitter!r}")
            return SolanaPaymentPayload(
                submitter_identity=submitter,
                message=message,
                submitter_signature=signature,
            )

        encoded = text_field(request.signed_transaction_b64, "signedTransactionB64") or text_field(
            request.signed_transaction, "signedTransaction"
        )
        if not encoded:
            raise ValueError("Missing signed transaction")
        try:
            raw = _b64(encoded)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Signed transaction is not valid base64: {e}") from e
        if not raw:
            raise ValueError("Signed transaction is empty")
        return SolanaPaymentPayload(signed_transaction=raw)

    async def _describe_amount(
        self,
        client: SolanaClient,
        amount: Optional[int],
        mint: Optional[str],
        label: str,
    ) -> str:
        if amount is None:
            return label
        if mint is not None and not is_valid_address(mint):
            return f"{amount} atomic units of {label}"
        decimals = await self.labels.token_decimals(mint, client)
        if decimals is None:
            return f"{amount} atomic units of {label}"
        return f"{format_amount(amount, decimals)} {label}"

    async def _payment_message(
        self,
        client: SolanaClient,
        recipient: object,
        amount: Optional[int],
        mint: Optional[str],
        label: str,
    ) -> str:
        what = await self._describe_amount(client, amount, mint, label)
        to = recipient if recipient not in (None, "") else "the expected recipient"
        return (
            f"Payment required: {what} to {to}. "
            "Please generate a signed transaction with your wallet. "
            f"If you don't have a wallet, see {self.settings.wallet_help_url} "
            f"(instructions: {self.settings.wallet_instructions_url})."
        )

    async def _payment_required(
        self,
        client: SolanaClient,
        trace: SettlementTrace,
        recipient: object,
        amount: Optional[int],
        mint: Optional[str],
        reason: Optional[str] = None,
        label: Optional[str] = None,
        submitter: Optional[str] = None,
    ) -> ValidationOutcome:
        if label is None:
            if mint is not None and not is_valid_address(mint):
                # Unusable identifiers are echoed back, never looked up
                label = str(mint)
            else:
                label = await self.labels.resolve(mint, client)
        message = await self._payment_message(client, recipient, amount, mint, label)
        trace.record("Responding with payment required")
        return ValidationOutcome(
            status=ValidationStatus.PAYMENT_REQUIRED,
            error=f"{reason} {message}" if reason else message,
            submitter_identity=submitter,
            asset_label=label,
        )

    async def settle(
        self,
        requirement: PaymentRequirement,
        payload: SolanaPaymentPayload,
        client: SolanaClient,
        trace: SettlementTrace,
    ) -> ValidationOutcome:
        """Decode, match, co-sign, broadcast, confirm and re-check."""
        mint = requirement.asset_identifier
        trace.record(f"Network: {requirement.network.value}")

        label = await self.labels.resolve(mint, client)
        trace.record(f"Asset: {label}" + (f" ({mint})" if mint else ""))
        if mint:
            decimals = await self.labels.token_decimals(mint, client)
            trace.record(f"Token decimals: {decimals if decimals is not None else 'unknown'}")

        async def payment_required(reason: str, submitter: Optional[str] = None) -> ValidationOutcome:
            return await self._payment_required(
                client,
                trace,
                requirement.expected_recipient,
                requirement.expected_amount_atomic,
                mint,
                reason=reason,
                label=label,
                submitter=submitter,
            )

        # Decode
        if payload.is_detached:
            trace.record(f"Rebuilding transaction from detached signature of {payload.submitter_identity}")
            decoded = reconstruct_transaction(
                payload.submitter_identity, payload.message, payload.submitter_signature
            )
        else:
            trace.record(f"Transaction bytes length: {len(payload.signed_transaction)}")
            decoded = decode_transaction(payload.signed_transaction)

        if isinstance(decoded, DecodeFailure):
            if decoded.reason:
                trace.record(decoded.reason)
            else:
                trace.record(f"Versioned decode failed: {decoded.versioned_error}")
                trace.record(f"Legacy decode failed: {decoded.legacy_error}")
            return await payment_required(decoded.message + ".")

        trace.record(f"Transaction is {decoded.format.value} format")
        fee_payer_address = self.fee_payers.get().address if self.fee_payers.available else None
        submitter = payload.submitter_identity or decoded.submitter_excluding(fee_payer_address)
        trace.record(f"Submitter: {submitter}")

        # Pre-match
        destination = expected_destination(requirement)
        if mint:
            trace.record(f"Expected token account: {destination}")
        match = find_matching_transfer(decoded.instructions, requirement, destination)
        if match is None:
            trace.record("Validation failed before signing: transfer mismatch or unsupported instruction format")
            trace.record(f"Instruction programs: {', '.join(iter_program_ids(decoded.instructions)) or 'none'}")
            if decoded.uses_lookup_tables:
                trace.record("Transaction loads accounts through address lookup tables; those accounts are not resolved")
            return await payment_required(
                "Transfer mismatch or unsupported instruction format.", submitter
            )
        trace.record(f"Matched {match.kind} instruction #{match.index}")

        # Co-sign
        signed = self._co_sign(decoded, trace)
        missing = signed.missing_signers()
        if missing:
            trace.record(f"Missing signatures for: {', '.join(missing)}")
            return await payment_required(
                f"Transaction is missing required signatures from: {', '.join(missing)}.",
                submitter,
            )

        # Broadcast
        try:
            async with operation_context(OperationType.TRANSACTION_SUBMIT, Chain.SOLANA.value):
                signature = await client.send_raw_transaction(signed.serialize())
        except Exception as e:
            trace.record(f"SendTransactionError: {e}")
            return ValidationOutcome(
                status=ValidationStatus.FAILURE,
                error=f"Transaction send failed: {e}",
                submitter_identity=submitter,
                asset_label=label,
            )
        trace.record(f"Transaction submitted. Signature: {signature}")

        def failure(error: str) -> ValidationOutcome:
            return ValidationOutcome(
                status=ValidationStatus.FAILURE,
                settlement_id=signature,
                error=error,
                submitter_identity=submitter,
                asset_label=label,
            )

        # Confirm
        try:
            async with operation_context(
                OperationType.TRANSACTION_CONFIRM, Chain.SOLANA.value, signature=signature
            ):
                blockhash = await client.get_latest_blockhash()
                trace.record(
                    f"Waiting for confirmation (valid until block height {blockhash.last_valid_block_height})"
                )
                await client.wait_for_confirmation(signature, blockhash.last_valid_block_height)
        except Exception as e:
            trace.record(f"Confirmation failed: {e}")
            return failure(f"Transaction confirmation failed: {e}")
        trace.record(f"Transaction confirmed. TXID: {signature}")

        # Post-match
        try:
            async with operation_context(
                OperationType.TRANSACTION_FETCH, Chain.SOLANA.value, signature=signature
            ):
                settled = await client.get_parsed_transaction(signature)
        except Exception as e:
            trace.record(f"Could not fetch settled transaction: {e}")
            return failure(f"Settled transaction could not be fetched: {e}")
        if settled is None:
            trace.record("Settled transaction not found")
            return failure("Settled transaction could not be fetched")

        try:
            settled_match = find_settled_transfer(settled, requirement, destination)
        except ValueError as e:
            trace.record(f"Settled transaction could not be parsed: {e}")
            return failure("Settled transaction could not be parsed")
        if settled_match is None:
            trace.record("Settled transaction does not contain the expected transfer")
            return failure("Settled transaction does not contain the expected transfer")

        trace.record(
            f"Payment of {requirement.expected_amount_atomic} to "
            f"{mask_address(requirement.expected_recipient)} settled"
        )
        return ValidationOutcome(
            status=ValidationStatus.SUCCESS,
            settlement_id=signature,
            submitter_identity=submitter,
            asset_label=label,
            asset_kind=match.asset_kind,
        )

    def _co_sign(self, decoded: DecodedTransaction, trace: SettlementTrace) -> DecodedTransaction:
        """Add the fee payer's signature where the transaction expects it.

        A transaction that does not name the fee payer is passed through as
        the client signed it. Raises FeePayerKeyError when signatures are
        missing and no fee-payer key is configured.
        """
        if not self.fee_payers.available:
            if decoded.missing_signers():
                self.fee_payers.get()
            trace.record("No fee payer configured; submitting transaction as signed by the client")
            return decoded

        fee_payer = self.fee_payers.get()
        if not decoded.requires_signer(fee_payer.address):
            trace.record("Fee payer is not a signer; submitting transaction as signed by the client")
            return decoded

        trace.record(f"Fee payer public key: {fee_payer.address}")
        signed = decoded.co_sign(fee_payer.keypair)
        trace.record("Transaction co-signed by fee payer")
        return signed

    async def close(self) -> None:
        """Close all RPC clients."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
