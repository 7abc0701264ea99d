"""
Client transaction decoding for Solana.

Raw bytes are tried as a v0 versioned transaction first and as a legacy
transaction second. Whichever format parses, the caller gets a
``DecodedTransaction`` exposing one normalized instruction list and a
format-specific co-signing step; if neither parses, a ``DecodeFailure``
carrying both parser errors is returned instead of raising.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from ..errors import SigningError

logger = logging.getLogger(__name__)

V0_PREFIX = 0x80


class TransactionFormat(str, Enum):
    VERSIONED = "versioned"
    LEGACY = "legacy"


@dataclass(frozen=True)
class AccountRef:
    """An instruction account slot.

    ``pubkey`` is None for accounts loaded through an address lookup table,
    which are never resolved against the chain.
    """
    index: int
    pubkey: Optional[str]
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class NormalizedInstruction:
    """Format-independent view of a compiled instruction."""
    program_id: str
    accounts: tuple[AccountRef, ...]
    data: bytes


def _header_flags(message: Union[Message, MessageV0], index: int) -> tuple[bool, bool]:
    """(is_signer, is_writable) for a static account key index."""
    header = message.header
    num_keys = len(message.account_keys)
    required = header.num_required_signatures
    if index < required:
        return True, index < required - header.num_readonly_signed_accounts
    return False, index < num_keys - header.num_readonly_unsigned_accounts


def _normalize(message: Union[Message, MessageV0], allow_lookups: bool) -> tuple[NormalizedInstruction, ...]:
    keys = [str(key) for key in message.account_keys]
    instructions = []
    for ix in message.instructions:
        if ix.program_id_index >= len(keys):
            raise ValueError(f"program id index {ix.program_id_index} out of range")
        accounts = []
        for account_index in bytes(ix.accounts):
            if account_index < len(keys):
                is_signer, is_writable = _header_flags(message, account_index)
                accounts.append(
                    AccountRef(account_index, keys[account_index], is_signer, is_writable)
                )
            elif allow_lookups:
                accounts.append(AccountRef(account_index, None))
            else:
                raise ValueError(f"account index {account_index} out of range")
        instructions.append(
            NormalizedInstruction(
                program_id=keys[ix.program_id_index],
                accounts=tuple(accounts),
                data=bytes(ix.data),
            )
        )
    return tuple(instructions)


class DecodedTransaction(ABC):
    """A successfully decoded client transaction."""

    format: ClassVar[TransactionFormat]

    @property
    @abstractmethod
    def message(self) -> Union[Message, MessageV0]:
        ...

    @property
    @abstractmethod
    def signatures(self) -> list[Signature]:
        ...

    @property
    @abstractmethod
    def instructions(self) -> tuple[NormalizedInstruction, ...]:
        ...

    @abstractmethod
    def signing_payload(self) -> bytes:
        """Bytes every required signer signs."""

    @abstractmethod
    def _with_signatures(self, signatures: list[Signature]) -> "DecodedTransaction":
        ...

    @abstractmethod
    def serialize(self) -> bytes:
        """Wire bytes for ``sendTransaction``."""

    @property
    def required_signers(self) -> list[str]:
        required = self.message.header.num_required_signatures
        return [str(key) for key in self.message.account_keys[:required]]

    @property
    def submitter(self) -> Optional[str]:
        """First signer account, the conventional submitter."""
        signers = self.required_signers
        return signers[0] if signers else None

    def submitter_excluding(self, address: Optional[str]) -> Optional[str]:
        """First signer that is not ``address`` (the service fee payer)."""
        for signer in self.required_signers:
            if signer != address:
                return signer
        return self.submitter

    @property
    def uses_lookup_tables(self) -> bool:
        """Whether some accounts load through address lookup tables."""
        return False

    def requires_signer(self, address: str) -> bool:
        return address in self.required_signers

    def missing_signers(self) -> list[str]:
        """Required signers whose signature slot is empty."""
        default = Signature.default()
        signatures = self.signatures
        missing = []
        for position, signer in enumerate(self.required_signers):
            if position >= len(signatures) or signatures[position] == default:
                missing.append(signer)
        return missing

    def co_sign(self, keypair: Keypair) -> "DecodedTransaction":
        """Return a copy with ``keypair``'s signature in its signer slot.

        Existing signatures are left in place.
        """
        address = str(keypair.pubkey())
        signers = self.required_signers
        if address not in signers:
            raise SigningError(f"Fee payer {address} is not a required signer of this transaction")
        position = signers.index(address)

        signatures = list(self.signatures)
        while len(signatures) < len(signers):
            signatures.append(Signature.default())
        signatures[position] = keypair.sign_message(self.signing_payload())
        return self._with_signatures(signatures)


class VersionedTransactionFormat(DecodedTransaction):
    """A v0 transaction, possibly referencing address lookup tables."""

    format = TransactionFormat.VERSIONED

    def __init__(self, transaction: VersionedTransaction):
        message = transaction.message
        if not isinstance(message, MessageV0):
            raise ValueError("transaction message is not a v0 message")
        self.transaction = transaction
        self._instructions = _normalize(message, allow_lookups=True)

    @property
    def message(self) -> MessageV0:
        return self.transaction.message

    @property
    def signatures(self) -> list[Signature]:
        return list(self.transaction.signatures)

    @property
    def instructions(self) -> tuple[NormalizedInstruction, ...]:
        return self._instructions

    @property
    def uses_lookup_tables(self) -> bool:
        return len(self.message.address_table_lookups) > 0

    def signing_payload(self) -> bytes:
        return bytes([V0_PREFIX]) + bytes(self.message)

    def _with_signatures(self, signatures: list[Signature]) -> "VersionedTransactionFormat":
        return VersionedTransactionFormat(VersionedTransaction.populate(self.message, signatures))

    def serialize(self) -> bytes:
        return bytes(self.transaction)


class LegacyTransactionFormat(DecodedTransaction):
    """A legacy (pre-versioning) transaction."""

    format = TransactionFormat.LEGACY

    def __init__(self, transaction: Transaction):
        self.transaction = transaction
        self._instructions = _normalize(transaction.message, allow_lookups=False)

    @property
    def message(self) -> Message:
        return self.transaction.message

    @property
    def signatures(self) -> list[Signature]:
        return list(self.transaction.signatures)

    @property
    def instructions(self) -> tuple[NormalizedInstruction, ...]:
        return self._instructions

    def signing_payload(self) -> bytes:
        return bytes(self.message)

    def _with_signatures(self, signatures: list[Signature]) -> "LegacyTransactionFormat":
        return LegacyTransactionFormat(Transaction.populate(self.message, signatures))

    def serialize(self) -> bytes:
        return bytes(self.transaction)


@dataclass(frozen=True)
class DecodeFailure:
    """Neither parser accepted the input."""
    versioned_error: str
    legacy_error: str
    reason: Optional[str] = None

    @property
    def message(self) -> str:
        if self.reason:
            return self.reason
        return (
            "Failed to decode transaction "
            f"(versioned: {self.versioned_error}; legacy: {self.legacy_error})"
        )


DecodeResult = Union[DecodedTransaction, DecodeFailure]


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


def decode_transaction(raw: bytes) -> DecodeResult:
    """Decode raw client bytes, versioned first, then legacy."""
    if not raw:
        return DecodeFailure("empty input", "empty input")

    try:
        return VersionedTransactionFormat(VersionedTransaction.from_bytes(raw))
    except Exception as e:
        versioned_error = _describe(e)
        logger.debug("Versioned decode failed: %s", versioned_error)

    try:
        return LegacyTransactionFormat(Transaction.from_bytes(raw))
    except Exception as e:
        legacy_error = _describe(e)
        logger.debug("Legacy decode failed: %s", legacy_error)

    return DecodeFailure(versioned_error, legacy_error)


def _parse_message(message_bytes: bytes) -> Union[Message, MessageV0, DecodeFailure]:
    if message_bytes and message_bytes[0] & V0_PREFIX:
        version = message_bytes[0] & 0x7F
        if version != 0:
            versioned_error = f"unsupported message version {version}"
        else:
            try:
                return MessageV0.from_bytes(message_bytes[1:])
            except Exception as e:
                versioned_error = _describe(e)
    else:
        versioned_error = "message has no version prefix"

    try:
        return Message.from_bytes(message_bytes)
    except Exception as e:
        return DecodeFailure(versioned_error, _describe(e))


def reconstruct_transaction(
    submitter: str,
    message_bytes: bytes,
    submitter_signature: str,
) -> DecodeResult:
    """Rebuild a transaction from a message and the submitter's detached signature.

    The signature must verify against ``message_bytes`` for ``submitter``,
    and ``submitter`` must be one of the message's required signers.
    """
    if not message_bytes:
        return DecodeFailure("empty input", "empty input")

    message = _parse_message(message_bytes)
    if isinstance(message, DecodeFailure):
        return message

    try:
        signer = Pubkey.from_string(submitter)
        signature = Signature.from_string(submitter_signature)
    except ValueError as e:
        return DecodeFailure("", "", reason=f"Invalid submitter identity or signature: {e}")

    if not signature.verify(signer, message_bytes):
        return DecodeFailure("", "", reason="Submitter signature does not match the message")

    required = message.header.num_required_signatures
    signers = [str(key) for key in message.account_keys[:required]]
    if submitter not in signers:
        return DecodeFailure("", "", reason=f"Submitter {submitter} is not a signer of the message")

    signatures = [Signature.default()] * required
    signatures[signers.index(submitter)] = signature

    try:
        if isinstance(message, MessageV0):
            return VersionedTransactionFormat(VersionedTransaction.populate(message, signatures))
        return LegacyTransactionFormat(Transaction.populate(message, signatures))
    except Exception as e:
        return DecodeFailure("", "", reason=f"Failed to rebuild transaction: {_describe(e)}")
