"""Transfer instruction decoding and matching for Solana.

Native SOL payments are System Program ``Transfer`` instructions; token
payments are SPL Token ``Transfer`` or ``TransferChecked`` instructions whose
destination is the recipient's associated token account (ATA), never the
recipient wallet itself.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from solders.pubkey import Pubkey

from ..models import AssetKind, PaymentRequirement
from .decoder import NormalizedInstruction

logger = logging.getLogger(__name__)

# Solana program IDs
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

# Instruction discriminators
SYSTEM_TRANSFER = 2  # u32 little-endian
TOKEN_TRANSFER = 3  # u8
TOKEN_TRANSFER_CHECKED = 12  # u8


@dataclass(frozen=True)
class TransferMatch:
    """The first instruction that satisfied a payment requirement."""
    index: int
    kind: str  # "system_transfer" | "transfer" | "transferChecked"
    destination: str
    amount: int
    mint: Optional[str] = None

    @property
    def asset_kind(self) -> AssetKind:
        return AssetKind.NATIVE if self.kind == "system_transfer" else AssetKind.TOKEN


def is_valid_address(address: Optional[str]) -> bool:
    """Check if a string is a base58-encoded 32-byte Solana public key."""
    if not address or not isinstance(address, str):
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def derive_ata(owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID) -> str:
    """Derive the Associated Token Account address.

    PDA of seeds [owner, token_program, mint] under the associated token
    account program.
    """
    seeds = [
        bytes(Pubkey.from_string(owner)),
        bytes(Pubkey.from_string(token_program)),
        bytes(Pubkey.from_string(mint)),
    ]
    ata, _bump = Pubkey.find_program_address(
        seeds, Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)
    )
    return str(ata)


def expected_destination(requirement: PaymentRequirement) -> str:
    """Address a matching transfer must credit."""
    if requirement.is_native:
        return requirement.expected_recipient
    return derive_ata(requirement.expected_recipient, requirement.asset_identifier)


def decode_system_transfer(ix: NormalizedInstruction) -> Optional[tuple[str, int]]:
    """Return (destination, lamports) for a System Program transfer, else None."""
    if ix.program_id != SYSTEM_PROGRAM_ID:
        return None
    if len(ix.data) < 12 or len(ix.accounts) < 2:
        return None
    (discriminator,) = struct.unpack_from("<I", ix.data, 0)
    if discriminator != SYSTEM_TRANSFER:
        return None
    (lamports,) = struct.unpack_from("<Q", ix.data, 4)
    destination = ix.accounts[1].pubkey
    if destination is None:
        return None
    return destination, lamports


def decode_token_transfer(ix: NormalizedInstruction) -> Optional[TransferMatch]:
    """Decode an SPL Token Transfer/TransferChecked instruction.

    Transfer accounts: [source, destination, owner]
    TransferChecked accounts: [source, mint, destination, owner]
    """
    if ix.program_id != TOKEN_PROGRAM_ID or not ix.data:
        return None
    tag = ix.data[0]
    if tag == TOKEN_TRANSFER_CHECKED:
        if len(ix.data) < 10 or len(ix.accounts) < 4:
            return None
        (amount,) = struct.unpack_from("<Q", ix.data, 1)
        mint = ix.accounts[1].pubkey
        destination = ix.accounts[2].pubkey
        if mint is None or destination is None:
            return None
        return TransferMatch(
            index=-1, kind="transferChecked", destination=destination, amount=amount, mint=mint
        )
    if tag == TOKEN_TRANSFER:
        if len(ix.data) < 9 or len(ix.accounts) < 3:
            return None
        (amount,) = struct.unpack_from("<Q", ix.data, 1)
        destination = ix.accounts[1].pubkey
        if destination is None:
            return None
        return TransferMatch(index=-1, kind="transfer", destination=destination, amount=amount)
    return None


def find_matching_transfer(
    instructions: Sequence[NormalizedInstruction],
    requirement: PaymentRequirement,
    destination: Optional[str] = None,
) -> Optional[TransferMatch]:
    """Return the first instruction paying the requirement, in order.

    Amounts are compared exactly. Partial transfers are never summed.
    """
    destination = destination or expected_destination(requirement)
    amount = requirement.expected_amount_atomic
    mint = requirement.asset_identifier

    for index, ix in enumerate(instructions):
        if requirement.is_native:
            decoded = decode_system_transfer(ix)
            if decoded is None:
                continue
            dest, lamports = decoded
            if dest == destination and lamports == amount:
                return TransferMatch(
                    index=index, kind="system_transfer", destination=dest, amount=lamports
                )
            continue

        transfer = decode_token_transfer(ix)
        if transfer is None:
            continue
        if transfer.destination != destination or transfer.amount != amount:
            continue
        if transfer.kind == "transferChecked" and transfer.mint != mint:
            continue
        return TransferMatch(
            index=index,
            kind=transfer.kind,
            destination=transfer.destination,
            amount=transfer.amount,
            mint=transfer.mint,
        )
    return None


def matches(
    instructions: Sequence[NormalizedInstruction],
    requirement: PaymentRequirement,
) -> bool:
    """Check whether any instruction pays the requirement."""
    return find_matching_transfer(instructions, requirement) is not None


def parsed_instructions(parsed_tx: dict[str, Any]) -> list[dict[str, Any]]:
    """Top-level instructions of a jsonParsed ``getTransaction`` result.

    Raises ValueError when the result does not have the expected shape.
    """
    try:
        instructions = parsed_tx["transaction"]["message"]["instructions"]
    except (KeyError, TypeError) as e:
        raise ValueError(f"settled transaction has no parsed instructions: {e!r}") from e
    if not isinstance(instructions, list):
        raise ValueError("settled transaction instructions are not a list")
    return instructions


def _parsed_transfer(ix: dict[str, Any]) -> Optional[TransferMatch]:
    parsed = ix.get("parsed")
    if not isinstance(parsed, dict):
        return None
    info = parsed.get("info") or {}
    kind = parsed.get("type")
    program_id = ix.get("programId")

    try:
        if program_id == SYSTEM_PROGRAM_ID and kind == "transfer":
            return TransferMatch(
                index=-1,
                kind="system_transfer",
                destination=info["destination"],
                amount=int(info["lamports"]),
            )
        if program_id == TOKEN_PROGRAM_ID and kind == "transfer":
            return TransferMatch(
                index=-1,
                kind="transfer",
                destination=info["destination"],
                amount=int(info["amount"]),
            )
        if program_id == TOKEN_PROGRAM_ID and kind == "transferChecked":
            return TransferMatch(
                index=-1,
                kind="transferChecked",
                destination=info["destination"],
                amount=int(info["tokenAmount"]["amount"]),
                mint=info["mint"],
            )
    except (KeyError, TypeError, ValueError):
        logger.debug("Skipping malformed parsed instruction: %s", ix)
    return None


def find_settled_transfer(
    parsed_tx: dict[str, Any],
    requirement: PaymentRequirement,
    destination: Optional[str] = None,
) -> Optional[TransferMatch]:
    """Run the transfer match against a settled, jsonParsed transaction.

    A transaction whose execution failed (``meta.err`` set) never matches.
    """
    meta = parsed_tx.get("meta") if isinstance(parsed_tx, dict) else None
    if meta and meta.get("err"):
        return None

    destination = destination or expected_destination(requirement)
    amount = requirement.expected_amount_atomic
    mint = requirement.asset_identifier

    for index, ix in enumerate(parsed_instructions(parsed_tx)):
        if not isinstance(ix, dict):
            continue
        transfer = _parsed_transfer(ix)
        if transfer is None:
            continue
        if (mint is None) != (transfer.kind == "system_transfer"):
            continue
        if transfer.destination != destination or transfer.amount != amount:
            continue
        if transfer.kind == "transferChecked" and transfer.mint != mint:
            continue
        return TransferMatch(
            index=index,
            kind=transfer.kind,
            destination=transfer.destination,
            amount=transfer.amount,
            mint=transfer.mint,
        )
    return None


def iter_program_ids(instructions: Iterable[NormalizedInstruction]) -> list[str]:
    """Program IDs in instruction order (for diagnostics)."""
    return [ix.program_id for ix in instructions]
