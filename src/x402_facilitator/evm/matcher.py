"""Matching confirmed Base transactions against a payment requirement."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from eth_utils import encode_hex, keccak

from ..models import AssetKind, PaymentRequirement

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_SIGNATURE = encode_hex(keccak(text="Transfer(address,address,uint256)"))


@dataclass(frozen=True)
class TokenTransfer:
    """A decoded ERC-20 Transfer event."""
    token: Optional[str]
    from_address: str
    to_address: str
    amount: int


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def decode_transfer_log(log: Dict[str, Any]) -> Optional[TokenTransfer]:
    """Decode an ERC-20 Transfer log, or None if the log is something else."""
    topics = log.get("topics") or []
    if len(topics) < 3 or str(topics[0]).lower() != TRANSFER_EVENT_SIGNATURE:
        return None

    data = log.get("data") or "0x"
    try:
        amount = int(data, 16)
    except (TypeError, ValueError):
        logger.debug(f"Skipping Transfer log with undecodable data: {data!r}")
        return None

    return TokenTransfer(
        token=log.get("address"),
        from_address="0x" + topics[1][-40:],
        to_address="0x" + topics[2][-40:],
        amount=amount,
    )


def is_direct_transfer(tx: Dict[str, Any], requirement: PaymentRequirement) -> bool:
    """Native value transfer straight to the recipient for the exact amount."""
    if not _same_address(tx.get("to"), requirement.expected_recipient):
        return False
    try:
        value = int(tx.get("value") or "0x0", 16)
    except (TypeError, ValueError):
        return False
    return value == requirement.expected_amount_atomic


def find_token_transfer(
    logs: Iterable[Dict[str, Any]],
    requirement: PaymentRequirement,
) -> Optional[TokenTransfer]:
    """First Transfer event crediting the recipient with the exact amount.

    When the requirement names a token contract, the event must come from it.
    """
    for log in logs:
        transfer = decode_transfer_log(log)
        if transfer is None:
            continue
        if requirement.asset_identifier and not _same_address(transfer.token, requirement.asset_identifier):
            continue
        if not _same_address(transfer.to_address, requirement.expected_recipient):
            continue
        if transfer.amount != requirement.expected_amount_atomic:
            continue
        return transfer
    return None


def match_settled_payment(
    tx: Dict[str, Any],
    receipt: Dict[str, Any],
    requirement: PaymentRequirement,
) -> Optional[AssetKind]:
    """Which path paid the requirement: native value first, then token logs."""
    if requirement.is_native and is_direct_transfer(tx, requirement):
        return AssetKind.NATIVE

    logs = receipt.get("logs") or []
    if logs and find_token_transfer(logs, requirement) is not None:
        return AssetKind.TOKEN
    return None
