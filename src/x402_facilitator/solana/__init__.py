"""Solana settlement pipeline."""
from .client import SolanaClient, SolanaConfig, get_solana_config
from .decoder import (
    DecodeFailure,
    LegacyTransactionFormat,
    VersionedTransactionFormat,
    decode_transaction,
    reconstruct_transaction,
)
from .facilitator import SolanaX402Facilitator
from .fee_payer import FeePayer, FeePayerKeyProvider, load_fee_payer
from .labels import KNOWN_TOKENS, TokenLabelResolver
from .transfer import derive_ata, find_matching_transfer

__all__ = [
    "SolanaClient",
    "SolanaConfig",
    "get_solana_config",
    "DecodeFailure",
    "LegacyTransactionFormat",
    "VersionedTransactionFormat",
    "decode_transaction",
    "reconstruct_transaction",
    "SolanaX402Facilitator",
    "FeePayer",
    "FeePayerKeyProvider",
    "load_fee_payer",
    "KNOWN_TOKENS",
    "TokenLabelResolver",
    "derive_ata",
    "find_matching_transfer",
]
