"""Human-readable token labels and decimals for Solana mints."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..logging_utils import OperationType, operation_context
from .client import SolanaClient

logger = logging.getLogger(__name__)

NATIVE_LABEL = "SOL"
NATIVE_DECIMALS = 9

DEFAULT_CACHE_TTL = 3600.0  # 1 hour
DEFAULT_CACHE_SIZE = 1024

# Well-known mainnet mints
KNOWN_TOKENS: dict[str, str] = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": "USDC",
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": "USDT",
    "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R": "RAY",
    "SRMuApVNdxXokk5GT7XD5cUUgXMBCoAz2LHeuAoKWRt": "SRM",
    "EchesyfXePKdLtoiZSL8pBe8Myagyy8ZRqsACNCFGnvp": "FIDA",
    "So11111111111111111111111111111111111111112": "wSOL",
}


def truncate_identifier(mint: str) -> str:
    return f"{mint[:8]}..."


def format_amount(amount: int, decimals: int) -> str:
    """Render atomic units as a decimal string without trailing zeros."""
    value = Decimal(amount).scaleb(-decimals).normalize()
    return format(value, "f")


@dataclass(frozen=True)
class MintEntry:
    """Cached mint metadata from a successful lookup."""
    label: str
    decimals: Optional[int]
    fetched_at: float


class TokenLabelResolver:
    """
    Resolves mint addresses to labels and decimals.

    Lookup order for labels: registry, parsed mint account on chain,
    truncated identifier. Successful lookups are cached per RPC endpoint
    for ``cache_ttl`` seconds, so a repeated lookup within that window issues
    no second remote query. Failed lookups are not cached; a stale entry is
    used instead when one exists. Resolution never raises.
    """

    def __init__(
        self,
        registry: Optional[dict[str, str]] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        max_entries: int = DEFAULT_CACHE_SIZE,
    ):
        self.registry = dict(KNOWN_TOKENS if registry is None else registry)
        self._cache: dict[tuple[str, str], MintEntry] = {}
        self._cache_ttl = cache_ttl
        self._max_entries = max_entries

    async def _mint_info(self, mint: str, client: SolanaClient) -> dict:
        async with operation_context(OperationType.METADATA_LOOKUP, "solana", mint=mint):
            account = await client.get_parsed_account_info(mint)
        if not isinstance(account, dict):
            return {}
        data = account.get("data")
        if not isinstance(data, dict):
            return {}
        parsed = data.get("parsed")
        if not isinstance(parsed, dict):
            return {}
        info = parsed.get("info")
        return info if isinstance(info, dict) else {}

    def _store(self, key: tuple[str, str], entry: MintEntry) -> None:
        self._cache.pop(key, None)
        while self._cache and len(self._cache) >= self._max_entries:
            # Oldest insertion first
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = entry

    async def _lookup(self, mint: str, client: SolanaClient) -> Optional[MintEntry]:
        key = (client.config.rpc_url, mint)
        cached = self._cache.get(key)
        if cached and (time.monotonic() - cached.fetched_at) < self._cache_ttl:
            return cached

        try:
            info = await self._mint_info(mint, client)
        except Exception as e:
            if cached:
                logger.warning(f"Using stale mint metadata for {mint}: {e}")
                return cached
            logger.debug(f"Mint metadata lookup failed for {mint}: {e}")
            return None

        symbol = info.get("symbol")
        decimals = info.get("decimals")
        entry = MintEntry(
            label=symbol if isinstance(symbol, str) and symbol else truncate_identifier(mint),
            decimals=decimals if isinstance(decimals, int) and not isinstance(decimals, bool) else None,
            fetched_at=time.monotonic(),
        )
        self._store(key, entry)
        return entry

    async def resolve(self, mint: Optional[str], client: SolanaClient) -> str:
        """Label for a mint; the native asset when ``mint`` is None."""
        if not mint:
            return NATIVE_LABEL
        if mint in self.registry:
            return self.registry[mint]

        entry = await self._lookup(mint, client)
        return entry.label if entry else truncate_identifier(mint)

    async def token_decimals(self, mint: Optional[str], client: SolanaClient) -> Optional[int]:
        """Decimals for a mint, or None if they cannot be determined."""
        if not mint:
            return NATIVE_DECIMALS

        entry = await self._lookup(mint, client)
        return entry.decimals if entry else None
