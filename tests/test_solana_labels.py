"""Tests for x402_facilitator.solana.labels."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from x402_facilitator.errors import SolanaRPCError
from x402_facilitator.solana.client import SolanaClient, SolanaConfig
from x402_facilitator.solana.labels import (
    NATIVE_DECIMALS,
    NATIVE_LABEL,
    TokenLabelResolver,
    format_amount,
    truncate_identifier,
)

from solana_tx import USDC_MINT

UNKNOWN_MINT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


@pytest.fixture
def client():
    client = AsyncMock(spec=SolanaClient)
    client.config = SolanaConfig(rpc_url="http://solana.test")
    return client


def _mint_account(**info):
    return {"data": {"parsed": {"type": "mint", "info": info}}}


class TestFormatAmount:
    """Tests for format_amount."""

    @pytest.mark.parametrize(
        "amount,decimals,expected",
        [
            (1_000_000, 9, "0.001"),
            (1_500_000_000, 9, "1.5"),
            (1_000_000, 6, "1"),
            (10**12, 6, "1000000"),
            (0, 6, "0"),
            (7, 0, "7"),
        ],
    )
    def test_format(self, amount, decimals, expected):
        assert format_amount(amount, decimals) == expected


class TestTokenLabelResolver:
    """Tests for TokenLabelResolver."""

    @pytest.mark.asyncio
    async def test_native(self, client):
        """Should label the native asset without a lookup."""
        resolver = TokenLabelResolver()

        assert await resolver.resolve(None, client) == NATIVE_LABEL
        assert await resolver.token_decimals(None, client) == NATIVE_DECIMALS
        client.get_parsed_account_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_registry_hit(self, client):
        """Should use the registry for well-known mints."""
        resolver = TokenLabelResolver()

        assert await resolver.resolve(USDC_MINT, client) == "USDC"
        client.get_parsed_account_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_on_chain_symbol_is_cached(self, client):
        """Should query the chain once and reuse the cached label."""
        client.get_parsed_account_info.return_value = _mint_account(symbol="BONK", decimals=5)
        resolver = TokenLabelResolver()

        first = await resolver.resolve(UNKNOWN_MINT, client)
        second = await resolver.resolve(UNKNOWN_MINT, client)

        assert first == second == "BONK"
        assert client.get_parsed_account_info.await_count == 1
        assert await resolver.token_decimals(UNKNOWN_MINT, client) == 5
        assert client.get_parsed_account_info.await_count == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_truncates(self, client):
        """Should fall back to a truncated identifier and never raise."""
        client.get_parsed_account_info.side_effect = SolanaRPCError("node down")
        resolver = TokenLabelResolver()

        label = await resolver.resolve(UNKNOWN_MINT, client)

        assert label == truncate_identifier(UNKNOWN_MINT) == "7xKXtg2C..."

    @pytest.mark.asyncio
    async def test_no_symbol_truncates(self, client):
        """Should truncate when the mint account carries no symbol."""
        client.get_parsed_account_info.return_value = _mint_account(decimals=6)
        resolver = TokenLabelResolver()

        assert await resolver.resolve(UNKNOWN_MINT, client) == "7xKXtg2C..."

    @pytest.mark.asyncio
    async def test_decimals_lookup_failure(self, client):
        """Should return None when decimals cannot be fetched."""
        client.get_parsed_account_info.side_effect = SolanaRPCError("node down")
        resolver = TokenLabelResolver()

        assert await resolver.token_decimals(UNKNOWN_MINT, client) is None

    @pytest.mark.asyncio
    async def test_failed_lookup_is_retried(self, client):
        """Should not cache the truncated fallback after a failed lookup."""
        client.get_parsed_account_info.side_effect = [
            SolanaRPCError("timeout"),
            _mint_account(symbol="BONK", decimals=5),
        ]
        resolver = TokenLabelResolver()

        assert await resolver.resolve(UNKNOWN_MINT, client) == "7xKXtg2C..."
        assert await resolver.resolve(UNKNOWN_MINT, client) == "BONK"
        assert client.get_parsed_account_info.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self, client):
        """Should query again once the cached entry has expired."""
        client.get_parsed_account_info.side_effect = [
            _mint_account(symbol="BONK", decimals=5),
            _mint_account(symbol="BONK2", decimals=5),
        ]
        resolver = TokenLabelResolver(cache_ttl=0)

        assert await resolver.resolve(UNKNOWN_MINT, client) == "BONK"
        assert await resolver.resolve(UNKNOWN_MINT, client) == "BONK2"

    @pytest.mark.asyncio
    async def test_stale_entry_used_on_failure(self, client):
        """Should fall back to an expired entry when the refresh fails."""
        client.get_parsed_account_info.side_effect = [
            _mint_account(symbol="BONK", decimals=5),
            SolanaRPCError("node down"),
            SolanaRPCError("node down"),
        ]
        resolver = TokenLabelResolver(cache_ttl=0)

        assert await resolver.resolve(UNKNOWN_MINT, client) == "BONK"
        assert await resolver.resolve(UNKNOWN_MINT, client) == "BONK"
        assert await resolver.token_decimals(UNKNOWN_MINT, client) == 5

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self, client):
        """Should evict the oldest entry once the cache is full."""
        client.get_parsed_account_info.return_value = _mint_account(symbol="TKN", decimals=6)
        resolver = TokenLabelResolver(max_entries=2)
        mints = [UNKNOWN_MINT, "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So"]

        for mint in mints:
            await resolver.resolve(mint, client)
        assert client.get_parsed_account_info.await_count == 3

        await resolver.resolve(mints[2], client)
        assert client.get_parsed_account_info.await_count == 3
        await resolver.resolve(mints[0], client)
        assert client.get_parsed_account_info.await_count == 4
