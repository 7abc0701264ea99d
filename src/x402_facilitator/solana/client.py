"""Solana RPC client wrapper."""
from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import FacilitatorSettings, NetworkTier, get_settings
from ..errors import SolanaRPCError, TransactionExpiredError, TransactionFailedError

logger = logging.getLogger(__name__)

SATISFIES_CONFIRMED = ("confirmed", "finalized")


@dataclass
class SolanaConfig:
    """Solana connection configuration."""
    rpc_url: str
    commitment: str = "confirmed"
    timeout: float = 30.0
    send_max_retries: int = 3
    poll_interval_seconds: float = 0.5


def get_solana_config(
    network: NetworkTier,
    settings: Optional[FacilitatorSettings] = None,
) -> SolanaConfig:
    """Build Solana config for a network tier from settings."""
    settings = settings or get_settings()
    return SolanaConfig(
        rpc_url=settings.solana_rpc_url(network),
        commitment=settings.solana_commitment,
        timeout=settings.rpc_timeout_seconds,
        send_max_retries=settings.solana_send_max_retries,
        poll_interval_seconds=settings.solana_poll_interval_seconds,
    )


@dataclass(frozen=True)
class LatestBlockhash:
    """A blockhash and the last block height at which it is still valid."""
    blockhash: str
    last_valid_block_height: int


class SolanaClient:
    """Async Solana JSON-RPC client.

    Uses raw httpx instead of solana-py; transaction types come from solders.
    All Solana RPC methods are called via JSON-RPC 2.0.
    """

    def __init__(
        self,
        config: SolanaConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call to Solana."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        resp = await self._client.post(self.config.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise SolanaRPCError.from_error_member(data["error"])
        return data.get("result")

    async def get_latest_blockhash(self) -> LatestBlockhash:
        """Get latest blockhash and its validity window."""
        result = await self._rpc(
            "getLatestBlockhash", [{"commitment": self.config.commitment}]
        )
        value = result["value"]
        return LatestBlockhash(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def get_block_height(self) -> int:
        """Get the current block height."""
        return int(await self._rpc("getBlockHeight", [{"commitment": self.config.commitment}]))

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """Send a signed transaction with preflight. Returns transaction signature."""
        result = await self._rpc(
            "sendTransaction",
            [
                base64.b64encode(raw_transaction).decode("ascii"),
                {
                    "encoding": "base64",
                    "skipPreflight": False,
                    "preflightCommitment": self.config.commitment,
                    "maxRetries": self.config.send_max_retries,
                },
            ],
        )
        logger.info("Solana tx sent: %s", result)
        return result

    async def get_signature_status(self, signature: str) -> Optional[dict[str, Any]]:
        """Get the status of a signature, or None if the node has not seen it."""
        result = await self._rpc("getSignatureStatuses", [[signature]])
        statuses = result.get("value", []) if result else []
        if not statuses:
            return None
        return statuses[0]

    async def is_confirmed(self, signature: str) -> bool:
        """Check once whether a transaction has reached the configured commitment."""
        status = await self.get_signature_status(signature)
        if status is None:
            return False
        if status.get("err"):
            raise TransactionFailedError(f"Transaction failed: {status['err']}", signature)
        confirmation = status.get("confirmationStatus") or ""
        if self.config.commitment == "finalized":
            return confirmation == "finalized"
        return confirmation in SATISFIES_CONFIRMED

    async def wait_for_confirmation(
        self,
        signature: str,
        last_valid_block_height: int,
    ) -> None:
        """Block until the signature is confirmed or its blockhash expires."""
        while True:
            if await self.is_confirmed(signature):
                return
            block_height = await self.get_block_height()
            if block_height > last_valid_block_height:
                raise TransactionExpiredError(signature, last_valid_block_height)
            await asyncio.sleep(self.config.poll_interval_seconds)

    async def get_parsed_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        """Fetch a settled transaction in jsonParsed form."""
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.config.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def get_parsed_account_info(self, pubkey: str) -> Optional[dict[str, Any]]:
        """Get an account in jsonParsed form (None if it does not exist)."""
        result = await self._rpc(
            "getAccountInfo",
            [pubkey, {"encoding": "jsonParsed", "commitment": self.config.commitment}],
        )
        return result.get("value") if result else None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
