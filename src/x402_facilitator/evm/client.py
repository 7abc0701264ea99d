"""JSON-RPC client for Base."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..config import FacilitatorSettings, NetworkTier, get_settings
from ..errors import ConfirmationTimeoutError, EVMRPCError

logger = logging.getLogger(__name__)


@dataclass
class BaseConfig:
    """Base connection configuration."""
    rpc_url: str
    timeout: float = 30.0
    confirmations: int = 3
    poll_interval_seconds: float = 2.0
    confirmation_timeout_seconds: float = 300.0


def get_base_config(
    network: NetworkTier,
    settings: Optional[FacilitatorSettings] = None,
) -> BaseConfig:
    """Build Base config for a network tier from settings."""
    settings = settings or get_settings()
    return BaseConfig(
        rpc_url=settings.base_rpc_url(network),
        timeout=settings.rpc_timeout_seconds,
        confirmations=settings.base_confirmations,
        poll_interval_seconds=settings.base_poll_interval_seconds,
        confirmation_timeout_seconds=settings.base_confirmation_timeout_seconds,
    )


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"not a hex quantity: {value!r}")
    return int(value, 16)


class BaseRPCClient:
    """JSON-RPC client for Base (OP Stack EVM)."""

    def __init__(self, config: BaseConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._http_client = http_client
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._http_client

    async def _call(self, method: str, params: List[Any] = None) -> Any:
        """Make JSON-RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = await self._get_client()
        response = await client.post(
            self.config.rpc_url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            raise EVMRPCError.from_error_member(result["error"])

        return result.get("result")

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast signed transaction. Returns the transaction hash."""
        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx
        result = await self._call("eth_sendRawTransaction", [raw_tx])
        logger.info(f"Base tx sent: {result}")
        return result

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction receipt."""
        return await self._call("eth_getTransactionReceipt", [tx_hash])

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction by hash."""
        return await self._call("eth_getTransactionByHash", [tx_hash])

    async def get_block_number(self) -> int:
        """Get current block number."""
        result = await self._call("eth_blockNumber")
        return hex_to_int(result)

    async def wait_for_confirmations(
        self,
        tx_hash: str,
        confirmations: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Poll until the transaction's block is ``confirmations`` deep.

        The inclusion block counts as the first confirmation.

        Raises:
            ConfirmationTimeoutError: if the depth is not reached in time
        """
        required = confirmations if confirmations is not None else self.config.confirmations
        timeout = timeout_seconds if timeout_seconds is not None else self.config.confirmation_timeout_seconds
        deadline = time.monotonic() + timeout

        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                included_at = hex_to_int(receipt["blockNumber"])
                current = await self.get_block_number()
                depth = current - included_at + 1
                if depth >= required:
                    return receipt
                logger.debug(f"{tx_hash} has {depth}/{required} confirmations")

            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(tx_hash, required, timeout)
            await asyncio.sleep(self.config.poll_interval_seconds)

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
