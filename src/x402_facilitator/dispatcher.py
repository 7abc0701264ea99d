"""Chain dispatch for validation requests."""
from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from .config import FacilitatorSettings, get_settings
from .errors import UnsupportedChainError
from .evm.facilitator import BaseX402Facilitator
from .models import Chain, ValidationOutcome, ValidationStatus
from .schemas import FacilitatorRequest, FacilitatorResponse
from .solana.facilitator import SolanaX402Facilitator

logger = logging.getLogger(__name__)


class X402Facilitator:
    """
    Entry point that routes each request to the pipeline for its chain.

    Pipelines hold no per-request state, so one instance handles concurrent
    requests.
    """

    def __init__(
        self,
        settings: Optional[FacilitatorSettings] = None,
        solana: Optional[SolanaX402Facilitator] = None,
        base: Optional[BaseX402Facilitator] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.solana = solana or SolanaX402Facilitator(settings=self.settings)
        self.base = base or BaseX402Facilitator(settings=self.settings)

    async def validate(self, request: Union[FacilitatorRequest, dict[str, Any]]) -> ValidationOutcome:
        """Validate one request. Expected outcomes are returned, never raised."""
        if not isinstance(request, FacilitatorRequest):
            try:
                request = FacilitatorRequest.model_validate(request)
            except ValidationError as e:
                logger.warning(f"Rejected malformed request: {e}")
                return ValidationOutcome(
                    status=ValidationStatus.FAILURE,
                    error=f"Invalid request: {e.errors()[0].get('msg', 'malformed body')}",
                )

        if request.chain is None or request.chain == "":
            return ValidationOutcome(
                status=ValidationStatus.FAILURE,
                error='Missing chain (expected "solana" or "base")',
            )
        try:
            chain = Chain.parse(request.chain)
        except UnsupportedChainError as e:
            return ValidationOutcome(status=ValidationStatus.FAILURE, error=str(e))

        match chain:
            case Chain.SOLANA:
                return await self.solana.validate(request)
            case Chain.BASE:
                return await self.base.validate(request)
            case _:
                raise UnsupportedChainError(chain)

    async def handle(self, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        """Validate a JSON body and return (HTTP status, response body)."""
        outcome = await self.validate(body)
        response = FacilitatorResponse.from_outcome(outcome)
        return response.http_status, response.to_wire()

    def fee_payer_address(self, chain: Union[Chain, str]) -> str:
        """Address clients must name as fee payer on ``chain``.

        Raises:
            UnsupportedChainError: for chains without a service fee payer
            FeePayerKeyError: if the key is not configured
        """
        chain = Chain.parse(chain)
        match chain:
            case Chain.SOLANA:
                return self.solana.fee_payer_address()
            case Chain.BASE:
                raise UnsupportedChainError(chain.value)
            case _:
                raise UnsupportedChainError(chain)

    async def close(self) -> None:
        await self.solana.close()
        await self.base.close()

    async def __aenter__(self) -> "X402Facilitator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
