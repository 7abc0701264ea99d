"""
Logging utilities for settlement operations.

Features:
- Per-request settlement trace (ordered, append-only diagnostic notes)
- Operation timing for broadcast/confirmation/fetch calls
- Address masking for log lines
- Process-wide logging setup
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Types of remote operations performed while settling."""
    METADATA_LOOKUP = "metadata_lookup"
    TRANSACTION_SUBMIT = "transaction_submit"
    TRANSACTION_CONFIRM = "transaction_confirm"
    TRANSACTION_FETCH = "transaction_fetch"


@dataclass(frozen=True)
class TraceEntry:
    """A single diagnostic note."""
    at: datetime
    message: str


@dataclass
class SettlementTrace:
    """
    Ordered narrative of what one validation request attempted.

    A trace belongs to exactly one pipeline invocation. Entries are only ever
    appended; the outcome carries an immutable snapshot of the messages.
    """
    chain: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    _entries: List[TraceEntry] = field(default_factory=list, repr=False)

    def record(self, message: str) -> None:
        """Append a note and mirror it to the module logger."""
        entry = TraceEntry(at=datetime.now(timezone.utc), message=message)
        self._entries.append(entry)
        logger.info(
            "[%s:%s] %s",
            self.chain,
            self.request_id,
            message,
            extra={"trace": {"request_id": self.request_id, "chain": self.chain}},
        )

    @property
    def entries(self) -> tuple[TraceEntry, ...]:
        return tuple(self._entries)

    @property
    def notes(self) -> tuple[str, ...]:
        return tuple(entry.message for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class OperationContext:
    """Context for a remote operation."""
    operation_type: OperationType
    chain: str
    started_at: float = field(default_factory=time.monotonic)
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Mark operation as complete."""
        self.duration_ms = (time.monotonic() - self.started_at) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation_type": self.operation_type.value,
            "chain": self.chain,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


@asynccontextmanager
async def operation_context(
    operation_type: OperationType,
    chain: str,
    **metadata: Any,
) -> AsyncIterator[OperationContext]:
    """
    Time a remote operation and log its outcome.

    Usage:
        async with operation_context(OperationType.TRANSACTION_SUBMIT, "solana") as ctx:
            signature = await client.send_raw_transaction(raw)
            ctx.metadata["signature"] = signature
    """
    ctx = OperationContext(operation_type=operation_type, chain=chain, metadata=metadata)
    logger.debug(f"Starting {operation_type.value} on {chain}", extra={"operation": ctx.to_dict()})

    try:
        yield ctx
        ctx.complete(success=True)
    except Exception as e:
        ctx.complete(success=False, error=str(e))
        raise
    finally:
        logger.log(
            logging.INFO if ctx.success else logging.WARNING,
            f"Completed {operation_type.value} on {chain} in {ctx.duration_ms:.0f}ms "
            f"(success={ctx.success})",
            extra={"operation": ctx.to_dict()},
        )


def mask_address(address: Optional[str]) -> str:
    """Mask middle portion of address for privacy."""
    if not address:
        return ""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Log level
        format_string: Custom format string
        json_format: Use JSON formatting
    """
    if format_string is None:
        if json_format:
            format_string = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        else:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_string,
    )

    logging.getLogger("x402_facilitator").setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
