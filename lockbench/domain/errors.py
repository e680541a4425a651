"""
Error taxonomy shared by stores, strategies and workers.

Stores translate driver exceptions into these types so that workers can map
every failure onto exactly one terminal outcome without knowing which backend
raised it.
"""
from __future__ import annotations

from typing import Optional

from lockbench.domain.models import ConflictReason


class HarnessError(Exception):
    """Base class for all harness errors."""


class StoreConnectionError(HarnessError, ConnectionError):
    """A store connection could not be obtained (unreachable host, bad credentials)."""


class ConflictError(HarnessError):
    """
    A concurrency-control mechanism rejected the write.

    This is an expected outcome of a race, not a malfunction. The harness never
    retries it; a caller that does must re-read before re-attempting.
    """

    def __init__(
        self,
        message: str,
        reason: ConflictReason,
        rows_affected: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.rows_affected = rows_affected


class UnexpectedStoreError(HarnessError):
    """Any other store-level failure: bad SQL, schema mismatch, lost connection."""


class PhaseTimeoutError(HarnessError):
    """Workers of a phase did not all reach a terminal state within the wait timeout."""


__all__ = [
    "ConflictError",
    "HarnessError",
    "PhaseTimeoutError",
    "StoreConnectionError",
    "UnexpectedStoreError",
]
