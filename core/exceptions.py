"""Custom exception hierarchy for the energy sync service.

This module defines a base exception and the specific failure types a sync
cycle can end with, so that the loops can log precisely and the batch writer
can tell retryable failures from permanent ones.
"""

from __future__ import annotations

from typing import Optional


class EnergySyncError(Exception):
    """Base exception for all energy sync errors."""

    pass


class TransportError(EnergySyncError):
    """Network or HTTP level failure talking to the API or the storage.

    ``status`` holds the HTTP status code when a response was received and is
    ``None`` for connection errors and timeouts.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class DecodeError(EnergySyncError):
    """A payload could not be decoded into records."""

    pass


class StorageQueryError(EnergySyncError):
    """A query against the time-series storage failed."""

    pass


class WriteError(EnergySyncError):
    """Records could not be written to the time-series storage."""

    pass


class RetriesExhaustedError(WriteError):
    """A transient write failure persisted for the whole retry budget."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class RecordRejectedError(WriteError):
    """The storage refused the write; retrying will not help."""

    pass


class SyncCancelled(EnergySyncError):
    """The shutdown signal was observed while a cycle was in progress."""

    pass
