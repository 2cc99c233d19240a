from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Iterable, List, Optional

from config import WRITE_SETTINGS
from core.exceptions import (
    RecordRejectedError,
    RetriesExhaustedError,
    SyncCancelled,
    TransportError,
)
from core.records import Record
from core.retry import decorrelated_jitter_backoff, wait_schedule, with_retry
from database.influx_engine import TimeSeriesStore
from utils.time_utils import Clock

LOGGER = logging.getLogger(__name__)


def is_transient_write_error(exc: BaseException) -> bool:
    """Decide whether a failed write may succeed if simply tried again.

    Connection failures and timeouts (no status), throttling (429) and
    server-side errors (5xx) are transient. Everything else, including
    4xx rejections and serialisation errors, is permanent.
    """
    if not isinstance(exc, TransportError):
        return False
    return exc.status is None or exc.status == 429 or exc.status >= 500


class BatchWriter:
    """Writes records to storage in fixed-size chunks with retry.

    Chunking bounds the request size only; correctness does not depend on it
    because every write is an idempotent upsert.
    """

    def __init__(
        self,
        storage: TimeSeriesStore,
        *,
        batch_size: int = int(WRITE_SETTINGS["BATCH_SIZE"]),
        max_retries: int = int(WRITE_SETTINGS["MAX_RETRIES"]),
        base_delay_seconds: float = float(WRITE_SETTINGS["BASE_DELAY_SECONDS"]),
        max_delay_seconds: Optional[float] = float(WRITE_SETTINGS["MAX_DELAY_SECONDS"]),
        is_transient: Callable[[BaseException], bool] = is_transient_write_error,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.storage = storage
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.is_transient = is_transient
        self.clock = clock or Clock()
        self._rng = rng or random.Random()

    async def write_batch(self, records: Iterable[Record], stop_event: asyncio.Event) -> int:
        """Write ``records`` in order and return how many were written.

        The stop event is checked before each record is buffered. When it is
        set the partially filled chunk is dropped and SyncCancelled is raised;
        the next cycle rewrites from the watermark.

        Raises
        ------
        RetriesExhaustedError
            A chunk kept failing transiently for the whole retry budget.
        RecordRejectedError
            A chunk failed with a non-transient error.
        SyncCancelled
            The stop event was set.
        """
        buffer: List[Record] = []
        written = 0
        for record in records:
            if stop_event.is_set():
                raise SyncCancelled(
                    f"Stop requested; discarding {len(buffer)} buffered records"
                )
            buffer.append(record)
            if len(buffer) == self.batch_size:
                await self._write_chunk(buffer, stop_event)
                written += len(buffer)
                buffer = []
        if buffer:
            await self._write_chunk(buffer, stop_event)
            written += len(buffer)
        return written

    async def _write_chunk(self, chunk: List[Record], stop_event: asyncio.Event) -> None:
        async def _sleep(seconds: float) -> None:
            if not await self.clock.sleep(seconds, stop_event):
                raise SyncCancelled("Stop requested while waiting to retry a write")

        delays = decorrelated_jitter_backoff(
            self.base_delay_seconds,
            self.max_retries,
            max_delay=self.max_delay_seconds,
            rng=self._rng,
        )
        try:
            await with_retry(
                lambda: self.storage.write_measurements(chunk),
                wait=wait_schedule(delays),
                is_transient=self.is_transient,
                max_retries=self.max_retries,
                sleep=_sleep,
            )
        except SyncCancelled:
            raise
        except Exception as exc:
            if self.is_transient(exc):
                raise RetriesExhaustedError(
                    f"Giving up on {len(chunk)} records after "
                    f"{self.max_retries + 1} attempts: {exc}",
                    attempts=self.max_retries + 1,
                ) from exc
            raise RecordRejectedError(
                f"Storage rejected {len(chunk)} records: {exc}"
            ) from exc
        LOGGER.debug(
            "Wrote %d records from %s to %s", len(chunk), chunk[0].time, chunk[-1].time
        )
