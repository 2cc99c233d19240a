from __future__ import annotations

import abc
import asyncio
import enum
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from config import EPOCH_START_ISO, SLOT_MINUTES, SYNC_INTERVAL_SECONDS
from core.exceptions import EnergySyncError, SyncCancelled
from core.records import ConsumptionRecord, Record, SeriesKind, TariffRecord
from data_ingestion.api.base_client import PaginatedAPIClient
from database.batch_writer import BatchWriter
from database.flux_queries import range_flux
from database.influx_engine import TimeSeriesStore
from database.watermark import WatermarkStore
from features.cost_join import join_consumption_tariff
from utils.time_utils import Clock, parse_to_utc

LOGGER = logging.getLogger(__name__)

SLOT = timedelta(minutes=SLOT_MINUTES)
EPOCH_START = parse_to_utc(EPOCH_START_ISO)


class LoopState(str, enum.Enum):
    IDLE = "idle"
    READING_WATERMARK = "reading_watermark"
    FETCHING = "fetching"
    QUERYING = "querying"
    JOINING = "joining"
    WRITING = "writing"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


async def run_periodically(
    interval_seconds: float,
    stop_event: asyncio.Event,
    cycle_fn: Callable[[], Awaitable[object]],
    *,
    clock: Clock,
    name: str,
) -> None:
    """Call ``cycle_fn`` every ``interval_seconds`` until ``stop_event`` is set.

    A failing cycle is logged and the loop carries on with the next one. Only
    the stop event (or SyncCancelled raised by the cycle) ends the loop.
    Task cancellation propagates as usual.
    """
    while not stop_event.is_set():
        try:
            await cycle_fn()
        except SyncCancelled as exc:
            LOGGER.info("%s sync stopping: %s", name, exc)
            break
        except EnergySyncError as exc:
            if stop_event.is_set():
                break
            LOGGER.warning(
                "%s sync cycle skipped: %s: %s",
                name,
                type(exc).__name__,
                exc,
                extra={"series": name},
            )
        except Exception as exc:
            if stop_event.is_set():
                break
            LOGGER.warning(
                "Error in %s sync: %s", name, exc, exc_info=True, extra={"series": name}
            )
        if not await clock.sleep(interval_seconds, stop_event):
            break
    LOGGER.info("%s sync stopped", name)


class SeriesSyncLoop(abc.ABC):
    """Keeps one stored series up to date, one cycle per interval.

    A cycle reads the watermark, collects everything newer than it, sorts it
    and hands it to the batch writer. Subclasses decide where new records
    come from.
    """

    kind: SeriesKind

    def __init__(
        self,
        *,
        watermarks: WatermarkStore,
        writer: BatchWriter,
        clock: Optional[Clock] = None,
        interval_seconds: float = SYNC_INTERVAL_SECONDS,
        epoch_start: datetime | str = EPOCH_START,
    ) -> None:
        self.watermarks = watermarks
        self.writer = writer
        self.clock = clock or Clock()
        self.interval_seconds = interval_seconds
        self.epoch_start = parse_to_utc(epoch_start)
        self.state = LoopState.IDLE

    @property
    def name(self) -> str:
        return self.kind.label

    async def resume_time(self) -> datetime:
        """First slot that still has to be ingested."""
        latest = await self.watermarks.latest_of(self.kind)
        if latest is None:
            return self.epoch_start
        return latest.time + SLOT

    @abc.abstractmethod
    async def collect(self, start: datetime, stop_event: asyncio.Event) -> List[Record]:
        """Return the records of this series from ``start`` onwards."""

    async def run_cycle(self, stop_event: asyncio.Event) -> int:
        """Run one sync cycle and return the number of records written."""
        self.state = LoopState.READING_WATERMARK
        start = await self.resume_time()

        records = await self.collect(start, stop_event)
        if stop_event.is_set():
            raise SyncCancelled(f"Stop requested during {self.name} sync")
        if not records:
            LOGGER.info(
                "No new %s entries since %s", self.name, start, extra={"series": self.name}
            )
            self.state = LoopState.IDLE
            return 0

        ordered = sorted(records, key=lambda r: r.time)
        LOGGER.info(
            "Got %d new %s entries from %s to %s",
            len(ordered),
            self.name,
            ordered[0].time,
            ordered[-1].time,
            extra={"series": self.name},
        )
        self.state = LoopState.WRITING
        written = await self.writer.write_batch(ordered, stop_event)
        self.state = LoopState.IDLE
        return written

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run cycles until the stop event is set."""

        async def _cycle() -> None:
            try:
                await self.run_cycle(stop_event)
            finally:
                self.state = LoopState.SLEEPING

        LOGGER.info("Starting %s sync every %ss", self.name, self.interval_seconds)
        try:
            await run_periodically(
                self.interval_seconds,
                stop_event,
                _cycle,
                clock=self.clock,
                name=self.name,
            )
        finally:
            self.state = LoopState.STOPPED


class RemoteSeriesSyncLoop(SeriesSyncLoop):
    """Sync loop for a series read from the remote API."""

    def __init__(self, *, client: PaginatedAPIClient, **kwargs) -> None:
        super().__init__(**kwargs)
        self.client = client

    async def collect(self, start: datetime, stop_event: asyncio.Event) -> List[Record]:
        self.state = LoopState.FETCHING
        records: List[Record] = []
        async for record in self.client.fetch(self.kind, start, stop_event):
            records.append(record)
        return records


class TariffSyncLoop(RemoteSeriesSyncLoop):
    kind = SeriesKind.TARIFF


class ConsumptionSyncLoop(RemoteSeriesSyncLoop):
    kind = SeriesKind.CONSUMPTION


class PriceSyncLoop(SeriesSyncLoop):
    """Derives the cost series from the stored consumption and tariff series.

    Never calls the remote API: it only reads what the other two loops have
    already committed, so it can lag them by up to one interval.
    """

    kind = SeriesKind.PRICE

    def __init__(self, *, storage: TimeSeriesStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.storage = storage

    async def resume_time(self) -> datetime:
        latest = await self.watermarks.latest_of(SeriesKind.PRICE)
        if latest is not None:
            return latest.time + SLOT
        # First run: nothing can be priced before the first reading
        earliest = await self.watermarks.earliest_of(SeriesKind.CONSUMPTION)
        if earliest is None:
            return self.epoch_start
        return earliest.time

    async def collect(self, start: datetime, stop_event: asyncio.Event) -> List[Record]:
        self.state = LoopState.QUERYING
        now = self.clock.now()
        bucket = self.storage.bucket

        consumption: Sequence[ConsumptionRecord] = await self.storage.query(
            range_flux(bucket, SeriesKind.CONSUMPTION, start, now), SeriesKind.CONSUMPTION
        )
        if not consumption:
            return []
        tariff: Sequence[TariffRecord] = await self.storage.query(
            range_flux(bucket, SeriesKind.TARIFF, start, now), SeriesKind.TARIFF
        )
        _log_range("tariff", tariff, start)
        _log_range("consumption", consumption, start)

        self.state = LoopState.JOINING
        return list(join_consumption_tariff(consumption, tariff))


def _log_range(label: str, records: Sequence[Record], requested: datetime) -> None:
    if not records:
        LOGGER.info("Got 0 %s entries - requested = %s", label, requested)
        return
    LOGGER.info(
        "Got %d %s entries from %s to %s - requested = %s",
        len(records),
        label,
        records[0].time,
        records[-1].time,
        requested,
    )


async def run_all(loops: Iterable[SeriesSyncLoop], stop_event: asyncio.Event) -> None:
    """Run every loop as its own task until the stop event ends them all."""
    tasks = [
        asyncio.create_task(loop.run(stop_event), name=f"{loop.name}-sync")
        for loop in loops
    ]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
