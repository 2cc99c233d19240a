from __future__ import annotations

import logging
from typing import Optional

from config import WATERMARK_LOOKAHEAD, WATERMARK_LOOKBACK
from core.records import Record, SeriesKind
from database.flux_queries import earliest_record_flux, latest_record_flux
from database.influx_engine import TimeSeriesStore

LOGGER = logging.getLogger(__name__)


class WatermarkStore:
    """Looks up the edges of what is already stored for a series.

    Nothing is cached: every call queries storage, so a loop always resumes
    from what was durably written, including by a previous process.
    Storage failures propagate as StorageQueryError.
    """

    def __init__(
        self,
        storage: TimeSeriesStore,
        *,
        lookback: str = WATERMARK_LOOKBACK,
        lookahead: str = WATERMARK_LOOKAHEAD,
    ) -> None:
        self.storage = storage
        self.lookback = lookback
        self.lookahead = lookahead

    async def latest_of(self, kind: SeriesKind) -> Optional[Record]:
        """Return the newest stored record of ``kind``, or None if there is none."""
        flux = latest_record_flux(
            self.storage.bucket, kind, lookback=self.lookback, lookahead=self.lookahead
        )
        records = await self.storage.query(flux, kind)
        if not records:
            LOGGER.debug("No stored %s records in window", kind.label)
            return None
        return max(records, key=lambda r: r.time)

    async def earliest_of(self, kind: SeriesKind) -> Optional[Record]:
        """Return the oldest stored record of ``kind`` within the lookback window."""
        flux = earliest_record_flux(
            self.storage.bucket, kind, lookback=self.lookback, lookahead=self.lookahead
        )
        records = await self.storage.query(flux, kind)
        if not records:
            return None
        return min(records, key=lambda r: r.time)
