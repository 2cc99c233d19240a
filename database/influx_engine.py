from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

import aiohttp
import pandas as pd
from influxdb_client import WritePrecision
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync
from influxdb_client.rest import ApiException

from core.exceptions import StorageQueryError, TransportError
from core.records import Record, SeriesKind
from database.measurements import FIELD_NAMES, from_row, to_point

LOGGER = logging.getLogger(__name__)


class TimeSeriesStore(Protocol):
    """What the sync pipeline needs from the time-series storage."""

    bucket: str

    async def query(self, flux: str, kind: SeriesKind) -> List[Record]:
        ...

    async def write_measurements(self, records: Sequence[Record]) -> None:
        ...


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class InfluxStorage:
    """Asynchronous InfluxDB storage for the energy series.

    This class is designed for dependency injection: callers provide an
    existing, authenticated InfluxDBClientAsync. Writes rely on InfluxDB's
    point identity (measurement, tag set, timestamp): writing the same point
    again overwrites its fields, so replaying a batch is harmless.
    """

    def __init__(self, client: InfluxDBClientAsync, *, bucket: str, org: str) -> None:
        self._client = client
        self.bucket = bucket
        self.org = org

    async def query(self, flux: str, kind: SeriesKind) -> List[Record]:
        """Run a pivoted Flux query and decode each row into a ``kind`` record.

        Raises
        ------
        StorageQueryError
            When the query cannot be executed.
        DecodeError
            When a returned row does not match the series' fields.
        """
        try:
            result = await self._client.query_api().query_data_frame(
                query=flux, org=self.org
            )
        except (ApiException, InfluxDBError) as exc:
            raise StorageQueryError(
                f"{kind.value} query failed with HTTP {_status_of(exc)}: {exc}"
            ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise StorageQueryError(f"{kind.value} query failed: {exc!r}") from exc

        # Several result tables come back as a list of frames
        frames = result if isinstance(result, list) else [result]
        frames = [f for f in frames if f is not None and not f.empty]
        if not frames:
            return []
        df = pd.concat(frames, ignore_index=True)

        columns = ["_time", *FIELD_NAMES[kind].values()]
        records: List[Record] = []
        skipped = 0
        for row in df.to_dict(orient="records"):
            if any(pd.isna(row.get(c)) for c in columns):
                skipped += 1
                continue
            records.append(from_row(kind, row))
        if skipped:
            LOGGER.warning("Skipped %d incomplete %s rows", skipped, kind.value)
        return records

    async def write_measurements(self, records: Sequence[Record]) -> None:
        """Write ``records`` as points in a single request.

        Failures reaching the server or answered with an HTTP error surface
        as TransportError carrying the status; anything else (for example a
        record that cannot be serialised) propagates unchanged.
        """
        if not records:
            return
        points = [to_point(r) for r in records]
        try:
            await self._client.write_api().write(
                bucket=self.bucket,
                org=self.org,
                record=points,
                write_precision=WritePrecision.S,
            )
        except (ApiException, InfluxDBError) as exc:
            status = _status_of(exc)
            raise TransportError(
                f"Write of {len(points)} points failed with HTTP {status}: {exc}",
                status=status,
            ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"Write of {len(points)} points failed: {exc!r}"
            ) from exc
