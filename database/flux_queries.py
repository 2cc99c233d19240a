"""Helpers to build the Flux queries the sync loops run against InfluxDB.

These functions are deliberately pure: they just return Flux strings based on
parameters, leaving execution to the caller.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from config import WATERMARK_LOOKAHEAD, WATERMARK_LOOKBACK
from core.records import SeriesKind
from utils.time_utils import format_rfc3339_z

_PIVOT = '|> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")'


def _edge_record_flux(
    bucket: str,
    kind: SeriesKind,
    selector: str,
    lookback: str,
    lookahead: str,
) -> str:
    return f"""
from(bucket: "{bucket}")
|> range(start: {lookback}, stop: {lookahead})
|> filter(fn: (r) => r._measurement == "{kind.value}")
|> sort(columns: ["_time"])
|> {selector}()
{_PIVOT}
""".strip()


def latest_record_flux(
    bucket: str,
    kind: SeriesKind,
    *,
    lookback: str = WATERMARK_LOOKBACK,
    lookahead: str = WATERMARK_LOOKAHEAD,
) -> str:
    """Flux returning the newest stored record of a series.

    The range is bounded so that the lookup never scans the whole bucket;
    the stop bound reaches into the future to include tariffs that are
    published ahead of time.
    """

    return _edge_record_flux(bucket, kind, "last", lookback, lookahead)


def earliest_record_flux(
    bucket: str,
    kind: SeriesKind,
    *,
    lookback: str = WATERMARK_LOOKBACK,
    lookahead: str = WATERMARK_LOOKAHEAD,
) -> str:
    """Flux returning the oldest stored record of a series within the window."""

    return _edge_record_flux(bucket, kind, "first", lookback, lookahead)


def range_flux(
    bucket: str,
    kind: SeriesKind,
    start: datetime,
    stop: Optional[datetime] = None,
) -> str:
    """Flux returning every record of a series in ``[start, stop)``, oldest first."""

    bounds = f"start: {format_rfc3339_z(start)}"
    if stop is not None:
        bounds += f", stop: {format_rfc3339_z(stop)}"

    return f"""
from(bucket: "{bucket}")
|> range({bounds})
|> filter(fn: (r) => r._measurement == "{kind.value}")
{_PIVOT}
|> sort(columns: ["_time"])
""".strip()
