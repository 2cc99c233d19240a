"""Mapping between records and InfluxDB measurements.

This is the storage serialization boundary: the only place that knows the
measurement field names. Every record is written as one point whose
timestamp is the record's key.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

from influxdb_client import Point, WritePrecision
from pydantic import ValidationError

from core.exceptions import DecodeError
from core.records import RECORD_TYPES, Record, SeriesKind

# record attribute -> InfluxDB field name
FIELD_NAMES: Dict[SeriesKind, Dict[str, str]] = {
    SeriesKind.TARIFF: {
        "price_exc_tax": "ValueExcVat",
        "price_inc_tax": "ValueIncVat",
    },
    SeriesKind.CONSUMPTION: {
        "amount": "Consumption",
    },
    SeriesKind.PRICE: {
        "cost_exc_tax": "CostExcVat",
        "cost_inc_tax": "CostIncVat",
    },
}

# Canonical timestamp attribute per series
TIME_ATTRIBUTES: Dict[SeriesKind, str] = {
    SeriesKind.TARIFF: "valid_from",
    SeriesKind.CONSUMPTION: "interval_start",
    SeriesKind.PRICE: "time",
}

_KINDS_BY_TYPE = {record_type: kind for kind, record_type in RECORD_TYPES.items()}


def kind_of(record: Record) -> SeriesKind:
    try:
        return _KINDS_BY_TYPE[type(record)]
    except KeyError:
        raise TypeError(f"Not a series record: {type(record).__name__}") from None


def to_point(record: Record) -> Point:
    """Build the InfluxDB point for ``record`` at second precision."""
    kind = kind_of(record)
    point = Point(kind.value).time(record.time, WritePrecision.S)
    for attr, field in FIELD_NAMES[kind].items():
        point = point.field(field, float(getattr(record, attr)))
    return point


def from_row(kind: SeriesKind, row: Mapping[str, Any]) -> Record:
    """Build a record from one pivoted query row (``_time`` plus field columns)."""
    try:
        ts = row["_time"]
        values = {attr: float(row[field]) for attr, field in FIELD_NAMES[kind].items()}
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"Malformed {kind.value} row {dict(row)!r}: {exc}") from exc
    # pandas Timestamps come back from query_data_frame
    if hasattr(ts, "to_pydatetime"):
        ts = ts.to_pydatetime()
    values[TIME_ATTRIBUTES[kind]] = ts
    try:
        return RECORD_TYPES[kind](**values)
    except ValidationError as exc:
        raise DecodeError(f"Malformed {kind.value} row {dict(row)!r}: {exc}") from exc
