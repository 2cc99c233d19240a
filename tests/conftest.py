from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from core.records import ConsumptionRecord, Record, SeriesKind, TariffRecord
from database.measurements import kind_of
from utils.time_utils import parse_to_utc

_RANGE = re.compile(r"range\(start: ([^,)]+)(?:, stop: ([^)]+))?\)")

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
SLOT = timedelta(minutes=30)


class FakeClock:
    """Clock whose sleeps return immediately and are recorded."""

    def __init__(self, now: datetime = datetime(2024, 1, 2, tzinfo=timezone.utc)) -> None:
        self._now = now
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float, stop_event: asyncio.Event) -> bool:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)
        return not stop_event.is_set()


class FakeStore:
    """In-memory series store keyed like InfluxDB points: (measurement, time).

    Understands the subset of Flux the pipeline emits: last()/first()
    selectors and absolute range() bounds.
    """

    bucket = "energy"

    def __init__(self) -> None:
        self.points: Dict[Tuple[SeriesKind, datetime], Record] = {}
        self.queries: List[str] = []
        self.write_calls: List[List[Record]] = []
        self.write_failures: List[BaseException] = []
        self.query_error: Optional[BaseException] = None

    def seed(self, records: Sequence[Record]) -> None:
        for r in records:
            self.points[(kind_of(r), r.time)] = r

    def series(self, kind: SeriesKind) -> List[Record]:
        return sorted(
            (r for (k, _), r in self.points.items() if k is kind), key=lambda r: r.time
        )

    async def query(self, flux: str, kind: SeriesKind) -> List[Record]:
        self.queries.append(flux)
        if self.query_error is not None:
            raise self.query_error
        records = self.series(kind)
        if "|> last()" in flux:
            return records[-1:]
        if "|> first()" in flux:
            return records[:1]
        match = _RANGE.search(flux)
        if match and not match.group(1).startswith("-"):
            start = parse_to_utc(match.group(1))
            records = [r for r in records if r.time >= start]
            if match.group(2):
                stop = parse_to_utc(match.group(2))
                records = [r for r in records if r.time < stop]
        return records

    async def write_measurements(self, records: Sequence[Record]) -> None:
        self.write_calls.append(list(records))
        if self.write_failures:
            raise self.write_failures.pop(0)
        self.seed(records)


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, json_error: Optional[Exception] = None) -> None:
        self.status = status
        self._payload = payload
        self._json_error = json_error

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    """Stand-in for aiohttp.ClientSession serving canned responses by URL."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.requested: List[str] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requested.append(url)
        response = self.routes[url]
        if isinstance(response, BaseException):
            raise response
        return response


def tariff(ts: datetime, exc: float = 10.0, inc: float = 10.5) -> TariffRecord:
    return TariffRecord(valid_from=ts, valid_to=ts + SLOT, price_exc_tax=exc, price_inc_tax=inc)


def consumption(ts: datetime, amount: float = 0.5) -> ConsumptionRecord:
    return ConsumptionRecord(interval_start=ts, interval_end=ts + SLOT, amount=amount)


def tariff_payload(ts: datetime, exc: float = 10.0, inc: float = 10.5) -> Dict[str, Any]:
    return {
        "value_exc_vat": exc,
        "value_inc_vat": inc,
        "valid_from": ts.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "valid_to": (ts + SLOT).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "payment_method": None,
    }


def page(results: List[Dict[str, Any]], next_url: Optional[str] = None) -> Dict[str, Any]:
    return {"count": len(results), "next": next_url, "previous": None, "results": results}


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stop_event() -> asyncio.Event:
    return asyncio.Event()
