import asyncio

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, T0, page
from core.exceptions import DecodeError, TransportError
from core.records import SeriesKind, TariffRecord
from data_ingestion.api.base_client import Page, PaginatedAPIClient


class _TestClient(PaginatedAPIClient):
    def _build_request(self, kind, start_time):
        return f"{self.base_url}/{kind.label}?from={start_time:%Y%m%d}"


def _rate(minute: int) -> dict:
    return {
        "value_exc_vat": 1.0,
        "value_inc_vat": 1.05,
        "valid_from": f"2024-01-01T09:{minute:02d}:00Z",
    }


async def _collect(client, stop_event=None):
    stop_event = stop_event or asyncio.Event()
    return [r async for r in client.fetch(SeriesKind.TARIFF, T0, stop_event)]


@pytest.mark.asyncio
async def test_fetch_follows_next_cursor_until_empty():
    first = "https://api.test/tariff?from=20240101"
    session = FakeSession(
        {
            first: FakeResponse(payload=page([_rate(0)], next_url="https://api.test/p2")),
            "https://api.test/p2": FakeResponse(payload=page([_rate(30)], next_url="https://api.test/p3")),
            "https://api.test/p3": FakeResponse(payload=page([], next_url="https://api.test/p4")),
        }
    )
    client = _TestClient(session, base_url="https://api.test/")

    records = await _collect(client)

    assert [r.valid_from.minute for r in records] == [0, 30]
    # An empty page ends the listing even though it names a next page
    assert session.requested == [first, "https://api.test/p2", "https://api.test/p3"]


@pytest.mark.asyncio
async def test_fetch_concatenates_three_pages_until_next_is_null():
    first = "https://api.test/tariff?from=20240101"
    session = FakeSession(
        {
            first: FakeResponse(
                payload=page([_rate(0), _rate(30)], next_url="https://api.test/p2")
            ),
            "https://api.test/p2": FakeResponse(
                payload=page([_rate(35)], next_url="https://api.test/p3")
            ),
            "https://api.test/p3": FakeResponse(payload=page([_rate(40), _rate(45)])),
        }
    )

    records = await _collect(_TestClient(session, base_url="https://api.test"))

    assert [r.valid_from.minute for r in records] == [0, 30, 35, 40, 45]
    assert session.requested == [first, "https://api.test/p2", "https://api.test/p3"]


@pytest.mark.asyncio
async def test_blank_next_ends_listing():
    session = FakeSession(
        {"https://api.test/tariff?from=20240101": FakeResponse(payload=page([_rate(0)], next_url="  "))}
    )

    records = await _collect(_TestClient(session, base_url="https://api.test"))

    assert len(records) == 1


@pytest.mark.asyncio
async def test_stop_event_checked_before_each_page():
    session = FakeSession(
        {
            "https://api.test/tariff?from=20240101": FakeResponse(
                payload=page([_rate(0)], next_url="https://api.test/p2")
            ),
        }
    )
    client = _TestClient(session, base_url="https://api.test")
    stop_event = asyncio.Event()

    records = []
    async for record in client.fetch(SeriesKind.TARIFF, T0, stop_event):
        records.append(record)
        stop_event.set()

    assert len(records) == 1
    assert session.requested == ["https://api.test/tariff?from=20240101"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 404, 429, 500, 503])
async def test_http_error_status_raises_transport_error(status):
    session = FakeSession(
        {"https://api.test/tariff?from=20240101": FakeResponse(status=status, payload={})}
    )

    with pytest.raises(TransportError) as exc_info:
        await _collect(_TestClient(session, base_url="https://api.test"))

    assert exc_info.value.status == status


@pytest.mark.asyncio
async def test_connection_error_raises_transport_error_without_status():
    session = FakeSession(
        {"https://api.test/tariff?from=20240101": aiohttp.ClientConnectionError("reset")}
    )

    with pytest.raises(TransportError) as exc_info:
        await _collect(_TestClient(session, base_url="https://api.test"))

    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_invalid_json_raises_decode_error():
    session = FakeSession(
        {
            "https://api.test/tariff?from=20240101": FakeResponse(
                json_error=ValueError("Expecting value")
            )
        }
    )

    with pytest.raises(DecodeError):
        await _collect(_TestClient(session, base_url="https://api.test"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"next": None},
        {"results": [{"value_inc_vat": 1.0, "valid_from": "2024-01-01T09:00:00Z"}]},
        {"results": [dict(_rate(0), valid_from="not a date")]},
        ["not", "an", "object"],
    ],
)
async def test_unexpected_payload_raises_decode_error(payload):
    session = FakeSession({"https://api.test/tariff?from=20240101": FakeResponse(payload=payload)})

    with pytest.raises(DecodeError):
        await _collect(_TestClient(session, base_url="https://api.test"))


def test_page_model_is_generic():
    parsed = Page[TariffRecord].model_validate(page([_rate(0)]))

    assert isinstance(parsed.results[0], TariffRecord)
    assert parsed.next is None
