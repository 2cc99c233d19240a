from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from core.records import ConsumptionRecord, CostRecord, SeriesKind, TariffRecord


def test_tariff_record_from_api_payload():
    record = TariffRecord.model_validate(
        {
            "value_exc_vat": 15.0,
            "value_inc_vat": 15.75,
            "valid_from": "2024-01-01T00:00:00Z",
            "valid_to": "2024-01-01T00:30:00Z",
            "payment_method": None,
        }
    )

    assert record.price_exc_tax == 15.0
    assert record.price_inc_tax == 15.75
    assert record.time == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert record.valid_to == datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)


def test_consumption_offset_is_normalised_to_utc():
    record = ConsumptionRecord.model_validate(
        {
            "consumption": 0.312,
            "interval_start": "2023-06-01T01:00:00+01:00",
            "interval_end": "2023-06-01T01:30:00+01:00",
        }
    )

    assert record.interval_start == datetime(2023, 6, 1, 0, 0, tzinfo=timezone.utc)
    assert record.interval_start.utcoffset().total_seconds() == 0
    assert record.time == record.interval_start


def test_records_accept_attribute_names():
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    record = ConsumptionRecord(interval_start=ts, amount=1.5)

    assert record.amount == 1.5
    assert record.interval_end is None


def test_records_are_immutable():
    record = CostRecord(time="2024-01-01T00:00:00Z", cost_exc_tax=1.0, cost_inc_tax=1.05)

    with pytest.raises(ValidationError):
        record.cost_exc_tax = 2.0


def test_unparseable_timestamp_is_rejected():
    with pytest.raises(ValidationError):
        ConsumptionRecord(interval_start="yesterday", amount=1.0)


def test_series_kind_names():
    assert SeriesKind.TARIFF.value == "Tariff"
    assert SeriesKind.PRICE.label == "price"
