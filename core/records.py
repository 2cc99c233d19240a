"""Immutable record types for the three energy series.

Each record has exactly one canonical timestamp field. The generic ``time``
property exposes it read-only so that sorting, watermarks and joins can treat
all series alike. API field names appear only as pydantic aliases; storage
field names live in ``database.measurements``.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.time_utils import parse_to_utc


class SeriesKind(str, enum.Enum):
    """Named series; the value is the InfluxDB measurement name."""

    TARIFF = "Tariff"
    CONSUMPTION = "Consumption"
    PRICE = "Price"

    @property
    def label(self) -> str:
        return self.name.lower()


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TariffRecord(_Record):
    """Unit rate valid for one slot, in pence per kWh."""

    valid_from: datetime
    valid_to: Optional[datetime] = None
    price_exc_tax: float = Field(alias="value_exc_vat")
    price_inc_tax: float = Field(alias="value_inc_vat")

    @field_validator("valid_from", "valid_to", mode="before")
    @classmethod
    def _to_utc(cls, value):
        return None if value is None else parse_to_utc(value)

    @property
    def time(self) -> datetime:
        return self.valid_from

    def __str__(self) -> str:
        return f"{self.time.isoformat()} = {self.price_inc_tax}p/kWh ({self.price_exc_tax}p/kWh)"


class ConsumptionRecord(_Record):
    """Energy imported during one slot, in kWh."""

    interval_start: datetime
    interval_end: Optional[datetime] = None
    amount: float = Field(alias="consumption")

    @field_validator("interval_start", "interval_end", mode="before")
    @classmethod
    def _to_utc(cls, value):
        return None if value is None else parse_to_utc(value)

    @property
    def time(self) -> datetime:
        return self.interval_start

    def __str__(self) -> str:
        return f"{self.time.isoformat()} = {self.amount}kWh"


class CostRecord(_Record):
    """Cost of one slot's consumption at that slot's tariff."""

    time: datetime
    cost_exc_tax: float
    cost_inc_tax: float

    @field_validator("time", mode="before")
    @classmethod
    def _to_utc(cls, value):
        return parse_to_utc(value)

    def __str__(self) -> str:
        return f"{self.time.isoformat()}: {self.cost_exc_tax} ({self.cost_inc_tax})"


Record = Union[TariffRecord, ConsumptionRecord, CostRecord]

RECORD_TYPES = {
    SeriesKind.TARIFF: TariffRecord,
    SeriesKind.CONSUMPTION: ConsumptionRecord,
    SeriesKind.PRICE: CostRecord,
}
