"""Derivation of the cost series from consumption and tariff.

Pure functions only; the price sync loop does the I/O around them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List

from core.records import ConsumptionRecord, CostRecord, TariffRecord

# Consumption is billed to two decimal places of a kWh
CONSUMPTION_DECIMALS = 2


def slot_cost(consumption: ConsumptionRecord, tariff: TariffRecord) -> CostRecord:
    """Cost of one slot. Consumption is rounded before it is multiplied."""
    amount = round(consumption.amount, CONSUMPTION_DECIMALS)
    return CostRecord(
        time=tariff.valid_from,
        cost_exc_tax=tariff.price_exc_tax * amount,
        cost_inc_tax=tariff.price_inc_tax * amount,
    )


def join_consumption_tariff(
    consumption: Iterable[ConsumptionRecord],
    tariff: Iterable[TariffRecord],
) -> List[CostRecord]:
    """Equi-join consumption and tariff on slot start and price each match.

    Slots present on only one side are dropped: without both a reading and a
    rate there is no cost. The result is ordered by time whatever the input
    order.
    """
    rates: Dict[datetime, TariffRecord] = {t.valid_from: t for t in tariff}
    costs = [
        slot_cost(c, rates[c.interval_start])
        for c in consumption
        if c.interval_start in rates
    ]
    costs.sort(key=lambda r: r.time)
    return costs
