from __future__ import annotations

from datetime import datetime

import aiohttp

from core.records import SeriesKind
from data_ingestion.api.base_client import PaginatedAPIClient
from utils.time_utils import format_rfc3339_z


class OctopusClient(PaginatedAPIClient):
    """Client for the Octopus Energy REST API (unit rates and consumption).

    Usage parameters for fetch:
    - kind: SeriesKind.TARIFF reads the standard unit rates of the configured
      tariff; SeriesKind.CONSUMPTION reads the half-hourly readings of the
      configured electricity meter.
    - start_time: sent as ``period_from``.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str,
        product_code: str,
        tariff_code: str,
        mpan: str,
        serial: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        super().__init__(session, base_url=base_url, timeout_seconds=timeout_seconds)
        self.product_code = product_code
        self.tariff_code = tariff_code
        self.mpan = mpan
        self.serial = serial

    def _build_request(self, kind: SeriesKind, start_time: datetime) -> str:
        period_from = format_rfc3339_z(start_time)
        if kind is SeriesKind.TARIFF:
            return (
                f"{self.base_url}/v1/products/{self.product_code}"
                f"/electricity-tariffs/{self.tariff_code}/standard-unit-rates/"
                f"?period_from={period_from}"
            )
        if kind is SeriesKind.CONSUMPTION:
            return (
                f"{self.base_url}/v1/electricity-meter-points/{self.mpan}"
                f"/meters/{self.serial}/consumption/"
                f"?period_from={period_from}"
            )
        raise ValueError(f"Series '{kind.label}' is not served by the Octopus API")
