from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import List

import aiohttp
import typer
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from core.config_loader import Settings, load_settings
from core.sync_loop import (
    ConsumptionSyncLoop,
    PriceSyncLoop,
    SeriesSyncLoop,
    TariffSyncLoop,
    run_all,
)
from data_ingestion.api.octopus_client import OctopusClient
from database.batch_writer import BatchWriter
from database.influx_engine import InfluxStorage, TimeSeriesStore
from database.watermark import WatermarkStore
from utils.logger import setup_logger
from utils.time_utils import Clock

app = typer.Typer(help="Sync Octopus Energy tariff, consumption and cost into InfluxDB.")


def build_loops(
    settings: Settings,
    session: aiohttp.ClientSession,
    storage: TimeSeriesStore,
    clock: Clock,
) -> List[SeriesSyncLoop]:
    """Wire the tariff, consumption and price loops around shared handles."""
    client = OctopusClient(
        session,
        base_url=settings.octopus_base_url,
        product_code=settings.tariff_product_code,
        tariff_code=settings.tariff_code,
        mpan=settings.meter_mpan,
        serial=settings.meter_serial,
        timeout_seconds=settings.http_timeout_seconds,
    )
    watermarks = WatermarkStore(storage)

    def _writer() -> BatchWriter:
        return BatchWriter(
            storage,
            batch_size=settings.write_batch_size,
            max_retries=settings.write_max_retries,
            base_delay_seconds=settings.write_base_delay_seconds,
            max_delay_seconds=settings.write_max_delay_seconds,
            clock=clock,
        )

    common = dict(
        watermarks=watermarks,
        clock=clock,
        interval_seconds=settings.sync_interval_seconds,
        epoch_start=settings.epoch_start,
    )
    return [
        TariffSyncLoop(client=client, writer=_writer(), **common),
        ConsumptionSyncLoop(client=client, writer=_writer(), **common),
        PriceSyncLoop(storage=storage, writer=_writer(), **common),
    ]


async def _run_async(settings: Settings, *, once: bool) -> None:  # pragma: no cover - orchestrator wiring
    log = logging.getLogger("main")
    log.info("Starting up")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Signal handlers are unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    auth = aiohttp.BasicAuth(settings.octopus_api_key, "")
    async with aiohttp.ClientSession(auth=auth) as session, InfluxDBClientAsync(
        url=settings.influx_url, token=settings.influx_token, org=settings.influx_org
    ) as influx:
        storage = InfluxStorage(influx, bucket=settings.influx_bucket, org=settings.influx_org)
        loops = build_loops(settings, session, storage, Clock())
        if once:
            # Upstream series first so the price loop sees this run's data
            for sync in loops:
                written = await sync.run_cycle(stop_event)
                log.info("%s: wrote %d records", sync.name, written)
        else:
            await run_all(loops, stop_event)
    log.info("Shutdown complete.")


@app.command()
def run(
    once: bool = typer.Option(
        False, "--once", help="Run a single cycle of each series and exit."
    ),
) -> None:
    """Keep the tariff, consumption and price series in sync."""
    settings = load_settings()
    setup_logger(settings)
    try:
        asyncio.run(_run_async(settings, once=once))
    except Exception:
        logging.getLogger("main").exception("Sync terminated unexpectedly")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
