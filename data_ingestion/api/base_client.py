from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Generic, List, Optional, Type, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from core.exceptions import DecodeError, TransportError
from core.records import RECORD_TYPES, Record, SeriesKind

LOGGER = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class Page(BaseModel, Generic[RecordT]):
    """One page of a cursor-paginated listing."""

    results: List[RecordT]
    next: Optional[str] = None


class PaginatedAPIClient(abc.ABC):
    """Abstract base class for cursor-paginated REST APIs.

    Subclasses only decide which URL starts a listing. Following the ``next``
    cursor, status checking and decoding are shared. A single, already
    authenticated aiohttp.ClientSession must be supplied by the caller.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def fetch(
        self,
        kind: SeriesKind,
        start_time: datetime,
        stop_event: asyncio.Event,
    ) -> AsyncIterator[Record]:
        """Yield every record of ``kind`` from ``start_time`` onwards.

        Records are yielded page by page as they arrive. The stop event is
        checked before each page request; once set, the sequence simply ends.
        Errors end the sequence too: resuming means calling ``fetch`` again
        with a new start time.
        """
        record_type = RECORD_TYPES[kind]
        url: Optional[str] = self._build_request(kind, start_time)
        pages = 0
        while url:
            if stop_event.is_set():
                LOGGER.debug("Stop requested; abandoning %s listing", kind.label)
                return
            payload = await self._send_request(url)
            page = self._parse_response(payload, record_type)
            pages += 1
            LOGGER.debug(
                "Fetched %s page %d with %d results", kind.label, pages, len(page.results)
            )
            if not page.results:
                return
            for record in page.results:
                yield record
            url = page.next.strip() if page.next and page.next.strip() else None

    @abc.abstractmethod
    def _build_request(self, kind: SeriesKind, start_time: datetime) -> str:
        """Return the absolute URL of the first page of the listing."""

    async def _send_request(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body."""
        try:
            async with self.session.get(url, timeout=self._timeout) as resp:
                if not 200 <= resp.status < 300:
                    raise TransportError(
                        f"GET {url} returned HTTP {resp.status}", status=resp.status
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as exc:
                    raise DecodeError(f"GET {url} returned invalid JSON: {exc}") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"GET {url} timed out") from exc

    def _parse_response(self, payload: Any, record_type: Type[RecordT]) -> Page[RecordT]:
        try:
            return Page[record_type].model_validate(payload)  # type: ignore[valid-type]
        except ValidationError as exc:
            raise DecodeError(
                f"Unexpected {record_type.__name__} page payload: {exc}"
            ) from exc
