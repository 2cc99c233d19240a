"""Time utilities.

Parsing and formatting helpers are pure and return/operate on timezone-aware
UTC-normalized datetime objects. ``Clock`` is the one stateful piece: it is
the loops' source of "now" and of cancellable waiting, and is swapped for a
fake in tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

__all__ = [
    "parse_to_utc",
    "format_rfc3339_z",
    "Clock",
]


def parse_to_utc(timestamp: Any) -> datetime:
    """Parse various timestamp representations into a UTC-aware datetime.

    Supported inputs:
    - ISO 8601 strings (e.g., "2023-03-26T00:30:00Z", "2023-03-26T01:30:00+01:00")
    - Numeric seconds since UNIX epoch (int or float)
    - datetime instances (naive assumed as UTC)
    - pandas Timestamps (they are datetime subclasses)

    Raises:
        ValueError: If the input cannot be parsed into a datetime.
    """
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            # Treat naive datetimes as UTC by convention of this utility
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        try:
            return datetime.fromtimestamp(float(timestamp), tz=timezone.utc)
        except (OverflowError, OSError) as exc:  # platform-dependent errors
            raise ValueError(
                f"Numeric timestamp out of valid range: {timestamp}"
            ) from exc

    if isinstance(timestamp, str):
        s = timestamp.strip()
        # Normalize 'Z' suffix to +00:00 for fromisoformat
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError as exc:
            raise ValueError(
                f"Unsupported timestamp string format: {timestamp}"
            ) from exc
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    raise ValueError(
        f"Unsupported timestamp type: {type(timestamp).__name__}. "
        "Expected ISO 8601 string, numeric seconds, or datetime."
    )


def format_rfc3339_z(dt: datetime) -> str:
    """Format ``dt`` as second-precision RFC 3339 in UTC with a ``Z`` suffix.

    This is the form both the Octopus ``period_from`` parameter and Flux
    ``range()`` bounds accept.
    """
    dt = parse_to_utc(dt)
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


class Clock:
    """Wall clock with stop-aware sleeping."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float, stop_event: asyncio.Event) -> bool:
        """Wait ``seconds`` unless ``stop_event`` fires first.

        Returns True when the full delay elapsed and False when the wait was
        cut short by the stop event.
        """
        if stop_event.is_set():
            return False
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=max(seconds, 0.0))
        except asyncio.TimeoutError:
            return True
        return False
