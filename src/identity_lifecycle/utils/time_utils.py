from __future__ import annotations

import time
from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def now_iso() -> str:
    """Item timestamp format: UTC ISO-8601 with milliseconds and a Z suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today_iso() -> str:
    return utc_now().date().isoformat()


def parse_date(value: str | None) -> date | None:
    # Accepts "2024-12-31" or a full ISO timestamp.
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
