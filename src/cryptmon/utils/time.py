from __future__ import annotations

import time
from datetime import datetime, timezone

# --- wall-clock helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def utc_dt(ts: float | int) -> datetime:
    """Epoch seconds -> timezone-aware UTC datetime."""
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)

def iso_utc(ts: float | int | None) -> str | None:
    """Epoch seconds -> ISO-8601 string (for log fields). None passes through."""
    if ts is None:
        return None
    return utc_dt(ts).isoformat(timespec="seconds")

