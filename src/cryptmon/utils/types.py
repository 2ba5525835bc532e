from __future__ import annotations

from dataclasses import dataclass

# ---- price-feed primitives ----

@dataclass(slots=True)
class PriceRecord:
    symbol: str
    price: float
    name: str = ""

# ---- notification primitives ----

@dataclass(frozen=True, slots=True)
class AlertMessage:
    """Rendered notification: `subject` for channels with a title, `body` for everything."""
    subject: str
    body: str
