from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from cryptmon.alerts.rules import AlertRule

@dataclass(slots=True)
class AlertState:
    rule: AlertRule
    general_suppress_until: float                  # epoch s; no re-notify before this
    last_observed_price: float = 0.0
    has_fired_before: bool = False
    watermark_baseline: Optional[float] = None     # price at the last notification
    watermark_suppress_until: Optional[float] = None

    def is_quiescent(self, now: float) -> bool:
        return self.has_fired_before and now < self.general_suppress_until

    def in_watermark_window(self, now: float) -> bool:
        return self.watermark_suppress_until is not None and now < self.watermark_suppress_until

    def arm(
        self,
        price: float,
        now: float,
        general_sleep_s: float,
        watermark_sleep_s: Optional[float] = None,
    ) -> None:
        """Start the suppression windows after a notification decision."""
        self.general_suppress_until = now + general_sleep_s
        if watermark_sleep_s is not None:
            self.watermark_baseline = price
            self.watermark_suppress_until = now + watermark_sleep_s
        self.has_fired_before = True

# table order == config order
def build_state_table(rules: Iterable[AlertRule], now: float) -> list[AlertState]:
    return [AlertState(rule=r, general_suppress_until=now) for r in rules]
