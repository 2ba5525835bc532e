from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import structlog

from cryptmon.alerts.dispatch import Dispatcher
from cryptmon.alerts.formatting import render_alert, smart_format
from cryptmon.alerts.state import AlertState
from cryptmon.prices.base import FetchError, PriceSource, prices_by_symbol
from cryptmon.utils.time import iso_utc, utc_now_s
from cryptmon.utils.types import AlertMessage

log = structlog.get_logger("evaluator")

@dataclass(slots=True)
class EvaluatorConfig:
    check_period_s: float = 120.0
    general_sleep_s: float = 3600.0        # 1h
    watermark_enabled: bool = False
    watermark_sleep_s: float = 21600.0     # 6h


class AlertEvaluator:
    """
    Polls a PriceSource every `check_period_s` and evaluates every AlertState.

    Per rule, a crossing only notifies when neither suppression window blocks it:
      - general window: nothing before `general_suppress_until`
      - watermark window (optional): blocked unless the price moved strictly
        further in the triggering direction than the price at the last notification

    The evaluator is the only owner of the state table; cycles never overlap.
    """
    def __init__(
        self,
        states: Sequence[AlertState],
        source: PriceSource,
        dispatcher: Dispatcher,
        cfg: Optional[EvaluatorConfig] = None,
        clock: Callable[[], float] = utc_now_s,
    ):
        self.states = list(states)
        self.source = source
        self.dispatcher = dispatcher
        self.cfg = cfg or EvaluatorConfig()
        self.clock = clock
        self.cycles = 0
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self.run_forever(), name="alerts-evaluator")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def run_forever(self) -> None:
        log.info(
            "evaluator_started",
            rules=len(self.states),
            check_period_s=self.cfg.check_period_s,
            general_sleep_s=self.cfg.general_sleep_s,
            watermark_enabled=self.cfg.watermark_enabled,
        )
        while not self._stop.is_set():
            await self.run_cycle()
            await asyncio.sleep(self.cfg.check_period_s)

    # --- one polling cycle ---

    async def run_cycle(self) -> list[AlertState]:
        """
        Pull one snapshot, evaluate all rules, and deliver what fired.
        Returns the states that notified this cycle.
        """
        self.cycles += 1
        try:
            records = await self.source.fetch()
        except FetchError as e:
            # skip the whole cycle; next cycle is the retry
            log.error("price_fetch_failed", err=str(e), kind=type(e).__name__, cycle=self.cycles)
            return []

        prices = prices_by_symbol(records)
        now = self.clock()

        fired: list[AlertState] = []
        jobs: list[tuple] = []
        for st in self.states:
            msg = self._evaluate(st, prices, now)
            if msg is not None:
                fired.append(st)
                jobs.append((st.rule, msg))

        if jobs:
            await self.dispatcher.dispatch_all(jobs)
        return fired

    def _evaluate(self, st: AlertState, prices: dict[str, float], now: float) -> Optional[AlertMessage]:
        rule = st.rule

        # quiesced rules are not even looked up (last_observed_price goes stale)
        if st.is_quiescent(now):
            return None

        price = prices.get(rule.coin_symbol)
        if price is None:
            log.warning("price_not_found", symbol=rule.coin_symbol)
            return None

        st.last_observed_price = price
        if not rule.comparator.test(price, rule.threshold):
            return None

        if not self._should_notify(st, price, now):
            log.debug(
                "alert_suppressed",
                rule=rule.describe(),
                price=price,
                general_until=iso_utc(st.general_suppress_until),
                watermark_until=iso_utc(st.watermark_suppress_until),
            )
            return None

        # timers are armed before delivery and stay armed if delivery fails
        st.arm(
            price,
            now,
            self.cfg.general_sleep_s,
            self.cfg.watermark_sleep_s if self.cfg.watermark_enabled else None,
        )
        log.info("alert_triggered", symbol=rule.coin_symbol, price=smart_format(price), rule=rule.describe())
        return render_alert(rule, price)

    def _should_notify(self, st: AlertState, price: float, now: float) -> bool:
        if now < st.general_suppress_until:
            return False
        if self.cfg.watermark_enabled and st.in_watermark_window(now):
            baseline = st.watermark_baseline
            if baseline is None or not st.rule.comparator.retriggers(price, baseline):
                return False
        return True
