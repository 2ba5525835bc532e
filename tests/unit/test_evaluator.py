import asyncio
import dataclasses

import pytest

from cryptmon.alerts.dispatch import Dispatcher
from cryptmon.alerts.evaluator import AlertEvaluator, EvaluatorConfig
from cryptmon.alerts.notifiers import DesktopNotifyError
from cryptmon.alerts.rules import parse_rule
from cryptmon.alerts.state import build_state_table
from cryptmon.notify.registry import ChannelRegistry
from cryptmon.prices.base import EmptyPriceResultError, PriceConnectError, PriceParseError
from tests.helpers.fakes import (
    FailingChannel,
    FakeClock,
    FakeDesktop,
    HangingChannel,
    RecordingChannel,
    RecordingConsole,
    ScriptedSource,
)

POLL = 120


def _make(rule_lines, script, *, registry=None, cfg=None, desktop=None, timeout_s=5.0):
    clock = FakeClock()
    console = RecordingConsole()
    rules = [parse_rule(line, registry) for line in rule_lines]
    states = build_state_table(rules, clock())
    dispatcher = Dispatcher(console=console, desktop=desktop or FakeDesktop(), timeout_s=timeout_s)
    ev = AlertEvaluator(
        states=states,
        source=ScriptedSource(script),
        dispatcher=dispatcher,
        cfg=cfg or EvaluatorConfig(check_period_s=POLL, general_sleep_s=3600),
        clock=clock,
    )
    return ev, states, console, clock


async def _cycles(ev, clock, n):
    fired = []
    for _ in range(n):
        fired.append(len(await ev.run_cycle()))
        clock.advance(POLL)
    return fired


@pytest.mark.asyncio
async def test_crossing_on_second_cycle_prints_once():
    ev, states, console, clock = _make(["(btc, >, 50000, print)"], [{"BTC": 49000}, {"BTC": 51000}])
    assert await _cycles(ev, clock, 2) == [0, 1]
    assert len(console.sent) == 1
    assert console.sent[0].body.startswith("BTC price is 51,000.00")
    assert states[0].has_fired_before is True

@pytest.mark.asyncio
async def test_general_suppression_blocks_until_deadline():
    # 51000 every cycle; general sleep 3600 = 30 polls
    ev, states, console, clock = _make(["(btc, >, 50000, print)"], [{"BTC": 51000}] * 32)
    t0 = clock()
    fired = await _cycles(ev, clock, 31)
    assert fired[0] == 1
    assert sum(fired[1:30]) == 0
    # cycle 30 runs at t0 + 3600 == general_suppress_until -> eligible again
    assert fired[30] == 1
    assert len(console.sent) == 2
    assert states[0].general_suppress_until == t0 + 3600 + 3600

@pytest.mark.asyncio
async def test_watermark_retriggers_on_further_move_up():
    cfg = EvaluatorConfig(check_period_s=POLL, general_sleep_s=60, watermark_enabled=True, watermark_sleep_s=21600)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)"],
        [{"BTC": 51000}, {"BTC": 51500}, {"BTC": 52000}],
        cfg=cfg,
    )
    assert await _cycles(ev, clock, 3) == [1, 1, 1]
    assert states[0].watermark_baseline == 52000.0

@pytest.mark.asyncio
@pytest.mark.parametrize("second_price", [51000, 50800])
async def test_watermark_suppresses_equal_or_retreating_price(second_price):
    cfg = EvaluatorConfig(check_period_s=POLL, general_sleep_s=60, watermark_enabled=True, watermark_sleep_s=21600)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)"],
        [{"BTC": 51000}, {"BTC": second_price}],
        cfg=cfg,
    )
    assert await _cycles(ev, clock, 2) == [1, 0]
    assert states[0].watermark_baseline == 51000.0
    assert states[0].last_observed_price == float(second_price)

@pytest.mark.asyncio
async def test_watermark_window_expiry_allows_same_price_again():
    cfg = EvaluatorConfig(check_period_s=POLL, general_sleep_s=60, watermark_enabled=True, watermark_sleep_s=600)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)"],
        [{"BTC": 51000}, {"BTC": 51000}, {"BTC": 51000}],
        cfg=cfg,
    )
    assert len(await ev.run_cycle()) == 1
    clock.advance(POLL)
    assert len(await ev.run_cycle()) == 0
    clock.advance(600)
    assert len(await ev.run_cycle()) == 1

@pytest.mark.asyncio
async def test_watermark_downward_rule():
    cfg = EvaluatorConfig(check_period_s=POLL, general_sleep_s=0, watermark_enabled=True, watermark_sleep_s=21600)
    ev, states, console, clock = _make(
        ["(eth, <, 1500, print)"],
        [{"ETH": 1400}, {"ETH": 1450}, {"ETH": 1390}],
        cfg=cfg,
    )
    assert await _cycles(ev, clock, 3) == [1, 0, 1]

@pytest.mark.asyncio
async def test_watermark_disabled_leaves_watermark_fields_unset():
    ev, states, console, clock = _make(["(btc, >, 50000, print)"], [{"BTC": 51000}])
    await ev.run_cycle()
    assert states[0].watermark_baseline is None
    assert states[0].watermark_suppress_until is None

@pytest.mark.asyncio
async def test_fetch_failures_skip_cycles_without_touching_state():
    registry = ChannelRegistry()
    ch = RecordingChannel("simplepush")
    registry.register("simplepush", ch)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)", "(eth, <, 1000, simplepush)"],
        [PriceConnectError("down"), PriceParseError("garbage"), EmptyPriceResultError("empty")],
        registry=registry,
    )
    before = [dataclasses.replace(s) for s in states]
    assert await _cycles(ev, clock, 3) == [0, 0, 0]
    assert states == before
    assert console.sent == [] and ch.calls == []
    assert ev.cycles == 3

@pytest.mark.asyncio
async def test_failed_delivery_still_arms_suppression():
    registry = ChannelRegistry()
    ch = FailingChannel("pushsafer")
    registry.register("pushsafer", ch)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, pushsafer)"],
        [{"BTC": 51000}, {"BTC": 52000}],
        registry=registry,
    )
    t0 = clock()
    assert await _cycles(ev, clock, 2) == [1, 0]
    assert len(ch.calls) == 1
    st = states[0]
    assert st.has_fired_before is True
    assert st.general_suppress_until == t0 + 3600

@pytest.mark.asyncio
async def test_quiesced_rule_keeps_stale_last_price():
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)"],
        [{"BTC": 51000}, {"BTC": 60000}],
    )
    await _cycles(ev, clock, 2)
    assert states[0].last_observed_price == 51000.0

@pytest.mark.asyncio
async def test_non_crossing_price_still_recorded():
    ev, states, console, clock = _make(["(btc, >, 50000, print)"], [{"BTC": 49000}])
    await ev.run_cycle()
    assert states[0].last_observed_price == 49000.0
    assert states[0].has_fired_before is False

@pytest.mark.asyncio
async def test_missing_symbol_is_skipped():
    ev, states, console, clock = _make(
        ["(doge, >, 0.1, print)", "(btc, >, 50000, print)"],
        [{"BTC": 51000}],
    )
    fired = await ev.run_cycle()
    assert [s.rule.coin_symbol for s in fired] == ["btc"]
    assert states[0].last_observed_price == 0.0

@pytest.mark.asyncio
async def test_symbol_lookup_is_case_insensitive_and_in_table_order():
    ev, states, console, clock = _make(
        ["(ETH, <, 2000, print)", "(btc, >, 50000, print)"],
        [{"btc": 51000, "Eth": 1500}],
    )
    await ev.run_cycle()
    assert [m.body.split()[0] for m in console.sent] == ["ETH", "BTC"]

@pytest.mark.asyncio
async def test_hanging_channel_times_out_without_blocking_others():
    registry = ChannelRegistry()
    hang = HangingChannel("textbelt")
    registry.register("textbelt", hang)
    ev, states, console, clock = _make(
        ["(btc, >, 50000, textbelt)", "(btc, >, 50000, print)"],
        [{"BTC": 51000}],
        registry=registry,
        timeout_s=0.05,
    )
    fired = await asyncio.wait_for(ev.run_cycle(), timeout=2.0)
    assert len(fired) == 2
    assert len(hang.calls) == 1
    assert len(console.sent) == 1

@pytest.mark.asyncio
async def test_desktop_notification_failure_is_fatal():
    ev, states, console, clock = _make(
        ["(btc, >, 50000, showNotification)"],
        [{"BTC": 51000}],
        desktop=FakeDesktop(available=True, fail=True),
    )
    with pytest.raises(DesktopNotifyError):
        await ev.run_cycle()

@pytest.mark.asyncio
async def test_start_stop_runs_cycles_in_background():
    ev, states, console, clock = _make(
        ["(btc, >, 50000, print)"],
        [{"BTC": 51000}] + [{"BTC": 49000}] * 200,
        cfg=EvaluatorConfig(check_period_s=0.01, general_sleep_s=3600),
    )
    await ev.start()
    await asyncio.sleep(0.05)
    await ev.stop()
    assert ev.cycles >= 1
    assert len(console.sent) == 1
