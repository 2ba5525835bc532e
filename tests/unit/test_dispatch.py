import io

import pytest

from cryptmon.alerts.dispatch import Dispatcher
from cryptmon.alerts.formatting import render_alert
from cryptmon.alerts.notifiers import ConsoleNotifier, DesktopNotifier
from cryptmon.alerts.rules import parse_rule
from cryptmon.notify.registry import ChannelRegistry
from tests.helpers.fakes import FailingChannel, FakeDesktop, HangingChannel, RecordingChannel, RecordingConsole


def _job(line, registry=None, price=51000.0):
    rule = parse_rule(line, registry)
    return rule, render_alert(rule, price)


@pytest.fixture
def registry():
    reg = ChannelRegistry()
    reg.register("simplepush", RecordingChannel("simplepush"))
    reg.register("pushsafer", FailingChannel("pushsafer"))
    reg.register("textbelt", HangingChannel("textbelt"))
    return reg


@pytest.mark.asyncio
async def test_print_goes_to_console():
    console = RecordingConsole()
    d = Dispatcher(console=console, desktop=FakeDesktop())
    assert await d.dispatch(*_job("(btc, >, 50000, print)")) is True
    assert console.sent[0].subject == "Cryptmon alert: BTC"

@pytest.mark.asyncio
async def test_provider_receives_subject_and_body(registry):
    d = Dispatcher(console=RecordingConsole(), desktop=FakeDesktop())
    assert await d.dispatch(*_job("(btc, >, 50000, simplepush)", registry)) is True
    assert registry.get("simplepush").calls == [
        ("Cryptmon alert: BTC", "BTC price is 51,000.00 (alert: > 50,000.00)"),
    ]

@pytest.mark.asyncio
async def test_provider_error_reported_as_not_delivered(registry):
    d = Dispatcher(console=RecordingConsole(), desktop=FakeDesktop())
    assert await d.dispatch(*_job("(btc, >, 50000, pushsafer)", registry)) is False

@pytest.mark.asyncio
async def test_run_command_is_not_executed():
    console = RecordingConsole()
    d = Dispatcher(console=console, desktop=FakeDesktop())
    assert await d.dispatch(*_job("(btc, >, 50000, runCommand: touch /tmp/x)")) is False
    assert console.sent == []

@pytest.mark.asyncio
async def test_show_notification_without_desktop_is_skipped():
    desktop = FakeDesktop(available=False)
    d = Dispatcher(console=RecordingConsole(), desktop=desktop)
    assert await d.dispatch(*_job("(btc, >, 50000, showNotification)")) is False
    assert desktop.sent == []

@pytest.mark.asyncio
async def test_show_notification_with_desktop():
    desktop = FakeDesktop(available=True)
    d = Dispatcher(console=RecordingConsole(), desktop=desktop)
    assert await d.dispatch(*_job("(btc, >, 50000, showNotification)")) is True
    assert len(desktop.sent) == 1

@pytest.mark.asyncio
async def test_dispatch_all_returns_per_job_results_in_order(registry):
    d = Dispatcher(console=RecordingConsole(), desktop=FakeDesktop(), timeout_s=0.05)
    jobs = [
        _job("(btc, >, 50000, textbelt)", registry),
        _job("(btc, >, 50000, pushsafer)", registry),
        _job("(btc, >, 50000, simplepush)", registry),
        _job("(btc, >, 50000, print)"),
    ]
    assert await d.dispatch_all(jobs) == [False, False, True, True]

@pytest.mark.asyncio
async def test_dispatch_all_empty():
    d = Dispatcher(console=RecordingConsole(), desktop=FakeDesktop())
    assert await d.dispatch_all([]) == []

@pytest.mark.asyncio
async def test_console_notifier_writes_alert_line():
    buf = io.StringIO()
    n = ConsoleNotifier(stream=buf)
    _, msg = _job("(eth, <, 1500, print)", price=1400.0)
    await n.send(msg)
    line = buf.getvalue().strip()
    assert line.startswith("[ALERT] ")
    assert line.endswith("ETH price is 1,400.00 (alert: < 1,500.00)")

@pytest.mark.asyncio
async def test_console_notifier_falls_back_when_formatter_breaks():
    def boom(_msg):
        raise ValueError("bad")

    buf = io.StringIO()
    n = ConsoleNotifier(format_fn=boom, stream=buf)
    _, msg = _job("(eth, <, 1500, print)", price=1400.0)
    await n.send(msg)
    assert buf.getvalue() == f"[ALERT] {msg.body}\n"

def test_desktop_notifier_unavailable_without_binary():
    assert DesktopNotifier(binary="cryptmon-no-such-notifier-binary").available is False
