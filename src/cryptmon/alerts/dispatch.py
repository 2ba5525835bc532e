from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import structlog

from cryptmon.alerts.notifiers import ConsoleNotifier, DesktopNotifier
from cryptmon.alerts.rules import (
    AlertRule,
    PrintAction,
    RunCommandAction,
    RunProviderAction,
    ShowNotificationAction,
)
from cryptmon.notify.base import ChannelError
from cryptmon.utils.types import AlertMessage

log = structlog.get_logger("dispatch")


class Dispatcher:
    """
    Delivers rendered alerts according to each rule's action.

    One attempt per alert, no retries. Each attempt is bounded by
    `timeout_s`; `dispatch_all()` runs a cycle's alerts concurrently and
    returns once every one of them has finished or timed out.

    Returns True/False per alert for "delivered". Channel failures and timeouts
    are logged and reported as False. A failing desktop notifier raises
    DesktopNotifyError to the caller.
    """
    def __init__(
        self,
        console: Optional[ConsoleNotifier] = None,
        desktop: Optional[DesktopNotifier] = None,
        timeout_s: float = 30.0,
    ):
        self.console = console or ConsoleNotifier()
        self.desktop = desktop or DesktopNotifier()
        self.timeout_s = timeout_s

    async def dispatch_all(self, jobs: Sequence[tuple[AlertRule, AlertMessage]]) -> list[bool]:
        if not jobs:
            return []
        return list(await asyncio.gather(*(self._bounded(rule, msg) for rule, msg in jobs)))

    async def _bounded(self, rule: AlertRule, msg: AlertMessage) -> bool:
        try:
            return await asyncio.wait_for(self.dispatch(rule, msg), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            log.error(
                "dispatch_timeout",
                rule=rule.describe(),
                channel=_channel_name(rule),
                timeout_s=self.timeout_s,
            )
            return False

    async def dispatch(self, rule: AlertRule, msg: AlertMessage) -> bool:
        action = rule.action

        if isinstance(action, PrintAction):
            await self.console.send(msg)
            return True

        if isinstance(action, ShowNotificationAction):
            if not self.desktop.available:
                log.warning("desktop_notifications_unsupported", rule=rule.describe())
                return False
            await self.desktop.send(msg)
            return True

        if isinstance(action, RunCommandAction):
            log.warning("run_command_not_implemented", rule=rule.describe(), command=action.command)
            return False

        if isinstance(action, RunProviderAction):
            assert rule.channel is not None, "RunProvider rules are resolved at load time"
            try:
                await rule.channel.send(msg.subject, msg.body)
            except ChannelError as e:
                log.error("dispatch_failed", channel=action.channel_name, err=str(e), kind=type(e).__name__)
                return False
            log.info("dispatch_ok", channel=action.channel_name, symbol=rule.coin_symbol)
            return True

        raise TypeError(f"unknown alert action: {action!r}")


def _channel_name(rule: AlertRule) -> Optional[str]:
    if isinstance(rule.action, RunProviderAction):
        return rule.action.channel_name
    return None
