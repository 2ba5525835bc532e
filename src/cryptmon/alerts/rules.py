# src/cryptmon/alerts/rules.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

import structlog

from cryptmon.notify.base import Channel
from cryptmon.notify.registry import ChannelRegistry

log = structlog.get_logger("rules")


class RuleParseError(ValueError):
    pass


class Comparator(str, Enum):
    LT = "<"
    LE = "<="
    GE = ">="
    GT = ">"

    def test(self, price: float, threshold: float) -> bool:
        """Threshold test, strict at the equality boundary for LT/GT."""
        if self is Comparator.LT:
            return price < threshold
        if self is Comparator.LE:
            return price <= threshold
        if self is Comparator.GE:
            return price >= threshold
        return price > threshold

    def retriggers(self, price: float, baseline: float) -> bool:
        """
        Watermark re-trigger: has the price moved *further* in the triggering
        direction than `baseline`? LT/LE -> strictly below, GE/GT -> strictly above.
        Touching the baseline again never counts.
        """
        if self in (Comparator.LT, Comparator.LE):
            return price < baseline
        return price > baseline


# ---- actions (closed set) ----

@dataclass(frozen=True, slots=True)
class PrintAction:
    pass

@dataclass(frozen=True, slots=True)
class ShowNotificationAction:
    pass

@dataclass(frozen=True, slots=True)
class RunCommandAction:
    command: str = ""

@dataclass(frozen=True, slots=True)
class RunProviderAction:
    channel_name: str

Action = Union[PrintAction, ShowNotificationAction, RunCommandAction, RunProviderAction]


@dataclass(frozen=True, slots=True)
class AlertRule:
    """
    Fire when the price of `coin_symbol` compares true against `threshold`.
    - coin_symbol is always lower-case
    - channel is set iff action is RunProviderAction (resolved at parse time)
    """
    coin_symbol: str
    comparator: Comparator
    threshold: float
    action: Action
    channel: Optional[Channel] = None

    def describe(self) -> str:
        return f"({self.coin_symbol}, {self.comparator.value}, {self.threshold:g}, {_action_text(self.action)})"


def _action_text(action: Action) -> str:
    if isinstance(action, PrintAction):
        return "print"
    if isinstance(action, ShowNotificationAction):
        return "showNotification"
    if isinstance(action, RunCommandAction):
        return f"runCommand:{action.command}"
    return action.channel_name


# ---- parsing ----

def parse_action(text: str) -> Action:
    if text == "print":
        return PrintAction()
    if text == "showNotification":
        return ShowNotificationAction()
    if text.startswith("runCommand") and ":" in text:
        return RunCommandAction(command=text.split(":", 1)[1].strip())
    return RunProviderAction(channel_name=text)


def parse_rule(
    line: str,
    channels: Optional[ChannelRegistry] = None,
    *,
    desktop_available: bool = True,
) -> AlertRule:
    """
    Parse one rule line of the form `(SYMBOL, OPERATOR, THRESHOLD, ACTION)`,
    e.g. `(btc, >, 50000, print)`. Raises RuleParseError on anything malformed
    or on a channel name the registry can't resolve.
    """
    start = line.find("(")
    end = line.rfind(")")
    if start == -1 or end == -1 or end < start:
        raise RuleParseError(f"missing parenthesis in rule: {line!r}")

    fields = [f.strip() for f in line[start + 1:end].split(",")]
    if len(fields) != 4:
        raise RuleParseError(f"expected 4 fields, got {len(fields)}: {line!r}")

    symbol, op, threshold_s, action_s = fields
    if not symbol:
        raise RuleParseError(f"empty coin symbol: {line!r}")

    try:
        comparator = Comparator(op)
    except ValueError:
        raise RuleParseError(f"unknown operator {op!r}: {line!r}") from None

    try:
        threshold = float(threshold_s)
    except ValueError:
        raise RuleParseError(f"threshold is not a number {threshold_s!r}: {line!r}") from None

    action = parse_action(action_s)
    channel: Optional[Channel] = None
    if isinstance(action, RunProviderAction):
        channel = channels.get(action.channel_name) if channels is not None else None
        if channel is None:
            raise RuleParseError(
                f"no configured channel named {action.channel_name!r}: {line!r}"
            )
    elif isinstance(action, ShowNotificationAction) and not desktop_available:
        # kept: the rule still updates state, dispatch logs it as unsupported
        log.warning("desktop_notifications_unsupported", rule=line)

    return AlertRule(
        coin_symbol=symbol.lower(),
        comparator=comparator,
        threshold=threshold,
        action=action,
        channel=channel,
    )


def parse_rules(
    lines: Iterable[str],
    channels: Optional[ChannelRegistry] = None,
    *,
    desktop_available: bool = True,
) -> list[AlertRule]:
    """Parse every line, dropping (and logging) the malformed ones."""
    rules: list[AlertRule] = []
    for line in lines:
        try:
            rules.append(parse_rule(line, channels, desktop_available=desktop_available))
        except RuleParseError as e:
            log.error("rule_dropped", err=str(e))
    return rules
