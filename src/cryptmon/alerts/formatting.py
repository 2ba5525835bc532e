from __future__ import annotations
from datetime import datetime

from cryptmon.alerts.rules import AlertRule
from cryptmon.utils.types import AlertMessage

def smart_format(val: float) -> str:
    """
    Format a price with precision scaled to its magnitude and thousands separators:
    64000.0 -> '64,000.00', 4.5 -> '4.500', 0.1234 -> '0.1234'
    """
    a = abs(val)
    if a >= 10.0:
        prec = 2
    elif a >= 1.0:
        prec = 3
    else:
        prec = 4
    return f"{val:,.{prec}f}"

def render_alert(rule: AlertRule, price: float) -> AlertMessage:
    sym = rule.coin_symbol.upper()
    subject = f"Cryptmon alert: {sym}"
    body = (
        f"{sym} price is {smart_format(price)} "
        f"(alert: {rule.comparator.value} {smart_format(rule.threshold)})"
    )
    return AlertMessage(subject=subject, body=body)

def format_console_line(msg: AlertMessage, now: datetime | None = None) -> str:
    now = now or datetime.now().astimezone()
    return f"[ALERT] {now.strftime('%Y-%m-%d %H:%M:%S')} {msg.body}"
