# src/cryptmon/main.py
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from cryptmon.alerts.dispatch import Dispatcher
from cryptmon.alerts.evaluator import AlertEvaluator, EvaluatorConfig
from cryptmon.alerts.formatting import smart_format
from cryptmon.alerts.notifiers import ConsoleNotifier, DesktopNotifier
from cryptmon.alerts.rules import parse_rules
from cryptmon.alerts.state import build_state_table
from cryptmon.config import AlertConfig, load_config
from cryptmon.log_setup import configure_logging
from cryptmon.notify.registry import ChannelRegistry, ChannelUnavailableError
from cryptmon.prices.base import FetchError, PriceSource
from cryptmon.prices.factory import create_price_source
from cryptmon.utils.time import utc_now_s

log = structlog.get_logger()

DEFAULT_VIEW_SYMBOLS = ["btc", "eth", "ltc"]


def build_price_source(cfg: AlertConfig) -> PriceSource:
    return create_price_source(
        cfg.data_provider,
        fiat_currency=cfg.fiat_currency,
        coin_name_ignore=cfg.coin_name_ignore,
    )


# ---------------------------
# Modes
# ---------------------------

async def run_alerts(cfg: AlertConfig) -> int:
    """Alerts mode: returns an exit status on startup failure, otherwise runs until killed."""
    try:
        registry = ChannelRegistry.from_config(cfg.channels)
    except ChannelUnavailableError as e:
        log.error("channel_unavailable", err=str(e))
        return 1

    try:
        desktop = DesktopNotifier()
        rules = parse_rules(cfg.rule_lines, registry, desktop_available=desktop.available)
        if not rules:
            log.error("no_alert_rules", configured=len(cfg.rule_lines))
            return 1

        try:
            source = build_price_source(cfg)
        except ValueError as e:
            log.error("price_source_unknown", err=str(e))
            return 1

        try:
            await source.configure(r.coin_symbol for r in rules)
        except FetchError as e:
            log.error("price_source_configure_failed", source=source.name, err=str(e))
            await source.close()
            return 1

        dispatcher = Dispatcher(
            console=ConsoleNotifier(),
            desktop=desktop,
            timeout_s=cfg.dispatch_timeout_s,
        )
        evaluator = AlertEvaluator(
            states=build_state_table(rules, utc_now_s()),
            source=source,
            dispatcher=dispatcher,
            cfg=EvaluatorConfig(
                check_period_s=cfg.check_period_s,
                general_sleep_s=cfg.general_sleep_s,
                watermark_enabled=cfg.watermark_enabled,
                watermark_sleep_s=cfg.watermark_sleep_s,
            ),
        )
        try:
            await evaluator.run_forever()
        finally:
            await source.close()
        return 0
    finally:
        await registry.close()


async def run_prices(cfg: AlertConfig) -> int:
    """One-shot snapshot: print `SYMBOL price` per coin."""
    try:
        registry = ChannelRegistry.from_config(cfg.channels)
    except ChannelUnavailableError as e:
        log.error("channel_unavailable", err=str(e))
        return 1
    rules = parse_rules(cfg.rule_lines, registry)
    await registry.close()
    symbols = list(dict.fromkeys(r.coin_symbol for r in rules))

    try:
        source = build_price_source(cfg)
    except ValueError as e:
        log.error("price_source_unknown", err=str(e))
        return 1
    try:
        await source.configure(symbols or DEFAULT_VIEW_SYMBOLS)
        records = await source.fetch()
    except FetchError as e:
        log.error("price_fetch_failed", source=source.name, err=str(e))
        return 1
    finally:
        await source.close()

    for rec in records:
        print(f"{rec.symbol.upper():<8} {smart_format(rec.price):>16} {cfg.fiat_currency.upper()}", flush=True)
    return 0


# ---------------------------
# Main
# ---------------------------

MODES = {"alerts": run_alerts, "prices": run_prices}


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    configure_logging()

    args = sys.argv[1:] if argv is None else argv
    mode = args[0] if args else "alerts"
    runner = MODES.get(mode)
    if runner is None:
        print(f"usage: cryptmon [{'|'.join(MODES)}]", file=sys.stderr)
        return 2

    cfg = load_config()
    try:
        return asyncio.run(runner(cfg))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
