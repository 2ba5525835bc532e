"""
Config loading for cryptmon.

File format (cryptmon.ini), one `key: value` per line, `#` comments:

    dataProvider: coingecko
    fiatCurrency: usd
    coinNameIgnoreItems: btc/Peg,eth/Wrapped
    alerts.checkPeriod: 2m
    alerts.generalSleepPeriod: 1h
    alerts.watermarkTripSleepEnabled: true
    alerts.watermarkTripSleepPeriod: 6h
    alerts.provider.pushsafer.enabled: true
    alerts.provider.pushsafer.privateKey: XXXX
    alerts.provider.pushsafer.deviceID: 1234
    alerts.newAlert: (btc, >, 50000, pushsafer)
    alerts.newAlert: (eth, <=, 1500, print)

Unprefixed keys are shared settings; `display.*` keys belong to the price view
and are ignored here.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import structlog

from cryptmon.notify.base import ChannelConfig

log = structlog.get_logger("config")

CONFIG_ENV_VAR = "CRYPTMON_CONFIG_PATH"

_PERIOD_UNITS = {"s": 1, "m": 60, "h": 3600}


class ConfigError(ValueError):
    pass


@dataclass(slots=True)
class AlertConfig:
    data_provider: str = "cryptocompare"
    fiat_currency: str = "nzd"
    coin_name_ignore: dict[str, str] = field(default_factory=dict)   # lower symbol -> name substring
    check_period_s: int = 120
    general_sleep_s: int = 3600
    watermark_enabled: bool = False
    watermark_sleep_s: int = 21600
    dispatch_timeout_s: int = 30
    channels: dict[str, ChannelConfig] = field(default_factory=dict)
    rule_lines: list[str] = field(default_factory=list)


def parse_period(val: str) -> int:
    """
    '30s' -> 30, '5m' -> 300, '1h' -> 3600. A bare number is minutes ('2' -> 120).
    """
    v = val.strip()
    if not v:
        raise ConfigError("empty time period")
    unit = v[-1]
    if unit.isalpha():
        mult = _PERIOD_UNITS.get(unit.lower())
        if mult is None:
            raise ConfigError(f"unknown time period unit {unit!r} in {val!r}")
        v = v[:-1].strip()
    else:
        mult = 60
    try:
        n = int(v)
    except ValueError:
        raise ConfigError(f"can't parse time period {val!r}") from None
    if n < 0:
        raise ConfigError(f"negative time period {val!r}")
    return n * mult


def _parse_bool(val: str) -> bool:
    return val.strip() in ("true", "1")


def split_key_value(line: str) -> Optional[tuple[str, str, str]]:
    """
    'alerts.checkPeriod: 2m' -> ('alerts', 'checkPeriod', '2m').
    Section is '' for unprefixed keys. None for malformed lines.
    """
    if ":" not in line:
        return None
    key, val = line.split(":", 1)
    key = key.strip()
    val = val.strip()
    if not key or not val:
        return None
    section = ""
    head, sep, rest = key.partition(".")
    if sep and head in ("display", "alerts"):
        section, key = head, rest.strip()
    return section, key, val


def _set_period(cfg: AlertConfig, attr: str, key: str, val: str) -> None:
    try:
        setattr(cfg, attr, parse_period(val))
    except ConfigError as e:
        log.error("config_bad_period", key=key, value=val, err=str(e))


def parse_config_lines(lines: Iterable[str], cfg: Optional[AlertConfig] = None) -> AlertConfig:
    cfg = cfg or AlertConfig()
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        parts = split_key_value(line)
        if parts is None:
            log.error("config_malformed_line", line_no=lineno)
            continue
        section, key, val = parts

        if section == "display":
            continue
        if key == "dataProvider":
            cfg.data_provider = val
        elif key == "fiatCurrency":
            cfg.fiat_currency = val
        elif key == "coinNameIgnoreItems":
            for pair in val.split(","):
                sym, sep, ignore = pair.partition("/")
                if sep and sym.strip():
                    cfg.coin_name_ignore[sym.strip().lower()] = ignore.strip()
        elif section != "alerts":
            log.warning("config_unknown_key", key=key, line_no=lineno)
        elif key == "checkPeriod":
            _set_period(cfg, "check_period_s", key, val)
        elif key == "generalSleepPeriod":
            _set_period(cfg, "general_sleep_s", key, val)
        elif key == "watermarkTripSleepEnabled":
            cfg.watermark_enabled = _parse_bool(val)
        elif key == "watermarkTripSleepPeriod":
            _set_period(cfg, "watermark_sleep_s", key, val)
        elif key == "dispatchTimeout":
            _set_period(cfg, "dispatch_timeout_s", key, val)
        elif key.startswith("provider."):
            _apply_provider_param(cfg, key, val)
        elif key == "newAlert":
            cfg.rule_lines.append(val)
        else:
            log.warning("config_unknown_key", key=f"alerts.{key}", line_no=lineno)
    return cfg


def _apply_provider_param(cfg: AlertConfig, key: str, val: str) -> None:
    # provider.<name>.<param>
    _, _, rest = key.partition(".")
    name, sep, param = rest.partition(".")
    if not sep or not name or not param:
        log.error("config_bad_provider_key", key=key)
        return
    ch = cfg.channels.get(name)
    if ch is None:
        ch = ChannelConfig(name=name)
        cfg.channels[name] = ch
    if param == "enabled":
        ch.enabled = _parse_bool(val)
    else:
        ch.params[param] = val


def resolve_config_path() -> Optional[Path]:
    env_path = os.getenv(CONFIG_ENV_VAR, "").strip()
    if env_path:
        return Path(env_path).expanduser()
    home = os.getenv("HOME", "").strip()
    if home:
        candidate = Path(home) / ".config" / "cryptmon.ini"
        if candidate.exists():
            return candidate
    return None


def load_config(path: Optional[Path] = None) -> AlertConfig:
    """
    Load from `path` (or the resolved default path). A missing file is not
    an error: defaults are returned with a warning.
    """
    path = path or resolve_config_path()
    if path is None or not path.exists():
        log.warning("config_file_not_found_using_defaults", path=str(path) if path else None)
        return AlertConfig()
    with path.open("r", encoding="utf-8") as f:
        cfg = parse_config_lines(f)
    log.info("config_loaded", path=str(path), rules=len(cfg.rule_lines), channels=sorted(cfg.channels))
    return cfg
