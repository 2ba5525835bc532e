from __future__ import annotations

from typing import Iterable, Mapping, Optional

import structlog

from cryptmon.prices.base import (
    EmptyPriceResultError,
    HttpPriceSource,
    PriceConfigError,
    PriceParseError,
)
from cryptmon.utils.types import PriceRecord

log = structlog.get_logger("coingecko")

BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoSource(HttpPriceSource):
    """
    CoinGecko prices are requested by coin *id*, so `configure()` pulls the
    full coin list once and maps the wanted symbols to ids.

    Symbols collide (pegged/wrapped tokens reuse 'btc', 'eth', ...), so
    `coin_name_ignore` maps a lower-case symbol to a substring: list entries
    for that symbol whose name contains it are skipped.
    """
    name = "coingecko"

    def __init__(
        self,
        fiat_currency: str = "nzd",
        *,
        coin_name_ignore: Optional[Mapping[str, str]] = None,
        **kwargs,
    ):
        super().__init__(fiat_currency, **kwargs)
        self.coin_name_ignore = {k.lower(): v for k, v in (coin_name_ignore or {}).items()}
        self.ids_wanted: list[str] = []

    async def fetch_coin_list(self) -> list[dict]:
        data = await self._get_json(f"{BASE_URL}/coins/list")
        if not isinstance(data, list):
            raise PriceParseError("coingecko coin list is not an array")
        return data

    async def configure(self, wanted_symbols: Iterable[str]) -> None:
        await super().configure(wanted_symbols)

        lookup: dict[str, str] = {}
        for coin in await self.fetch_coin_list():
            try:
                sym = str(coin["symbol"]).lower()
                coin_id = str(coin["id"])
                name = str(coin.get("name", ""))
            except (KeyError, TypeError, AttributeError):
                continue
            ignore = self.coin_name_ignore.get(sym)
            if ignore and ignore in name:
                continue
            lookup[sym] = coin_id

        self.ids_wanted = []
        for sym in self.wanted_symbols:
            coin_id = lookup.get(sym)
            if coin_id is None:
                log.warning("coingecko_symbol_unknown", symbol=sym)
                continue
            self.ids_wanted.append(coin_id)

    async def fetch(self) -> list[PriceRecord]:
        if not self.ids_wanted:
            raise PriceConfigError("no currency symbols configured/requested")

        params = {"vs_currency": self.fiat_currency, "ids": ",".join(self.ids_wanted)}
        data = await self._get_json(f"{BASE_URL}/coins/markets", params=params)
        if not isinstance(data, list):
            raise PriceParseError(f"unexpected coingecko markets response: {str(data)[:200]}")
        if not data:
            raise EmptyPriceResultError("coingecko returned no prices")

        out: list[PriceRecord] = []
        for item in data:
            try:
                px = item.get("current_price")
                if px is None:
                    continue  # delisted / no market in this currency
                out.append(PriceRecord(
                    symbol=str(item["symbol"]).upper(),
                    price=float(px),
                    name=str(item.get("name", "")),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise PriceParseError(f"malformed coingecko item: {e}") from e
        if not out:
            raise EmptyPriceResultError("coingecko returned no usable prices")
        return out
