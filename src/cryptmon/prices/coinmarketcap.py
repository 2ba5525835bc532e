from __future__ import annotations

import os
from typing import Optional

from cryptmon.prices.base import (
    EmptyPriceResultError,
    HttpPriceSource,
    PriceConfigError,
    PriceParseError,
)
from cryptmon.utils.types import PriceRecord


class CoinMarketCapSource(HttpPriceSource):
    name = "coinmarketcap"
    url = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest"

    def __init__(self, fiat_currency: str = "nzd", *, api_key: Optional[str] = None, **kwargs):
        super().__init__(fiat_currency, **kwargs)
        self.api_key = api_key if api_key is not None else os.getenv("COINMARKETCAP_API_KEY", "")

    async def configure(self, wanted_symbols) -> None:
        if not self.api_key:
            raise PriceConfigError(
                "coinmarketcap source is not configured; set the COINMARKETCAP_API_KEY env variable"
            )
        await super().configure(wanted_symbols)

    async def fetch(self) -> list[PriceRecord]:
        if not self.wanted_symbols:
            raise PriceConfigError("no coin symbols configured/requested")

        params = {
            "convert": self.fiat_currency.upper(),
            "symbol": ",".join(s.upper() for s in self.wanted_symbols),
        }
        data = await self._get_json(self.url, params=params, headers={"X-CMC_PRO_API_KEY": self.api_key})
        quotes = data.get("data") if isinstance(data, dict) else None
        if not isinstance(quotes, dict):
            raise PriceParseError(f"unexpected coinmarketcap response: {str(data)[:200]}")
        if not quotes:
            raise EmptyPriceResultError("coinmarketcap returned no quotes")

        fiat = self.fiat_currency.upper()
        out: list[PriceRecord] = []
        # keep requested order
        for sym in self.wanted_symbols:
            item = quotes.get(sym.upper())
            if not isinstance(item, dict):
                continue
            try:
                conv = item["quote"].get(fiat)
                if conv is None:
                    continue
                out.append(PriceRecord(
                    symbol=str(item["symbol"]).upper(),
                    price=float(conv["price"]),
                    name=str(item.get("name", "")),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise PriceParseError(f"malformed coinmarketcap quote for {sym}: {e}") from e
        if not out:
            raise EmptyPriceResultError("coinmarketcap returned no usable quotes")
        return out
