from __future__ import annotations

from cryptmon.prices.base import (
    EmptyPriceResultError,
    HttpPriceSource,
    PriceConfigError,
    PriceParseError,
)
from cryptmon.utils.types import PriceRecord


class CryptoCompareSource(HttpPriceSource):
    name = "cryptocompare"
    url = "https://min-api.cryptocompare.com/data/pricemultifull"

    async def fetch(self) -> list[PriceRecord]:
        if not self.wanted_symbols:
            raise PriceConfigError("no coin symbols configured/requested")

        params = {
            "fsyms": ",".join(s.upper() for s in self.wanted_symbols),
            "tsyms": self.fiat_currency.upper(),
        }
        data = await self._get_json(self.url, params=params)

        # {"RAW": {"BTC": {"NZD": {"FROMSYMBOL": "BTC", "PRICE": 1.0, ...}}}, "DISPLAY": {...}}
        raw = data.get("RAW") if isinstance(data, dict) else None
        if raw is None:
            # API-level errors come back as 200 with {"Response": "Error", "Message": ...}
            msg = data.get("Message") if isinstance(data, dict) else None
            raise PriceParseError(f"unexpected cryptocompare response: {msg or str(data)[:200]}")
        if not isinstance(raw, dict):
            raise PriceParseError("cryptocompare RAW section is not an object")

        out: list[PriceRecord] = []
        for sym, by_currency in raw.items():
            if not isinstance(by_currency, dict):
                continue
            for item in by_currency.values():
                try:
                    out.append(PriceRecord(
                        symbol=str(item.get("FROMSYMBOL", sym)).upper(),
                        price=float(item["PRICE"]),
                    ))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise PriceParseError(f"malformed cryptocompare item for {sym}: {e}") from e
        if not out:
            raise EmptyPriceResultError("cryptocompare returned no prices")
        return out
