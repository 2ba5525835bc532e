from __future__ import annotations

from typing import Mapping, Optional

from cryptmon.prices.base import PriceSource
from cryptmon.prices.coingecko import CoinGeckoSource
from cryptmon.prices.coinmarketcap import CoinMarketCapSource
from cryptmon.prices.cryptocompare import CryptoCompareSource

PRICE_SOURCES = ("cryptocompare", "coingecko", "coinmarketcap")


def create_price_source(
    name: str,
    fiat_currency: str = "nzd",
    coin_name_ignore: Optional[Mapping[str, str]] = None,
    **kwargs,
) -> PriceSource:
    """Build the source named by `dataProvider`. Raises ValueError for unknown names."""
    if name == "cryptocompare":
        return CryptoCompareSource(fiat_currency, **kwargs)
    if name == "coingecko":
        return CoinGeckoSource(fiat_currency, coin_name_ignore=coin_name_ignore, **kwargs)
    if name == "coinmarketcap":
        return CoinMarketCapSource(fiat_currency, **kwargs)
    raise ValueError(
        f"unknown dataProvider {name!r}; expected one of: {', '.join(PRICE_SOURCES)}"
    )
