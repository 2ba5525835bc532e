from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable, Mapping, Optional

import aiohttp
import structlog

from cryptmon.utils.types import PriceRecord

log = structlog.get_logger("prices")


# --------- errors ----------

class FetchError(Exception):
    """Base for every way a snapshot pull can fail."""

class PriceConnectError(FetchError):
    pass

class PriceParseError(FetchError):
    pass

class EmptyPriceResultError(FetchError):
    pass

class PriceConfigError(FetchError):
    pass


# --------- sources ----------

class PriceSource:
    """
    Snapshot contract: `await fetch()` returns the latest price per wanted coin
    or raises a FetchError. `configure()` must be awaited once before fetching.
    """
    name: str = "source"

    def __init__(self, fiat_currency: str = "nzd"):
        cur = (fiat_currency or "").strip().lower()
        if not cur:
            log.warning("fiat_currency_missing_using_nzd", source=self.name)
            cur = "nzd"
        self.fiat_currency = cur
        self.wanted_symbols: list[str] = []

    async def configure(self, wanted_symbols: Iterable[str]) -> None:
        seen: dict[str, None] = {}
        for s in wanted_symbols:
            s = s.strip().lower()
            if s:
                seen.setdefault(s, None)
        self.wanted_symbols = list(seen)

    async def fetch(self) -> list[PriceRecord]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpPriceSource(PriceSource):
    """PriceSource backed by a lazily created aiohttp session (or an injected one)."""

    def __init__(self, fiat_currency: str = "nzd", *, session=None, timeout_s: float = 15.0):
        super().__init__(fiat_currency)
        self._session = session
        self._owns_session = session is None
        self.timeout_s = timeout_s

    def _get_session(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _get_json(
        self,
        url: str,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        session = self._get_session()
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PriceConnectError(f"error calling {url}: {e}") from e
        if status != 200:
            raise PriceConnectError(f"error calling {url}: status {status}: {text[:200]}")
        try:
            return json.loads(text)
        except ValueError as e:
            raise PriceParseError(f"error parsing json response from {url}: {text[:200]}") from e


def prices_by_symbol(records: Iterable[PriceRecord]) -> dict[str, float]:
    """Lower-case symbol -> price. The first record for a symbol wins."""
    out: dict[str, float] = {}
    for r in records:
        out.setdefault(r.symbol.lower(), float(r.price))
    return out
