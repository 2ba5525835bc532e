from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
import structlog

log = structlog.get_logger("channel")


# --------- errors ----------

class ChannelError(Exception):
    """Base for every delivery failure a channel can report."""

class ChannelConfigError(ChannelError):
    pass

class ChannelConnectError(ChannelError):
    pass

class ChannelAuthError(ChannelError):
    pass

class ChannelParamsError(ChannelError):
    pass

class ChannelResponseError(ChannelError):
    """Response body could not be decoded."""

class ChannelProviderError(ChannelError):
    """Provider answered, but refused or failed the request."""

class ChannelNotImplementedError(ChannelError):
    pass


# --------- config bag ----------

@dataclass(slots=True)
class ChannelConfig:
    """Per-channel parameters as read from `alerts.provider.<name>.<param>` lines."""
    name: str
    enabled: bool = False
    params: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.params.get(key, default)

    def require(self, key: str) -> str:
        val = self.params.get(key)
        if val is None or val == "":
            raise ChannelConfigError(f"'{self.name}' channel was not configured with a '{key}' param")
        return val


# --------- channels ----------

class Channel:
    """
    A configured delivery mechanism. Subclasses implement `send()`;
    one call is one delivery attempt (no retries).
    """
    name: str = "channel"

    async def send(self, subject: str, body: str) -> None:
        raise ChannelNotImplementedError(f"{self.name}: send not implemented")

    async def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class HttpChannel(Channel):
    """
    Channel backed by an aiohttp session. The session is created lazily on
    first send (it must be created inside a running loop) unless one is injected.
    """
    url: str = ""

    def __init__(self, *, session=None, timeout_s: float = 10.0):
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

    async def _post(self, **kwargs) -> tuple[int, str]:
        """
        POST to `self.url` and return (status, body text).
        Transport problems become ChannelConnectError; 401 becomes ChannelAuthError;
        any other non-2xx becomes ChannelProviderError.
        """
        session = self._get_session()
        try:
            async with session.post(self.url, **kwargs) as resp:
                status = resp.status
                text = await _maybe_text(resp)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ChannelConnectError(f"{self.name}: error calling {self.url}: {e}") from e

        if status == 401:
            raise ChannelAuthError(f"{self.name}: authentication error with {self.url}: {text}")
        if status == 404:
            raise ChannelProviderError(f"{self.name}: not found response from {self.url}: {text}")
        if not 200 <= status < 300:
            raise ChannelProviderError(f"{self.name}: unexpected status {status}: {text}")
        return status, text


async def _maybe_text(resp) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"
