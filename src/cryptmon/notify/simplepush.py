from __future__ import annotations

import json

from cryptmon.notify.base import ChannelConfig, ChannelProviderError, ChannelResponseError, HttpChannel


class SimplePushChannel(HttpChannel):
    name = "simplepush"
    url = "https://api.simplepush.io/send"

    def __init__(self, key: str, **kwargs):
        super().__init__(**kwargs)
        self.key = key

    @classmethod
    def from_config(cls, cfg: ChannelConfig, **kwargs) -> "SimplePushChannel":
        return cls(key=cfg.require("key"), **kwargs)

    async def send(self, subject: str, body: str) -> None:
        payload = {"key": self.key, "title": subject, "msg": body, "event": "event"}
        _, text = await self._post(json=payload)
        try:
            data = json.loads(text)
            status = data["status"]
        except (ValueError, KeyError, TypeError) as e:
            raise ChannelResponseError(f"simplepush: can't parse: {text}") from e
        if status != "OK":
            raise ChannelProviderError(f"simplepush: error sending notification request (status={status})")
