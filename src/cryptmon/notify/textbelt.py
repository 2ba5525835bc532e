from __future__ import annotations

import json

from cryptmon.notify.base import ChannelConfig, ChannelProviderError, ChannelResponseError, HttpChannel


class TextbeltChannel(HttpChannel):
    """SMS via textbelt.com. The shared 'textbelt' key allows one free text per day."""
    name = "textbelt"
    url = "https://textbelt.com/text"

    def __init__(self, phone_number: str, api_key: str = "textbelt", **kwargs):
        super().__init__(**kwargs)
        self.phone_number = phone_number
        self.api_key = api_key

    @classmethod
    def from_config(cls, cfg: ChannelConfig, **kwargs) -> "TextbeltChannel":
        return cls(
            phone_number=cfg.require("phoneNumber"),
            api_key=cfg.get("API_KEY") or "textbelt",
            **kwargs,
        )

    async def send(self, subject: str, body: str) -> None:
        # SMS has no subject line
        payload = {"phone": self.phone_number, "message": body, "key": self.api_key}
        _, text = await self._post(json=payload)
        try:
            data = json.loads(text)
            success = bool(data["success"])
        except (ValueError, KeyError, TypeError) as e:
            raise ChannelResponseError(f"textbelt: can't parse: {text}") from e
        if not success:
            raise ChannelProviderError(f"textbelt: {data.get('error') or 'unknown error'}")
