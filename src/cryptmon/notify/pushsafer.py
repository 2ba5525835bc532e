from __future__ import annotations

from cryptmon.notify.base import ChannelConfig, ChannelProviderError, HttpChannel

# PushSafer reports some failures with 2xx status codes.
_STATUS_ERRORS = {
    250: "invalid private key",
    255: "invalid private key or empty message",
    260: "empty message",
    270: "invalid device ID",
    280: "insufficient API calls remaining",
}


class PushSaferChannel(HttpChannel):
    name = "pushsafer"
    url = "https://www.pushsafer.com/api"

    def __init__(self, private_key: str, device_id: str, **kwargs):
        super().__init__(**kwargs)
        self.private_key = private_key
        self.device_id = device_id

    @classmethod
    def from_config(cls, cfg: ChannelConfig, **kwargs) -> "PushSaferChannel":
        return cls(private_key=cfg.require("privateKey"), device_id=cfg.require("deviceID"), **kwargs)

    async def send(self, subject: str, body: str) -> None:
        params = {"k": self.private_key, "d": self.device_id, "t": subject, "m": body}
        status, text = await self._post(params=params)
        if status in _STATUS_ERRORS:
            raise ChannelProviderError(f"pushsafer: {_STATUS_ERRORS[status]}: {text}")
        if status != 200:
            raise ChannelProviderError(f"pushsafer: other error (status {status}): {text}")
