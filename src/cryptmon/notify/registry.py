from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Mapping, Optional

import structlog

from cryptmon.notify.base import Channel, ChannelConfig, ChannelConfigError
from cryptmon.notify.pushsafer import PushSaferChannel
from cryptmon.notify.simplepush import SimplePushChannel
from cryptmon.notify.smtp_mail import SMTP_SUPPORTED, SmtpMailChannel
from cryptmon.notify.textbelt import TextbeltChannel

log = structlog.get_logger("registry")


class ChannelUnavailableError(RuntimeError):
    """A channel type that is not built into this install was enabled in config."""


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    factory: Callable[..., Channel]
    available: bool = True


# name -> how to build it. Extend here to add channel types.
KNOWN_CHANNELS: dict[str, ChannelSpec] = {
    "pushsafer": ChannelSpec(PushSaferChannel.from_config),
    "simplepush": ChannelSpec(SimplePushChannel.from_config),
    "textbelt": ChannelSpec(TextbeltChannel.from_config),
    "mailSMTP": ChannelSpec(SmtpMailChannel.from_config, available=SMTP_SUPPORTED),
}


class ChannelRegistry:
    """
    Owns every configured channel instance. Rules keep references to the
    channels resolved from here; the registry closes them at shutdown.
    """
    def __init__(self):
        self._channels: dict[str, Channel] = {}

    def register(self, name: str, channel: Channel) -> None:
        self._channels[name] = channel

    def get(self, name: str) -> Optional[Channel]:
        return self._channels.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    async def close(self) -> None:
        for name, ch in self._channels.items():
            try:
                await ch.close()
            except Exception as e:
                log.warning("channel_close_failed", channel=name, err=str(e))

    @classmethod
    def from_config(
        cls,
        channel_cfgs: Mapping[str, ChannelConfig],
        known: Optional[Mapping[str, ChannelSpec]] = None,
        **channel_kwargs,
    ) -> "ChannelRegistry":
        """
        Build a registry from the per-channel parameter bags.

        - absent or disabled channels are skipped silently (info log only)
        - unknown channel names are logged and ignored
        - missing required params: logged, channel not registered
        - an enabled channel that is not built in raises ChannelUnavailableError
        """
        known = KNOWN_CHANNELS if known is None else known
        reg = cls()
        for name, cfg in channel_cfgs.items():
            spec = known.get(name)
            if spec is None:
                log.warning("channel_unknown", channel=name)
                continue
            if not cfg.enabled:
                log.info("channel_disabled", channel=name)
                continue
            if not spec.available:
                raise ChannelUnavailableError(
                    f"'{name}' channel is enabled in config but is not supported by this install"
                )
            try:
                channel = spec.factory(cfg, **channel_kwargs)
            except ChannelConfigError as e:
                log.error("channel_config_error", channel=name, err=str(e))
                continue
            reg.register(name, channel)
            log.info("channel_enabled", channel=name)
        return reg
