from __future__ import annotations

import asyncio
import smtplib
import ssl
from email.message import EmailMessage

from cryptmon.notify.base import (
    Channel,
    ChannelAuthError,
    ChannelConfig,
    ChannelConnectError,
)

# smtplib only defines SMTP_SSL when the interpreter was built with TLS support;
# without it STARTTLS is unavailable too, so the channel is not offered.
SMTP_SUPPORTED = hasattr(smtplib, "SMTP_SSL")


class SmtpMailChannel(Channel):
    """
    E-mail via an SMTP relay with STARTTLS. smtplib is blocking, so each send
    runs in a worker thread.
    """
    name = "mailSMTP"

    def __init__(
        self,
        to_address: str,
        smtp_server: str,
        smtp_username: str,
        smtp_password: str,
        smtp_port: int = 587,
        timeout_s: float = 10.0,
    ):
        self.to_address = to_address
        self.smtp_server = smtp_server
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_port = smtp_port
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, cfg: ChannelConfig, **kwargs) -> "SmtpMailChannel":
        port_raw = cfg.get("smtpPort") or "587"
        try:
            port = int(port_raw)
        except ValueError:
            port = 587
        return cls(
            to_address=cfg.require("toAddress"),
            smtp_server=cfg.require("smtpServer"),
            smtp_username=cfg.require("smtpUsername"),
            smtp_password=cfg.require("smtpPassword"),
            smtp_port=port,
        )

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.smtp_username
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    async def send(self, subject: str, body: str) -> None:
        msg = self.build_message(subject, body)
        await asyncio.to_thread(self._send_blocking, msg)

    def _send_blocking(self, msg: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout_s) as s:
                s.starttls(context=ssl.create_default_context())
                s.login(self.smtp_username, self.smtp_password)
                s.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise ChannelAuthError(f"mailSMTP: authentication failed for {self.smtp_username}: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelConnectError(f"mailSMTP: error sending via {self.smtp_server}: {e}") from e
