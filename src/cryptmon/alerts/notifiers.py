# src/cryptmon/alerts/notifiers.py
from __future__ import annotations
import asyncio
import shutil
import sys
import structlog
from typing import Callable, Optional, TextIO

from cryptmon.alerts.formatting import format_console_line
from cryptmon.utils.types import AlertMessage

log = structlog.get_logger("notifier")


class DesktopNotifyError(RuntimeError):
    pass


class ConsoleNotifier:
    """User-facing alert output (stdout). Diagnostics go through structlog instead."""
    def __init__(self, format_fn: Optional[Callable[[AlertMessage], str]] = None, stream: Optional[TextIO] = None):
        self._format_fn = format_fn or format_console_line
        self._stream = stream

    async def send(self, msg: AlertMessage) -> None:
        stream = self._stream or sys.stdout
        try:
            text = self._format_fn(msg)
        except Exception as e:
            log.warning("console_format_failed", err=str(e))
            text = f"[ALERT] {msg.body}"
        print(text, file=stream, flush=True)


class DesktopNotifier:
    """
    Local desktop popups through `notify-send` (libnotify). Available only when
    the binary is on PATH.
    """
    def __init__(self, binary: str = "notify-send", app_name: str = "cryptmon"):
        self.binary = binary
        self.app_name = app_name
        self._path = shutil.which(binary)

    @property
    def available(self) -> bool:
        return self._path is not None

    async def send(self, msg: AlertMessage) -> None:
        if self._path is None:
            raise DesktopNotifyError(f"{self.binary} not found")
        proc = await asyncio.create_subprocess_exec(
            self._path, "--app-name", self.app_name, msg.subject, msg.body,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, err = await proc.communicate()
        if proc.returncode != 0:
            detail = (err or b"").decode("utf-8", errors="replace").strip()
            raise DesktopNotifyError(f"{self.binary} exited with {proc.returncode}: {detail}")
