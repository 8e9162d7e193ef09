"""Local channel — delivers messages for local:* JIDs to the terminal."""

from __future__ import annotations

import sys
from typing import TextIO

from courier.infrastructure.config import ASSISTANT_NAME

LOCAL_JID_PREFIX = "local:"


class LocalChannel:
    name = "local"

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def send_message(self, jid: str, text: str) -> None:
        self._stream.write(f"[{jid}] {ASSISTANT_NAME}: {text}\n")
        self._stream.flush()

    def is_connected(self) -> bool:
        return self._connected

    def owns_jid(self, jid: str) -> bool:
        return jid.startswith(LOCAL_JID_PREFIX)

    async def disconnect(self) -> None:
        self._connected = False
