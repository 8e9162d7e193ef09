"""Registry pattern for multiple channels."""

from __future__ import annotations

from courier.infrastructure.logger import logger
from courier.messaging.types import Channel


class ChannelRegistry:
    """Holds the registered channels and finds the one that owns a JID."""

    def __init__(self) -> None:
        self._channels: list[Channel] = []

    def register(self, channel: Channel) -> None:
        if any(c.name == channel.name for c in self._channels):
            raise ValueError(f'Channel "{channel.name}" is already registered')
        self._channels.append(channel)
        logger.debug("Channel registered", channel=channel.name)

    def find_by_jid(self, jid: str) -> Channel | None:
        return next((c for c in self._channels if c.owns_jid(jid)), None)

    def find_connected_by_jid(self, jid: str) -> Channel | None:
        return next((c for c in self._channels if c.owns_jid(jid) and c.is_connected()), None)

    def get_all(self) -> list[Channel]:
        return list(self._channels)

    async def connect_all(self) -> None:
        for channel in self._channels:
            await channel.connect()
            logger.info("Channel connected", channel=channel.name)

    async def disconnect_all(self) -> None:
        for channel in reversed(self._channels):
            try:
                await channel.disconnect()
            except Exception:
                logger.exception("Error disconnecting channel", channel=channel.name)
