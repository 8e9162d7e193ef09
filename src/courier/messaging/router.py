"""Prompt formatting and outbound delivery of agent text to channels."""

from __future__ import annotations

import re
from dataclasses import dataclass

from courier.infrastructure.logger import logger
from courier.messaging.channel_registry import ChannelRegistry
from courier.messaging.types import NewMessage

_INTERNAL_RE = re.compile(r"<internal>[\s\S]*?</internal>")


def escape_xml(s: str | None) -> str:
    """Escape characters that are significant in XML text and attribute values."""
    if not s:
        return ""
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def format_messages(messages: list[NewMessage]) -> str:
    """Format messages into the <messages> envelope handed to the agent as a prompt."""
    lines: list[str] = []
    for msg in messages:
        inner = ""
        if msg.reply_context:
            reply = msg.reply_context
            reply_text = escape_xml(reply.text) if reply.text is not None else "[non-text message]"
            inner += f'<reply to="{escape_xml(reply.sender_name)}">{reply_text}</reply>'
        inner += escape_xml(msg.content)
        lines.append(f'<message sender="{escape_xml(msg.sender_name)}" time="{msg.timestamp}">{inner}</message>')
    return "<messages>\n" + "\n".join(lines) + "\n</messages>"


def strip_internal_tags(text: str) -> str:
    """Strip <internal>...</internal> blocks from agent output."""
    return _INTERNAL_RE.sub("", text).strip()


def format_outbound(raw_text: str) -> str:
    return strip_internal_tags(raw_text)


@dataclass
class RouteResult:
    ok: bool
    channel: str | None = None
    error: str | None = None
    skipped: bool = False


class MessageRouter:
    """Delivers text to whichever connected channel owns the target JID."""

    def __init__(self, channels: ChannelRegistry) -> None:
        self._channels = channels

    async def send(self, jid: str, raw_text: str) -> RouteResult:
        text = format_outbound(raw_text)
        if not text:
            logger.debug("Nothing to send after stripping internal tags", jid=jid)
            return RouteResult(ok=True, skipped=True)

        channel = self._channels.find_connected_by_jid(jid)
        if not channel:
            logger.warning("No connected channel for JID", jid=jid)
            return RouteResult(ok=False, error=f"No channel for JID: {jid}")

        try:
            await channel.send_message(jid, text)
        except Exception as err:
            logger.exception("Failed to send message", jid=jid, channel=channel.name)
            return RouteResult(ok=False, channel=channel.name, error=str(err))

        logger.info("Message sent", jid=jid, channel=channel.name, length=len(text))
        return RouteResult(ok=True, channel=channel.name)
