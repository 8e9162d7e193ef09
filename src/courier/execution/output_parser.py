"""Incremental decoder for the OUTPUT_START/END framing protocol.

The agent writes free-form diagnostic text to stdout. When it has a result
it writes, each on its own line::

    ---COURIER_OUTPUT_START---
    {"status": "success", "result": "...", "newSessionId": "..."}
    ---COURIER_OUTPUT_END---

Everything outside a frame is passed through as an OutputFragment. Only a
complete start/end pair is parsed; a start marker seen while a frame is
open restarts the frame.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from courier.infrastructure.config import CONTAINER_MAX_OUTPUT_SIZE

OUTPUT_START_MARKER = "---COURIER_OUTPUT_START---"
OUTPUT_END_MARKER = "---COURIER_OUTPUT_END---"


@dataclass
class ContainerOutput:
    status: str = "success"
    result: str | None = None
    new_session_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class OutputFragment:
    """Passthrough text written outside any frame."""

    text: str


@dataclass
class OutputFrame:
    """A complete frame. output is None when the payload was unusable."""

    output: ContainerOutput | None
    raw: str


OutputEvent = OutputFragment | OutputFrame


def parse_output(raw: str) -> ContainerOutput | None:
    """Parse a frame payload. Returns None rather than raising on bad input."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    status = data.get("status", "success")
    if status not in ("success", "error"):
        return None

    def text_field(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) else None

    return ContainerOutput(
        status=status,
        result=text_field("result"),
        new_session_id=text_field("newSessionId"),
        error=text_field("error"),
    )


class ContainerOutputParser:
    """Stateful, line-based frame decoder fed with arbitrary text chunks."""

    def __init__(self, max_frame_size: int = CONTAINER_MAX_OUTPUT_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._partial = ""
        self._collecting = False
        # Set after an oversized frame is abandoned: its remaining lines,
        # end marker included, are dropped rather than passed through.
        self._discarding = False
        self._frame: list[str] = []
        self._frame_size = 0

    @property
    def in_frame(self) -> bool:
        return self._collecting or self._discarding

    def feed(self, text: str) -> list[OutputEvent]:
        """Feed a chunk of stdout. Returns the events it completes, in order.

        Passthrough lines from one chunk are coalesced into a single
        fragment per run between frames.
        """
        events: list[OutputEvent] = []
        passthrough: list[str] = []

        lines = (self._partial + text).split("\n")
        self._partial = lines.pop()

        for line in lines:
            self._consume(line, passthrough, events)

        # A line that never ends must not grow without bound.
        if len(self._partial) > self._max_frame_size:
            if self._collecting:
                self._frame.append(self._partial)
                events.append(self._abandon_frame())
            elif not self._discarding:
                passthrough.append(self._partial)
            self._partial = ""

        self._flush_passthrough(passthrough, events)
        return events

    def flush(self) -> list[OutputEvent]:
        """End of stream. Emits a trailing unterminated line; drops an open frame."""
        events: list[OutputEvent] = []
        if self._partial and not self.in_frame:
            stripped = self._partial.rstrip("\r")
            if stripped not in (OUTPUT_START_MARKER, OUTPUT_END_MARKER):
                events.append(OutputFragment(self._partial))
        self._partial = ""
        self._reset_frame()
        return events

    def _consume(self, line: str, passthrough: list[str], events: list[OutputEvent]) -> None:
        stripped = line.rstrip("\r")

        if stripped == OUTPUT_START_MARKER:
            self._flush_passthrough(passthrough, events)
            self._reset_frame()
            self._collecting = True
            return

        if self._discarding:
            if stripped == OUTPUT_END_MARKER:
                self._discarding = False
            return

        if not self._collecting:
            passthrough.append(line + "\n")
            return

        if stripped == OUTPUT_END_MARKER:
            raw = "\n".join(self._frame)
            self._reset_frame()
            events.append(OutputFrame(output=parse_output(raw), raw=raw))
            return

        self._frame.append(stripped)
        self._frame_size += len(stripped) + 1
        if self._frame_size > self._max_frame_size:
            events.append(self._abandon_frame())

    def _abandon_frame(self) -> OutputFrame:
        raw = "\n".join(self._frame)
        self._reset_frame()
        self._discarding = True
        return OutputFrame(output=None, raw=raw[:200])

    def _reset_frame(self) -> None:
        self._collecting = False
        self._discarding = False
        self._frame = []
        self._frame_size = 0

    @staticmethod
    def _flush_passthrough(passthrough: list[str], events: list[OutputEvent]) -> None:
        if passthrough:
            events.append(OutputFragment("".join(passthrough)))
            passthrough.clear()


class OutputCapture:
    """Accumulates stream text up to max_size; anything beyond is discarded."""

    def __init__(self, max_size: int = CONTAINER_MAX_OUTPUT_SIZE) -> None:
        self._max_size = max_size
        self._parts: list[str] = []
        self._size = 0
        self.truncated = False

    def append(self, text: str) -> bool:
        """Returns True if this call caused truncation."""
        if self.truncated:
            return False
        remaining = self._max_size - self._size
        if len(text) > remaining:
            self._parts.append(text[:remaining])
            self._size = self._max_size
            self.truncated = True
            return True
        self._parts.append(text)
        self._size += len(text)
        return False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def tail(self, n: int = 200) -> str:
        return self.text[-n:]
