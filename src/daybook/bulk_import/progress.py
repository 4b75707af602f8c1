"""Progress log channel for long-running imports."""

import asyncio
from collections.abc import AsyncIterator

_CLOSED = object()


class ProgressLog:
    """An ordered stream of human-readable progress lines.

    The producer calls `emit()` and finally `close()`; the consumer iterates
    `lines()` as they arrive. Every emitted line is also kept in `history`.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.history: list[str] = []
        self.closed = False

    def emit(self, message: str, date: str | None = None) -> None:
        """Publish a message, optionally prefixed with the entry's date.

        Multi-line messages are published as one line each, so the stream
        never carries a line with an embedded newline.
        """
        for part in message.splitlines() or [""]:
            line = f"[{date}] {part}" if date else part
            self.history.append(line)
            if not self.closed:
                self.queue.put_nowait(line)

    def close(self) -> None:
        """End the stream. Later emits are only recorded in `history`."""
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(_CLOSED)

    async def lines(self) -> AsyncIterator[str]:
        """Yield lines until the log is closed."""
        while True:
            item = await self.queue.get()
            if item is _CLOSED:
                return
            yield item
