"""Asynchronous line reading over a child process pipe."""

from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator, Callable

LOG = logging.getLogger(__name__)


async def iter_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield decoded lines until end-of-stream.

    A failing read ends the iteration instead of raising, so output cut short
    by an I/O error looks like complete output to the consumer. Whatever is
    left in the stream after the failure is read and thrown away.
    """
    while True:
        try:
            raw = await stream.readline()
        except (OSError, ValueError, asyncio.IncompleteReadError) as exc:
            LOG.warning("Error reading command output: %s", exc)
            await _discard(stream)
            return
        if not raw:
            return
        yield raw.decode("utf-8", errors="replace").rstrip("\r\n")


async def _discard(stream: asyncio.StreamReader) -> None:
    # Keep the pipe flowing so the child can finish writing and exit.
    while True:
        try:
            chunk = await stream.read(65536)
        except (OSError, ValueError, asyncio.IncompleteReadError):
            return
        if not chunk:
            return


async def read_lines(stream: asyncio.StreamReader | None, on_line: Callable[[str], None]) -> int:
    if stream is None:
        return 0
    count = 0
    async for line in iter_lines(stream):
        on_line(line)
        count += 1
    return count
