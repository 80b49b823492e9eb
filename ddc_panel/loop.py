from __future__ import annotations
import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Coroutine

LOG = logging.getLogger(__name__)


class EventLoopThread:
    """Runs one asyncio loop on a daemon thread for the web handlers to use."""

    def __init__(self, name: str = "ddc-loop"):
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and self.loop.is_running()

    def start(self) -> None:
        if self._thread.is_alive():
            return
        self._thread.start()
        self._ready.wait()

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread.is_alive():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(self._log_failure)
        return future

    def run(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        return self.submit(coro).result(timeout)

    def call(self, fn: Callable[..., Any], *args: Any, timeout: float | None = None) -> Any:
        async def _invoke():
            return fn(*args)
        return self.run(_invoke(), timeout)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        try:
            self.loop.run_forever()
        finally:
            self.loop.run_until_complete(self.loop.shutdown_asyncgens())
            self.loop.close()

    @staticmethod
    def _log_failure(future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOG.error("Background task failed", exc_info=exc)
