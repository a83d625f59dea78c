"""Background event loop for hosts that are not asyncio-native (Streamlit).

Streamlit re-runs the script on every interaction, while a map session needs a
loop that keeps running between reruns (poll timers, rotation steps, fly-to
callbacks). LoopThread owns such a loop in a daemon thread; the script talks to
it through call(), which runs a function on the loop and waits for its result.

Host callbacks fire on the loop thread, where Streamlit APIs are unavailable.
HostEvents buffers them until the next script run drains the queue.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from peakmap.constants import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopThread:
    """An asyncio event loop running forever in a daemon thread."""

    def __init__(self, name: str = "peakmap-loop") -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        logger.info(f"[LOOP] Started event loop thread '{name}'")

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self.loop.is_closed()

    def call(self, fn: Callable[..., T], *args: Any, timeout: float = AppConfig.LOOP_CALL_TIMEOUT_S) -> T:
        """Run fn(*args) on the loop thread and return its result.

        Raises:
            RuntimeError: If the loop is not running.
            Exception: Whatever fn raised.
        """
        if not self.running:
            raise RuntimeError("Event loop thread is not running")

        async def invoke() -> T:
            return fn(*args)

        future = asyncio.run_coroutine_threadsafe(invoke(), self.loop)
        return future.result(timeout=timeout)

    def stop(self) -> None:
        """Stop the loop and wait for the thread to exit."""
        if not self.running:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=AppConfig.LOOP_CALL_TIMEOUT_S)
        self.loop.close()
        logger.info("[LOOP] Event loop thread stopped")


@dataclass(frozen=True)
class HostEvent:
    """Something a session reported to the host (e.g. "marker_click", "ready")."""

    kind: str
    payload: Any = None


class HostEvents:
    """Thread-safe buffer of HostEvents, filled on the loop thread, drained by the script."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[HostEvent] = queue.SimpleQueue()

    def post(self, kind: str, payload: Any = None) -> None:
        self._queue.put(HostEvent(kind=kind, payload=payload))

    def drain(self) -> list[HostEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
