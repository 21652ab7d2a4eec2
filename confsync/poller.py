"""Background loop that refreshes the shared config and pushes it to clients."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from confsync.errors import UpstreamFetchError

if TYPE_CHECKING:
    from confsync.hub import Hub
    from confsync.shared import SharedConfig
    from confsync.source import ConfigSource

log = logging.getLogger(__name__)


class ConfigPoller:
    """Fetch -> write -> broadcast, once per interval, strictly one cycle at a time.

    A failed fetch skips the cycle: SharedConfig is left alone and nothing is
    broadcast. There is no backoff; the next attempt happens on the next tick.
    """

    def __init__(
        self,
        source: ConfigSource,
        shared: SharedConfig,
        hub: Hub,
        interval_s: float = 5.0,
    ) -> None:
        self._source = source
        self._shared = shared
        self._hub = hub
        self._interval_s = interval_s
        self._stop_event: asyncio.Event | None = None
        self._running = False
        self._cycles = 0
        self._ok = 0
        self._failed = 0
        self._last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def poll_once(self) -> bool:
        """Run a single cycle. Returns True if a new config was installed."""
        self._cycles += 1
        try:
            config = await self._source.fetch()
        except UpstreamFetchError as e:
            self._failed += 1
            self._last_error = str(e)
            log.error("Failed to fetch config: %s", e)
            return False

        self._shared.write(config)
        delivered = self._hub.broadcast(config)
        self._ok += 1
        self._last_error = None
        log.debug("config installed, pushed to %d session(s)", delivered)
        return True

    async def run(self) -> None:
        # One event per run; it binds to whichever loop runs this poller.
        self._stop_event = asyncio.Event()
        self._running = True
        log.info(
            "config poller started (url=%s, interval=%.1fs)",
            self._source.url,
            self._interval_s,
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.poll_once()
                except Exception as e:
                    self._failed += 1
                    self._last_error = repr(e)
                    log.exception("config poll cycle crashed")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            log.info("config poller stopped after %d cycle(s)", self._cycles)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def snapshot(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_s": self._interval_s,
            "cycles": self._cycles,
            "ok": self._ok,
            "failed": self._failed,
            "last_error": self._last_error,
        }
