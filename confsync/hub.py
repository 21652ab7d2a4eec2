"""Session registry and broadcast fan-out."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

from pydantic import BaseModel

log = logging.getLogger(__name__)


class SessionHandle(Protocol):
    """What the hub needs from a connected client."""

    session_id: int

    def deliver(self, config: BaseModel) -> None:
        """Queue a config for the client without blocking."""
        ...


class Hub:
    """Owns the set of live sessions and fans config updates out to them.

    The live set is only touched under ``_lock``. ``broadcast`` copies it and
    releases the lock before delivering, so a slow or broken session never
    holds up registration or the other sessions.
    """

    def __init__(self) -> None:
        self._sessions: set[SessionHandle] = set()
        self._lock = threading.Lock()
        self._registered = 0
        self._deregistered = 0
        self._broadcasts = 0
        self._delivery_failures = 0

    def register(self, session: SessionHandle) -> None:
        with self._lock:
            if session in self._sessions:
                return
            self._sessions.add(session)
            self._registered += 1
            total = len(self._sessions)
        log.info("hub: session %d connected (%d total)", session.session_id, total)

    def deregister(self, session: SessionHandle) -> None:
        with self._lock:
            if session not in self._sessions:
                return
            self._sessions.discard(session)
            self._deregistered += 1
            total = len(self._sessions)
        log.info("hub: session %d disconnected (%d total)", session.session_id, total)

    def broadcast(self, config: BaseModel) -> int:
        """Deliver ``config`` to every session registered right now.

        Returns the number of sessions the config was handed to.
        """
        with self._lock:
            targets = list(self._sessions)
            self._broadcasts += 1

        log.debug("hub: broadcasting %r to %d session(s)", config, len(targets))
        delivered = 0
        for session in targets:
            try:
                session.deliver(config)
            except Exception:
                log.exception("hub: delivery to session %d failed", session.session_id)
                with self._lock:
                    self._delivery_failures += 1
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        with self._lock:
            return session in self._sessions

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "active_sessions": len(self._sessions),
                "registered": self._registered,
                "deregistered": self._deregistered,
                "broadcasts": self._broadcasts,
                "delivery_failures": self._delivery_failures,
                "session_ids": sorted(s.session_id for s in self._sessions),
            }
