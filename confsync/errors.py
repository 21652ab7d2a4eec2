"""Error taxonomy shared by the poller, hub and client sessions."""

from __future__ import annotations


class ConfSyncError(RuntimeError):
    """Base error for config sync failures."""


class UpstreamFetchError(ConfSyncError):
    """Raised when the upstream config source cannot be read or decoded."""


class SessionSerializationError(ConfSyncError):
    """Raised when a config cannot be encoded for a client session."""


class TransportSetupError(ConfSyncError):
    """Raised when a client websocket cannot be accepted."""


class ProtocolError(ConfSyncError):
    """Raised when a client sends a frame that is not valid UTF-8 text."""
