"""Config sync server: poll an upstream config and push it to websocket clients."""

from confsync.errors import (
    ConfSyncError,
    ProtocolError,
    SessionSerializationError,
    TransportSetupError,
    UpstreamFetchError,
)
from confsync.hub import Hub
from confsync.poller import ConfigPoller
from confsync.session import ClientSession, SessionState
from confsync.shared import SharedConfig
from confsync.source import ConfigSource

__all__ = [
    "ClientSession",
    "ConfSyncError",
    "ConfigPoller",
    "ConfigSource",
    "Hub",
    "ProtocolError",
    "SessionSerializationError",
    "SessionState",
    "SharedConfig",
    "TransportSetupError",
    "UpstreamFetchError",
]
