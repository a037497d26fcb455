from enum import Enum


class ConnectionState(str, Enum):
    """Transport state of a tracker. Exactly one value holds at a time."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FALLBACK_POLLING = "fallback-polling"
