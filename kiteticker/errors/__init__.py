"""
Error classification for the ticker client.

Connection level faults are surfaced to the handler and never retried
automatically. Decode level faults are scoped to one sub-packet or one
frame and never affect the connection.
"""

from .connection import (
    TickerError,
    TickerConnectionError,
    NotConnectedError,
    TickerStateError,
    ConfigurationError,
)
from .decoding import (
    DecodeError,
    ProtocolError,
)

__all__ = [
    # Connection errors
    "TickerError",
    "TickerConnectionError",
    "NotConnectedError",
    "TickerStateError",
    "ConfigurationError",
    # Decode errors
    "DecodeError",
    "ProtocolError",
]
