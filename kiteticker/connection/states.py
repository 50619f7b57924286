"""
Connection state machine definitions.

DISCONNECTED -> CONNECTING -> CONNECTED -> (CLOSING | ERRORED) -> DISCONNECTED

The machine is re-entered with a fresh connect() once it has settled back
in DISCONNECTED.
"""

from enum import Enum

from ..errors import TickerStateError


class ConnectionState(str, Enum):
    """Connection lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    ERRORED = "errored"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.CLOSING,
        ConnectionState.ERRORED,
    }),
    ConnectionState.CONNECTED: frozenset({
        ConnectionState.CLOSING,
        ConnectionState.ERRORED,
    }),
    ConnectionState.CLOSING: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.ERRORED: frozenset({ConnectionState.DISCONNECTED}),
}

# States in which a transport session exists
LIVE_STATES = frozenset({ConnectionState.CONNECTING, ConnectionState.CONNECTED})


def check_transition(current: ConnectionState, target: ConnectionState, trigger: str) -> None:
    """Raise TickerStateError unless current -> target is allowed."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise TickerStateError(
            f"Cannot {trigger} while {current.value}",
            current_state=current.value,
            attempted_transition=f"{current.value}->{target.value}",
        )
