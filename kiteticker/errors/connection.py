"""
Connection and client state error classifications.

These exceptions describe failures of the transport session or misuse of
the client lifecycle. None of them is fatal to the process.
"""

from typing import Optional, Dict, Any


class TickerError(Exception):
    """Base class for all ticker client errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class TickerConnectionError(TickerError):
    """Handshake or transport failure. Ends the current connection episode."""

    def __init__(self, message: str, url: Optional[str] = None,
                 cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.cause = cause
        self.recoverable = False


class NotConnectedError(TickerError):
    """A command was issued while the session is not connected."""

    def __init__(self, message: str, state: Optional[str] = None,
                 command: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.state = state
        self.command = command


class TickerStateError(TickerError):
    """Lifecycle call that is not valid from the current connection state."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


class ConfigurationError(TickerError):
    """Invalid packet layout or divisor configuration."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
        self.recoverable = False
