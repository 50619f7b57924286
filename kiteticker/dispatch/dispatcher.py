"""
Serialized event delivery to the user supplied handler.

Every callback runs while holding one lock, so at most one callback executes
at any instant regardless of kind. Events are delivered synchronously on the
calling thread, which for feed events is the I/O thread; delivery order is
therefore the order frames were received.
"""

import threading
from typing import Any, Optional, Union

import structlog

from ..data.models import DecodeResult, Tick
from ..errors import DecodeError, TickerConnectionError
from .handler import TickerHandler

logger = structlog.get_logger(__name__)


class EventDispatcher:
    """Delivers lifecycle, message and tick events to a single handler."""

    def __init__(self, handler: Optional[TickerHandler] = None):
        self.handler = handler if handler is not None else TickerHandler()
        self.logger = logger
        self._lock = threading.Lock()
        self._delivered = 0
        self._handler_failures = 0

    def dispatch_open(self) -> None:
        with self._lock:
            self._invoke("on_open")

    def dispatch_close(self) -> None:
        with self._lock:
            self._invoke("on_close")

    def dispatch_error(self, error: TickerConnectionError) -> None:
        with self._lock:
            self._invoke("on_error", error)

    def dispatch_message(self, raw_frame: Union[bytes, str]) -> None:
        with self._lock:
            self._invoke("on_message", raw_frame)

    def dispatch_tick(self, tick: Tick) -> None:
        with self._lock:
            self._invoke("on_tick", tick)

    def dispatch_decode_error(self, error: DecodeError) -> None:
        with self._lock:
            self._invoke("on_decode_error", error)

    def dispatch_frame(self, raw_frame: Union[bytes, str],
                       result: Optional[DecodeResult] = None) -> None:
        """
        Deliver one received frame as a unit.

        ``on_message`` fires first with the raw frame, then ``on_tick`` once per
        decoded tick in frame order, then ``on_decode_error`` once per error.
        The lock is held across the whole frame so no other callback can
        interleave with it.
        """
        with self._lock:
            self._invoke("on_message", raw_frame)
            if result is None:
                return
            for tick in result.ticks:
                self._invoke("on_tick", tick)
            for error in result.errors:
                self._invoke("on_decode_error", error)

    def _invoke(self, callback: str, *args: Any) -> None:
        """Run one callback. Caller must hold the lock."""
        try:
            getattr(self.handler, callback)(*args)
            self._delivered += 1
        except Exception:
            self._handler_failures += 1
            self.logger.exception(
                "Handler callback raised",
                callback=callback,
                handler=type(self.handler).__name__,
            )

    def get_stats(self) -> dict[str, Any]:
        """Get delivery statistics."""
        with self._lock:
            return {
                "delivered": self._delivered,
                "handler_failures": self._handler_failures,
            }
