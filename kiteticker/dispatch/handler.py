"""Handler interface for ticker events."""

from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ..data.models import Tick
    from ..errors import DecodeError, TickerConnectionError


class TickerHandler:
    """
    Receives ticker events. Override only the callbacks you need; every
    callback defaults to a no-op.

    All callbacks run on the ticker's I/O thread while the dispatcher lock is
    held. A slow callback delays reading of subsequent frames, so offload
    heavy work to another thread. Callbacks may issue subscribe, unsubscribe,
    set_mode and close on the client; they must not wait for the I/O thread
    (e.g. ``KiteTicker.wait_closed``), which would deadlock.
    """

    def on_open(self) -> None:
        """Connection established and handshake complete."""

    def on_message(self, raw_frame: Union[bytes, str]) -> None:
        """Every raw frame, text or binary, before decoding."""

    def on_tick(self, tick: "Tick") -> None:
        """One decoded tick."""

    def on_decode_error(self, error: "DecodeError") -> None:
        """A sub-packet or frame could not be decoded. The connection stays up."""

    def on_close(self) -> None:
        """Connection episode ended. Fires once per episode."""

    def on_error(self, error: "TickerConnectionError") -> None:
        """Handshake or transport failure. Fires at most once per episode."""
