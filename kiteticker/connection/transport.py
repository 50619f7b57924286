"""
Transport boundary for the ticker.

The connection manager only needs a session that can connect with headers,
receive frames, send text and be closed from another thread. The default
session is built on websocket-client, whose blocking API fits the single
I/O thread model.
"""

import threading
from typing import Callable, Optional, Protocol
from urllib.parse import urlencode

import structlog
import websocket

from ..config.defaults import ConnectionParams
from ..data.models import RawFrame
from ..errors import TickerConnectionError

logger = structlog.get_logger(__name__)


class TransportSession(Protocol):
    """One transport connection."""

    def connect(self, url: str, headers: dict[str, str], timeout: float) -> None:
        """Open the connection and complete the handshake. Blocks."""

    def recv(self) -> Optional[RawFrame]:
        """Next data frame; None once the peer has closed. Blocks."""

    def send(self, text: str) -> None:
        """Send one text frame. Safe to call from any thread."""

    def close(self) -> None:
        """Request shutdown from any thread; unblocks a pending recv."""

    def shutdown(self) -> None:
        """Release the underlying socket. Idempotent."""


TransportFactory = Callable[[], TransportSession]


def build_url(root_url: str, api_key: str, access_token: str) -> str:
    """Connection URL carrying the API key and access token."""
    query = urlencode({"api_key": api_key, "access_token": access_token})
    separator = "&" if "?" in root_url else "?"
    return f"{root_url}{separator}{query}"


def build_headers(params: ConnectionParams) -> dict[str, str]:
    """Handshake headers advertising the protocol version."""
    return {params.version_header: params.protocol_version}


def redact_url(url: str) -> str:
    """URL without its query string, safe to log."""
    return url.split("?", 1)[0]


class WebSocketSession:
    """TransportSession backed by websocket-client."""

    def __init__(self):
        self._ws = websocket.WebSocket(enable_multithread=True)
        self._url: Optional[str] = None
        self._lock = threading.Lock()
        self._closed = False

    def connect(self, url: str, headers: dict[str, str], timeout: float) -> None:
        self._url = redact_url(url)
        try:
            self._ws.connect(url, header=headers, timeout=timeout)
            # Reads block indefinitely once the handshake is done
            self._ws.settimeout(None)
        except (websocket.WebSocketException, OSError) as e:
            raise TickerConnectionError(
                f"Handshake with {self._url} failed: {e}",
                url=self._url,
                cause=e,
            ) from e

    def recv(self) -> Optional[RawFrame]:
        while True:
            try:
                opcode, data = self._ws.recv_data()
            except websocket.WebSocketConnectionClosedException:
                if self._closed:
                    return None
                raise TickerConnectionError(
                    f"Connection to {self._url} dropped",
                    url=self._url,
                )
            except (websocket.WebSocketException, OSError) as e:
                if self._closed:
                    return None
                raise TickerConnectionError(
                    f"Receive from {self._url} failed: {e}",
                    url=self._url,
                    cause=e,
                ) from e

            if opcode == websocket.ABNF.OPCODE_CLOSE:
                return None
            if opcode == websocket.ABNF.OPCODE_BINARY:
                return RawFrame(data=bytes(data), is_binary=True)
            if opcode == websocket.ABNF.OPCODE_TEXT:
                if isinstance(data, (bytes, bytearray)):
                    data = data.decode("utf-8", errors="replace")
                return RawFrame(data=data, is_binary=False)

    def send(self, text: str) -> None:
        try:
            self._ws.send(text)
        except (websocket.WebSocketException, OSError) as e:
            raise TickerConnectionError(
                f"Send to {self._url} failed: {e}",
                url=self._url,
                cause=e,
            ) from e

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._ws.send_close()
        except (websocket.WebSocketException, OSError) as e:
            logger.debug("Close frame not sent", url=self._url, error=str(e))
        self._ws.abort()

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
        self._ws.shutdown()
