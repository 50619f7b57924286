"""Pytest configuration and shared fixtures."""

import json
import queue
import struct
import threading
import time
from typing import Any, Callable, Optional

import pytest

from kiteticker.config.defaults import get_default_config
from kiteticker.data.decoder import PacketDecoder
from kiteticker.data.encoder import PacketEncoder
from kiteticker.data.models import RawFrame
from kiteticker.dispatch.handler import TickerHandler
from kiteticker.errors import TickerConnectionError

NIFTY_50 = 256265          # Index token, segment 9
INFY_NSE = 408065          # Equity token, segment 1
USDINR_CDS = 412675        # Currency derivative token, segment 3


class FakeSession:
    """In-memory TransportSession driven by the test."""

    def __init__(self, connect_error: Optional[Exception] = None):
        self.connect_error = connect_error
        self.send_error: Optional[Exception] = None
        self.url: Optional[str] = None
        self.headers: Optional[dict] = None
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.shut_down = False
        self._frames: "queue.Queue[Any]" = queue.Queue()
        self._handshake_gate: Optional[threading.Event] = None
        self.reading = threading.Event()

    def hold_handshake(self) -> threading.Event:
        """Block connect() until the returned event is set."""
        self._handshake_gate = threading.Event()
        return self._handshake_gate

    # TransportSession

    def connect(self, url: str, headers: dict, timeout: float) -> None:
        self.url = url
        self.headers = headers
        if self._handshake_gate is not None:
            self._handshake_gate.wait(5)
        if self.connect_error is not None:
            raise self.connect_error

    def recv(self) -> Optional[RawFrame]:
        self.reading.set()
        item = self._frames.get()
        if isinstance(item, Exception):
            raise item
        return item

    def send(self, text: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(text))

    def close(self) -> None:
        self.closed = True
        self._frames.put(None)

    def shutdown(self) -> None:
        self.shut_down = True

    # Test drivers

    def push_binary(self, data: bytes) -> None:
        self._frames.put(RawFrame(data=data, is_binary=True))

    def push_text(self, text: str) -> None:
        self._frames.put(RawFrame(data=text, is_binary=False))

    def drop(self, message: str = "connection reset") -> None:
        self._frames.put(TickerConnectionError(message, url="wss://test"))

    def remote_close(self) -> None:
        self._frames.put(None)


class FakeTransport:
    """Transport factory handing out FakeSessions in order."""

    def __init__(self):
        self.sessions: list[FakeSession] = []
        self._prepared: list[FakeSession] = []

    def prepare(self, session: FakeSession) -> FakeSession:
        self._prepared.append(session)
        return session

    def __call__(self) -> FakeSession:
        session = self._prepared.pop(0) if self._prepared else FakeSession()
        self.sessions.append(session)
        return session

    @property
    def current(self) -> FakeSession:
        return self.sessions[-1]


class RecordingHandler(TickerHandler):
    """Handler that records every callback in order."""

    def __init__(self):
        self.events: list[tuple] = []
        self.opened = threading.Event()
        self.closed = threading.Event()
        self._active = 0
        self.max_concurrent = 0
        self._guard = threading.Lock()

    def _record(self, *event: Any) -> None:
        with self._guard:
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
        self.events.append(event)
        with self._guard:
            self._active -= 1

    def on_open(self) -> None:
        self._record("open")
        self.opened.set()

    def on_message(self, raw_frame) -> None:
        self._record("message", raw_frame)

    def on_tick(self, tick) -> None:
        self._record("tick", tick)

    def on_decode_error(self, error) -> None:
        self._record("decode_error", error)

    def on_close(self) -> None:
        self._record("close")
        self.closed.set()

    def on_error(self, error) -> None:
        self._record("error", error)

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]

    def ticks(self) -> list:
        return [event[1] for event in self.events if event[0] == "tick"]


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout passes."""
    return _wait_until


@pytest.fixture
def default_config():
    return get_default_config()


@pytest.fixture
def decoder(default_config) -> PacketDecoder:
    return PacketDecoder.from_config(default_config)


@pytest.fixture
def encoder(default_config) -> PacketEncoder:
    return PacketEncoder.from_config(default_config)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_session_cls():
    return FakeSession


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def handler_cls():
    return RecordingHandler


def ltp_payload(token: int, price: int) -> bytes:
    return struct.pack(">Ii", token, price)


def quote_payload(token: int, price: int, quantity: int = 10, average: int = 0,
                  volume: int = 1000, buy: int = 500, sell: int = 400,
                  ohlc: tuple = (100, 110, 90, 105)) -> bytes:
    return struct.pack(">IiIiIIIiiii", token, price, quantity, average or price,
                       volume, buy, sell, *ohlc)


def frame(*payloads: bytes) -> bytes:
    parts = [struct.pack(">H", len(payloads))]
    for payload in payloads:
        parts.append(struct.pack(">H", len(payload)) + payload)
    return b"".join(parts)


@pytest.fixture
def packets():
    """Raw payload and frame builders independent of the encoder."""
    class Packets:
        ltp = staticmethod(ltp_payload)
        quote = staticmethod(quote_payload)
        frame = staticmethod(frame)
    return Packets
