"""
Connection lifecycle and command transmission.

The manager owns the transport session and the single I/O thread. The I/O
thread performs the handshake, replays subscription intent, then reads
frames, decodes binary ones and hands every event to the dispatcher.
Caller threads may issue commands and lifecycle calls at any time; they
only ever touch the registry, the state under a short lock and the
session's thread-safe send.
"""

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from ..config.defaults import ConnectionParams
from ..data.decoder import PacketDecoder
from ..data.models import SERVER_DEFAULT_MODE, DecodeResult, Mode, RawFrame
from ..dispatch.dispatcher import EventDispatcher
from ..dispatch.handler import TickerHandler
from ..errors import NotConnectedError, TickerConnectionError
from ..logging.config import get_connection_logger, log_state_transition
from ..subscriptions.registry import SubscriptionRegistry, normalize_tokens
from .commands import (
    CommandResult,
    CommandStatus,
    mode_command,
    serialize,
    subscribe_command,
    unsubscribe_command,
)
from .states import LIVE_STATES, ConnectionState, check_transition
from .transport import TransportFactory, TransportSession, WebSocketSession, build_headers, build_url

logger = get_connection_logger(__name__)


@dataclass
class FeedStats:
    """
    Counters for frames and commands.

    Updated from the I/O thread and from caller threads; all updates go
    through ``increment`` or ``record_decode``.
    """
    connects: int = 0
    frames: int = 0
    text_frames: int = 0
    heartbeats: int = 0
    ticks: int = 0
    decode_errors: int = 0
    timestamp_regressions: int = 0
    commands_sent: int = 0
    commands_not_connected: int = 0
    commands_failed: int = 0
    last_exchange_ts: dict[int, datetime] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def record_decode(self, result: DecodeResult) -> None:
        with self._lock:
            if result.is_heartbeat:
                self.heartbeats += 1
            self.ticks += len(result.ticks)
            self.decode_errors += len(result.errors)

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "connects": self.connects,
                "frames": self.frames,
                "text_frames": self.text_frames,
                "heartbeats": self.heartbeats,
                "ticks": self.ticks,
                "decode_errors": self.decode_errors,
                "timestamp_regressions": self.timestamp_regressions,
                "commands_sent": self.commands_sent,
                "commands_not_connected": self.commands_not_connected,
                "commands_failed": self.commands_failed,
            }


class ConnectionManager:
    """Connection state machine, I/O thread and resubscribe policy."""

    def __init__(
        self,
        api_key: str,
        access_token: str,
        registry: SubscriptionRegistry,
        dispatcher: EventDispatcher,
        decoder: PacketDecoder,
        params: Optional[ConnectionParams] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.api_key = api_key
        self.access_token = access_token
        self.registry = registry
        self.dispatcher = dispatcher
        self.decoder = decoder
        self.params = params or ConnectionParams()
        self.transport_factory = transport_factory or WebSocketSession
        self.stats = FeedStats()
        self.logger = logger

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[TransportSession] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def url(self) -> str:
        return build_url(self.params.root_url, self.api_key, self.access_token)

    # Lifecycle

    def connect(self, handler: Optional[TickerHandler] = None) -> None:
        """
        Start a connection episode on a new I/O thread.

        Valid only while DISCONNECTED. Returns immediately; handshake outcome
        is reported through on_open or on_error. A given handler replaces the
        current one before the I/O thread starts.

        Raises:
            TickerStateError: If a connection episode is already in progress
        """
        with self._lock:
            self._transition(ConnectionState.CONNECTING, trigger="connect")
            if handler is not None:
                self.dispatcher.handler = handler
            session = self.transport_factory()
            self._session = session
            self.stats.increment("connects")
            self._thread = threading.Thread(
                target=self._run,
                args=(session,),
                name=self.params.thread_name,
                daemon=True,
            )
            self._thread.start()

    def close(self) -> None:
        """
        Request shutdown of the current session.

        Valid from CONNECTING or CONNECTED. Frames received after this call
        are not processed; a callback already running is not interrupted.
        The state settles in DISCONNECTED after on_close fires.

        Raises:
            TickerStateError: If there is no live session
        """
        with self._lock:
            self._transition(ConnectionState.CLOSING, trigger="close")
            session = self._session

        if session is not None:
            session.close()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the I/O thread has finished.

        Must not be called from a handler callback.

        Returns:
            True if no I/O thread is running when the call returns
        """
        with self._lock:
            thread = self._thread
        if thread is None or thread is threading.current_thread():
            return thread is None
        thread.join(timeout)
        return not thread.is_alive()

    # Commands

    def subscribe(self, tokens: Iterable[int]) -> CommandResult:
        """Record subscription intent and transmit it when connected."""
        tokens = normalize_tokens(tokens)
        self.registry.subscribe(tokens)
        return self._send_tokens_command(subscribe_command(tokens), tokens)

    def unsubscribe(self, tokens: Iterable[int]) -> CommandResult:
        """Drop subscription intent and transmit it when connected."""
        tokens = normalize_tokens(tokens)
        self.registry.unsubscribe(tokens)
        return self._send_tokens_command(unsubscribe_command(tokens), tokens)

    def set_mode(self, mode: Union[Mode, str], tokens: Iterable[int]) -> CommandResult:
        """
        Record the mode for tokens and transmit it when connected.

        Tokens not yet subscribed are subscribed first, so that the mode
        command applies to them on the server as well.
        """
        mode = Mode.parse(mode)
        tokens = normalize_tokens(tokens)
        added = self.registry.set_mode(mode, tokens)

        if added:
            result = self._send_tokens_command(subscribe_command(added), added)
            if not result.sent:
                return result
        return self._send_tokens_command(mode_command(mode, tokens), tokens)

    def resubscribe(self) -> list[CommandResult]:
        """
        Replay the registry onto the live session.

        For each mode group one subscribe command is sent, followed by a mode
        command when the group's mode is not the server default.
        """
        results = []
        snapshot = self.registry.snapshot()

        for mode, tokens in snapshot.items():
            result = self.send_command(subscribe_command(tokens))
            results.append(result)
            if not result.sent:
                break
            if mode != SERVER_DEFAULT_MODE:
                result = self.send_command(mode_command(mode, tokens))
                results.append(result)
                if not result.sent:
                    break

        self.logger.info(
            "Resubscribed",
            groups={mode.value: len(tokens) for mode, tokens in snapshot.items()},
            commands=len(results),
        )
        return results

    def send_command(self, command: dict[str, Any]) -> CommandResult:
        """
        Transmit one command on the live session.

        Returns a NOT_CONNECTED result carrying a NotConnectedError when the
        session is not connected; nothing is transmitted in that case.
        """
        with self._lock:
            state = self._state
            session = self._session

        if state != ConnectionState.CONNECTED or session is None:
            self.stats.increment("commands_not_connected")
            self.logger.debug("Command not sent", action=command.get("a"), state=state.value)
            return CommandResult(
                status=CommandStatus.NOT_CONNECTED,
                command=command,
                message=f"Not connected ({state.value})",
                error=NotConnectedError(
                    f"Cannot send '{command.get('a')}' while {state.value}",
                    state=state.value,
                    command=command.get("a"),
                ),
            )

        try:
            session.send(serialize(command))
        except TickerConnectionError as e:
            self.stats.increment("commands_failed")
            self.logger.error("Command send failed", action=command.get("a"), error=str(e))
            return CommandResult(
                status=CommandStatus.FAILED,
                command=command,
                message=str(e),
                error=e,
            )

        self.stats.increment("commands_sent")
        self.logger.debug("Command sent", action=command.get("a"), command=command)
        return CommandResult(status=CommandStatus.SENT, command=command)

    def _send_tokens_command(self, command: dict[str, Any], tokens: list[int]) -> CommandResult:
        if not tokens:
            return CommandResult(
                status=CommandStatus.SKIPPED,
                command=command,
                message="No instrument tokens given",
            )
        return self.send_command(command)

    # I/O thread

    def _run(self, session: TransportSession) -> None:
        """Body of the I/O thread for one connection episode."""
        try:
            if self._handshake(session):
                self.dispatcher.dispatch_open()
                self.resubscribe()
                self._read_loop(session)
        finally:
            self._finish(session)

    def _handshake(self, session: TransportSession) -> bool:
        url = self.url
        try:
            session.connect(url, build_headers(self.params), self.params.connect_timeout)
        except TickerConnectionError as e:
            self._fail(e, trigger="handshake_failed")
            return False

        with self._lock:
            if self._state != ConnectionState.CONNECTING:
                # close() arrived during the handshake
                return False
            self._transition(ConnectionState.CONNECTED, trigger="handshake")
        return True

    def _read_loop(self, session: TransportSession) -> None:
        while True:
            try:
                frame = session.recv()
            except TickerConnectionError as e:
                self._fail(e, trigger="transport_error")
                return

            if frame is None:
                self.logger.info("Transport closed by peer")
                return

            if self.state != ConnectionState.CONNECTED:
                return

            self._handle_frame(frame)

    def _handle_frame(self, frame: RawFrame) -> None:
        self.stats.increment("frames")

        if not frame.is_binary:
            self.stats.increment("text_frames")
            self.dispatcher.dispatch_frame(frame.data)
            return

        result = self.decoder.decode(frame.data)
        self.stats.record_decode(result)

        for error in result.errors:
            self.logger.warning(
                "Tick packet decode failed",
                error=str(error),
                error_type=type(error).__name__,
                packet_index=error.packet_index,
                packet_length=error.packet_length,
                frame_length=len(frame),
            )
        for tick in result.ticks:
            self._check_exchange_time(tick.instrument_token, tick.exchange_timestamp)

        self.dispatcher.dispatch_frame(frame.data, result)

    def _check_exchange_time(self, token: int, ts: Optional[datetime]) -> None:
        if ts is None:
            return
        last = self.stats.last_exchange_ts.get(token)
        if last is not None and ts < last:
            self.stats.increment("timestamp_regressions")
            self.logger.warning(
                "Exchange timestamp went backwards",
                instrument_token=token,
                timestamp=ts.isoformat(),
                previous=last.isoformat(),
            )
            return
        self.stats.last_exchange_ts[token] = ts

    def _fail(self, error: TickerConnectionError, trigger: str) -> None:
        """Move to ERRORED and report, unless a local close is in progress."""
        with self._lock:
            if self._state not in LIVE_STATES:
                self.logger.debug("Transport error during close", error=str(error))
                return
            self._transition(ConnectionState.ERRORED, trigger=trigger,
                             context={"error": str(error)})

        self.logger.error("Connection error", error=str(error), url=error.url)
        self.dispatcher.dispatch_error(error)

    def _finish(self, session: TransportSession) -> None:
        """Release the session, fire on_close once and settle in DISCONNECTED."""
        with self._lock:
            if self._state in LIVE_STATES:
                self._transition(ConnectionState.CLOSING, trigger="transport_closed")

        try:
            session.shutdown()
        finally:
            self.dispatcher.dispatch_close()
            with self._lock:
                self._session = None
                self._transition(ConnectionState.DISCONNECTED, trigger="settled")

    def _transition(self, target: ConnectionState, trigger: str,
                    context: Optional[dict[str, Any]] = None) -> None:
        """Apply a checked state transition. Caller must hold the lock."""
        check_transition(self._state, target, trigger)
        log_state_transition(
            self.logger,
            from_state=self._state.value,
            to_state=target.value,
            trigger=trigger,
            context=context,
        )
        self._state = target
