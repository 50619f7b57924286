"""Tests for the connection manager lifecycle and command policy."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from kiteticker.connection.commands import CommandStatus
from kiteticker.connection.manager import ConnectionManager, FeedStats
from kiteticker.connection.states import ConnectionState
from kiteticker.data.decoder import PacketDecoder
from kiteticker.data.models import OHLC, Mode, Tick
from kiteticker.dispatch.dispatcher import EventDispatcher
from kiteticker.errors import NotConnectedError, TickerConnectionError, TickerStateError
from kiteticker.subscriptions.registry import SubscriptionRegistry


@pytest.fixture
def manager(transport, handler, default_config):
    manager = ConnectionManager(
        api_key="key",
        access_token="token",
        registry=SubscriptionRegistry(),
        dispatcher=EventDispatcher(handler),
        decoder=PacketDecoder.from_config(default_config),
        params=default_config.connection,
        transport_factory=transport,
    )
    yield manager
    if manager.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
        manager.close()
    manager.wait_closed(2)


def _connect(manager, handler, transport):
    manager.connect()
    assert handler.opened.wait(2)
    # Resubscribe has finished once the I/O thread is reading
    assert transport.current.reading.wait(2)


class TestHandshake:
    """Connect, handshake and open."""

    def test_handshake_url_and_headers(self, manager, handler, transport):
        _connect(manager, handler, transport)

        session = transport.current
        assert session.url == "wss://ws.kite.trade?api_key=key&access_token=token"
        assert session.headers == {"X-Kite-Version": "3"}
        assert manager.state == ConnectionState.CONNECTED
        assert manager.is_connected

    def test_connect_twice_raises(self, manager, handler, transport):
        _connect(manager, handler, transport)

        with pytest.raises(TickerStateError):
            manager.connect()

    def test_connect_installs_new_handler(self, manager, handler, handler_cls):
        replacement = handler_cls()

        manager.connect(replacement)

        assert replacement.opened.wait(2)
        assert manager.dispatcher.handler is replacement
        assert handler.events == []

    def test_handler_not_replaced_during_episode(self, manager, handler, handler_cls,
                                                 transport, fake_session_cls):
        session = transport.prepare(fake_session_cls())
        gate = session.hold_handshake()
        manager.connect()
        errors = []

        def swap():
            try:
                manager.connect(handler_cls())
            except TickerStateError as e:
                errors.append(e)

        thread = threading.Thread(target=swap)
        thread.start()
        thread.join(2)
        gate.set()

        assert len(errors) == 1
        assert manager.dispatcher.handler is handler
        assert handler.opened.wait(2)

    def test_handshake_failure_reports_error_then_close(self, manager, handler, transport,
                                                        fake_session_cls):
        failure = TickerConnectionError("401 Unauthorized", url="wss://ws.kite.trade")
        transport.prepare(fake_session_cls(connect_error=failure))

        manager.connect()

        assert handler.closed.wait(2)
        assert manager.wait_closed(2)
        assert handler.kinds() == ["error", "close"]
        assert handler.events[0][1] is failure
        assert manager.state == ConnectionState.DISCONNECTED

    def test_close_during_handshake(self, manager, handler, transport, fake_session_cls):
        session = transport.prepare(fake_session_cls())
        gate = session.hold_handshake()

        manager.connect()
        assert manager.state == ConnectionState.CONNECTING
        manager.close()
        gate.set()

        assert manager.wait_closed(2)
        assert handler.kinds() == ["close"]
        assert session.sent == []
        assert manager.state == ConnectionState.DISCONNECTED


class TestShutdown:
    """Close, drop and remote close each end with one on_close."""

    def test_local_close(self, manager, handler, transport):
        _connect(manager, handler, transport)

        manager.close()

        assert manager.wait_closed(2)
        assert handler.kinds() == ["open", "close"]
        assert transport.current.closed
        assert transport.current.shut_down
        assert manager.state == ConnectionState.DISCONNECTED

    def test_transport_drop(self, manager, handler, transport):
        _connect(manager, handler, transport)

        transport.current.drop("connection reset by peer")

        assert manager.wait_closed(2)
        assert handler.kinds() == ["open", "error", "close"]
        error = handler.events[1][1]
        assert isinstance(error, TickerConnectionError)
        assert "reset" in str(error)

    def test_remote_close(self, manager, handler, transport):
        _connect(manager, handler, transport)

        transport.current.remote_close()

        assert manager.wait_closed(2)
        assert handler.kinds() == ["open", "close"]

    def test_close_while_disconnected_raises(self, manager):
        with pytest.raises(TickerStateError):
            manager.close()

    def test_frames_after_close_are_ignored(self, manager, handler, transport, packets):
        _connect(manager, handler, transport)
        session = transport.current

        manager.close()
        session.push_binary(packets.frame(packets.ltp(408065, 100)))

        assert manager.wait_closed(2)
        assert "tick" not in handler.kinds()


class TestCommands:
    """Command transmission and the not-connected signal."""

    def test_not_connected_signal(self, manager, transport):
        result = manager.subscribe([256265])

        assert result.status == CommandStatus.NOT_CONNECTED
        assert not result.sent
        assert isinstance(result.error, NotConnectedError)
        assert result.command == {"a": "subscribe", "v": [256265]}
        assert manager.registry.snapshot() == {Mode.QUOTE: [256265]}
        assert transport.sessions == []

    def test_subscribe_when_connected(self, manager, handler, transport, wait_until):
        _connect(manager, handler, transport)

        result = manager.subscribe([408065, 408065])

        assert result.status == CommandStatus.SENT
        assert transport.current.sent == [{"a": "subscribe", "v": [408065]}]

    def test_unsubscribe_when_connected(self, manager, handler, transport):
        manager.subscribe([1, 2])
        _connect(manager, handler, transport)
        session = transport.current

        manager.unsubscribe([2])

        assert session.sent[-1] == {"a": "unsubscribe", "v": [2]}
        assert manager.registry.tokens() == [1]

    def test_set_mode_subscribes_new_tokens_first(self, manager, handler, transport, wait_until):
        manager.subscribe([1])
        _connect(manager, handler, transport)
        session = transport.current
        assert wait_until(lambda: len(session.sent) == 1)

        result = manager.set_mode(Mode.FULL, [1, 2])

        assert result.sent
        assert session.sent[1:] == [
            {"a": "subscribe", "v": [2]},
            {"a": "mode", "v": ["full", [1, 2]]},
        ]

    def test_empty_token_list_is_skipped(self, manager, handler, transport):
        _connect(manager, handler, transport)

        result = manager.subscribe([])

        assert result.status == CommandStatus.SKIPPED
        assert transport.current.sent == []

    def test_send_failure(self, manager, handler, transport):
        _connect(manager, handler, transport)
        transport.current.send_error = TickerConnectionError("broken pipe")

        result = manager.subscribe([7])

        assert result.status == CommandStatus.FAILED
        assert isinstance(result.error, TickerConnectionError)
        assert 7 in manager.registry
        assert manager.stats.commands_failed == 1

    def test_concurrent_commands_are_all_counted(self, manager):
        def issue(offset):
            for token in range(offset, offset + 250):
                manager.subscribe([token])

        threads = [threading.Thread(target=issue, args=(i * 1000,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert manager.stats.as_dict()["commands_not_connected"] == 2000
        assert len(manager.registry) == 2000

    def test_feed_stats_increment(self):
        stats = FeedStats()
        stats.increment("frames")
        stats.increment("ticks", 3)

        assert stats.as_dict()["frames"] == 1
        assert stats.as_dict()["ticks"] == 3


class TestResubscribe:
    """Replay of subscription intent on connect."""

    def test_replays_groups_on_connect(self, manager, handler, transport, wait_until):
        manager.subscribe([30, 10])
        manager.set_mode("full", [20])
        manager.set_mode("ltp", [40])

        _connect(manager, handler, transport)
        session = transport.current

        assert wait_until(lambda: len(session.sent) == 5)
        assert session.sent == [
            {"a": "subscribe", "v": [40]},
            {"a": "mode", "v": ["ltp", [40]]},
            {"a": "subscribe", "v": [10, 30]},
            {"a": "subscribe", "v": [20]},
            {"a": "mode", "v": ["full", [20]]},
        ]

    def test_nothing_to_replay(self, manager, handler, transport):
        _connect(manager, handler, transport)
        assert transport.current.sent == []

    def test_reconnect_replays_current_mapping(self, manager, handler, transport, wait_until):
        _connect(manager, handler, transport)
        manager.subscribe([1])
        manager.set_mode(Mode.FULL, [2])
        transport.current.drop()
        assert manager.wait_closed(2)

        handler.opened.clear()
        _connect(manager, handler, transport)
        session = transport.current

        assert len(transport.sessions) == 2
        assert wait_until(lambda: len(session.sent) == 3)
        assert session.sent == [
            {"a": "subscribe", "v": [1]},
            {"a": "subscribe", "v": [2]},
            {"a": "mode", "v": ["full", [2]]},
        ]


class TestFrames:
    """Frame handling on the I/O thread."""

    def test_binary_frame_ticks(self, manager, handler, transport, packets, wait_until):
        _connect(manager, handler, transport)
        data = packets.frame(packets.ltp(408065, 145025), packets.quote(256265, 2450000))

        transport.current.push_binary(data)

        assert wait_until(lambda: len(handler.ticks()) == 2)
        assert handler.kinds()[1:] == ["message", "tick", "tick"]
        assert handler.events[1][1] == data
        first, second = handler.ticks()
        assert first.instrument_token == 408065
        assert first.last_price == 1450.25
        assert second.mode == Mode.QUOTE

    def test_text_frame_is_message_only(self, manager, handler, transport, wait_until):
        _connect(manager, handler, transport)

        transport.current.push_text('{"type":"order","data":{}}')

        assert wait_until(lambda: len(handler.events) == 2)
        assert handler.events[1] == ("message", '{"type":"order","data":{}}')
        assert manager.stats.text_frames == 1

    def test_heartbeat(self, manager, handler, transport, wait_until):
        _connect(manager, handler, transport)

        transport.current.push_binary(b"\x00")

        assert wait_until(lambda: manager.stats.heartbeats == 1)
        assert handler.kinds() == ["open", "message"]

    def test_decode_error_keeps_connection(self, manager, handler, transport, packets,
                                           wait_until):
        _connect(manager, handler, transport)

        transport.current.push_binary(packets.frame(packets.ltp(408065, 100), b"\x00" * 13))
        transport.current.push_binary(packets.frame(packets.ltp(408065, 200)))

        assert wait_until(lambda: len(handler.ticks()) == 2)
        assert handler.kinds()[1:] == ["message", "tick", "decode_error", "message", "tick"]
        assert manager.stats.decode_errors == 1
        assert manager.state == ConnectionState.CONNECTED

    def test_handler_exception_does_not_stop_reading(self, manager, transport, packets,
                                                     handler, wait_until):
        original = handler.on_tick
        calls = []

        def flaky(tick):
            calls.append(tick)
            if len(calls) == 1:
                raise RuntimeError("handler bug")
            original(tick)

        handler.on_tick = flaky
        _connect(manager, handler, transport)

        transport.current.push_binary(packets.frame(packets.ltp(1, 100)))
        transport.current.push_binary(packets.frame(packets.ltp(2, 200)))

        assert wait_until(lambda: len(handler.ticks()) == 1)
        assert handler.ticks()[0].instrument_token == 2
        assert manager.state == ConnectionState.CONNECTED

    def test_exchange_timestamp_regression_is_counted(self, manager, handler, transport,
                                                      encoder, wait_until):
        _connect(manager, handler, transport)
        later = datetime(2024, 3, 1, 9, 15, 30, tzinfo=timezone.utc)
        earlier = later - timedelta(seconds=5)

        def index_full(ts):
            return Tick(instrument_token=256265, mode=Mode.FULL, tradable=False,
                        last_price=24500.0, net_change=200.0, exchange_timestamp=ts,
                        ohlc=OHLC(open=24450.0, high=24600.0, low=24400.0, close=24300.0))

        transport.current.push_binary(encoder.encode([index_full(later)]))
        transport.current.push_binary(encoder.encode([index_full(earlier)]))

        assert wait_until(lambda: len(handler.ticks()) == 2)
        assert manager.stats.timestamp_regressions == 1
        # Ticks are still delivered as received
        assert [t.exchange_timestamp for t in handler.ticks()] == [later, earlier]
