"""
Main ticker client.

Wires the subscription registry, packet decoder, event dispatcher and
connection manager together behind the public KiteTicker API.
"""

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from .config.defaults import TickerConfig
from .config.loader import load_config
from .connection.commands import CommandResult
from .connection.manager import ConnectionManager
from .connection.states import ConnectionState
from .connection.transport import TransportFactory
from .data.decoder import PacketDecoder
from .data.models import Mode
from .dispatch.dispatcher import EventDispatcher
from .dispatch.handler import TickerHandler
from .subscriptions.registry import SubscriptionRegistry

logger = structlog.get_logger(__name__)


class KiteTicker:
    """
    Streaming market data client.

    Subscription intent survives reconnects: tokens subscribed or given a
    mode while disconnected are recorded and replayed on the next successful
    connect, and the same happens for everything subscribed before a drop.

    Example::

        class Printer(TickerHandler):
            def on_tick(self, tick):
                print(tick.instrument_token, tick.last_price)

        ticker = KiteTicker(api_key, access_token, handler=Printer())
        ticker.subscribe([256265])
        ticker.set_mode("full", [256265])
        ticker.connect()
    """

    def __init__(
        self,
        api_key: str,
        access_token: str,
        handler: Optional[TickerHandler] = None,
        config: Optional[TickerConfig] = None,
        config_dir: Optional[Union[str, Path]] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        if not api_key or not access_token:
            raise ValueError("api_key and access_token are required")

        if config is None:
            config = load_config(Path(config_dir) if config_dir is not None else None)
        self.config = config

        self.registry = SubscriptionRegistry()
        self.decoder = PacketDecoder.from_config(config)
        self.dispatcher = EventDispatcher(handler)
        self.connection = ConnectionManager(
            api_key=api_key,
            access_token=access_token,
            registry=self.registry,
            dispatcher=self.dispatcher,
            decoder=self.decoder,
            params=config.connection,
            transport_factory=transport_factory,
        )

        logger.info(
            "Ticker initialized",
            root_url=config.connection.root_url,
            packet_lengths=self.decoder.packet_lengths,
        )

    @property
    def handler(self) -> TickerHandler:
        return self.dispatcher.handler

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    def connect(self, handler: Optional[TickerHandler] = None) -> None:
        """
        Open the connection on a background I/O thread.

        Args:
            handler: Replaces the current handler when given. Only allowed
                while disconnected.

        Raises:
            TickerStateError: If a connection episode is already in progress;
                the handler is left unchanged
        """
        self.connection.connect(handler)

    def close(self) -> None:
        """Close the connection. Subscription intent is kept for the next connect."""
        self.connection.close()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the I/O thread exits. Not for use inside callbacks."""
        return self.connection.wait_closed(timeout)

    def subscribe(self, instrument_tokens: Iterable[int]) -> CommandResult:
        """Subscribe tokens in the default (quote) mode."""
        return self.connection.subscribe(instrument_tokens)

    def unsubscribe(self, instrument_tokens: Iterable[int]) -> CommandResult:
        """Unsubscribe tokens."""
        return self.connection.unsubscribe(instrument_tokens)

    def set_mode(self, mode: Union[Mode, str], instrument_tokens: Iterable[int]) -> CommandResult:
        """Set the streaming mode for tokens, subscribing them if needed."""
        return self.connection.set_mode(mode, instrument_tokens)

    def resubscribe(self) -> list[CommandResult]:
        """Replay all current subscriptions on the live session."""
        return self.connection.resubscribe()

    def subscriptions(self) -> dict[Mode, list[int]]:
        """Current subscription intent grouped by mode."""
        return self.registry.snapshot()

    def get_stats(self) -> dict[str, Any]:
        """Feed and delivery statistics."""
        return {
            "state": self.state.value,
            "subscriptions": len(self.registry),
            "feed": self.connection.stats.as_dict(),
            "dispatch": self.dispatcher.get_stats(),
        }
