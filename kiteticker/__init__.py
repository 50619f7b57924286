"""
kiteticker - Streaming market data client for the Kite tick feed.

Keeps a WebSocket connection to the ticker, tracks subscribed instruments
and their streaming mode, decodes the binary tick protocol and delivers
events to a user supplied handler.
"""

__version__ = "0.1.0"
__author__ = "kiteticker developers"

from .data.models import Mode, Tick
from .dispatch.handler import TickerHandler
from .ticker import KiteTicker

__all__ = ["KiteTicker", "TickerHandler", "Mode", "Tick"]
