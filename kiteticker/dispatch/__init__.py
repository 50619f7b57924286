"""
Event delivery to the user supplied handler.
"""
from .dispatcher import EventDispatcher
from .handler import TickerHandler

__all__ = ["EventDispatcher", "TickerHandler"]
