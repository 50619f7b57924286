"""
Canonical data models for decoded market data.

This module defines immutable data structures for ticks decoded from the
binary feed, raw transport frames and decode results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple, Optional, Union

from ..errors import DecodeError
from ..utils.time import format_market_time


class Mode(str, Enum):
    """Streaming mode, in increasing order of data richness."""
    LTP = "ltp"
    QUOTE = "quote"
    FULL = "full"

    @classmethod
    def parse(cls, value: Union["Mode", str]) -> "Mode":
        """Accept a Mode or its wire string, case-insensitively."""
        if isinstance(value, Mode):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Unknown mode {value!r}; expected one of ltp, quote, full")


# Mode the server applies to a plain subscribe
SERVER_DEFAULT_MODE = Mode.QUOTE


@dataclass(frozen=True)
class RawFrame:
    """One frame as delivered by the transport."""
    data: Union[bytes, str]
    is_binary: bool

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class OHLC:
    """Day open/high/low/close."""
    open: float
    high: float
    low: float
    close: float


@dataclass(frozen=True)
class DepthLevel:
    """Single market depth level."""
    quantity: int
    price: float
    orders: int


@dataclass(frozen=True)
class MarketDepth:
    """Five best bid and offer levels."""
    buy: tuple[DepthLevel, ...] = ()
    sell: tuple[DepthLevel, ...] = ()


@dataclass(frozen=True)
class Tick:
    """Decoded market update for one instrument."""
    instrument_token: int
    mode: Mode
    last_price: float
    tradable: bool = True

    # Quote
    last_traded_quantity: Optional[int] = None
    average_traded_price: Optional[float] = None
    volume_traded: Optional[int] = None
    total_buy_quantity: Optional[int] = None
    total_sell_quantity: Optional[int] = None
    ohlc: Optional[OHLC] = None
    change: Optional[float] = None              # Percent change from close
    net_change: Optional[float] = None          # Absolute change from close, index packets only

    # Full
    last_trade_time: Optional[datetime] = None
    oi: Optional[int] = None
    oi_day_high: Optional[int] = None
    oi_day_low: Optional[int] = None
    exchange_timestamp: Optional[datetime] = None
    depth: Optional[MarketDepth] = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary form with ISO timestamps, omitting unset fields."""
        result: dict[str, Any] = {
            "instrument_token": self.instrument_token,
            "mode": self.mode.value,
            "tradable": self.tradable,
            "last_price": self.last_price,
        }
        for name in ("last_traded_quantity", "average_traded_price", "volume_traded",
                     "total_buy_quantity", "total_sell_quantity", "change",
                     "net_change", "oi", "oi_day_high", "oi_day_low"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.ohlc is not None:
            result["ohlc"] = {
                "open": self.ohlc.open,
                "high": self.ohlc.high,
                "low": self.ohlc.low,
                "close": self.ohlc.close,
            }
        if self.last_trade_time is not None:
            result["last_trade_time"] = format_market_time(self.last_trade_time)
        if self.exchange_timestamp is not None:
            result["exchange_timestamp"] = format_market_time(self.exchange_timestamp)
        if self.depth is not None:
            result["depth"] = {
                side: [
                    {"quantity": level.quantity, "price": level.price, "orders": level.orders}
                    for level in getattr(self.depth, side)
                ]
                for side in ("buy", "sell")
            }
        return result


class DecodeResult(NamedTuple):
    """Ticks decoded from one frame plus the errors isolated while decoding."""
    ticks: list[Tick]
    errors: list[DecodeError]

    @property
    def is_heartbeat(self) -> bool:
        return not self.ticks and not self.errors
