"""
Binary tick frame encoder.

Inverse of the decoder: packs ticks into payloads using the same
length-keyed layout table and wraps payloads into a counted frame. Used to
replay captured ticks and to build protocol fixtures.
"""

import struct
from typing import Any, Iterable, Optional

from ..config.defaults import DepthSpec, PacketLayout, SegmentParams, TickerConfig, get_default_config
from ..utils.time import to_exchange_timestamp
from .decoder import FIELD_STRUCTS, OHLC_FIELDS, UINT16
from .models import MarketDepth, Tick


class EncodeError(ValueError):
    """Raised when a tick cannot be represented by any configured layout."""
    pass


def encode_frame(payloads: Iterable[bytes]) -> bytes:
    """Wrap payloads into a frame: uint16 count then (uint16 length, bytes) each."""
    payloads = list(payloads)
    parts = [UINT16.pack(len(payloads))]
    for payload in payloads:
        parts.append(UINT16.pack(len(payload)))
        parts.append(bytes(payload))
    return b"".join(parts)


def heartbeat_frame() -> bytes:
    """Frame carrying zero sub-packets."""
    return UINT16.pack(0)


def _tick_value(tick: Tick, name: str) -> Any:
    if name in OHLC_FIELDS:
        return getattr(tick.ohlc, name) if tick.ohlc is not None else None
    return getattr(tick, name)


class PacketEncoder:
    """Encodes ticks with a configured layout table."""

    def __init__(self, layouts: dict[int, PacketLayout], segments: SegmentParams):
        self._layouts = dict(layouts)
        self._segments = segments

    @classmethod
    def from_config(cls, config: Optional[TickerConfig] = None) -> "PacketEncoder":
        if config is None:
            config = get_default_config()
        return cls(config.packets.layouts, config.segments)

    def select_layout(self, tick: Tick) -> PacketLayout:
        """Pick the richest layout of the tick's mode that its fields can fill."""
        candidates = []
        for layout in self._layouts.values():
            if layout.mode != tick.mode.value:
                continue
            if (layout.depth is None) != (tick.depth is None):
                continue
            if any(_tick_value(tick, spec.name) is None for spec in layout.fields):
                continue
            candidates.append(layout)

        if not candidates:
            raise EncodeError(
                f"No {tick.mode.value} layout can encode tick for {tick.instrument_token}"
            )
        return max(candidates, key=lambda layout: (len(layout.fields), layout.length))

    def encode_tick(self, tick: Tick, length: Optional[int] = None) -> bytes:
        """Encode a single tick payload."""
        if length is not None:
            layout = self._layouts.get(length)
            if layout is None:
                raise EncodeError(f"No layout configured for length {length}")
        else:
            layout = self.select_layout(tick)

        divisor = self._segments.divisor_for(tick.instrument_token)
        buffer = bytearray(layout.length)

        for spec in layout.fields:
            value = _tick_value(tick, spec.name)
            if value is None:
                raise EncodeError(f"Tick has no value for field '{spec.name}'")
            if spec.kind == "price":
                value = round(value * divisor)
            elif spec.kind == "timestamp":
                value = to_exchange_timestamp(value)
            try:
                FIELD_STRUCTS[spec.kind].pack_into(buffer, spec.offset, value)
            except struct.error as e:
                raise EncodeError(f"Field '{spec.name}' out of range: {e}") from e

        if layout.depth is not None:
            self._encode_depth(buffer, layout.depth, tick.depth, divisor)

        return bytes(buffer)

    def encode(self, ticks: Iterable[Tick]) -> bytes:
        """Encode ticks into a single frame."""
        return encode_frame(self.encode_tick(tick) for tick in ticks)

    @staticmethod
    def _encode_depth(buffer: bytearray, spec: DepthSpec, depth: Optional[MarketDepth],
                      divisor: float) -> None:
        if depth is None:
            raise EncodeError("Layout requires market depth")
        if len(depth.buy) != spec.levels or len(depth.sell) != spec.levels:
            raise EncodeError(f"Market depth must carry {spec.levels} levels per side")

        for index, level in enumerate(depth.buy + depth.sell):
            base = spec.offset + index * spec.entry_size
            FIELD_STRUCTS["uint32"].pack_into(buffer, base + spec.quantity_offset, level.quantity)
            FIELD_STRUCTS["price"].pack_into(buffer, base + spec.price_offset, round(level.price * divisor))
            FIELD_STRUCTS["uint16"].pack_into(buffer, base + spec.orders_offset, level.orders)
