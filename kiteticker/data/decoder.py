"""
Binary tick frame decoder.

Frame layout (all integers big-endian)::

    uint16 count N
    N x (uint16 length L, L bytes payload)

Each payload is decoded by the routine registered for its byte length. A
payload with an unknown length, or one whose routine fails, yields a
DecodeError for that sub-packet only and decoding moves on to the next one.
A frame that ends before a declared sub-packet is complete yields a single
ProtocolError and the ticks decoded up to that point.

A frame shorter than two bytes, or with a count of zero, is a heartbeat and
decodes to an empty result without errors.
"""

import struct
from collections.abc import Mapping
from typing import Callable, Optional, Union

from ..config.defaults import DepthSpec, PacketLayout, SegmentParams, TickerConfig, get_default_config
from ..errors import DecodeError, ProtocolError
from ..utils.time import from_exchange_timestamp
from .models import OHLC, DecodeResult, DepthLevel, MarketDepth, Mode, Tick

# Decodes one payload given the segment divisor table
PacketRoutine = Callable[[bytes, SegmentParams], Tick]

FrameLike = Union[bytes, bytearray, memoryview]

UINT16 = struct.Struct(">H")

FIELD_STRUCTS = {
    "uint32": struct.Struct(">I"),
    "int32": struct.Struct(">i"),
    "uint16": struct.Struct(">H"),
    "price": struct.Struct(">i"),
    "timestamp": struct.Struct(">I"),
}

OHLC_FIELDS = ("open", "high", "low", "close")


def layout_routine(layout: PacketLayout) -> PacketRoutine:
    """Build the decode routine for a configured packet layout."""
    mode = Mode.parse(layout.mode)

    def routine(payload: bytes, segments: SegmentParams) -> Tick:
        return decode_payload(layout, mode, payload, segments)

    return routine


def decode_payload(layout: PacketLayout, mode: Mode, payload: bytes,
                   segments: SegmentParams) -> Tick:
    """Decode one payload according to its layout."""
    raw = {
        spec.name: FIELD_STRUCTS[spec.kind].unpack_from(payload, spec.offset)[0]
        for spec in layout.fields
    }
    token = raw["instrument_token"]
    divisor = segments.divisor_for(token)

    values = {}
    for spec in layout.fields:
        value = raw[spec.name]
        if spec.kind == "price":
            value = value / divisor
        elif spec.kind == "timestamp":
            value = from_exchange_timestamp(value)
        values[spec.name] = value

    ohlc = None
    if all(name in values for name in OHLC_FIELDS):
        ohlc = OHLC(*(values.pop(name) for name in OHLC_FIELDS))
    else:
        for name in OHLC_FIELDS:
            values.pop(name, None)

    if "change" not in values and ohlc is not None and ohlc.close != 0:
        values["change"] = (values["last_price"] - ohlc.close) * 100 / ohlc.close

    depth = None
    if layout.depth is not None:
        depth = decode_depth(layout.depth, payload, divisor)

    return Tick(
        mode=mode,
        tradable=segments.is_tradable(token),
        ohlc=ohlc,
        depth=depth,
        **values,
    )


def decode_depth(spec: DepthSpec, payload: bytes, divisor: float) -> MarketDepth:
    """Decode the buy levels followed by the sell levels."""
    levels = []
    for index in range(spec.levels * 2):
        base = spec.offset + index * spec.entry_size
        levels.append(DepthLevel(
            quantity=FIELD_STRUCTS["uint32"].unpack_from(payload, base + spec.quantity_offset)[0],
            price=FIELD_STRUCTS["price"].unpack_from(payload, base + spec.price_offset)[0] / divisor,
            orders=FIELD_STRUCTS["uint16"].unpack_from(payload, base + spec.orders_offset)[0],
        ))
    return MarketDepth(buy=tuple(levels[:spec.levels]), sell=tuple(levels[spec.levels:]))


class PacketDecoder:
    """Stateless frame decoder parameterized by a length-keyed routine table."""

    def __init__(self, routines: Mapping[int, PacketRoutine], segments: SegmentParams):
        self._routines = dict(routines)
        self._segments = segments

    @classmethod
    def from_config(cls, config: Optional[TickerConfig] = None) -> "PacketDecoder":
        """Create a decoder from the configured layout table."""
        if config is None:
            config = get_default_config()
        return cls(
            routines={
                length: layout_routine(layout)
                for length, layout in config.packets.layouts.items()
            },
            segments=config.segments,
        )

    @property
    def packet_lengths(self) -> list[int]:
        return sorted(self._routines)

    def decode(self, frame: FrameLike) -> DecodeResult:
        """
        Decode one binary frame.

        Args:
            frame: Raw binary frame as received from the transport

        Returns:
            DecodeResult of the ticks decoded in frame order and the errors
            raised by individual sub-packets or by truncated framing
        """
        frame = bytes(frame)
        ticks: list[Tick] = []
        errors: list[DecodeError] = []

        if len(frame) < UINT16.size:
            return DecodeResult(ticks, errors)

        count = UINT16.unpack_from(frame, 0)[0]
        offset = UINT16.size

        for index in range(count):
            if offset + UINT16.size > len(frame):
                errors.append(ProtocolError(
                    f"Frame truncated before length header of packet {index} of {count}",
                    packet_index=index,
                    frame_offset=offset,
                    frame_length=len(frame),
                    declared_count=count,
                ))
                break

            length = UINT16.unpack_from(frame, offset)[0]
            offset += UINT16.size

            if offset + length > len(frame):
                errors.append(ProtocolError(
                    f"Frame truncated inside packet {index} of {count}: "
                    f"{length} bytes declared, {len(frame) - offset} available",
                    packet_index=index,
                    packet_length=length,
                    frame_offset=offset,
                    frame_length=len(frame),
                    declared_count=count,
                ))
                break

            payload = frame[offset:offset + length]
            packet_offset = offset
            offset += length

            routine = self._routines.get(length)
            if routine is None:
                errors.append(DecodeError(
                    f"Unrecognized packet length {length}",
                    packet_index=index,
                    packet_length=length,
                    frame_offset=packet_offset,
                ))
                continue

            try:
                ticks.append(routine(payload, self._segments))
            except (struct.error, ValueError, KeyError, TypeError, OverflowError) as e:
                errors.append(DecodeError(
                    f"Packet {index} of length {length} failed to decode: {e}",
                    packet_index=index,
                    packet_length=length,
                    frame_offset=packet_offset,
                ))

        return DecodeResult(ticks, errors)


_default_decoder: Optional[PacketDecoder] = None


def decode(frame: FrameLike) -> DecodeResult:
    """Decode a frame with the default layout table."""
    global _default_decoder
    if _default_decoder is None:
        _default_decoder = PacketDecoder.from_config()
    return _default_decoder.decode(frame)
