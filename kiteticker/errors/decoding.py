"""
Decode error classifications for binary tick frames.

A DecodeError is scoped to a single sub-packet; a ProtocolError is scoped
to a whole frame whose framing is inconsistent. Neither closes the
connection.
"""

from typing import Optional, Dict, Any

from .connection import TickerError


class DecodeError(TickerError):
    """A sub-packet could not be decoded."""

    def __init__(self, message: str, packet_index: Optional[int] = None,
                 packet_length: Optional[int] = None,
                 frame_offset: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.packet_index = packet_index
        self.packet_length = packet_length
        self.frame_offset = frame_offset

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (
            str(self) == str(other)
            and self.packet_index == other.packet_index
            and self.packet_length == other.packet_length
            and self.frame_offset == other.frame_offset
        )

    def __hash__(self) -> int:
        return hash((type(self), str(self), self.packet_index,
                     self.packet_length, self.frame_offset))


class ProtocolError(DecodeError):
    """Frame is structurally inconsistent, e.g. truncated mid sub-packet."""

    def __init__(self, message: str, frame_length: Optional[int] = None,
                 declared_count: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.frame_length = frame_length
        self.declared_count = declared_count
