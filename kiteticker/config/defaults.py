"""Default configuration parameters for the ticker client."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ConnectionParams:
    """WebSocket endpoint and handshake parameters."""
    root_url: str = "wss://ws.kite.trade"
    version_header: str = "X-Kite-Version"
    protocol_version: str = "3"
    connect_timeout: float = 7.0                     # Handshake timeout in seconds
    thread_name: str = "kiteticker-io"


# Exchange segment ids carried in the low byte of an instrument token
SEGMENT_CDS = 3
SEGMENT_BCD = 6
SEGMENT_INDICES = 9


@dataclass(frozen=True)
class SegmentParams:
    """Fixed-point price divisors keyed by exchange segment."""
    price_divisors: dict[int, float] = field(default_factory=lambda: {
        SEGMENT_CDS: 10_000_000.0,                   # NSE currency derivatives
        SEGMENT_BCD: 10_000.0,                       # BSE currency derivatives
    })
    default_divisor: float = 100.0
    non_tradable_segments: tuple[int, ...] = (SEGMENT_INDICES,)

    def divisor_for(self, instrument_token: int) -> float:
        """Price divisor for the segment encoded in the token."""
        return self.price_divisors.get(instrument_token & 0xFF, self.default_divisor)

    def is_tradable(self, instrument_token: int) -> bool:
        return (instrument_token & 0xFF) not in self.non_tradable_segments


@dataclass(frozen=True)
class FieldSpec:
    """One fixed-width big-endian field inside a tick payload."""
    name: str                                        # Tick attribute name
    offset: int
    kind: str = "uint32"                             # uint32 | int32 | uint16 | price | timestamp


@dataclass(frozen=True)
class DepthSpec:
    """Market depth block: buy levels followed by sell levels."""
    offset: int
    levels: int = 5                                  # Levels per side
    entry_size: int = 12
    quantity_offset: int = 0
    price_offset: int = 4
    orders_offset: int = 8

    @property
    def size(self) -> int:
        return self.levels * 2 * self.entry_size


@dataclass(frozen=True)
class PacketLayout:
    """Decode routine description for payloads of one byte length."""
    length: int
    mode: str                                        # ltp | quote | full
    fields: tuple[FieldSpec, ...]
    depth: Optional[DepthSpec] = None


_TOKEN = FieldSpec("instrument_token", 0, "uint32")
_LTP = FieldSpec("last_price", 4, "price")

_QUOTE_FIELDS = (
    _TOKEN,
    _LTP,
    FieldSpec("last_traded_quantity", 8, "uint32"),
    FieldSpec("average_traded_price", 12, "price"),
    FieldSpec("volume_traded", 16, "uint32"),
    FieldSpec("total_buy_quantity", 20, "uint32"),
    FieldSpec("total_sell_quantity", 24, "uint32"),
    FieldSpec("open", 28, "price"),
    FieldSpec("high", 32, "price"),
    FieldSpec("low", 36, "price"),
    FieldSpec("close", 40, "price"),
)

_INDEX_QUOTE_FIELDS = (
    _TOKEN,
    _LTP,
    FieldSpec("high", 8, "price"),
    FieldSpec("low", 12, "price"),
    FieldSpec("open", 16, "price"),
    FieldSpec("close", 20, "price"),
    FieldSpec("net_change", 24, "price"),
)


def default_packet_layouts() -> dict[int, PacketLayout]:
    """Kite Connect v3 payload layouts keyed by payload length."""
    layouts = [
        PacketLayout(length=8, mode="ltp", fields=(_TOKEN, _LTP)),
        PacketLayout(length=28, mode="quote", fields=_INDEX_QUOTE_FIELDS),
        PacketLayout(
            length=32,
            mode="full",
            fields=_INDEX_QUOTE_FIELDS + (FieldSpec("exchange_timestamp", 28, "timestamp"),),
        ),
        PacketLayout(length=44, mode="quote", fields=_QUOTE_FIELDS),
        PacketLayout(
            length=184,
            mode="full",
            fields=_QUOTE_FIELDS + (
                FieldSpec("last_trade_time", 44, "timestamp"),
                FieldSpec("oi", 48, "uint32"),
                FieldSpec("oi_day_high", 52, "uint32"),
                FieldSpec("oi_day_low", 56, "uint32"),
                FieldSpec("exchange_timestamp", 60, "timestamp"),
            ),
            depth=DepthSpec(offset=64),
        ),
    ]
    return {layout.length: layout for layout in layouts}


@dataclass(frozen=True)
class PacketParams:
    """Length-keyed packet layout table."""
    layouts: dict[int, PacketLayout] = field(default_factory=default_packet_layouts)


@dataclass(frozen=True)
class TickerConfig:
    """Complete ticker configuration."""
    connection: ConnectionParams
    segments: SegmentParams
    packets: PacketParams


def get_default_config() -> TickerConfig:
    """Get the default configuration instance."""
    return TickerConfig(
        connection=ConnectionParams(),
        segments=SegmentParams(),
        packets=PacketParams(),
    )
