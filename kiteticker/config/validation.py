"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


FIELD_WIDTHS = {
    "uint32": 4,
    "int32": 4,
    "uint16": 2,
    "price": 4,
    "timestamp": 4,
}

TICK_FIELDS = frozenset({
    "instrument_token",
    "last_price",
    "last_traded_quantity",
    "average_traded_price",
    "volume_traded",
    "total_buy_quantity",
    "total_sell_quantity",
    "open",
    "high",
    "low",
    "close",
    "change",
    "net_change",
    "last_trade_time",
    "oi",
    "oi_day_high",
    "oi_day_low",
    "exchange_timestamp",
})

REQUIRED_FIELDS = ("instrument_token", "last_price")

MODES = ("ltp", "quote", "full")


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_connection_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate connection parameters."""
        errors = []

        if "root_url" in params:
            value = params["root_url"]
            if not isinstance(value, str) or not value.startswith(("ws://", "wss://")):
                errors.append(ValidationError(
                    field="root_url",
                    message="Must be a ws:// or wss:// URL",
                    value=value
                ))

        if "connect_timeout" in params:
            value = params["connect_timeout"]
            if not _is_positive_number(value):
                errors.append(ValidationError(
                    field="connect_timeout",
                    message="Must be a positive number",
                    value=value
                ))

        if "protocol_version" in params:
            value = params["protocol_version"]
            if not isinstance(value, str) or not value:
                errors.append(ValidationError(
                    field="protocol_version",
                    message="Must be a non-empty string",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_segment_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate segment price divisors."""
        errors = []

        if "default_divisor" in params:
            value = params["default_divisor"]
            if not _is_positive_number(value):
                errors.append(ValidationError(
                    field="default_divisor",
                    message="Must be a positive number",
                    value=value
                ))

        for segment, divisor in (params.get("price_divisors") or {}).items():
            if not _is_non_negative_int(segment) or segment > 0xFF:
                errors.append(ValidationError(
                    field="price_divisors",
                    message="Segment must be an integer between 0 and 255",
                    value=segment
                ))
            if not _is_positive_number(divisor):
                errors.append(ValidationError(
                    field=f"price_divisors.{segment}",
                    message="Must be a positive number",
                    value=divisor
                ))

        return errors

    @staticmethod
    def validate_layout(length: Any, layout: dict[str, Any]) -> list[ValidationError]:
        """Validate a single packet layout keyed by its payload length."""
        errors = []
        prefix = f"layouts.{length}"

        if not _is_non_negative_int(length) or length == 0:
            errors.append(ValidationError(
                field=prefix,
                message="Payload length must be a positive integer",
                value=length
            ))
            return errors

        if layout.get("mode") not in MODES:
            errors.append(ValidationError(
                field=f"{prefix}.mode",
                message=f"Must be one of {', '.join(MODES)}",
                value=layout.get("mode")
            ))

        fields = layout.get("fields") or []
        names = [f.get("name") for f in fields]

        for required in REQUIRED_FIELDS:
            if required not in names:
                errors.append(ValidationError(
                    field=f"{prefix}.fields",
                    message=f"Missing required field '{required}'",
                    value=names
                ))

        seen = set()
        for spec in fields:
            name = spec.get("name")
            if name not in TICK_FIELDS:
                errors.append(ValidationError(
                    field=f"{prefix}.fields",
                    message="Unknown tick field",
                    value=name
                ))
            if name in seen:
                errors.append(ValidationError(
                    field=f"{prefix}.fields",
                    message="Duplicate tick field",
                    value=name
                ))
            seen.add(name)

            kind = spec.get("kind", "uint32")
            offset = spec.get("offset")
            if kind not in FIELD_WIDTHS:
                errors.append(ValidationError(
                    field=f"{prefix}.fields.{name}.kind",
                    message=f"Must be one of {', '.join(FIELD_WIDTHS)}",
                    value=kind
                ))
                continue
            if not _is_non_negative_int(offset) or offset + FIELD_WIDTHS[kind] > length:
                errors.append(ValidationError(
                    field=f"{prefix}.fields.{name}.offset",
                    message="Field must lie within the payload",
                    value=offset
                ))

        depth = layout.get("depth")
        if depth is not None:
            errors.extend(ConfigValidator.validate_depth(prefix, length, depth))

        return errors

    @staticmethod
    def validate_depth(prefix: str, length: int, depth: dict[str, Any]) -> list[ValidationError]:
        """Validate a market depth block."""
        errors = []
        offset = depth.get("offset")
        levels = depth.get("levels", 5)
        entry_size = depth.get("entry_size", 12)

        for name, value in (("offset", offset), ("levels", levels), ("entry_size", entry_size)):
            if not _is_non_negative_int(value):
                errors.append(ValidationError(
                    field=f"{prefix}.depth.{name}",
                    message="Must be a non-negative integer",
                    value=value
                ))
        if errors:
            return errors

        if offset + levels * 2 * entry_size > length:
            errors.append(ValidationError(
                field=f"{prefix}.depth",
                message="Depth block must lie within the payload",
                value=depth
            ))

        entry_fields = (
            ("quantity_offset", 4),
            ("price_offset", 4),
            ("orders_offset", 2),
        )
        for name, width in entry_fields:
            value = depth.get(name, 0)
            if not _is_non_negative_int(value) or value + width > entry_size:
                errors.append(ValidationError(
                    field=f"{prefix}.depth.{name}",
                    message="Must lie within one depth entry",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_packet_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate the packet layout table."""
        errors = []
        layouts = params.get("layouts") or {}

        if not layouts:
            errors.append(ValidationError(
                field="layouts",
                message="At least one packet layout is required",
                value=layouts
            ))

        for length, layout in layouts.items():
            errors.extend(ConfigValidator.validate_layout(length, layout))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "connection" in config:
            errors.extend(ConfigValidator.validate_connection_params(config["connection"]))

        if "segments" in config:
            errors.extend(ConfigValidator.validate_segment_params(config["segments"]))

        if "packets" in config:
            errors.extend(ConfigValidator.validate_packet_params(config["packets"]))

        return errors
