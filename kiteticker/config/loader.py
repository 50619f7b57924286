"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from ..errors import ConfigurationError
from .defaults import (
    ConnectionParams,
    DepthSpec,
    FieldSpec,
    PacketLayout,
    PacketParams,
    SegmentParams,
    TickerConfig,
    get_default_config,
)
from .validation import ConfigValidator

logger = structlog.get_logger(__name__)

CONFIG_FILE = "ticker.yaml"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: TickerConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_file_config(self) -> dict[str, Any]:
        """Load overrides from the YAML config file, if present."""
        config_file = self.config_dir / CONFIG_FILE

        if not config_file.exists():
            return {}

        with open(config_file) as f:
            file_config = yaml.safe_load(f)

        if file_config is None:
            return {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f"{config_file} must contain a mapping",
                context={"path": str(config_file)},
            )
        return file_config

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Explicit overrides (highest priority)
        2. ticker.yaml in the config directory
        3. Global defaults (lowest priority)

        A layout mapped to ``null`` removes that payload length from the table.
        """
        config = asdict(self.defaults)

        config = self._deep_merge(config, self._normalize(self.load_file_config()))

        if overrides:
            config = self._deep_merge(config, self._normalize(overrides))

        layouts = config.get("packets", {}).get("layouts", {})
        config["packets"]["layouts"] = {
            length: layout for length, layout in layouts.items() if layout is not None
        }
        return config

    def build_config(self, overrides: Optional[dict[str, Any]] = None) -> TickerConfig:
        """Merge, validate and materialize a TickerConfig."""
        merged = self.merge_config(overrides)

        errors = ConfigValidator.validate_config(merged)
        if errors:
            messages = [f"{err.field}: {err.message} (got: {err.value})" for err in errors]
            logger.error("Ticker configuration invalid", errors=messages)
            raise ConfigurationError("Invalid ticker configuration", errors=errors)

        segments = merged["segments"]
        return TickerConfig(
            connection=ConnectionParams(**self._known_keys(ConnectionParams, merged["connection"])),
            segments=SegmentParams(
                price_divisors={int(k): float(v) for k, v in segments["price_divisors"].items()},
                default_divisor=float(segments["default_divisor"]),
                non_tradable_segments=tuple(segments["non_tradable_segments"]),
            ),
            packets=PacketParams(layouts={
                length: layout_from_dict(length, layout)
                for length, layout in merged["packets"]["layouts"].items()
            }),
        )

    def _normalize(self, config: dict[str, Any]) -> dict[str, Any]:
        """Coerce YAML string keys for lengths and segments to integers."""
        result = dict(config)
        packets = result.get("packets")
        if isinstance(packets, dict) and isinstance(packets.get("layouts"), dict):
            result["packets"] = {
                **packets,
                "layouts": {self._int_key(k): v for k, v in packets["layouts"].items()},
            }
        segments = result.get("segments")
        if isinstance(segments, dict) and isinstance(segments.get("price_divisors"), dict):
            result["segments"] = {
                **segments,
                "price_divisors": {self._int_key(k): v for k, v in segments["price_divisors"].items()},
            }
        return result

    @staticmethod
    def _int_key(key: Any) -> Any:
        if isinstance(key, str) and key.strip().isdigit():
            return int(key)
        return key

    @staticmethod
    def _known_keys(cls_: type, values: dict[str, Any]) -> dict[str, Any]:
        known = {f.name for f in fields(cls_)}
        unknown = set(values) - known
        if unknown:
            logger.warning("Ignoring unknown configuration keys",
                           section=cls_.__name__, keys=sorted(unknown))
        return {k: v for k, v in values.items() if k in known}

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def layout_from_dict(length: int, layout: dict[str, Any]) -> PacketLayout:
    """Build a PacketLayout from its validated mapping form."""
    depth = layout.get("depth")
    return PacketLayout(
        length=length,
        mode=layout["mode"],
        fields=tuple(
            FieldSpec(name=f["name"], offset=f["offset"], kind=f.get("kind", "uint32"))
            for f in layout["fields"]
        ),
        depth=DepthSpec(**depth) if depth is not None else None,
    )


def load_config(config_dir: Optional[Path] = None,
                overrides: Optional[dict[str, Any]] = None) -> TickerConfig:
    """Load the effective ticker configuration."""
    return ConfigLoader.create(config_dir).build_config(overrides)
