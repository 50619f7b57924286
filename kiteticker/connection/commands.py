"""Outbound JSON commands and their transmission results."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..data.models import Mode


class CommandStatus(Enum):
    """Command transmission status."""
    SENT = "sent"
    NOT_CONNECTED = "not_connected"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class CommandResult:
    """Result of a command transmission attempt."""
    status: CommandStatus
    command: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def sent(self) -> bool:
        return self.status == CommandStatus.SENT


def subscribe_command(tokens: list[int]) -> dict[str, Any]:
    return {"a": "subscribe", "v": list(tokens)}


def unsubscribe_command(tokens: list[int]) -> dict[str, Any]:
    return {"a": "unsubscribe", "v": list(tokens)}


def mode_command(mode: Mode, tokens: list[int]) -> dict[str, Any]:
    return {"a": "mode", "v": [Mode.parse(mode).value, list(tokens)]}


def serialize(command: dict[str, Any]) -> str:
    """Compact JSON text for one command."""
    return json.dumps(command, separators=(",", ":"))
