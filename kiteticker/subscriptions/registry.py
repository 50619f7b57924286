"""
Subscription intent registry.

Holds the instrument token to mode mapping that a reconnect replays. Only
local state is mutated here; whether a command is also transmitted is
decided by the connection manager.
"""

import threading
from collections.abc import Iterable
from typing import Optional, Union

from ..data.models import Mode, SERVER_DEFAULT_MODE

ModeLike = Union[Mode, str]


def normalize_tokens(tokens: Iterable[int]) -> list[int]:
    """Validate tokens and drop duplicates, preserving first-seen order."""
    result = []
    seen = set()
    for token in tokens:
        if isinstance(token, bool) or not isinstance(token, int) or token < 0:
            raise ValueError(f"Instrument token must be a non-negative integer, got {token!r}")
        if token not in seen:
            seen.add(token)
            result.append(token)
    return result


class SubscriptionRegistry:
    """Thread-safe token to mode mapping. At most one mode per token."""

    def __init__(self, default_mode: ModeLike = SERVER_DEFAULT_MODE):
        self.default_mode = Mode.parse(default_mode)
        self._modes: dict[int, Mode] = {}
        self._lock = threading.Lock()

    def subscribe(self, tokens: Iterable[int]) -> list[int]:
        """
        Add tokens with the default mode. Tokens already present keep their mode.

        Returns:
            Tokens that were not subscribed before
        """
        tokens = normalize_tokens(tokens)
        added = []
        with self._lock:
            for token in tokens:
                if token not in self._modes:
                    self._modes[token] = self.default_mode
                    added.append(token)
        return added

    def unsubscribe(self, tokens: Iterable[int]) -> list[int]:
        """
        Remove tokens. Absent tokens are ignored.

        Returns:
            Tokens that were removed
        """
        tokens = normalize_tokens(tokens)
        removed = []
        with self._lock:
            for token in tokens:
                if self._modes.pop(token, None) is not None:
                    removed.append(token)
        return removed

    def set_mode(self, mode: ModeLike, tokens: Iterable[int]) -> list[int]:
        """
        Set the mode for tokens, subscribing any that are not yet present.

        Returns:
            Tokens that were not subscribed before
        """
        mode = Mode.parse(mode)
        tokens = normalize_tokens(tokens)
        added = []
        with self._lock:
            for token in tokens:
                if token not in self._modes:
                    added.append(token)
                self._modes[token] = mode
        return added

    def snapshot(self) -> dict[Mode, list[int]]:
        """
        Point-in-time mapping grouped by mode.

        Modes appear in LTP, QUOTE, FULL order and tokens ascend within a
        group. Empty groups are omitted.
        """
        with self._lock:
            items = list(self._modes.items())

        grouped: dict[Mode, list[int]] = {}
        for mode in Mode:
            tokens = sorted(token for token, token_mode in items if token_mode == mode)
            if tokens:
                grouped[mode] = tokens
        return grouped

    def mode_of(self, token: int) -> Optional[Mode]:
        with self._lock:
            return self._modes.get(token)

    def tokens(self) -> list[int]:
        with self._lock:
            return sorted(self._modes)

    def clear(self) -> None:
        with self._lock:
            self._modes.clear()

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._modes

    def __len__(self) -> int:
        with self._lock:
            return len(self._modes)
