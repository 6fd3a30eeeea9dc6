from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from synchealth.core.errors import InvalidTimeError


@dataclass(frozen=True)
class TrieNodeMetadata:
    """Summary of one trie node and its direct children."""

    prefix: bytes
    num_messages: int
    children: tuple["TrieNodeMetadata", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MessageStats:
    """Message counts of the primary and a peer for the same window."""

    primary_num_messages: int
    peer_num_messages: int

    def __post_init__(self) -> None:
        if self.primary_num_messages < 0 or self.peer_num_messages < 0:
            raise ValueError("Message counts must be non-negative.")

    @property
    def diff(self) -> int:
        return abs(self.primary_num_messages - self.peer_num_messages)

    @property
    def diff_percentage(self) -> Optional[float]:
        """Diff relative to the primary; None when the primary holds nothing."""

        if self.primary_num_messages == 0:
            return None
        return self.diff / self.primary_num_messages


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, stop) under examination."""

    start: datetime
    stop: datetime

    def __post_init__(self) -> None:
        if self.stop <= self.start:
            raise InvalidTimeError(
                f"Stop time {self.stop.isoformat()} must be after start time {self.start.isoformat()}."
            )
