"""Ephemeral notifications and the animation tick."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from git_worktree_manager.constants import (
    ERROR_NOTIFICATION_TTL_TICKS,
    NOTIFICATION_TTL_TICKS,
    SPINNER_FRAMES,
)


class Severity(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class NotificationEntry:
    message: str
    severity: Severity
    created_tick: int
    ttl: int

    @property
    def expires_at(self) -> int:
        return self.created_tick + self.ttl

    def is_expired(self, tick: int) -> bool:
        return tick >= self.expires_at


@dataclass(frozen=True)
class NotificationCenter:
    """Time-ordered queue of notifications driven by a monotonic tick counter.

    Expired entries are only dropped by :meth:`advance`, never when posting.
    """

    tick: int = 0
    entries: Tuple[NotificationEntry, ...] = ()

    def post(self, message: str, severity: Severity = Severity.INFO, ttl: Optional[int] = None) -> "NotificationCenter":
        if ttl is None:
            ttl = ERROR_NOTIFICATION_TTL_TICKS if severity == Severity.ERROR else NOTIFICATION_TTL_TICKS
        entry = NotificationEntry(message=message, severity=severity, created_tick=self.tick, ttl=ttl)
        return replace(self, entries=self.entries + (entry,))

    def advance(self, ticks: int = 1) -> "NotificationCenter":
        """Move the clock forward and drop entries whose deadline has been reached."""
        tick = self.tick + ticks
        return NotificationCenter(
            tick=tick,
            entries=tuple(entry for entry in self.entries if not entry.is_expired(tick)),
        )

    @property
    def latest(self) -> Optional[NotificationEntry]:
        return self.entries[-1] if self.entries else None

    def spinner_frame(self) -> str:
        return SPINNER_FRAMES[self.tick % len(SPINNER_FRAMES)]
