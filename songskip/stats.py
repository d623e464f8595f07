"""Skip counters and recent-track history."""

import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from songskip.constants import MAX_HISTORY
from songskip.models import BLOCKING_REASONS, BlockReason, NowPlaying


@dataclass
class SkipStats:
    total: int = 0
    artist: int = 0
    track: int = 0
    pattern: int = 0
    reverse: int = 0

    def record(self, reason: BlockReason) -> None:
        """Count one issued skip under its blocking reason."""
        reason = BlockReason(reason)
        if reason not in BLOCKING_REASONS:
            return
        self.total += 1
        setattr(self, reason.value, getattr(self, reason.value) + 1)

    def reset(self) -> None:
        for name in self.as_dict():
            setattr(self, name, 0)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "SkipStats":
        if not isinstance(data, dict):
            return cls()
        counters = {}
        for name in cls.__dataclass_fields__:
            value = data.get(name, 0)
            counters[name] = value if isinstance(value, int) and value >= 0 else 0
        return cls(**counters)


@dataclass
class HistoryEntry:
    source: str
    artists: tuple[str, ...]
    track: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    ts: float = field(default_factory=time.time)
    reason_blocked: Optional[BlockReason] = None

    @property
    def artist(self) -> str:
        return ", ".join(self.artists)

    def same_track(self, now_playing: NowPlaying) -> bool:
        return (self.source, self.artists, self.track) == (
            now_playing.source,
            tuple(now_playing.artists),
            now_playing.track or "",
        )


class History:
    """The last few distinct now-playing observations, newest first."""

    def __init__(self, max_entries: int = MAX_HISTORY):
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def latest(self) -> Optional[HistoryEntry]:
        return self._entries[0] if self._entries else None

    def observe(self, now_playing: NowPlaying) -> Optional[HistoryEntry]:
        """Record an observation. Returns the new entry, or None if unchanged."""
        latest = self.latest
        if latest is not None and latest.same_track(now_playing):
            return None

        entry = HistoryEntry(
            source=now_playing.source,
            artists=tuple(now_playing.artists),
            track=now_playing.track or "",
        )
        self._entries.appendleft(entry)
        return entry

    def mark_blocked(self, now_playing: NowPlaying, reason: BlockReason) -> bool:
        """Tag the newest entry with the reason it was skipped."""
        latest = self.latest
        if latest is None or not latest.same_track(now_playing):
            return False
        latest.reason_blocked = BlockReason(reason)
        return True

    def find(self, entry_id: str) -> Optional[HistoryEntry]:
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def clear(self) -> None:
        self._entries.clear()
