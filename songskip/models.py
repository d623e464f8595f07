from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BlockReason(str, Enum):
    NONE = "none"
    ARTIST = "artist"
    TRACK = "track"
    PATTERN = "pattern"
    REVERSE = "reverse"


BLOCKING_REASONS = (BlockReason.ARTIST, BlockReason.TRACK, BlockReason.PATTERN, BlockReason.REVERSE)


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating one observation against the rule set."""

    blocked: bool
    reason: BlockReason = BlockReason.NONE

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(blocked=False, reason=BlockReason.NONE)

    @classmethod
    def block(cls, reason: BlockReason) -> "Verdict":
        return cls(blocked=True, reason=reason)


@dataclass(frozen=True)
class TrackRule:
    """A blocked track title, optionally bound to one performer.

    ``artist`` is ``None`` when the rule matches the title under any performer.
    """

    track: str
    artist: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.artist or "", self.track)

    def as_dict(self) -> dict[str, str]:
        data = {"track": self.track}
        if self.artist is not None:
            data["artist"] = self.artist
        return data


@dataclass(frozen=True)
class NowPlaying:
    """Normalized now-playing snapshot reported by a provider."""

    source: str
    artists: tuple[str, ...]
    track: str
    is_playing: bool = True

    @property
    def artist_display(self) -> str:
        return ", ".join(self.artists)
