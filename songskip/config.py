"""Settings storage with secure file permissions."""

import json
import os
import stat
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from songskip.constants import (
    CONFIG_DIR,
    CONFIG_DIR_MODE,
    CONFIG_FILE_MODE,
    DEFAULT_PROVIDER_PRIORITY,
    get_logger,
)
from songskip.models import BlockReason, TrackRule
from songskip.normalize import (
    normalize,
    sanitize_artist_list,
    sanitize_pattern_list,
    sanitize_track_list,
)
from songskip.rules import RuleSet
from songskip.stats import SkipStats

logger = get_logger("config")

SETTINGS_FILE = CONFIG_DIR / "settings.json"
EXPORT_VERSION = "1.0"


def _secure_mkdir(path: Path) -> None:
    """Create directory with secure permissions."""
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, CONFIG_DIR_MODE)
    except OSError as e:
        logger.warning(f"Could not set permissions on directory {path}: {e}")


def _secure_write(path: Path, data: dict) -> None:
    """Write JSON file with secure permissions."""
    _secure_mkdir(path.parent)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)

    try:
        os.chmod(path, CONFIG_FILE_MODE)
    except OSError as e:
        logger.warning(f"Could not set permissions on file {path}: {e}")


def _check_permissions(path: Path) -> None:
    """Warn if file has insecure permissions."""
    if not path.exists():
        return

    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
        if mode & (stat.S_IRWXG | stat.S_IRWXO):  # Group or other has access
            logger.warning(
                f"File {path} has insecure permissions ({oct(mode)}). "
                f"Recommended: chmod 600 {path}"
            )
    except OSError:
        pass


def _sorted_tracks(rules) -> list[dict[str, str]]:
    return [rule.as_dict() for rule in sorted(rules, key=lambda rule: rule.key)]


@dataclass
class Settings:
    enabled: bool = True
    blocked_artists: list[str] = field(default_factory=lambda: ["Taylor Swift"])
    blocked_tracks: list[dict] = field(default_factory=list)
    blocked_patterns: list[str] = field(default_factory=list)
    block_collaborations: bool = False
    reverse_mode: bool = False
    provider_priority: list[str] = field(default_factory=lambda: list(DEFAULT_PROVIDER_PRIORITY))
    total_stats: dict[str, int] = field(default_factory=lambda: SkipStats().as_dict())

    def save(self, path: Optional[Path] = None) -> None:
        """Save settings with secure file permissions."""
        path = path or SETTINGS_FILE
        _secure_write(path, asdict(self))
        logger.debug(f"Settings saved to {path}")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        """Load settings from file, falling back to defaults."""
        path = path or SETTINGS_FILE
        if not path.exists():
            return cls()

        _check_permissions(path)

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed settings file {path}")
            return cls()

        known = {f.name for f in fields(cls)}
        settings = cls(**{key: value for key, value in data.items() if key in known})
        logger.debug(f"Settings loaded from {path}")
        return settings

    # --- Rules ---

    def rule_set(self) -> RuleSet:
        """Sanitized rules ready for evaluation."""
        return RuleSet.from_raw(
            artists=self.blocked_artists,
            tracks=self.blocked_tracks,
            patterns=self.blocked_patterns,
            reverse_mode=self.reverse_mode,
            block_collaborations=self.block_collaborations,
        )

    @property
    def priority(self) -> list[str]:
        if not isinstance(self.provider_priority, list):
            return list(DEFAULT_PROVIDER_PRIORITY)
        return [name for name in self.provider_priority if isinstance(name, str)]

    def add_blocked_artist(self, name: str) -> bool:
        """Add an artist. Returns False if it is blank or already listed."""
        artists = sanitize_artist_list(self.blocked_artists)
        normalized = normalize(name)
        if not normalized or normalized in artists:
            return False
        self.blocked_artists = sorted(artists | {normalized})
        return True

    def remove_blocked_artist(self, name: str) -> bool:
        artists = sanitize_artist_list(self.blocked_artists)
        normalized = normalize(name)
        if normalized not in artists:
            return False
        self.blocked_artists = sorted(artists - {normalized})
        return True

    def add_blocked_track(self, track: str, artist: Optional[str] = None) -> bool:
        """Add a track rule unless an existing rule already covers it."""
        rules = sanitize_track_list(self.blocked_tracks)
        candidate = TrackRule(track=normalize(track), artist=normalize(artist) or None)
        if not candidate.track:
            return False

        for rule in rules:
            if rule.track != candidate.track:
                continue
            if rule.artist is None or rule.artist == candidate.artist:
                return False

        self.blocked_tracks = _sorted_tracks(rules | {candidate})
        return True

    def remove_blocked_track(self, track: str, artist: Optional[str] = None) -> bool:
        rules = sanitize_track_list(self.blocked_tracks)
        target = TrackRule(track=normalize(track), artist=normalize(artist) or None)
        remaining = {rule for rule in rules if rule.key != target.key}
        if len(remaining) == len(rules):
            return False
        self.blocked_tracks = _sorted_tracks(remaining)
        return True

    def add_blocked_pattern(self, pattern: str) -> bool:
        patterns = sanitize_pattern_list(self.blocked_patterns)
        if not isinstance(pattern, str) or not pattern.strip() or pattern.strip() in patterns:
            return False
        self.blocked_patterns = sorted(patterns | {pattern.strip()})
        return True

    def remove_blocked_pattern(self, pattern: str) -> bool:
        patterns = sanitize_pattern_list(self.blocked_patterns)
        if not isinstance(pattern, str) or pattern.strip() not in patterns:
            return False
        self.blocked_patterns = sorted(patterns - {pattern.strip()})
        return True

    # --- Import / export ---

    def export_blocklist(self) -> dict[str, Any]:
        return {
            "artists": sorted(sanitize_artist_list(self.blocked_artists)),
            "tracks": _sorted_tracks(sanitize_track_list(self.blocked_tracks)),
            "patterns": sorted(sanitize_pattern_list(self.blocked_patterns)),
            "blockCollaborations": self.block_collaborations is True,
            "reverseMode": self.reverse_mode is True,
            "version": EXPORT_VERSION,
        }

    def import_blocklist(self, data: Any) -> bool:
        """Replace the well-typed fields found in exported data."""
        if not isinstance(data, dict):
            return False

        if isinstance(data.get("artists"), list):
            self.blocked_artists = sorted(sanitize_artist_list(data["artists"]))
        if isinstance(data.get("tracks"), list):
            self.blocked_tracks = _sorted_tracks(sanitize_track_list(data["tracks"]))
        if isinstance(data.get("patterns"), list):
            self.blocked_patterns = sorted(sanitize_pattern_list(data["patterns"]))
        if isinstance(data.get("blockCollaborations"), bool):
            self.block_collaborations = data["blockCollaborations"]
        if isinstance(data.get("reverseMode"), bool):
            self.reverse_mode = data["reverseMode"]
        return True

    # --- Statistics ---

    def lifetime_stats(self) -> SkipStats:
        return SkipStats.from_dict(self.total_stats)

    def record_skip(self, reason: BlockReason) -> None:
        stats = self.lifetime_stats()
        stats.record(reason)
        self.total_stats = stats.as_dict()

    def reset_total_stats(self) -> None:
        self.total_stats = SkipStats().as_dict()
