"""Text normalization and sanitizers for stored rule lists."""

from collections.abc import Mapping
from typing import Any

from songskip.models import TrackRule


def normalize(text: Any) -> str:
    """Trim, lowercase and collapse whitespace runs for comparison."""
    if not isinstance(text, str):
        return ""
    return " ".join(text.lower().split())


def _as_list(raw: Any) -> list:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return list(raw)
    return []


def sanitize_artist_list(raw: Any) -> frozenset[str]:
    """Normalize artist names, dropping blanks and duplicates."""
    return frozenset(name for name in map(normalize, _as_list(raw)) if name)


def _track_rule_from(entry: Any) -> TrackRule | None:
    if isinstance(entry, TrackRule):
        artist, track = entry.artist, entry.track
    elif isinstance(entry, Mapping):
        artist, track = entry.get("artist"), entry.get("track")
    else:
        return None

    track = normalize(track)
    if not track:
        return None
    # Blank artist stays absent so the rule keeps matching every performer
    artist = normalize(artist) or None
    return TrackRule(track=track, artist=artist)


def sanitize_track_list(raw: Any) -> frozenset[TrackRule]:
    """Normalize track rules, dropping entries without a track title."""
    rules: dict[tuple[str, str], TrackRule] = {}
    for entry in _as_list(raw):
        rule = _track_rule_from(entry)
        if rule is not None:
            rules.setdefault(rule.key, rule)
    return frozenset(rules.values())


def sanitize_pattern_list(raw: Any) -> frozenset[str]:
    """Trim wildcard patterns and drop blanks. Case is left for match time."""
    return frozenset(
        pattern.strip() for pattern in _as_list(raw) if isinstance(pattern, str) and pattern.strip()
    )
