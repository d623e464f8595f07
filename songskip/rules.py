"""Rule engine deciding whether the current track should be skipped.

Rules are checked in a fixed priority order and the first one that fires
decides the verdict:

1. reverse mode gate (no observed artist is on the allow-list)
2. track rules
3. wildcard title patterns
4. blocked artists (blocklist mode only)
5. collaborations, when enabled (blocklist mode only)

Everything here is pure: raw rule collections are sanitized on every call
and nothing is cached between calls.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from songskip.models import BlockReason, NowPlaying, TrackRule, Verdict
from songskip.normalize import (
    normalize,
    sanitize_artist_list,
    sanitize_pattern_list,
    sanitize_track_list,
)

WILDCARD = "*"

# Content of (...) and [...] groups: "(Live)", "[Remastered 2011]"
_BRACKETED = re.compile(r"[\(\[]([^\)\]]*)[\)\]]")
_SEGMENT_SEPARATOR = " - "


def observed_artists(artists: Any) -> tuple[str, ...]:
    """Normalize the reported performers, keeping their order."""
    if isinstance(artists, str):
        artists = [artists]
    elif not isinstance(artists, (list, tuple)):
        return ()
    return tuple(name for name in map(normalize, artists) if name)


def title_candidates(track: Any) -> set[str]:
    """Parts of a title a wildcard pattern is tested against.

    The whole normalized title, the content of every bracketed group and
    every " - " separated part.
    """
    title = normalize(track)
    if not title:
        return set()

    candidates = {title}
    candidates.update(normalize(group) for group in _BRACKETED.findall(title))
    candidates.update(normalize(part) for part in title.split(_SEGMENT_SEPARATOR))
    candidates.discard("")
    return candidates


def match_pattern(pattern: Any, track: Any) -> bool:
    """Glob-style match with optional leading and trailing ``*``.

    Wildcard patterns are tested against every title candidate, a bare
    pattern only against the whole normalized title.
    """
    if not isinstance(pattern, str):
        return False

    core = pattern.strip()
    leading = core.startswith(WILDCARD)
    if leading:
        core = core[1:]
    trailing = core.endswith(WILDCARD)
    if trailing:
        core = core[:-1]

    core = normalize(core)
    if not core:
        return False
    if not leading and not trailing:
        return normalize(track) == core

    for candidate in title_candidates(track):
        if leading and trailing:
            matched = core in candidate
        elif leading:
            matched = candidate.endswith(core)
        else:
            matched = candidate.startswith(core)
        if matched:
            return True
    return False


def _track_rule_matches(rule: Any, artists: tuple[str, ...], title: str) -> bool:
    if not isinstance(rule, TrackRule) or rule.track != title:
        return False
    return rule.artist is None or rule.artist in artists


def evaluate(
    artists: Any,
    track: Any,
    artist_rules: Iterable[str],
    track_rules: Iterable[TrackRule],
    pattern_rules: Iterable[str],
    reverse_mode: bool = False,
    block_collaborations: bool = False,
) -> Verdict:
    """Decide whether ``(artists, track)`` should be skipped."""
    observed = observed_artists(artists)
    title = normalize(track)
    artist_rules = sanitize_artist_list(artist_rules)
    track_rules = sanitize_track_list(track_rules)
    pattern_rules = sanitize_pattern_list(pattern_rules)

    if reverse_mode and not any(artist in artist_rules for artist in observed):
        return Verdict.block(BlockReason.REVERSE)

    if any(_track_rule_matches(rule, observed, title) for rule in track_rules):
        return Verdict.block(BlockReason.TRACK)

    if any(match_pattern(pattern, title) for pattern in sorted(pattern_rules)):
        return Verdict.block(BlockReason.PATTERN)

    if reverse_mode:
        return Verdict.allow()

    if any(artist in artist_rules for artist in observed):
        return Verdict.block(BlockReason.ARTIST)

    if block_collaborations:
        for artist in observed:
            if any(rule in artist for rule in artist_rules):
                return Verdict.block(BlockReason.ARTIST)

    return Verdict.allow()


@dataclass(frozen=True)
class RuleSet:
    """Sanitized rule collections together with the mode flags."""

    artists: frozenset[str] = frozenset()
    tracks: frozenset[TrackRule] = frozenset()
    patterns: frozenset[str] = frozenset()
    reverse_mode: bool = False
    block_collaborations: bool = False

    @classmethod
    def from_raw(
        cls,
        artists: Any = None,
        tracks: Any = None,
        patterns: Any = None,
        reverse_mode: Any = False,
        block_collaborations: Any = False,
    ) -> "RuleSet":
        return cls(
            artists=sanitize_artist_list(artists),
            tracks=sanitize_track_list(tracks),
            patterns=sanitize_pattern_list(patterns),
            reverse_mode=reverse_mode is True,
            block_collaborations=block_collaborations is True,
        )

    def evaluate(self, now_playing: NowPlaying) -> Verdict:
        return evaluate(
            now_playing.artists,
            now_playing.track,
            self.artists,
            self.tracks,
            self.patterns,
            reverse_mode=self.reverse_mode,
            block_collaborations=self.block_collaborations,
        )
