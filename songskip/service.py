import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from songskip.clients.base import Provider, ProviderError
from songskip.config import Settings
from songskip.constants import (
    IDLE_POLL_INTERVAL_SEC,
    POLL_INTERVAL_SEC,
    SKIP_COOLDOWN_SEC,
    SOURCE_IDLE,
    get_logger,
)
from songskip.models import BlockReason, NowPlaying, Verdict
from songskip.stats import History, HistoryEntry, SkipStats

logger = get_logger("service")


@dataclass
class PollStatus:
    source: str = SOURCE_IDLE
    artists: tuple[str, ...] = ()
    track: Optional[str] = None
    verdict: Optional[Verdict] = None
    skipped: bool = False
    error: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.source == SOURCE_IDLE


class SkipService:
    """Polls the active provider and skips tracks the rules block."""

    def __init__(
        self,
        providers: Iterable[Provider],
        settings_path: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
        cooldown: float = SKIP_COOLDOWN_SEC,
    ):
        self.providers = {provider.name: provider for provider in providers}
        self.settings_path = settings_path
        self.clock = clock
        self.cooldown = cooldown
        self.history = History()
        self.session_stats = SkipStats()
        self.status = PollStatus()
        self.now_playing: Optional[NowPlaying] = None
        self.is_music_playing = False
        self._last_skip_at: Optional[float] = None
        self._stop_event = threading.Event()

    # --- Settings ---

    def load_settings(self) -> Settings:
        return Settings.load(self.settings_path)

    def _update_settings(self, change: Callable[[Settings], bool]) -> bool:
        settings = self.load_settings()
        changed = change(settings)
        if changed:
            settings.save(self.settings_path)
        return changed

    # --- Polling ---

    @property
    def current_interval(self) -> float:
        return POLL_INTERVAL_SEC if self.is_music_playing else IDLE_POLL_INTERVAL_SEC

    def _providers_by_priority(self, settings: Settings) -> list[Provider]:
        names = [name for name in settings.priority if name in self.providers]
        names += [name for name in self.providers if name not in names]
        return [self.providers[name] for name in names]

    def _set_idle(self) -> PollStatus:
        self.is_music_playing = False
        self.status = PollStatus()
        return self.status

    def poll_once(self) -> PollStatus:
        """Run one polling cycle: find the active source, evaluate, skip if blocked."""
        settings = self.load_settings()
        if settings.enabled is False:
            return self._set_idle()

        logger.debug("Polling for currently playing track...")
        for provider in self._providers_by_priority(settings):
            if not provider.is_available():
                continue
            try:
                now_playing = provider.get_now_playing()
            except ProviderError as e:
                logger.warning(f"{provider.name} polling error: {e}")
                continue
            if now_playing is None or not now_playing.is_playing:
                continue
            return self._handle_playing(provider, now_playing, settings)

        logger.debug("No active music source detected (paused or idle)")
        return self._set_idle()

    def _handle_playing(self, provider: Provider, now_playing: NowPlaying, settings: Settings) -> PollStatus:
        self.is_music_playing = True
        self.now_playing = now_playing
        self.history.observe(now_playing)

        verdict = settings.rule_set().evaluate(now_playing)
        self.status = PollStatus(
            source=provider.name,
            artists=now_playing.artists,
            track=now_playing.track,
            verdict=verdict,
        )

        if verdict.blocked:
            logger.info(f"Blocked by {verdict.reason.value} rule: {now_playing.artist_display} - {now_playing.track}")
            self.status.skipped = self._handle_skip(provider, verdict.reason)
        return self.status

    # --- Skipping ---

    def _in_cooldown(self, now: float) -> bool:
        if self._last_skip_at is None:
            return False
        elapsed = now - self._last_skip_at
        if elapsed < self.cooldown:
            logger.debug(f"Skip cooldown active ({elapsed:.1f}s < {self.cooldown}s)")
            return True
        return False

    def _issue_skip(self, provider: Provider) -> bool:
        now = self.clock()
        if self._in_cooldown(now):
            return False

        try:
            provider.skip()
        except ProviderError as e:
            logger.error(f"Error skipping track on {provider.name}: {e}")
            self.status.error = str(e)
            return False

        self._last_skip_at = now
        logger.info(f"Track skipped on {provider.name}")
        return True

    def _handle_skip(self, provider: Provider, reason: BlockReason) -> bool:
        if not self._issue_skip(provider):
            return False

        def persist_skip(settings: Settings) -> bool:
            settings.record_skip(reason)
            return True

        self.session_stats.record(reason)
        self._update_settings(persist_skip)
        if self.now_playing is not None:
            self.history.mark_blocked(self.now_playing, reason)
        return True

    def skip_current(self) -> bool:
        """Skip the active source by hand. Not counted in statistics."""
        provider = self.providers.get(self.status.source)
        if provider is None:
            return False
        logger.info(f"Manually skipping track on {provider.name}...")
        return self._issue_skip(provider)

    # --- Blocking from playback and history ---

    def block_current_track(self) -> bool:
        if self.now_playing is None or self.status.is_idle:
            return False
        artist = self.now_playing.artists[0] if self.now_playing.artists else None
        return self._block_track(self.now_playing.track, artist)

    def block_current_artist(self) -> bool:
        if self.now_playing is None or self.status.is_idle or not self.now_playing.artists:
            return False
        return self._block_artist(self.now_playing.artists[0])

    def _history_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        entry = self.history.find(entry_id)
        if entry is None:
            logger.warning(f"History entry {entry_id} not found")
        return entry

    def block_track_from_history(self, entry_id: str) -> bool:
        entry = self._history_entry(entry_id)
        if entry is None:
            return False
        artist = entry.artists[0] if entry.artists else None
        return self._block_track(entry.track, artist)

    def block_artist_from_history(self, entry_id: str) -> bool:
        entry = self._history_entry(entry_id)
        if entry is None or not entry.artists:
            return False
        return self._block_artist(entry.artists[0])

    def _block_track(self, track: str, artist: Optional[str]) -> bool:
        blocked = self._update_settings(lambda settings: settings.add_blocked_track(track, artist))
        if blocked:
            logger.info(f"Blocked song: {artist or '*'} - {track}")
        else:
            logger.info(f"Song is already blocked: {track}")
        return blocked

    def _block_artist(self, artist: str) -> bool:
        blocked = self._update_settings(lambda settings: settings.add_blocked_artist(artist))
        if blocked:
            logger.info(f"Blocked artist: {artist}")
        else:
            logger.info(f"Artist is already blocked: {artist}")
        return blocked

    # --- Session state ---

    def reset_session_stats(self) -> None:
        self.session_stats.reset()

    def clear_history(self) -> None:
        self.history.clear()

    # --- Loop ---

    def run(self) -> None:
        """Poll until stop() is called, adapting the interval to playback state."""
        self._stop_event.clear()
        logger.info("Polling started")
        interval = None
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.exception(f"Polling error: {e}")

            if self.current_interval != interval:
                interval = self.current_interval
                logger.debug(f"Polling interval set to {interval}s ({'active' if self.is_music_playing else 'idle'})")
            self._stop_event.wait(interval)
        logger.info("Polling stopped")

    def stop(self) -> None:
        self._stop_event.set()
