import threading

import pytest

from songskip.clients.base import ProviderError
from songskip.config import Settings
from songskip.constants import IDLE_POLL_INTERVAL_SEC, POLL_INTERVAL_SEC
from songskip.models import BlockReason, NowPlaying, TrackRule
from songskip.service import SkipService


class FakeProvider:
    def __init__(self, name, now_playing=None, available=True, error=None, skip_error=None):
        self.name = name
        self.now_playing = now_playing
        self.available = available
        self.error = error
        self.skip_error = skip_error
        self.polls = 0
        self.skips = 0

    def is_available(self):
        return self.available

    def get_now_playing(self):
        self.polls += 1
        if self.error:
            raise self.error
        return self.now_playing

    def skip(self):
        if self.skip_error:
            raise self.skip_error
        self.skips += 1


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _playing(source, track, *artists, is_playing=True):
    return NowPlaying(source=source, artists=artists, track=track, is_playing=is_playing)


@pytest.fixture
def settings_path(tmp_path):
    path = tmp_path / "settings.json"
    Settings(blocked_artists=["Taylor Swift"]).save(path)
    return path


@pytest.fixture
def clock():
    return FakeClock()


def _service(settings_path, clock, *providers):
    return SkipService(providers, settings_path=settings_path, clock=clock)


def test_blocked_track_is_skipped_and_counted(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, spotify)

    status = service.poll_once()

    assert status.source == "spotify"
    assert status.verdict.reason == BlockReason.ARTIST
    assert status.skipped is True
    assert spotify.skips == 1
    assert service.session_stats.artist == 1
    assert Settings.load(settings_path).lifetime_stats().artist == 1
    assert service.history.latest.reason_blocked == BlockReason.ARTIST


def test_allowed_track_is_not_skipped(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hotline Bling", "Drake"))
    service = _service(settings_path, clock, spotify)

    status = service.poll_once()

    assert status.verdict.blocked is False
    assert status.skipped is False
    assert spotify.skips == 0
    assert service.session_stats.total == 0
    assert service.history.latest.reason_blocked is None


def test_cooldown_prevents_repeated_skips(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, spotify)

    service.poll_once()
    clock.advance(1.0)
    second = service.poll_once()
    clock.advance(2.0)
    third = service.poll_once()

    assert second.skipped is False
    assert third.skipped is True
    assert spotify.skips == 2
    assert service.session_stats.total == 2


def test_priority_prefers_first_active_provider(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Love Story", "Taylor Swift"))
    apple = FakeProvider("apple-music", _playing("apple-music", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, apple, spotify)

    status = service.poll_once()

    assert status.source == "spotify"
    assert spotify.skips == 1
    assert apple.polls == 0


def test_priority_is_configurable(settings_path, clock):
    settings = Settings.load(settings_path)
    settings.provider_priority = ["apple-music", "spotify"]
    settings.save(settings_path)
    spotify = FakeProvider("spotify", _playing("spotify", "Hotline Bling", "Drake"))
    apple = FakeProvider("apple-music", _playing("apple-music", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify, apple)

    assert service.poll_once().source == "apple-music"
    assert spotify.polls == 0


@pytest.mark.parametrize(
    "spotify",
    [
        FakeProvider("spotify", None),
        FakeProvider("spotify", _playing("spotify", "Paused", "Drake", is_playing=False)),
        FakeProvider("spotify", available=False),
        FakeProvider("spotify", error=ProviderError("HTTP 503")),
    ],
)
def test_falls_back_to_next_provider(settings_path, clock, spotify):
    apple = FakeProvider("apple-music", _playing("apple-music", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, spotify, apple)

    status = service.poll_once()

    assert status.source == "apple-music"
    assert apple.skips == 1


def test_idle_when_nothing_plays(settings_path, clock):
    spotify = FakeProvider("spotify", error=ProviderError("token expired"))
    service = _service(settings_path, clock, spotify, FakeProvider("apple-music"))

    status = service.poll_once()

    assert status.is_idle
    assert status.error is None
    assert service.current_interval == IDLE_POLL_INTERVAL_SEC


def test_interval_switches_with_playback(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify)

    assert service.current_interval == IDLE_POLL_INTERVAL_SEC
    service.poll_once()
    assert service.current_interval == POLL_INTERVAL_SEC
    spotify.now_playing = None
    service.poll_once()
    assert service.current_interval == IDLE_POLL_INTERVAL_SEC


def test_disabled_service_does_not_poll(settings_path, clock):
    settings = Settings.load(settings_path)
    settings.enabled = False
    settings.save(settings_path)
    spotify = FakeProvider("spotify", _playing("spotify", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, spotify)

    status = service.poll_once()

    assert status.is_idle
    assert spotify.polls == 0


def test_rules_are_reloaded_every_cycle(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify)
    assert service.poll_once().skipped is False

    settings = Settings.load(settings_path)
    settings.add_blocked_pattern("hello")
    settings.save(settings_path)

    status = service.poll_once()
    assert status.verdict.reason == BlockReason.PATTERN
    assert status.skipped is True


def test_failed_skip_is_reported_and_not_counted(settings_path, clock):
    spotify = FakeProvider(
        "spotify",
        _playing("spotify", "Love Story", "Taylor Swift"),
        skip_error=ProviderError("Spotify authentication expired. Please reconnect."),
    )
    service = _service(settings_path, clock, spotify)

    status = service.poll_once()

    assert status.skipped is False
    assert status.error == "Spotify authentication expired. Please reconnect."
    assert service.session_stats.total == 0
    assert Settings.load(settings_path).lifetime_stats().total == 0

    # No cooldown is armed by a failed skip
    spotify.skip_error = None
    assert service.poll_once().skipped is True


def test_manual_skip_respects_cooldown_and_is_not_counted(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify)

    assert service.skip_current() is False
    service.poll_once()
    assert service.skip_current() is True
    assert service.skip_current() is False
    clock.advance(3.0)
    assert service.skip_current() is True

    assert spotify.skips == 2
    assert service.session_stats.total == 0


def test_block_current_track_and_artist(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Perfect", "Ed Sheeran", "Beyonce"))
    service = _service(settings_path, clock, spotify)

    assert service.block_current_track() is False
    service.poll_once()

    assert service.block_current_track() is True
    assert service.block_current_track() is False
    assert service.block_current_artist() is True

    rules = Settings.load(settings_path).rule_set()
    assert TrackRule(track="perfect", artist="ed sheeran") in rules.tracks
    assert "ed sheeran" in rules.artists


def test_block_from_history(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify)
    service.poll_once()
    entry_id = service.history.latest.id

    assert service.block_track_from_history(entry_id) is True
    assert service.block_artist_from_history(entry_id) is True
    assert service.block_artist_from_history(entry_id) is False
    assert service.block_track_from_history("missing") is False

    rules = Settings.load(settings_path).rule_set()
    assert TrackRule(track="hello", artist="adele") in rules.tracks
    assert "adele" in rules.artists


def test_reset_session_stats_and_clear_history(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Love Story", "Taylor Swift"))
    service = _service(settings_path, clock, spotify)
    service.poll_once()

    service.reset_session_stats()
    service.clear_history()

    assert service.session_stats.total == 0
    assert len(service.history) == 0
    assert Settings.load(settings_path).lifetime_stats().total == 1


def test_run_stops_between_cycles(settings_path, clock):
    spotify = FakeProvider("spotify", _playing("spotify", "Hello", "Adele"))
    service = _service(settings_path, clock, spotify)

    original_poll = service.poll_once

    def poll_then_stop():
        status = original_poll()
        service.stop()
        return status

    service.poll_once = poll_then_stop
    worker = threading.Thread(target=service.run)
    worker.start()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert spotify.polls == 1


def test_run_survives_unexpected_errors(settings_path, clock):
    spotify = FakeProvider("spotify", error=RuntimeError("boom"))
    service = _service(settings_path, clock, spotify)
    calls = []

    original_poll = service.poll_once

    def poll_then_stop():
        calls.append(1)
        if len(calls) == 2:
            service.stop()
        return original_poll()

    service.poll_once = poll_then_stop
    service._stop_event.wait = lambda timeout=None: False
    service.run()

    assert len(calls) == 2
