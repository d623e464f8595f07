"""Music app integration for macOS through AppleScript."""

import subprocess
import sys
from typing import Optional

from songskip.clients.base import ProviderError
from songskip.constants import APPLESCRIPT_TIMEOUT_SEC, SOURCE_APPLE_MUSIC, get_logger
from songskip.models import NowPlaying

logger = get_logger("apple_music")

FIELD_SEPARATOR = "|"

PLAYER_STATE_SCRIPT = """
tell application "Music"
    if player state is playing then
        return "playing"
    else
        return "not playing"
    end if
end tell
"""

TRACK_INFO_SCRIPT = f"""
tell application "Music"
    set currentTrack to current track
    return (artist of currentTrack) & "{FIELD_SEPARATOR}" & (name of currentTrack)
end tell
"""

SKIP_SCRIPT = 'tell application "Music" to next track'

PERMISSION_MARKERS = ("not allowed", "not authorized", "permission")
PERMISSION_HINT = (
    "Permission to control the Music app is missing. Grant it in "
    "System Settings > Privacy & Security > Automation."
)


def _is_permission_error(message: str) -> bool:
    message = message.lower()
    return any(marker in message for marker in PERMISSION_MARKERS)


class AppleMusicClient:
    """Reads and controls the local Music app with ``osascript``."""

    name = SOURCE_APPLE_MUSIC

    def __init__(self, platform: str | None = None, timeout: float = APPLESCRIPT_TIMEOUT_SEC):
        self.platform = platform or sys.platform
        self.timeout = timeout

    def is_available(self) -> bool:
        return self.platform == "darwin"

    def is_running(self) -> bool:
        try:
            result = subprocess.run(
                ["pgrep", "-x", "Music"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0 and bool(result.stdout.strip())

    def _run_script(self, script: str) -> str:
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProviderError(f"osascript failed: {e}") from e

        if result.returncode != 0:
            error = result.stderr.strip() or f"exit status {result.returncode}"
            if _is_permission_error(error):
                raise ProviderError(PERMISSION_HINT)
            raise ProviderError(f"osascript failed: {error}")
        return result.stdout.strip()

    def get_now_playing(self) -> Optional[NowPlaying]:
        if not self.is_available() or not self.is_running():
            return None

        try:
            state = self._run_script(PLAYER_STATE_SCRIPT)
            if state != "playing":
                return None
            output = self._run_script(TRACK_INFO_SCRIPT)
        except ProviderError as e:
            # Missing permission or no current track both mean nothing to act on
            logger.debug(f"Music app not readable: {e}")
            return None

        artist, separator, track = output.rpartition(FIELD_SEPARATOR)
        if not separator or not track.strip():
            return None

        artist = artist.strip()
        now_playing = NowPlaying(
            source=SOURCE_APPLE_MUSIC,
            artists=(artist,) if artist else (),
            track=track.strip(),
            is_playing=True,
        )
        logger.debug(f"Apple Music playing: {now_playing.artist_display} - {now_playing.track}")
        return now_playing

    def skip(self) -> None:
        if not self.is_available():
            raise ProviderError("Apple Music is only supported on macOS")

        logger.debug("Skipping to next track on Apple Music...")
        self._run_script(SKIP_SCRIPT)
