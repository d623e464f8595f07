import os
from pathlib import Path
from typing import Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from songskip.clients.base import ProviderError
from songskip.constants import (
    CONFIG_DIR,
    SOURCE_SPOTIFY,
    SPOTIFY_DEFAULT_REDIRECT_URI,
    SPOTIFY_SCOPE,
    get_logger,
)
from songskip.models import NowPlaying
from songskip.retry import retry_with_backoff

logger = get_logger("spotify")

TRANSIENT_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class SpotifyClient:
    """Thin wrapper around the Spotify Web API for playback watching and skipping."""

    name = SOURCE_SPOTIFY

    def __init__(self, client: Optional[spotipy.Spotify] = None, scope: str | None = None):
        if client is None:
            cache_path = Path(os.environ.get("SPOTIFY_TOKEN_CACHE", CONFIG_DIR / "spotify-token-cache"))
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            client = spotipy.Spotify(
                auth_manager=SpotifyOAuth(
                    scope=scope or SPOTIFY_SCOPE,
                    client_id=os.environ.get("SPOTIFY_CLIENT_ID"),
                    client_secret=os.environ.get("SPOTIFY_CLIENT_SECRET"),
                    redirect_uri=os.environ.get("SPOTIFY_REDIRECT_URI", SPOTIFY_DEFAULT_REDIRECT_URI),
                    cache_path=str(cache_path),
                    open_browser=False,
                )
            )
        self.client = client

    def is_available(self) -> bool:
        """True once a refresh token has been cached by a previous login."""
        auth_manager = getattr(self.client, "auth_manager", None)
        cache_handler = getattr(auth_manager, "cache_handler", None)
        if cache_handler is None:
            return False
        token = cache_handler.get_cached_token()
        return bool(token and token.get("refresh_token"))

    def connect(self) -> None:
        """Run the interactive OAuth flow and cache the resulting tokens."""
        logger.info("Connecting to Spotify...")
        try:
            self.client.auth_manager.get_access_token(as_dict=False)
        except SpotifyOauthError as e:
            raise ProviderError(f"Spotify authorization failed: {e}") from e
        logger.info("Spotify connected")

    def get_now_playing(self) -> Optional[NowPlaying]:
        if not self.is_available():
            return None

        try:
            payload = self._fetch_currently_playing()
        except SpotifyException as e:
            if e.http_status == 401:
                logger.warning("Spotify authentication expired, reconnect with `skip.py connect`")
                return None
            raise ProviderError(f"Spotify playback request failed: {e}") from e
        except SpotifyOauthError as e:
            logger.warning(f"Spotify token refresh failed: {e}")
            return None

        now_playing = self._extract_now_playing(payload)
        if now_playing is not None:
            logger.debug(f"Spotify playing: {now_playing.artist_display} - {now_playing.track}")
        return now_playing

    def skip(self) -> None:
        if not self.is_available():
            raise ProviderError("Spotify is not connected")

        logger.debug("Skipping to next track on Spotify...")
        try:
            self.client.next_track()
        except SpotifyException as e:
            if e.http_status == 401:
                raise ProviderError("Spotify authentication expired. Please reconnect.") from e
            raise ProviderError(f"Spotify skip failed: {e}") from e
        except (SpotifyOauthError, requests.exceptions.RequestException) as e:
            raise ProviderError(f"Spotify skip failed: {e}") from e

    @retry_with_backoff(exceptions=TRANSIENT_ERRORS)
    def _fetch_currently_playing(self) -> Optional[dict]:
        return self.client.current_user_playing_track()

    @staticmethod
    def _extract_now_playing(payload: Optional[dict]) -> Optional[NowPlaying]:
        if not payload:
            return None
        item = payload.get("item")
        if not item:
            return None
        name = item.get("name")
        if not name:
            return None
        artists = tuple(artist.get("name", "") for artist in item.get("artists") or [] if artist.get("name"))
        return NowPlaying(
            source=SOURCE_SPOTIFY,
            artists=artists,
            track=name,
            is_playing=payload.get("is_playing") is True,
        )
