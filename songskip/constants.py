"""Constants and logging setup for the skip service."""

import logging
import os
import sys
from pathlib import Path

# --- Polling ---
POLL_INTERVAL_SEC = 2.0       # While a source reports playback
IDLE_POLL_INTERVAL_SEC = 5.0  # While paused, idle or disabled
SKIP_COOLDOWN_SEC = 2.5

# --- History ---
MAX_HISTORY = 10

# --- Sources ---
SOURCE_SPOTIFY = "spotify"
SOURCE_APPLE_MUSIC = "apple-music"
SOURCE_IDLE = "idle"
DEFAULT_PROVIDER_PRIORITY = (SOURCE_SPOTIFY, SOURCE_APPLE_MUSIC)

# --- Spotify ---
SPOTIFY_SCOPE = "user-read-playback-state user-modify-playback-state"
SPOTIFY_DEFAULT_REDIRECT_URI = "http://127.0.0.1:24863/callback"

# --- Apple Music ---
APPLESCRIPT_TIMEOUT_SEC = 5.0

# --- Retry ---
RETRY_MAX_ATTEMPTS = 2
RETRY_BASE_DELAY_SEC = 0.25
RETRY_MAX_DELAY_SEC = 1.0
RETRY_BUDGET_SEC = 1.5  # Retries of one fetch must finish inside a fast poll interval

# --- Files ---
CONFIG_DIR = Path(os.environ.get("SONGSKIP_CONFIG_DIR", Path.home() / ".config" / "songskip"))
CONFIG_FILE_MODE = 0o600  # Owner read/write only
CONFIG_DIR_MODE = 0o700   # Owner read/write/execute only

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logger = logging.getLogger("songskip")
    logger.setLevel(level)

    # Suppress noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("spotipy").setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module."""
    return logging.getLogger(f"songskip.{name}")
