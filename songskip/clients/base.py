from typing import Optional, Protocol

from songskip.models import NowPlaying


class ProviderError(Exception):
    """A provider could not report playback or carry out a skip."""


class Provider(Protocol):
    name: str

    def is_available(self) -> bool:
        """Whether the provider can be queried at all (connected, right platform)."""
        ...

    def get_now_playing(self) -> Optional[NowPlaying]:
        """Current track, or None when nothing is playing."""
        ...

    def skip(self) -> None:
        ...
