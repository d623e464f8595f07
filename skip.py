import argparse
import json
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv
from spotipy.oauth2 import SpotifyOauthError

from songskip.clients.apple_music_client import AppleMusicClient
from songskip.clients.base import ProviderError
from songskip.clients.spotify_client import SpotifyClient
from songskip.config import Settings
from songskip.constants import get_logger, setup_logging
from songskip.service import SkipService

logger = get_logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Skip music you never want to hear on Spotify and Apple Music")
    parser.add_argument("--env-file", default=".env", help="Path to .env file with Spotify credentials")
    parser.add_argument("--settings", type=Path, default=None, help="Path to settings.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Watch playback and skip blocked tracks (default)")
    commands.add_parser("once", help="Run a single polling cycle")
    commands.add_parser("connect", help="Authorize access to your Spotify account")
    commands.add_parser("status", help="Show rules and mode flags")

    block_artist = commands.add_parser("block-artist", help="Block an artist (allow it in reverse mode)")
    block_artist.add_argument("name")
    unblock_artist = commands.add_parser("unblock-artist", help="Remove an artist rule")
    unblock_artist.add_argument("name")

    block_track = commands.add_parser("block-track", help="Block a song, optionally only by one artist")
    block_track.add_argument("track")
    block_track.add_argument("--artist", default=None)
    unblock_track = commands.add_parser("unblock-track", help="Remove a song rule")
    unblock_track.add_argument("track")
    unblock_track.add_argument("--artist", default=None)

    block_pattern = commands.add_parser("block-pattern", help="Block titles matching a pattern such as *live")
    block_pattern.add_argument("pattern")
    unblock_pattern = commands.add_parser("unblock-pattern", help="Remove a title pattern")
    unblock_pattern.add_argument("pattern")

    for flag, help_text in (("reverse", "Whitelist mode"), ("collabs", "Collaboration blocking")):
        toggle = commands.add_parser(flag, help=help_text)
        toggle.add_argument("state", choices=["on", "off"])

    commands.add_parser("enable", help="Resume automatic skipping")
    commands.add_parser("disable", help="Pause automatic skipping")

    export = commands.add_parser("export", help="Write the blocklist to a JSON file")
    export.add_argument("file", type=Path)
    import_ = commands.add_parser("import", help="Replace the blocklist from a JSON file")
    import_.add_argument("file", type=Path)

    commands.add_parser("stats", help="Show lifetime skip counts")
    commands.add_parser("reset-stats", help="Reset lifetime skip counts")

    return parser.parse_args(argv)


def load_environment(env_file: str) -> None:
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)


def build_service(settings_path: Path | None) -> SkipService:
    providers = []
    try:
        providers.append(SpotifyClient())
    except SpotifyOauthError as e:
        logger.warning(f"Spotify disabled: {e}")
    providers.append(AppleMusicClient())
    return SkipService(providers, settings_path=settings_path)


def run_service(service: SkipService) -> None:
    signal.signal(signal.SIGTERM, lambda *_: service.stop())
    try:
        service.run()
    except KeyboardInterrupt:
        service.stop()


def print_status(settings: Settings) -> None:
    rules = settings.rule_set()
    title = "Allowed artists" if rules.reverse_mode else "Blocked artists"
    print(f"Skipping: {'enabled' if settings.enabled else 'disabled'}")
    print(f"Reverse mode: {'on' if rules.reverse_mode else 'off'}")
    print(f"Block collaborations: {'on' if rules.block_collaborations else 'off'}")
    print(f"{title}: {', '.join(sorted(rules.artists)) or '-'}")
    tracks = [f"{rule.artist or '*'} - {rule.track}" for rule in sorted(rules.tracks, key=lambda rule: rule.key)]
    print(f"Blocked songs: {'; '.join(tracks) or '-'}")
    print(f"Blocked patterns: {', '.join(sorted(rules.patterns)) or '-'}")


def edit_settings(settings_path: Path | None, change, done: str, unchanged: str) -> int:
    settings = Settings.load(settings_path)
    if not change(settings):
        print(unchanged)
        return 1
    settings.save(settings_path)
    print(done)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_environment(args.env_file)
    path = args.settings
    command = args.command or "run"

    if command == "run":
        run_service(build_service(path))
        return 0

    if command == "once":
        status = build_service(path).poll_once()
        if status.is_idle:
            print("Nothing playing")
        else:
            verdict = status.verdict.reason.value if status.verdict else "none"
            print(f"{status.source}: {', '.join(status.artists)} - {status.track} (verdict: {verdict})")
        return 0

    if command == "connect":
        try:
            SpotifyClient().connect()
        except (ProviderError, SpotifyOauthError) as e:
            print(e, file=sys.stderr)
            return 1
        print("Spotify connected")
        return 0

    if command == "status":
        print_status(Settings.load(path))
        return 0

    if command == "block-artist":
        return edit_settings(
            path, lambda s: s.add_blocked_artist(args.name), f"Blocked artist: {args.name}", "Artist is already blocked"
        )
    if command == "unblock-artist":
        return edit_settings(
            path, lambda s: s.remove_blocked_artist(args.name), f"Removed artist: {args.name}", "Artist is not listed"
        )
    if command == "block-track":
        return edit_settings(
            path,
            lambda s: s.add_blocked_track(args.track, args.artist),
            f"Blocked song: {args.track}",
            "This song is already blocked",
        )
    if command == "unblock-track":
        return edit_settings(
            path,
            lambda s: s.remove_blocked_track(args.track, args.artist),
            f"Removed song: {args.track}",
            "Song is not listed",
        )
    if command == "block-pattern":
        return edit_settings(
            path,
            lambda s: s.add_blocked_pattern(args.pattern),
            f"Blocked pattern: {args.pattern}",
            "This pattern is already blocked",
        )
    if command == "unblock-pattern":
        return edit_settings(
            path,
            lambda s: s.remove_blocked_pattern(args.pattern),
            f"Removed pattern: {args.pattern}",
            "Pattern is not listed",
        )

    if command in ("reverse", "collabs"):
        attribute = "reverse_mode" if command == "reverse" else "block_collaborations"
        enabled = args.state == "on"
        settings = Settings.load(path)
        setattr(settings, attribute, enabled)
        settings.save(path)
        print(f"{'Reverse mode' if command == 'reverse' else 'Collaboration blocking'} {args.state}")
        return 0

    if command in ("enable", "disable"):
        settings = Settings.load(path)
        settings.enabled = command == "enable"
        settings.save(path)
        print(f"Skipping {command}d")
        return 0

    if command == "export":
        data = Settings.load(path).export_blocklist()
        args.file.write_text(json.dumps(data, indent=2), encoding="utf-8")
        print(f"Blocklist exported to {args.file}")
        return 0

    if command == "import":
        try:
            data = json.loads(args.file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            print(f"Failed to import blocklist: {e}", file=sys.stderr)
            return 1
        return edit_settings(path, lambda s: s.import_blocklist(data), "Blocklist imported", "Invalid data format")

    if command == "stats":
        for name, count in Settings.load(path).lifetime_stats().as_dict().items():
            print(f"{name}: {count}")
        return 0

    if command == "reset-stats":
        settings = Settings.load(path)
        settings.reset_total_stats()
        settings.save(path)
        print("Lifetime stats reset")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
