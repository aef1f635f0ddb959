"""
CGPlayer CLI entry point.

Provides command-line interface for running CGPlayer.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from cgplayer import __version__
from cgplayer.api import APIError, AuthenticationError, CGPlayerAPIClient
from cgplayer.app import CGPlayer
from cgplayer.backends import BackendNotFoundError
from cgplayer.config import VALID_BACKENDS, VALID_LOG_LEVELS, Config, ConfigError, load_config
from cgplayer.library import InvalidTrackError, VoiceType

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_AUTH_ERROR = 2
EXIT_NETWORK_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def _parse_voice(value: str) -> str:
    """Validate a --voice argument."""
    try:
        return VoiceType.parse(value).value
    except InvalidTrackError:
        valid = ", ".join(v.value.lower() for v in VoiceType)
        raise argparse.ArgumentTypeError(f"Invalid voice: {value}. Use one of: {valid}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cgplayer",
        description="Headless choir rehearsal player for CGPlayerWeb",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cgplayer --list-devices
  cgplayer --versions 42 --json
  cgplayer --email me@example.com --password secret --song 42 --voice tenor --play
  cgplayer --config config.yaml --backend local --device "USB Audio"

Environment Variables:
  CGPLAYER_API_URL, CGPLAYER_TOKEN, CGPLAYER_EMAIL, CGPLAYER_PASSWORD
  CGPLAYER_BACKEND, CGPLAYER_AUDIO_DEVICE, CGPLAYER_VOLUME, CGPLAYER_AUTOPLAY
  CGPLAYER_QUEUE_FILE, CGPLAYER_CONTROL_PORT, CGPLAYER_BIND, CGPLAYER_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # One-shot modes
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List local audio output devices and exit",
    )
    parser.add_argument(
        "--versions",
        metavar="SONG_ID",
        help="Print the voice versions of a song and exit",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON (used with --versions)",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # API
    api_group = parser.add_argument_group("API")
    api_group.add_argument("--api-url", metavar="URL", help="CGPlayerWeb server URL")
    api_group.add_argument("--token", metavar="TEXT", help="API token from a previous login")
    api_group.add_argument("--email", metavar="TEXT", help="Account email")
    api_group.add_argument("--password", metavar="TEXT", help="Account password")

    # Playback
    playback_group = parser.add_argument_group("Playback")
    playback_group.add_argument(
        "--backend",
        choices=sorted(VALID_BACKENDS),
        help="Audio output: silent or local (default: silent)",
    )
    playback_group.add_argument(
        "--device",
        metavar="TEXT",
        help="Local output device: 'default', index, or name",
    )
    playback_group.add_argument(
        "--song",
        action="append",
        dest="songs",
        default=[],
        metavar="SONG_ID",
        help="Queue the versions of a song at start (repeatable)",
    )
    playback_group.add_argument(
        "--voice",
        action="append",
        dest="voices",
        type=_parse_voice,
        default=[],
        metavar="VOICE",
        help="Only queue versions for this voice, plus choir and original (repeatable)",
    )
    playback_group.add_argument(
        "--play",
        action="store_true",
        help="Start playing once started",
    )
    playback_group.add_argument(
        "--queue-file",
        type=Path,
        metavar="PATH",
        help="Where the queue is saved (default: ~/.cgplayer/queue.json)",
    )

    # Control server
    server_group = parser.add_argument_group("Control Server")
    server_group.add_argument(
        "--control-port",
        type=int,
        metavar="INT",
        help="Control server port (default: 8790)",
    )
    server_group.add_argument(
        "--bind",
        metavar="TEXT",
        help="Bind address (default: 127.0.0.1)",
    )
    server_group.add_argument(
        "--no-control",
        action="store_true",
        help="Do not start the control server",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=sorted(VALID_LOG_LEVELS),
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "api_url": ("api", "base_url"),
        "token": ("api", "token"),
        "email": ("api", "email"),
        "password": ("api", "password"),
        "backend": ("player", "backend"),
        "device": ("player", "device"),
        "queue_file": ("storage", "queue_file"),
        "control_port": ("server", "port"),
        "bind": ("server", "bind_address"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    # Only set if explicitly given
    if getattr(args, "no_control", False):
        _set_nested(result, ("server", "enabled"), False)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary (without sensitive data)."""
    logger.info(f"API: {config.api.base_url}")
    logger.info(f"Audio output: {config.player.backend} (device: {config.player.device})")
    if config.storage.persist_queue:
        logger.info(f"Queue file: {config.storage.queue_file}")
    if config.server.enabled:
        logger.info(f"Control server: {config.server.bind_address}:{config.server.port}")
    else:
        logger.info("Control server: disabled")


def run_list_devices() -> int:
    """Print local audio output devices."""
    from cgplayer.backends.local import format_device_list, list_output_devices

    try:
        devices = list_output_devices()
    except ImportError as e:
        print(f"Cannot list devices: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if not devices:
        print("No audio output devices found.")
        return EXIT_SUCCESS

    print(f"Found {len(devices)} output device(s):\n")
    print(format_device_list(devices))
    return EXIT_SUCCESS


async def run_versions(config: Config, song_id: str, json_output: bool) -> int:
    """
    Print the versions of a song.

    Returns:
        Exit code
    """
    async with CGPlayerAPIClient(
        config.api.base_url, token=config.api.token or None, timeout=config.api.timeout
    ) as client:
        if not client.token and config.api.email:
            await client.login(config.api.email, config.api.password)
        versions = await client.get_versions(song_id)

    if json_output:
        output = {
            "song_id": song_id,
            "versions": [v.to_dict() for v in versions],
            "count": len(versions),
        }
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not versions:
        print(f"Song {song_id} has no playable versions.")
        return EXIT_SUCCESS

    print(f"Song {song_id}: {len(versions)} version(s)\n")
    for v in versions:
        voice = v.voice_type.value if v.voice_type else "-"
        print(f"  [{v.id}] {voice:<12} {v.title}")
    return EXIT_SUCCESS


def run_player(args: argparse.Namespace) -> int:
    """
    Load configuration and run the selected mode.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    try:
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        if args.versions:
            return asyncio.run(run_versions(config, args.versions, args.json_output))

        logger.info(f"CGPlayer v{__version__}")
        log_config(config)
        app = CGPlayer(
            config,
            song_ids=args.songs,
            voices=args.voices or None,
            play=args.play,
        )
        asyncio.run(app.run())
        return EXIT_SUCCESS

    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_AUTH_ERROR

    except APIError as e:
        logger.error(f"API error: {e}")
        return EXIT_NETWORK_ERROR

    except BackendNotFoundError as e:
        logger.error(f"Audio output error: {e}")
        return EXIT_NETWORK_ERROR

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_NETWORK_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=auth error, 3=network error
    """
    args = parse_args(argv)

    if args.list_devices:
        return run_list_devices()
    return run_player(args)


if __name__ == "__main__":
    sys.exit(main())
