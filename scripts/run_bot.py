#!/usr/bin/env python3
"""Run the read-aloud Discord bot."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from readaloud.app import AppContext
from readaloud.core.config import Settings
from readaloud.core.errors import TTSError
from readaloud.discord.bot_manager import ReadAloudBot
from readaloud.tts.factory import create_backend
from readaloud.tts.models import BackendKind

logger = logging.getLogger("readaloud")


async def run(settings: Settings) -> None:
    """Start the backend, wire the app and run the bot until closed."""
    backend = await create_backend(settings)

    bot = ReadAloudBot(command_prefix=settings.command_prefix)
    app = AppContext.build(
        settings,
        backend,
        transport=bot.transport,
        directory=bot.directory,
        notifier=bot.notifier,
    )
    bot.attach(app)

    try:
        await bot.start(settings.discord_token)
    finally:
        await app.aclose()
        await bot.close()


def configure_logging(level: str) -> None:
    """Set up the root handler; library chatter stays quiet unless debugging."""
    level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if level != "DEBUG":
        logging.getLogger("discord").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Read Discord chat messages aloud in voice channels"
    )
    parser.add_argument(
        "--backend",
        choices=[kind.value for kind in BackendKind],
        default=None,
        help="TTS backend to use (default: TTS_BACKEND from the environment)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL from the environment)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to the .env file (default: .env)",
    )

    args = parser.parse_args()

    overrides = {}
    if args.backend:
        overrides["tts_backend"] = BackendKind(args.backend)
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = Settings(_env_file=args.env_file, **overrides)

    configure_logging(settings.log_level)

    if not settings.discord_token:
        print("Error: DISCORD_TOKEN is not set")
        sys.exit(1)

    try:
        asyncio.run(run(settings))
    except TTSError as e:
        logger.error(f"Could not start the TTS backend: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
