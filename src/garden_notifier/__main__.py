"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from .app import GardenNotifierApp
from .config import Settings


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="Post Grow A Garden stock and weather alerts to Discord"
    )
    parser.add_argument(
        "--token",
        help="Discord bot token. Can also be set via DISCORD_TOKEN",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port of the liveness endpoint (PORT, default 3000)",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings.discord_token = args.token or settings.discord_token
    settings.port = args.port
    if not settings.discord_token:
        parser.error("Pass --token or set the DISCORD_TOKEN environment variable")

    app = GardenNotifierApp(settings)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Stopped by user")


if __name__ == "__main__":
    main()
