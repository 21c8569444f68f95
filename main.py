"""Entry-point for running the Beacon Discord bot."""

from __future__ import annotations

import asyncio
import logging

from beacon import create_bot
from beacon.db import Database
from beacon.health import start_health_server
from beacon.models.config import load_settings
from beacon.services.config_store import GuildConfigStore


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


async def async_main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    database = Database(settings.database_url)
    await database.connect()

    store = GuildConfigStore(database=database)
    bot = create_bot(settings, store)
    health_server = await start_health_server(
        settings.health_host, settings.health_port, store, database, bot, settings.version
    )
    try:
        await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            await bot.close()
        health_server.close()
        await health_server.wait_closed()
        await database.close()


def main() -> None:
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
