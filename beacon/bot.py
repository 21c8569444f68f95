"""Discord bot wiring for Beacon."""

from __future__ import annotations

import logging

import discord
from discord.ext import commands

from .models.config import BotSettings
from .services.assets import AssetLibrary
from .services.config_store import GuildConfigStore
from .services.images import ImageFetcher
from .services.polls import PollService
from .services.reactions import ReactionEngine
from .services.starboard import StarboardService

logger = logging.getLogger(__name__)


class BeaconBot(commands.Bot):
    """Bot subclass that owns the HTTP session used for image re-uploads."""

    def __init__(self, *, images: ImageFetcher, **kwargs):
        super().__init__(**kwargs)
        self.images = images

    async def close(self) -> None:
        await self.images.close()
        await super().close()


def create_bot(settings: BotSettings, store: GuildConfigStore) -> BeaconBot:
    intents = discord.Intents.default()
    intents.members = True
    intents.message_content = True
    intents.reactions = True

    images = ImageFetcher()
    bot = BeaconBot(
        command_prefix="!",  # Required by discord.py but unused (no text commands)
        intents=intents,
        help_command=None,
        images=images,
    )

    engine = ReactionEngine(
        client=bot,
        store=store,
        starboard=StarboardService(bot, AssetLibrary(settings.assets_dir), images),
        polls=PollService(bot),
    )

    @bot.event
    async def setup_hook() -> None:  # type: ignore[override]
        logger.info("Guild configuration using %s storage", store.storage)

    @bot.event
    async def on_ready() -> None:
        logger.info("Logged in as %s (%d guilds)", bot.user, len(bot.guilds))

    @bot.event
    async def on_raw_reaction_add(payload: discord.RawReactionActionEvent) -> None:
        try:
            await engine.handle_reaction_add(payload)
        except Exception:
            logger.exception(
                "Failed to process reaction on message %s in guild %s",
                payload.message_id,
                payload.guild_id,
            )

    @bot.event
    async def on_guild_channel_delete(channel: discord.abc.GuildChannel) -> None:
        try:
            await store.prune_starboard_channel(channel.guild.id, channel.id)
        except Exception:
            logger.exception("Failed to prune starboard rules for channel %s", channel.id)

    return bot
