"""Entry point for reaction-added events: starboard fan-out and poll enforcement."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import discord

from ..utils.discord import emoji_key
from .config_store import GuildConfigStore
from .polls import PollOutcome, PollService
from .starboard import StarboardService

logger = logging.getLogger(__name__)


@dataclass
class ReactionResult:
    """What one reaction event changed."""

    mirrors_touched: int = 0
    poll_outcome: Optional[PollOutcome] = None


class ReactionEngine:
    """Reconciles guild configuration, mirrors and polls for one reaction at a time."""

    def __init__(
        self,
        client: discord.Client,
        store: GuildConfigStore,
        starboard: StarboardService,
        polls: PollService,
    ):
        self._client = client
        self._store = store
        self._starboard = starboard
        self._polls = polls

    async def handle_reaction_add(
        self, payload: discord.RawReactionActionEvent
    ) -> Optional[ReactionResult]:
        if payload.guild_id is None:
            return None

        result = ReactionResult()
        # Fetch under the lock so counts are applied in the order they were read.
        async with self._store.guild_lock(payload.guild_id):
            message = await self._fetch_message(payload)
            if message is None:
                return None

            key = emoji_key(payload.emoji)
            reaction = next((r for r in message.reactions if self._reaction_key(r) == key), None)
            count = reaction.count if reaction else 0

            config = await self._store.find_one(payload.guild_id)

            result.mirrors_touched = await self._starboard.process(
                config, payload, message, count
            )

            if message.embeds or str(message.id) in config.polls:
                member = await self._resolve_member(payload)
                result.poll_outcome = await self._polls.process(config, payload, message, member)

            await self._store.update_one(payload.guild_id, config)

        if result.poll_outcome not in (None, PollOutcome.IGNORED):
            logger.info(
                "Poll %s in guild %s: %s", message.id, payload.guild_id, result.poll_outcome.value
            )
        return result

    async def _fetch_message(
        self, payload: discord.RawReactionActionEvent
    ) -> Optional[discord.Message]:
        channel = self._client.get_channel(payload.channel_id)
        try:
            if channel is None:
                channel = await self._client.fetch_channel(payload.channel_id)
            return await channel.fetch_message(payload.message_id)
        except (discord.NotFound, discord.Forbidden) as exc:
            logger.warning(
                "Reaction target %s in channel %s is unavailable: %s",
                payload.message_id,
                payload.channel_id,
                exc,
            )
            return None

    async def _resolve_member(
        self, payload: discord.RawReactionActionEvent
    ) -> Optional[discord.Member]:
        if payload.member is not None:
            return payload.member
        guild = self._client.get_guild(payload.guild_id)
        if guild is None:
            return None
        try:
            return await guild.fetch_member(payload.user_id)
        except discord.NotFound:
            return None

    @staticmethod
    def _reaction_key(reaction: discord.Reaction) -> Optional[str]:
        emoji = reaction.emoji
        if isinstance(emoji, str):
            return emoji
        return emoji_key(emoji)
