"""Starboard rule matching and mirror synchronisation."""

from __future__ import annotations

import io
import logging
import posixpath
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import urlparse

import discord

from ..models.guild import GuildConfig, StarboardRule
from ..utils.discord import emoji_key
from .assets import AssetLibrary
from .images import ImageFetcher
from .mirror import FileSource, MirrorPayload, build_mirror_payload, replace_count_token

logger = logging.getLogger(__name__)


def match_rules(
    config: GuildConfig, emoji: discord.PartialEmoji, source_channel_id: int
) -> List[StarboardRule]:
    """Rules triggered by ``emoji`` for a message posted in ``source_channel_id``."""

    starboard = config.settings.starboard
    if starboard is None or starboard.disabled or not starboard.channels:
        return []
    key = emoji_key(emoji)
    return [
        rule
        for rule in starboard.channels
        if key == rule.trigger_emoji and rule.channel_id != source_channel_id
    ]


def _filename_from_url(url: str, index: int) -> str:
    name = posixpath.basename(urlparse(url).path)
    return name or f"image-{index}.png"


class StarboardService:
    """Creates mirror posts once a threshold is reached and keeps their counts current."""

    def __init__(
        self,
        client: discord.Client,
        assets: AssetLibrary,
        images: ImageFetcher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self._assets = assets
        self._images = images
        self._clock = clock

    async def process(
        self,
        config: GuildConfig,
        payload: discord.RawReactionActionEvent,
        message: discord.Message,
        count: int,
    ) -> int:
        """Apply every matching rule in stored order. Returns the number of mirrors touched."""

        touched = 0
        for rule in match_rules(config, payload.emoji, payload.channel_id):
            if await self._process_rule(rule, payload, message, count):
                touched += 1
        return touched

    async def _process_rule(
        self,
        rule: StarboardRule,
        payload: discord.RawReactionActionEvent,
        message: discord.Message,
        count: int,
    ) -> bool:
        mirror_id = rule.mirror_for(message.id)
        if mirror_id is None and count < rule.emoji_count:
            return False

        channel = await self._resolve_channel(rule.channel_id)
        if channel is None:
            return False

        if mirror_id is not None:
            return await self._update_mirror(channel, mirror_id, count)
        return await self._create_mirror(channel, rule, payload, message, count)

    async def _resolve_channel(self, channel_id: int) -> Optional[discord.abc.Messageable]:
        channel = self._client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self._client.fetch_channel(channel_id)
        except discord.HTTPException as exc:
            logger.warning("Starboard channel %s is unavailable: %s", channel_id, exc)
            return None

    async def _update_mirror(
        self, channel: discord.abc.Messageable, mirror_id: int, count: int
    ) -> bool:
        try:
            mirror = await channel.fetch_message(mirror_id)
        except discord.HTTPException as exc:
            logger.warning("Starboard mirror %s could not be fetched: %s", mirror_id, exc)
            return False
        if not mirror.embeds:
            logger.warning("Starboard mirror %s has no embed to update", mirror_id)
            return False

        embeds = list(mirror.embeds)
        title = embeds[0].title or ""
        updated = replace_count_token(title, count)
        if updated == title:
            return False
        embeds[0] = embeds[0].copy()
        embeds[0].title = updated
        try:
            await mirror.edit(embeds=embeds)
        except discord.HTTPException as exc:
            logger.warning("Could not update starboard mirror %s: %s", mirror_id, exc)
            return False
        logger.debug("Updated starboard mirror %s to %d", mirror_id, count)
        return True

    async def _create_mirror(
        self,
        channel: discord.abc.Messageable,
        rule: StarboardRule,
        payload: discord.RawReactionActionEvent,
        message: discord.Message,
        count: int,
    ) -> bool:
        bot_user = self._client.user
        mirror_payload = build_mirror_payload(
            message,
            emoji=payload.emoji,
            rule=rule,
            count=count,
            source_channel_id=payload.channel_id,
            bot_name=bot_user.name if bot_user else "Beacon",
            bot_avatar_url=bot_user.display_avatar.url if bot_user else None,
            now=self._clock() if self._clock else None,
        )
        try:
            sent = await channel.send(
                content=mirror_payload.content,
                embeds=[discord.Embed.from_dict(data) for data in mirror_payload.embeds],
                files=await self._materialise_files(mirror_payload),
            )
        except discord.Forbidden:
            logger.warning("Missing permissions to post in starboard channel %s", rule.channel_id)
            return False
        except discord.HTTPException as exc:
            logger.warning(
                "Could not mirror message %s to starboard channel %s: %s",
                message.id,
                rule.channel_id,
                exc,
            )
            return False

        rule.record_mirror(message.id, sent.id)
        logger.info(
            "Mirrored message %s to starboard channel %s as %s (%d reactions)",
            message.id,
            rule.channel_id,
            sent.id,
            count,
        )
        return True

    async def _materialise_files(self, mirror_payload: MirrorPayload) -> List[discord.File]:
        files: List[discord.File] = []
        for index, source in enumerate(mirror_payload.files):
            upload = await self._to_file(source, index)
            if upload is not None:
                files.append(upload)
        return files

    async def _to_file(self, source: FileSource, index: int) -> Optional[discord.File]:
        if source.kind == "asset":
            return self._assets.file(source.ref)
        if source.kind == "attachment":
            try:
                return await source.attachment.to_file()
            except discord.HTTPException as exc:
                logger.warning("Could not re-upload attachment %s: %s", source.ref, exc)
                return None
        data = await self._images.fetch(source.ref)
        if data is None:
            return None
        return discord.File(io.BytesIO(data), filename=_filename_from_url(source.ref, index))
