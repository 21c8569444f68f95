"""Builds starboard mirror posts from an original message.

Everything in this module is pure: it turns a message snapshot into a
:class:`MirrorPayload` of embed dictionaries and file references. Turning file
references into uploads happens in :mod:`beacon.services.starboard`.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import discord

from ..models.guild import StarboardRule
from ..utils.discord import (
    MAX_EMBEDS_PER_MESSAGE,
    MAX_FILES_PER_MESSAGE,
    Colours,
    emoji_markup,
    extract_image_urls,
)
from .assets import QUESTION_MARK_ICON, VIDEO_PLAY_ICON, attachment_url

CDN_PREFIX = "https://cdn.discordapp.com"
MEDIA_PROXY_PREFIX = "https://media.discordapp.net"
UNKNOWN_AUTHOR = "👤 Unknown"

# Emoji markup never contains a space, so the first number after it is the count
# and the digits of a custom emoji id are left alone.
COUNT_TOKEN = re.compile(r"^(\S+ )\d+")


@dataclass(frozen=True)
class FileSource:
    """Something to upload with the mirror: a bundled asset, an attachment or a link."""

    kind: str  # "asset", "attachment" or "url"
    ref: str
    attachment: Any = field(default=None, compare=False)


@dataclass
class MirrorPayload:
    content: Optional[str]
    embeds: List[Dict[str, Any]]
    files: List[FileSource]


def build_title(
    emoji: discord.PartialEmoji,
    rule: StarboardRule,
    count: int,
    source_channel_id: int,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    marker = emoji_markup(emoji) if emoji.id else rule.trigger_emoji
    return f"{marker} {count} | <t:{round(now.timestamp())}:R> | <#{source_channel_id}>"


def replace_count_token(title: str, count: int) -> str:
    return COUNT_TOKEN.sub(lambda match: f"{match.group(1)}{count}", title, count=1)


def proxy_url_for(url: str) -> Optional[str]:
    """The media-proxy address Discord derives for a CDN-hosted file."""

    if not url.startswith(CDN_PREFIX):
        return None
    return MEDIA_PROXY_PREFIX + url[len(CDN_PREFIX):]


def is_redundant_preview(embed: Dict[str, Any], image_urls: List[str]) -> bool:
    """True for the auto-generated preview of an image link already attached as a file."""

    thumbnail = embed.get("thumbnail") or {}
    url = embed.get("url")
    thumbnail_url = thumbnail.get("url")
    if not url or not thumbnail_url:
        return False
    # type, url and thumbnail only; unset keys (e.g. flags of 0) do not count
    if len([key for key, value in embed.items() if value]) != 3:
        return False
    if url not in image_urls or url != thumbnail_url:
        return False
    expected_proxy = proxy_url_for(thumbnail_url)
    return expected_proxy is not None and thumbnail.get("proxy_url") == expected_proxy


def adapt_video_embed(embed: Dict[str, Any]) -> Dict[str, Any]:
    thumbnail = embed.get("thumbnail") or {}
    if thumbnail.get("url"):
        embed["image"] = {"url": thumbnail["url"]}
    provider = (embed.get("provider") or {}).get("name")
    embed["footer"] = {
        "text": provider or "Video",
        "icon_url": attachment_url(VIDEO_PLAY_ICON),
    }
    return embed


def build_primary_embed(
    message: discord.Message,
    *,
    emoji: discord.PartialEmoji,
    rule: StarboardRule,
    count: int,
    source_channel_id: int,
    bot_name: str,
    bot_avatar_url: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    author = message.author
    if author is not None:
        author_block = {
            "name": author.display_name,
            "icon_url": author.avatar.url if author.avatar else attachment_url(QUESTION_MARK_ICON),
        }
    else:
        author_block = {"name": UNKNOWN_AUTHOR, "icon_url": attachment_url(QUESTION_MARK_ICON)}

    footer = {"text": f"{bot_name} • Message ID: {message.id}"}
    if bot_avatar_url:
        footer["icon_url"] = bot_avatar_url

    return {
        "title": build_title(emoji, rule, count, source_channel_id, now),
        "description": f"{message.content or ''}\n\n[Jump to Message]({message.jump_url})".strip(),
        "color": Colours.DEFAULT,
        "author": author_block,
        "footer": footer,
        "timestamp": message.created_at.isoformat(),
    }


def build_mirror_payload(
    message: discord.Message,
    *,
    emoji: discord.PartialEmoji,
    rule: StarboardRule,
    count: int,
    source_channel_id: int,
    bot_name: str,
    bot_avatar_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MirrorPayload:
    image_urls = extract_image_urls(message.content)

    secondary: List[Dict[str, Any]] = []
    for embed in message.embeds:
        data = copy.deepcopy(embed.to_dict())
        if is_redundant_preview(data, image_urls):
            continue
        if data.get("video"):
            data = adapt_video_embed(data)
        secondary.append(data)
    secondary = secondary[: MAX_EMBEDS_PER_MESSAGE - 1]

    files: List[FileSource] = [FileSource("asset", QUESTION_MARK_ICON)]
    files.extend(
        FileSource("attachment", attachment.url, attachment) for attachment in message.attachments
    )
    files.extend(FileSource("url", url) for url in image_urls)
    if any(data.get("video") for data in secondary):
        files.insert(0, FileSource("asset", VIDEO_PLAY_ICON))
    files = files[:MAX_FILES_PER_MESSAGE]

    primary = build_primary_embed(
        message,
        emoji=emoji,
        rule=rule,
        count=count,
        source_channel_id=source_channel_id,
        bot_name=bot_name,
        bot_avatar_url=bot_avatar_url,
        now=now,
    )
    content = f"<@&{rule.ping_role_id}>" if rule.ping_role_id else None
    return MirrorPayload(content=content, embeds=[primary, *secondary], files=files)
