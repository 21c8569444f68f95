"""Discord-specific utility functions."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urlparse

import discord

from ..models.guild import DEFAULT_STAR

# Platform limits for a single outgoing message
MAX_EMBEDS_PER_MESSAGE = 25
MAX_FILES_PER_MESSAGE = 25

URL_PATTERN = re.compile(r"https?://[^\s<>\"'`|]+[^\s<>\"'`|.,:;!?)\]]")

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp")
IMAGE_HOSTS = {
    "i.imgur.com",
    "media.discordapp.net",
    "media.tenor.com",
    "i.redd.it",
    "pbs.twimg.com",
}

VARIATION_SELECTOR = "\ufe0f"


class Colours:
    DEFAULT = 0x5865F2
    ERROR = 0xED4245


def emoji_key(emoji: discord.PartialEmoji) -> Optional[str]:
    """Identity used to compare a reaction emoji against a configured trigger."""

    if emoji.id:
        return str(emoji.id)
    return emoji.name


def emoji_markup(emoji: discord.PartialEmoji, fallback: str = DEFAULT_STAR) -> str:
    if emoji.id:
        prefix = "a" if emoji.animated else ""
        return f"<{prefix}:_:{emoji.id}>"
    return emoji.name or fallback


def normalize_glyph(text: Optional[str]) -> str:
    return (text or "").replace(VARIATION_SELECTOR, "")


def extract_urls(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return URL_PATTERN.findall(text)


def is_image_link(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    path = parsed.path.lower()
    if path.endswith(IMAGE_SUFFIXES):
        return True
    if host in IMAGE_HOSTS:
        return True
    return host == "cdn.discordapp.com" and path.startswith("/attachments/")


def extract_image_urls(text: Optional[str]) -> List[str]:
    return [url for url in extract_urls(text) if is_image_link(url)]


def add_suffix(count: int) -> str:
    return "" if count == 1 else "s"


def error_embed(text: str) -> discord.Embed:
    return discord.Embed(description=f"❌ {text}", colour=Colours.ERROR)
