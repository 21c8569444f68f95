"""Poll vote validation: phase checks, role gating and max-choice limits."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

import discord

from ..models.guild import GuildConfig, PollOption, PollPhase, PollRecord
from ..utils.discord import add_suffix, error_embed, normalize_glyph
from .poll_renderer import REQUIREMENTS_FIELD, poll_author_name, render_poll_embed, strip_tally

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHOICES = 10

OPTION_SYMBOL = re.compile(
    "^(?:"
    "[0-9#*]\ufe0f?\u20e3"  # keycaps 0-9, # and *
    "|\U0001f51f"  # keycap ten
    "|[\u00a9\u00ae\u2000-\u3300]\ufe0f?"
    "|[\U0001f000-\U0001faff]\ufe0f?"
    ")"
)
ROLE_MENTION = re.compile(r"<@&(\d+)>")
NO_ROLE = re.compile(r"(?<!\w)`?None`?(?!\w)")
MAX_CHOICES_VALUE = re.compile(r"`?(Unlimited)`?|(\d+)")


class PollMetadataError(ValueError):
    """Raised when the rendered poll does not say who may vote."""


class PollOutcome(str, Enum):
    IGNORED = "ignored"
    ENDED = "ended"
    ROLE_DENIED = "role_denied"
    LIMIT_EXCEEDED = "limit_exceeded"
    TALLIED = "tallied"


def parse_options(description: Optional[str]) -> List[PollOption]:
    options: List[PollOption] = []
    for line in (description or "").splitlines():
        match = OPTION_SYMBOL.match(line)
        if not match:
            continue
        label = strip_tally(line[match.end():])
        if label:
            options.append(PollOption(emoji=match.group(0), label=label))
    return options


def parse_required_role(value: str) -> Optional[int]:
    if NO_ROLE.search(value):
        return None
    match = ROLE_MENTION.search(value)
    if match is None:
        raise PollMetadataError(f"Unreadable role requirement: {value!r}")
    return int(match.group(1))


def parse_max_choices(value: str) -> Optional[int]:
    # Role ids are digits too, so drop mentions before looking for the limit.
    match = MAX_CHOICES_VALUE.search(ROLE_MENTION.sub("", value))
    if match is None:
        return DEFAULT_MAX_CHOICES
    if match.group(1):
        return None
    return int(match.group(2)) or DEFAULT_MAX_CHOICES


def requirements_value(embed: Dict[str, Any]) -> str:
    fields = embed.get("fields") or []
    for field in fields:
        if field.get("name") == REQUIREMENTS_FIELD:
            return field.get("value") or ""
    if len(fields) > 1:
        return fields[1].get("value") or ""
    raise PollMetadataError("Poll embed has no requirements field")


def embed_phase(embed: Dict[str, Any], bot_name: str) -> Optional[PollPhase]:
    author = (embed.get("author") or {}).get("name")
    if author == poll_author_name(bot_name, PollPhase.OPEN):
        return PollPhase.OPEN
    if author == poll_author_name(bot_name, PollPhase.ENDED):
        return PollPhase.ENDED
    return None


def record_from_embed(
    message: discord.Message, embed: Dict[str, Any], phase: PollPhase
) -> PollRecord:
    """Read a poll rendered before structured records existed."""

    requirements = requirements_value(embed)
    return PollRecord(
        message_id=message.id,
        channel_id=message.channel.id,
        question=embed.get("title"),
        phase=phase,
        options=parse_options(embed.get("description")),
        required_role_id=parse_required_role(requirements),
        max_choices=parse_max_choices(requirements),
    )


def _glyph(emoji: Any) -> str:
    return normalize_glyph(str(emoji))


class PollService:
    """Applies poll participation rules to a single reaction."""

    def __init__(self, client: discord.Client):
        self._client = client

    @property
    def _bot_name(self) -> str:
        user = self._client.user
        return user.name if user else "Beacon"

    def load_record(self, config: GuildConfig, message: discord.Message) -> Optional[PollRecord]:
        """Stored record for ``message``, adopting a text-rendered poll on first sight."""

        embed = message.embeds[0].to_dict() if message.embeds else {}
        phase = embed_phase(embed, self._bot_name)
        key = str(message.id)
        record = config.polls.get(key)
        if record is None:
            if phase is None:
                return None
            record = record_from_embed(message, embed, phase)
            config.polls[key] = record
            logger.info("Adopted poll %s with %d options", message.id, len(record.options))
        if phase is PollPhase.ENDED:
            record.phase = PollPhase.ENDED
        return record

    async def process(
        self,
        config: GuildConfig,
        payload: discord.RawReactionActionEvent,
        message: discord.Message,
        member: Optional[discord.Member],
    ) -> Optional[PollOutcome]:
        try:
            record = self.load_record(config, message)
        except PollMetadataError as exc:
            logger.warning("Ignoring vote on poll %s: %s", message.id, exc)
            return PollOutcome.IGNORED
        if record is None:
            return None
        if member is None or member.bot:
            return PollOutcome.IGNORED

        glyph = _glyph(payload.emoji)
        option_glyphs = {normalize_glyph(option.emoji) for option in record.options}
        if glyph not in option_glyphs:
            return PollOutcome.IGNORED

        if record.is_ended:
            await self._retract(message, payload.emoji, member)
            await self._notify(member, "Sorry, this poll has ended.")
            return PollOutcome.ENDED

        reaction = next((r for r in message.reactions if _glyph(r.emoji) == glyph), None)
        # Only count votes on options the bot has seeded, and skip the seeding itself.
        if reaction is None or not reaction.me or reaction.count <= 1:
            return PollOutcome.IGNORED

        option_reactions = [r for r in message.reactions if _glyph(r.emoji) in option_glyphs]
        chosen = [r for r in option_reactions if await self._has_reacted(r, member)]

        role_id = record.required_role_id
        if role_id is not None and member.get_role(role_id) is None:
            for choice in chosen:
                await self._retract(message, choice.emoji, member)
            await self._notify(
                member, f"You must have the <@&{role_id}> role to participate in this poll!"
            )
            return PollOutcome.ROLE_DENIED

        limit = record.max_choices
        if limit is not None and len(chosen) > limit:
            for choice in chosen:
                await self._retract(message, choice.emoji, member)
            await self._notify(
                member,
                f"You may not choose more than **{limit}** option{add_suffix(limit)} for this poll!",
            )
            return PollOutcome.LIMIT_EXCEEDED

        self._tally(record, option_reactions)
        base = message.embeds[0].to_dict() if message.embeds else {}
        rendered = render_poll_embed(base, record, self._bot_name)
        try:
            await message.edit(embed=discord.Embed.from_dict(rendered))
        except discord.HTTPException as exc:
            logger.warning("Could not re-render poll %s: %s", message.id, exc)
        return PollOutcome.TALLIED

    @staticmethod
    def _tally(record: PollRecord, option_reactions: List[discord.Reaction]) -> None:
        counts = {
            _glyph(reaction.emoji): reaction.count - (1 if reaction.me else 0)
            for reaction in option_reactions
        }
        for option in record.options:
            option.votes = max(counts.get(normalize_glyph(option.emoji), 0), 0)

    @staticmethod
    async def _has_reacted(reaction: discord.Reaction, member: discord.Member) -> bool:
        async for user in reaction.users():
            if user.id == member.id:
                return True
        return False

    @staticmethod
    async def _retract(message: discord.Message, emoji: Any, member: discord.Member) -> None:
        try:
            await message.remove_reaction(emoji, member)
        except discord.HTTPException as exc:
            logger.warning(
                "Could not remove %s from %s on poll %s: %s", emoji, member.id, message.id, exc
            )

    @staticmethod
    async def _notify(member: discord.Member, text: str) -> None:
        try:
            await member.send(embed=error_embed(text))
        except discord.HTTPException as exc:
            logger.warning("Could not notify member %s: %s", member.id, exc)
