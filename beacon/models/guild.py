"""Per-guild configuration document shared by the reaction engine and admin tooling."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_STAR = "⭐"
DEFAULT_EMOJI_COUNT = 3


class StarboardRule(BaseModel):
    """One (trigger emoji, destination channel, threshold, role ping) tuple."""

    channel_id: int = Field(..., alias="channelID")
    emoji: Optional[str] = None  # custom emoji id or unicode glyph
    emoji_count: int = Field(default=DEFAULT_EMOJI_COUNT, alias="emojiCount")
    ping_role_id: Optional[int] = Field(default=None, alias="pingRoleID")
    # original message id -> mirror message id
    starred_message_ids: Dict[str, int] = Field(default_factory=dict, alias="starredMessageIDs")

    class Config:
        populate_by_name = True

    @property
    def trigger_emoji(self) -> str:
        return self.emoji or DEFAULT_STAR

    def mirror_for(self, message_id: int) -> Optional[int]:
        return self.starred_message_ids.get(str(message_id))

    def record_mirror(self, message_id: int, mirror_id: int) -> None:
        self.starred_message_ids.setdefault(str(message_id), mirror_id)


class StarboardSettings(BaseModel):
    disabled: bool = False
    channels: List[StarboardRule] = Field(default_factory=list)


class GuildSettings(BaseModel):
    starboard: Optional[StarboardSettings] = None


class PollPhase(str, Enum):
    OPEN = "open"
    ENDED = "ended"


class PollOption(BaseModel):
    """A single poll choice as rendered on the poll message."""

    emoji: str
    label: str
    votes: int = 0


class PollRecord(BaseModel):
    """Structured poll state keyed by the poll message id."""

    message_id: int
    channel_id: int
    question: Optional[str] = None
    phase: PollPhase = PollPhase.OPEN
    options: List[PollOption] = Field(default_factory=list)
    required_role_id: Optional[int] = None
    max_choices: Optional[int] = None  # None means unlimited

    @property
    def is_ended(self) -> bool:
        return self.phase is PollPhase.ENDED


class GuildConfig(BaseModel):
    """Snapshot of everything the bot persists for one guild."""

    id: int
    settings: GuildSettings = Field(default_factory=GuildSettings)
    # Ended polls keep their record so late votes are still retracted.
    polls: Dict[str, PollRecord] = Field(default_factory=dict)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, guild_id: int, document: Optional[dict]) -> "GuildConfig":
        if not document:
            return cls(id=guild_id)
        payload = dict(document)
        payload.setdefault("id", guild_id)
        return cls.model_validate(payload)
