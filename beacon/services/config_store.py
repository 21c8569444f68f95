"""Guild configuration store backed by the database, with an in-memory fallback."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, Optional

from ..db import Database
from ..models.guild import GuildConfig

logger = logging.getLogger(__name__)


class GuildConfigStore:
    """Document store keyed by guild id.

    Reads and writes always move whole documents. Callers that read, mutate and
    write back a document should hold ``guild_lock(guild_id)`` for the duration
    so two events for the same guild cannot interleave their updates.
    """

    def __init__(self, database: Optional[Database] = None):
        self._db = database
        self._memory: Dict[int, Dict[str, Any]] = {}
        # One lock per guild seen, so this grows with the guild count only.
        self._locks: Dict[int, asyncio.Lock] = {}

    @property
    def _uses_db(self) -> bool:
        return self._db is not None and self._db.is_connected

    @property
    def storage(self) -> str:
        return "database" if self._uses_db else "in-memory"

    def guild_lock(self, guild_id: int) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        return lock

    async def find_one(self, guild_id: int) -> GuildConfig:
        if self._uses_db:
            document = await self._db.fetch_guild_document(guild_id)
        else:
            document = copy.deepcopy(self._memory.get(guild_id))
        return GuildConfig.from_document(guild_id, document)

    async def update_one(self, guild_id: int, config: GuildConfig) -> None:
        document = config.to_document()
        if self._uses_db:
            await self._db.upsert_guild_document(guild_id, document)
        else:
            self._memory[guild_id] = document

    async def prune_starboard_channel(self, guild_id: int, channel_id: int) -> bool:
        """Drop every starboard rule that posts into a deleted channel."""

        async with self.guild_lock(guild_id):
            config = await self.find_one(guild_id)
            starboard = config.settings.starboard
            if starboard is None or not starboard.channels:
                return False
            remaining = [rule for rule in starboard.channels if rule.channel_id != channel_id]
            if len(remaining) == len(starboard.channels):
                return False
            starboard.channels = remaining
            await self.update_one(guild_id, config)
        logger.info(
            "Removed starboard rules for deleted channel %s in guild %s", channel_id, guild_id
        )
        return True

    async def count(self) -> int:
        if self._uses_db:
            return await self._db.count_guild_documents()
        return len(self._memory)
