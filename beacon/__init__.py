"""Beacon: starboard mirroring and poll enforcement for Discord guilds."""

from .bot import create_bot

__all__ = ["create_bot"]
