"""Placeholder images attached to outgoing starboard posts."""

from __future__ import annotations

from pathlib import Path

import discord

QUESTION_MARK_ICON = "Question-Mark-Icon.png"
VIDEO_PLAY_ICON = "Video-Play-Icon.png"


def attachment_url(name: str) -> str:
    return f"attachment://{name}"


class AssetLibrary:
    """Resolves the bundled placeholder images by filename."""

    def __init__(self, directory: Path | str):
        self._directory = Path(directory)
        for name in (QUESTION_MARK_ICON, VIDEO_PLAY_ICON):
            if not self.path(name).is_file():
                raise FileNotFoundError(f"Missing asset {name} in {self._directory}")

    def path(self, name: str) -> Path:
        return self._directory / name

    def file(self, name: str) -> discord.File:
        return discord.File(self.path(name), filename=name)
