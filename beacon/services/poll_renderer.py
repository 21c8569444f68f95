"""Renders poll state back onto the poll message embed."""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, List

from ..models.guild import PollOption, PollPhase, PollRecord
from ..utils.discord import add_suffix

REQUIREMENTS_FIELD = "Requirements"
TALLY_SUFFIX = re.compile(r"\s+·\s+\*\*\d+\*\*\s+votes?\s+\(\d+%\)\s*$")


def poll_author_name(bot_name: str, phase: PollPhase) -> str:
    if phase is PollPhase.ENDED:
        return f"{bot_name} Poll - Ended"
    return f"{bot_name} Poll"


def strip_tally(line: str) -> str:
    return TALLY_SUFFIX.sub("", line).strip()


def render_option_line(option: PollOption, total: int) -> str:
    percent = round(option.votes * 100 / total) if total else 0
    return (
        f"{option.emoji} {option.label} · **{option.votes}** "
        f"vote{add_suffix(option.votes)} ({percent}%)"
    )


def render_description(options: List[PollOption]) -> str:
    total = sum(option.votes for option in options)
    return "\n".join(render_option_line(option, total) for option in options)


def render_requirements(record: PollRecord) -> str:
    role = f"<@&{record.required_role_id}>" if record.required_role_id else "`None`"
    limit = f"**{record.max_choices}**" if record.max_choices is not None else "`Unlimited`"
    return f"Required Role: {role}\nMax Choices: {limit}"


def render_poll_embed(base: Dict[str, Any], record: PollRecord, bot_name: str) -> Dict[str, Any]:
    """Return ``base`` with author, description and requirements rewritten from ``record``."""

    embed = copy.deepcopy(base)
    author = embed.setdefault("author", {})
    author["name"] = poll_author_name(bot_name, record.phase)
    if record.question and not embed.get("title"):
        embed["title"] = record.question
    embed["description"] = render_description(record.options)

    fields = embed.setdefault("fields", [])
    requirements = {"name": REQUIREMENTS_FIELD, "value": render_requirements(record), "inline": False}
    for index, existing in enumerate(fields):
        if existing.get("name") == REQUIREMENTS_FIELD:
            fields[index] = {**existing, "value": requirements["value"]}
            break
    else:
        if len(fields) > 1:
            fields[1] = {**fields[1], "value": requirements["value"]}
        else:
            fields.append(requirements)
    return embed
