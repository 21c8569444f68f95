"""Tests for poll parsing, rendering and vote enforcement."""

import asyncio

import discord
import pytest
from fakes import (
    FakeChannel,
    FakeClient,
    FakeMessage,
    FakeReaction,
    FakeUser,
    http_error,
    make_engine,
    make_payload,
)

from beacon.models.guild import PollOption, PollPhase, PollRecord
from beacon.services.poll_renderer import render_option_line, render_poll_embed, strip_tally
from beacon.services.polls import (
    DEFAULT_MAX_CHOICES,
    PollMetadataError,
    PollOutcome,
    parse_max_choices,
    parse_options,
    parse_required_role,
)

GUILD_ID = 1
POLL_CHANNEL = 300
ONE = "1\ufe0f\u20e3"
TWO = "2\ufe0f\u20e3"
THREE = "3\ufe0f\u20e3"
TEN = "\U0001f51f"


def poll_embed(phase: str = "Beacon Poll", role: str = "`None`", limit: str = "`Unlimited`"):
    return discord.Embed.from_dict(
        {
            "author": {"name": phase},
            "title": "Lunch?",
            "description": f"{ONE} Pizza\n{TWO} Sushi\n{THREE} Tacos",
            "fields": [
                {"name": "Ends", "value": "<t:1714564800:R>"},
                {"name": "Requirements", "value": f"Required Role: {role}\nMax Choices: {limit}"},
            ],
        }
    )


class PollScenario:
    def __init__(self, member: FakeUser, **embed_options):
        self.channel = FakeChannel(POLL_CHANNEL)
        self.client = FakeClient(self.channel)
        self.engine, self.store = make_engine(self.client)
        self.bot = self.client.user
        self.member = member
        self.reactions = {
            glyph: FakeReaction(glyph, [self.bot], me=True) for glyph in (ONE, TWO, THREE)
        }
        self.message = self.channel.add(
            FakeMessage(
                self.channel,
                author=self.bot,
                embeds=[poll_embed(**embed_options)],
                reactions=list(self.reactions.values()),
            )
        )

    def vote(self, *glyphs: str) -> None:
        for glyph in glyphs:
            self.reactions[glyph]._users.append(self.member)

    def handle(self, glyph: str):
        payload = make_payload(self.message, discord.PartialEmoji(name=glyph), self.member, GUILD_ID)
        return asyncio.run(self.engine.handle_reaction_add(payload))

    def stored_record(self) -> PollRecord:
        config = asyncio.run(self.store.find_one(GUILD_ID))
        return config.polls[str(self.message.id)]


class TestPollParsing:
    """Test suite for reading text-rendered poll metadata."""

    def test_options_from_description(self):
        description = f"{ONE} Pizza\n{TWO} Sushi · **3** votes (75%)\nnot an option\n{TEN} Salad"
        options = parse_options(description)
        assert [(option.emoji, option.label) for option in options] == [
            (ONE, "Pizza"),
            (TWO, "Sushi"),
            (TEN, "Salad"),
        ]

    def test_option_needs_a_label(self):
        assert parse_options(f"{ONE}\n{TWO} Sushi") == [PollOption(emoji=TWO, label="Sushi")]

    def test_required_role(self):
        assert parse_required_role("Required Role: `None`\nMax Choices: 2") is None
        assert parse_required_role("Required Role: None\nMax Choices: 2") is None
        assert parse_required_role("Required Role: <@&555>\nMax Choices: 2") == 555

    def test_unreadable_role_raises(self):
        with pytest.raises(PollMetadataError):
            parse_required_role("Required Role: somebody")

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Required Role: `None`\nMax Choices: `Unlimited`", None),
            ("Required Role: <@&555>\nMax Choices: **2**", 2),
            ("Required Role: <@&555>\nMax Choices: lots", DEFAULT_MAX_CHOICES),
            ("Max Choices: 0", DEFAULT_MAX_CHOICES),
        ],
    )
    def test_max_choices(self, value, expected):
        assert parse_max_choices(value) == expected


class TestPollRenderer:
    """Test suite for re-rendering tallies onto the poll embed."""

    def test_option_line_round_trips_label(self):
        line = render_option_line(PollOption(emoji=ONE, label="Pizza", votes=1), total=4)
        assert line == f"{ONE} Pizza · **1** vote (25%)"
        assert strip_tally(line[len(ONE):]) == "Pizza"

    def test_render_keeps_unrelated_parts(self):
        record = PollRecord(
            message_id=1,
            channel_id=POLL_CHANNEL,
            options=[PollOption(emoji=ONE, label="Pizza", votes=2)],
            required_role_id=555,
            max_choices=2,
        )
        base = poll_embed().to_dict()
        rendered = render_poll_embed(base, record, "Beacon")

        assert rendered["title"] == "Lunch?"
        assert rendered["fields"][0] == base["fields"][0]
        assert rendered["fields"][1]["value"] == "Required Role: <@&555>\nMax Choices: **2**"
        assert rendered["description"] == f"{ONE} Pizza · **2** votes (100%)"

    def test_ended_author(self):
        record = PollRecord(message_id=1, channel_id=POLL_CHANNEL, phase=PollPhase.ENDED)
        rendered = render_poll_embed({}, record, "Beacon")
        assert rendered["author"]["name"] == "Beacon Poll - Ended"


class TestPollVotes:
    """Test suite for poll vote enforcement through the engine."""

    def test_valid_vote_updates_tally(self):
        """An allowed vote re-renders the poll with the bot's seed excluded."""
        scenario = PollScenario(FakeUser(42))
        scenario.vote(ONE)

        result = scenario.handle(ONE)

        assert result.poll_outcome is PollOutcome.TALLIED
        description = scenario.message.embeds[0].description
        assert f"{ONE} Pizza · **1** vote (100%)" in description
        assert f"{TWO} Sushi · **0** votes (0%)" in description
        assert scenario.message.removed == []
        record = scenario.stored_record()
        assert [option.votes for option in record.options] == [1, 0, 0]

    def test_role_gate_retracts_all_votes(self):
        """A member without the required role loses every option reaction."""
        scenario = PollScenario(FakeUser(42), role="<@&555>")
        scenario.vote(ONE, TWO)

        result = scenario.handle(TWO)

        assert result.poll_outcome is PollOutcome.ROLE_DENIED
        assert sorted(scenario.message.removed) == sorted([(ONE, 42), (TWO, 42)])
        assert scenario.message.edits == []
        assert "<@&555>" in scenario.member.sent[0]["embed"].description

    def test_member_with_role_may_vote(self):
        scenario = PollScenario(FakeUser(42, roles=[555]), role="<@&555>")
        scenario.vote(ONE)
        assert scenario.handle(ONE).poll_outcome is PollOutcome.TALLIED

    def test_limit_rolls_back_every_choice(self):
        """Choosing a third option with a limit of two retracts all three."""
        scenario = PollScenario(FakeUser(42), limit="**2**")
        scenario.vote(ONE, TWO, THREE)

        result = scenario.handle(THREE)

        assert result.poll_outcome is PollOutcome.LIMIT_EXCEEDED
        assert len(scenario.message.removed) == 3
        assert all(reaction.count == 1 for reaction in scenario.reactions.values())
        assert "**2** options" in scenario.member.sent[0]["embed"].description
        assert scenario.message.edits == []

    def test_within_limit_is_accepted(self):
        scenario = PollScenario(FakeUser(42), limit="**2**")
        scenario.vote(ONE, TWO)
        assert scenario.handle(TWO).poll_outcome is PollOutcome.TALLIED

    def test_ended_poll_retracts_vote(self):
        """Votes on an ended poll are removed and never tallied."""
        scenario = PollScenario(FakeUser(42), phase="Beacon Poll - Ended")
        scenario.vote(TWO)

        result = scenario.handle(TWO)

        assert result.poll_outcome is PollOutcome.ENDED
        assert scenario.message.removed == [(TWO, 42)]
        assert scenario.message.edits == []
        assert "ended" in scenario.member.sent[0]["embed"].description
        assert scenario.stored_record().phase is PollPhase.ENDED

    def test_unseeded_option_is_ignored(self):
        """Reactions the bot did not seed are not treated as votes."""
        scenario = PollScenario(FakeUser(42))
        scenario.reactions[ONE].me = False
        scenario.reactions[ONE]._users = [scenario.member]

        result = scenario.handle(ONE)

        assert result.poll_outcome is PollOutcome.IGNORED
        assert scenario.message.edits == []

    def test_bot_seed_reaction_is_ignored(self):
        scenario = PollScenario(FakeUser(1, "Beacon", bot=True))
        assert scenario.handle(ONE).poll_outcome is PollOutcome.IGNORED

    def test_non_option_emoji_is_ignored(self):
        scenario = PollScenario(FakeUser(42))
        assert scenario.handle("🔥").poll_outcome is PollOutcome.IGNORED

    def test_unreadable_requirements_do_not_fail_the_event(self):
        scenario = PollScenario(FakeUser(42), role="someone")
        scenario.vote(ONE)

        result = scenario.handle(ONE)

        assert result.poll_outcome is PollOutcome.IGNORED
        assert scenario.message.removed == []
        assert scenario.message.edits == []

    def test_plain_message_is_not_a_poll(self):
        scenario = PollScenario(FakeUser(42))
        scenario.message.embeds = [discord.Embed(title="Announcement")]
        scenario.vote(ONE)
        assert scenario.handle(ONE).poll_outcome is None

    def test_plain_none_role_is_unrestricted(self):
        scenario = PollScenario(FakeUser(42), role="None")
        scenario.vote(ONE)

        assert scenario.handle(ONE).poll_outcome is PollOutcome.TALLIED
        assert scenario.stored_record().required_role_id is None

    def test_undeliverable_notice_still_retracts(self):
        """A member with closed DMs still has the vote on an ended poll removed."""
        scenario = PollScenario(FakeUser(42), phase="Beacon Poll - Ended")
        scenario.member.send_error = http_error(403, "Forbidden")
        scenario.vote(TWO)

        result = scenario.handle(TWO)

        assert result.poll_outcome is PollOutcome.ENDED
        assert scenario.message.removed == [(TWO, 42)]
        assert scenario.member.sent == []

    def test_failed_rerender_keeps_stored_tally(self):
        scenario = PollScenario(FakeUser(42))
        scenario.message.edit_error = http_error()
        scenario.vote(ONE)

        result = scenario.handle(ONE)

        assert result.poll_outcome is PollOutcome.TALLIED
        assert [option.votes for option in scenario.stored_record().options] == [1, 0, 0]
