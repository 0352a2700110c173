# ABOUTME: Unit tests for the GameSession state machine.
# ABOUTME: Covers lifecycle transitions, turn binding, debounced republish, request ordering and stale result handling.

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from gamebot.agents.exceptions import LLMCallFailed
from gamebot.channels.exceptions import SceneGenerationFailed
from gamebot.channels.scene_generator import SkyboxGenerator
from gamebot.config.prompts import NEW_GAME_MESSAGE, WELCOME_MESSAGE
from gamebot.models.game_state import Lifecycle
from gamebot.models.results import BannerResult, ErrorResult, OptionsResult, TextResult
from gamebot.orchestration.exceptions import UnknownGameType
from gamebot.orchestration.state_machine import GameSession
from tests.conftest import command_args, make_narrative


class TestConnect:
    """Test suite for connecting a session to its room"""

    def test_connect_announces_bot_and_banner(self, game_session, fake_channel):
        """Test connect publishes the connect notice followed by the banner"""
        assert game_session.lifecycle is Lifecycle.CONNECTED
        assert fake_channel.commands == [["connect"], ["start", WELCOME_MESSAGE]]

    def test_commands_are_sent_as_bot(self, game_session, fake_channel):
        """Test outbound commands use the game command envelope"""
        sender, body = fake_channel.sent[0]
        assert sender == "GameBot"
        assert body == {"command": "game", "args": ["connect"]}


class TestStart:
    """Test suite for starting a game"""

    @pytest.mark.asyncio
    async def test_start_binds_first_player(self, game_session, fake_channel):
        """Test start publishes the first scene with the first roster member to play"""
        await game_session.start("lotr", ["p1", "p2"])

        assert game_session.lifecycle is Lifecycle.STARTED
        assert game_session.roster == ("p1", "p2")
        assert game_session.turn_index == 0
        assert ["text", NEW_GAME_MESSAGE] in fake_channel.commands

        options = command_args(fake_channel, "options")
        assert len(options) == 1
        assert options[0][1]["player"] == "p1"
        assert options[0][1]["scene"] == "forest"

    @pytest.mark.asyncio
    async def test_start_sends_priming_messages(self, game_session, mock_conversation):
        """Test start primes the narrator with theme, rules and players"""
        await game_session.start("lotr", ["p1", "p2"])

        session_id, messages = mock_conversation.send.await_args.args
        assert session_id == "bot_001"
        assert [m.role for m in messages] == ["system", "user", "user"]
        assert "Lord Of The Rings" in messages[0].content
        assert "ECMA-404" in messages[1].content
        assert messages[2].content == "Start. Players: p1, p2"

    @pytest.mark.asyncio
    async def test_start_excludes_owner_from_roster(self, game_session):
        """Test the bot's own id never joins the roster"""
        await game_session.start("lotr", ["bot_001", "p1"])

        assert game_session.roster == ("p1",)

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, game_session, fake_channel, mock_conversation):
        """Test a second start while a game runs is ignored"""
        await game_session.start("lotr", ["p1", "p2"])
        await game_session.start("hp", ["p1"])

        assert mock_conversation.send.await_count == 1
        assert game_session.theme.key == "lotr"
        assert game_session.roster == ("p1", "p2")
        assert fake_channel.commands.count(["text", NEW_GAME_MESSAGE]) == 1

    @pytest.mark.asyncio
    async def test_unknown_game_type_rejected(self, game_session, mock_conversation):
        """Test an unknown theme leaves the session untouched"""
        with pytest.raises(UnknownGameType):
            await game_session.start("cj", ["p1"])

        assert game_session.lifecycle is Lifecycle.CONNECTED
        mock_conversation.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_requests_scene_image(self, game_session, fake_channel, mock_scene_generator):
        """Test the scene skybox is generated with the theme's style and cached"""
        await game_session.start("lotr", ["p1"])
        await game_session._image_task

        mock_scene_generator.generate.assert_awaited_once_with(
            "Lord Of The Rings. forest. tall pines under a grey sky", 2
        )
        assert ["skybox", "https://images.example/forest.jpg"] in fake_channel.commands
        assert game_session.scene_cache.get("forest") == "https://images.example/forest.jpg"

    @pytest.mark.asyncio
    async def test_published_payload_uses_display_names(self, game_session, fake_channel, mock_conversation):
        """Test participant ids are replaced by names in the published copy only"""
        mock_conversation.send.return_value = make_narrative(
            prompt="p1 and p2 reach the gates",
            options={"A": "p2 knocks", "B": "Wait", "C": "Leave", "D": "Shout"},
        )

        await game_session.start("lotr", ["p1", "p2"])

        published = command_args(fake_channel, "options")[-1][1]
        assert published["prompt"] == "Alice and Bob reach the gates"
        assert published["options"]["A"] == "Bob knocks"
        assert published["player"] == "p1"
        assert game_session.last_result.payload.prompt == "p1 and p2 reach the gates"


class TestPlayerActions:
    """Test suite for option and msg"""

    @pytest.mark.asyncio
    async def test_option_advances_turn(self, game_session, fake_channel, mock_conversation):
        """Test an option answered with a scene passes the turn to the next player"""
        await game_session.start("lotr", ["p1", "p2"])
        mock_conversation.send.return_value = make_narrative(scene="river")

        await game_session.option("p1", "A")

        assert game_session.turn_index == 1
        assert game_session.last_result.payload.player == "p2"
        assert ["text", "Alice: Go north"] in fake_channel.commands

        message = mock_conversation.send.await_args.args[1]
        assert message.role == "user"
        assert message.content == "p1: A"

    @pytest.mark.asyncio
    async def test_turn_wraps_around(self, game_session):
        """Test the turn returns to the first player after the last"""
        await game_session.start("lotr", ["p1", "p2"])

        await game_session.option("p1", "A")
        await game_session.option("p2", "B")

        assert game_session.turn_index == 0
        assert game_session.last_result.payload.player == "p1"

    @pytest.mark.asyncio
    async def test_msg_sends_free_text(self, game_session, fake_channel, mock_conversation):
        """Test msg announces and forwards free text"""
        await game_session.start("lotr", ["p1", "p2"])

        await game_session.msg("p1", "I look for tracks")

        assert ["text", "Alice: I look for tracks"] in fake_channel.commands
        assert mock_conversation.send.await_args.args[1].content == "p1: I look for tracks"
        assert game_session.turn_index == 1

    @pytest.mark.asyncio
    async def test_action_before_start_ignored(self, game_session, fake_channel, mock_conversation):
        """Test actions outside a running game change nothing"""
        before = list(fake_channel.commands)

        await game_session.option("p1", "A")
        await game_session.msg("p1", "hello")

        assert fake_channel.commands == before
        mock_conversation.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_publishes_error_and_keeps_game(self, game_session, fake_channel, mock_conversation):
        """Test a narrator failure becomes an error result without ending the game"""
        await game_session.start("lotr", ["p1", "p2"])
        mock_conversation.send.side_effect = LLMCallFailed("Rate limit reached")

        await game_session.option("p1", "A")

        assert isinstance(game_session.last_result, ErrorResult)
        assert fake_channel.commands[-1] == ["error", "Rate limit reached"]
        assert game_session.lifecycle is Lifecycle.STARTED
        assert game_session.turn_index == 0

    @pytest.mark.asyncio
    async def test_plain_text_reply_keeps_turn(self, game_session, fake_channel, mock_conversation):
        """Test a non-JSON reply is published as text without consuming a turn"""
        await game_session.start("lotr", ["p1", "p2"])
        mock_conversation.send.return_value = "The wind howls."

        await game_session.option("p1", "A")

        assert isinstance(game_session.last_result, TextResult)
        assert fake_channel.commands[-1] == ["text", "The wind howls."]
        assert game_session.turn_index == 0

    @pytest.mark.asyncio
    async def test_cached_scene_not_regenerated(self, game_session, fake_channel, mock_scene_generator):
        """Test a scene seen before reuses its cached skybox"""
        await game_session.start("lotr", ["p1", "p2"])
        await game_session._image_task

        await game_session.option("p1", "A")

        assert mock_scene_generator.generate.await_count == 1
        assert len(command_args(fake_channel, "skybox")) == 2

    @pytest.mark.asyncio
    async def test_scene_failure_is_not_fatal(self, game_session, fake_channel, mock_scene_generator):
        """Test a failed skybox is logged and dropped"""
        mock_scene_generator.generate.side_effect = SceneGenerationFailed("style unavailable")

        await game_session.start("lotr", ["p1"])
        await game_session._image_task

        assert command_args(fake_channel, "skybox") == []
        assert game_session.lifecycle is Lifecycle.STARTED

    @pytest.mark.asyncio
    async def test_malformed_skybox_reply_is_not_fatal(self, fake_channel, mock_conversation):
        """Test a non-JSON skybox reply is logged and dropped by the image task"""
        def blockade(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(200, json={"success": True})

        http = httpx.AsyncClient(base_url="https://backend.example/api/v1", transport=httpx.MockTransport(blockade))
        session = GameSession(
            hub_id="hub_001",
            owner_id="bot_001",
            channel=fake_channel,
            conversation=mock_conversation,
            scenes=SkyboxGenerator("key", MagicMock(), http_client=http),
        )
        session.connect()

        await session.start("lotr", ["p1"])
        await session._image_task

        assert session._image_task.exception() is None
        assert command_args(fake_channel, "skybox") == []
        assert session.lifecycle is Lifecycle.STARTED
        await http.aclose()


class TestConcurrency:
    """Test suite for call ordering and stale results"""

    @pytest.mark.asyncio
    async def test_replies_applied_in_request_order(self, game_session, fake_channel, mock_conversation):
        """Test a slow first reply is still applied before a fast second one"""
        await game_session.start("lotr", ["p1", "p2"])
        gate = asyncio.Event()

        async def narrate(session_id, message):
            if message.content.startswith("p1"):
                await gate.wait()
                return make_narrative(scene="first")
            return make_narrative(scene="second")

        mock_conversation.send.side_effect = narrate

        first = asyncio.create_task(game_session.option("p1", "A"))
        await asyncio.sleep(0)
        second = asyncio.create_task(game_session.option("p2", "B"))
        await asyncio.sleep(0)
        assert game_session.call_in_flight

        gate.set()
        await asyncio.gather(first, second)

        options = command_args(fake_channel, "options")
        assert [args[1]["scene"] for args in options[-2:]] == ["first", "second"]
        assert [args[1]["player"] for args in options[-2:]] == ["p2", "p1"]
        assert game_session.last_result.payload.scene == "second"

    @pytest.mark.asyncio
    async def test_reply_after_end_is_discarded(self, game_session, fake_channel, mock_conversation):
        """Test replies to requests made before End never overwrite the banner"""
        await game_session.start("lotr", ["p1", "p2"])
        gate = asyncio.Event()

        async def narrate(session_id, message):
            await gate.wait()
            return make_narrative(scene="late")

        mock_conversation.send.side_effect = narrate

        first = asyncio.create_task(game_session.option("p1", "A"))
        await asyncio.sleep(0)
        queued = asyncio.create_task(game_session.option("p2", "B"))
        await asyncio.sleep(0)

        await game_session.end()
        gate.set()
        await asyncio.gather(first, queued)

        assert isinstance(game_session.last_result, BannerResult)
        assert len(command_args(fake_channel, "options")) == 1
        assert mock_conversation.send.await_count == 2

    @pytest.mark.asyncio
    async def test_late_image_after_end_ignored(self, game_session, fake_channel, mock_scene_generator):
        """Test a skybox completing after End is neither cached nor published"""
        image_gate = asyncio.Event()

        async def generate(prompt, style):
            await image_gate.wait()
            return "https://images.example/late.jpg"

        mock_scene_generator.generate.side_effect = generate

        await game_session.start("lotr", ["p1"])
        await game_session.end()
        image_gate.set()
        await game_session._image_task

        assert command_args(fake_channel, "skybox") == []
        assert len(game_session.scene_cache) == 0


class TestRoster:
    """Test suite for join and leave"""

    @pytest.mark.asyncio
    async def test_join_before_start_shows_banner(self, game_session, fake_channel):
        """Test a join outside a game republishes the banner"""
        await game_session.join("p3")

        assert fake_channel.commands[-2:] == [["connect"], ["start", WELCOME_MESSAGE]]
        assert game_session.roster == ()

    @pytest.mark.asyncio
    async def test_join_mid_game(self, game_session, fake_channel):
        """Test a join adds the player, announces it and republishes after the delay"""
        await game_session.start("lotr", ["p1"])
        fake_channel.names["p2"] = "Bob"

        await game_session.join("p2")
        await asyncio.sleep(0.05)

        assert game_session.roster == ("p1", "p2")
        assert ["text", "Bob has joined the game"] in fake_channel.commands
        assert len(command_args(fake_channel, "options")) == 2

    @pytest.mark.asyncio
    async def test_join_falls_back_to_presence_name(self, game_session, fake_channel):
        """Test the display name from the join event is used when presence has none"""
        await game_session.start("lotr", ["p1"])

        await game_session.join("p9", "Zed")

        assert ["text", "Zed has joined the game"] in fake_channel.commands

    @pytest.mark.asyncio
    async def test_duplicate_and_owner_joins_ignored(self, game_session, fake_channel):
        """Test joins of the owner or a roster member change nothing"""
        await game_session.start("lotr", ["p1", "p2"])

        await game_session.join("p1")
        await game_session.join("bot_001")

        assert game_session.roster == ("p1", "p2")
        assert not any(args[0] == "text" and "joined" in args[1] for args in fake_channel.commands)

    @pytest.mark.asyncio
    async def test_rapid_joins_republish_once(self, game_session, fake_channel):
        """Test joins within the debounce window cause a single republish"""
        await game_session.start("lotr", ["p1"])

        await game_session.join("p3")
        await game_session.join("p4")
        await asyncio.sleep(0.05)

        assert game_session.roster == ("p1", "p3", "p4")
        assert len(command_args(fake_channel, "options")) == 2

    @pytest.mark.asyncio
    async def test_join_during_call_does_not_republish(self, game_session, fake_channel, mock_conversation):
        """Test no republish is scheduled while a narrative call is in flight"""
        await game_session.start("lotr", ["p1", "p2"])
        gate = asyncio.Event()

        async def narrate(session_id, message):
            await gate.wait()
            return make_narrative(scene="river")

        mock_conversation.send.side_effect = narrate

        action = asyncio.create_task(game_session.option("p1", "A"))
        await asyncio.sleep(0)
        await game_session.join("p3")

        assert game_session._republish_task is None

        gate.set()
        await action
        assert game_session.roster == ("p1", "p2", "p3")
        assert len(command_args(fake_channel, "options")) == 2

    @pytest.mark.asyncio
    async def test_leave_of_turn_holder_passes_turn(self, game_session, fake_channel):
        """Test the turn passes to the next player when its holder leaves"""
        fake_channel.users.append("p3")
        await game_session.start("lotr", ["p1", "p2", "p3"])
        await game_session.option("p1", "A")
        assert game_session.turn_index == 1

        await game_session.leave("p2")
        await asyncio.sleep(0.05)

        assert game_session.roster == ("p1", "p3")
        assert game_session.turn_index == 1
        assert ["text", "Bob has left the game"] in fake_channel.commands
        assert command_args(fake_channel, "options")[-1][1]["player"] == "p3"
        assert game_session.last_result.payload.player == "p3"

    @pytest.mark.asyncio
    async def test_actor_leaving_mid_call_does_not_skip_successor(self, game_session, fake_channel, mock_conversation):
        """Test the reply to a player who left binds the player the turn passed to"""
        fake_channel.users.append("p3")
        await game_session.start("lotr", ["p1", "p2", "p3"])
        gate = asyncio.Event()

        async def narrate(session_id, message):
            await gate.wait()
            return make_narrative(scene="river")

        mock_conversation.send.side_effect = narrate

        action = asyncio.create_task(game_session.option("p1", "A"))
        await asyncio.sleep(0)
        await game_session.leave("p1")
        gate.set()
        await action

        assert game_session.roster == ("p2", "p3")
        assert game_session.turn_index == 0
        assert game_session.last_result.payload.player == "p2"
        assert command_args(fake_channel, "options")[-1][1]["player"] == "p2"

    @pytest.mark.asyncio
    async def test_leave_of_unknown_participant_ignored(self, game_session, fake_channel):
        """Test a leave of someone outside the roster publishes nothing"""
        await game_session.start("lotr", ["p1"])
        before = list(fake_channel.commands)

        await game_session.leave("stranger")

        assert fake_channel.commands == before

    @pytest.mark.asyncio
    async def test_last_leave_ends_game(self, game_session, fake_channel, mock_conversation):
        """Test the game ends when the roster empties"""
        await game_session.start("lotr", ["p1"])

        await game_session.leave("p1")

        assert game_session.lifecycle is Lifecycle.ENDED
        assert fake_channel.commands[-1] == ["start", WELCOME_MESSAGE]
        mock_conversation.clear.assert_called_once()


class TestEndAndDisconnect:
    """Test suite for end and disconnect"""

    @pytest.mark.asyncio
    async def test_end_resets_game(self, game_session, fake_channel, mock_conversation):
        """Test End clears scenes, roster and transcript and shows the banner"""
        await game_session.start("lotr", ["p1", "p2"])
        await game_session._image_task

        await game_session.end()

        assert game_session.lifecycle is Lifecycle.ENDED
        assert len(game_session.scene_cache) == 0
        assert game_session.roster == ()
        assert game_session.turn_index == 0
        assert isinstance(game_session.last_result, BannerResult)
        assert fake_channel.commands[-1] == ["start", WELCOME_MESSAGE]
        mock_conversation.clear.assert_called_once()

    @pytest.mark.asyncio
    async def test_end_when_not_started_ignored(self, game_session, fake_channel, mock_conversation):
        """Test End outside a game publishes nothing"""
        before = list(fake_channel.commands)

        await game_session.end()

        assert fake_channel.commands == before
        mock_conversation.clear.assert_not_called()

    @pytest.mark.asyncio
    async def test_new_game_after_end(self, game_session, mock_conversation):
        """Test a game can be started again after ending"""
        await game_session.start("lotr", ["p1"])
        await game_session.end()

        await game_session.start("sw", ["p1", "p2"])

        assert game_session.lifecycle is Lifecycle.STARTED
        assert game_session.theme.key == "sw"
        assert isinstance(game_session.last_result, OptionsResult)

    @pytest.mark.asyncio
    async def test_disconnect_publishes_and_closes(self, game_session, fake_channel):
        """Test Disconnect republishes the last result and releases the channel"""
        await game_session.disconnect()

        assert game_session.lifecycle is Lifecycle.DISCONNECTED
        assert fake_channel.commands[-1] == ["start", WELCOME_MESSAGE]
        assert fake_channel.closed

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, game_session, fake_channel):
        """Test a second Disconnect does nothing"""
        await game_session.disconnect()
        count = len(fake_channel.commands)

        await game_session.disconnect()

        assert len(fake_channel.commands) == count
