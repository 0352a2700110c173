# ABOUTME: Shared pytest fixtures for all test modules.
# ABOUTME: Provides a recording fake room channel, mock narrator conversation, mock skybox generator and narrative helpers.

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from gamebot.channels.events import EventEmitter
from gamebot.models.messages import RoomEvent
from gamebot.orchestration.state_machine import GameSession


# --- Helper Functions ---

def make_narrative(
    scene: str = "forest",
    prompt: str = "You stand at the edge of a dark forest.",
    backdrop: str = "tall pines under a grey sky",
    options: dict[str, str] | None = None,
    weather: str = "Clear",
    time: Any = 12,
    state: str = "started",
    genre: str = "fantasy",
    **extra: Any
) -> str:
    """Helper to create a narrator reply in the JSON protocol"""
    return json.dumps({
        "scene": scene,
        "prompt": prompt,
        "backdrop": backdrop,
        "options": options or {
            "A": "Go north",
            "B": "Climb a tree",
            "C": "Light a fire",
            "D": "Turn back",
        },
        "weather": weather,
        "time": time,
        "state": state,
        "type": genre,
        **extra
    })


def command_args(channel: "FakeRoomChannel", kind: str) -> list[list[Any]]:
    """All published `game` command args of the given type"""
    return [args for args in channel.commands if args and args[0] == kind]


class FakeRoomChannel(EventEmitter):
    """Room channel double recording every published command"""

    def __init__(self, hub_id: str = "hub_001", users: list[str] | None = None, names: dict[str, str] | None = None):
        super().__init__()
        self.hub_id = hub_id
        self.users = list(users or [])
        self.names = dict(names or {})
        self.sent: list[tuple[str, dict]] = []
        self.closed = False

    @property
    def commands(self) -> list[list[Any]]:
        return [body["args"] for _, body in self.sent]

    def send_command(self, sender: str, body: dict | None) -> None:
        if body:
            self.sent.append((sender, body))

    def get_name(self, session_id: str) -> str | None:
        return self.names.get(session_id)

    def get_users(self, session_id: str) -> dict[str, dict]:
        return {
            user_id: {"metas": [{"presence": "room", "profile": {"displayName": self.names.get(user_id)}}]}
            for user_id in self.users
            if user_id != session_id
        }

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.emit("disconnect", RoomEvent(hub_id=self.hub_id, channel=self))


# --- Collaborator Fixtures ---

@pytest.fixture
def fake_channel() -> FakeRoomChannel:
    """Room with two players (the bot's own id is "bot_001")"""
    return FakeRoomChannel(
        users=["bot_001", "p1", "p2"],
        names={"bot_001": "GameBot", "p1": "Alice", "p2": "Bob"},
    )


@pytest.fixture
def mock_conversation():
    """Mock narrator conversation returning a structured scene by default"""
    conversation = MagicMock()
    conversation.send = AsyncMock(return_value=make_narrative())
    conversation.clear = MagicMock()
    return conversation


@pytest.fixture
def mock_scene_generator():
    """Mock skybox generator completing immediately"""
    generator = MagicMock()
    generator.generate = AsyncMock(return_value="https://images.example/forest.jpg")
    generator.update = AsyncMock(return_value=[])
    generator.close = AsyncMock()
    return generator


@pytest.fixture
def game_session(fake_channel, mock_conversation, mock_scene_generator) -> GameSession:
    """Connected session for room hub_001 with a short republish delay"""
    session = GameSession(
        hub_id="hub_001",
        owner_id="bot_001",
        channel=fake_channel,
        conversation=mock_conversation,
        scenes=mock_scene_generator,
        republish_delay=0.01,
    )
    session.connect()
    return session
