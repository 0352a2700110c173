# ABOUTME: Routes room channel events to the per-room GameSession and owns the room -> session registry.
# ABOUTME: RoomConnector opens the Reticulum socket and joins the room channel for the HTTP control surface.

from collections.abc import Callable
from typing import Any

from loguru import logger
from pydantic import ValidationError

from gamebot.channels.exceptions import ChannelJoinFailed
from gamebot.channels.reticulum import ReticulumClient
from gamebot.models.messages import RoomCommand, RoomEvent
from gamebot.orchestration.exceptions import (
    InvalidCommand,
    SessionExists,
    SessionNotFound,
    UnknownGameType,
)
from gamebot.orchestration.state_machine import Conversation, GameSession, SceneGenerator

ROOM_PRESENCE = "room"
LOBBY_PRESENCE = "lobby"
GAME_COMMAND = "game"


class RoomRouter:
    """
    Registry of active sessions keyed by hub id.

    A session is inserted when its channel reports "connect" and removed on
    "disconnect". All inbound room events are dispatched from here.
    """

    def __init__(
        self,
        conversation_factory: Callable[[], Conversation],
        scene_generator: SceneGenerator,
        bot_name: str = "GameBot",
        republish_delay: float = 0.5,
    ):
        """
        Initialize the router.

        Args:
            conversation_factory: Builds a fresh narrator conversation per session
            scene_generator: Skybox generator shared by all sessions
            bot_name: Sender name on outbound commands
            republish_delay: Debounce delay handed to every session
        """
        self.conversation_factory = conversation_factory
        self.scene_generator = scene_generator
        self.bot_name = bot_name
        self.republish_delay = republish_delay
        self.sessions: dict[str, GameSession] = {}

    def rooms(self) -> list[str]:
        return list(self.sessions)

    def has_room(self, hub_id: str) -> bool:
        return hub_id in self.sessions

    def get(self, hub_id: str) -> GameSession:
        """
        Raises:
            SessionNotFound: When no session exists for `hub_id`
        """
        session = self.sessions.get(hub_id)
        if session is None:
            raise SessionNotFound(f"No session for room {hub_id}")
        return session

    def attach(self, channel: Any) -> None:
        """Subscribe the router to a room channel's events"""
        channel.on("connect", self.on_connect)
        channel.on("disconnect", self.on_disconnect)
        channel.on("join", self.on_join)
        channel.on("moved", self.on_moved)
        channel.on("leave", self.on_leave)
        channel.on("message", self.on_message)

    async def disconnect(self, hub_id: str) -> None:
        """
        Disconnect the session of a room and drop it from the registry.

        Raises:
            SessionNotFound: When no session exists for `hub_id`
        """
        session = self.get(hub_id)
        del self.sessions[hub_id]
        await session.disconnect()

    # ------------------------------------------------------------------
    # Channel event handlers
    # ------------------------------------------------------------------

    def on_connect(self, event: RoomEvent) -> None:
        # Synchronous so the session exists before any other event is handled
        if self.sessions.get(event.hub_id) is not None:
            logger.warning(f"Replacing existing session for room {event.hub_id}")

        session = GameSession(
            hub_id=event.hub_id,
            owner_id=event.session_id or "",
            channel=event.channel,
            conversation=self.conversation_factory(),
            scenes=self.scene_generator,
            bot_name=self.bot_name,
            republish_delay=self.republish_delay,
        )
        self.sessions[event.hub_id] = session
        logger.info(f"Session created for room {event.hub_id} (owner {event.session_id})")
        session.connect()

    async def on_disconnect(self, event: RoomEvent) -> None:
        session = self.sessions.get(event.hub_id)
        if session is None:
            return
        if event.channel is not None and session.channel is not event.channel:
            return  # a newer channel already owns this room
        del self.sessions[event.hub_id]
        logger.info(f"Session removed for room {event.hub_id}")
        await session.disconnect()

    async def on_join(self, event: RoomEvent) -> None:
        session = self._session_for(event)
        if session is None or event.presence != ROOM_PRESENCE:
            return
        await session.join(event.session_id, event.display_name)

    async def on_moved(self, event: RoomEvent) -> None:
        session = self._session_for(event)
        if (
            session is None
            or event.presence != ROOM_PRESENCE
            or event.previous_presence != LOBBY_PRESENCE
        ):
            return
        await session.join(event.session_id, event.display_name)

    async def on_leave(self, event: RoomEvent) -> None:
        session = self._session_for(event)
        if session is None:
            return
        await session.leave(event.session_id, event.display_name)

    async def on_message(self, event: RoomEvent) -> None:
        session = self._session_for(event)
        if session is None:
            return

        try:
            name, args = parse_game_command(event.body)
        except InvalidCommand as e:
            logger.debug(f"Ignoring message in room {event.hub_id}: {e}")
            return

        try:
            await self._dispatch(session, event.session_id, name, args)
        except (InvalidCommand, UnknownGameType) as e:
            logger.warning(f"Rejected '{name}' from {event.session_id} in room {event.hub_id}: {e}")

    async def _dispatch(self, session: GameSession, participant_id: str, name: str, args: list[str]) -> None:
        if name == "start":
            if len(args) != 1:
                raise InvalidCommand("start requires exactly 1 parameter")
            participant_ids = list(session.channel.get_users(session.owner_id))
            logger.info(f"start {args[0]} [{','.join(participant_ids)}]")
            await session.start(args[0], participant_ids)
        elif name == "option":
            if not 1 <= len(args) <= 2:
                raise InvalidCommand("option requires an option key")
            logger.info(f"option {participant_id} {args[0]}")
            await session.option(participant_id, args[0])
        elif name == "end":
            logger.info("end")
            await session.end()
        elif name == "msg":
            text = " ".join(args)
            logger.info(f"msg {participant_id} {text}")
            await session.msg(participant_id, text)
        else:
            raise InvalidCommand(f"Unknown game command: {name}")

    def _session_for(self, event: RoomEvent) -> GameSession | None:
        session = self.sessions.get(event.hub_id)
        if session is None:
            logger.debug(f"No session for room {event.hub_id}")
            return None
        if not event.session_id or event.session_id == session.owner_id:
            return None
        return session


def parse_game_command(body: Any) -> tuple[str, list[str]]:
    """
    Extract the sub-command and its arguments from a room message body.

    Raises:
        InvalidCommand: When the body is not a `game` command with arguments
    """
    if not isinstance(body, dict):
        raise InvalidCommand("message body is not a command")
    try:
        command = RoomCommand.model_validate(body)
    except ValidationError as e:
        raise InvalidCommand(f"malformed command body: {e.error_count()} errors") from e

    if command.command != GAME_COMMAND:
        raise InvalidCommand(f"not a {GAME_COMMAND} command: {command.command}")
    if not command.args:
        raise InvalidCommand(f"{GAME_COMMAND} command without arguments")
    return command.args[0], command.args[1:]


class RoomConnector:
    """Joins rooms on request of the HTTP control surface"""

    def __init__(
        self,
        router: RoomRouter,
        bot_name: str = "GameBot",
        join_timeout: float = 10.0,
        heartbeat_interval: float = 30.0,
        client_factory: Callable[..., ReticulumClient] = ReticulumClient,
    ):
        self.router = router
        self.bot_name = bot_name
        self.join_timeout = join_timeout
        self.heartbeat_interval = heartbeat_interval
        self.client_factory = client_factory
        self.clients: dict[str, ReticulumClient] = {}

    async def connect(self, host: str, port: str | int | None, hub_id: str) -> None:
        """
        Open a socket to the Reticulum host and join the room's channel.

        Raises:
            SessionExists: When the room already has a session
            ChannelJoinFailed: When the socket or the channel join fails
        """
        if self.router.has_room(hub_id) or hub_id in self.clients:
            raise SessionExists(f"A connection for room {hub_id} already exists")

        hostname = f"{host}:{port}" if port else host
        client = self.client_factory(hostname, heartbeat_interval=self.heartbeat_interval)
        await client.connect()

        channel = client.channel_for_hub(hub_id, {"displayName": self.bot_name}, self.join_timeout)
        self.router.attach(channel)
        channel.on("disconnect", lambda event: self._release(hub_id, client))
        self.clients[hub_id] = client

        try:
            await channel.connect()
        except ChannelJoinFailed:
            logger.error(f"An error occurred when connecting to room {hub_id}")
            await self._release(hub_id, client)
            raise

    async def close(self) -> None:
        """Close every open socket"""
        for hub_id, client in list(self.clients.items()):
            await self._release(hub_id, client)

    async def _release(self, hub_id: str, client: ReticulumClient) -> None:
        if self.clients.get(hub_id) is client:
            del self.clients[hub_id]
        await client.close()
