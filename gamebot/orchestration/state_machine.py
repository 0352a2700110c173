# ABOUTME: Per-room game session state machine serializing player actions into one narrator conversation.
# ABOUTME: Owns lifecycle, roster/turn rotation, last result and scene cache; publishes results to the room.

import asyncio
from typing import Any, Protocol

from gamebot.agents.exceptions import LLMCallFailed
from gamebot.channels.exceptions import SceneGenerationFailed
from gamebot.config.prompts import (
    DEFAULT_THEME,
    GAME_THEMES,
    NEW_GAME_MESSAGE,
    WELCOME_MESSAGE,
    GameTheme,
    get_theme,
)
from gamebot.models.game_state import Lifecycle
from gamebot.models.messages import ChatMessage
from gamebot.models.results import (
    BannerResult,
    ErrorResult,
    GameResult,
    NarrativePayload,
    OptionsResult,
    ResultType,
    parse_narrative,
)
from gamebot.orchestration.exceptions import UnknownGameType
from gamebot.orchestration.scene_cache import SceneCache
from gamebot.orchestration.turn_tracker import TurnTracker
from gamebot.utils.logging import log_lifecycle_transition, log_session_event


class RoomChannel(Protocol):
    def send_command(self, sender: str, body: dict | None) -> None: ...
    def get_name(self, session_id: str) -> str | None: ...
    def get_users(self, session_id: str) -> dict[str, Any]: ...
    async def close(self) -> None: ...


class Conversation(Protocol):
    async def send(self, session_id: str, message: ChatMessage | list[ChatMessage]) -> str: ...
    def clear(self) -> None: ...


class SceneGenerator(Protocol):
    async def generate(self, prompt: str, style: Any) -> str: ...


class GameSession:
    """
    Game state for one room.

    All handlers run on one event loop. A handler mutates session state only
    before its first await or while holding the call permit, so the roster,
    turn index and last result never change under another handler's feet.

    Narrative calls go through a single call permit (FIFO), so replies are
    applied in the order their requests were made. Every End, Start and
    Disconnect bumps `epoch`; deferred work (queued actions, debounce
    timers, skybox completions) compares the epoch it captured with the
    current one and drops itself when the game it belonged to is gone.
    """

    def __init__(
        self,
        hub_id: str,
        owner_id: str,
        channel: RoomChannel,
        conversation: Conversation,
        scenes: SceneGenerator,
        themes: dict[str, GameTheme] | None = None,
        bot_name: str = "GameBot",
        republish_delay: float = 0.5,
    ):
        """
        Initialize a session in the Disconnected state.

        Args:
            hub_id: Room this session is bound to
            owner_id: The bot's own session id in the room (never in the roster)
            channel: Room channel to publish to
            conversation: Narrator conversation owned by this session
            scenes: Skybox generator shared by all sessions
            themes: Theme catalog (default: GAME_THEMES)
            bot_name: Sender name on outbound commands
            republish_delay: Debounce delay for join/leave republishes
        """
        self.hub_id = hub_id
        self.owner_id = owner_id
        self.channel = channel
        self.conversation = conversation
        self.scenes = scenes
        self.themes = themes or GAME_THEMES
        self.bot_name = bot_name
        self.republish_delay = republish_delay

        self.lifecycle = Lifecycle.DISCONNECTED
        self.theme: GameTheme = self.themes.get(DEFAULT_THEME) or next(iter(self.themes.values()))
        self.turns = TurnTracker()
        self.scene_cache = SceneCache()
        self.last_result: GameResult = BannerResult(text=WELCOME_MESSAGE)
        self.epoch = 0

        self._call_permit = asyncio.Lock()
        self._image_task: asyncio.Task | None = None
        self._image_scene: str | None = None
        self._republish_task: asyncio.Task | None = None
        self._released = False

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def roster(self) -> tuple[str, ...]:
        return self.turns.roster

    @property
    def turn_index(self) -> int:
        return self.turns.index

    @property
    def call_in_flight(self) -> bool:
        return self._call_permit.locked()

    def display_name(self, participant_id: str, fallback: str | None = None) -> str:
        return self.channel.get_name(participant_id) or fallback or participant_id

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Enter Connected, announce the bot and republish the last result"""
        self._command(ResultType.CONNECT.value)
        self._transition(Lifecycle.CONNECTED)
        self.process_response()

    async def start(self, game_type: str, participant_ids: list[str]) -> None:
        """
        Start a new game with the given participants.

        Ignored while a game is already running.

        Raises:
            UnknownGameType: When `game_type` is not in the theme catalog
        """
        if self.lifecycle is Lifecycle.STARTED:
            self._log("Start ignored: the game is already started", level="DEBUG")
            return

        theme = get_theme(game_type, self.themes)
        if theme is None:
            raise UnknownGameType(f"Unknown game type: {game_type}")

        self.text(NEW_GAME_MESSAGE)
        self.theme = theme
        self.turns.reset(pid for pid in participant_ids if pid != self.owner_id)
        self.epoch += 1
        self._transition(Lifecycle.STARTED, theme=theme.key, roster_size=len(self.turns))

        priming = [
            ChatMessage(role="system", content=theme.system),
            ChatMessage(role="user", content=theme.rules),
            ChatMessage(role="user", content=theme.priming_start(list(participant_ids))),
        ]
        await self._narrate(priming, self.epoch, actor=None)

    async def end(self) -> None:
        """End the running game and return to the startup banner"""
        if self.lifecycle is not Lifecycle.STARTED:
            self._log("End ignored: the game is not started", level="DEBUG")
            return

        self.epoch += 1
        self._cancel_republish()
        self.scene_cache.clear()
        self.conversation.clear()
        self.turns.clear()
        self.last_result = BannerResult(text=WELCOME_MESSAGE)
        self._transition(Lifecycle.ENDED)
        self.process_response()

    async def disconnect(self) -> None:
        """Enter Disconnected, publish, then release the room channel"""
        if self._released:
            return
        self._released = True

        self.epoch += 1
        self._cancel_republish()
        if self._image_task is not None:
            self._image_task.cancel()
        self._transition(Lifecycle.DISCONNECTED)
        self.process_response()
        await self.channel.close()

    # ------------------------------------------------------------------
    # Roster operations
    # ------------------------------------------------------------------

    async def join(self, participant_id: str, display_name: str | None = None) -> None:
        """Add a participant mid-game; outside a game just show the banner"""
        self._command(ResultType.CONNECT.value)

        if self.lifecycle is not Lifecycle.STARTED:
            self._publish(BannerResult(text=WELCOME_MESSAGE))
            return

        if participant_id == self.owner_id or not self.turns.add(participant_id):
            self._log("Join ignored: owner or already in roster", participant_id, level="DEBUG")
            return

        self._log("Player joined", participant_id, roster_size=len(self.turns))
        self.text(f"{self.display_name(participant_id, display_name)} has joined the game")
        if not self.call_in_flight:
            self._schedule_republish()

    async def leave(self, participant_id: str, display_name: str | None = None) -> None:
        """Remove a participant; the turn passes on if they held it"""
        if self.lifecycle is not Lifecycle.STARTED:
            self._log("Leave ignored: the game is not started", participant_id, level="DEBUG")
            return

        if not self.turns.remove(participant_id):
            self._log("Leave ignored: not in roster", participant_id, level="DEBUG")
            return

        self._log("Player left", participant_id, roster_size=len(self.turns))
        if not self.turns:
            await self.end()
            return

        self.text(f"{self.display_name(participant_id, display_name)} has left the game")
        if not self.call_in_flight:
            self._schedule_republish()

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    async def option(self, participant_id: str, option_key: str) -> None:
        """A player picked one of the offered options"""
        if self.lifecycle is not Lifecycle.STARTED:
            self._log("Option ignored: the game is not started", participant_id, level="DEBUG")
            return

        chosen = None
        if isinstance(self.last_result, OptionsResult):
            chosen = self.last_result.option_text(option_key)
        self.text(f"{self.display_name(participant_id)}: {chosen or option_key}")

        message = ChatMessage(role="user", content=f"{participant_id}: {option_key}")
        await self._narrate(message, self.epoch, actor=participant_id)

    async def msg(self, participant_id: str, text: str) -> None:
        """A player typed a free text action"""
        if self.lifecycle is not Lifecycle.STARTED:
            self._log("Message ignored: the game is not started", participant_id, level="DEBUG")
            return

        self.text(f"{self.display_name(participant_id)}: {text}")

        message = ChatMessage(role="user", content=f"{participant_id}: {text}")
        await self._narrate(message, self.epoch, actor=participant_id)

    def text(self, text: str) -> None:
        """Announce a line of text in the room"""
        self._command(ResultType.TEXT.value, text)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def process_response(self) -> None:
        """
        Publish `last_result` to the room.

        Structured payloads are published with display names substituted,
        followed by their skybox: the cached image when the scene is known,
        otherwise a background generation whose result is cached and
        published only if this game is still running when it completes.
        """
        result = self.last_result
        if not isinstance(result, OptionsResult):
            self._publish(result)
            return

        payload = result.payload
        self._publish(OptionsResult(payload=payload.substitute(self._display_names())))

        cached = self.scene_cache.get(payload.scene)
        if cached is not None:
            self._command(ResultType.SKYBOX.value, cached)
        elif self.lifecycle is Lifecycle.STARTED:
            self._request_scene(payload)

    def _publish(self, result: GameResult) -> None:
        self._command(*result.to_args())

    def _command(self, *args: Any) -> None:
        self.channel.send_command(self.bot_name, {"command": "game", "args": list(args)})

    def _display_names(self) -> dict[str, str]:
        names = {}
        for participant_id in self.channel.get_users(self.owner_id):
            name = self.channel.get_name(participant_id)
            if name:
                names[participant_id] = name
        return names

    # ------------------------------------------------------------------
    # Narrative calls
    # ------------------------------------------------------------------

    async def _narrate(
        self,
        message: ChatMessage | list[ChatMessage],
        epoch: int,
        actor: str | None,
    ) -> None:
        async with self._call_permit:
            if not self._is_live(epoch):
                self._log("Dropping narrative request queued for a finished game", level="DEBUG")
                return

            try:
                reply = await self.conversation.send(self.owner_id, message)
                result: GameResult = parse_narrative(reply)
            except LLMCallFailed as e:
                self._log(f"Narrative call failed: {e}", level="WARNING")
                result = ErrorResult(text=str(e))

            if not self._is_live(epoch):
                self._log("Discarding narrative reply for a finished game", level="DEBUG")
                return

            if isinstance(result, OptionsResult):
                # An actor who left mid-call already passed the turn on
                if actor is not None and actor in self.turns:
                    player = self.turns.advance()
                else:
                    player = self.turns.current()
                result = result.with_player(player)

            self._cancel_republish()
            self.last_result = result

        self.process_response()

    def _is_live(self, epoch: int) -> bool:
        return self.lifecycle is Lifecycle.STARTED and self.epoch == epoch

    # ------------------------------------------------------------------
    # Debounced republish after joins and leaves
    # ------------------------------------------------------------------

    def _schedule_republish(self) -> None:
        self._cancel_republish()
        self._republish_task = asyncio.create_task(self._republish_later(self.epoch))

    def _cancel_republish(self) -> None:
        if self._republish_task is not None and not self._republish_task.done():
            self._republish_task.cancel()
        self._republish_task = None

    async def _republish_later(self, epoch: int) -> None:
        await asyncio.sleep(self.republish_delay)
        if not self._is_live(epoch) or self.call_in_flight:
            return

        if isinstance(self.last_result, OptionsResult):
            self.last_result = self.last_result.with_player(self.turns.current())
        self._republish_task = None
        self.process_response()

    # ------------------------------------------------------------------
    # Scene images
    # ------------------------------------------------------------------

    def _request_scene(self, payload: NarrativePayload) -> None:
        if (
            self._image_task is not None
            and not self._image_task.done()
            and self._image_scene == payload.scene
        ):
            return

        if self._image_task is not None and not self._image_task.done():
            self._image_task.cancel()

        prompt = f"{self.theme.name}. {payload.scene}. {payload.backdrop}"
        self._image_scene = payload.scene
        self._image_task = asyncio.create_task(
            self._generate_scene(self.epoch, payload.scene, prompt, self.theme.style_id)
        )

    async def _generate_scene(self, epoch: int, scene: str, prompt: str, style_id: int) -> None:
        try:
            image_url = await self.scenes.generate(prompt, style_id)
        except SceneGenerationFailed as e:
            self._log(f"Skybox for scene '{scene}' failed: {e}", level="WARNING")
            return

        if not self._is_live(epoch):
            self._log(f"Ignoring late skybox for scene '{scene}'", level="DEBUG")
            return

        self.scene_cache.set(scene, image_url)
        self._log(f"Skybox ready for scene '{scene}'", image_url=image_url)
        self._command(ResultType.SKYBOX.value, image_url)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _transition(self, to_state: Lifecycle, **extra: Any) -> None:
        from_state, self.lifecycle = self.lifecycle, to_state
        log_lifecycle_transition(self.hub_id, from_state.value, to_state.value, **extra)

    def _log(self, message: str, participant_id: str | None = None, level: str = "INFO", **extra: Any) -> None:
        log_session_event(
            message,
            hub_id=self.hub_id,
            lifecycle=self.lifecycle.value,
            participant_id=participant_id,
            level=level,
            **extra,
        )
