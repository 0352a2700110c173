# ABOUTME: State related to a single Hubs Phoenix channel subscription (topic hub:<hub_id>).
# ABOUTME: Turns presence and message frames into connect/disconnect/join/moved/leave/message events.

import asyncio
from typing import Any

from loguru import logger

from gamebot.channels.events import EventEmitter
from gamebot.channels.exceptions import ChannelClosed, ChannelJoinFailed
from gamebot.channels.presence import Presence
from gamebot.models.messages import RoomEvent


class HubChannel(EventEmitter):
    """
    Room channel for one Hubs room.

    Emits RoomEvent objects for: connect, disconnect, join, moved, leave,
    renameuser and message. The "connect" event carries the bot's own
    session id; every other event carries the participant's.
    """

    def __init__(self, socket: Any, hub_id: str, params: dict, join_timeout: float = 10.0):
        """
        Initialize the channel and register it with the socket.

        Args:
            socket: ReticulumClient multiplexing this channel
            hub_id: Hubs room id
            params: Join payload (profile and client context)
            join_timeout: Seconds to wait for the join and leave replies
        """
        super().__init__()
        self.socket = socket
        self.hub_id = hub_id
        self.topic = f"hub:{hub_id}"
        self.params = params
        self.join_timeout = join_timeout
        self.join_ref: str | None = None
        self.joined = False
        self._closed = False
        self.presence = Presence(on_join=self._on_presence_join, on_leave=self._on_presence_leave)
        socket.register(self.topic, self)

    async def connect(self) -> dict:
        """
        Join the channel.

        Returns:
            Join response data (includes the bot's `session_id`)

        Raises:
            ChannelJoinFailed: On join error, timeout or socket close; a
                disconnect event is emitted first
        """
        self.join_ref = self.socket.make_ref()
        try:
            reply = await self.socket.request(
                self.topic, "phx_join", self.params, self.join_timeout, join_ref=self.join_ref
            )
        except asyncio.TimeoutError as e:
            self._mark_closed()
            raise ChannelJoinFailed(f"Timed out joining {self.topic}") from e
        except ChannelClosed as e:
            self._mark_closed()
            raise ChannelJoinFailed(f"Socket closed while joining {self.topic}") from e

        if reply.get("status") != "ok":
            self._mark_closed()
            raise ChannelJoinFailed(f"Join of {self.topic} rejected: {reply.get('response')}")

        data = reply.get("response") or {}
        self.joined = True
        logger.info(f"Joined {self.topic} as {data.get('session_id')}")
        self.emit("connect", self._event(session_id=data.get("session_id")))
        return data

    async def close(self) -> None:
        """Leave the channel; emits a single disconnect event"""
        if self._closed:
            return
        if self.joined and self.socket.connected:
            try:
                await self.socket.request(
                    self.topic, "phx_leave", {}, self.join_timeout, join_ref=self.join_ref
                )
            except (asyncio.TimeoutError, ChannelClosed) as e:
                logger.warning(f"Leaving {self.topic} did not complete cleanly: {e!r}")
        self._mark_closed()

    def dispatch(self, event: str, payload: dict) -> None:
        """Handle one inbound frame for this topic"""
        if event == "presence_state":
            self.presence.sync_state(payload)
        elif event == "presence_diff":
            self.presence.sync_diff(payload)
        elif event == "message":
            self.emit("message", self._event(
                session_id=payload.get("session_id"),
                body=payload.get("body"),
            ))
        elif event in ("phx_close", "phx_error"):
            self._mark_closed()
        else:
            # hub_refresh, pin and the rest are not used by the bot
            logger.debug(f"Ignoring {event} on {self.topic}")

    def get_name(self, session_id: str) -> str | None:
        """Most recent display name of the given session id in presence"""
        meta = self.presence.most_recent(session_id)
        if meta is None:
            return None
        return (meta.get("profile") or {}).get("displayName")

    def get_users(self, session_id: str) -> dict[str, dict]:
        """Presence info for all users in the room, except `session_id`"""
        return {
            user_id: state
            for user_id, state in self.presence.state.items()
            if user_id != session_id
        }

    def get_users_in_room(self, session_id: str) -> dict[str, dict]:
        """Like get_users, restricted to users whose latest presence is "room" """
        result = {}
        for user_id, state in self.get_users(session_id).items():
            metas = state.get("metas") or []
            if metas and metas[-1].get("presence") == "room":
                result[user_id] = state
        return result

    def get_user_count(self) -> int:
        """Number of users present, except ourselves"""
        return max(0, len(self.presence.state) - 1)

    def send_message(self, sender: str, body: Any) -> None:
        """Send a chat message that Hubs users will see in the chat box"""
        self._push_message(sender, body, "chat")

    def send_command(self, sender: str, body: dict | None) -> None:
        """Send a structured command ({command, args}) to the room clients"""
        if not body:
            return
        self._push_message(sender, body, "command")

    def _push_message(self, sender: str, body: Any, message_type: str) -> None:
        try:
            self.socket.push(
                self.topic,
                "message",
                {"from": sender, "body": body, "type": message_type},
                join_ref=self.join_ref,
            )
        except ChannelClosed:
            logger.warning(f"Dropping {message_type} for {self.topic}: channel closed")

    def _on_presence_join(self, session_id: str, current: dict | None, joined: dict) -> None:
        most_recent = joined["metas"][-1]

        if current is not None and current.get("metas"):
            # this user was already in the lobby or room: report renames and lobby -> room moves
            previous = current["metas"][-1]
            previous_profile = previous.get("profile") or {}
            recent_profile = most_recent.get("profile") or {}
            if (
                previous_profile
                and recent_profile
                and previous_profile.get("displayName") != recent_profile.get("displayName")
            ):
                self.emit("renameuser", self._event(
                    session_id=session_id,
                    presence=most_recent.get("presence"),
                    display_name=recent_profile.get("displayName"),
                ))
            if (
                previous.get("presence") == "lobby"
                and most_recent.get("presence")
                and previous.get("presence") != most_recent.get("presence")
            ):
                self.emit("moved", self._event(
                    session_id=session_id,
                    presence=most_recent.get("presence"),
                    previous_presence=previous.get("presence"),
                    display_name=recent_profile.get("displayName"),
                ))
            return

        self.emit("join", self._event(
            session_id=session_id,
            presence=most_recent.get("presence"),
            display_name=(most_recent.get("profile") or {}).get("displayName"),
        ))

    def _on_presence_leave(self, session_id: str, current: dict, left: dict) -> None:
        if current.get("metas"):
            return  # still in the lobby or room under another connection

        most_recent = left["metas"][-1] if left.get("metas") else {}
        self.emit("leave", self._event(
            session_id=session_id,
            presence=most_recent.get("presence"),
            display_name=(most_recent.get("profile") or {}).get("displayName"),
        ))

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.joined = False
        self.emit("disconnect", self._event())

    def _event(self, **fields: Any) -> RoomEvent:
        return RoomEvent(hub_id=self.hub_id, channel=self, **fields)
