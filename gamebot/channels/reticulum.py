# ABOUTME: Phoenix socket client for a Hubs Reticulum server over aiohttp websockets.
# ABOUTME: Multiplexes channel topics, matches phx_reply frames to pushes by ref, and keeps the socket alive.

import asyncio
import itertools
import json
from typing import Any

import aiohttp
from loguru import logger

from gamebot.channels.exceptions import ChannelClosed, ChannelJoinFailed
from gamebot.channels.hub_channel import HubChannel

PHOENIX_TOPIC = "phoenix"


class ReticulumClient:
    """
    Phoenix v2 socket (frames are JSON arrays: [join_ref, ref, topic, event, payload]).

    Outbound pushes are queued synchronously and written by a writer task, so
    callers never suspend while publishing to a room.
    """

    def __init__(
        self,
        hostname: str,
        heartbeat_interval: float = 30.0,
        http_session: aiohttp.ClientSession | None = None,
    ):
        """
        Initialize the socket client.

        Args:
            hostname: Reticulum host, optionally with ":port"
            heartbeat_interval: Seconds between Phoenix heartbeats
            http_session: Optional aiohttp session (created on connect otherwise)
        """
        self.hostname = hostname
        self.url = f"wss://{hostname}/socket/websocket?vsn=2.0.0"
        self.heartbeat_interval = heartbeat_interval
        self._http = http_session
        self._owns_http = http_session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._refs = itertools.count(1)
        self._pending: dict[str, asyncio.Future] = {}
        self._channels: dict[str, Any] = {}
        self._outbox: asyncio.Queue[list[Any]] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """
        Open the websocket and start the reader, writer and heartbeat tasks.

        Raises:
            ChannelJoinFailed: When the websocket cannot be opened
        """
        if self._http is None:
            self._http = aiohttp.ClientSession()
        try:
            self._ws = await self._http.ws_connect(self.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self._close_http()
            raise ChannelJoinFailed(f"Could not open socket to {self.hostname}: {e}") from e

        logger.info(f"Connected to Reticulum at {self.hostname}")
        self._tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._write_loop()),
            asyncio.create_task(self._heartbeat_loop()),
        ]

    def channel_for_hub(self, hub_id: str, profile: dict, join_timeout: float = 10.0) -> HubChannel:
        """Return a channel object for the given Hub room's Phoenix channel"""
        params = {
            "profile": profile,
            "context": {"mobile": False, "hmd": False},
        }
        return HubChannel(self, hub_id, params, join_timeout=join_timeout)

    def make_ref(self) -> str:
        return str(next(self._refs))

    def register(self, topic: str, channel: Any) -> None:
        """Route inbound frames for `topic` to `channel.dispatch(event, payload)`"""
        self._channels[topic] = channel

    def push(
        self,
        topic: str,
        event: str,
        payload: dict,
        join_ref: str | None = None,
        ref: str | None = None,
    ) -> str:
        """
        Queue a frame for sending.

        Returns:
            The frame ref

        Raises:
            ChannelClosed: When the socket is not connected
        """
        if not self.connected:
            raise ChannelClosed(f"Socket to {self.hostname} is closed")
        ref = ref or self.make_ref()
        self._outbox.put_nowait([join_ref, ref, topic, event, payload])
        return ref

    async def request(
        self,
        topic: str,
        event: str,
        payload: dict,
        timeout: float,
        join_ref: str | None = None,
    ) -> dict:
        """
        Push a frame and wait for its phx_reply.

        Returns:
            Reply payload: {"status": ..., "response": ...}

        Raises:
            asyncio.TimeoutError: When no reply arrives within `timeout`
            ChannelClosed: When the socket closes before the reply
        """
        ref = self.make_ref()
        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            self.push(topic, event, payload, join_ref=join_ref, ref=ref)
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(ref, None)

    def handle_frame(self, frame: list[Any]) -> None:
        """Dispatch one decoded inbound frame"""
        _join_ref, ref, topic, event, payload = frame
        if event == "phx_reply" and ref in self._pending:
            future = self._pending[ref]
            if not future.done():
                future.set_result(payload or {})
            return

        channel = self._channels.get(topic)
        if channel is not None:
            channel.dispatch(event, payload or {})

    async def close(self) -> None:
        """Close the socket; channels receive a phx_close dispatch"""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._on_socket_closed()
        await self._close_http()

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for message in self._ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(message.data)
                    except json.JSONDecodeError:
                        logger.warning(f"Ignoring malformed frame from {self.hostname}")
                        continue
                    self.handle_frame(frame)
                elif message.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                    break
        finally:
            logger.info(f"Socket to {self.hostname} closed")
            self._on_socket_closed()

    async def _write_loop(self) -> None:
        assert self._ws is not None
        while True:
            frame = await self._outbox.get()
            try:
                await self._ws.send_str(json.dumps(frame))
            except (aiohttp.ClientError, ConnectionResetError) as e:
                logger.warning(f"Dropping frame for {frame[2]}: {e}")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not self.connected:
                return
            self.push(PHOENIX_TOPIC, "heartbeat", {})

    def _on_socket_closed(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChannelClosed(f"Socket to {self.hostname} closed"))
        self._pending.clear()
        channels, self._channels = list(self._channels.values()), {}
        for channel in channels:
            channel.dispatch("phx_close", {})

    async def _close_http(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
