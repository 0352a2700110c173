# ABOUTME: Pusher websocket listener used to receive skybox generation status updates.
# ABOUTME: Subscribes to one channel per generation and yields decoded event payloads until the caller stops.

import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
from loguru import logger

from gamebot.channels.exceptions import PushFailed

PUSHER_URL = "wss://ws-{cluster}.pusher.com/app/{key}?protocol=7&client=gamebot&version=0.1.0&flash=false"


class PusherClient:
    """Listens on Pusher channels over aiohttp websockets"""

    def __init__(
        self,
        app_key: str,
        cluster: str = "mt1",
        http_session: aiohttp.ClientSession | None = None,
    ):
        self.url = PUSHER_URL.format(cluster=cluster, key=app_key)
        self._http = http_session
        self._owns_http = http_session is None

    async def listen(self, channel: str, event: str) -> AsyncIterator[dict[str, Any]]:
        """
        Subscribe to `channel` and yield the payloads of `event`.

        The subscription is dropped when the caller stops iterating.

        Raises:
            PushFailed: On a Pusher error frame, a malformed frame, a socket
                error or close
        """
        if self._http is None:
            self._http = aiohttp.ClientSession()

        try:
            async with self._http.ws_connect(self.url) as ws:
                await ws.send_json({"event": "pusher:subscribe", "data": {"channel": channel}})
                logger.debug(f"Subscribed to push channel {channel}")

                async for message in ws:
                    if message.type != aiohttp.WSMsgType.TEXT:
                        if message.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                            break
                        continue

                    try:
                        frame = json.loads(message.data)
                    except json.JSONDecodeError as e:
                        raise PushFailed(f"Push channel {channel} sent a malformed frame: {e}") from e
                    if not isinstance(frame, dict):
                        raise PushFailed(f"Push channel {channel} sent a malformed frame: {frame}")
                    name = frame.get("event")
                    if name == "pusher:ping":
                        await ws.send_json({"event": "pusher:pong", "data": {}})
                    elif name == "pusher:error":
                        raise PushFailed(f"Push channel {channel} error: {_decode(frame.get('data'))}")
                    elif name == event and frame.get("channel") == channel:
                        yield _decode(frame.get("data"))
        except aiohttp.ClientError as e:
            raise PushFailed(f"Push channel {channel} transport error: {e}") from e

        raise PushFailed(f"Push channel {channel} closed before completion")

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None


def _decode(data: Any) -> Any:
    # Pusher double-encodes event data as a JSON string
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return data
    return data
