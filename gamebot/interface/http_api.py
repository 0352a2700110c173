# ABOUTME: FastAPI control surface: connect the bot to a Hubs room, list rooms, disconnect a room.
# ABOUTME: The lifespan refreshes skybox styles at start-up and closes shared clients on shutdown.

from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from loguru import logger

from gamebot.channels.exceptions import ChannelJoinFailed
from gamebot.orchestration.exceptions import SessionExists, SessionNotFound
from gamebot.orchestration.message_router import RoomConnector, RoomRouter


def create_app(router: RoomRouter, connector: RoomConnector, scene_generator: Any = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        router: Room registry shared with the channel event handlers
        connector: Opens room sockets for /connect
        scene_generator: Optional SkyboxGenerator whose styles are loaded at start-up

    Returns:
        FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scene_generator is not None:
            try:
                await scene_generator.update()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Could not load skybox styles: {e}")
        yield
        await connector.close()
        if scene_generator is not None:
            await scene_generator.close()

    app = FastAPI(title="Hubs GameBot", lifespan=lifespan)

    @app.get("/connect", response_class=PlainTextResponse)
    async def connect(host: str = "", port: str | None = None, hub_id: str = "") -> str:
        if not host or not hub_id:
            raise HTTPException(status_code=500, detail="host and hub_id are required")

        try:
            await connector.connect(host, port, hub_id)
        except SessionExists as e:
            logger.error(str(e))
            raise HTTPException(status_code=500, detail=str(e)) from e
        except ChannelJoinFailed as e:
            logger.error(f"An error occurred when connecting to room {hub_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e
        return "OK"

    @app.get("/rooms")
    async def rooms() -> list[str]:
        return router.rooms()

    @app.get("/disconnect", response_class=PlainTextResponse)
    async def disconnect(hub_id: str = "") -> str:
        if not hub_id:
            raise HTTPException(status_code=500, detail="hub_id is required")
        try:
            await router.disconnect(hub_id)
        except SessionNotFound as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return "OK"

    return app
