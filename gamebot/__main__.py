# ABOUTME: Entry point for running the GameBot HTTP server.
# ABOUTME: Provides simple command to run: python -m gamebot (or the `gamebot` script)

import sys

import uvicorn
from fastapi import FastAPI
from openai import AsyncOpenAI
from pydantic import ValidationError

from gamebot.agents.conversation_bot import ConversationBot
from gamebot.channels.scene_generator import SkyboxGenerator
from gamebot.config.settings import Settings, get_settings
from gamebot.interface.http_api import create_app
from gamebot.orchestration.message_router import RoomConnector, RoomRouter
from gamebot.utils.logging import setup_logging


def build_app(settings: Settings) -> FastAPI:
    """Wire the narrator, skybox generator, room registry and HTTP surface"""
    openai_client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        organization=settings.openai_organization,
    )
    scene_generator = SkyboxGenerator.from_settings(settings)

    router = RoomRouter(
        conversation_factory=lambda: ConversationBot.from_settings(openai_client, settings),
        scene_generator=scene_generator,
        bot_name=settings.bot_display_name,
        republish_delay=settings.republish_delay_seconds,
    )
    connector = RoomConnector(
        router,
        bot_name=settings.bot_display_name,
        join_timeout=settings.channel_join_timeout_seconds,
        heartbeat_interval=settings.heartbeat_interval_seconds,
    )
    return create_app(router, connector, scene_generator)


def main() -> None:
    """Run the GameBot server with real configuration"""
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Error: Invalid configuration: {e}")
        print("Set OPENAI_API_KEY (and optionally BLOCKADE_API_KEY, PUSHER_APP_KEY) in .env")
        sys.exit(1)

    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        file_output=settings.log_to_file,
    )

    app = build_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
