# ABOUTME: Blockade Labs skybox client generating scene background images for a theme's style.
# ABOUTME: Requests generations over REST with httpx and waits for completion on the Pusher push channel.

import asyncio
from contextlib import aclosing

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from gamebot.channels.exceptions import PushFailed, SceneGenerationFailed
from gamebot.channels.push_channel import PusherClient
from gamebot.config.settings import Settings


class SkyboxStyle(BaseModel):
    """A skybox style as listed by Blockade Labs"""

    id: int
    name: str
    max_chars: int | None = Field(default=None, alias="max-char")
    image: str | None = None
    sort_order: int = 0

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SkyboxGenerator:
    """
    Generates skybox images.

    `cancel_all` cancels every pending generation of the whole API account,
    not just the caller's, so late completions for an abandoned scene may
    still arrive to whoever awaited them.
    """

    def __init__(
        self,
        api_key: str,
        push: PusherClient,
        base_url: str = "https://backend.blockadelabs.com/api/v1",
        timeout: float = 300.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the generator.

        Args:
            api_key: Blockade Labs API key
            push: Pusher listener receiving generation status updates
            base_url: REST API base URL
            timeout: Seconds to wait for one generation to complete
            http_client: Optional httpx client (created otherwise)
        """
        self.push = push
        self.timeout = timeout
        self.styles: list[SkyboxStyle] = []
        self.http = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers={"x-api-key": api_key},
            timeout=30.0,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SkyboxGenerator":
        push = PusherClient(settings.pusher_app_key, cluster=settings.pusher_cluster)
        return cls(
            settings.blockade_api_key,
            push,
            base_url=settings.blockade_api_url,
            timeout=settings.image_timeout_seconds,
        )

    async def update(self) -> list[SkyboxStyle]:
        """Refresh and return the list of available styles"""
        self.styles = await self.list_styles()
        logger.info(f"Loaded {len(self.styles)} skybox styles")
        return self.styles

    async def list_styles(self) -> list[SkyboxStyle]:
        response = await self.http.get("/skybox/styles")
        response.raise_for_status()
        styles = [SkyboxStyle.model_validate(item) for item in response.json()]
        return sorted(styles, key=lambda style: style.sort_order)

    def find_style(self, style_id: int) -> SkyboxStyle | None:
        return next((style for style in self.styles if style.id == style_id), None)

    async def cancel_all(self) -> None:
        """Cancel all pending generations for the API account"""
        response = await self.http.delete("/imagine/requests/pending")
        response.raise_for_status()

    async def generate(self, prompt: str, style: SkyboxStyle | int) -> str:
        """
        Generate a skybox and return its file URL.

        Args:
            prompt: Scene prompt; clipped to the style's character limit
            style: Style object or style id

        Returns:
            URL of the finished image

        Raises:
            SceneGenerationFailed: When the request fails or its reply is
                malformed, the generation reports status failed, or it does
                not finish in time
        """
        if isinstance(style, int):
            style = self.find_style(style) or SkyboxStyle(id=style, name=str(style))
        if style.max_chars:
            prompt = prompt[:style.max_chars]

        try:
            await self.cancel_all()
            response = await self.http.post(
                "/skybox",
                json={"prompt": prompt, "skybox_style_id": style.id},
            )
            response.raise_for_status()
            generation = response.json()
        except httpx.HTTPError as e:
            raise SceneGenerationFailed(f"Skybox request failed: {e}") from e
        except ValueError as e:
            raise SceneGenerationFailed(f"Skybox response is not JSON: {e}") from e

        if not isinstance(generation, dict):
            raise SceneGenerationFailed(f"Unexpected skybox response: {generation}")
        if generation.get("status") == "complete" and generation.get("file_url"):
            return generation["file_url"]

        channel = generation.get("pusher_channel")
        event = generation.get("pusher_event")
        if not channel or not event:
            raise SceneGenerationFailed(f"Skybox response has no push channel: {generation}")

        logger.info(f"Skybox {generation.get('id')} queued for style {style.name}")
        try:
            return await asyncio.wait_for(self._wait_for_completion(channel, event), self.timeout)
        except asyncio.TimeoutError as e:
            raise SceneGenerationFailed(f"Skybox {generation.get('id')} timed out") from e
        except PushFailed as e:
            raise SceneGenerationFailed(str(e)) from e

    async def close(self) -> None:
        await self.http.aclose()
        await self.push.close()

    async def _wait_for_completion(self, channel: str, event: str) -> str:
        async with aclosing(self.push.listen(channel, event)) as updates:
            async for update in updates:
                status = update.get("status") if isinstance(update, dict) else None
                if status == "complete":
                    if not update.get("file_url"):
                        raise SceneGenerationFailed(f"Skybox on {channel} completed without an image")
                    return update["file_url"]
                if status in ("failed", "abort", "error"):
                    raise SceneGenerationFailed(
                        f"Skybox generation failed: {update.get('error_message') or status}"
                    )
                logger.debug(f"Skybox status on {channel}: {status}")
        raise SceneGenerationFailed(f"Push channel {channel} ended before completion")
