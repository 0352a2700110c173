# ABOUTME: Stateful narrator wrapper holding the running dialogue transcript for one game session.
# ABOUTME: Sends transcript to OpenAI chat completions, trims it near the context ceiling, and can be cleared.

from typing import Any

from loguru import logger
from openai import AsyncOpenAI

from gamebot.agents.exceptions import LLMCallFailed
from gamebot.agents.llm_retry import llm_retry
from gamebot.config.settings import Settings
from gamebot.models.messages import ChatMessage


class ConversationBot:
    """
    Narrator conversation for a single game session.

    Every `send` appends to a persistent transcript so the model keeps the
    story so far. When token usage approaches the model's context ceiling the
    oldest exchange after the priming messages is dropped.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-3.5-turbo",
        temperature: float = 0.6,
        max_tokens: int = 500,
        top_p: float = 1.0,
        frequency_penalty: float = 0.0,
        presence_penalty: float = 0.6,
        max_model_tokens: int = 4096,
        priming_messages: int = 3,
        timeout: float | None = 60.0,
        retry_attempts: int = 3,
    ):
        """
        Initialize the conversation.

        Args:
            client: AsyncOpenAI client instance
            model: OpenAI chat model (default: gpt-3.5-turbo)
            temperature: Sampling temperature (default: 0.6)
            max_tokens: Maximum completion tokens per reply (default: 500)
            top_p: Nucleus sampling cut-off (default: 1.0)
            frequency_penalty: Frequency penalty (default: 0.0)
            presence_penalty: Presence penalty (default: 0.6)
            max_model_tokens: Context window ceiling used by the trim policy
            priming_messages: Leading messages that are never trimmed (default: 3)
            timeout: Request timeout in seconds, None for the client default
            retry_attempts: Attempts for transient API failures (default: 3)
        """
        self.client = client
        self.model = model
        self.completion_params: dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }
        self.max_model_tokens = max_model_tokens
        self.priming_messages = priming_messages
        self.timeout = timeout
        self.messages: list[dict[str, str]] = []
        self._generation = 0
        self._complete = llm_retry(retry_attempts)(self._create_completion)

    @classmethod
    def from_settings(cls, client: AsyncOpenAI, settings: Settings) -> "ConversationBot":
        """Build a conversation configured from application settings"""
        return cls(
            client,
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            max_tokens=settings.openai_max_tokens,
            top_p=settings.openai_top_p,
            frequency_penalty=settings.openai_frequency_penalty,
            presence_penalty=settings.openai_presence_penalty,
            max_model_tokens=settings.max_model_tokens,
            timeout=settings.narrative_timeout_seconds,
            retry_attempts=settings.llm_retry_attempts,
        )

    async def send(
        self,
        session_id: str,
        message: ChatMessage | list[ChatMessage],
    ) -> str:
        """
        Append messages to the transcript and return the narrator's reply.

        Args:
            session_id: Owner session id, forwarded as the OpenAI `user`
            message: One message or a batch (e.g. the priming sequence)

        Returns:
            Reply content

        Raises:
            LLMCallFailed: When the API call fails; the unanswered messages
                are removed from the transcript again
        """
        batch = message if isinstance(message, list) else [message]
        appended = [m.model_dump() for m in batch]
        generation = self._generation
        self.messages.extend(appended)

        try:
            response = await self._complete(list(self.messages), session_id)
        except Exception as e:
            if generation == self._generation:
                del self.messages[len(self.messages) - len(appended):]
            raise LLMCallFailed(describe_error(e)) from e

        content = response.choices[0].message.content or ""
        logger.debug(f"Narrator reply for {session_id}: {content}")

        # Transcript was cleared while the call was in flight
        if generation != self._generation:
            return content

        usage = response.usage
        if usage is not None and usage.total_tokens + usage.completion_tokens * 2 > self.max_model_tokens:
            self._trim(pending=len(appended))

        self.messages.append({"role": "assistant", "content": content})
        return content

    async def one_shot(
        self,
        session_id: str,
        message: ChatMessage | list[ChatMessage],
    ) -> str:
        """Send messages without reading or writing the transcript"""
        batch = message if isinstance(message, list) else [message]
        try:
            response = await self._complete([m.model_dump() for m in batch], session_id)
        except Exception as e:
            raise LLMCallFailed(describe_error(e)) from e
        return response.choices[0].message.content or ""

    def clear(self) -> None:
        """Reset the transcript"""
        self.messages = []
        self._generation += 1

    def _trim(self, pending: int) -> None:
        # Drop the oldest exchange that follows the priming messages, never
        # touching the request being answered
        start = self.priming_messages
        if len(self.messages) - pending - start < 2:
            logger.warning("Transcript near the context ceiling but nothing left to trim")
            return
        dropped = self.messages[start:start + 2]
        del self.messages[start:start + 2]
        logger.info(f"Trimmed {len(dropped)} messages from narrator transcript")

    async def _create_completion(self, messages: list[dict[str, str]], session_id: str) -> Any:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "user": session_id,
            **self.completion_params,
        }
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        return await self.client.chat.completions.create(**kwargs)


def describe_error(error: Exception) -> str:
    """Human readable description of a provider error"""
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
    message = getattr(error, "message", None)
    return str(message or error)
