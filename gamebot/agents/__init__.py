"""Narrator agent layer for the Hubs GameBot"""

from .conversation_bot import ConversationBot, describe_error
from .exceptions import LLMCallFailed
from .llm_retry import llm_retry

__all__ = [
    "ConversationBot",
    "describe_error",
    "LLMCallFailed",
    "llm_retry",
]
