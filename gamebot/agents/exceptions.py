# ABOUTME: Exception definitions for the narrator agent layer.
# ABOUTME: Defines error types raised by ConversationBot.


class LLMCallFailed(Exception):
    """Raised when the OpenAI API call fails after retries"""
    pass
