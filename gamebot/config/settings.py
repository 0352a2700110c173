# ABOUTME: Configuration settings for the Hubs GameBot using Pydantic Settings.
# ABOUTME: Loads all environment variables and provides type-safe configuration access.

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    # OpenAI API Configuration
    openai_api_key: str = Field(
        description="OpenAI API key for the narrative model"
    )
    openai_organization: str | None = Field(
        default=None,
        description="Optional OpenAI organization id"
    )
    openai_model: str = Field(
        default="gpt-3.5-turbo",
        description="OpenAI chat model that narrates the game"
    )
    openai_temperature: float = Field(
        default=0.6,
        description="Sampling temperature for narration"
    )
    openai_max_tokens: int = Field(
        default=500,
        description="Maximum completion tokens per narrative reply"
    )
    openai_top_p: float = Field(
        default=1.0,
        description="Nucleus sampling cut-off"
    )
    openai_frequency_penalty: float = Field(
        default=0.0,
        description="Frequency penalty for narration"
    )
    openai_presence_penalty: float = Field(
        default=0.6,
        description="Presence penalty for narration"
    )
    max_model_tokens: int = Field(
        default=4096,
        description="Context window ceiling used to trim the transcript"
    )
    narrative_timeout_seconds: float = Field(
        default=60.0,
        description="Request timeout for a single narrative call"
    )
    llm_retry_attempts: int = Field(
        default=3,
        description="Number of attempts for transient OpenAI failures"
    )

    # Blockade Labs (skybox scene images)
    blockade_api_key: str = Field(
        default="",
        description="Blockade Labs API key for skybox generation"
    )
    blockade_api_url: str = Field(
        default="https://backend.blockadelabs.com/api/v1",
        description="Blockade Labs REST API base URL"
    )
    image_timeout_seconds: float = Field(
        default=300.0,
        description="Maximum seconds to wait for a skybox to complete"
    )

    # Pusher (skybox completion push channel)
    pusher_app_key: str = Field(
        default="",
        description="Pusher application key used by Blockade Labs"
    )
    pusher_cluster: str = Field(
        default="mt1",
        description="Pusher cluster"
    )

    # Room Settings
    bot_display_name: str = Field(
        default="GameBot",
        description="Display name the bot uses inside the room"
    )
    channel_join_timeout_seconds: float = Field(
        default=10.0,
        description="Seconds to wait for the room channel join reply"
    )
    heartbeat_interval_seconds: float = Field(
        default=30.0,
        description="Phoenix socket heartbeat interval"
    )
    republish_delay_seconds: float = Field(
        default=0.5,
        description="Debounce delay before republishing after joins and leaves"
    )

    # Application Settings
    host: str = Field(
        default="0.0.0.0",
        description="HTTP control surface bind address"
    )
    port: int = Field(
        default=3000,
        description="HTTP control surface port"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_to_file: bool = Field(
        default=False,
        description="Also write rotating log files"
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for log files when file logging is enabled"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Singleton settings instance - lazy initialization to allow import without .env
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
