# ABOUTME: Pydantic models for the narrative payload and the result sum type published to rooms.
# ABOUTME: Banner, Text, Options and Error results each know how to render as outbound command args.

import json
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator


class Weather(str, Enum):
    """Weather shown in the room for the current scene"""
    CLEAR = "Clear"
    RAIN = "Rain"
    WIND = "Wind"
    SNOW = "Snow"


class Genre(str, Enum):
    """Genre of the current scene"""
    FANTASY = "fantasy"
    ACTION = "action"
    TERROR = "terror"


class ResultType(str, Enum):
    """First element of every outbound `game` command"""
    TEXT = "text"
    OPTIONS = "options"
    ERROR = "error"
    START = "start"
    SKYBOX = "skybox"
    CONNECT = "connect"


class NarrativePayload(BaseModel):
    """Structured scene description the narrator returns on every turn"""

    scene: str = Field(description="Tag for the place where the action happens")
    prompt: str = Field(description="Narration shown to the players")
    backdrop: str = Field(description="Description of the surroundings")
    player: str | None = Field(
        default=None,
        description="Participant id whose turn it is"
    )
    options: dict[str, str] = Field(
        default_factory=dict,
        description="Option key (A-D) to option text"
    )
    weather: Weather = Weather.CLEAR
    time: int = Field(default=12, ge=0, le=24, description="Hour of the day")
    state: Literal["started", "ended"] = "started"
    type: Genre = Genre.FANTASY

    @field_validator("weather", mode="before")
    @classmethod
    def _normalize_weather(cls, value: Any) -> Any:
        if isinstance(value, str):
            for weather in Weather:
                if weather.value.lower() == value.strip().lower():
                    return weather
        return value

    @field_validator("type", "state", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("time", mode="before")
    @classmethod
    def _round_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return value
        if isinstance(value, float):
            return round(value)
        return value

    def substitute(self, names: Mapping[str, str]) -> "NarrativePayload":
        """
        Return a copy with participant ids replaced by display names.

        Only prompt, backdrop and option texts are rewritten; `player` keeps
        the raw id so clients can compare it with their own session id.
        """
        def replace(text: str) -> str:
            for participant_id, name in names.items():
                if name:
                    text = text.replace(participant_id, name)
            return text

        return self.model_copy(update={
            "prompt": replace(self.prompt),
            "backdrop": replace(self.backdrop),
            "options": {key: replace(text) for key, text in self.options.items()},
        })


class BannerResult(BaseModel):
    """Startup banner shown while no game is running"""
    kind: Literal["start"] = "start"
    text: str

    def to_args(self) -> list[Any]:
        return [self.kind, self.text]


class TextResult(BaseModel):
    """Free text narration (the model did not answer with the JSON schema)"""
    kind: Literal["text"] = "text"
    text: str

    def to_args(self) -> list[Any]:
        return [self.kind, self.text]


class ErrorResult(BaseModel):
    """Collaborator failure surfaced to the room"""
    kind: Literal["error"] = "error"
    text: str

    def to_args(self) -> list[Any]:
        return [self.kind, self.text]


class OptionsResult(BaseModel):
    """Structured narrative payload driving the game UI"""
    kind: Literal["options"] = "options"
    payload: NarrativePayload

    def to_args(self) -> list[Any]:
        return [self.kind, self.payload.model_dump(mode="json")]

    def with_player(self, player: str | None) -> "OptionsResult":
        """Copy of this result with the active player bound"""
        return self.model_copy(update={
            "payload": self.payload.model_copy(update={"player": player})
        })

    def option_text(self, key: str) -> str | None:
        return self.payload.options.get(key)


GameResult = Annotated[
    BannerResult | TextResult | OptionsResult | ErrorResult,
    Field(discriminator="kind"),
]


def parse_narrative(raw: str) -> OptionsResult | TextResult:
    """
    Parse a narrator reply into a structured result.

    Args:
        raw: Reply content from the conversation bot

    Returns:
        OptionsResult when the reply is a JSON object matching the narrative
        schema, otherwise a TextResult carrying the reply verbatim
    """
    try:
        data = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError:
        return TextResult(text=raw)

    if not isinstance(data, dict):
        return TextResult(text=raw)

    try:
        return OptionsResult(payload=NarrativePayload.model_validate(data))
    except ValidationError:
        return TextResult(text=raw)


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text
