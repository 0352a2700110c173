# ABOUTME: Pydantic models for narrator chat messages, room commands and room channel events.
# ABOUTME: RoomEvent carries the hub id and participant id for connect/disconnect/join/moved/leave/message.

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """One message of the narrator transcript"""
    role: Literal["system", "user", "assistant"]
    content: str


class RoomCommand(BaseModel):
    """Structured body of a room `message` event: {command, args}"""
    command: str
    args: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class RoomEvent(BaseModel):
    """Event emitted by a room channel"""

    hub_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    session_id: str | None = Field(
        default=None,
        description="Participant session id (owner id for connect events)"
    )
    presence: str | None = Field(
        default=None,
        description="Presence of the participant: lobby or room"
    )
    previous_presence: str | None = None
    display_name: str | None = None
    body: Any = Field(
        default=None,
        description="Raw message body for message events"
    )
    channel: Any = Field(
        default=None,
        exclude=True,
        description="Channel that emitted the event"
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)
