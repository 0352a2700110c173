"""Room channel and scene generation transports for the Hubs GameBot"""

from .events import EventEmitter
from .exceptions import ChannelClosed, ChannelJoinFailed, PushFailed, SceneGenerationFailed
from .hub_channel import HubChannel
from .presence import Presence
from .push_channel import PusherClient
from .reticulum import ReticulumClient
from .scene_generator import SkyboxGenerator, SkyboxStyle

__all__ = [
    "EventEmitter",
    "ChannelClosed",
    "ChannelJoinFailed",
    "PushFailed",
    "SceneGenerationFailed",
    "HubChannel",
    "Presence",
    "PusherClient",
    "ReticulumClient",
    "SkyboxGenerator",
    "SkyboxStyle",
]
