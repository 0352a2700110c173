# ABOUTME: Exception definitions for the room channel and scene generation transports.
# ABOUTME: Defines error types raised by ReticulumClient, HubChannel, PusherClient and SkyboxGenerator.


class ChannelJoinFailed(Exception):
    """Raised when the room socket or channel join errors or times out"""
    pass


class ChannelClosed(Exception):
    """Raised when pushing or awaiting a reply on a closed socket"""
    pass


class PushFailed(Exception):
    """Raised when the push subscription errors or closes before completion"""
    pass


class SceneGenerationFailed(Exception):
    """Raised when a skybox request fails, times out or reports status failed"""
    pass
