"""HTTP control surface for the Hubs GameBot"""

from .http_api import create_app

__all__ = ["create_app"]
