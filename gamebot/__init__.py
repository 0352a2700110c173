"""Hubs GameBot: turn-based narrative adventure games for Hubs rooms"""

__version__ = "0.1.0"
