"""
WebSocket server and event handling for the 100 Pontinhos game.
"""

from .server import app

__all__ = ["app"]
