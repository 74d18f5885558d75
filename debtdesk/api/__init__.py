"""API module exports"""
from . import actions
from . import cases
from . import chat
from . import health
from . import websocket

__all__ = ["actions", "cases", "chat", "health", "websocket"]
