"""xoduel package exposing the board engine, room coordination, and the web application."""

from .coordinator import Coordinator
from .gateway import create_app
from .registry import RoomRegistry

__all__ = ["Coordinator", "RoomRegistry", "create_app"]
