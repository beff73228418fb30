"""Rejection reasons for client intents.

Every error here is recoverable: it is reported to the connection that sent
the intent and never leaves a room half-updated.
"""

from __future__ import annotations

from typing import Optional


class GameError(Exception):
    """Base class for intent rejections. ``code`` is stable on the wire."""

    code = "GameError"
    default_reason = "Request rejected"

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class InvalidName(GameError):
    code = "InvalidName"
    default_reason = "Display name must be 1-20 characters"


class RoomNotFound(GameError):
    code = "RoomNotFound"
    default_reason = "Room not found"


class RoomFull(GameError):
    code = "RoomFull"
    default_reason = "Room is full"


class AlreadyInRoom(GameError):
    code = "AlreadyInRoom"
    default_reason = "Connection is already in a room"


class NotInRoom(GameError):
    code = "NotInRoom"
    default_reason = "Not in a room with an opponent"


class GameNotActive(GameError):
    code = "GameNotActive"
    default_reason = "No game in progress"


class NotYourTurn(GameError):
    code = "NotYourTurn"
    default_reason = "It is not your turn"


class IllegalCell(GameError):
    code = "IllegalCell"
    default_reason = "Cell is not available"


class EmptyMessage(GameError):
    code = "EmptyMessage"
    default_reason = "Message is empty"


class MessageTooLong(GameError):
    code = "MessageTooLong"
    default_reason = "Message exceeds 100 characters"


class RematchUnavailable(GameError):
    code = "RematchUnavailable"
    default_reason = "Rematch is not available right now"


class RoomCodeCollision(GameError):
    """Raised while claiming a code that is already live. Retried internally."""

    code = "RoomCodeCollision"
    default_reason = "Room code already in use"
