"""In-memory registry of live rooms."""

from __future__ import annotations

import secrets
import string
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from .board import Board, Mark, new_board
from .errors import RoomCodeCollision
from .logging_config import get_logger

logger = get_logger(__name__)

ROOM_CODE_LENGTH = 5
ROOM_CODE_ALPHABET = string.ascii_uppercase


class Phase(str, Enum):
    WAITING_FOR_GUEST = "waiting-for-guest"
    ACTIVE = "active"
    FINISHED = "finished"
    TERMINATED = "terminated"


@dataclass
class Player:
    connection_id: str
    name: str
    mark: Mark


@dataclass
class Room:
    """One two-player match. Fields are only mutated under ``lock``."""

    code: str
    host: Player
    guest: Optional[Player] = None
    board: Board = field(default_factory=new_board)
    turn: Mark = Mark.FIRST
    phase: Phase = Phase.WAITING_FOR_GUEST
    created_at: float = field(default_factory=lambda: time.time())
    started_at: Optional[float] = None
    rematch_requested_by: Optional[Mark] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def players(self) -> Iterator[Player]:
        yield self.host
        if self.guest is not None:
            yield self.guest

    def player_for(self, connection_id: str) -> Optional[Player]:
        for player in self.players():
            if player.connection_id == connection_id:
                return player
        return None

    def opponent_of(self, connection_id: str) -> Optional[Player]:
        if self.host.connection_id == connection_id:
            return self.guest
        if self.guest is not None and self.guest.connection_id == connection_id:
            return self.host
        return None

    def player_with_mark(self, mark: Mark) -> Optional[Player]:
        for player in self.players():
            if player.mark is mark:
                return player
        return None


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> Optional[str]:
    """Upper-case a user-typed code, or None if it cannot be a room code."""

    normalized = code.strip().upper()
    if len(normalized) != ROOM_CODE_LENGTH:
        return None
    if any(ch not in ROOM_CODE_ALPHABET for ch in normalized):
        return None
    return normalized


class RoomRegistry:
    """Owns every live room for the lifetime of the server process.

    Keeps a reverse index from connection id to room code so a move can find
    its room without scanning. The internal lock only guards the two maps;
    per-room state is guarded by each room's own lock.
    """

    def __init__(self, code_factory: Callable[[], str] = generate_room_code) -> None:
        self._code_factory = code_factory
        self._rooms: Dict[str, Room] = {}
        self._by_connection: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._rooms

    def allocate(self, build: Callable[[str], Room]) -> Room:
        """Store the room built for a fresh, unused code and return it."""

        while True:
            code = self._code_factory()
            try:
                return self._claim(code, build)
            except RoomCodeCollision:
                logger.debug("Room code collision, regenerating", room=code)

    def _claim(self, code: str, build: Callable[[str], Room]) -> Room:
        with self._lock:
            if code in self._rooms:
                raise RoomCodeCollision()
            room = build(code)
            self._rooms[code] = room
            for player in room.players():
                self._by_connection[player.connection_id] = code
            return room

    def find_by_code(self, code: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(code)

    def find_by_connection(self, connection_id: str) -> Optional[Room]:
        with self._lock:
            code = self._by_connection.get(connection_id)
            if code is None:
                return None
            return self._rooms.get(code)

    def bind(self, connection_id: str, code: str) -> None:
        with self._lock:
            if code in self._rooms:
                self._by_connection[connection_id] = code

    def release(self, code: str) -> None:
        with self._lock:
            room = self._rooms.pop(code, None)
            if room is None:
                return
            for player in room.players():
                if self._by_connection.get(player.connection_id) == code:
                    del self._by_connection[player.connection_id]
