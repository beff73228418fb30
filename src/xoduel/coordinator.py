"""Per-room turn coordination: joins, moves, chat, rematch and disconnects.

Every mutating operation locks the room, validates the intent against the
current state, and only then applies it. Notifications are handed to the
sink while the lock is held, so each recipient sees events in the order the
state changed. The board engine is only ever asked to apply moves that
passed :func:`~xoduel.board.is_legal_move` here.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from . import board as engine
from .board import Mark
from .errors import (
    AlreadyInRoom,
    EmptyMessage,
    GameNotActive,
    IllegalCell,
    InvalidName,
    MessageTooLong,
    NotInRoom,
    NotYourTurn,
    RematchUnavailable,
    RoomFull,
    RoomNotFound,
)
from .logging_config import get_logger
from .registry import Phase, Player, Room, RoomRegistry, normalize_room_code

logger = get_logger(__name__)

MAX_NAME_LENGTH = 20
MAX_CHAT_LENGTH = 100


@dataclass(frozen=True)
class Notification:
    """An event addressed to a single connection."""

    recipient: str
    event: str
    payload: Dict[str, object] = field(default_factory=dict)

    def as_message(self) -> Dict[str, object]:
        return {"type": self.event, **self.payload}


Sink = Callable[[Notification], None]


class OutcomeKind(str, Enum):
    CONTINUE = "continue"
    WIN = "win"
    DRAW = "draw"


@dataclass(frozen=True)
class MoveOutcome:
    kind: OutcomeKind
    mark: Mark
    next_turn: Mark
    winner: Optional[Mark] = None
    winner_name: Optional[str] = None
    line: Optional[Tuple[int, int, int]] = None


def _clean_name(name: str) -> str:
    cleaned = name.strip() if isinstance(name, str) else ""
    if not cleaned or len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidName()
    return cleaned


class Coordinator:
    """Authoritative game state for every room in a :class:`RoomRegistry`."""

    def __init__(
        self,
        registry: RoomRegistry,
        sink: Sink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self._sink = sink
        self._clock = clock

    # ---- lobby ----

    def create_room(self, connection_id: str, host_name: str) -> Room:
        name = _clean_name(host_name)
        if self.registry.find_by_connection(connection_id) is not None:
            raise AlreadyInRoom()

        host = Player(connection_id=connection_id, name=name, mark=Mark.FIRST)
        now = self._clock()
        room = self.registry.allocate(
            lambda code: Room(code=code, host=host, created_at=now)
        )
        with room.lock:
            self._emit(
                host.connection_id,
                "room-created",
                code=room.code,
                mark=host.mark.value,
                displayName=host.name,
            )
        logger.info("Room created", room=room.code, connection=connection_id)
        return room

    def join_room(self, connection_id: str, code: str, guest_name: str) -> Room:
        name = _clean_name(guest_name)
        if self.registry.find_by_connection(connection_id) is not None:
            raise AlreadyInRoom()
        normalized = normalize_room_code(code) if isinstance(code, str) else None
        room = self.registry.find_by_code(normalized) if normalized else None
        if room is None:
            raise RoomNotFound()

        with room.lock:
            if room.phase is Phase.TERMINATED:
                raise RoomNotFound()
            if room.guest is not None or room.phase is not Phase.WAITING_FOR_GUEST:
                raise RoomFull()

            guest = Player(connection_id=connection_id, name=name, mark=Mark.SECOND)
            room.guest = guest
            room.started_at = self._clock()
            room.phase = Phase.ACTIVE
            self.registry.bind(connection_id, room.code)

            host = room.host
            self._emit(
                guest.connection_id,
                "room-joined",
                code=room.code,
                mark=guest.mark.value,
                displayName=guest.name,
                opponentName=host.name,
            )
            self._emit(host.connection_id, "opponent-joined", name=guest.name)
            self._broadcast(
                room,
                "game-started",
                hostName=host.name,
                guestName=guest.name,
                firstTurn=room.turn.value,
            )
        logger.info("Guest joined room", room=room.code, connection=connection_id)
        return room

    # ---- game ----

    def submit_move(self, connection_id: str, index: int) -> MoveOutcome:
        room = self._room_of(connection_id)
        with room.lock:
            player = self._seated(room, connection_id)
            if room.phase is not Phase.ACTIVE:
                raise GameNotActive()
            if room.turn is not player.mark:
                raise NotYourTurn()
            if not engine.is_legal_move(room.board, index):
                raise IllegalCell()

            room.board = engine.apply_move(room.board, index, player.mark)
            room.turn = player.mark.other()
            outcome = self._evaluate(room, player.mark)

            self._broadcast(
                room,
                "move-applied",
                cellIndex=index,
                mark=player.mark.value,
                nextTurn=room.turn.value,
                board=engine.render(room.board),
            )
            if outcome.kind is not OutcomeKind.CONTINUE:
                self._broadcast(
                    room,
                    "game-ended",
                    outcome=outcome.kind.value,
                    winningMark=outcome.winner.value if outcome.winner else None,
                    winnerName=outcome.winner_name,
                    line=list(outcome.line) if outcome.line else None,
                )
        if outcome.kind is not OutcomeKind.CONTINUE:
            logger.info(
                "Game ended",
                room=room.code,
                outcome=outcome.kind.value,
                winner=outcome.winner_name,
            )
        return outcome

    def _evaluate(self, room: Room, mark: Mark) -> MoveOutcome:
        # Winner first: a full board that completes a line is a win.
        line = engine.winning_line(room.board)
        if line is not None:
            won_by = room.board[line[0]]
            room.phase = Phase.FINISHED
            winner = room.player_with_mark(won_by)
            return MoveOutcome(
                kind=OutcomeKind.WIN,
                mark=mark,
                next_turn=room.turn,
                winner=won_by,
                winner_name=winner.name if winner else None,
                line=line,
            )
        if engine.is_draw(room.board):
            room.phase = Phase.FINISHED
            return MoveOutcome(kind=OutcomeKind.DRAW, mark=mark, next_turn=room.turn)
        return MoveOutcome(kind=OutcomeKind.CONTINUE, mark=mark, next_turn=room.turn)

    def request_rematch(self, connection_id: str) -> None:
        room = self._room_of(connection_id)
        with room.lock:
            player = self._seated(room, connection_id)
            if room.phase is not Phase.FINISHED:
                raise RematchUnavailable()
            room.rematch_requested_by = player.mark
            opponent = room.opponent_of(connection_id)
            if opponent is not None:
                self._emit(opponent.connection_id, "rematch-requested", name=player.name)

    def accept_rematch(self, connection_id: str) -> None:
        room = self._room_of(connection_id)
        with room.lock:
            player = self._seated(room, connection_id)
            if room.phase is not Phase.FINISHED:
                raise RematchUnavailable()
            if room.rematch_requested_by is not player.mark.other():
                raise RematchUnavailable("Your opponent has not asked for a rematch")

            room.board = engine.new_board()
            room.turn = Mark.FIRST
            room.phase = Phase.ACTIVE
            room.rematch_requested_by = None
            room.started_at = self._clock()
            self._broadcast(room, "room-reset", firstTurn=room.turn.value)
        logger.info("Room reset for rematch", room=room.code)

    # ---- chat ----

    def send_chat(self, connection_id: str, text: str) -> None:
        room = self._room_of(connection_id)
        with room.lock:
            player = self._seated(room, connection_id)
            opponent = room.opponent_of(connection_id)
            if opponent is None or room.phase not in (Phase.ACTIVE, Phase.FINISHED):
                raise NotInRoom()
            trimmed = text.strip() if isinstance(text, str) else ""
            if not trimmed:
                raise EmptyMessage()
            if len(trimmed) > MAX_CHAT_LENGTH:
                raise MessageTooLong()
            self._emit(
                opponent.connection_id,
                "chat-received",
                senderName=player.name,
                text=text,
            )

    # ---- teardown ----

    def disconnect(self, connection_id: str) -> Optional[Room]:
        """Terminate the connection's room, if any, and tell the opponent."""

        room = self.registry.find_by_connection(connection_id)
        if room is None:
            return None
        with room.lock:
            if room.phase is Phase.TERMINATED:
                return None
            opponent = room.opponent_of(connection_id)
            room.phase = Phase.TERMINATED
            self.registry.release(room.code)
            if opponent is not None:
                self._emit(opponent.connection_id, "opponent-disconnected")
        logger.info("Room terminated", room=room.code, connection=connection_id)
        return room

    # ---- queries ----

    def snapshot(self, code: str) -> Optional[Dict[str, object]]:
        normalized = normalize_room_code(code)
        room = self.registry.find_by_code(normalized) if normalized else None
        if room is None:
            return None
        with room.lock:
            return {
                "code": room.code,
                "phase": room.phase.value,
                "available": room.phase is Phase.WAITING_FOR_GUEST,
                "hostName": room.host.name,
                "guestName": room.guest.name if room.guest else None,
                "board": engine.render(room.board),
                "turn": room.turn.value,
            }

    # ---- helpers ----

    def _room_of(self, connection_id: str) -> Room:
        room = self.registry.find_by_connection(connection_id)
        if room is None:
            raise NotInRoom()
        return room

    @staticmethod
    def _seated(room: Room, connection_id: str) -> Player:
        # The room may have been torn down between lookup and locking.
        player = room.player_for(connection_id)
        if player is None or room.phase is Phase.TERMINATED:
            raise NotInRoom()
        return player

    def _emit(self, recipient: str, event: str, **payload: object) -> None:
        self._sink(Notification(recipient=recipient, event=event, payload=payload))

    def _broadcast(self, room: Room, event: str, **payload: object) -> None:
        for player in room.players():
            self._emit(player.connection_id, event, **payload)
