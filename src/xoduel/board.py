"""Core tic-tac-toe rules: board representation, legality and results."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple


class Mark(str, Enum):
    """A player's symbol. The value is the wire rendering."""

    FIRST = "X"
    SECOND = "O"

    def other(self) -> "Mark":
        return Mark.SECOND if self is Mark.FIRST else Mark.FIRST


Cell = Optional[Mark]
Board = Tuple[Cell, ...]

EMPTY: Cell = None
BOARD_SIZE = 9

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def new_board() -> Board:
    return (EMPTY,) * BOARD_SIZE


def is_legal_move(board: Board, index: object) -> bool:
    # bool is an int subclass; True would otherwise address cell 1
    if not isinstance(index, int) or isinstance(index, bool):
        return False
    return 0 <= index < BOARD_SIZE and board[index] is EMPTY


def apply_move(board: Board, index: int, mark: Mark) -> Board:
    """Return a copy of ``board`` with ``mark`` placed at ``index``.

    Callers must have checked :func:`is_legal_move` first.
    """
    cells = list(board)
    cells[index] = mark
    return tuple(cells)


def winning_line(board: Board) -> Optional[Tuple[int, int, int]]:
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v is not EMPTY and v == board[b] == board[c]:
            return (a, b, c)
    return None


def winner(board: Board) -> Optional[Mark]:
    line = winning_line(board)
    if line is None:
        return None
    return board[line[0]]


def is_full(board: Board) -> bool:
    return all(c is not EMPTY for c in board)


def is_draw(board: Board) -> bool:
    # A full board that also completes a line is a win.
    return is_full(board) and winner(board) is None


def render(board: Board) -> List[str]:
    """Cells as sent to clients: 'X', 'O' or '' for empty."""
    return [c.value if c is not EMPTY else "" for c in board]
