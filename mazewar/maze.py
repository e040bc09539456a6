"""The game maze: a rectangular grid of walls, avatars and empty space.

Cells hold single characters. A blank is empty space, an upper-case letter
is a player's avatar, and printable characters below ``'A'`` are walls.
"""

from __future__ import annotations

import enum
import logging
import random
import sys
import threading
from typing import List, Optional, Sequence, TextIO, Tuple

log = logging.getLogger(__name__)

EMPTY = " "
OUT_OF_BOUNDS_WALL = "*"

VIEW_DEPTH = 16
LEFT_WALL = 0
CORRIDOR = 1
RIGHT_WALL = 2
VIEW_WIDTH = 3

MAX_PLACEMENT_ATTEMPTS = 1000

View = List[Tuple[str, str, str]]


def is_empty(c: str) -> bool:
    """True if the cell content is empty space."""
    return c == EMPTY


def is_avatar(c: str) -> bool:
    """True if the cell content is a player's avatar (an upper-case letter)."""
    return len(c) == 1 and "A" <= c <= "Z"


def is_wall(c: str) -> bool:
    """True if the cell content is a solid object."""
    return not is_empty(c) and not is_avatar(c) and " " < c < "A"


class Direction(enum.IntEnum):
    """Compass directions, used both for gaze and for movement."""

    NORTH = 0
    WEST = 1
    SOUTH = 2
    EAST = 3

    @property
    def delta(self) -> Tuple[int, int]:
        """The (row, column) increment for one step in this direction."""
        return _DELTAS[self]

    def turn_left(self) -> "Direction":
        """The direction after a quarter turn counter-clockwise."""
        return Direction.NORTH if self is Direction.EAST else Direction(self + 1)

    def turn_right(self) -> "Direction":
        """The direction after a quarter turn clockwise."""
        return Direction.EAST if self is Direction.NORTH else Direction(self - 1)

    def reverse(self) -> "Direction":
        """The opposite direction."""
        return Direction(self + 2 if self < 2 else self - 2)


_DELTAS = {
    Direction.NORTH: (-1, 0),
    Direction.WEST: (0, -1),
    Direction.SOUTH: (1, 0),
    Direction.EAST: (0, 1),
}

NUM_DIRECTIONS = len(Direction)


class Maze:
    """A thread-safe maze built from a template of equal-length strings."""

    def __init__(self, template: Sequence[str],
                 rng: Optional[random.Random] = None) -> None:
        if not template:
            raise ValueError("maze template must have at least one row")
        width = len(template[0])
        if any(len(line) != width for line in template):
            raise ValueError("maze template rows must all have the same length")
        self._cells = [list(line) for line in template]
        self._rows = len(self._cells)
        self._cols = width
        self._rng = rng if rng is not None else random.Random()
        self._lock = threading.Lock()
        log.debug("maze initialized with %d rows and %d cols",
                  self._rows, self._cols)

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    def _in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self._rows and 0 <= col < self._cols

    def set_player(self, avatar: str, row: int, col: int) -> bool:
        """Place an avatar at a location; False if it is off the maze or occupied."""
        with self._lock:
            if not self._in_bounds(row, col) or not is_empty(self._cells[row][col]):
                return False
            self._cells[row][col] = avatar
        log.debug("placed avatar %s at (%d, %d)", avatar, row, col)
        return True

    def set_player_random(self, avatar: str) -> Optional[Tuple[int, int]]:
        """Place an avatar at a random empty location.

        Returns the (row, column) chosen, or None if no empty location was
        found after a large number of attempts.
        """
        for _ in range(MAX_PLACEMENT_ATTEMPTS):
            row = self._rng.randrange(self._rows)
            col = self._rng.randrange(self._cols)
            if self.set_player(avatar, row, col):
                return row, col
        log.debug("failed to place avatar %s after %d attempts",
                  avatar, MAX_PLACEMENT_ATTEMPTS)
        return None

    def remove_player(self, avatar: str, row: int, col: int) -> None:
        """Clear a location, but only if it holds the given avatar."""
        with self._lock:
            if self._in_bounds(row, col) and self._cells[row][col] == avatar:
                self._cells[row][col] = EMPTY
                log.debug("removed avatar %s from (%d, %d)", avatar, row, col)

    def move(self, row: int, col: int, direction: int) -> bool:
        """Move the avatar at a location one step; False if that is not possible."""
        dr, dc = Direction(direction).delta
        with self._lock:
            if not self._in_bounds(row, col) or not is_avatar(self._cells[row][col]):
                return False
            new_row, new_col = row + dr, col + dc
            if (not self._in_bounds(new_row, new_col)
                    or not is_empty(self._cells[new_row][new_col])):
                return False
            self._cells[new_row][new_col] = self._cells[row][col]
            self._cells[row][col] = EMPTY
        log.debug("moved avatar to (%d, %d)", new_row, new_col)
        return True

    def find_target(self, row: int, col: int, direction: int) -> str:
        """Return the first avatar met looking from a location, or EMPTY.

        The search stops at the first non-empty cell or at the maze edge.
        """
        dr, dc = Direction(direction).delta
        with self._lock:
            while True:
                row += dr
                col += dc
                if not self._in_bounds(row, col):
                    return EMPTY
                found = self._cells[row][col]
                if not is_empty(found):
                    return found if is_avatar(found) else EMPTY

    def get_view(self, row: int, col: int, gaze: int,
                 depth: int = VIEW_DEPTH) -> View:
        """Return up to ``depth`` (left wall, corridor, right wall) triples.

        The view starts at the given location and extends in the direction
        of gaze; it is shorter when the maze edge is reached first. Side
        cells beyond the maze edge are shown as solid wall.
        """
        gaze = Direction(gaze)
        dr, dc = gaze.delta
        ldr, ldc = gaze.turn_left().delta
        rdr, rdc = gaze.turn_right().delta
        view: View = []
        with self._lock:
            for d in range(depth):
                r, c = row + dr * d, col + dc * d
                if not self._in_bounds(r, c):
                    break
                view.append((
                    self._cell_or_wall(r + ldr, c + ldc),
                    self._cells[r][c],
                    self._cell_or_wall(r + rdr, c + rdc),
                ))
        return view

    def _cell_or_wall(self, row: int, col: int) -> str:
        if self._in_bounds(row, col):
            return self._cells[row][col]
        return OUT_OF_BOUNDS_WALL

    def show(self, stream: Optional[TextIO] = None) -> None:
        """Print the maze, one line per row, for debugging."""
        out = stream if stream is not None else sys.stderr
        with self._lock:
            text = "".join("".join(line) + "\n" for line in self._cells)
        out.write(text)


def show_view(view: View, stream: Optional[TextIO] = None) -> None:
    """Print a view, one line per depth, for debugging."""
    out = stream if stream is not None else sys.stderr
    for left, corridor, right in view:
        out.write(f"{left} {corridor} {right}\n")