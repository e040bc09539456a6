"""State of a single player logged in to the Maze War game."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

from .maze import Direction, Maze, View
from .protocol import Packet, PacketType, ProtocolError, send_packet

log = logging.getLogger(__name__)

DEFAULT_NAME = "anonymous"


class Player:
    """A player: avatar, name, connection, score, location, gaze and view.

    All state is guarded by a re-entrant lock, because operations on a
    player call into the maze and from there back into the player.
    """

    def __init__(self, conn, avatar: str, name: Optional[str], maze: Maze) -> None:
        self.conn = conn
        self.avatar = avatar
        self.name = name if name else DEFAULT_NAME
        self.maze = maze
        self.score = 0
        self.row = 0
        self.col = 0
        self.direction = Direction.NORTH
        self.view: View = []
        self.hit_flag = False
        self.lock = threading.RLock()
        self._ref_count = 1
        self.thread = threading.current_thread()

    def __repr__(self) -> str:
        return f"Player(avatar={self.avatar!r}, name={self.name!r})"

    @property
    def ref_count(self) -> int:
        with self.lock:
            return self._ref_count

    @property
    def released(self) -> bool:
        """True once the last reference has been dropped."""
        with self.lock:
            return self._ref_count == 0

    def ref(self, why: str = "") -> "Player":
        """Take another reference to this player and return it."""
        with self.lock:
            if self._ref_count == 0:
                raise RuntimeError(f"player {self.avatar} has already been released")
            self._ref_count += 1
            log.debug("ref %s: ref_count=%d (%s)", self.avatar, self._ref_count, why)
        return self

    def unref(self, why: str = "") -> None:
        """Drop a reference; the player is released when none remain."""
        with self.lock:
            if self._ref_count == 0:
                raise RuntimeError(f"player {self.avatar} has already been released")
            self._ref_count -= 1
            log.debug("unref %s: ref_count=%d (%s)", self.avatar, self._ref_count, why)
            if self._ref_count == 0:
                self.view = []
                log.debug("released player %s", self.avatar)

    def send_packet(self, pkt: Packet, data: Optional[bytes] = None) -> None:
        """Send a packet to this player's client, serialized by the player lock.

        Raises ProtocolError if the packet cannot be sent.
        """
        with self.lock:
            try:
                send_packet(self.conn, pkt, data)
            except ProtocolError:
                log.debug("sending to %s failed", self.avatar)
                raise

    def get_location(self) -> Tuple[int, int, Direction]:
        """Return the player's (row, column, gaze direction)."""
        with self.lock:
            return self.row, self.col, self.direction

    def move(self, sign: int) -> bool:
        """Move one step forward (sign 1) or backward (otherwise).

        Returns True if the avatar moved, in which case the view is updated.
        """
        with self.lock:
            direction = self.direction if sign == 1 else self.direction.reverse()
            if not self.maze.move(self.row, self.col, direction):
                log.debug("player %s could not move", self.avatar)
                return False
            dr, dc = direction.delta
            self.row += dr
            self.col += dc
            log.debug("player %s moved to (%d, %d)", self.avatar, self.row, self.col)
            self.update_view()
            return True

    def rotate(self, direction: int) -> None:
        """Turn the gaze counter-clockwise (1) or clockwise (otherwise).

        The current view is invalidated; call update_view afterwards.
        """
        with self.lock:
            if direction == 1:
                self.direction = self.direction.turn_left()
            else:
                self.direction = self.direction.turn_right()
            log.debug("player %s rotated to %s", self.avatar, self.direction.name)
            self.invalidate_view()

    def invalidate_view(self) -> None:
        """Forget the last view sent, forcing a full update next time."""
        with self.lock:
            self.view = []

    def update_view(self) -> None:
        """Query the maze and send the player a full view update.

        A CLEAR packet is sent, then one SHOW packet for every cell of the
        view. Nothing is sent if the player's location gives no view.
        Failures to send are logged and otherwise ignored.
        """
        with self.lock:
            view = self.maze.get_view(self.row, self.col, self.direction)
            if not view:
                log.debug("no view for player %s", self.avatar)
                return
            self.view = view
            packets = [Packet(PacketType.CLEAR)]
            packets.extend(
                Packet(PacketType.SHOW, ord(cell), side, depth)
                for depth, cells in enumerate(view)
                for side, cell in enumerate(cells)
            )
            for pkt in packets:
                try:
                    self.send_packet(pkt)
                except ProtocolError as exc:
                    log.debug("view update for %s: %s", self.avatar, exc)

    def mark_hit(self) -> None:
        """Record that this player has been hit by a laser."""
        with self.lock:
            self.hit_flag = True
        log.debug("player %s marked as hit", self.avatar)