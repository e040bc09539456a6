"""The table of logged-in players and the game actions involving several players."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Union

from .maze import EMPTY, Maze, is_avatar
from .player import Player
from .protocol import Packet, PacketType, ProtocolError

log = logging.getLogger(__name__)

MAX_PLAYERS = 26
PURGATORY_SECONDS = 3.0
CHAT_BUFFER_SIZE = 512


def _avatar_char(avatar: Union[str, int]) -> Optional[str]:
    if isinstance(avatar, int):
        if not 0 <= avatar <= 0x10FFFF:
            return None
        avatar = chr(avatar)
    if not isinstance(avatar, str) or len(avatar) != 1:
        return None
    return avatar


def _index(avatar: Union[str, int]) -> Optional[int]:
    char = _avatar_char(avatar)
    if char is None:
        return None
    idx = ord(char) - ord("A")
    return idx if 0 <= idx < MAX_PLAYERS else None


def _send_quietly(player: Player, pkt: Packet, data: Optional[bytes] = None) -> None:
    try:
        player.send_packet(pkt, data)
    except ProtocolError as exc:
        log.debug("sending to %s failed: %s", player.avatar, exc)


class PlayerTable:
    """Maps avatars ``A`` to ``Z`` to the players currently logged in."""

    def __init__(self, maze: Maze, purgatory: float = PURGATORY_SECONDS) -> None:
        self.maze = maze
        self.purgatory = purgatory
        self._players: Dict[str, Player] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._players)

    def login(self, conn, avatar: Union[str, int], name: Optional[str]) -> Optional[Player]:
        """Log in a player with the given avatar.

        Returns the new player, holding one reference, or None if the avatar
        is not an upper-case letter or is already in use.
        """
        if _index(avatar) is None:
            log.debug("login failed: invalid avatar %r", avatar)
            return None
        char = _avatar_char(avatar)
        with self._lock:
            if char in self._players:
                log.debug("login failed: avatar %s in use", char)
                return None
            player = Player(conn, char, name, self.maze)
            self._players[char] = player
        log.debug("player %s logged in", char)
        return player

    def logout(self, player: Player) -> None:
        """Remove a player from the table and the maze and drop its reference.

        The client is sent a SCORE packet with score -1 to clear its entry.
        """
        with self._lock:
            if self._players.get(player.avatar) is player:
                del self._players[player.avatar]
        self.maze.remove_player(player.avatar, player.row, player.col)
        _send_quietly(player, Packet(PacketType.SCORE, ord(player.avatar), -1))
        log.debug("player %s logged out", player.avatar)
        player.unref("logout")

    def get(self, avatar: Union[str, int]) -> Optional[Player]:
        """Return the player with this avatar with an extra reference, or None."""
        if _index(avatar) is None:
            return None
        with self._lock:
            player = self._players.get(_avatar_char(avatar))
            if player is None:
                return None
            return player.ref("player_get")

    def at(self, index: int) -> Optional[Player]:
        """Return the player in slot ``index`` (0 for ``A``), without a reference."""
        if not 0 <= index < MAX_PLAYERS:
            return None
        with self._lock:
            return self._players.get(chr(ord("A") + index))

    def logged_in(self) -> List[Player]:
        """A snapshot of the logged-in players, in avatar order."""
        with self._lock:
            return [self._players[a] for a in sorted(self._players)]

    def _others(self, player: Player) -> Iterable[Player]:
        return (p for p in self.logged_in() if p is not player)

    def _refresh_others(self, player: Player) -> None:
        for other in self._others(player):
            other.invalidate_view()
            other.update_view()

    def _broadcast(self, pkt: Packet, data: Optional[bytes] = None) -> None:
        for recipient in self.logged_in():
            _send_quietly(recipient, pkt, data)

    def reset(self, player: Player) -> bool:
        """Move a player to a random empty location and refresh everyone.

        Returns False, leaving the player out of the maze, if no location
        could be found.
        """
        with player.lock:
            self.maze.remove_player(player.avatar, player.row, player.col)
            placed = self.maze.set_player_random(player.avatar)
            if placed is None:
                log.warning("could not place player %s in maze; skipping reset",
                            player.avatar)
                return False
            player.row, player.col = placed
            player.update_view()
            self._refresh_others(player)
            self._broadcast(Packet(PacketType.SCORE, ord(player.avatar), player.score))
        return True

    def fire_laser(self, player: Player) -> Optional[str]:
        """Fire along the player's gaze.

        The first avatar in the corridor is marked as hit, the shooter's
        score goes up by one and every client is sent the new score.
        Returns the avatar hit, or None.
        """
        with player.lock:
            target = self.maze.find_target(player.row, player.col, player.direction)
            if target == EMPTY or not is_avatar(target):
                log.debug("player %s fired but hit nothing", player.avatar)
                return None
            victim = self.get(target)
            if victim is not None:
                victim.mark_hit()
                victim.unref("fired hit")
            player.score += 1
            log.debug("player %s hit %s, score %d", player.avatar, target, player.score)
            self._broadcast(Packet(PacketType.SCORE, ord(player.avatar), player.score))
        return target

    def check_for_laser_hit(self, player: Optional[Player]) -> bool:
        """Handle a pending laser hit on a player.

        The player is taken off the maze and the scoreboard, alerted, kept
        out of play for the purgatory time and then reset. Returns True if
        a hit was handled.
        """
        if player is None:
            return False
        with player.lock:
            if not player.hit_flag:
                return False
            player.hit_flag = False
            self.maze.remove_player(player.avatar, player.row, player.col)
            _send_quietly(player, Packet(PacketType.SCORE, ord(player.avatar), -1))
            _send_quietly(player, Packet(PacketType.ALERT))
            self._refresh_others(player)
        log.debug("player %s entering purgatory", player.avatar)
        if self.purgatory > 0:
            time.sleep(self.purgatory)
        self.reset(player)
        return True

    def send_chat(self, player: Player, msg: bytes) -> None:
        """Send ``name[avatar] msg`` as a CHAT packet to every player.

        The whole message is cut to fit the chat buffer; empty messages are
        not sent.
        """
        if not msg:
            return
        prefix = f"{player.name}[{player.avatar}] ".encode("utf-8")
        limit = CHAT_BUFFER_SIZE - 1
        if len(prefix) >= CHAT_BUFFER_SIZE:
            log.debug("chat prefix for %s too long", player.avatar)
            return
        text = (prefix + bytes(msg[: limit - len(prefix)])).split(b"\0", 1)[0]
        pkt = Packet(PacketType.CHAT, size=len(text))
        for index in range(MAX_PLAYERS):
            recipient = self.get(chr(ord("A") + index))
            if recipient is None:
                continue
            try:
                _send_quietly(recipient, pkt, text)
            finally:
                recipient.unref("chat")

    def fini(self) -> None:
        """Drop the table's reference to every player and empty the table."""
        with self._lock:
            players = list(self._players.values())
            self._players.clear()
        for player in players:
            if not player.released:
                player.unref("player_fini cleanup")