"""Service loop for a single client connection to the Maze War server."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from .client_registry import ClientRegistry
from .game import MAX_PLAYERS, PlayerTable
from .player import Player
from .protocol import Packet, PacketType, ProtocolError, recv_packet, send_packet

log = logging.getLogger(__name__)

MAX_LOGIN_PAYLOAD = 256
ANONYMOUS = "Anonymous"


def _reply(conn, ptype: PacketType) -> None:
    try:
        send_packet(conn, Packet(ptype))
    except ProtocolError as exc:
        log.debug("reply %s failed: %s", ptype.name, exc)


def _decode_name(payload: bytes) -> str:
    return payload.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _avatar_for(index: int) -> str:
    return chr(ord("A") + index)


class _ClientSession:
    """The state of one client: whether and as whom it is logged in."""

    def __init__(self, conn, players: PlayerTable, debug_show_maze: bool) -> None:
        self.conn = conn
        self.players = players
        self.debug_show_maze = debug_show_maze
        self.player: Optional[Player] = None
        self._handlers: Dict[PacketType, Callable[[Packet, Optional[bytes]], None]] = {
            PacketType.LOGIN: self._login,
            PacketType.MOVE: self._move,
            PacketType.TURN: self._turn,
            PacketType.FIRE: self._fire,
            PacketType.REFRESH: self._refresh,
            PacketType.SEND: self._chat,
        }

    def run(self) -> None:
        try:
            while True:
                if self.player is not None:
                    self.players.check_for_laser_hit(self.player)
                try:
                    pkt, payload = recv_packet(self.conn)
                except ProtocolError as exc:
                    log.debug("client disconnected: %s", exc)
                    break
                if self.player is None and pkt.type != PacketType.LOGIN:
                    if not self._auto_login():
                        break
                    continue
                handler = self._handlers.get(pkt.type)
                if handler is None:
                    log.warning("unhandled packet type %s", pkt.type)
                else:
                    handler(pkt, payload)
                if self.debug_show_maze:
                    self.players.maze.show()
        finally:
            if self.player is not None:
                self.players.logout(self.player)
                self.player = None

    def _first_free_avatar(self) -> Optional[str]:
        for index in range(MAX_PLAYERS):
            if self.players.at(index) is None:
                return _avatar_for(index)
        return None

    def _auto_login(self) -> bool:
        """Log in as an anonymous player on the first free avatar."""
        avatar = self._first_free_avatar()
        if avatar is None:
            log.debug("auto-login failed: no free avatar")
            return False
        player = self.players.login(self.conn, avatar, ANONYMOUS)
        if player is None:
            log.debug("auto-login failed: avatar %s in use", avatar)
            _reply(self.conn, PacketType.INUSE)
            return False
        self.player = player
        _reply(self.conn, PacketType.READY)
        self.players.reset(player)
        return True

    def _login(self, pkt: Packet, payload: Optional[bytes]) -> None:
        if self.player is not None:
            return
        if pkt.size > MAX_LOGIN_PAYLOAD:
            log.warning("LOGIN payload too large")
            return
        avatar = pkt.param1 & 0xFF
        name = _decode_name(payload) if payload is not None else None
        player = self.players.login(self.conn, avatar, name)
        if player is None and name == ANONYMOUS:
            for index in range(MAX_PLAYERS):
                if self.players.at(index) is None:
                    player = self.players.login(self.conn, _avatar_for(index), name)
                    if player is not None:
                        break
        if player is None:
            log.debug("login failed: avatar in use")
            _reply(self.conn, PacketType.INUSE)
            return
        self.player = player
        _reply(self.conn, PacketType.READY)
        self.players.reset(player)
        name_bytes = player.name.encode("utf-8")
        score = Packet(PacketType.SCORE, ord(player.avatar), player.score,
                       size=len(name_bytes))
        for recipient in self.players.logged_in():
            try:
                recipient.send_packet(score, name_bytes)
            except ProtocolError as exc:
                log.debug("score to %s failed: %s", recipient.avatar, exc)

    def _move(self, pkt: Packet, payload: Optional[bytes]) -> None:
        if self.player.move(pkt.param1):
            self.player.update_view()

    def _turn(self, pkt: Packet, payload: Optional[bytes]) -> None:
        self.player.rotate(pkt.param1)
        self.player.update_view()

    def _fire(self, pkt: Packet, payload: Optional[bytes]) -> None:
        self.players.fire_laser(self.player)

    def _refresh(self, pkt: Packet, payload: Optional[bytes]) -> None:
        self.player.invalidate_view()
        self.player.update_view()

    def _chat(self, pkt: Packet, payload: Optional[bytes]) -> None:
        if payload:
            self.players.send_chat(self.player, payload)


def client_service(conn, registry: ClientRegistry, players: PlayerTable,
                   debug_show_maze: bool = False) -> None:
    """Serve one client until its connection reaches end of file.

    Until the client logs in only LOGIN packets are honoured; any other
    packet logs it in anonymously on the first free avatar. On exit the
    player is logged out, the connection closed and unregistered.
    """
    try:
        registry.register(conn)
    except RuntimeError as exc:
        log.error("%s", exc)
    try:
        _ClientSession(conn, players, debug_show_maze).run()
    finally:
        try:
            conn.close()
        except OSError as exc:
            log.debug("close failed: %s", exc)
        registry.unregister(conn)