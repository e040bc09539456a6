import random

import pytest

from mazewar.game import PlayerTable
from mazewar.maze import Direction, Maze
from mazewar.protocol import HEADER_SIZE, Packet, PacketType

CORRIDOR = ["*****", "*   *", "*****"]


class FakeConn:
    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def sendall(self, payload):
        if self.closed:
            raise OSError("closed")
        self.data += payload

    def packets(self):
        out = []
        pos = 0
        while pos < len(self.data):
            pkt = Packet.unpack(bytes(self.data[pos:pos + HEADER_SIZE]))
            pos += HEADER_SIZE
            payload = bytes(self.data[pos:pos + pkt.size]) if pkt.size else None
            pos += pkt.size
            out.append((pkt, payload))
        return out

    def types(self):
        return [p.type for p, _ in self.packets()]


@pytest.fixture
def table():
    return PlayerTable(Maze(CORRIDOR, rng=random.Random(7)), purgatory=0)


def place(table, player, row, col, direction):
    assert table.maze.set_player(player.avatar, row, col)
    player.row, player.col, player.direction = row, col, direction


def test_login_and_get(table):
    conn = FakeConn()
    player = table.login(conn, "A", "alice")
    assert player.name == "alice"
    assert table.at(0) is player
    got = table.get("A")
    assert got is player
    assert player.ref_count == 2
    got.unref()
    assert player.ref_count == 1


def test_login_rejects_used_and_invalid_avatars(table):
    assert table.login(FakeConn(), "A", "alice") is not None
    assert table.login(FakeConn(), "A", "bob") is None
    assert table.login(FakeConn(), "a", "bob") is None
    assert table.login(FakeConn(), "[", "bob") is None
    assert len(table) == 1


def test_login_default_name(table):
    player = table.login(FakeConn(), "B", "")
    assert player.name == "anonymous"


def test_get_and_at_missing(table):
    assert table.get("Z") is None
    assert table.at(25) is None
    assert table.at(26) is None
    assert table.at(-1) is None


def test_logged_in_in_avatar_order(table):
    c = table.login(FakeConn(), "C", "c")
    a = table.login(FakeConn(), "A", "a")
    assert table.logged_in() == [a, c]


def test_logout_sends_score_minus_one_and_releases(table):
    conn = FakeConn()
    player = table.login(conn, "A", "alice")
    place(table, player, 1, 1, Direction.EAST)
    table.logout(player)
    assert table.get("A") is None
    assert player.released
    assert table.maze.find_target(1, 0, Direction.EAST) == " "
    pkt, _ = conn.packets()[-1]
    assert pkt.type == PacketType.SCORE
    assert pkt.param1 == ord("A")
    assert pkt.param2 == -1


def test_reset_places_and_broadcasts_score(table):
    conn_a, conn_b = FakeConn(), FakeConn()
    a = table.login(conn_a, "A", "alice")
    b = table.login(conn_b, "B", "bob")
    place(table, b, 1, 3, Direction.WEST)
    assert table.reset(a)
    row, col, _ = a.get_location()
    assert table.maze.get_view(row, col, Direction.NORTH, 1)[0][1] == "A"
    assert conn_a.types()[0] == PacketType.CLEAR
    assert PacketType.CLEAR in conn_b.types()
    for conn in (conn_a, conn_b):
        scores = [p for p, _ in conn.packets() if p.type == PacketType.SCORE]
        assert scores[-1].param1 == ord("A")
        assert scores[-1].param2 == 0


def test_reset_fails_when_maze_full():
    table = PlayerTable(Maze(["***"], rng=random.Random(1)), purgatory=0)
    conn = FakeConn()
    player = table.login(conn, "A", "alice")
    assert table.reset(player) is False
    assert conn.packets() == []


def test_fire_laser_hits_and_scores(table):
    conn_a, conn_b = FakeConn(), FakeConn()
    a = table.login(conn_a, "A", "alice")
    b = table.login(conn_b, "B", "bob")
    place(table, a, 1, 1, Direction.EAST)
    place(table, b, 1, 3, Direction.WEST)
    assert table.fire_laser(a) == "B"
    assert b.hit_flag
    assert b.ref_count == 1
    assert a.score == 1
    for conn in (conn_a, conn_b):
        pkt, _ = conn.packets()[-1]
        assert (pkt.type, pkt.param1, pkt.param2) == (PacketType.SCORE, ord("A"), 1)


def test_fire_laser_miss(table):
    conn = FakeConn()
    a = table.login(conn, "A", "alice")
    place(table, a, 1, 1, Direction.WEST)
    assert table.fire_laser(a) is None
    assert a.score == 0
    assert conn.packets() == []


def test_check_for_laser_hit_without_hit(table):
    conn = FakeConn()
    a = table.login(conn, "A", "alice")
    assert table.check_for_laser_hit(a) is False
    assert table.check_for_laser_hit(None) is False
    assert conn.packets() == []


def test_check_for_laser_hit_respawns(table):
    conn_a, conn_b = FakeConn(), FakeConn()
    a = table.login(conn_a, "A", "alice")
    b = table.login(conn_b, "B", "bob")
    place(table, a, 1, 1, Direction.EAST)
    place(table, b, 1, 3, Direction.WEST)
    table.fire_laser(a)
    conn_b.data.clear()
    assert table.check_for_laser_hit(b) is True
    assert not b.hit_flag
    types = conn_b.types()
    first_score, _ = conn_b.packets()[0]
    assert first_score.param2 == -1
    assert types[1] == PacketType.ALERT
    row, col, _ = b.get_location()
    assert table.maze.get_view(row, col, Direction.NORTH, 1)[0][1] == "B"


def test_send_chat_reaches_everyone(table):
    conn_a, conn_b = FakeConn(), FakeConn()
    a = table.login(conn_a, "A", "alice")
    b = table.login(conn_b, "B", "bob")
    table.send_chat(a, b"hi")
    for conn in (conn_a, conn_b):
        pkt, payload = conn.packets()[-1]
        assert pkt.type == PacketType.CHAT
        assert payload == b"alice[A] hi"
        assert pkt.size == len(payload)
    assert a.ref_count == 1 and b.ref_count == 1


def test_send_chat_truncates_long_message(table):
    conn = FakeConn()
    a = table.login(conn, "A", "n")
    table.send_chat(a, b"x" * 1000)
    _, payload = conn.packets()[-1]
    assert len(payload) == 512 - 1
    assert payload.startswith(b"n[A] x")


def test_send_chat_empty_sends_nothing(table):
    conn = FakeConn()
    a = table.login(conn, "A", "alice")
    table.send_chat(a, b"")
    assert conn.packets() == []


def test_fini_releases_all(table):
    a = table.login(FakeConn(), "A", "alice")
    b = table.login(FakeConn(), "B", "bob")
    table.fini()
    assert a.released and b.released
    assert table.logged_in() == []