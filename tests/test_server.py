import io
import random
import socket
import threading

import pytest

from mazewar.client_registry import ClientRegistry
from mazewar.game import PlayerTable
from mazewar.maze import Direction, Maze
from mazewar.protocol import Packet, PacketType, ProtocolError, recv_packet, send_packet
from mazewar.server import client_service

TEMPLATE = ["*****", "*   *", "*****"]


@pytest.fixture
def game():
    maze = Maze(TEMPLATE, random.Random(1))
    return ClientRegistry(), PlayerTable(maze, purgatory=0)


def start_service(registry, players):
    client, server_side = socket.socketpair()
    client.settimeout(5)
    thread = threading.Thread(
        target=client_service, args=(server_side, registry, players, False),
        daemon=True,
    )
    thread.start()
    return client, thread


def login(client, avatar, name):
    send_packet(client, Packet(PacketType.LOGIN, ord(avatar), size=len(name)), name)


def read_until(client, predicate):
    seen = []
    while True:
        pkt, payload = recv_packet(client)
        seen.append((pkt, payload))
        if predicate(pkt, payload):
            return seen


def drain(client):
    client.settimeout(0.3)
    seen = []
    try:
        while True:
            seen.append(recv_packet(client))
    except ProtocolError:
        pass
    finally:
        client.settimeout(5)
    return seen


def finish(client, thread):
    client.close()
    thread.join(5)
    return not thread.is_alive()


def test_login_replies_ready_and_broadcasts_name(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    pkt, _ = recv_packet(client)
    assert pkt.type == PacketType.READY
    seen = read_until(client, lambda p, d: p.type == PacketType.SCORE and d)
    score, payload = seen[-1]
    assert payload == b"alice"
    assert score.param1 == ord("A")
    player = players.get("A")
    assert player.name == "alice"
    player.unref()
    assert len(registry) == 1
    assert finish(client, thread)


def test_disconnect_logs_out_and_unregisters(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    drain(client)
    assert finish(client, thread)
    assert len(players) == 0
    assert len(registry) == 0
    out = io.StringIO()
    players.maze.show(out)
    assert "A" not in out.getvalue()


def test_disconnect_without_login_unregisters(game):
    registry, players = game
    client, thread = start_service(registry, players)
    assert finish(client, thread)
    assert len(registry) == 0
    assert len(players) == 0


def test_avatar_in_use_replies_inuse_then_allows_retry(game):
    registry, players = game
    bob_client, bob_server = socket.socketpair()
    players.login(bob_server, "A", "bob")
    client, thread = start_service(registry, players)
    login(client, "A", b"carol")
    assert recv_packet(client)[0].type == PacketType.INUSE
    login(client, "B", b"carol")
    assert recv_packet(client)[0].type == PacketType.READY
    assert players.at(1).name == "carol"
    assert players.at(0).name == "bob"
    assert finish(client, thread)
    bob_client.close()
    bob_server.close()


def test_anonymous_login_falls_back_to_free_avatar(game):
    registry, players = game
    bob_client, bob_server = socket.socketpair()
    players.login(bob_server, "A", "bob")
    client, thread = start_service(registry, players)
    login(client, "A", b"Anonymous")
    assert recv_packet(client)[0].type == PacketType.READY
    assert players.at(1).name == "Anonymous"
    assert finish(client, thread)
    bob_client.close()
    bob_server.close()


def test_packet_before_login_auto_logs_in(game):
    registry, players = game
    client, thread = start_service(registry, players)
    send_packet(client, Packet(PacketType.REFRESH))
    assert recv_packet(client)[0].type == PacketType.READY
    assert players.at(0).name == "Anonymous"
    assert finish(client, thread)


def test_oversized_login_is_ignored(game):
    registry, players = game
    client, thread = start_service(registry, players)
    send_packet(client, Packet(PacketType.LOGIN, ord("A"), size=300), b"x" * 300)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    assert players.at(0).name == "alice"
    assert finish(client, thread)


def test_second_login_is_ignored(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    drain(client)
    login(client, "B", b"bob")
    assert drain(client) == []
    assert players.at(1) is None
    assert finish(client, thread)


def test_turn_sends_full_view(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    drain(client)
    send_packet(client, Packet(PacketType.TURN, 1))
    packets = [pkt for pkt, _ in drain(client)]
    assert packets[0].type == PacketType.CLEAR
    shows = packets[1:]
    assert shows
    assert all(p.type == PacketType.SHOW for p in shows)
    assert len(shows) % 3 == 0
    assert players.at(0).direction == Direction.WEST
    assert finish(client, thread)


def test_chat_is_prefixed_with_name_and_avatar(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    drain(client)
    send_packet(client, Packet(PacketType.SEND, size=2), b"hi")
    seen = read_until(client, lambda p, d: p.type == PacketType.CHAT)
    assert seen[-1][1] == b"alice[A] hi"
    assert finish(client, thread)


def test_laser_hit_is_handled_before_next_read(game):
    registry, players = game
    client, thread = start_service(registry, players)
    login(client, "A", b"alice")
    assert recv_packet(client)[0].type == PacketType.READY
    drain(client)
    players.at(0).mark_hit()
    send_packet(client, Packet(PacketType.REFRESH))
    seen = read_until(client, lambda p, d: p.type == PacketType.ALERT)
    cleared = [p for p, _ in seen if p.type == PacketType.SCORE and p.param2 == -1]
    assert cleared
    assert cleared[0].param1 == ord("A")
    assert finish(client, thread)
    assert players.at(0) is None