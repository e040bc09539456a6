# mazewar

A server for Maze War, a multi-player game in which players walk the corridors
of a maze, look down them and fire lasers at one another. Clients connect over
TCP and exchange fixed-size binary packets, each optionally followed by a
payload.

## Installing

```
pip install .
```

## Running the server

```
mazewar -p 9999
```

`-p` is required and must be a positive port number. Without it, or with an
unknown option, the command prints a message on standard error and exits with
status 1. It also exits with status 1 if the port cannot be bound.

The server listens on all interfaces and serves each client in its own
thread. After handling each packet from a logged-in client it prints the
whole maze on standard error, for debugging.

On `SIGHUP` or Ctrl-C the server shuts down cleanly and exits with status 0.
It stops accepting clients, shuts down the reading side of every client
connection, and waits for every service thread to finish.

## The game

The server uses a built-in maze of 8 rows and 30 columns. In a maze, a space is
an empty cell and an upper-case letter is a player's avatar. Any other
printable character below `A` is a wall.

### Logging in

A client logs in with a `LOGIN` packet. Its `param1` is the avatar it wants
(`A` to `Z`), and its payload is the player's name, up to 256 bytes.

- If the avatar is free, the server replies `READY` and places the player at a
  random empty cell. It then sends every player a `SCORE` packet that carries
  the new player's name as payload.
- If the avatar is taken or is not an upper-case letter, the server replies
  `INUSE`. The exception is a player named exactly `Anonymous`, who gets the
  first free avatar instead.
- A player with an empty name is called `anonymous`.
- A `LOGIN` sent after logging in is ignored.

A client that sends any other packet before logging in is logged in as
`Anonymous` on the first free avatar. That first packet is used only to log
in; it is not otherwise acted on.

### Requests

| Packet    | Effect                                                         |
|-----------|----------------------------------------------------------------|
| `MOVE`    | step forward if `param1` is 1, otherwise step back             |
| `TURN`    | turn left if `param1` is 1, otherwise turn right               |
| `FIRE`    | fire the laser along the direction of gaze                     |
| `REFRESH` | resend the player's full view                                  |
| `SEND`    | send `name[avatar] message` as `CHAT` to every player          |

Chat text is cut to 511 bytes and ends at the first NUL byte.

### What the server sends

- **Views.** Every view update is a full one: a `CLEAR` packet, followed by
  one `SHOW` packet for each cell of the view. In a `SHOW` packet, `param1` is
  the cell's character code, `param2` is the side (0 left wall, 1 corridor,
  2 right wall), and `param3` is the distance from the player. A view reaches
  at most 16 cells, or less if the edge of the maze comes first.
- **Scores.** `SCORE` packets carry the avatar in `param1` and the score in
  `param2`. A score of -1 removes the avatar from the scoreboard.
- **Alerts.** An `ALERT` packet tells a player that they have been hit.

### Lasers

A laser hits the first avatar down the corridor, unless a wall is in the way.
The shooter scores a point, and every player is sent the new score.

The server checks for a hit on a player before reading that player's next
packet. When it finds one, it:

1. removes the player from the maze;
2. sends that player a `SCORE` of -1 and an `ALERT`;
3. refreshes the other players' views;
4. waits three seconds;
5. places the player at a new random cell.

### Disconnecting

When a client disconnects, its player is removed from the maze and from the
player table.

## Packet format

The header is 16 bytes in network byte order:

- `type`: unsigned byte
- `param1`, `param2`, `param3`: signed bytes
- `size`: unsigned 16 bits
- two bytes of padding
- `timestamp_sec` and `timestamp_nsec`: unsigned 32 bits each

`size` bytes of payload follow the header.

## Using the pieces as a library

- `mazewar.protocol`
  - `Packet`, with `pack()` and `Packet.unpack()`
  - `PacketType` and `ObjectType`
  - `send_packet(conn, pkt, data)` and `recv_packet(conn)`, which returns
    `(packet, payload_or_None)`
  - both raise `ProtocolError` on failure or end of file
- `mazewar.maze`
  - `Maze`, which provides `set_player`, `set_player_random`, `remove_player`,
    `move`, `find_target`, `get_view` and `show`
  - `Direction`, with `turn_left`, `turn_right`, `reverse` and `delta`
  - `show_view`, `is_empty`, `is_avatar` and `is_wall`
- `mazewar.player`
  - `Player`, the state of one player, guarded by a re-entrant lock and
    reference counted with `ref` and `unref`
- `mazewar.game`
  - `PlayerTable`, which maps avatars to players and provides `login`,
    `logout`, `get`, `at`, `logged_in`, `reset`, `fire_laser`,
    `check_for_laser_hit`, `send_chat` and `fini`
- `mazewar.client_registry`
  - `ClientRegistry`, which tracks connected clients and provides
    `register`, `unregister`, `shutdown_all` and `wait_for_empty(timeout)`
- `mazewar.server`
  - `client_service(conn, registry, players, debug_show_maze)`, the service
    loop for one connection
- `mazewar.main`
  - `MazeWarServer`, with `serve_forever`, `stop` and `terminate`
  - `parse_args` and `main`

## What it does not do

This package is only the server. It has no game client and no display, so
playing needs a separate client that speaks the packet protocol above.

The server always sends full view updates; it never sends only the cells that
changed.

## Running the tests

```
pip install .[test]
pytest
```