"""Maze War game server: packet protocol, maze, players and the TCP server loop."""

__version__ = "0.1.0"