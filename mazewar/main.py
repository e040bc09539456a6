"""Command-line entry point and listening loop of the Maze War server."""

from __future__ import annotations

import getopt
import logging
import random
import re
import signal
import socket
import sys
import threading
from typing import List, Optional, Sequence

from .client_registry import ClientRegistry
from .game import PURGATORY_SECONDS, PlayerTable
from .maze import Maze
from .server import client_service

log = logging.getLogger(__name__)

DEFAULT_MAZE = (
    "******************************",
    "***** %%%%%%%%% &&&&&&&&&&& **",
    "***** %%%%%%%%%        $$$$  *",
    "*           $$$$$$ $$$$$$$$$ *",
    "*##########                  *",
    "*########## @@@@@@@@@@@@@@@@@*",
    "*           @@@@@@@@@@@@@@@@@*",
    "******************************",
)

USAGE = "Usage: mazewar -p <port>"
PORT_REQUIRED = "Error: Port number required via -p <port>"


class UsageError(ValueError):
    """Raised when the command line is not valid."""


class MazeWarServer:
    """A listening server that starts a service thread for each client."""

    def __init__(self, port: int, host: str = "",
                 template: Sequence[str] = DEFAULT_MAZE,
                 debug_show_maze: bool = True,
                 purgatory: float = PURGATORY_SECONDS,
                 rng: Optional[random.Random] = None,
                 backlog: int = 5,
                 poll_interval: float = 0.5) -> None:
        self.registry = ClientRegistry()
        self.maze = Maze(template, rng)
        self.players = PlayerTable(self.maze, purgatory)
        self.debug_show_maze = debug_show_maze
        self.poll_interval = poll_interval
        self._stopping = threading.Event()
        self._term_lock = threading.Lock()
        self._terminated = False
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self.address = sock.getsockname()
        log.info("MazeWar server listening on port %d", self.address[1])

    def stop(self) -> None:
        """Ask serve_forever to return."""
        self._stopping.set()

    def serve_forever(self) -> None:
        """Accept clients until stopped, serving each in its own thread."""
        self._sock.settimeout(self.poll_interval)
        while not self._stopping.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except InterruptedError:
                continue
            except OSError as exc:
                if self._stopping.is_set():
                    break
                log.error("accept: %s", exc)
                continue
            conn.settimeout(None)
            threading.Thread(
                target=client_service,
                args=(conn, self.registry, self.players, self.debug_show_maze),
                daemon=True,
            ).start()

    def terminate(self) -> None:
        """Stop listening, shut down every client and wait for them to finish."""
        with self._term_lock:
            if self._terminated:
                return
            self._terminated = True
        self.stop()
        try:
            self._sock.close()
        except OSError as exc:
            log.debug("closing listening socket failed: %s", exc)
        self.registry.shutdown_all()
        log.debug("waiting for service threads to terminate")
        self.registry.wait_for_empty()
        log.debug("all service threads terminated")
        self.players.fini()
        log.debug("MazeWar server terminating")


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def parse_args(argv: Sequence[str]) -> int:
    """Return the port given by ``-p``; raise UsageError if there is none."""
    try:
        opts, _ = getopt.getopt(list(argv), "p:")
    except getopt.GetoptError as exc:
        raise UsageError(USAGE) from exc
    port = 0
    for _, value in opts:
        port = _atoi(value)
    if port <= 0:
        raise UsageError(PORT_REQUIRED)
    return port


def main(argv: Optional[List[str]] = None) -> int:
    """Run the server until SIGHUP or an interrupt; return the exit status."""
    args = sys.argv[1:] if argv is None else argv
    try:
        port = parse_args(args)
    except UsageError as exc:
        print(exc, file=sys.stderr)
        return 1

    server: Optional[MazeWarServer] = None
    hangup = threading.Event()

    def on_hangup(signum, frame) -> None:
        hangup.set()
        if server is not None:
            server.stop()

    can_signal = (hasattr(signal, "SIGHUP")
                  and threading.current_thread() is threading.main_thread())
    previous = signal.signal(signal.SIGHUP, on_hangup) if can_signal else None
    try:
        try:
            server = MazeWarServer(port)
        except OSError as exc:
            print(f"bind: {exc}", file=sys.stderr)
            return 1
        if hangup.is_set():
            server.stop()
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            server.terminate()
        return 0
    finally:
        if can_signal:
            signal.signal(signal.SIGHUP, previous)


if __name__ == "__main__":
    sys.exit(main())