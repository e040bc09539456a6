"""Wire format of the Maze War game protocol.

Every packet is a fixed-size header, with multi-byte fields in network
byte order, followed by an optional payload whose length the header gives.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass
from typing import Optional, Tuple, Union

log = logging.getLogger(__name__)

# type, param1, param2, param3, size, (2 bytes of alignment padding),
# timestamp_sec, timestamp_nsec
_HEADER = struct.Struct("!BbbbH2xII")
HEADER_SIZE = _HEADER.size
MAX_PAYLOAD = 0xFFFF


class PacketType(enum.IntEnum):
    """Packet types, in wire order."""

    NONE = 0
    # Client-to-server
    LOGIN = 1
    MOVE = 2
    TURN = 3
    FIRE = 4
    REFRESH = 5
    SEND = 6
    # Server-to-client
    READY = 7
    INUSE = 8
    CLEAR = 9
    SHOW = 10
    ALERT = 11
    SCORE = 12
    CHAT = 13


class ObjectType(enum.IntEnum):
    """Object types carried by SHOW packets."""

    NONE = 0
    PLAYER = 1
    WALL = 2
    DOOR = 3


class ProtocolError(Exception):
    """Raised when a packet cannot be sent or received."""


def _to_int8(value: int) -> int:
    return ((int(value) + 128) & 0xFF) - 128


@dataclass
class Packet:
    """The fixed-size header of a packet, in host representation."""

    type: Union[PacketType, int] = PacketType.NONE
    param1: int = 0
    param2: int = 0
    param3: int = 0
    size: int = 0
    timestamp_sec: int = 0
    timestamp_nsec: int = 0

    def pack(self) -> bytes:
        """Encode the header in network byte order.

        The generic parameters are one signed byte each and wrap on overflow.
        """
        if not 0 <= self.size <= MAX_PAYLOAD:
            raise ProtocolError(f"payload size {self.size} out of range")
        try:
            return _HEADER.pack(
                int(self.type) & 0xFF,
                _to_int8(self.param1),
                _to_int8(self.param2),
                _to_int8(self.param3),
                self.size,
                self.timestamp_sec & 0xFFFFFFFF,
                self.timestamp_nsec & 0xFFFFFFFF,
            )
        except struct.error as exc:
            raise ProtocolError(str(exc)) from exc

    @classmethod
    def unpack(cls, header: bytes) -> "Packet":
        """Decode a header received from the network."""
        if len(header) != HEADER_SIZE:
            raise ProtocolError(
                f"header must be {HEADER_SIZE} bytes, got {len(header)}"
            )
        ptype, p1, p2, p3, size, sec, nsec = _HEADER.unpack(header)
        try:
            ptype = PacketType(ptype)
        except ValueError:
            pass
        return cls(ptype, p1, p2, p3, size, sec, nsec)


def _recv_exactly(conn, count: int) -> bytes:
    chunks = []
    remaining = count
    while remaining > 0:
        try:
            chunk = conn.recv(remaining)
        except OSError as exc:
            raise ProtocolError(f"read failed: {exc}") from exc
        if not chunk:
            raise ProtocolError("connection closed")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def send_packet(conn, pkt: Packet, data: Optional[bytes] = None) -> None:
    """Send a header followed by ``pkt.size`` bytes of ``data``, if any."""
    if conn is None or pkt is None:
        raise ProtocolError("invalid arguments")
    message = pkt.pack()
    if pkt.size > 0 and data is not None:
        payload = bytes(data[: pkt.size])
        if len(payload) < pkt.size:
            raise ProtocolError(
                f"payload has {len(payload)} bytes, header says {pkt.size}"
            )
        message += payload
    try:
        conn.sendall(message)
    except OSError as exc:
        raise ProtocolError(f"write failed: {exc}") from exc
    log.debug("sent packet %r", pkt)


def recv_packet(conn) -> Tuple[Packet, Optional[bytes]]:
    """Receive one packet, blocking until it arrives.

    Returns the header and the payload, or ``None`` when there is none.
    """
    if conn is None:
        raise ProtocolError("invalid arguments")
    pkt = Packet.unpack(_recv_exactly(conn, HEADER_SIZE))
    payload = _recv_exactly(conn, pkt.size) if pkt.size > 0 else None
    log.debug("received packet %r", pkt)
    return pkt, payload