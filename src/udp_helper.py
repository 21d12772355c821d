# UDP Helper for WiZ Light Connections
# Non-blocking datagram sockets and JSON message framing for the WiZ LAN protocol

import asyncio
import json
import socket
import logging
from typing import Any, Dict, Optional, Tuple

from errors import MalformedResponse, ProbeTimeout

logger = logging.getLogger(__name__)

WIZ_PORT = 38899
RECV_BUFFER_SIZE = 4096


def create_udp_socket(broadcast: bool = False) -> socket.socket:
    """
    Create a non-blocking IPv4 UDP socket bound to an ephemeral port
    Caller owns the socket and must close it
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setblocking(False)
        if broadcast:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind(('', 0))
    except OSError:
        sock.close()
        raise
    return sock


def encode_message(method: str, params: Optional[Dict[str, Any]] = None) -> bytes:
    """One request datagram: {"method": ..., "params": {...}}"""
    return json.dumps({"method": method, "params": params or {}}).encode('utf-8')


def decode_message(data: bytes) -> Dict[str, Any]:
    """Parse a reply datagram, raising MalformedResponse for anything but a JSON object"""
    try:
        message = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedResponse(f"Invalid JSON: {e}")

    if not isinstance(message, dict):
        raise MalformedResponse(f"Expected JSON object, got {type(message).__name__}")
    return message


PROBE_MESSAGE = encode_message('getPilot')


async def send_datagram(sock: socket.socket, data: bytes, address: Tuple[str, int]) -> None:
    """Hand one datagram to the network stack"""
    loop = asyncio.get_running_loop()
    await loop.sock_sendto(sock, data, address)


async def receive_datagram(sock: socket.socket, timeout: float) -> Tuple[bytes, Tuple[str, int]]:
    """Wait up to timeout seconds for one datagram; raises ProbeTimeout"""
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(loop.sock_recvfrom(sock, RECV_BUFFER_SIZE), timeout=timeout)
    except asyncio.TimeoutError:
        raise ProbeTimeout(f"No reply within {timeout:.3f}s")
