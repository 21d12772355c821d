"""
Shared fixtures: in-memory lights and a loopback WiZ bulb responder
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import List, Optional

import pytest

from devices.models import LightState, parse_property_update


class FakeLight:
    """Records every call; succeeds unless told to fail or raise"""

    def __init__(self, ip: str, fail: bool = False, error: Optional[Exception] = None):
        self.ip = ip
        self.port = 38899
        self.state = LightState()
        self.fail = fail
        self.error = error
        self.calls: List[tuple] = []
        self.disconnected = False

    async def _record(self, name: str, *args) -> bool:
        self.calls.append((name, *args))
        if self.error is not None:
            raise self.error
        return not self.fail

    async def turn_on(self) -> bool:
        return await self._record('turn_on')

    async def turn_off(self) -> bool:
        return await self._record('turn_off')

    async def set_color(self, r, g, b, brightness=100) -> bool:
        return await self._record('set_color', r, g, b, brightness)

    async def set_brightness(self, brightness) -> bool:
        return await self._record('set_brightness', brightness)

    async def update_properties(self, payload) -> bool:
        parse_property_update(payload)
        return await self._record('update_properties', payload)

    async def get_state(self):
        return self.state

    def disconnect(self) -> None:
        self.disconnected = True

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_lights():
    return [FakeLight(f"192.168.1.{i}") for i in range(10, 13)]


class BulbResponder(asyncio.DatagramProtocol):
    """Answers every datagram with each of the configured replies, in order"""

    def __init__(self, replies: List[bytes]):
        self.replies = replies
        self.received: List[bytes] = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.received.append(data)
        for reply in self.replies:
            self.transport.sendto(reply, addr)


def pilot_reply(**result) -> bytes:
    return json.dumps({"method": "getPilot", "env": "pro", "result": result}).encode()


@asynccontextmanager
async def loopback_bulb(replies: List[bytes]):
    """A fake bulb on 127.0.0.1; yields (port, protocol)"""
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: BulbResponder(replies), local_addr=('127.0.0.1', 0)
    )
    try:
        yield transport.get_extra_info('sockname')[1], protocol
    finally:
        transport.close()
