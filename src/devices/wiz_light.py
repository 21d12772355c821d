"""
WiZ light protocol client - one handle per bulb
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from errors import InvalidProperty, SendFailure
from events import EventChannel
from udp_helper import WIZ_PORT, create_udp_socket, encode_message, send_datagram
from .models import (
    BRIGHTNESS_RANGE,
    CHANNEL_RANGE,
    SCENE_RANGE,
    TEMPERATURE_RANGE,
    LightState,
    RGBColor,
    clamp,
    parse_property_update,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class LightDevice(Protocol):
    """Capability interface the registry and rhythm controller drive lights through"""

    ip: str
    port: int
    state: LightState

    async def turn_on(self) -> bool: ...

    async def turn_off(self) -> bool: ...

    async def set_color(self, r: int, g: int, b: int, brightness: int = 100) -> bool: ...

    async def set_brightness(self, brightness: int) -> bool: ...

    async def update_properties(self, payload) -> bool: ...

    async def get_state(self) -> Optional[LightState]: ...

    def disconnect(self) -> None: ...


class WizLight:
    """
    Control client for a single WiZ bulb

    The protocol has no delivery confirmation: a command succeeds once its
    datagram is handed to the network stack, and local state is updated
    optimistically from what was sent.
    """

    def __init__(self, ip: str, port: int = WIZ_PORT, mac: Optional[str] = None):
        self.ip = ip
        self.port = port
        self.mac = mac
        self.state = LightState()
        self.state_changed = EventChannel(f"light:{ip}")

    def __repr__(self) -> str:
        return f"WizLight({self.ip}:{self.port})"

    async def send_command(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """
        Send one {method, params} datagram to the bulb

        Raises:
            SendFailure: socket could not be created or the send failed
        """
        data = encode_message(method, params)
        try:
            sock = create_udp_socket()
        except OSError as e:
            raise SendFailure(self.ip, self.port, e)

        try:
            logger.debug(f"TX -> {self.ip}:{self.port}: {data!r}")
            await send_datagram(sock, data, (self.ip, self.port))
        except OSError as e:
            raise SendFailure(self.ip, self.port, e)
        finally:
            sock.close()

    async def execute_command(self, method: str, params: Dict[str, Any], apply_state) -> bool:
        """Send a command, then update local state and notify observers; never raises"""
        try:
            await self.send_command(method, params)
        except SendFailure as e:
            logger.error(f"Error {method} {params} for {self.ip}: {e.cause}")
            return False

        apply_state(self.state)
        self.state_changed.emit(self.state.copy())
        return True

    def _reject(self, what: str, error: InvalidProperty) -> bool:
        logger.error(f"Invalid {what} for {self.ip}: {error}")
        return False

    # ================== COMMANDS ==================

    async def turn_on(self) -> bool:
        return await self.execute_command('setPilot', {"state": True}, _set_power(True))

    async def turn_off(self) -> bool:
        return await self.execute_command('setPilot', {"state": False}, _set_power(False))

    async def set_color(self, r: int, g: int, b: int, brightness: int = 100) -> bool:
        try:
            r, g, b = (clamp(channel, *CHANNEL_RANGE) for channel in (r, g, b))
            dimming = clamp(brightness, *BRIGHTNESS_RANGE)
        except InvalidProperty as e:
            return self._reject("colour", e)

        def apply(state: LightState) -> None:
            state.color = RGBColor(r, g, b)
            state.brightness = dimming
            state.temperature = None

        return await self.execute_command('setPilot', {"r": r, "g": g, "b": b, "dimming": dimming}, apply)

    async def set_brightness(self, brightness: int) -> bool:
        try:
            dimming = clamp(brightness, *BRIGHTNESS_RANGE)
        except InvalidProperty as e:
            return self._reject("brightness", e)

        def apply(state: LightState) -> None:
            state.brightness = dimming

        return await self.execute_command('setPilot', {"dimming": dimming}, apply)

    async def set_color_temperature(self, temperature: int) -> bool:
        try:
            temp = clamp(temperature, *TEMPERATURE_RANGE)
        except InvalidProperty as e:
            return self._reject("temperature", e)

        def apply(state: LightState) -> None:
            state.temperature = temp
            state.color = None

        return await self.execute_command('setPilot', {"temp": temp}, apply)

    async def set_scene(self, scene_id: int) -> bool:
        try:
            scene = clamp(scene_id, *SCENE_RANGE)
        except InvalidProperty as e:
            return self._reject("scene", e)

        def apply(state: LightState) -> None:
            state.scene_id = scene

        return await self.execute_command('setPilot', {"sceneId": scene}, apply)

    async def update_properties(self, payload) -> bool:
        """
        Apply a colour, brightness or temperature update

        Raises:
            InvalidProperty: payload has no recognized field (checked before any I/O)
        """
        update = parse_property_update(payload)
        return await self.execute_command('setPilot', update.to_params(), update.apply_to)

    async def get_state(self) -> Optional[LightState]:
        """
        Best-effort state query

        Replies are not correlated with requests, so the getPilot reply is not
        awaited; the returned state is the last locally tracked one and may be
        stale. Returns None if the query could not be sent.
        """
        try:
            await self.send_command('getPilot')
        except SendFailure as e:
            logger.error(f"Error getting state for {self.ip}: {e.cause}")
            return None
        return self.state.copy()

    def disconnect(self) -> None:
        # no persistent socket; only detach observers
        self.state_changed.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "port": self.port,
            "mac": self.mac,
            "state": self.state.to_dict(),
        }


def _set_power(on: bool):
    def apply(state: LightState) -> None:
        state.state = on
    return apply
