"""
Registry of managed WiZ lights with batch operations
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from errors import InvalidProperty
from events import EventChannel
from udp_helper import WIZ_PORT
from discovery.manager import LightDiscovery
from discovery.models import DiscoveredDevice
from .models import BatchResult, LightState, batch_succeeded, parse_property_update
from .wiz_light import LightDevice, WizLight

logger = logging.getLogger(__name__)


class LightRegistry:
    """
    Authoritative set of managed lights, keyed by IP address

    Batch operations fan out to every light concurrently and always return
    one BatchResult per light present at call time; a failing light never
    aborts the others.
    """

    def __init__(self, discovery: Optional[LightDiscovery] = None):
        self.discovery = discovery
        self.lights: Dict[str, LightDevice] = {}
        self.discovered_devices: List[DiscoveredDevice] = []
        self._unsubscribers: Dict[str, Callable[[], None]] = {}

        self.light_state_changed = EventChannel("light_state_changed")
        self.light_removed = EventChannel("light_removed")

    # ================== MEMBERSHIP ==================

    def add_light(self, ip: str, port: int = WIZ_PORT, mac: Optional[str] = None) -> LightDevice:
        """Return the existing handle for ip, or create and register a new one"""
        existing = self.lights.get(ip)
        if existing is not None:
            logger.debug(f"Light {ip} already managed")
            return existing

        light = WizLight(ip, port, mac=mac)
        self.lights[ip] = light

        def forward(state: LightState) -> None:
            self.light_state_changed.emit({"ip": ip, "state": state})

        self._unsubscribers[ip] = light.state_changed.subscribe(forward)
        logger.info(f"Added light {ip}:{port} to registry")
        return light

    def add_discovered(self, devices: List[DiscoveredDevice]) -> List[LightDevice]:
        return [self.add_light(device.ip, device.port, mac=device.mac) for device in devices]

    def remove_light(self, ip: str) -> bool:
        light = self.lights.pop(ip, None)
        if light is None:
            return False

        unsubscribe = self._unsubscribers.pop(ip, None)
        if unsubscribe:
            unsubscribe()
        light.disconnect()
        logger.info(f"Removed light {ip} from registry")
        self.light_removed.emit({"ip": ip})
        return True

    def get_light(self, ip: str) -> Optional[LightDevice]:
        return self.lights.get(ip)

    def get_all_lights(self) -> List[LightDevice]:
        return list(self.lights.values())

    def get_all_light_ips(self) -> List[str]:
        return list(self.lights.keys())

    def get_light_count(self) -> int:
        return len(self.lights)

    def disconnect_all(self) -> None:
        for ip in list(self.lights.keys()):
            unsubscribe = self._unsubscribers.pop(ip, None)
            if unsubscribe:
                unsubscribe()
            self.lights.pop(ip).disconnect()
            logger.debug(f"Disconnected light {ip}")
        logger.info("All lights disconnected")

    # ================== BATCH OPERATIONS ==================

    async def _run_batch(
        self,
        label: str,
        operation: Callable[[LightDevice], Awaitable[bool]],
    ) -> List[BatchResult]:
        """Issue operation on every light before awaiting any, then collect per-light outcomes"""
        targets = list(self.lights.items())
        outcomes = await asyncio.gather(
            *(operation(light) for _, light in targets),
            return_exceptions=True,
        )

        results = []
        for (ip, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"{label} failed for {ip}: {outcome}")
                results.append(BatchResult(ip=ip, success=False, error=str(outcome)))
            else:
                results.append(BatchResult(ip=ip, success=bool(outcome)))

        succeeded = sum(1 for result in results if result.success)
        logger.info(f"{label}: {succeeded}/{len(results)} lights succeeded")
        return results

    async def turn_on_all(self) -> List[BatchResult]:
        return await self._run_batch("Turn on", lambda light: light.turn_on())

    async def turn_off_all(self) -> List[BatchResult]:
        return await self._run_batch("Turn off", lambda light: light.turn_off())

    async def update_all_lights(self, payload) -> List[BatchResult]:
        """Apply one property update to every light; an invalid payload fails each entry without I/O"""
        try:
            update = parse_property_update(payload)
        except InvalidProperty as e:
            logger.warning(f"Rejected update for all lights: {e}")
            return [BatchResult(ip=ip, success=False, error=str(e)) for ip in self.lights]

        return await self._run_batch("Update", lambda light: light.update_properties(update))

    # ================== CAPABILITY INTERFACE ==================

    async def turn_on(self) -> bool:
        return batch_succeeded(await self.turn_on_all())

    async def turn_off(self) -> bool:
        return batch_succeeded(await self.turn_off_all())

    async def update_properties(self, payload) -> bool:
        return batch_succeeded(await self.update_all_lights(payload))

    async def get_state(self) -> Dict[str, LightState]:
        return {ip: light.state.copy() for ip, light in self.lights.items()}

    # ================== DISCOVERY ==================

    async def discover_devices(self, timeout: float = 5.0, subnet: str = "192.168.1.255") -> List[DiscoveredDevice]:
        if self.discovery is None:
            raise RuntimeError("Registry has no discovery engine configured")

        logger.info(f"Starting discovery on {subnet}")
        self.discovered_devices = await self.discovery.discover(timeout, subnet)
        logger.info(f"Discovered {len(self.discovered_devices)} devices")
        return self.discovered_devices

    def get_discovered_devices(self) -> List[DiscoveredDevice]:
        return self.discovered_devices
