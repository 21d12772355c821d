"""
Light Server - Main orchestrator for discovery, registry and rhythm services
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

# Local imports
from config_loader import load_config, setup_logging
from devices.models import clamp
from devices.registry import LightRegistry
from discovery.manager import LightDiscovery
from discovery.models import DiscoveredDevice
from discovery.network_info import resolve_subnet
from errors import LightControlError, UnknownEffect
from rhythm.controller import MAX_BPM, MIN_BPM, RhythmController
from rhythm.effects import EFFECTS

logger = logging.getLogger(__name__)

class LightServer:
    """Owns the discovery engine, light registry and rhythm controller for an embedding application"""

    def __init__(self, config_path: str = "config/config.yaml", config: Optional[Dict] = None):
        if config is None:
            config = load_config(config_path)
            setup_logging(config)
        self.config = config
        self.network_config = config['network']
        self.rhythm_config = config.get('rhythm', {})

        self.discovery = LightDiscovery(self.network_config)
        self.registry = LightRegistry(self.discovery)
        self.rhythm = RhythmController(
            bpm=self.rhythm_config.get('default_bpm', 120),
            palette=self.rhythm_config.get('palette'),
        )

        # Removed lights must not keep receiving effect ticks
        self.registry.light_removed.subscribe(lambda event: self.rhythm.remove_light(event['ip']))

        self.running = False
        self._stop_event = asyncio.Event()

    async def start(self):
        """Register configured lights, run startup discovery and attach everything to the rhythm controller"""
        logger.info("Starting WiZ light controller...")

        for ip in self.network_config.get('lights', []):
            self.registry.add_light(ip, self.network_config.get('udp_port', 38899))

        if self.network_config.get('discover_on_startup', True):
            await self.discover_and_register()

        self.rhythm.setup(self.registry.get_all_lights())
        self.running = True
        logger.info(f"[SUCCESS] Controller ready with {self.registry.get_light_count()} lights")

    async def run_forever(self):
        await self.start()
        await self._stop_event.wait()

    async def stop(self):
        """Stop effects and release all light handles"""
        logger.info("Stopping controller...")
        self.running = False

        await self.rhythm.stop()
        self.discovery.cancel()
        self.registry.disconnect_all()

        self._stop_event.set()
        logger.info("Controller stopped")

    # ================== DISCOVERY ==================

    async def discover_and_register(self, timeout: Optional[float] = None, subnet: Optional[str] = None) -> List[DiscoveredDevice]:
        """Run discovery and, when auto_add_discovered is set, add every found light to the registry"""
        subnet = resolve_subnet(subnet or self.network_config.get('subnet_broadcast'))
        timeout = timeout if timeout is not None else self.network_config.get('discovery_timeout', 5.0)

        devices = await self.registry.discover_devices(timeout, subnet)

        if devices and self.network_config.get('auto_add_discovered', True):
            self.registry.add_discovered(devices)
            logger.info(f"[LOG] Registered {len(devices)} discovered lights")

        return devices

    # ================== RHYTHM ==================

    def setup_rhythm(self, ips: Optional[List[str]] = None) -> List[str]:
        """Attach the given managed lights (or all of them) to the rhythm controller"""
        if ips:
            lights = [self.registry.get_light(ip) for ip in ips if self.registry.get_light(ip) is not None]
        else:
            lights = self.registry.get_all_lights()

        self.rhythm.setup(lights)
        return [light.ip for light in lights]

    async def start_rhythm(self, effect: Optional[str] = None, bpm: Optional[float] = None,
                           options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Start an effect at an optional new tempo

        Raises:
            ValueError: no lights are attached to the rhythm controller
            UnknownEffect: effect name is not recognized
            InvalidProperty: a colour option is malformed or bpm is not a number
        """
        if not self.rhythm.lights:
            raise ValueError("No lights configured for rhythm. Call setup_rhythm() first.")

        effect = effect or self.rhythm_config.get('default_effect', 'pulse')
        if effect not in EFFECTS:
            raise UnknownEffect(effect)

        previous_bpm = self.rhythm.bpm
        if bpm is not None:
            # start_effect reads the tempo when it schedules the new effect
            self.rhythm.bpm = clamp(bpm, MIN_BPM, MAX_BPM)

        try:
            await self.rhythm.start_effect(effect, options)
        except LightControlError:
            self.rhythm.bpm = previous_bpm
            raise
        return self.rhythm.get_status()

    # ================== STATUS ==================

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "lights": [light.to_dict() for light in self.registry.get_all_lights()],
            "discovery": {
                "state": self.discovery.state.value,
                "discovered": [device.to_dict() for device in self.registry.get_discovered_devices()],
            },
            "rhythm": self.rhythm.get_status(),
        }
