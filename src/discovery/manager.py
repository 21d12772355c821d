"""
Main discovery manager with broadcast-first, ping-sweep fallback strategy
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from .models import DiscoveredDevice, DiscoveryResult, DiscoveryState, ProbeResult
from .network_discovery import NetworkDiscovery
from .network_info import DEFAULT_BROADCAST

logger = logging.getLogger(__name__)


class LightDiscovery:
    """
    Discovery service for WiZ lights

    IDLE -> BROADCASTING -> DONE when the broadcast phase finds anything,
    otherwise BROADCASTING -> PING_SWEEPING -> DONE. The timeout is split
    evenly between the two phases.
    """

    def __init__(self, config: Dict, network: Optional[NetworkDiscovery] = None):
        self.config = config
        self.network = network or NetworkDiscovery(config)
        self.discovery_timeout = config.get('discovery_timeout', 5.0)
        self.probe_timeout = config.get('probe_timeout', 1.0)
        self.state = DiscoveryState.IDLE
        self.discovered_devices: List[DiscoveredDevice] = []
        self.last_result: Optional[DiscoveryResult] = None
        self._cancelled = False

    def cancel(self) -> None:
        """Ask a running discovery to stop at its next check"""
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    async def discover(self, timeout: Optional[float] = None, subnet: str = DEFAULT_BROADCAST) -> List[DiscoveredDevice]:
        result = await self.discover_with_result(timeout, subnet)
        return result.devices

    async def discover_with_result(self, timeout: Optional[float] = None, subnet: str = DEFAULT_BROADCAST) -> DiscoveryResult:
        timeout = self.discovery_timeout if timeout is None else timeout
        phase_timeout = timeout / 2
        start_time = time.time()
        self._cancelled = False

        logger.info(f"[SEARCH] Starting WiZ light discovery on {subnet} (timeout {timeout:.1f}s)...")

        # Phase 1: broadcast, the fast path
        self.state = DiscoveryState.BROADCASTING
        try:
            devices = await self.network.broadcast_discovery(phase_timeout, subnet, self.is_cancelled)
        except Exception as e:
            logger.error(f"Broadcast phase failed: {e}")
            devices = []

        if devices:
            logger.info(f"[PASS] Broadcast found {len(devices)} lights. Discovery complete.")
            return self._finish(devices, "broadcast", start_time, tested=1, phases=["broadcast"])

        if self._cancelled:
            logger.info("Discovery cancelled after broadcast phase")
            return self._finish([], "broadcast", start_time, tested=1, phases=["broadcast"])

        # Phase 2: ping every host in the /24
        logger.info("Broadcast failed or found no lights. Falling back to IP ping sweep...")
        self.state = DiscoveryState.PING_SWEEPING
        try:
            devices = await self.network.ping_sweep(phase_timeout, subnet)
        except Exception as e:
            logger.error(f"Ping sweep failed: {e}")
            devices = []

        logger.info(f"[PASS] IP ping sweep complete. Found {len(devices)} lights total.")
        return self._finish(devices, "ping", start_time, tested=254, phases=["broadcast", "ping"])

    def _finish(self, devices: List[DiscoveredDevice], method: str, start_time: float,
                tested: int, phases: List[str]) -> DiscoveryResult:
        self.state = DiscoveryState.DONE
        self.discovered_devices = devices
        self.last_result = DiscoveryResult(
            devices=devices,
            method=method,
            duration_seconds=time.time() - start_time,
            devices_tested=tested,
            success_count=len(devices),
            phases=phases,
        )
        return self.last_result

    async def test_single_ip(self, ip: str, timeout: Optional[float] = None) -> ProbeResult:
        timeout = self.probe_timeout if timeout is None else timeout
        result = await self.network.test_single_ip(ip, timeout)
        if result.success:
            logger.info(f"[OK] {ip} answered probe: {result.response}")
        else:
            logger.info(f"✗ {ip} did not answer probe: {result.error}")
        return result

    async def test_ips(self, ips: List[str], timeout: Optional[float] = None) -> List[ProbeResult]:
        """Probe several known addresses concurrently"""
        return list(await asyncio.gather(*(self.test_single_ip(ip, timeout) for ip in ips)))

    def get_discovered_devices(self) -> List[DiscoveredDevice]:
        return self.discovered_devices
