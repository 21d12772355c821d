"""
Network discovery methods for WiZ lights
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple

from errors import MalformedResponse, ProbeTimeout
from udp_helper import (
    PROBE_MESSAGE,
    WIZ_PORT,
    create_udp_socket,
    decode_message,
    receive_datagram,
    send_datagram,
)
from .models import DiscoveredDevice, ProbeResult
from .network_info import sweep_addresses

logger = logging.getLogger(__name__)

# Per-probe deadline during a sweep is the phase timeout divided by this
PROBE_TIMEOUT_DIVISOR = 50


def parse_probe_response(data: bytes, addr: Tuple[str, int], method: str) -> Optional[DiscoveredDevice]:
    """
    Turn a reply datagram into a DiscoveredDevice

    Only replies whose result carries a MAC or an on/off state are accepted;
    anything else sharing the port (bad JSON, unrelated traffic) is dropped.
    """
    try:
        message = decode_message(data)
    except MalformedResponse as e:
        logger.debug(f"Ignoring malformed reply from {addr[0]}: {e}")
        return None

    result = message.get('result')
    if not isinstance(result, dict):
        return None
    if not result.get('mac') and result.get('state') is None:
        return None

    return DiscoveredDevice(
        ip=addr[0],
        port=addr[1],
        response=result,
        method=method,
        mac=result.get('mac'),
        state=result.get('state'),
        rssi=result.get('rssi'),
    )


class NetworkDiscovery:
    """Handles UDP broadcast and per-address ping discovery"""

    def __init__(self, config: dict):
        self.config = config
        self.udp_port = config.get('udp_port', WIZ_PORT)
        self.broadcast_interval = config.get('broadcast_interval', 0.5)
        self.max_concurrent_probes = max(1, config.get('max_concurrent_probes', 254))

    async def broadcast_discovery(
        self,
        timeout: float,
        subnet: str,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> List[DiscoveredDevice]:
        """
        Probe the subnet broadcast address every broadcast_interval until the
        deadline, collecting replies deduplicated by source address.
        A socket that cannot be opened yields an empty list.
        """
        devices: Dict[str, DiscoveredDevice] = {}

        try:
            sock = create_udp_socket(broadcast=True)
        except OSError as e:
            logger.error(f"UDP broadcast discovery failed: {e}")
            return []

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        def stopped() -> bool:
            return is_cancelled is not None and is_cancelled()

        async def send_probes():
            while not stopped():
                try:
                    await send_datagram(sock, PROBE_MESSAGE, (subnet, self.udp_port))
                except OSError as e:
                    logger.warning(f"Error sending broadcast to {subnet}: {e}")
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return
                await asyncio.sleep(min(self.broadcast_interval, remaining))

        logger.info(f"Sending UDP broadcast discovery to {subnet}:{self.udp_port}...")
        sender = asyncio.create_task(send_probes())
        try:
            while not stopped():
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    data, addr = await receive_datagram(sock, min(remaining, self.broadcast_interval))
                except ProbeTimeout:
                    continue
                except OSError as e:
                    logger.debug(f"Broadcast receive error: {e}")
                    await asyncio.sleep(min(0.05, max(0.0, deadline - loop.time())))
                    continue

                device = parse_probe_response(data, addr, "broadcast")
                if device and device.ip not in devices:
                    devices[device.ip] = device
                    logger.info(f"Found light via broadcast: {device.ip} (mac={device.mac})")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            sock.close()

        return list(devices.values())

    async def probe(self, ip: str, timeout: float, method: str = "ping") -> Optional[DiscoveredDevice]:
        """Send one probe to ip on its own socket; None on timeout, error or no valid reply"""
        try:
            sock = create_udp_socket()
        except OSError as e:
            logger.debug(f"Probe socket for {ip} failed: {e}")
            return None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            await send_datagram(sock, PROBE_MESSAGE, (ip, self.udp_port))
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                data, addr = await receive_datagram(sock, remaining)
                device = parse_probe_response(data, addr, method)
                if device:
                    return device
        except (ProbeTimeout, OSError):
            return None
        finally:
            sock.close()

    async def ping_sweep(self, timeout: float, subnet: str) -> List[DiscoveredDevice]:
        """
        Probe every host .1-.254 of the subnet's /24 concurrently

        Each probe gets timeout / 50 to answer; at most max_concurrent_probes
        sockets are open at once. The phase as a whole never outlives timeout.
        """
        addresses = sweep_addresses(subnet)
        probe_timeout = timeout / PROBE_TIMEOUT_DIVISOR
        semaphore = asyncio.Semaphore(self.max_concurrent_probes)

        logger.info(f"Scanning {len(addresses)} addresses around {subnet} "
                    f"(probe timeout {probe_timeout:.3f}s, max {self.max_concurrent_probes} in flight)...")

        async def probe_bounded(ip: str) -> Optional[DiscoveredDevice]:
            async with semaphore:
                return await self.probe(ip, probe_timeout)

        tasks = [asyncio.create_task(probe_bounded(ip)) for ip in addresses]
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Ping sweep deadline reached with {len(pending)} probes outstanding")
            await asyncio.gather(*pending, return_exceptions=True)

        devices: Dict[str, DiscoveredDevice] = {}
        for task in tasks:
            if task.cancelled() or task.exception() is not None:
                continue
            device = task.result()
            if device and device.ip not in devices:
                devices[device.ip] = device
                logger.info(f"Found light via ping: {device.ip} (mac={device.mac})")

        return list(devices.values())

    async def test_single_ip(self, ip: str, timeout: float = 1.0) -> ProbeResult:
        """Diagnostic probe of one address; any reply carrying a result counts"""
        try:
            sock = create_udp_socket()
        except OSError as e:
            return ProbeResult(ip=ip, success=False, error=str(e))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            await send_datagram(sock, PROBE_MESSAGE, (ip, self.udp_port))
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ProbeTimeout()
                data, addr = await receive_datagram(sock, remaining)
                try:
                    message = decode_message(data)
                except MalformedResponse:
                    continue
                if message.get('result'):
                    return ProbeResult(ip=addr[0], success=True, port=addr[1], response=message['result'])
        except ProbeTimeout:
            return ProbeResult(ip=ip, success=False, error="Timeout")
        except OSError as e:
            return ProbeResult(ip=ip, success=False, error=str(e))
        finally:
            sock.close()
