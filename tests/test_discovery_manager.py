"""
Unit Tests for the two-phase discovery manager

Tests for:
- Broadcast success skips the ping sweep
- Empty or failed broadcast falls back to the ping sweep
- Timeout split between phases
- Cancellation between phases
- Silent network end to end over loopback
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from discovery.manager import LightDiscovery
from discovery.models import DiscoveredDevice, DiscoveryState, ProbeResult
from discovery.network_discovery import NetworkDiscovery

from conftest import loopback_bulb


def device(ip, method):
    return DiscoveredDevice(ip=ip, port=38899, response={"mac": ip}, method=method, mac=ip)


@pytest.fixture
def network():
    mock = MagicMock(spec=NetworkDiscovery)
    mock.broadcast_discovery = AsyncMock(return_value=[])
    mock.ping_sweep = AsyncMock(return_value=[])
    mock.test_single_ip = AsyncMock()
    return mock


@pytest.fixture
def discovery(network):
    return LightDiscovery({'discovery_timeout': 4.0, 'probe_timeout': 0.5}, network=network)


class TestDiscoveryPhases:

    @pytest.mark.asyncio
    async def test_broadcast_success_skips_ping(self, discovery, network):
        network.broadcast_discovery.return_value = [device("192.168.1.20", "broadcast")]

        result = await discovery.discover_with_result(subnet="192.168.1.255")

        assert result.method == "broadcast"
        assert result.phases == ["broadcast"]
        assert result.success_count == 1
        assert result.devices_tested == 1
        network.ping_sweep.assert_not_awaited()
        assert discovery.state == DiscoveryState.DONE

    @pytest.mark.asyncio
    async def test_empty_broadcast_falls_back_to_ping(self, discovery, network):
        network.ping_sweep.return_value = [device("192.168.1.30", "ping")]

        result = await discovery.discover_with_result(subnet="192.168.1.255")

        assert result.method == "ping"
        assert result.phases == ["broadcast", "ping"]
        assert result.devices_tested == 254
        assert [d.ip for d in result.devices] == ["192.168.1.30"]
        network.ping_sweep.assert_awaited_once_with(2.0, "192.168.1.255")

    @pytest.mark.asyncio
    async def test_timeout_split_evenly(self, discovery, network):
        await discovery.discover(timeout=6.0, subnet="10.0.0.255")

        assert network.broadcast_discovery.await_args.args[:2] == (3.0, "10.0.0.255")
        assert network.ping_sweep.await_args.args == (3.0, "10.0.0.255")

    @pytest.mark.asyncio
    async def test_broadcast_error_degrades_to_ping(self, discovery, network):
        network.broadcast_discovery.side_effect = RuntimeError("socket exploded")
        network.ping_sweep.return_value = [device("192.168.1.31", "ping")]

        devices = await discovery.discover()

        assert [d.ip for d in devices] == ["192.168.1.31"]

    @pytest.mark.asyncio
    async def test_nothing_found(self, discovery, network):
        result = await discovery.discover_with_result()

        assert result.devices == []
        assert result.success_count == 0
        assert discovery.get_discovered_devices() == []

    @pytest.mark.asyncio
    async def test_cancel_during_broadcast_skips_ping(self, discovery, network):
        async def cancelled_broadcast(timeout, subnet, is_cancelled):
            discovery.cancel()
            return []

        network.broadcast_discovery.side_effect = cancelled_broadcast

        result = await discovery.discover_with_result()

        assert result.devices == []
        network.ping_sweep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_results_kept_for_later(self, discovery, network):
        found = [device("192.168.1.20", "broadcast")]
        network.broadcast_discovery.return_value = found

        await discovery.discover()

        assert discovery.get_discovered_devices() == found
        assert discovery.last_result.devices == found


class TestProbeDiagnostics:

    @pytest.mark.asyncio
    async def test_single_ip_uses_probe_timeout(self, discovery, network):
        network.test_single_ip.return_value = ProbeResult(ip="192.168.1.5", success=False, error="Timeout")

        result = await discovery.test_single_ip("192.168.1.5")

        network.test_single_ip.assert_awaited_once_with("192.168.1.5", 0.5)
        assert result.error == "Timeout"

    @pytest.mark.asyncio
    async def test_multiple_ips(self, discovery, network):
        network.test_single_ip.side_effect = lambda ip, timeout: ProbeResult(ip=ip, success=ip.endswith(".5"))

        results = await discovery.test_ips(["192.168.1.5", "192.168.1.6"], timeout=0.2)

        assert [(r.ip, r.success) for r in results] == [("192.168.1.5", True), ("192.168.1.6", False)]


class TestSilentNetwork:

    @pytest.mark.asyncio
    async def test_no_responders_returns_empty_within_timeout(self):
        async with loopback_bulb([]) as (port, bulb):
            discovery = LightDiscovery({'udp_port': port, 'broadcast_interval': 0.1})
            loop = asyncio.get_running_loop()
            started = loop.time()

            result = await discovery.discover_with_result(timeout=2.0, subnet='127.0.0.255')

            elapsed = loop.time() - started

        assert result.devices == []
        assert result.method == "ping"
        assert discovery.state == DiscoveryState.DONE
        assert bulb.received
        assert elapsed <= 2.0 + 0.25
