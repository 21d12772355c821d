"""
Unit Tests for the light registry

Tests for:
- Idempotent membership and removal notifications
- Batch fan-out with per-light results
- Aggregate success semantics for the capability interface
- Invalid update payloads fail every entry without I/O
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from devices.models import LightState
from devices.registry import LightRegistry
from devices.wiz_light import WizLight
from discovery.manager import LightDiscovery
from discovery.models import DiscoveredDevice

from conftest import FakeLight


@pytest.fixture
def registry():
    return LightRegistry()


def with_lights(registry, lights):
    for light in lights:
        registry.lights[light.ip] = light
    return registry


class TestMembership:

    def test_add_light_is_idempotent(self, registry):
        first = registry.add_light("192.168.1.10")
        second = registry.add_light("192.168.1.10")

        assert first is second
        assert isinstance(first, WizLight)
        assert registry.get_light_count() == 1

    def test_add_discovered(self, registry):
        devices = [
            DiscoveredDevice(ip="192.168.1.20", port=38899, response={}, method="broadcast", mac="aa"),
            DiscoveredDevice(ip="192.168.1.21", port=38899, response={}, method="broadcast", mac="bb"),
        ]

        registry.add_discovered(devices)

        assert registry.get_all_light_ips() == ["192.168.1.20", "192.168.1.21"]
        assert registry.get_light("192.168.1.21").mac == "bb"

    def test_remove_light_notifies(self, registry):
        removed = []
        registry.light_removed.subscribe(removed.append)
        light = registry.add_light("192.168.1.10")

        assert registry.remove_light("192.168.1.10") is True
        assert registry.remove_light("192.168.1.10") is False
        assert removed == [{"ip": "192.168.1.10"}]
        assert light.state_changed.observer_count == 0

    def test_state_changes_forwarded_with_ip(self, registry):
        events = []
        registry.light_state_changed.subscribe(events.append)
        light = registry.add_light("192.168.1.10")

        light.state_changed.emit(LightState(state=True))

        assert events == [{"ip": "192.168.1.10", "state": LightState(state=True)}]

    def test_disconnect_all(self, registry, fake_lights):
        with_lights(registry, fake_lights)

        registry.disconnect_all()

        assert registry.get_light_count() == 0
        assert all(light.disconnected for light in fake_lights)


class TestBatchOperations:

    @pytest.mark.asyncio
    async def test_turn_on_all(self, registry, fake_lights):
        with_lights(registry, fake_lights)

        results = await registry.turn_on_all()

        assert [r.ip for r in results] == [light.ip for light in fake_lights]
        assert all(r.success for r in results)
        assert all(light.call_names() == ['turn_on'] for light in fake_lights)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_others(self, registry):
        lights = [
            FakeLight("192.168.1.10"),
            FakeLight("192.168.1.11", error=RuntimeError("bulb on fire")),
            FakeLight("192.168.1.12", fail=True),
        ]
        with_lights(registry, lights)

        results = await registry.turn_off_all()

        assert [(r.ip, r.success) for r in results] == [
            ("192.168.1.10", True),
            ("192.168.1.11", False),
            ("192.168.1.12", False),
        ]
        assert results[1].error == "bulb on fire"
        assert all(light.call_names() == ['turn_off'] for light in lights)

    @pytest.mark.asyncio
    async def test_update_all_lights(self, registry, fake_lights):
        with_lights(registry, fake_lights)

        results = await registry.update_all_lights({"brightness": 40})

        assert all(r.success for r in results)
        assert all(light.call_names() == ['update_properties'] for light in fake_lights)

    @pytest.mark.asyncio
    async def test_invalid_update_fails_everywhere_without_io(self, registry, fake_lights):
        with_lights(registry, fake_lights)

        results = await registry.update_all_lights({"unknown": 1})

        assert len(results) == 3
        assert not any(r.success for r in results)
        assert all(r.error for r in results)
        assert all(light.calls == [] for light in fake_lights)

    @pytest.mark.asyncio
    async def test_empty_registry(self, registry):
        assert await registry.turn_on_all() == []
        assert await registry.turn_on() is False


class TestAggregateCapability:

    @pytest.mark.asyncio
    async def test_any_success_is_success(self, registry):
        with_lights(registry, [FakeLight("192.168.1.10", fail=True), FakeLight("192.168.1.11")])
        assert await registry.turn_on() is True

    @pytest.mark.asyncio
    async def test_all_failed_is_failure(self, registry):
        with_lights(registry, [FakeLight("192.168.1.10", fail=True), FakeLight("192.168.1.11", fail=True)])
        assert await registry.update_properties({"temperature": 3000}) is False

    @pytest.mark.asyncio
    async def test_get_state_keyed_by_ip(self, registry, fake_lights):
        with_lights(registry, fake_lights)
        fake_lights[0].state = LightState(state=True)

        states = await registry.get_state()

        assert set(states) == {"192.168.1.10", "192.168.1.11", "192.168.1.12"}
        assert states["192.168.1.10"].state is True

    @pytest.mark.asyncio
    async def test_get_state_returns_copies(self, registry, fake_lights):
        with_lights(registry, fake_lights)
        fake_lights[0].state = LightState(brightness=20)

        states = await registry.get_state()
        states["192.168.1.10"].brightness = 99

        assert fake_lights[0].state.brightness == 20


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_without_engine_raises(self, registry):
        with pytest.raises(RuntimeError):
            await registry.discover_devices()

    @pytest.mark.asyncio
    async def test_discovered_devices_kept(self):
        found = [DiscoveredDevice(ip="192.168.1.40", port=38899, response={}, method="ping")]
        engine = MagicMock(spec=LightDiscovery)
        engine.discover = AsyncMock(return_value=found)
        registry = LightRegistry(engine)

        devices = await registry.discover_devices(3.0, "192.168.1.255")

        engine.discover.assert_awaited_once_with(3.0, "192.168.1.255")
        assert devices == found
        assert registry.get_discovered_devices() == found
        assert registry.get_light_count() == 0
