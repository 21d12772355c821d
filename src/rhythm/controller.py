"""
Rhythm controller - drives attached lights with one beat-synchronized effect at a time
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from devices.models import RGBColor, clamp
from devices.wiz_light import LightDevice
from errors import InvalidProperty, UnknownEffect
from events import EventChannel
from .effects import DEFAULT_PALETTE, EFFECTS, EffectContext, EffectSpec, apply_all, to_color, to_palette

logger = logging.getLogger(__name__)

MIN_BPM = 60
MAX_BPM = 200
DEFAULT_BPM = 120


class RhythmController:
    """
    STOPPED -> RUNNING(effect) -> STOPPED

    While running there is exactly one effect task. Every start and stop bumps
    a generation counter; a tick or deferred action only runs if its
    generation is still current, so nothing from a superseded effect touches
    the lights after a switch.
    """

    def __init__(
        self,
        lights: Optional[List[LightDevice]] = None,
        bpm: int = DEFAULT_BPM,
        palette: Optional[List[Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.lights: List[LightDevice] = list(lights or [])
        self.bpm = clamp(bpm, MIN_BPM, MAX_BPM)
        self.color_palette: List[RGBColor] = to_palette(palette) if palette else list(DEFAULT_PALETTE)
        self.is_active = False
        self.current_effect: Optional[str] = None
        self.current_options: Dict[str, Any] = {}

        self.effect_started = EventChannel("effect_started")
        self.effect_stopped = EventChannel("effect_stopped")

        self._clock = clock
        self._rng = rng or random.Random()
        self._generation = 0
        self._started_at = 0.0
        self._effect_color: RGBColor = self.color_palette[0]
        self._effect_task: Optional[asyncio.Task] = None
        self._deferred: Set[asyncio.Task] = set()

    # ================== ATTACHED LIGHTS ==================

    def setup(self, lights: List[LightDevice]) -> None:
        """Replace the attached light set"""
        self.lights = list(lights)
        logger.info(f"Rhythm controller setup with {len(self.lights)} lights")

    def add_light(self, light: LightDevice) -> None:
        if all(existing.ip != light.ip for existing in self.lights):
            self.lights.append(light)

    def remove_light(self, ip: str) -> None:
        self.lights = [light for light in self.lights if light.ip != ip]

    def set_color_palette(self, colors: List[Any]) -> None:
        self.color_palette = to_palette(colors)

    # ================== EFFECT LIFECYCLE ==================

    @staticmethod
    def list_effects() -> List[Dict[str, str]]:
        return [{"name": spec.name, "description": spec.description} for spec in EFFECTS.values()]

    async def start_effect(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        """
        Start an effect, stopping the running one first

        Raises:
            UnknownEffect: name is not a known effect
            InvalidProperty: a colour option is malformed

        Either error leaves the running effect untouched.
        """
        spec = EFFECTS.get(name)
        if spec is None:
            raise UnknownEffect(name)

        options = dict(options or {})
        effect_color = self._resolve_options(name, options)

        if self.is_active:
            await self.stop()

        self._generation += 1
        generation = self._generation

        self.current_effect = name
        self.current_options = options
        self.is_active = True
        self._started_at = self._clock()
        self._effect_color = effect_color

        beat_duration = 60.0 / self.bpm
        period = beat_duration * spec.beats_per_tick
        self._effect_task = asyncio.create_task(self._run_effect(spec, options, period, generation))

        logger.info(f"Started {name} effect at {self.bpm} BPM (tick every {period * 1000:.0f}ms, {len(self.lights)} lights)")
        self.effect_started.emit({"effect": name, "bpm": self.bpm, "options": options})

    def _resolve_options(self, name: str, options: Dict[str, Any]) -> RGBColor:
        """Validate colour options and pick the fixed effect colour"""
        try:
            if options.get('colors'):
                to_palette(options['colors'])
            if options.get('color') is not None:
                return to_color(options['color'])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidProperty(f"Invalid options for {name} effect: {e!r}")
        return self._rng.choice(self.color_palette)

    async def _run_effect(self, spec: EffectSpec, options: Dict[str, Any], period: float, generation: int) -> None:
        while self._is_current(generation):
            await asyncio.sleep(period)
            if not self._is_current(generation):
                return
            try:
                await spec.tick(self._context(options, generation))
            except Exception as e:
                logger.error(f"{spec.name} tick failed: {e}")

    def _is_current(self, generation: int) -> bool:
        return self.is_active and generation == self._generation

    def _context(self, options: Dict[str, Any], generation: int) -> EffectContext:
        return EffectContext(
            lights=list(self.lights),
            options=options,
            elapsed=self._clock() - self._started_at,
            palette=self.color_palette,
            color=self._effect_color,
            rng=self._rng,
            defer=lambda delay, action: self._defer(delay, action, generation),
        )

    def _defer(self, delay: float, action: Callable[[], Awaitable[Any]], generation: int) -> None:
        async def run_later():
            await asyncio.sleep(delay)
            if self._is_current(generation):
                await action()

        task = asyncio.create_task(run_later())
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)

    async def stop(self) -> None:
        """Cancel timers and turn every attached light off; a no-op when already stopped"""
        if not self.is_active:
            return

        self.is_active = False
        self._generation += 1

        current = asyncio.current_task()
        pending = [task for task in [self._effect_task, *self._deferred] if task is not None and task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._effect_task = None
        self._deferred.clear()

        results = await apply_all(light.turn_off() for light in self.lights)
        failed = results.count(False)
        if failed:
            logger.warning(f"{failed}/{len(results)} lights did not acknowledge turn off")

        stopped = {"effect": self.current_effect, "bpm": self.bpm, "options": self.current_options}
        logger.info(f"Stopped {self.current_effect} effect")
        self.current_effect = None
        self.current_options = {}
        self.effect_stopped.emit(stopped)

    async def restart(self) -> None:
        if self.is_active and self.current_effect:
            effect, options = self.current_effect, self.current_options
            await self.stop()
            await self.start_effect(effect, options)

    async def set_bpm(self, bpm: float) -> int:
        """Clamp to 60-200; a running effect restarts with the new timing"""
        self.bpm = clamp(bpm, MIN_BPM, MAX_BPM)
        if self.is_active:
            await self.restart()
        return self.bpm

    async def trigger_beat(self, intensity: float = 1.0) -> None:
        """Manual beat from an external rhythm source; ignored while stopped"""
        if not self.is_active:
            return

        color = self._rng.choice(self.color_palette)
        brightness = min(100, 50 + intensity * 50)
        await apply_all(light.set_color(color.r, color.g, color.b, brightness) for light in self.lights)

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_active": self.is_active,
            "current_effect": self.current_effect,
            "bpm": self.bpm,
            "options": self.current_options,
            "lights_count": len(self.lights),
            "lights": [{"ip": light.ip, "state": light.state.to_dict()} for light in self.lights],
            "palette": [color.to_dict() for color in self.color_palette],
        }
