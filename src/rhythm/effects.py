"""
Beat-synchronized light effects

Each effect is a tick function evaluated against the attached lights once per
period, where the period is a fixed fraction of the beat duration (60 / bpm).
"""

import asyncio
import colorsys
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from devices.models import RGBColor, clamp, CHANNEL_RANGE
from devices.wiz_light import LightDevice

logger = logging.getLogger(__name__)

DEFAULT_PALETTE: List[RGBColor] = [
    RGBColor(255, 0, 0),      # Red
    RGBColor(0, 255, 0),      # Green
    RGBColor(0, 0, 255),      # Blue
    RGBColor(255, 255, 0),    # Yellow
    RGBColor(255, 0, 255),    # Magenta
    RGBColor(0, 255, 255),    # Cyan
    RGBColor(255, 165, 0),    # Orange
    RGBColor(128, 0, 128),    # Purple
]

WHITE = RGBColor(255, 255, 255)

PULSE_DIM_DELAY = 0.1
PULSE_DIM_BRIGHTNESS = 10


# =============================================================================
# COLOR UTILITIES
# =============================================================================

def hsv_to_rgb(hue: float, saturation: float = 100, value: float = 100) -> RGBColor:
    """Hue in degrees, saturation and value in percent"""
    r, g, b = colorsys.hsv_to_rgb((hue % 360) / 360.0, saturation / 100.0, value / 100.0)
    return RGBColor(round(r * 255), round(g * 255), round(b * 255))


def to_color(value: Any) -> RGBColor:
    """Accept an RGBColor or a {r, g, b} mapping"""
    if isinstance(value, RGBColor):
        return value
    if isinstance(value, dict):
        return RGBColor(*(clamp(value[channel], *CHANNEL_RANGE) for channel in ('r', 'g', 'b')))
    raise ValueError(f"Not a colour: {value!r}")


def to_palette(colors: Iterable[Any]) -> List[RGBColor]:
    palette = [to_color(color) for color in colors]
    if not palette:
        raise ValueError("Colour palette must contain at least one colour")
    return palette


# =============================================================================
# EFFECT CONTEXT
# =============================================================================

@dataclass
class EffectContext:
    """Everything a tick needs; built fresh by the controller for every tick"""
    lights: List[LightDevice]
    options: Dict[str, Any]
    elapsed: float                      # seconds since the effect started
    palette: List[RGBColor]
    color: RGBColor                     # fixed colour chosen at effect start
    rng: random.Random = field(default_factory=random.Random)
    defer: Optional[Callable[[float, Callable[[], Awaitable[Any]]], None]] = None

    def random_color(self, colors: Optional[List[RGBColor]] = None) -> RGBColor:
        return self.rng.choice(colors or self.palette)

    def option_color(self, default: Optional[RGBColor] = None) -> Optional[RGBColor]:
        if self.options.get('color') is not None:
            return to_color(self.options['color'])
        return default


async def apply_all(calls: Iterable[Awaitable[bool]]) -> List[bool]:
    """Run light calls concurrently; a raising light counts as a failure"""
    outcomes = await asyncio.gather(*calls, return_exceptions=True)
    results = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            logger.warning(f"Light call failed during effect: {outcome}")
            results.append(False)
        else:
            results.append(bool(outcome))
    return results


# =============================================================================
# EFFECTS
# =============================================================================

async def pulse_effect(ctx: EffectContext) -> None:
    """Flash every light, then dim them all shortly after"""
    color = ctx.option_color() or ctx.random_color()
    brightness = ctx.options.get('brightness', 80)
    lights = list(ctx.lights)

    await apply_all(light.set_color(color.r, color.g, color.b, brightness) for light in lights)

    async def dim():
        await apply_all(light.set_brightness(PULSE_DIM_BRIGHTNESS) for light in lights)

    if ctx.defer is not None:
        ctx.defer(PULSE_DIM_DELAY, dim)


async def strobe_effect(ctx: EffectContext) -> None:
    """Whole set randomly on at full brightness or off"""
    color = ctx.option_color(WHITE)
    if ctx.rng.random() > 0.5:
        await apply_all(light.set_color(color.r, color.g, color.b, 100) for light in ctx.lights)
    else:
        await apply_all(light.turn_off() for light in ctx.lights)


async def rainbow_effect(ctx: EffectContext) -> None:
    """Hue rotates with time; lights sit 60 degrees apart"""
    speed = ctx.options.get('speed', 1)
    base = ctx.elapsed * speed
    calls = []
    for index, light in enumerate(ctx.lights):
        color = hsv_to_rgb(base + index * 60)
        calls.append(light.set_color(color.r, color.g, color.b, 80))
    await apply_all(calls)


def wave_brightness(elapsed: float, index: int) -> float:
    return abs(math.sin(elapsed * 5 + index * 0.5)) * 80 + 20


async def wave_effect(ctx: EffectContext) -> None:
    """Brightness follows a sine with a per-light phase offset"""
    color = ctx.color
    await apply_all(
        light.set_color(color.r, color.g, color.b, wave_brightness(ctx.elapsed, index))
        for index, light in enumerate(ctx.lights)
    )


async def beat_effect(ctx: EffectContext) -> None:
    """Each light picks its own random palette colour"""
    colors = to_palette(ctx.options['colors']) if ctx.options.get('colors') else ctx.palette
    calls = []
    for light in ctx.lights:
        color = ctx.random_color(colors)
        calls.append(light.set_color(color.r, color.g, color.b, 90))
    await apply_all(calls)


def breathe_brightness(elapsed: float) -> float:
    return (math.sin(elapsed * 2) + 1) * 40 + 20


async def breathe_effect(ctx: EffectContext) -> None:
    """Slow sine brightness, same for every light"""
    color = ctx.color
    brightness = breathe_brightness(ctx.elapsed)
    await apply_all(light.set_color(color.r, color.g, color.b, brightness) for light in ctx.lights)


@dataclass(frozen=True)
class EffectSpec:
    name: str
    beats_per_tick: float
    tick: Callable[[EffectContext], Awaitable[None]]
    description: str


EFFECTS: Dict[str, EffectSpec] = {
    'pulse': EffectSpec('pulse', 1.0, pulse_effect, 'Flash lights on each beat'),
    'rainbow': EffectSpec('rainbow', 0.25, rainbow_effect, 'Cycle through rainbow colors'),
    'strobe': EffectSpec('strobe', 0.5, strobe_effect, 'Random strobe effect'),
    'wave': EffectSpec('wave', 0.125, wave_effect, 'Wave pattern across lights'),
    'beat': EffectSpec('beat', 1.0, beat_effect, 'Random colors on each beat'),
    'breathe': EffectSpec('breathe', 2.0, breathe_effect, 'Smooth breathing effect'),
}
