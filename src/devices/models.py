"""
Light state, property update and batch result models
"""

import math
from dataclasses import dataclass, asdict
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from errors import InvalidProperty

BRIGHTNESS_RANGE = (1, 100)
CHANNEL_RANGE = (0, 255)
TEMPERATURE_RANGE = (2200, 6500)
SCENE_RANGE = (1, 32)


def clamp(value, low: int, high: int) -> int:
    """
    Round to int and saturate at the range bounds

    Raises:
        InvalidProperty: value is not numeric, or is NaN or infinite
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidProperty(f"Not a number: {value!r}")
    if not math.isfinite(number):
        raise InvalidProperty(f"Not a finite number: {value!r}")
    return max(low, min(high, int(round(number))))


@dataclass
class RGBColor:
    r: int
    g: int
    b: int

    def to_dict(self) -> Dict[str, int]:
        return {"r": self.r, "g": self.g, "b": self.b}


@dataclass
class LightState:
    """Last locally-tracked state of a light - optimistic, never read back from the device"""
    state: Optional[bool] = None
    brightness: Optional[int] = None
    color: Optional[RGBColor] = None
    temperature: Optional[int] = None
    scene_id: Optional[int] = None

    def copy(self) -> "LightState":
        return LightState(
            state=self.state,
            brightness=self.brightness,
            color=RGBColor(**self.color.to_dict()) if self.color else None,
            temperature=self.temperature,
            scene_id=self.scene_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {key: value for key, value in data.items() if value is not None}


# ================== PROPERTY UPDATES ==================

class ColorUpdate(BaseModel):
    kind: Literal["color"] = "color"
    r: int
    g: int
    b: int
    brightness: int = 100

    @field_validator('r', 'g', 'b', mode='before')
    @classmethod
    def _clamp_channel(cls, value):
        return clamp(value, *CHANNEL_RANGE)

    @field_validator('brightness', mode='before')
    @classmethod
    def _clamp_brightness(cls, value):
        return clamp(value, *BRIGHTNESS_RANGE)

    def to_params(self) -> Dict[str, int]:
        return {"r": self.r, "g": self.g, "b": self.b, "dimming": self.brightness}

    def apply_to(self, state: LightState) -> None:
        state.color = RGBColor(self.r, self.g, self.b)
        state.brightness = self.brightness
        state.temperature = None


class BrightnessUpdate(BaseModel):
    kind: Literal["brightness"] = "brightness"
    brightness: int

    @field_validator('brightness', mode='before')
    @classmethod
    def _clamp_brightness(cls, value):
        return clamp(value, *BRIGHTNESS_RANGE)

    def to_params(self) -> Dict[str, int]:
        return {"dimming": self.brightness}

    def apply_to(self, state: LightState) -> None:
        state.brightness = self.brightness


class TemperatureUpdate(BaseModel):
    kind: Literal["temperature"] = "temperature"
    temperature: int

    @field_validator('temperature', mode='before')
    @classmethod
    def _clamp_temperature(cls, value):
        return clamp(value, *TEMPERATURE_RANGE)

    def to_params(self) -> Dict[str, int]:
        return {"temp": self.temperature}

    def apply_to(self, state: LightState) -> None:
        state.temperature = self.temperature
        state.color = None


PropertyUpdate = Annotated[
    Union[ColorUpdate, BrightnessUpdate, TemperatureUpdate],
    Field(discriminator='kind'),
]

_property_update_adapter = TypeAdapter(PropertyUpdate)


def _get_field(source, name: str):
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def parse_property_update(payload) -> Union[ColorUpdate, BrightnessUpdate, TemperatureUpdate]:
    """
    Resolve an update payload into exactly one PropertyUpdate variant

    Priority: a full colour (r, g and b all present) wins over brightness and
    temperature; otherwise brightness alone; otherwise temperature alone.
    Colour brightness comes from color.brightness, then the top-level
    brightness, then 100.

    Raises:
        InvalidProperty: no recognized field, or a field that is not numeric
    """
    if isinstance(payload, (ColorUpdate, BrightnessUpdate, TemperatureUpdate)):
        return payload
    if not isinstance(payload, dict):
        raise InvalidProperty(f"Property payload must be a mapping, got {type(payload).__name__}")

    try:
        if 'kind' in payload:
            return _property_update_adapter.validate_python(payload)

        color = payload.get('color')
        brightness = payload.get('brightness')
        temperature = payload.get('temperature')

        if color is not None and all(_get_field(color, channel) is not None for channel in ('r', 'g', 'b')):
            # zero or missing falls through: colour brightness, then top-level, then full
            color_brightness = _get_field(color, 'brightness') or brightness or 100
            return ColorUpdate(
                r=_get_field(color, 'r'),
                g=_get_field(color, 'g'),
                b=_get_field(color, 'b'),
                brightness=color_brightness,
            )
        if brightness is not None:
            return BrightnessUpdate(brightness=brightness)
        if temperature is not None:
            return TemperatureUpdate(temperature=temperature)
    except (ValidationError, ValueError, TypeError) as e:
        raise InvalidProperty(f"Invalid property value: {e}")

    raise InvalidProperty("No valid properties provided")


# ================== BATCH RESULTS ==================

@dataclass
class BatchResult:
    """Outcome of one device within a multi-device operation"""
    ip: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"ip": self.ip, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


def batch_succeeded(results: List[BatchResult]) -> bool:
    """Overall success: at least one device succeeded"""
    return any(result.success for result in results)
