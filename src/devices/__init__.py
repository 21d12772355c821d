"""
Devices module for WiZ light control
"""

from .models import (
    BatchResult,
    BrightnessUpdate,
    ColorUpdate,
    LightState,
    PropertyUpdate,
    RGBColor,
    TemperatureUpdate,
    batch_succeeded,
    parse_property_update,
)
from .wiz_light import LightDevice, WizLight
from .registry import LightRegistry

__all__ = [
    'BatchResult', 'BrightnessUpdate', 'ColorUpdate', 'LightState', 'PropertyUpdate', 'RGBColor',
    'TemperatureUpdate', 'batch_succeeded', 'parse_property_update',
    'LightDevice', 'WizLight', 'LightRegistry',
]
