"""
Rhythm module for beat-synchronized light effects
"""

from .controller import RhythmController, MIN_BPM, MAX_BPM
from .effects import EFFECTS, DEFAULT_PALETTE, EffectContext, hsv_to_rgb

__all__ = ['RhythmController', 'MIN_BPM', 'MAX_BPM', 'EFFECTS', 'DEFAULT_PALETTE', 'EffectContext', 'hsv_to_rgb']
