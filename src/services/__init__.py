"""
Services module for the WiZ light controller
"""

from .light_server import LightServer

__all__ = ['LightServer']
