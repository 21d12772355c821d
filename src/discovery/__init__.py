"""
Discovery module for WiZ light discovery
"""

from .manager import LightDiscovery
from .models import DiscoveredDevice, DiscoveryResult, DiscoveryState, ProbeResult
from .network_discovery import NetworkDiscovery, parse_probe_response

__all__ = ['LightDiscovery', 'DiscoveredDevice', 'DiscoveryResult', 'DiscoveryState', 'ProbeResult',
           'NetworkDiscovery', 'parse_probe_response']
