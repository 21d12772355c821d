"""
Discovery data structures and models
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum


class DiscoveryState(Enum):
    IDLE = "idle"
    BROADCASTING = "broadcasting"
    PING_SWEEPING = "ping_sweeping"
    DONE = "done"


@dataclass
class DiscoveredDevice:
    """Represents a WiZ light that answered a discovery probe"""
    ip: str
    port: int
    response: Dict[str, Any]
    method: str  # "broadcast", "ping"
    mac: Optional[str] = None
    state: Optional[bool] = None
    rssi: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "port": self.port,
            "response": self.response,
            "mac": self.mac,
            "state": self.state,
            "rssi": self.rssi,
            "method": self.method,
        }


@dataclass
class ProbeResult:
    """Outcome of a single-address diagnostic probe"""
    ip: str
    success: bool
    port: Optional[int] = None
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class DiscoveryResult:
    """Results from discovery operations"""
    devices: List[DiscoveredDevice]
    method: str
    duration_seconds: float
    devices_tested: int
    success_count: int
    phases: List[str] = field(default_factory=list)
