"""
Local network helpers - broadcast address selection and /24 sweep ranges
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_BROADCAST = "192.168.1.255"
PREFERRED_PREFIXES = ("192.168.", "10.", "172.")


@dataclass
class NetworkInfo:
    address: str
    netmask: str
    network: str
    broadcast: str
    cidr: int


def calculate_network_info(ip: str, netmask: str) -> NetworkInfo:
    """Network address, broadcast address and prefix length for an interface address"""
    interface = ipaddress.IPv4Interface(f"{ip}/{netmask}")
    network = interface.network
    return NetworkInfo(
        address=ip,
        netmask=netmask,
        network=str(network.network_address),
        broadcast=str(network.broadcast_address),
        cidr=network.prefixlen,
    )


def get_local_ipv4() -> Optional[str]:
    """
    Primary outbound IPv4 address of this host
    Connecting a UDP socket sends nothing; it only selects a route
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("10.255.255.255", 1))
        address = sock.getsockname()[0]
    except OSError as e:
        logger.debug(f"Could not determine local address: {e}")
        return None
    finally:
        sock.close()

    if address.startswith("127.") or address == "0.0.0.0":
        return None
    return address


def get_primary_broadcast_address(addresses: Optional[List[str]] = None, netmask: str = "255.255.255.0") -> str:
    """
    Pick the broadcast address of the most likely LAN interface

    Private ranges are preferred in the order 192.168., 10., 172.; when no
    address is known the conventional home subnet broadcast is returned.
    """
    if addresses is None:
        local = get_local_ipv4()
        addresses = [local] if local else []

    infos = [calculate_network_info(address, netmask) for address in addresses]
    for prefix in PREFERRED_PREFIXES:
        for info in infos:
            if info.address.startswith(prefix):
                return info.broadcast

    if infos:
        return infos[0].broadcast
    return DEFAULT_BROADCAST


def sweep_addresses(subnet: str) -> List[str]:
    """The 254 host addresses .1-.254 of the /24 containing subnet"""
    network = ipaddress.IPv4Network(f"{subnet}/24", strict=False)
    return [str(host) for host in network.hosts()]


def resolve_subnet(subnet: Optional[str]) -> str:
    """Config value "auto" (or empty) means detect from the local interface"""
    if not subnet or subnet == "auto":
        detected = get_primary_broadcast_address()
        logger.info(f"Using detected broadcast address {detected}")
        return detected
    return subnet
