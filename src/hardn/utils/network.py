"""Network interface enumeration."""

import socket
from typing import Dict, List

import psutil


class NetworkOperations:
    """Query the host's network interfaces."""

    def get_interfaces(self) -> Dict[str, List[str]]:
        """Map interface names to their IPv4 addresses."""
        interfaces: Dict[str, List[str]] = {}
        for name, addrs in psutil.net_if_addrs().items():
            interfaces[name] = [a.address for a in addrs if a.family == socket.AF_INET]
        return interfaces

    def get_ip_addresses(self) -> List[str]:
        """Return non-loopback IPv4 addresses."""
        addresses: List[str] = []
        for addrs in self.get_interfaces().values():
            addresses.extend(a for a in addrs if not a.startswith("127."))
        return addresses

    def check_subnet(self, subnet: str) -> bool:
        """Check whether any interface address starts with the given prefix.

        Args:
            subnet: First three octets of an IPv4 network, e.g. ``192.168.4``

        Returns:
            True if an address on the host falls in that /24
        """
        if not subnet:
            return False
        prefix = subnet.rstrip(".")
        for addrs in self.get_interfaces().values():
            for address in addrs:
                if ".".join(address.split(".")[:3]) == prefix:
                    return True
        return False
