"""LAN device discovery components.

This package sweeps an IPv4 range for live hosts, resolves each host's
name through several protocols and keeps passive mDNS/SSDP caches.

Modules:
    addressing: CIDR parsing and address arithmetic
    liveness: ICMP/TCP reachability probes
    dns_wire, netbios, ssdp: Protocol codecs
    names: Name candidates and best-name selection
    resolver: Active per-host name resolution
    passive: Background mDNS/SSDP listeners
    orchestrator: Bounded-concurrency sweep
    categorizer: Device presence states
    network_info: Local interface lookup and network change detection
    engine: Facade tying it all together

Example:
    >>> from discovery import DiscoveryEngine
    >>> engine = DiscoveryEngine()
    >>> for result in engine.scan("192.168.1.0/24"):
    ...     print(result.ip, result.status_label)
"""
from .addressing import AddressRange, cidr_for, int_to_ip, ip_to_int, parse_cidr
from .categorizer import DeviceState, categorize_devices
from .engine import DiscoveryEngine, ScanHandle
from .models import DeviceStatus, ScanResult, ScanStatus, StoredDevice
from .names import DeviceNames, is_user_friendly
from .network_info import CurrentNetwork, check_network_changed, detect_best_cidr
from .orchestrator import ScanOrchestrator, ScanSummary
from .passive import MdnsListener, PassiveNameMap, SsdpListener
from .resolver import discover_all_names

__all__ = [
    # Addressing
    "AddressRange",
    "parse_cidr",
    "ip_to_int",
    "int_to_ip",
    "cidr_for",
    # Models
    "ScanResult",
    "ScanStatus",
    "StoredDevice",
    "DeviceStatus",
    # Names
    "DeviceNames",
    "is_user_friendly",
    "discover_all_names",
    # Passive discovery
    "PassiveNameMap",
    "MdnsListener",
    "SsdpListener",
    # Scanning
    "ScanOrchestrator",
    "ScanSummary",
    "DiscoveryEngine",
    "ScanHandle",
    # History
    "DeviceState",
    "categorize_devices",
    # Local network
    "CurrentNetwork",
    "check_network_changed",
    "detect_best_cidr",
]
