"""Centralized constants and configuration for LAN Scanner.

This module contains all magic numbers, ports, timeouts and protocol strings
used by the discovery engine. Centralizing them makes the code easier to
maintain and configure.

Usage:
    from config.constants import SCAN, PROBE, DISCOVERY, STORAGE

    # Access values
    concurrency = SCAN.DEFAULT_CONCURRENCY
    roku_timeout = PROBE.ROKU_TIMEOUT_MS
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class ScanConfig:
    """Address sweep configuration.

    Timeouts are in milliseconds unless otherwise specified.
    """
    # Worker pool
    DEFAULT_CONCURRENCY: int = 80
    DEFAULT_TIMEOUT_MS: int = 1000

    # Range limits (/22 = 1,022 usable hosts)
    MIN_PREFIX: int = 22
    MAX_PREFIX: int = 32
    MAX_HOSTS: int = 1022

    # Fallback TCP probes when ICMP is blocked, in probe order
    FALLBACK_TCP_PORTS: Tuple[int, ...] = (80, 443, 8060, 22, 23)

    # Used when the local network cannot be detected
    FALLBACK_CIDR: str = "192.168.1.0/24"

    # Device categorization
    HISTORICAL_CUTOFF_DAYS: int = 7

    # Approximate usable hosts for rejected prefixes
    HOST_COUNT_LABELS: Dict[int, str] = field(default_factory=lambda: {
        21: "2,046",
        20: "4,094",
        19: "8,190",
        18: "16,382",
        17: "32,766",
        16: "65,534",
    })


@dataclass(frozen=True)
class ProbeConfig:
    """Active name resolution configuration."""
    # Roku ECP device-info (slow device class, longer timeout)
    ROKU_PORT: int = 8060
    ROKU_TIMEOUT_MS: int = 3000
    ROKU_DEVICE_INFO_PATH: str = "/query/device-info"

    # NetBIOS NBSTAT
    NETBIOS_PORT: int = 137
    NETBIOS_ATTEMPTS: int = 3

    # Reverse DNS: lookups still blocked in the resolver after their
    # timeout keep a worker busy, so this caps how many can pile up
    REVERSE_DNS_WORKERS: int = 16

    # Active mDNS
    MDNS_GROUP: str = "224.0.0.251"
    MDNS_PORT: int = 5353
    MDNS_ATTEMPTS: int = 2

    # Bonjour service types queried when the reverse PTR query gets no answer
    BONJOUR_FALLBACK_SERVICES: Tuple[str, ...] = (
        "_smb._tcp.local.",
        "_afpovertcp._tcp.local.",
        "_ssh._tcp.local.",
        "_device-info._tcp.local.",
        "_workstation._tcp.local.",
        "_airport._tcp.local.",
    )

    # Port banner scan, in scan order
    BANNER_PORTS: Tuple[Tuple[int, str], ...] = (
        (22, "SSH"),
        (80, "HTTP"),
        (443, "HTTPS"),
        (445, "SMB"),
        (548, "AFP"),
        (631, "IPP"),
        (5353, "mDNS"),
        (8080, "HTTP-Alt"),
        (9100, "Printer"),
    )
    PRINTER_PORTS: Tuple[int, ...] = (631, 9100)
    MIN_PRINTER_PORTS: int = 2
    PRINTER_KEYWORDS: Tuple[str, ...] = (
        "lexmark", "printer", "brother", "epson", "canon", "xerox",
    )
    HP_PRINTER_KEYWORDS: Tuple[str, ...] = ("jet", "laserjet", "officejet")

    # Server header placeholders that carry no vendor information
    WILDCARD_SERVERS: Tuple[str, ...] = ("*", "******")

    # Receive buffer sizes (bytes)
    MDNS_BUFFER_SIZE: int = 512
    BONJOUR_BUFFER_SIZE: int = 1024
    NETBIOS_BUFFER_SIZE: int = 1024
    BANNER_BUFFER_SIZE: int = 4096


@dataclass(frozen=True)
class DiscoveryConfig:
    """Passive (background) discovery configuration.

    Timeouts are in seconds.
    """
    # SSDP
    SSDP_GROUP: str = "239.255.255.250"
    SSDP_PORT: int = 1900
    SSDP_MX: int = 3
    SSDP_SEARCH_TARGETS: Tuple[str, ...] = (
        "roku:ecp",
        "urn:schemas-upnp-org:device:InternetGatewayDevice:1",
        "ssdp:all",
    )
    SSDP_SEND_GAP_SECONDS: float = 0.1
    SSDP_LISTEN_WINDOW_SECONDS: float = 10.0
    SSDP_RECEIVE_TIMEOUT_SECONDS: float = 3.0
    SSDP_BUFFER_SIZE: int = 2048
    DESCRIPTION_FETCH_TIMEOUT_SECONDS: float = 3.0
    DESCRIPTION_FETCH_WORKERS: int = 4

    # mDNS
    MDNS_RECEIVE_TIMEOUT_SECONDS: float = 1.0
    MDNS_BUFFER_SIZE: int = 2048
    MDNS_RESOLVE_TIMEOUT_MS: int = 1000
    MDNS_BROWSE_SERVICES: Tuple[str, ...] = (
        "_http._tcp.local.",
        "_https._tcp.local.",
        "_ssh._tcp.local.",
        "_printer._tcp.local.",
        "_ipp._tcp.local.",
        "_airplay._tcp.local.",
        "_raop._tcp.local.",
        "_spotify-connect._tcp.local.",
        "_device-info._tcp.local.",
        "_companion-link._tcp.local.",
        "_rdlink._tcp.local.",
        "_apple-mobdev._tcp.local.",
        "_afpovertcp._tcp.local.",
        "_smb._tcp.local.",
        "_airport._tcp.local.",
    )

    # Stop waits at most this long for a receive loop to notice
    JOIN_TIMEOUT_SECONDS: float = 5.0


@dataclass(frozen=True)
class StorageConfig:
    """Storage and file-related configuration."""
    # Directory and file names
    DATA_DIR_NAME: str = ".lan-scanner"
    DATABASE_FILE: str = "lan_scanner.db"
    PREFERENCES_FILE: str = "preferences.json"
    LOG_FILE: str = "lan_scanner.log"

    # Log rotation
    LOG_MAX_BYTES: int = 5_000_000  # 5MB
    LOG_BACKUP_COUNT: int = 3

    # SQLite busy timeout (seconds)
    DB_TIMEOUT_SECONDS: float = 30.0


# Global instances - import these
SCAN = ScanConfig()
PROBE = ProbeConfig()
DISCOVERY = DiscoveryConfig()
STORAGE = StorageConfig()


# Allowed commands for subprocess safety
ALLOWED_SUBPROCESS_COMMANDS = frozenset({
    'ping',
    'route',
})
