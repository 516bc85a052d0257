"""Data types shared by the scanner, the device store and callers."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ScanStatus(Enum):
    """How a scanned address was classified."""
    ICMP = "ICMP"
    TCP = "TCP"
    NO_RESPONSE = "No response"
    ERROR = "Error"
    INVALID = "Invalid CIDR"
    TOO_LARGE = "Network too large"
    UNKNOWN = "Unknown"

    @property
    def is_alive(self) -> bool:
        return self in (ScanStatus.ICMP, ScanStatus.TCP)


@dataclass(frozen=True)
class ScanResult:
    """One emitted result per scanned address (or one per rejected CIDR).

    Attributes:
        ip: Address as dotted quad, or the CIDR text for INVALID/TOO_LARGE.
        status: Classification of the address.
        details: Name debug string for live hosts, error text otherwise.
        latency_ms: Time spent on this address, when measured.
        hostname: Best display name for live hosts.
        port: TCP port that answered, for TCP results.
    """
    ip: str
    status: ScanStatus
    details: Optional[str] = None
    latency_ms: Optional[int] = None
    hostname: Optional[str] = None
    port: Optional[int] = None

    @property
    def status_label(self) -> str:
        """"ICMP", "TCP:443", "No response", ..."""
        if self.status is ScanStatus.TCP and self.port is not None:
            return f"TCP:{self.port}"
        return self.status.value

    @property
    def is_alive(self) -> bool:
        return self.status.is_alive


class DeviceStatus(str, Enum):
    """Persisted online state."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class StoredDevice:
    """A row of the device history table.

    Timestamps are epoch milliseconds.
    """
    ip: str
    display_name: Optional[str]
    custom_name: Optional[str]
    ssdp_name: Optional[str]
    mdns_name: Optional[str]
    netbios_name: Optional[str]
    dns_name: Optional[str]
    vendor: Optional[str]
    first_seen: int
    last_seen: int
    status: DeviceStatus

    @property
    def is_online(self) -> bool:
        return self.status is DeviceStatus.ONLINE

    @property
    def label(self) -> str:
        """Name to show, falling back to the address."""
        return self.display_name or self.ip

    def to_dict(self) -> dict:
        return {
            "ip": self.ip,
            "display_name": self.display_name,
            "custom_name": self.custom_name,
            "ssdp_name": self.ssdp_name,
            "mdns_name": self.mdns_name,
            "netbios_name": self.netbios_name,
            "dns_name": self.dns_name,
            "vendor": self.vendor,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "status": self.status.value,
        }
