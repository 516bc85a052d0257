"""Device name candidates and best-name selection.

A device can be named by several protocols at once (SSDP, Roku ECP,
mDNS, NetBIOS, reverse DNS, HTTP Server header). This module holds
those candidates and decides which one to show.

Selection order:
1. SSDP friendly name, if user-friendly
2. Roku user-device-name, if user-friendly
3. "<Manufacturer> <DeviceType>" built from the HTTP Server header
4. NetBIOS, mDNS, DNS, if user-friendly
5. Otherwise the first non-empty of SSDP, Roku, mDNS, NetBIOS, DNS
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

from config import PROBE

# Names that look like serial numbers, MACs or generated ids
SERIAL_PATTERNS = (
    re.compile(r'X[0-9A-Z]{8,}'),
    re.compile(r'[0-9A-F]{12}'),
    re.compile(r'[0-9A-F]{14,}'),
    re.compile(r'.*-[0-9a-f]{6}'),
    re.compile(r'[A-Z]{2}[0-9A-F]{10,}'),
    re.compile(r'[0-9]+(?:-[0-9]+){2,}'),
)

VENDOR_SPLIT = re.compile(r'[-_/\s]')

MIN_FRIENDLY_LENGTH = 3
MIN_VENDOR_LENGTH = 2


def strip_local_suffix(name: str) -> str:
    """Remove a trailing ".local"/".lan" and any trailing dot."""
    name = name.rstrip('.')
    for suffix in ('.local', '.lan'):
        if name.endswith(suffix):
            name = name[:-len(suffix)]
    return name


def is_user_friendly(name: Optional[str]) -> bool:
    """Check whether a name is something a person would recognise.

    Names shorter than three characters and names that look like serial
    numbers (e.g. "X00012LDU0R2", "A1B2C3D4E5F6", "printer-a1b2c3") are
    not friendly.
    """
    if not name:
        return False
    cleaned = strip_local_suffix(name)
    if len(cleaned) < MIN_FRIENDLY_LENGTH:
        return False
    return not any(pattern.fullmatch(cleaned) for pattern in SERIAL_PATTERNS)


def extract_manufacturer(http_server: Optional[str]) -> Optional[str]:
    """First token of an HTTP Server header (e.g. "Lexmark_Web_Server" -> "Lexmark").

    Wildcard placeholders ("*", "******") and tokens shorter than two
    characters yield None.
    """
    if not http_server:
        return None
    server = http_server.strip()
    if server in PROBE.WILDCARD_SERVERS:
        return None
    token = VENDOR_SPLIT.split(server, maxsplit=1)[0]
    if len(token) < MIN_VENDOR_LENGTH or token in PROBE.WILDCARD_SERVERS:
        return None
    return token


@dataclass(frozen=True)
class DeviceNames:
    """Every name candidate collected for one address.

    Attributes:
        roku_http: Roku ECP user/friendly device name.
        ssdp: UPnP friendly name from an SSDP description.
        mdns: mDNS hostname or Bonjour instance name.
        netbios: NetBIOS workstation name.
        dns: Reverse DNS hostname.
        http_server: Raw HTTP Server header.
        device_type: Inferred device class (currently only "Printer").
    """

    roku_http: Optional[str] = None
    ssdp: Optional[str] = None
    mdns: Optional[str] = None
    netbios: Optional[str] = None
    dns: Optional[str] = None
    http_server: Optional[str] = None
    device_type: Optional[str] = None

    def with_passive(self, ssdp: Optional[str] = None,
                     mdns: Optional[str] = None) -> 'DeviceNames':
        """Fill SSDP/mDNS from passive caches where active probing found nothing."""
        return replace(
            self,
            ssdp=self.ssdp or ssdp,
            mdns=self.mdns or mdns,
        )

    @property
    def vendor(self) -> Optional[str]:
        return extract_manufacturer(self.http_server)

    def best_name(self) -> Optional[str]:
        """Pick the display name. Returns None when no candidate exists."""
        if is_user_friendly(self.ssdp):
            return self.ssdp
        if is_user_friendly(self.roku_http):
            return self.roku_http

        if self.device_type and self.http_server:
            manufacturer = extract_manufacturer(self.http_server)
            if manufacturer:
                return f"{manufacturer} {self.device_type}"

        for candidate in (self.netbios, self.mdns, self.dns):
            if is_user_friendly(candidate):
                return candidate

        for candidate in (self.ssdp, self.roku_http, self.mdns, self.netbios, self.dns):
            if candidate:
                return candidate
        return None

    def to_debug_string(self) -> str:
        """All candidates in fixed order, for scan result details."""
        return (
            f"SSDP:{self.ssdp} Roku:{self.roku_http} mDNS:{self.mdns} "
            f"NetBIOS:{self.netbios} DNS:{self.dns} "
            f"HTTP:{self.http_server} Type:{self.device_type}"
        )


def extract_vendor(names: DeviceNames) -> Optional[str]:
    """Vendor string stored alongside the device."""
    return extract_manufacturer(names.http_server)
