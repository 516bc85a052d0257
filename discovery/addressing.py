"""Address-range planning for CIDR sweeps.

Converts between dotted-quad strings and 32-bit integers and turns a
CIDR string into the inclusive range of host addresses to probe.

Example:
    >>> rng = parse_cidr("192.168.1.0/30")
    >>> [int_to_ip(a) for a in rng]
    ['192.168.1.1', '192.168.1.2']
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from config import SCAN, InvalidCidrError, NetworkTooLargeError

ALL_ONES = 0xFFFFFFFF


def _is_decimal(text: str) -> bool:
    # str.isdigit() also accepts superscripts and other scripts int() rejects
    return text.isascii() and text.isdigit()


def ip_to_int(ip: str) -> Optional[int]:
    """Convert a dotted-quad string to a big-endian 32-bit integer.

    Returns:
        The integer value, or None if the string is not four octets in [0, 255].
    """
    parts = ip.strip().split('.')
    if len(parts) != 4:
        return None

    value = 0
    for part in parts:
        if not _is_decimal(part):
            return None
        octet = int(part)
        if octet > 255:
            return None
        value = (value << 8) | octet
    return value


def int_to_ip(value: int) -> str:
    """Convert a 32-bit integer to a dotted-quad string."""
    return (
        f"{(value >> 24) & 0xFF}.{(value >> 16) & 0xFF}."
        f"{(value >> 8) & 0xFF}.{value & 0xFF}"
    )


def prefix_to_mask(prefix: int) -> int:
    """Netmask for a prefix length in [0, 32]."""
    if prefix <= 0:
        return 0
    return (ALL_ONES << (32 - prefix)) & ALL_ONES


def mask_to_prefix(netmask: str) -> Optional[int]:
    """Prefix length of a dotted-quad netmask (e.g. 255.255.255.0 -> 24)."""
    value = ip_to_int(netmask)
    if value is None:
        return None
    return bin(value).count('1')


def host_count_label(prefix: int) -> str:
    """Approximate usable host count for a rejected prefix, for warnings."""
    return SCAN.HOST_COUNT_LABELS.get(prefix, "too many")


@dataclass(frozen=True)
class AddressRange:
    """Inclusive range of host addresses derived from a CIDR string.

    Attributes:
        network: Network address (base & mask).
        first: First host address to probe.
        last: Last host address to probe.
        prefix: Prefix length the range was derived from.
    """

    network: int
    first: int
    last: int
    prefix: int

    @property
    def broadcast(self) -> int:
        return self.network | (~prefix_to_mask(self.prefix) & ALL_ONES)

    @property
    def cidr(self) -> str:
        return f"{int_to_ip(self.network)}/{self.prefix}"

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.first, self.last + 1))

    def __len__(self) -> int:
        return self.last - self.first + 1

    def __contains__(self, address: object) -> bool:
        if isinstance(address, str):
            address = ip_to_int(address)
        if not isinstance(address, int):
            return False
        return self.first <= address <= self.last


def parse_cidr(cidr: str) -> AddressRange:
    """Parse ``A.B.C.D/N`` into the range of host addresses to sweep.

    /32 yields the single address itself. /31 yields both addresses
    (point-to-point link, no network or broadcast address).

    Raises:
        InvalidCidrError: If the string is malformed or the prefix is outside [1, 32].
        NetworkTooLargeError: If the prefix is below /22.
    """
    parts = cidr.strip().split('/')
    if len(parts) != 2:
        raise InvalidCidrError("Invalid CIDR", {"cidr": cidr})

    base = ip_to_int(parts[0])
    if base is None:
        raise InvalidCidrError("Invalid CIDR address", {"cidr": cidr})

    prefix_text = parts[1].strip()
    if not _is_decimal(prefix_text):
        raise InvalidCidrError("Invalid CIDR prefix", {"cidr": cidr})
    prefix = int(prefix_text)
    if not 1 <= prefix <= SCAN.MAX_PREFIX:
        raise InvalidCidrError("CIDR prefix out of range", {"cidr": cidr})

    if prefix < SCAN.MIN_PREFIX:
        raise NetworkTooLargeError(
            "Network too large", prefix=prefix, host_count=host_count_label(prefix)
        )

    mask = prefix_to_mask(prefix)
    network = base & mask
    broadcast = network | (~mask & ALL_ONES)

    if prefix == 32:
        first = last = network
    elif prefix == 31:
        first, last = network, broadcast
    else:
        first, last = network + 1, broadcast - 1

    return AddressRange(network=network, first=first, last=last, prefix=prefix)


def cidr_for(ip: str, prefix: int) -> Optional[str]:
    """Network CIDR containing ``ip`` (e.g. ("10.0.0.7", 24) -> "10.0.0.0/24")."""
    value = ip_to_int(ip)
    if value is None or not 1 <= prefix <= 32:
        return None
    return f"{int_to_ip(value & prefix_to_mask(prefix))}/{prefix}"


def normalize_to_network_cidr(candidate: str, fallback: str) -> str:
    """Rewrite a host CIDR to its network address, or return ``fallback``.

    Example:
        >>> normalize_to_network_cidr("192.168.1.57/24", "10.0.0.0/24")
        '192.168.1.0/24'
    """
    parts = candidate.strip().split('/')
    if len(parts) == 2 and _is_decimal(parts[1].strip()):
        normalized = cidr_for(parts[0], int(parts[1]))
        if normalized is not None:
            return normalized
    return fallback


__all__ = [
    "AddressRange",
    "cidr_for",
    "host_count_label",
    "int_to_ip",
    "ip_to_int",
    "mask_to_prefix",
    "normalize_to_network_cidr",
    "parse_cidr",
    "prefix_to_mask",
]
