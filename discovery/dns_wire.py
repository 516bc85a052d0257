"""DNS/mDNS wire format helpers.

Builds single-question PTR queries and walks the answer section of
responses, following name compression pointers. Used by the active mDNS
probe, the Bonjour fallback and the passive mDNS listener.

Decoding is lenient about truncated answer sections (whatever parsed
cleanly is kept) and strict about the header: a payload too short to
hold a DNS header raises ProtocolDecodeError.
"""

import re
import struct
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from config import ProtocolDecodeError

HEADER_LENGTH = 12
TYPE_PTR = 12
CLASS_IN = 1
POINTER_MASK = 0xC0
MAX_POINTER_JUMPS = 10

UUID_PATTERN = re.compile(r'[0-9a-fA-F-]{36}')


@dataclass(frozen=True)
class ResourceRecord:
    """One answer record; rdata is left in place in the packet."""
    name: Optional[str]
    rtype: int
    rclass: int
    ttl: int
    rdata_offset: int
    rdlength: int


def encode_name(name: str) -> bytes:
    """Encode a dotted name as length-prefixed labels plus the root byte."""
    encoded = bytearray()
    for label in name.strip('.').split('.'):
        if not label:
            continue
        raw = label.encode('utf-8')
        encoded.append(len(raw))
        encoded += raw
    encoded.append(0)
    return bytes(encoded)


def build_ptr_query(query_id: int, name: str) -> bytes:
    """Build a standard query with one PTR/IN question for ``name``."""
    header = struct.pack('!HHHHHH', query_id & 0xFFFF, 0, 1, 0, 0, 0)
    return header + encode_name(name) + struct.pack('!HH', TYPE_PTR, CLASS_IN)


def reverse_pointer_name(ip: str) -> str:
    """"192.168.1.5" -> "5.1.168.192.in-addr.arpa"."""
    return '.'.join(reversed(ip.split('.'))) + '.in-addr.arpa'


def read_name(data: bytes, offset: int) -> Optional[str]:
    """Read a possibly-compressed name starting at ``offset``.

    Follows at most MAX_POINTER_JUMPS pointers. Returns None for an empty
    name or a name that runs off the end of the packet.
    """
    labels: List[str] = []
    pos = offset
    jumps = 0

    while pos < len(data):
        length = data[pos]
        if length == 0:
            break
        if length & POINTER_MASK == POINTER_MASK:
            if pos + 1 >= len(data) or jumps >= MAX_POINTER_JUMPS:
                break
            pos = ((length & 0x3F) << 8) | data[pos + 1]
            jumps += 1
            continue
        end = pos + 1 + length
        if end > len(data):
            break
        labels.append(data[pos + 1:end].decode('utf-8', errors='replace'))
        pos = end

    return '.'.join(labels) if labels else None


def skip_name(data: bytes, offset: int) -> int:
    """Return the offset just past the name starting at ``offset``."""
    pos = offset
    while pos < len(data):
        length = data[pos]
        if length == 0:
            return pos + 1
        if length & POINTER_MASK == POINTER_MASK:
            return pos + 2
        pos += 1 + length
    return pos


def _parse_header(data: bytes) -> Tuple[int, int]:
    if len(data) < HEADER_LENGTH:
        raise ProtocolDecodeError("Truncated DNS header", {"length": len(data)})
    _, _, qdcount, ancount, _, _ = struct.unpack('!HHHHHH', data[:HEADER_LENGTH])
    return qdcount, ancount


def iter_answers(data: bytes) -> Iterator[ResourceRecord]:
    """Yield answer records, stopping quietly at the first truncated one.

    Raises:
        ProtocolDecodeError: If the packet is shorter than a DNS header.
    """
    qdcount, ancount = _parse_header(data)

    pos = HEADER_LENGTH
    for _ in range(qdcount):
        pos = skip_name(data, pos) + 4
        if pos > len(data):
            return

    for _ in range(ancount):
        if pos >= len(data):
            return
        name = read_name(data, pos)
        pos = skip_name(data, pos)
        if pos + 10 > len(data):
            return
        rtype, rclass, ttl, rdlength = struct.unpack('!HHIH', data[pos:pos + 10])
        pos += 10
        yield ResourceRecord(
            name=name, rtype=rtype, rclass=rclass & 0x7FFF, ttl=ttl,
            rdata_offset=pos, rdlength=rdlength,
        )
        pos += rdlength


def parse_ptr_hostname(data: bytes) -> Optional[str]:
    """Hostname from the first PTR answer whose target ends in ".local".

    Returns the target without the ".local" suffix
    (e.g. "Living-Room.local" -> "Living-Room").
    """
    for record in iter_answers(data):
        if record.rtype != TYPE_PTR:
            continue
        target = read_name(data, record.rdata_offset)
        if target and target.rstrip('.').endswith('.local'):
            hostname = target.rstrip('.')[:-len('.local')]
            if hostname:
                return hostname
    return None


def parse_service_instance(data: bytes) -> Optional[str]:
    """Instance name from the first PTR answer of a Bonjour service query.

    "Office Mac._smb._tcp.local" -> "Office Mac".
    """
    for record in iter_answers(data):
        if record.rtype != TYPE_PTR:
            continue
        target = read_name(data, record.rdata_offset)
        if not target:
            continue
        instance = target.split('._', 1)[0].strip()
        if instance:
            return instance
    return None


def is_service_or_generated(name: str) -> bool:
    """True for service labels, UUIDs and names of two characters or fewer."""
    return (
        name.startswith('_')
        or '._' in name
        or UUID_PATTERN.fullmatch(name) is not None
        or len(name) <= 2
    )


def parse_announced_hostname(data: bytes) -> Optional[str]:
    """Hostname from an unsolicited mDNS announcement.

    Looks at answer owner names ending in ".local" and returns the first
    that is not a service label, a UUID or too short.
    """
    for record in iter_answers(data):
        if not record.name:
            continue
        owner = record.name.rstrip('.')
        if not owner.endswith('.local'):
            continue
        hostname = owner[:-len('.local')]
        if hostname and not is_service_or_generated(hostname):
            return hostname
    return None
