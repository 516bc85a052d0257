"""NetBIOS Node Status (NBSTAT) query codec.

An NBSTAT request to UDP 137 asks a Windows/Samba host for its name
table. The reply lists up to 255 entries of 18 bytes each: a 15-byte
space-padded name, a one-byte suffix and two bytes of flags.
"""

import struct
from typing import List, NamedTuple, Optional

from config import ProtocolDecodeError
from discovery.dns_wire import HEADER_LENGTH, skip_name

NBSTAT_TYPE = 0x0021
NBSTAT_CLASS = 0x0001
NBSTAT_FLAGS = 0x0010

NAME_LENGTH = 16
ENTRY_LENGTH = 18
# header + encoded name + type/class/ttl/rdlength + name count
MIN_RESPONSE_LENGTH = HEADER_LENGTH + 34 + 10 + 1

WORKSTATION_SUFFIX = 0x00
GROUP_FLAG = 0x8000


class NameEntry(NamedTuple):
    name: str
    suffix: int
    flags: int

    @property
    def is_group(self) -> bool:
        return bool(self.flags & GROUP_FLAG)


def encode_netbios_name(name: str) -> bytes:
    """First-level encode a NetBIOS name (RFC 1001 section 14.1).

    The name is uppercased and padded to 16 bytes, each byte split into
    two nibbles offset from 'A'. The wildcard "*" is NUL-padded, all
    other names are space-padded. Returns the 34-byte wire form
    (length byte, 32 characters, terminating zero).
    """
    pad = b'\x00' if name == '*' else b' '
    raw = name.upper().encode('ascii', errors='replace')[:NAME_LENGTH]
    raw = raw.ljust(NAME_LENGTH, pad)

    encoded = bytearray([0x20])
    for byte in raw:
        encoded.append(ord('A') + ((byte >> 4) & 0x0F))
        encoded.append(ord('A') + (byte & 0x0F))
    encoded.append(0)
    return bytes(encoded)


def build_nbstat_query(transaction_id: int) -> bytes:
    """Build a wildcard Node Status request."""
    header = struct.pack('!HHHHHH', transaction_id & 0xFFFF, NBSTAT_FLAGS, 1, 0, 0, 0)
    return header + encode_netbios_name('*') + struct.pack('!HH', NBSTAT_TYPE, NBSTAT_CLASS)


def parse_name_table(data: bytes) -> List[NameEntry]:
    """Decode the name table of an NBSTAT response.

    Raises:
        ProtocolDecodeError: If the packet is truncated or is not an NBSTAT answer.
    """
    if len(data) < MIN_RESPONSE_LENGTH:
        raise ProtocolDecodeError("Truncated NBSTAT response", {"length": len(data)})

    pos = skip_name(data, HEADER_LENGTH)
    if pos + 10 > len(data):
        raise ProtocolDecodeError("Truncated NBSTAT answer", {"length": len(data)})

    rtype, _, _, _ = struct.unpack('!HHIH', data[pos:pos + 10])
    if rtype != NBSTAT_TYPE:
        raise ProtocolDecodeError("Not an NBSTAT answer", {"type": rtype})
    pos += 10

    if pos >= len(data):
        raise ProtocolDecodeError("Missing NBSTAT name count", {"length": len(data)})
    count = data[pos]
    pos += 1

    entries = []
    for _ in range(count):
        if pos + ENTRY_LENGTH > len(data):
            break
        name = data[pos:pos + 15].decode('ascii', errors='replace').strip(' \x00')
        suffix = data[pos + 15]
        flags = struct.unpack('!H', data[pos + 16:pos + 18])[0]
        entries.append(NameEntry(name, suffix, flags))
        pos += ENTRY_LENGTH
    return entries


def parse_nbstat_response(data: bytes) -> Optional[str]:
    """Workstation name from an NBSTAT response.

    Prefers the unique name with the workstation suffix, otherwise the
    first non-blank entry.

    Raises:
        ProtocolDecodeError: If the packet cannot be decoded.
    """
    entries = [entry for entry in parse_name_table(data) if entry.name]
    for entry in entries:
        if entry.suffix == WORKSTATION_SUFFIX and not entry.is_group:
            return entry.name
    return entries[0].name if entries else None
