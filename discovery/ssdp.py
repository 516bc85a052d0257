"""SSDP (UPnP discovery) message codec."""

from typing import Dict, Optional

from config import DISCOVERY, ProtocolDecodeError

MSEARCH_TEMPLATE = (
    "M-SEARCH * HTTP/1.1\r\n"
    "HOST: {addr}:{port}\r\n"
    "MAN: \"ssdp:discover\"\r\n"
    "MX: {mx}\r\n"
    "ST: {st}\r\n"
    "\r\n"
)


def build_msearch(search_target: str, mx: int = DISCOVERY.SSDP_MX) -> bytes:
    return MSEARCH_TEMPLATE.format(
        addr=DISCOVERY.SSDP_GROUP,
        port=DISCOVERY.SSDP_PORT,
        mx=mx,
        st=search_target,
    ).encode('ascii')


def parse_ssdp_headers(payload: bytes) -> Dict[str, str]:
    """Parse an SSDP response or NOTIFY into upper-cased header names.

    Raises:
        ProtocolDecodeError: If the payload has no HTTP-style start line.
    """
    text = payload.decode('utf-8', errors='replace')
    lines = text.split('\r\n') if '\r\n' in text else text.split('\n')
    start = lines[0].strip().upper() if lines else ''
    if not (start.startswith('HTTP/') or start.startswith('NOTIFY') or start.startswith('M-SEARCH')):
        raise ProtocolDecodeError("Not an SSDP message", {"start": start[:40]})

    headers: Dict[str, str] = {}
    for line in lines[1:]:
        if ':' not in line:
            continue
        key, value = line.split(':', 1)
        headers[key.strip().upper()] = value.strip()
    return headers


def parse_location(payload: bytes) -> Optional[str]:
    """LOCATION header of an SSDP message, or None."""
    location = parse_ssdp_headers(payload).get('LOCATION')
    return location or None
