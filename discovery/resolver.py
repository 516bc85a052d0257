"""Active name resolution for a single live host.

Five independent probes run concurrently against the address:

1. Roku ECP device-info over HTTP
2. NetBIOS Node Status over UDP 137
3. Reverse DNS
4. mDNS reverse PTR query, with a Bonjour service-query fallback
5. TCP port scan with SSH/HTTP banner grabbing and printer inference

Each probe owns its timeout and returns None (or an empty result) on
failure; a failing probe never affects the others.
"""

import random
import socket
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Iterable, Optional, Set, Tuple

from config import PROBE, SCAN, ProtocolDecodeError, get_logger
from discovery import dns_wire, netbios
from discovery.http_fetch import get_roku_name
from discovery.names import DeviceNames

logger = get_logger(__name__)

PROBE_COUNT = 5
MDNS_TTL = 255


@dataclass(frozen=True)
class PortBanner:
    """What the port scan learned about a host.

    Attributes:
        http_server: HTTP Server header from port 80/8080.
        device_type: "Printer" when inferred, else None.
        discovered_name: Hostname-like token from an SSH banner.
        open_ports: Ports that accepted a connection.
    """
    http_server: Optional[str] = None
    device_type: Optional[str] = None
    discovered_name: Optional[str] = None
    open_ports: Tuple[int, ...] = ()


EMPTY_BANNER = PortBanner()


def _query_id() -> int:
    return random.randint(1, 0xFFFF)  # nosec B311 - DNS transaction id


def _udp_socket(timeout: float) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MDNS_TTL)
    sock.settimeout(timeout)
    return sock


# ========================================================================
# Reverse DNS
# ========================================================================

# Shared by every sweep worker
_reverse_dns_pool = ThreadPoolExecutor(
    max_workers=PROBE.REVERSE_DNS_WORKERS, thread_name_prefix="rdns"
)


def _gethostbyaddr(ip: str) -> Optional[str]:
    try:
        return socket.gethostbyaddr(ip)[0]
    except (OSError, UnicodeError):
        return None


def reverse_dns(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> Optional[str]:
    """PTR lookup through the system resolver.

    gethostbyaddr has no timeout parameter, so the lookup runs on a
    small shared pool and is given up on after ``timeout_ms``. A lookup
    still queued at that point is cancelled; one already running
    finishes in the background but holds only one of the pool's
    workers. Returns None when the resolver just echoes the address back.
    """
    future = _reverse_dns_pool.submit(_gethostbyaddr, ip)
    try:
        name = future.result(timeout=timeout_ms / 1000)
    except FuturesTimeoutError:
        future.cancel()
        logger.debug(f"Reverse DNS for {ip} timed out after {timeout_ms}ms")
        return None

    if not name or name == ip:
        return None
    return name


# ========================================================================
# mDNS
# ========================================================================

def mdns_query(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> Optional[str]:
    """Ask the mDNS group who owns ``ip`` via a reverse PTR query.

    Retries once with a doubled timeout, then falls back to Bonjour
    service queries.
    """
    question = dns_wire.reverse_pointer_name(ip)
    destination = (PROBE.MDNS_GROUP, PROBE.MDNS_PORT)

    for attempt in range(1, PROBE.MDNS_ATTEMPTS + 1):
        try:
            with _udp_socket(timeout_ms * attempt / 1000) as sock:
                sock.sendto(dns_wire.build_ptr_query(_query_id(), question), destination)
                data, _ = sock.recvfrom(PROBE.MDNS_BUFFER_SIZE)
            hostname = dns_wire.parse_ptr_hostname(data)
            if hostname:
                return hostname.rstrip('.')
        except socket.timeout:
            continue
        except ProtocolDecodeError as e:
            logger.debug(f"Bad mDNS reply for {ip}: {e}")
        except OSError as e:
            logger.debug(f"mDNS query failed for {ip}: {e}")
            break

    return bonjour_service_query(ip, timeout_ms)


def bonjour_service_query(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> Optional[str]:
    """Browse common Bonjour services and keep answers sent by ``ip``.

    Returns the service instance name (e.g. "Office Mac") of the first
    matching answer.
    """
    destination = (PROBE.MDNS_GROUP, PROBE.MDNS_PORT)

    for service in PROBE.BONJOUR_FALLBACK_SERVICES:
        try:
            with _udp_socket(timeout_ms / 1000) as sock:
                sock.sendto(dns_wire.build_ptr_query(_query_id(), service), destination)
                while True:
                    try:
                        data, (source, _) = sock.recvfrom(PROBE.BONJOUR_BUFFER_SIZE)
                    except socket.timeout:
                        break
                    if source != ip:
                        continue
                    try:
                        instance = dns_wire.parse_service_instance(data)
                    except ProtocolDecodeError as e:
                        logger.debug(f"Bad Bonjour reply from {ip}: {e}")
                        continue
                    if instance:
                        return instance
        except OSError as e:
            logger.debug(f"Bonjour query {service} failed for {ip}: {e}")
            return None

    return None


# ========================================================================
# NetBIOS
# ========================================================================

def netbios_lookup(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> Optional[str]:
    """NBSTAT query; first attempt uses ``timeout_ms``, retries use double."""
    for attempt in range(1, PROBE.NETBIOS_ATTEMPTS + 1):
        timeout = timeout_ms if attempt == 1 else timeout_ms * 2
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(timeout / 1000)
                sock.sendto(netbios.build_nbstat_query(_query_id()), (ip, PROBE.NETBIOS_PORT))
                data, _ = sock.recvfrom(PROBE.NETBIOS_BUFFER_SIZE)
            return netbios.parse_nbstat_response(data)
        except socket.timeout:
            continue
        except ProtocolDecodeError as e:
            logger.debug(f"Bad NBSTAT reply from {ip}: {e}")
            return None
        except OSError as e:
            logger.debug(f"NetBIOS lookup failed for {ip}: {e}")
            return None
    return None


# ========================================================================
# Port scan and banners
# ========================================================================

def infer_printer_type(server: Optional[str], open_ports: Iterable[int] = ()) -> Optional[str]:
    """Coarse printer guess from the HTTP Server header and open ports.

    A printer-vendor Server header, or at least two of the dedicated
    printer ports (IPP 631, raw 9100) being open, means "Printer".
    """
    lowered = (server or '').lower()
    if any(keyword in lowered for keyword in PROBE.PRINTER_KEYWORDS):
        return "Printer"
    if 'hp' in lowered and any(keyword in lowered for keyword in PROBE.HP_PRINTER_KEYWORDS):
        return "Printer"
    printer_ports = set(open_ports).intersection(PROBE.PRINTER_PORTS)
    if len(printer_ports) >= PROBE.MIN_PRINTER_PORTS:
        return "Printer"
    return None


def parse_ssh_banner(banner: str) -> Optional[str]:
    """Trailing token of an SSH banner when it is not an OpenSSH version.

    "SSH-2.0-dropbear synology-nas" -> "synology-nas"
    """
    parts = banner.strip().split(' ')
    if len(parts) <= 1:
        return None
    last = parts[-1].strip()
    if not last or last.startswith('OpenSSH'):
        return None
    return last


def parse_server_header(response: str) -> Optional[str]:
    for line in response.splitlines():
        if line.lower().startswith('server:'):
            value = line.split(':', 1)[1].strip()
            return value or None
    return None


def _read_ssh_banner(sock: socket.socket) -> Optional[str]:
    data = b''
    while b'\n' not in data and len(data) < PROBE.BANNER_BUFFER_SIZE:
        chunk = sock.recv(256)
        if not chunk:
            break
        data += chunk
    line = data.split(b'\n', 1)[0].decode('utf-8', errors='replace')
    return parse_ssh_banner(line)


def _read_http_server(sock: socket.socket, ip: str) -> Optional[str]:
    sock.sendall(f"HEAD / HTTP/1.0\r\nHost: {ip}\r\n\r\n".encode('ascii'))
    data = b''
    while b'\r\n\r\n' not in data and len(data) < PROBE.BANNER_BUFFER_SIZE:
        chunk = sock.recv(1024)
        if not chunk:
            break
        data += chunk
    return parse_server_header(data.decode('utf-8', errors='replace'))


def port_scan_with_banner(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> PortBanner:
    """Connect to each banner port in order and read what it offers.

    SSH banners may carry a hostname, HTTP Server headers name a vendor
    and may identify a printer, and two or more open printer ports
    (IPP, raw) also mark the host as a printer.
    """
    http_server: Optional[str] = None
    discovered_name: Optional[str] = None
    open_ports: Set[int] = set()

    for port, _label in PROBE.BANNER_PORTS:
        try:
            with socket.create_connection((ip, port), timeout=timeout_ms / 1000) as sock:
                open_ports.add(port)
                if port == 22:
                    discovered_name = _read_ssh_banner(sock) or discovered_name
                elif port in (80, 8080):
                    server = _read_http_server(sock, ip)
                    if server:
                        http_server = server
        except OSError:
            continue

    return PortBanner(
        http_server=http_server,
        device_type=infer_printer_type(http_server, open_ports),
        discovered_name=discovered_name,
        open_ports=tuple(sorted(open_ports)),
    )


# ========================================================================
# Combined resolution
# ========================================================================

def _result_or_default(future: Future, probe: str, ip: str, default=None):
    try:
        return future.result()
    except Exception as e:
        logger.debug(f"{probe} probe raised for {ip}: {e}")
        return default


def discover_all_names(ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> DeviceNames:
    """Run all five probes concurrently and collect their candidates.

    An mDNS hostname from the active query wins over a name found in an
    SSH banner; HTTP server and device type come from the port scan.
    """
    with ThreadPoolExecutor(max_workers=PROBE_COUNT, thread_name_prefix=f"names-{ip}") as pool:
        roku = pool.submit(get_roku_name, ip, PROBE.ROKU_TIMEOUT_MS)
        nbns = pool.submit(netbios_lookup, ip, timeout_ms)
        dns = pool.submit(reverse_dns, ip, timeout_ms)
        mdns = pool.submit(mdns_query, ip, timeout_ms)
        ports = pool.submit(port_scan_with_banner, ip, timeout_ms)

        banner = _result_or_default(ports, "Port", ip, EMPTY_BANNER)
        names = DeviceNames(
            roku_http=_result_or_default(roku, "Roku", ip),
            netbios=_result_or_default(nbns, "NetBIOS", ip),
            dns=_result_or_default(dns, "DNS", ip),
            mdns=_result_or_default(mdns, "mDNS", ip) or banner.discovered_name,
            http_server=banner.http_server,
            device_type=banner.device_type,
        )

    logger.debug(f"Names for {ip}: {names.to_debug_string()}")
    return names
