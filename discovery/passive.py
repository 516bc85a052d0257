"""Passive background discovery.

Two listeners feed thread-safe IP -> name maps that the scan
orchestrator reads while it sweeps:

- MdnsListener: joins the mDNS group and records hostnames announced by
  other hosts; optionally also browses common Bonjour service types
  with zeroconf and records resolved service hosts.
- SsdpListener: sends M-SEARCH for a few targets, follows each
  LOCATION to the UPnP description (and Roku device-info) and records
  the friendly name.

Both are started and stopped explicitly. ``stop()`` is synchronous: it
returns only once the receive loop (and any in-flight description
fetches) have finished, so a listener can be started again right away.
"""

import socket
import struct
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Set

from zeroconf import IPVersion, ServiceBrowser, ServiceInfo, ServiceStateChange, Zeroconf

from config import (
    DISCOVERY,
    PROBE,
    ProtocolDecodeError,
    ScannerError,
    get_logger,
    log_exception,
)
from discovery import dns_wire
from discovery.http_fetch import fetch_text, get_roku_name, parse_device_description
from discovery.ssdp import build_msearch, parse_location

logger = get_logger(__name__)

SSDP_MULTICAST_TTL = 2


class PassiveNameMap:
    """Lock-guarded IP -> name map shared between a listener and scans."""

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, ip: str) -> Optional[str]:
        with self._lock:
            return self._names.get(ip)

    def set(self, ip: str, name: str) -> None:
        with self._lock:
            self._names[ip] = name

    def set_if_absent(self, ip: str, name: str) -> bool:
        """Store ``name`` unless ``ip`` already has one. Returns True if stored."""
        with self._lock:
            if ip in self._names:
                return False
            self._names[ip] = name
            return True

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._names)

    def clear(self) -> None:
        with self._lock:
            self._names.clear()

    def __contains__(self, ip: object) -> bool:
        with self._lock:
            return ip in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


class PassiveListener:
    """Base class: one socket, one receive thread, explicit start/stop."""

    thread_name = "passive-listener"

    def __init__(self, names: Optional[PassiveNameMap] = None):
        self.names = names if names is not None else PassiveNameMap()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lifecycle_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get(self, ip: str) -> Optional[str]:
        return self.names.get(ip)

    def start(self) -> None:
        """Open the socket and start the receive thread.

        Raises:
            ScannerError: If the socket cannot be opened or bound.
        """
        with self._lifecycle_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            sock = self._open_socket()
            self._thread = threading.Thread(
                target=self._run, args=(sock,), name=self.thread_name, daemon=True
            )
            self._thread.start()
            self._on_started()
        logger.info(f"{self.thread_name} started")

    def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        with self._lifecycle_lock:
            self._stop_event.set()
            self._on_stopping()
            thread = self._thread
            if thread is not None:
                thread.join()
            self._thread = None
        logger.info(f"{self.thread_name} stopped")

    def _run(self, sock: socket.socket) -> None:
        try:
            self._receive_loop(sock)
        except Exception as e:
            log_exception(logger, f"{self.thread_name} receive loop failed", e)
        finally:
            self._close_socket(sock)

    def _open_socket(self) -> socket.socket:
        raise NotImplementedError

    def _receive_loop(self, sock: socket.socket) -> None:
        raise NotImplementedError

    def _close_socket(self, sock: socket.socket) -> None:
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Closing {self.thread_name} socket: {e}")

    def _on_started(self) -> None:
        pass

    def _on_stopping(self) -> None:
        pass


# ========================================================================
# mDNS
# ========================================================================

def service_display_name(server: Optional[str], full_name: str, service_type: str) -> Optional[str]:
    """Name for a resolved Bonjour service.

    Uses the advertised host ("Living-Room.local." -> "Living-Room"),
    unless it is missing or a UUID, in which case the service instance
    name is used ("Kitchen._airplay._tcp.local." -> "Kitchen").
    """
    host = (server or '').rstrip('.')
    if host.endswith('.local'):
        host = host[:-len('.local')]
    if host and not dns_wire.UUID_PATTERN.fullmatch(host):
        return host

    suffix = '.' + service_type
    instance = full_name[:-len(suffix)] if full_name.endswith(suffix) else full_name.split('._', 1)[0]
    return instance.strip() or None


class MdnsListener(PassiveListener):
    """Records hostnames from mDNS traffic seen on 224.0.0.251:5353."""

    thread_name = "mdns-listener"

    def __init__(self, names: Optional[PassiveNameMap] = None, browse_services: bool = True):
        super().__init__(names)
        self.browse_services = browse_services
        self._zeroconf: Optional[Zeroconf] = None
        self._browser: Optional[ServiceBrowser] = None

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, 'SO_REUSEPORT'):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(('', PROBE.MDNS_PORT))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership())
            sock.settimeout(DISCOVERY.MDNS_RECEIVE_TIMEOUT_SECONDS)
        except OSError as e:
            sock.close()
            raise ScannerError(
                f"Cannot join mDNS group: {e}",
                {"group": PROBE.MDNS_GROUP, "port": PROBE.MDNS_PORT},
            ) from e
        return sock

    @staticmethod
    def _membership() -> bytes:
        return struct.pack('4s4s', socket.inet_aton(PROBE.MDNS_GROUP), socket.inet_aton('0.0.0.0'))

    def _close_socket(self, sock: socket.socket) -> None:
        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership())
        except OSError as e:
            logger.debug(f"Dropping mDNS membership: {e}")
        super()._close_socket(sock)

    def _receive_loop(self, sock: socket.socket) -> None:
        while not self._stop_event.is_set():
            try:
                data, (source, _) = sock.recvfrom(DISCOVERY.MDNS_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_event.is_set():
                    logger.warning(f"mDNS receive failed: {e}")
                break

            try:
                hostname = dns_wire.parse_announced_hostname(data)
            except ProtocolDecodeError as e:
                logger.debug(f"Ignoring mDNS packet from {source}: {e}")
                continue

            if hostname:
                self.names.set(source, hostname)
                logger.debug(f"mDNS: {source} -> {hostname}")

    # --- zeroconf service browser ---

    def _on_started(self) -> None:
        if not self.browse_services:
            return
        try:
            self._zeroconf = Zeroconf(ip_version=IPVersion.V4Only)
            self._browser = ServiceBrowser(
                self._zeroconf,
                list(DISCOVERY.MDNS_BROWSE_SERVICES),
                handlers=[self._on_service_state_change],
            )
        except OSError as e:
            logger.warning(f"mDNS service browser unavailable: {e}")
            self._close_zeroconf()

    def _on_stopping(self) -> None:
        self._close_zeroconf()

    def _close_zeroconf(self) -> None:
        if self._browser is not None:
            self._browser.cancel()
            self._browser = None
        if self._zeroconf is not None:
            self._zeroconf.close()
            self._zeroconf = None

    def _on_service_state_change(self, zeroconf: Zeroconf, service_type: str,
                                 name: str, state_change: ServiceStateChange) -> None:
        if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
            return
        info = zeroconf.get_service_info(
            service_type, name, timeout=DISCOVERY.MDNS_RESOLVE_TIMEOUT_MS
        )
        if info is not None:
            self.record_service(info, service_type)

    def record_service(self, info: ServiceInfo, service_type: str) -> None:
        """Store a resolved service's host name unless the IP is already known."""
        addresses = info.parsed_addresses(IPVersion.V4Only)
        if not addresses:
            return
        display = service_display_name(info.server, info.name, service_type)
        if display and self.names.set_if_absent(addresses[0], display):
            logger.debug(f"mDNS service: {addresses[0]} -> {display}")


# ========================================================================
# SSDP
# ========================================================================

class SsdpListener(PassiveListener):
    """Sends M-SEARCH and records UPnP friendly names of responders."""

    thread_name = "ssdp-listener"

    def __init__(self, names: Optional[PassiveNameMap] = None,
                 search_targets: Optional[List[str]] = None):
        super().__init__(names)
        self.search_targets = list(search_targets or DISCOVERY.SSDP_SEARCH_TARGETS)

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, SSDP_MULTICAST_TTL)
            sock.bind(('', 0))
            sock.settimeout(DISCOVERY.SSDP_RECEIVE_TIMEOUT_SECONDS)
        except OSError as e:
            sock.close()
            raise ScannerError(f"Cannot open SSDP socket: {e}") from e
        return sock

    def _receive_loop(self, sock: socket.socket) -> None:
        destination = (DISCOVERY.SSDP_GROUP, DISCOVERY.SSDP_PORT)
        seen: Set[str] = set()
        fetcher = ThreadPoolExecutor(
            max_workers=DISCOVERY.DESCRIPTION_FETCH_WORKERS, thread_name_prefix="ssdp-fetch"
        )
        try:
            for target in self.search_targets:
                if self._stop_event.is_set():
                    return
                sock.sendto(build_msearch(target), destination)
                self._stop_event.wait(DISCOVERY.SSDP_SEND_GAP_SECONDS)

            deadline = time.monotonic() + DISCOVERY.SSDP_LISTEN_WINDOW_SECONDS
            while not self._stop_event.is_set() and time.monotonic() < deadline:
                try:
                    data, (source, _) = sock.recvfrom(DISCOVERY.SSDP_BUFFER_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._stop_event.is_set():
                        logger.warning(f"SSDP receive failed: {e}")
                    break

                try:
                    location = parse_location(data)
                except ProtocolDecodeError as e:
                    logger.debug(f"Ignoring SSDP packet from {source}: {e}")
                    continue

                if location and location not in seen:
                    seen.add(location)
                    fetcher.submit(self.resolve_device, source, location)
        finally:
            fetcher.shutdown(wait=True, cancel_futures=True)

    def resolve_device(self, ip: str, location: str) -> Optional[str]:
        """Fetch the description at ``location`` and record the device name.

        A Roku user-set or friendly name overrides the UPnP name.
        """
        if self._stop_event.is_set():
            return None

        name = None
        body = fetch_text(location, DISCOVERY.DESCRIPTION_FETCH_TIMEOUT_SECONDS)
        if body:
            name = parse_device_description(body)

        roku_name = get_roku_name(
            ip, int(DISCOVERY.DESCRIPTION_FETCH_TIMEOUT_SECONDS * 1000), include_model=False
        )
        if roku_name:
            name = roku_name

        if name:
            self.names.set(ip, name)
            logger.debug(f"SSDP: {ip} -> {name}")
        return name
