"""Local network lookup and network change detection.

Uses psutil to find this machine's IPv4 address and prefix so a scan
can default to the attached subnet.
"""

import re
import socket
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import psutil

from config import SubprocessError, get_logger, safe_run
from discovery.addressing import cidr_for, int_to_ip, mask_to_prefix

logger = get_logger(__name__)

PROC_NET_ROUTE = Path("/proc/net/route")


def get_local_ipv4() -> Optional[Tuple[str, int]]:
    """(address, prefix) of the first up, non-loopback IPv4 interface."""
    try:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError) as e:
        logger.warning(f"Could not read network interfaces: {e}")
        return None

    for iface, addr_list in addrs.items():
        if iface.startswith('lo'):
            continue
        if iface not in stats or not stats[iface].isup:
            continue

        for addr in addr_list:
            if addr.family != socket.AF_INET or addr.address.startswith('127.'):
                continue
            prefix = mask_to_prefix(addr.netmask) if addr.netmask else None
            if prefix:
                logger.debug(f"Using {iface}: {addr.address}/{prefix}")
                return addr.address, prefix

    return None


def get_interface_cidr() -> Optional[str]:
    """Network CIDR of the local interface, e.g. "192.168.1.0/24"."""
    local = get_local_ipv4()
    if local is None:
        return None
    return cidr_for(*local)


def detect_best_cidr() -> Optional[str]:
    """CIDR to scan by default, or None when no interface is usable."""
    cidr = get_interface_cidr()
    if cidr is None:
        logger.info("No usable IPv4 interface found")
    return cidr


def parse_proc_net_route(text: str) -> Optional[str]:
    """Default gateway from the Linux kernel routing table.

    Gateway fields are little-endian hex, e.g. "0101A8C0" for 192.168.1.1.
    """
    for line in text.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 3 or fields[1] != "00000000":
            continue
        try:
            gateway = int.from_bytes(bytes.fromhex(fields[2]), "little")
        except ValueError:
            continue
        if gateway:
            return int_to_ip(gateway)
    return None


def parse_route_get(output: str) -> Optional[str]:
    """Default gateway from `route -n get default` output (macOS)."""
    match = re.search(r'^\s*gateway:\s*(\d+\.\d+\.\d+\.\d+)\s*$', output, re.MULTILINE)
    return match.group(1) if match else None


def get_default_gateway() -> Optional[str]:
    """IPv4 address of the default gateway, or None when unknown."""
    if sys.platform == "darwin":
        try:
            result = safe_run(["route", "-n", "get", "default"], timeout=2.0)
        except SubprocessError as e:
            logger.debug(f"route lookup failed: {e}")
            return None
        return parse_route_get(result.stdout) if result.returncode == 0 else None

    try:
        return parse_proc_net_route(PROC_NET_ROUTE.read_text())
    except OSError as e:
        logger.debug(f"Could not read {PROC_NET_ROUTE}: {e}")
        return None


def get_current_network() -> "CurrentNetwork":
    """Identity of the attached network, keyed on the default gateway."""
    return CurrentNetwork(gateway_ip=get_default_gateway())


@dataclass(frozen=True)
class CurrentNetwork:
    """Identity of the attached network. Either field may be unknown."""
    ssid: Optional[str] = None
    gateway_ip: Optional[str] = None


@dataclass(frozen=True)
class LastScannedNetwork:
    """Identity of the network the previous scan ran on."""
    ssid: Optional[str] = None
    gateway_ip: Optional[str] = None


@dataclass(frozen=True)
class NetworkChangeResult:
    has_changed: bool
    current: CurrentNetwork
    previous_ssid: Optional[str] = None
    previous_gateway: Optional[str] = None


def check_network_changed(current: CurrentNetwork,
                          last_scanned: Optional[LastScannedNetwork]) -> NetworkChangeResult:
    """Compare the attached network with the one last scanned.

    The gateway address is the primary identifier and the SSID the
    secondary one; a field only counts when both sides know it. With no
    previous scan nothing has changed.
    """
    if last_scanned is None:
        return NetworkChangeResult(has_changed=False, current=current)

    gateway_changed = (
        current.gateway_ip is not None
        and last_scanned.gateway_ip is not None
        and current.gateway_ip != last_scanned.gateway_ip
    )
    ssid_changed = (
        current.ssid is not None
        and last_scanned.ssid is not None
        and current.ssid != last_scanned.ssid
    )

    if gateway_changed or ssid_changed:
        logger.info(
            f"Network changed: {last_scanned.ssid}/{last_scanned.gateway_ip} -> "
            f"{current.ssid}/{current.gateway_ip}"
        )

    return NetworkChangeResult(
        has_changed=gateway_changed or ssid_changed,
        current=current,
        previous_ssid=last_scanned.ssid,
        previous_gateway=last_scanned.gateway_ip,
    )
