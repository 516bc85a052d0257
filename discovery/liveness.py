"""Host liveness probing.

A host is alive if it answers the system ping, or if any of a short
list of TCP ports accepts a connection (ICMP is often filtered on
phones and IoT devices).
"""

import socket
import sys
from dataclasses import dataclass
from typing import Optional, Sequence

from config import SCAN, SubprocessError, get_logger, safe_run

logger = get_logger(__name__)

# Extra seconds given to the ping process beyond its own wait time
PING_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class LivenessResult:
    """Outcome of probing one address.

    Attributes:
        alive: Whether any probe got an answer.
        method: "ICMP", "TCP" or None when nothing answered.
        port: TCP port that accepted, for method "TCP".
    """
    alive: bool
    method: Optional[str] = None
    port: Optional[int] = None


NOT_ALIVE = LivenessResult(alive=False)


def build_ping_command(host: str, count: int, timeout_ms: int) -> list:
    """Ping argv for this platform.

    Linux ``-W`` takes whole seconds, macOS/BSD ``-W`` takes milliseconds.
    """
    if sys.platform == 'darwin':
        wait = str(max(1, timeout_ms))
    else:
        wait = str(max(1, timeout_ms // 1000))
    return ['ping', '-c', str(count), '-W', wait, host]


def system_ping(host: str, count: int = 1, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> bool:
    """Run the system ping; True on exit code 0."""
    cmd = build_ping_command(host, count, timeout_ms)
    timeout = count * max(1.0, timeout_ms / 1000) + PING_GRACE_SECONDS
    try:
        result = safe_run(cmd, timeout=timeout)
    except SubprocessError as e:
        logger.debug(f"Ping failed for {host}: {e.message}")
        return False
    return result.returncode == 0


def tcp_probe(host: str, port: int, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> bool:
    """True if a TCP connection to host:port is accepted within the timeout."""
    try:
        with socket.create_connection((host, port), timeout=timeout_ms / 1000):
            return True
    except OSError:
        return False


def probe_host(host: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS,
               tcp_ports: Sequence[int] = SCAN.FALLBACK_TCP_PORTS) -> LivenessResult:
    """Ping, then try each fallback TCP port in order."""
    if system_ping(host, 1, timeout_ms):
        return LivenessResult(alive=True, method="ICMP")

    for port in tcp_ports:
        if tcp_probe(host, port, timeout_ms):
            return LivenessResult(alive=True, method="TCP", port=port)

    return NOT_ALIVE
