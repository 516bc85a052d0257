"""Test doubles and packet builders for LAN Scanner tests.

Provides canned protocol payloads and fake sockets/listeners so tests
never touch the real network.

Usage:
    from mocks import dns_response, FakeSocket

    packet = dns_response(answers=[("host.local", TYPE_A, b"\\xc0\\xa8\\x01\\x05")])
"""

import socket
import struct
import threading
from typing import Iterable, List, Optional, Sequence, Tuple

from discovery.dns_wire import encode_name
from discovery.netbios import encode_netbios_name
from discovery.passive import PassiveNameMap

TYPE_A = 1
TYPE_PTR = 12


# === Packet builders ===


def dns_response(answers: Sequence[Tuple[str, int, bytes]] = (),
                 questions: Sequence[str] = (), query_id: int = 0) -> bytes:
    """Build a DNS response from (owner, type, rdata) tuples, no compression."""
    header = struct.pack('!HHHHHH', query_id, 0x8400, len(questions), len(answers), 0, 0)
    body = b''
    for question in questions:
        body += encode_name(question) + struct.pack('!HH', TYPE_PTR, 1)
    for owner, rtype, rdata in answers:
        body += encode_name(owner) + struct.pack('!HHIH', rtype, 1, 120, len(rdata)) + rdata
    return header + body


def ptr_answer(owner: str, target: str) -> Tuple[str, int, bytes]:
    return owner, TYPE_PTR, encode_name(target)


def nbstat_response(entries: Iterable[Tuple[str, int, int]]) -> bytes:
    """Build an NBSTAT reply from (name, suffix, flags) entries."""
    entries = list(entries)
    header = struct.pack('!HHHHHH', 0x1234, 0x8400, 0, 1, 0, 0)
    table = bytes([len(entries)])
    for name, suffix, flags in entries:
        table += name.encode('ascii').ljust(15, b' ') + bytes([suffix]) + struct.pack('!H', flags)
    table += b'\x00' * 46  # adapter statistics
    record = struct.pack('!HHIH', 0x0021, 1, 0, len(table))
    return header + encode_netbios_name('*') + record + table


SSDP_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"CACHE-CONTROL: max-age=3600\r\n"
    b"ST: roku:ecp\r\n"
    b"Location: http://192.168.1.20:8060/\r\n"
    b"USN: uuid:roku:ecp:X00012LDU0R2\r\n"
    b"\r\n"
)

UPNP_DESCRIPTION = (
    "<?xml version=\"1.0\"?><root><device>"
    "<friendlyName>Living Room Speaker</friendlyName>"
    "<manufacturer>Sonos, Inc.</manufacturer><modelName>One</modelName>"
    "</device></root>"
)

ROKU_DEVICE_INFO = (
    "<device-info>"
    "<model-name>TCL 55S425</model-name>"
    "<friendly-device-name>55\" TCL Roku TV</friendly-device-name>"
    "<user-device-name>Bedroom TV</user-device-name>"
    "</device-info>"
)


# === Fake sockets ===


class FakeSocket:
    """Socket double that replays queued datagrams then times out.

    Each ``recvfrom`` returns the next (data, (ip, port)) item; an
    exception instance in the queue is raised instead. When the queue
    is empty it raises socket.timeout, after a short wait so receive
    loops do not spin.
    """

    def __init__(self, datagrams: Optional[List] = None, idle_wait: float = 0.01):
        self.datagrams = list(datagrams or [])
        self.sent: List[Tuple[bytes, tuple]] = []
        self.closed = False
        self.options: List[tuple] = []
        self.timeout: Optional[float] = None
        self._idle = threading.Event()
        self._idle_wait = idle_wait

    def settimeout(self, timeout):
        self.timeout = timeout

    def setsockopt(self, *args):
        self.options.append(args)

    def bind(self, address):
        pass

    def sendto(self, data, address):
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, bufsize):
        if self.datagrams:
            item = self.datagrams.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        self._idle.wait(self._idle_wait)
        raise socket.timeout()

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


# === Fake listeners ===


class MockListener:
    """Stand-in for a passive listener with a pre-filled name map."""

    def __init__(self, names: Optional[dict] = None, fail_start: Optional[Exception] = None):
        self.names = PassiveNameMap()
        for ip, name in (names or {}).items():
            self.names.set(ip, name)
        self.fail_start = fail_start
        self.start_calls = 0
        self.stop_calls = 0
        self.running = False

    @property
    def is_running(self) -> bool:
        return self.running

    def get(self, ip: str) -> Optional[str]:
        return self.names.get(ip)

    def start(self) -> None:
        self.start_calls += 1
        if self.fail_start is not None:
            raise self.fail_start
        self.running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.running = False
