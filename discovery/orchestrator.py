"""CIDR sweep orchestration.

For every address in the range, under a semaphore that bounds how many
addresses are in flight:

1. Probe liveness (ping, then TCP fallback ports)
2. For live hosts, resolve names actively and fill gaps from the
   passive SSDP/mDNS maps
3. Upsert the device and emit a ScanResult

Unreachable hosts emit NO_RESPONSE and are never written, so stale
rows are kept rather than deleted. Once every worker has finished, rows
not seen since the scan *started* are marked offline. A cancelled scan
skips that sweep.

Usage:
    orchestrator = ScanOrchestrator(store, ssdp_names, mdns_names)
    summary = orchestrator.scan("192.168.1.0/24", on_result=print)
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from config import (
    SCAN,
    ConfigurationError,
    InvalidCidrError,
    LogContext,
    NetworkTooLargeError,
    get_logger,
    log_exception,
)
from discovery.addressing import int_to_ip, parse_cidr
from discovery.liveness import LivenessResult, probe_host
from discovery.models import ScanResult, ScanStatus
from discovery.names import DeviceNames, extract_vendor
from discovery.passive import PassiveNameMap
from discovery.resolver import discover_all_names

logger = get_logger(__name__)

ResultCallback = Callable[[ScanResult], None]

INVALID_CIDR_MESSAGE = "Invalid CIDR. Use format like 10.0.0.0/24"
PERMIT_POLL_SECONDS = 0.1


def too_large_message(prefix: int, host_count: str) -> str:
    return (
        f"Networks up to /{SCAN.MIN_PREFIX} ({SCAN.MAX_HOSTS:,} devices) are supported. "
        f"Your /{prefix} network has {host_count} potential hosts. "
        f"For larger networks, use a dedicated desktop scanning tool."
    )


def now_ms() -> int:
    return int(time.time() * 1000)


def validate_scan_parameters(concurrency: int, timeout_ms: int) -> None:
    """Raise ConfigurationError for a non-positive concurrency or timeout."""
    if concurrency < 1:
        raise ConfigurationError("Concurrency must be positive", {"concurrency": concurrency})
    if timeout_ms < 1:
        raise ConfigurationError("Timeout must be positive", {"timeout_ms": timeout_ms})


@dataclass(frozen=True)
class ScanSummary:
    """Totals for one scan run."""
    cidr: str
    started_at_ms: int
    addresses_scanned: int = 0
    alive_count: int = 0
    offline_marked: int = 0
    cancelled: bool = False
    rejected: bool = False
    duration_ms: int = 0


class _Counters:
    def __init__(self):
        self.scanned = 0
        self.alive = 0
        self._lock = threading.Lock()

    def record(self, alive: bool) -> None:
        with self._lock:
            self.scanned += 1
            if alive:
                self.alive += 1


class ScanOrchestrator:
    """Runs sweeps against one device store and pair of passive maps.

    Args:
        store: DeviceStore (anything with upsert_device/mark_offline_since).
        ssdp_names: Passive SSDP map, read-only here.
        mdns_names: Passive mDNS map, read-only here.
        resolver: ``(ip, timeout_ms) -> DeviceNames``.
        prober: ``(ip, timeout_ms) -> LivenessResult``.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        store,
        ssdp_names: Optional[PassiveNameMap] = None,
        mdns_names: Optional[PassiveNameMap] = None,
        resolver: Optional[Callable[[str, int], DeviceNames]] = None,
        prober: Optional[Callable[[str, int], LivenessResult]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.store = store
        self.ssdp_names = ssdp_names if ssdp_names is not None else PassiveNameMap()
        self.mdns_names = mdns_names if mdns_names is not None else PassiveNameMap()
        self._resolver = resolver or discover_all_names
        self._prober = prober or probe_host
        self._clock = clock or now_ms

    def scan(
        self,
        cidr: str,
        concurrency: int = SCAN.DEFAULT_CONCURRENCY,
        timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS,
        on_result: Optional[ResultCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanSummary:
        """Sweep ``cidr``, calling ``on_result`` once per address.

        Results arrive in completion order from worker threads. A bad or
        oversized CIDR produces a single explanatory result instead.

        Raises:
            ConfigurationError: If concurrency or timeout is not positive.
        """
        validate_scan_parameters(concurrency, timeout_ms)

        on_result = on_result or (lambda result: None)
        cancel_event = cancel_event or threading.Event()
        started_at = self._clock()

        try:
            address_range = parse_cidr(cidr)
        except InvalidCidrError as e:
            logger.warning(f"Rejected scan: {e}")
            self._deliver(on_result, ScanResult(cidr, ScanStatus.INVALID, INVALID_CIDR_MESSAGE))
            return ScanSummary(cidr=cidr, started_at_ms=started_at, rejected=True)
        except NetworkTooLargeError as e:
            logger.warning(f"Rejected scan: {e}")
            self._deliver(on_result, ScanResult(
                cidr, ScanStatus.TOO_LARGE, too_large_message(e.prefix, e.host_count)
            ))
            return ScanSummary(cidr=cidr, started_at_ms=started_at, rejected=True)

        logger.info(
            f"Scanning {address_range.cidr}: {len(address_range)} addresses, "
            f"concurrency={concurrency}, timeout={timeout_ms}ms"
        )

        counters = _Counters()
        permits = threading.BoundedSemaphore(concurrency)

        with LogContext(logger, f"Sweep of {address_range.cidr}"):
            with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="scan") as pool:
                for address in address_range:
                    if not self._acquire(permits, cancel_event):
                        break
                    pool.submit(
                        self._scan_worker, int_to_ip(address), timeout_ms,
                        on_result, permits, counters,
                    )

        cancelled = cancel_event.is_set()
        offline_marked = 0
        if cancelled:
            logger.info(f"Scan of {address_range.cidr} cancelled, skipping offline sweep")
        else:
            offline_marked = self.store.mark_offline_since(started_at)

        summary = ScanSummary(
            cidr=address_range.cidr,
            started_at_ms=started_at,
            addresses_scanned=counters.scanned,
            alive_count=counters.alive,
            offline_marked=offline_marked,
            cancelled=cancelled,
            duration_ms=self._clock() - started_at,
        )
        logger.info(
            f"Scan of {summary.cidr} finished: {summary.alive_count}/{summary.addresses_scanned} "
            f"alive, {summary.offline_marked} marked offline"
        )
        return summary

    @staticmethod
    def _acquire(permits: threading.BoundedSemaphore, cancel_event: threading.Event) -> bool:
        while not cancel_event.is_set():
            if permits.acquire(timeout=PERMIT_POLL_SECONDS):
                if cancel_event.is_set():
                    permits.release()
                    return False
                return True
        return False

    @staticmethod
    def _deliver(on_result: ResultCallback, result: ScanResult) -> None:
        try:
            on_result(result)
        except Exception as e:
            log_exception(logger, f"Result callback failed for {result.ip}", e)

    def _scan_worker(self, ip: str, timeout_ms: int, on_result: ResultCallback,
                     permits: threading.BoundedSemaphore, counters: _Counters) -> None:
        result: Optional[ScanResult] = None
        try:
            result = self.scan_address(ip, timeout_ms)
        finally:
            # Anything scan_address does not turn into a result still gets one
            if result is None:
                result = ScanResult(ip=ip, status=ScanStatus.UNKNOWN, details="Scan aborted")
            counters.record(result.is_alive)
            self._deliver(on_result, result)
            permits.release()

    def scan_address(self, ip: str, timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS) -> ScanResult:
        """Probe, name and record one address.

        Ordinary failures become an ERROR result; only BaseExceptions
        such as KeyboardInterrupt propagate.
        """
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            liveness = self._prober(ip, timeout_ms)
            if liveness.alive:
                names = self._resolver(ip, timeout_ms).with_passive(
                    ssdp=self.ssdp_names.get(ip),
                    mdns=self.mdns_names.get(ip),
                )
                best_name = names.best_name()
                vendor = extract_vendor(names)
                logger.debug(f"{ip} names: {names.to_debug_string()} -> BEST: {best_name}")

                if not self.store.upsert_device(ip, names, vendor, self._clock()):
                    logger.warning(f"Device {ip} not saved, continuing scan")

                status = ScanStatus.TCP if liveness.method == "TCP" else ScanStatus.ICMP
                result = ScanResult(
                    ip=ip,
                    status=status,
                    details=names.to_debug_string(),
                    latency_ms=elapsed_ms(),
                    hostname=best_name,
                    port=liveness.port if status is ScanStatus.TCP else None,
                )
            else:
                result = ScanResult(ip=ip, status=ScanStatus.NO_RESPONSE, latency_ms=elapsed_ms())
        except Exception as e:
            logger.warning(f"Error scanning {ip}: {type(e).__name__}: {e}")
            result = ScanResult(
                ip=ip, status=ScanStatus.ERROR,
                details=str(e) or type(e).__name__, latency_ms=elapsed_ms(),
            )
        return result
