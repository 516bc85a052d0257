"""Discovery engine facade.

Wires the device store, the two passive listeners and the scan
orchestrator together and exposes the operations a UI or CLI needs.

Usage:
    with DiscoveryEngine() as engine:
        engine.start_listeners()
        for result in engine.scan(engine.default_cidr()):
            print(result.ip, result.status_label, result.hostname)
        groups = engine.categorize()
"""

import queue
import threading
from typing import Callable, Dict, Iterator, List, Optional

from config import SCAN, ScannerError, get_logger, log_exception
from discovery.categorizer import DeviceState, categorize_devices
from discovery.models import ScanResult, StoredDevice
from discovery.network_info import detect_best_cidr
from discovery.orchestrator import (
    ResultCallback,
    ScanOrchestrator,
    ScanSummary,
    now_ms,
    validate_scan_parameters,
)
from discovery.passive import MdnsListener, PassiveListener, SsdpListener

logger = get_logger(__name__)

DevicesCallback = Callable[[List[StoredDevice]], None]

_SCAN_DONE = object()


class ScanHandle:
    """Joinable, cancellable handle for a scan running on its own thread."""

    def __init__(self, cidr: str):
        self.cidr = cidr
        self.cancel_event = threading.Event()
        self.summary: Optional[ScanSummary] = None
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def cancel(self) -> None:
        """Stop scheduling new addresses; in-flight ones still finish."""
        self.cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> Optional[ScanSummary]:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.summary


class DiscoveryEngine:
    """Owns the store, passive listeners and orchestrator.

    Scans are serialized: a second scan waits for the first to finish.
    """

    def __init__(
        self,
        data_dir=None,
        store=None,
        mdns_listener: Optional[PassiveListener] = None,
        ssdp_listener: Optional[PassiveListener] = None,
        on_devices_changed: Optional[DevicesCallback] = None,
        resolver=None,
        prober=None,
    ):
        if store is None:
            # Import here to avoid circular imports
            from storage.device_store import DeviceStore
            store = DeviceStore(data_dir)

        self.store = store
        self.mdns_listener = mdns_listener if mdns_listener is not None else MdnsListener()
        self.ssdp_listener = ssdp_listener if ssdp_listener is not None else SsdpListener()
        self.on_devices_changed = on_devices_changed
        self.orchestrator = ScanOrchestrator(
            store,
            ssdp_names=self.ssdp_listener.names,
            mdns_names=self.mdns_listener.names,
            resolver=resolver,
            prober=prober,
        )
        self._scan_lock = threading.Lock()

    def __enter__(self) -> 'DiscoveryEngine':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop_listeners()
        return False

    # === Passive listeners ===

    @property
    def listeners(self) -> List[PassiveListener]:
        return [self.mdns_listener, self.ssdp_listener]

    def start_listeners(self) -> int:
        """Start both listeners. Returns how many are running.

        A listener that cannot open its socket is logged and skipped;
        scans still work without passive names.
        """
        running = 0
        for listener in self.listeners:
            try:
                listener.start()
                running += 1
            except ScannerError as e:
                logger.warning(f"Passive listener unavailable: {e}")
        return running

    def stop_listeners(self) -> None:
        for listener in self.listeners:
            listener.stop()

    # === Scanning ===

    def scan_async(
        self,
        cidr: str,
        concurrency: int = SCAN.DEFAULT_CONCURRENCY,
        timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS,
        on_result: Optional[ResultCallback] = None,
        on_complete: Optional[Callable[[Optional[ScanSummary]], None]] = None,
    ) -> ScanHandle:
        """Start a scan on a background thread.

        Raises:
            ConfigurationError: If concurrency or timeout is not positive.
        """
        validate_scan_parameters(concurrency, timeout_ms)
        handle = ScanHandle(cidr)

        def run() -> None:
            try:
                with self._scan_lock:
                    handle.summary = self.orchestrator.scan(
                        cidr, concurrency, timeout_ms, on_result, handle.cancel_event
                    )
                self._notify_devices_changed()
            except Exception as e:
                handle.error = e
                log_exception(logger, f"Scan of {cidr} failed", e)
            finally:
                if on_complete is not None:
                    on_complete(handle.summary)

        handle._thread = threading.Thread(target=run, name=f"scan-{cidr}", daemon=True)
        handle._thread.start()
        return handle

    def scan(
        self,
        cidr: str,
        concurrency: int = SCAN.DEFAULT_CONCURRENCY,
        timeout_ms: int = SCAN.DEFAULT_TIMEOUT_MS,
    ) -> Iterator[ScanResult]:
        """Yield scan results as they complete.

        Closing the generator early cancels the scan and waits for
        in-flight addresses.
        """
        results: queue.Queue = queue.Queue()
        handle = self.scan_async(
            cidr, concurrency, timeout_ms,
            on_result=results.put,
            on_complete=lambda summary: results.put(_SCAN_DONE),
        )
        try:
            while True:
                item = results.get()
                if item is _SCAN_DONE:
                    break
                yield item
        finally:
            if handle.is_running:
                handle.cancel()
                handle.join()

    def default_cidr(self) -> str:
        """CIDR of the attached network, or the configured fallback."""
        return detect_best_cidr() or SCAN.FALLBACK_CIDR

    # === Device history ===

    def get_all_devices(self) -> List[StoredDevice]:
        """Devices ordered by most recently seen first."""
        return self.store.get_all_devices()

    def set_custom_name(self, ip: str, name: Optional[str]) -> bool:
        updated = self.store.set_custom_name(ip, name)
        if updated:
            self._notify_devices_changed()
        return updated

    def delete_device(self, ip: str) -> bool:
        deleted = self.store.delete_device(ip)
        if deleted:
            self._notify_devices_changed()
        return deleted

    def clear_all_devices(self) -> int:
        count = self.store.clear_all_devices()
        self._notify_devices_changed()
        return count

    def categorize(
        self,
        devices: Optional[List[StoredDevice]] = None,
        now: Optional[int] = None,
        cutoff_days: int = SCAN.HISTORICAL_CUTOFF_DAYS,
    ) -> Dict[DeviceState, List[StoredDevice]]:
        """Group devices (default: all stored) by DeviceState."""
        if devices is None:
            devices = self.get_all_devices()
        return categorize_devices(devices, now if now is not None else now_ms(), cutoff_days)

    def _notify_devices_changed(self) -> None:
        if self.on_devices_changed is None:
            return
        try:
            self.on_devices_changed(self.get_all_devices())
        except Exception as e:
            log_exception(logger, "Devices-changed callback failed", e)
