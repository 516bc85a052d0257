"""Tests for the scan orchestrator."""
import threading
import time
from typing import List

import pytest

from config import ConfigurationError
from discovery.liveness import NOT_ALIVE, LivenessResult
from discovery.models import DeviceStatus, ScanResult, ScanStatus
from discovery.names import DeviceNames
from discovery.orchestrator import (
    INVALID_CIDR_MESSAGE,
    ScanOrchestrator,
    too_large_message,
    validate_scan_parameters,
)
from discovery.passive import PassiveNameMap


class FakeClock:
    """Clock that advances one millisecond per reading."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            self.now += 1
            return self.now


def make_orchestrator(store, alive=None, names=None, ssdp=None, mdns=None, clock=None):
    """Orchestrator with canned liveness/name answers keyed by IP."""
    alive = alive or {}
    names = names or {}

    def prober(ip, timeout_ms):
        return alive.get(ip, NOT_ALIVE)

    def resolver(ip, timeout_ms):
        return names.get(ip, DeviceNames())

    ssdp_map = PassiveNameMap()
    for ip, name in (ssdp or {}).items():
        ssdp_map.set(ip, name)
    mdns_map = PassiveNameMap()
    for ip, name in (mdns or {}).items():
        mdns_map.set(ip, name)

    return ScanOrchestrator(
        store, ssdp_map, mdns_map, resolver=resolver, prober=prober, clock=clock or FakeClock(),
    )


class Collector:
    def __init__(self):
        self.results: List[ScanResult] = []
        self._lock = threading.Lock()

    def __call__(self, result: ScanResult) -> None:
        with self._lock:
            self.results.append(result)

    def by_ip(self):
        return {r.ip: r for r in self.results}


class TestScanValidation:
    """Tests for rejected scans."""

    def test_invalid_cidr_single_result(self, device_store):
        collector = Collector()
        summary = make_orchestrator(device_store).scan("10.0.0/24", on_result=collector)
        assert collector.results == [ScanResult("10.0.0/24", ScanStatus.INVALID, INVALID_CIDR_MESSAGE)]
        assert summary.rejected
        assert summary.addresses_scanned == 0

    def test_non_ascii_digits_are_invalid(self, device_store):
        """Digits int() cannot parse are rejected like any other bad CIDR."""
        collector = Collector()
        summary = make_orchestrator(device_store).scan("10.0.0.0/\u00b2", on_result=collector)
        assert [r.status for r in collector.results] == [ScanStatus.INVALID]
        assert collector.results[0].details == INVALID_CIDR_MESSAGE
        assert summary.rejected

    def test_too_large_single_result(self, device_store):
        collector = Collector()
        summary = make_orchestrator(device_store).scan("10.0.0.0/20", on_result=collector)
        assert len(collector.results) == 1
        result = collector.results[0]
        assert result.status is ScanStatus.TOO_LARGE
        assert result.details == (
            "Networks up to /22 (1,022 devices) are supported. Your /20 network has "
            "4,094 potential hosts. For larger networks, use a dedicated desktop scanning tool."
        )
        assert summary.rejected

    def test_too_large_message_for_tiny_prefix(self):
        assert "Your /8 network has too many potential hosts" in too_large_message(8, "too many")

    def test_rejected_scan_does_not_sweep(self, device_store):
        device_store.upsert_device("10.0.0.5", DeviceNames(), None, 1)
        make_orchestrator(device_store).scan("bogus")
        assert device_store.get_device("10.0.0.5").status is DeviceStatus.ONLINE

    @pytest.mark.parametrize("concurrency,timeout_ms", [(0, 1000), (-1, 1000), (10, 0)])
    def test_bad_parameters(self, device_store, concurrency, timeout_ms):
        with pytest.raises(ConfigurationError):
            make_orchestrator(device_store).scan("10.0.0.0/30", concurrency, timeout_ms)

    def test_validate_scan_parameters_accepts_positive(self):
        validate_scan_parameters(1, 1)


class TestScanEndToEnd:
    """Tests for full sweeps with fake probes and a real store."""

    def test_slash_30(self, device_store):
        orchestrator = make_orchestrator(
            device_store,
            alive={"192.168.1.1": LivenessResult(alive=True, method="TCP", port=80)},
            names={"192.168.1.1": DeviceNames(dns="router.lan")},
        )
        collector = Collector()
        summary = orchestrator.scan("192.168.1.0/30", concurrency=2, timeout_ms=100, on_result=collector)

        results = collector.by_ip()
        assert set(results) == {"192.168.1.1", "192.168.1.2"}
        assert results["192.168.1.1"].status is ScanStatus.TCP
        assert results["192.168.1.1"].status_label == "TCP:80"
        assert results["192.168.1.1"].hostname == "router.lan"
        assert results["192.168.1.2"].status is ScanStatus.NO_RESPONSE

        assert device_store.get_device_count() == 1
        assert device_store.get_device("192.168.1.1").display_name == "router.lan"
        assert summary.addresses_scanned == 2
        assert summary.alive_count == 1
        assert not summary.cancelled

    def test_one_result_per_address(self, device_store):
        collector = Collector()
        make_orchestrator(device_store).scan("10.0.0.0/27", concurrency=8, timeout_ms=10, on_result=collector)
        ips = [r.ip for r in collector.results]
        assert len(ips) == 30
        assert len(set(ips)) == 30

    def test_icmp_result_has_no_port(self, device_store):
        orchestrator = make_orchestrator(
            device_store, alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
        )
        result = orchestrator.scan_address("10.0.0.5", 100)
        assert result.status is ScanStatus.ICMP
        assert result.port is None
        assert result.latency_ms is not None

    def test_passive_names_fill_gaps(self, device_store):
        orchestrator = make_orchestrator(
            device_store,
            alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
            names={"10.0.0.5": DeviceNames(dns="X00012LDU0R2")},
            ssdp={"10.0.0.5": "Living Room Speaker"},
        )
        result = orchestrator.scan_address("10.0.0.5", 100)
        assert result.hostname == "Living Room Speaker"
        assert device_store.get_device("10.0.0.5").ssdp_name == "Living Room Speaker"

    def test_active_names_beat_passive(self, device_store):
        orchestrator = make_orchestrator(
            device_store,
            alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
            names={"10.0.0.5": DeviceNames(mdns="Office-Mac")},
            mdns={"10.0.0.5": "Stale-Name"},
        )
        assert orchestrator.scan_address("10.0.0.5", 100).hostname == "Office-Mac"

    def test_details_carry_debug_string(self, device_store):
        orchestrator = make_orchestrator(
            device_store,
            alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
            names={"10.0.0.5": DeviceNames(netbios="OFFICE-PC")},
        )
        result = orchestrator.scan_address("10.0.0.5", 100)
        assert "NetBIOS:OFFICE-PC" in result.details

    def test_vendor_from_http_server(self, device_store):
        orchestrator = make_orchestrator(
            device_store,
            alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
            names={"10.0.0.5": DeviceNames(http_server="Lexmark_Web_Server", device_type="Printer")},
        )
        assert orchestrator.scan_address("10.0.0.5", 100).hostname == "Lexmark Printer"
        assert device_store.get_device("10.0.0.5").vendor == "Lexmark"


class TestScanErrors:
    """Tests for per-address failure handling."""

    def test_probe_error_becomes_error_result(self, device_store):
        def prober(ip, timeout_ms):
            raise RuntimeError("socket exploded")

        orchestrator = ScanOrchestrator(device_store, prober=prober, resolver=lambda ip, t: DeviceNames())
        result = orchestrator.scan_address("10.0.0.5", 100)
        assert result.status is ScanStatus.ERROR
        assert result.details == "socket exploded"

    def test_error_does_not_stop_scan(self, device_store):
        def prober(ip, timeout_ms):
            if ip == "10.0.0.1":
                raise ValueError()
            return LivenessResult(alive=True, method="ICMP")

        orchestrator = ScanOrchestrator(
            device_store, prober=prober, resolver=lambda ip, t: DeviceNames(), clock=FakeClock(),
        )
        collector = Collector()
        orchestrator.scan("10.0.0.0/30", concurrency=2, timeout_ms=10, on_result=collector)

        results = collector.by_ip()
        assert results["10.0.0.1"].status is ScanStatus.ERROR
        assert results["10.0.0.1"].details == "ValueError"
        assert results["10.0.0.2"].status is ScanStatus.ICMP

    def test_aborted_address_emits_unknown(self, device_store):
        """An address cut short by a BaseException still gets a result."""
        class Aborted(BaseException):
            pass

        def prober(ip, timeout_ms):
            if ip == "10.0.0.1":
                raise Aborted()
            return NOT_ALIVE

        orchestrator = ScanOrchestrator(
            device_store, prober=prober, resolver=lambda ip, t: DeviceNames(), clock=FakeClock(),
        )
        collector = Collector()
        summary = orchestrator.scan("10.0.0.0/30", concurrency=2, timeout_ms=10, on_result=collector)

        results = collector.by_ip()
        assert results["10.0.0.1"].status is ScanStatus.UNKNOWN
        assert results["10.0.0.1"].status_label == "Unknown"
        assert results["10.0.0.2"].status is ScanStatus.NO_RESPONSE
        assert summary.addresses_scanned == 2

    def test_failed_save_still_emits(self, device_store):
        class BrokenStore:
            def upsert_device(self, *args):
                return False

            def mark_offline_since(self, started_at):
                return 0

        orchestrator = make_orchestrator(
            BrokenStore(), alive={"10.0.0.5": LivenessResult(alive=True, method="ICMP")},
        )
        assert orchestrator.scan_address("10.0.0.5", 100).status is ScanStatus.ICMP

    def test_callback_errors_are_contained(self, device_store):
        def bad_callback(result):
            raise RuntimeError("ui went away")

        summary = make_orchestrator(device_store).scan(
            "10.0.0.0/30", concurrency=2, timeout_ms=10, on_result=bad_callback,
        )
        assert summary.addresses_scanned == 2


class TestOfflineSweep:
    """Tests for marking devices offline after a scan."""

    def test_unseen_devices_marked_offline(self, device_store):
        clock = FakeClock()
        device_store.upsert_device("10.0.0.1", DeviceNames(dns="gone.lan"), None, clock())
        device_store.upsert_device("10.0.0.9", DeviceNames(dns="elsewhere.lan"), None, clock())

        orchestrator = make_orchestrator(
            device_store,
            alive={"10.0.0.2": LivenessResult(alive=True, method="ICMP")},
            clock=clock,
        )
        summary = orchestrator.scan("10.0.0.0/30", concurrency=2, timeout_ms=10)

        assert device_store.get_device("10.0.0.1").status is DeviceStatus.OFFLINE
        assert device_store.get_device("10.0.0.9").status is DeviceStatus.OFFLINE
        assert device_store.get_device("10.0.0.2").status is DeviceStatus.ONLINE
        assert device_store.get_device("10.0.0.1").dns_name == "gone.lan"
        assert summary.offline_marked == 2

    def test_cancelled_scan_skips_sweep(self, device_store):
        device_store.upsert_device("10.0.0.9", DeviceNames(), None, 1)
        cancel = threading.Event()
        cancel.set()

        collector = Collector()
        summary = make_orchestrator(device_store).scan(
            "10.0.0.0/24", concurrency=4, timeout_ms=10, on_result=collector, cancel_event=cancel,
        )

        assert summary.cancelled
        assert summary.offline_marked == 0
        assert collector.results == []
        assert device_store.get_device("10.0.0.9").status is DeviceStatus.ONLINE

    def test_cancel_mid_scan(self, device_store):
        cancel = threading.Event()
        collector = Collector()

        def prober(ip, timeout_ms):
            if ip == "10.0.0.3":
                cancel.set()
            time.sleep(0.01)
            return NOT_ALIVE

        orchestrator = ScanOrchestrator(device_store, prober=prober, resolver=lambda ip, t: DeviceNames())
        summary = orchestrator.scan(
            "10.0.0.0/24", concurrency=1, timeout_ms=10, on_result=collector, cancel_event=cancel,
        )

        assert summary.cancelled
        assert len(collector.results) < 254


class TestConcurrency:
    """Tests for the in-flight bound."""

    def test_in_flight_never_exceeds_concurrency(self, device_store):
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def prober(ip, timeout_ms):
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.01)
            with lock:
                state["current"] -= 1
            return NOT_ALIVE

        orchestrator = ScanOrchestrator(device_store, prober=prober, resolver=lambda ip, t: DeviceNames())
        summary = orchestrator.scan("10.0.0.0/27", concurrency=3, timeout_ms=10)

        assert summary.addresses_scanned == 30
        assert 1 <= state["peak"] <= 3
