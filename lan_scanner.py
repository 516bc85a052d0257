#!/usr/bin/env python3
"""
LAN Scanner - command-line front end.

Sweeps the local network for devices, names them and keeps a history
of when each device was seen.

Usage:
    lan_scanner.py scan [CIDR] [--concurrency N] [--timeout MS] [--no-listen]
    lan_scanner.py devices [--cutoff-days N]
    lan_scanner.py rename IP NAME
    lan_scanner.py forget IP
"""
import argparse
import sys
import time
from pathlib import Path
from typing import List, Optional

from config import DISCOVERY, SCAN, STORAGE, LanScannerError, get_logger, setup_logging
from discovery.categorizer import DeviceState
from discovery.engine import DiscoveryEngine
from discovery.models import ScanResult, ScanStatus
from discovery.network_info import check_network_changed, get_current_network
from storage.preferences import PreferencesStore

logger = get_logger(__name__)

STATE_TITLES = {
    DeviceState.NEW: "New",
    DeviceState.BACK_ONLINE: "Back online",
    DeviceState.STILL_ONLINE: "Online",
    DeviceState.WENT_OFFLINE: "Went offline",
    DeviceState.HISTORICAL: "Historical",
}


def format_result(result: ScanResult) -> str:
    if result.status in (ScanStatus.INVALID, ScanStatus.TOO_LARGE):
        return f"{result.status_label}: {result.details}"
    name = result.hostname or ""
    latency = f"{result.latency_ms}ms" if result.latency_ms is not None else ""
    return f"{result.ip:<15}  {result.status_label:<11}  {latency:>7}  {name}"


def cmd_scan(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    prefs = PreferencesStore(args.data_dir)
    if prefs.is_first_run():
        print("First scan: devices found now are all reported as new.")

    # The network identity only matters when scanning the attached subnet
    current = None
    if args.cidr is None:
        current = get_current_network()
        change = check_network_changed(current, prefs.get_last_scanned_network())
        if change.has_changed:
            print(f"Network changed since last scan "
                  f"(gateway {change.previous_gateway} -> {current.gateway_ip})")
    cidr = args.cidr or engine.default_cidr()

    if not args.no_listen:
        engine.start_listeners()
        # Give passive listeners a head start so their names are available
        time.sleep(args.listen_seconds)

    alive = 0
    total = 0
    try:
        for result in engine.scan(cidr, args.concurrency, args.timeout):
            total += 1
            if result.status in (ScanStatus.INVALID, ScanStatus.TOO_LARGE):
                print(format_result(result), file=sys.stderr)
                return 2
            if result.is_alive:
                alive += 1
            if result.is_alive or args.all:
                print(format_result(result))
    finally:
        engine.stop_listeners()

    prefs.mark_first_run_complete()
    if current is not None and current.gateway_ip:
        prefs.save_last_scanned_network(current.ssid, current.gateway_ip)

    print(f"\n{alive} of {total} addresses responded on {cidr}")
    return 0


def cmd_devices(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    groups = engine.categorize(cutoff_days=args.cutoff_days)
    for state in DeviceState:
        devices = groups[state]
        if not devices:
            continue
        print(f"{STATE_TITLES[state]} ({len(devices)})")
        for device in devices:
            vendor = f"  [{device.vendor}]" if device.vendor else ""
            print(f"  {device.ip:<15}  {device.label}{vendor}")
    return 0


def cmd_rename(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    if not engine.set_custom_name(args.ip, args.name):
        print(f"No device with address {args.ip}", file=sys.stderr)
        return 1
    return 0


def cmd_forget(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    if not engine.delete_device(args.ip):
        print(f"No device with address {args.ip}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lan_scanner", description="Discover devices on your LAN")
    parser.add_argument("--data-dir", type=Path, default=Path.home() / STORAGE.DATA_DIR_NAME,
                        help="Directory for the database and log file")
    parser.add_argument("--debug", action="store_true", help="Verbose logging to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Sweep a network range")
    scan.add_argument("cidr", nargs="?", help="Range to scan, e.g. 192.168.1.0/24 (default: local network)")
    scan.add_argument("--concurrency", type=int, default=SCAN.DEFAULT_CONCURRENCY)
    scan.add_argument("--timeout", type=int, default=SCAN.DEFAULT_TIMEOUT_MS, help="Per-probe timeout (ms)")
    scan.add_argument("--no-listen", action="store_true", help="Skip passive mDNS/SSDP discovery")
    scan.add_argument("--listen-seconds", type=float, default=DISCOVERY.SSDP_RECEIVE_TIMEOUT_SECONDS)
    scan.add_argument("--all", action="store_true", help="Also print addresses that did not respond")
    scan.set_defaults(handler=cmd_scan)

    devices = subparsers.add_parser("devices", help="List known devices")
    devices.add_argument("--cutoff-days", type=int, default=SCAN.HISTORICAL_CUTOFF_DAYS)
    devices.set_defaults(handler=cmd_devices)

    rename = subparsers.add_parser("rename", help="Give a device your own name")
    rename.add_argument("ip")
    rename.add_argument("name", help='New name; "" clears it')
    rename.set_defaults(handler=cmd_rename)

    forget = subparsers.add_parser("forget", help="Remove a device from history")
    forget.add_argument("ip")
    forget.set_defaults(handler=cmd_forget)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(data_dir=args.data_dir, debug=args.debug)

    try:
        with DiscoveryEngine(data_dir=args.data_dir) as engine:
            return args.handler(engine, args)
    except LanScannerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
