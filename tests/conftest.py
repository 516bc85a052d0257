"""Shared fixtures for the LAN Scanner test suite.

Nothing here touches the real network: stores live in per-test
directories, and subprocess and psutil calls are patched where needed.
Packet and payload builders live in mocks.py.
"""
import logging
import sqlite3
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest

from config.logging_config import ROOT_LOGGER_NAME
from discovery.names import DeviceNames

AF_INET = 2


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: starts real threads and waits on them")


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Close handlers setup_logging() attached so temp dirs can be removed."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)


# --- storage -----------------------------------------------------------------


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Empty data directory standing in for ~/.lan-scanner."""
    data_dir = tmp_path / "lan-scanner"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def temp_db_path(temp_data_dir: Path) -> Path:
    return temp_data_dir / "test_lan_scanner.db"


@pytest.fixture
def device_store(temp_data_dir: Path):
    from storage.device_store import DeviceStore

    return DeviceStore(data_dir=temp_data_dir)


@pytest.fixture
def sqlite_connection(temp_db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Raw connection for building databases in older schema versions."""
    conn = sqlite3.connect(str(temp_db_path))
    try:
        yield conn
    finally:
        conn.close()


# --- sample devices ----------------------------------------------------------


@pytest.fixture
def printer_names() -> DeviceNames:
    """An HP printer: friendly SSDP name, serial-style mDNS name."""
    return DeviceNames(
        ssdp="Printer1",
        mdns="BRW0080927AFBCE",
        dns="printer.lan",
        http_server="HP HTTP Server; HP OfficeJet Pro 9010",
        device_type="Printer",
    )


@pytest.fixture
def roku_names() -> DeviceNames:
    """A Roku TV whose reverse DNS name is its serial number."""
    return DeviceNames(
        roku_http="Living Room TV",
        ssdp="55inTCLRokuTV",
        dns="X00012LDU0R2",
    )


# --- patched system calls ----------------------------------------------------


@pytest.fixture
def mock_subprocess() -> Generator[MagicMock, None, None]:
    """subprocess.run returning a successful, silent process."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock_run


@pytest.fixture
def mock_network_interface() -> Generator[MagicMock, None, None]:
    """psutil reporting loopback plus en0 at 192.168.1.50/24."""
    with patch("psutil.net_if_addrs") as mock_addrs, patch("psutil.net_if_stats") as mock_stats:
        mock_addrs.return_value = {
            "lo0": [MagicMock(family=AF_INET, address="127.0.0.1", netmask="255.0.0.0")],
            "en0": [MagicMock(family=AF_INET, address="192.168.1.50", netmask="255.255.255.0")],
        }
        mock_stats.return_value = {
            "lo0": MagicMock(isup=True),
            "en0": MagicMock(isup=True),
        }
        yield mock_addrs
