"""Configuration module for LAN Scanner.

Provides centralized configuration, logging, exceptions, and utilities.
"""
from config.constants import (
    ALLOWED_SUBPROCESS_COMMANDS,
    DISCOVERY,
    PROBE,
    SCAN,
    STORAGE,
    DiscoveryConfig,
    ProbeConfig,
    ScanConfig,
    StorageConfig,
)
from config.exceptions import (
    AddressRangeError,
    ConfigurationError,
    InvalidCidrError,
    LanScannerError,
    NetworkTooLargeError,
    ProtocolDecodeError,
    ScannerError,
    StorageError,
    SubprocessError,
)
from config.logging_config import LogContext, get_logger, log_exception, setup_logging
from config.subprocess_runner import safe_run

__all__ = [
    # Constants
    "SCAN",
    "PROBE",
    "DISCOVERY",
    "STORAGE",
    "ScanConfig",
    "ProbeConfig",
    "DiscoveryConfig",
    "StorageConfig",
    "ALLOWED_SUBPROCESS_COMMANDS",
    # Exceptions
    "LanScannerError",
    "AddressRangeError",
    "InvalidCidrError",
    "NetworkTooLargeError",
    "ProtocolDecodeError",
    "StorageError",
    "ScannerError",
    "ConfigurationError",
    "SubprocessError",
    # Logging
    "setup_logging",
    "get_logger",
    "log_exception",
    "LogContext",
    # Subprocess
    "safe_run",
]
