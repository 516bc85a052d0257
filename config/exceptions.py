"""Exception hierarchy for LAN Scanner.

Everything raised on purpose derives from LanScannerError, so the CLI
can report any expected failure with one except clause. Per-host probe
failures are not exceptions at all: probes return None and the sweep
records a result for the address.
"""

from typing import Optional

# Captured process output kept in exception details
MAX_OUTPUT_CHARS = 500


class LanScannerError(Exception):
    """Base class for LAN Scanner errors.

    Attributes:
        message: Human-readable description, shown to CLI users.
        details: Context for the log (CIDR, path, packet length...).
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} (details: {self.details})"


class AddressRangeError(LanScannerError):
    """CIDR input could not be turned into a scannable range.

    Both subclasses are user-correctable and are reported to the caller
    as a single explanatory scan result rather than propagated.
    """

    pass


class InvalidCidrError(AddressRangeError):
    """Malformed CIDR string.

    Raised when:
    - The string does not split into address and prefix
    - The address is not four octets in [0, 255]
    - The prefix is not an integer in [1, 32]

    Examples:
        >>> raise InvalidCidrError("Invalid CIDR", {"cidr": "10.0.0/24"})
    """

    pass


class NetworkTooLargeError(AddressRangeError):
    """CIDR prefix is valid but below the /22 scan limit.

    Attributes:
        prefix: The rejected prefix length.
        host_count: Human-readable approximate host count (e.g. "4,094").
    """

    def __init__(self, message: str, prefix: int, host_count: str,
                 details: Optional[dict] = None):
        details = details or {}
        details["prefix"] = prefix
        details["host_count"] = host_count
        super().__init__(message, details)
        self.prefix = prefix
        self.host_count = host_count


class ProtocolDecodeError(LanScannerError):
    """Malformed or truncated protocol payload.

    Raised by the DNS/mDNS, NetBIOS and SSDP decoders. Listeners and
    resolvers catch it per packet and keep going.

    Examples:
        >>> raise ProtocolDecodeError("Truncated header", {"length": 7})
    """

    pass


class StorageError(LanScannerError):
    """The device database or preferences file could not be used.

    Raised when the SQLite file cannot be opened, created or migrated.
    Ordinary write failures during a scan are logged and reported as a
    False return instead.

    Examples:
        >>> raise StorageError("Database initialization failed", {"path": "/path/to/db"})
    """


class ScannerError(LanScannerError):
    """A passive listener could not open, bind or join its multicast socket.

    Examples:
        >>> raise ScannerError("Cannot bind mDNS socket", {"port": 5353})
    """


class ConfigurationError(LanScannerError):
    """Invalid scan parameters, such as a non-positive concurrency or timeout."""


class SubprocessError(LanScannerError):
    """An allowlisted external command could not be run.

    A command that runs and exits non-zero is not an error; this covers
    disallowed commands, missing executables and timeouts.

    Attributes:
        command: The argv that was attempted.
        returncode: Exit status, when the process got that far.
    """

    def __init__(
        self,
        message: str,
        command: Optional[list] = None,
        returncode: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        details = dict(details or {})
        if command:
            details["command"] = command
        if returncode is not None:
            details["returncode"] = returncode
        for key, output in (("stdout", stdout), ("stderr", stderr)):
            if output:
                details[key] = output[:MAX_OUTPUT_CHARS]

        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
