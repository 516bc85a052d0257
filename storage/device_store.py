"""SQLite persistence for discovered devices.

One row per IP address, holding the names learned for it, its vendor,
first/last-seen timestamps (epoch milliseconds) and online status.

Features:
- Vendor-mismatch reset: a reused IP with a different vendor is a new device
- Name stickiness: a scan that misses a name never blanks a known one
- User-assigned custom names survive rescans
- Offline sweep keyed on the scan start time
- Additive schema migrations tracked in schema_info
"""
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from config import STORAGE, StorageError, get_logger
from discovery.models import DeviceStatus, StoredDevice
from discovery.names import DeviceNames

logger = get_logger(__name__)


# Schema version for migrations
SCHEMA_VERSION = 2


class DeviceStore:
    """Handles persistence of device history to a SQLite database.

    Every public method opens its own connection, so one store can be
    shared by all scan workers. Writes are serialized with a lock.
    """

    DEFAULT_DATA_DIR = Path.home() / STORAGE.DATA_DIR_NAME

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS devices (
        ip TEXT PRIMARY KEY,
        display_name TEXT,
        ssdp_name TEXT,
        mdns_name TEXT,
        netbios_name TEXT,
        dns_name TEXT,
        vendor TEXT,
        first_seen INTEGER NOT NULL,
        last_seen INTEGER NOT NULL,
        status TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_devices_last_seen ON devices(last_seen);

    CREATE TABLE IF NOT EXISTS schema_info (
        key TEXT PRIMARY KEY,
        value TEXT
    );
    """

    # version -> statements that bring the schema up to that version
    MIGRATIONS = {
        2: ["ALTER TABLE devices ADD COLUMN custom_name TEXT"],
    }

    def __init__(self, data_dir: Optional[Path] = None, db_path: Optional[Path] = None):
        """Initialize the device store.

        Args:
            data_dir: Directory for the database file. Defaults to ~/.lan-scanner/
            db_path: Explicit database path, overrides data_dir.
        """
        self.data_dir = Path(data_dir) if data_dir else self.DEFAULT_DATA_DIR
        self.db_path = Path(db_path) if db_path else self.data_dir / STORAGE.DATABASE_FILE
        self._lock = threading.Lock()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

        logger.info(f"DeviceStore initialized at {self.db_path}")

    @contextmanager
    def _connection(self):
        """Context manager for database connections (WAL, autocommit)."""
        conn = sqlite3.connect(
            self.db_path,
            timeout=STORAGE.DB_TIMEOUT_SECONDS,
            isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create tables and apply pending migrations."""
        try:
            with self._lock, self._connection() as conn:
                conn.executescript(self.SCHEMA)
                conn.execute(
                    "INSERT OR IGNORE INTO schema_info (key, value) VALUES (?, ?)",
                    ("version", "1")
                )
                self._migrate(conn)
            logger.debug("Database schema initialized")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StorageError(f"Database initialization failed: {e}", {"path": str(self.db_path)})

    def _migrate(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("SELECT value FROM schema_info WHERE key = 'version'").fetchone()
        version = int(row["value"]) if row else 1
        columns = {r["name"] for r in conn.execute("PRAGMA table_info(devices)")}

        for target in sorted(self.MIGRATIONS):
            if target <= version:
                continue
            for statement in self.MIGRATIONS[target]:
                # Databases created by this version already have the column
                column = statement.rsplit("ADD COLUMN", 1)[-1].split()[0]
                if column not in columns:
                    conn.execute(statement)
            logger.info(f"Migrated device database to schema version {target}")

        conn.execute(
            "INSERT OR REPLACE INTO schema_info (key, value) VALUES (?, ?)",
            ("version", str(SCHEMA_VERSION))
        )

    def get_schema_version(self) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM schema_info WHERE key = 'version'").fetchone()
            return int(row["value"]) if row else 0

    @staticmethod
    def _row_to_device(row: sqlite3.Row) -> StoredDevice:
        return StoredDevice(
            ip=row["ip"],
            display_name=row["display_name"],
            custom_name=row["custom_name"],
            ssdp_name=row["ssdp_name"],
            mdns_name=row["mdns_name"],
            netbios_name=row["netbios_name"],
            dns_name=row["dns_name"],
            vendor=row["vendor"],
            first_seen=row["first_seen"],
            last_seen=row["last_seen"],
            status=DeviceStatus(row["status"]),
        )

    # === Scan updates ===

    def upsert_device(self, ip: str, names: DeviceNames, vendor: Optional[str],
                      now_ms: int) -> bool:
        """Record that ``ip`` was seen online at ``now_ms``.

        Args:
            ip: Device address (primary key).
            names: Names discovered by this scan.
            vendor: Vendor inferred by this scan, if any.
            now_ms: Scan time in epoch milliseconds.

        Returns:
            True if the row was written, False on a database error.
        """
        with self._lock:
            try:
                with self._connection() as conn:
                    row = conn.execute("SELECT * FROM devices WHERE ip = ?", (ip,)).fetchone()

                    reset = (
                        row is not None
                        and row["vendor"] is not None
                        and vendor is not None
                        and row["vendor"] != vendor
                    )
                    if reset:
                        logger.info(
                            f"Vendor changed at {ip} ({row['vendor']!r} -> {vendor!r}), "
                            f"treating as a new device"
                        )

                    if row is None or reset:
                        first_seen = now_ms
                        custom_name = None
                        merged = names
                        stored_vendor = vendor
                    else:
                        first_seen = row["first_seen"]
                        custom_name = row["custom_name"]
                        merged = DeviceNames(
                            ssdp=names.ssdp or row["ssdp_name"],
                            roku_http=names.roku_http,
                            mdns=names.mdns or row["mdns_name"],
                            netbios=names.netbios or row["netbios_name"],
                            dns=names.dns or row["dns_name"],
                            http_server=names.http_server,
                            device_type=names.device_type,
                        )
                        stored_vendor = vendor or row["vendor"]

                    display_name = custom_name or merged.best_name()

                    conn.execute("""
                        INSERT OR REPLACE INTO devices
                        (ip, display_name, custom_name, ssdp_name, mdns_name, netbios_name,
                         dns_name, vendor, first_seen, last_seen, status)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        ip, display_name, custom_name, merged.ssdp, merged.mdns,
                        merged.netbios, merged.dns, stored_vendor, first_seen, now_ms,
                        DeviceStatus.ONLINE.value,
                    ))
                return True
            except sqlite3.Error as e:
                logger.error(f"Failed to upsert device {ip}: {e}")
                return False

    def mark_offline_since(self, scan_start_ms: int) -> int:
        """Mark every device not seen since ``scan_start_ms`` offline.

        Returns:
            Number of rows with last_seen before ``scan_start_ms``, including
            ones that were already offline.
        """
        with self._lock:
            try:
                with self._connection() as conn:
                    cursor = conn.execute(
                        "UPDATE devices SET status = ? WHERE last_seen < ?",
                        (DeviceStatus.OFFLINE.value, scan_start_ms)
                    )
                    count = cursor.rowcount
            except sqlite3.Error as e:
                logger.error(f"Failed to mark devices offline: {e}")
                return 0

        if count:
            logger.info(f"Marked {count} devices offline")
        return count

    # === User edits ===

    def set_custom_name(self, ip: str, custom_name: Optional[str]) -> bool:
        """Set or clear (None/blank) the user's name for a device.

        Returns:
            False if the device does not exist or the write failed.
        """
        custom_name = custom_name.strip() if custom_name else None
        custom_name = custom_name or None

        with self._lock:
            try:
                with self._connection() as conn:
                    row = conn.execute("SELECT * FROM devices WHERE ip = ?", (ip,)).fetchone()
                    if row is None:
                        return False

                    if custom_name:
                        display_name = custom_name
                    else:
                        display_name = DeviceNames(
                            ssdp=row["ssdp_name"],
                            mdns=row["mdns_name"],
                            netbios=row["netbios_name"],
                            dns=row["dns_name"],
                        ).best_name()

                    conn.execute(
                        "UPDATE devices SET custom_name = ?, display_name = ? WHERE ip = ?",
                        (custom_name, display_name, ip)
                    )
                return True
            except sqlite3.Error as e:
                logger.error(f"Failed to set custom name for {ip}: {e}")
                return False

    def delete_device(self, ip: str) -> bool:
        """Forget a device. Returns True if a row was removed."""
        with self._lock:
            try:
                with self._connection() as conn:
                    cursor = conn.execute("DELETE FROM devices WHERE ip = ?", (ip,))
                    return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"Failed to delete device {ip}: {e}")
                return False

    def clear_all_devices(self) -> int:
        """Forget every device. Returns the number of rows removed."""
        with self._lock:
            try:
                with self._connection() as conn:
                    cursor = conn.execute("DELETE FROM devices")
                    count = cursor.rowcount
            except sqlite3.Error as e:
                logger.error(f"Failed to clear devices: {e}")
                raise StorageError(f"Failed to clear devices: {e}")

        logger.info(f"Cleared {count} devices")
        return count

    # === Queries ===

    def get_device(self, ip: str) -> Optional[StoredDevice]:
        """Get a device by IP address."""
        try:
            with self._connection() as conn:
                row = conn.execute("SELECT * FROM devices WHERE ip = ?", (ip,)).fetchone()
                return self._row_to_device(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"Failed to get device: {e}")
            return None

    def get_all_devices(self) -> List[StoredDevice]:
        """All devices, most recently seen first."""
        try:
            with self._connection() as conn:
                cursor = conn.execute("SELECT * FROM devices ORDER BY last_seen DESC, ip")
                return [self._row_to_device(row) for row in cursor]
        except sqlite3.Error as e:
            logger.error(f"Failed to get devices: {e}")
            return []

    def get_device_count(self) -> int:
        try:
            with self._connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM devices").fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count devices: {e}")
            return 0

    def get_data_file_path(self) -> str:
        """Get the path to the database file."""
        return str(self.db_path)
