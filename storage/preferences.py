"""Persisted user preferences for LAN Scanner."""
import json
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from config import STORAGE, get_logger
from discovery.network_info import LastScannedNetwork

logger = get_logger(__name__)


@dataclass
class Preferences:
    """Preference values kept between runs."""
    last_ssid: Optional[str] = None
    last_gateway: Optional[str] = None
    first_run: bool = True
    unlocked: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Preferences':
        return cls(
            last_ssid=data.get("last_ssid"),
            last_gateway=data.get("last_gateway"),
            first_run=data.get("first_run", True),
            unlocked=data.get("unlocked", False),
        )


class PreferencesStore:
    """Key-value preferences backed by a JSON file."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.preferences_file = self.data_dir / STORAGE.PREFERENCES_FILE
        self._lock = threading.Lock()
        self._prefs: Preferences = Preferences()
        self._load()

    def _load(self) -> None:
        """Load preferences from file."""
        if self.preferences_file.exists():
            try:
                with open(self.preferences_file, 'r') as f:
                    self._prefs = Preferences.from_dict(json.load(f))
            except (json.JSONDecodeError, OSError, AttributeError) as e:
                logger.warning(f"Could not load preferences: {e}")
                self._prefs = Preferences()
        else:
            self._prefs = Preferences()

    def _save(self) -> None:
        """Save preferences to file."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.preferences_file, 'w') as f:
                json.dump(self._prefs.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Error saving preferences: {e}")

    # === Last scanned network ===

    def get_last_scanned_network(self) -> Optional[LastScannedNetwork]:
        """Network of the previous scan, or None if never recorded."""
        if self._prefs.last_ssid is None and self._prefs.last_gateway is None:
            return None
        return LastScannedNetwork(ssid=self._prefs.last_ssid, gateway_ip=self._prefs.last_gateway)

    def save_last_scanned_network(self, ssid: Optional[str], gateway_ip: Optional[str]) -> None:
        with self._lock:
            self._prefs.last_ssid = ssid
            self._prefs.last_gateway = gateway_ip
            self._save()

    # === Flags ===

    def is_first_run(self) -> bool:
        return self._prefs.first_run

    def mark_first_run_complete(self) -> None:
        with self._lock:
            self._prefs.first_run = False
            self._save()

    def is_unlocked(self) -> bool:
        """Whether advanced scan options are enabled."""
        return self._prefs.unlocked

    def set_unlocked(self, unlocked: bool) -> None:
        with self._lock:
            self._prefs.unlocked = unlocked
            self._save()
