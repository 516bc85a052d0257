"""Data persistence components."""

from .device_store import DeviceStore
from .preferences import Preferences, PreferencesStore

__all__ = [
    "DeviceStore",
    "Preferences",
    "PreferencesStore",
]
