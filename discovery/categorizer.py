"""Group stored devices by how their presence changed.

Pure functions over a snapshot of the device table; nothing is written.
"""

from enum import Enum
from typing import Dict, Iterable, List

from config import SCAN
from discovery.models import DeviceStatus, StoredDevice

MS_PER_DAY = 24 * 60 * 60 * 1000


class DeviceState(Enum):
    NEW = "new"
    BACK_ONLINE = "back_online"
    STILL_ONLINE = "still_online"
    WENT_OFFLINE = "went_offline"
    HISTORICAL = "historical"


def classify_device(device: StoredDevice, cutoff_ms: int) -> DeviceState:
    """State of one device given the historical cutoff timestamp."""
    online = device.status is DeviceStatus.ONLINE

    if online and device.first_seen == device.last_seen:
        return DeviceState.NEW
    if online and device.first_seen < device.last_seen:
        return DeviceState.STILL_ONLINE
    if not online and device.last_seen >= cutoff_ms:
        return DeviceState.WENT_OFFLINE
    if not online and device.last_seen < cutoff_ms:
        return DeviceState.HISTORICAL
    if online:
        return DeviceState.STILL_ONLINE
    return DeviceState.HISTORICAL


def categorize_devices(
    devices: Iterable[StoredDevice],
    now_ms: int,
    cutoff_days: int = SCAN.HISTORICAL_CUTOFF_DAYS,
) -> Dict[DeviceState, List[StoredDevice]]:
    """Bucket devices by DeviceState.

    Every state is present in the result, possibly with an empty list.
    Input order is kept within each bucket.

    Args:
        devices: Snapshot of stored devices.
        now_ms: Reference time in epoch milliseconds.
        cutoff_days: Offline devices last seen before now - cutoff_days are historical.
    """
    cutoff_ms = now_ms - cutoff_days * MS_PER_DAY
    groups: Dict[DeviceState, List[StoredDevice]] = {state: [] for state in DeviceState}
    for device in devices:
        groups[classify_device(device, cutoff_ms)].append(device)
    return groups
