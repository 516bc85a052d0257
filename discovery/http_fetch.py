"""Small HTTP helpers for device metadata.

Covers the two XML documents the discovery engine reads: Roku ECP
``/query/device-info`` and UPnP device descriptions found via SSDP
LOCATION headers. Parsing is regex-based; the documents are small and
frequently not well-formed.
"""

import re
from typing import Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import PROBE, get_logger

logger = get_logger(__name__)

USER_AGENT = "LanScanner/1.0"
MAX_BODY_BYTES = 64 * 1024


def _tag_pattern(tag: str) -> re.Pattern:
    return re.compile(rf'<{tag}>([^<]+)</{tag}>', re.IGNORECASE)


ROKU_USER_NAME = _tag_pattern('user-device-name')
ROKU_FRIENDLY_NAME = _tag_pattern('friendly-device-name')
ROKU_MODEL_NAME = _tag_pattern('model-name')

UPNP_FRIENDLY_NAME = _tag_pattern('friendlyName')
UPNP_MANUFACTURER = _tag_pattern('manufacturer')
UPNP_MODEL_NAME = _tag_pattern('modelName')


def _first_match(pattern: re.Pattern, body: str) -> Optional[str]:
    match = pattern.search(body)
    if match:
        value = match.group(1).strip()
        if value:
            return value
    return None


def fetch_text(url: str, timeout: float) -> Optional[str]:
    """GET ``url`` and return the decoded body, or None on any failure."""
    try:
        request = Request(url, headers={"User-Agent": USER_AGENT})
        with urlopen(request, timeout=timeout) as response:
            return response.read(MAX_BODY_BYTES).decode('utf-8', errors='replace')
    except (URLError, OSError, ValueError) as e:
        logger.debug(f"HTTP fetch failed for {url}: {e}")
        return None


def roku_device_info_url(ip: str) -> str:
    return f"http://{ip}:{PROBE.ROKU_PORT}{PROBE.ROKU_DEVICE_INFO_PATH}"


def parse_roku_device_info(body: str, include_model: bool = True) -> Optional[str]:
    """User-set name, else friendly name, else (optionally) model name."""
    patterns = [ROKU_USER_NAME, ROKU_FRIENDLY_NAME]
    if include_model:
        patterns.append(ROKU_MODEL_NAME)
    for pattern in patterns:
        value = _first_match(pattern, body)
        if value:
            return value
    return None


def parse_device_description(body: str) -> Optional[str]:
    """UPnP friendlyName, else "<manufacturer> <modelName>"."""
    friendly = _first_match(UPNP_FRIENDLY_NAME, body)
    if friendly:
        return friendly

    parts = [
        value for value in (
            _first_match(UPNP_MANUFACTURER, body),
            _first_match(UPNP_MODEL_NAME, body),
        ) if value
    ]
    return ' '.join(parts) if parts else None


def get_roku_name(ip: str, timeout_ms: int = PROBE.ROKU_TIMEOUT_MS,
                  include_model: bool = True) -> Optional[str]:
    """Query a Roku's ECP device-info endpoint for its name."""
    body = fetch_text(roku_device_info_url(ip), timeout_ms / 1000)
    if not body:
        return None
    return parse_roku_device_info(body, include_model=include_model)
