"""Tests for SSDP messages and device metadata fetching."""
from unittest.mock import MagicMock, patch
from urllib.error import URLError

import pytest

from config import ProtocolDecodeError
from discovery import http_fetch
from discovery.http_fetch import (
    fetch_text,
    get_roku_name,
    parse_device_description,
    parse_roku_device_info,
    roku_device_info_url,
)
from discovery.ssdp import build_msearch, parse_location, parse_ssdp_headers
from mocks import ROKU_DEVICE_INFO, SSDP_RESPONSE, UPNP_DESCRIPTION


class TestSsdpMessages:
    """Tests for M-SEARCH building and response parsing."""

    def test_build_msearch(self):
        message = build_msearch("roku:ecp", mx=3).decode('ascii')
        assert message.startswith("M-SEARCH * HTTP/1.1\r\n")
        assert "HOST: 239.255.255.250:1900\r\n" in message
        assert 'MAN: "ssdp:discover"\r\n' in message
        assert "MX: 3\r\n" in message
        assert "ST: roku:ecp\r\n" in message
        assert message.endswith("\r\n\r\n")

    def test_parse_headers_upper_cases_names(self):
        headers = parse_ssdp_headers(SSDP_RESPONSE)
        assert headers["LOCATION"] == "http://192.168.1.20:8060/"
        assert headers["ST"] == "roku:ecp"
        assert headers["USN"] == "uuid:roku:ecp:X00012LDU0R2"

    def test_parse_location(self):
        assert parse_location(SSDP_RESPONSE) == "http://192.168.1.20:8060/"

    def test_notify_without_location(self):
        payload = b"NOTIFY * HTTP/1.1\nHOST: 239.255.255.250:1900\nNTS: ssdp:byebye\n\n"
        assert parse_location(payload) is None

    def test_not_ssdp_raises(self):
        with pytest.raises(ProtocolDecodeError):
            parse_ssdp_headers(b"\x00\x01garbage")


class TestDescriptionParsing:
    """Tests for UPnP and Roku XML parsing."""

    def test_friendly_name(self):
        assert parse_device_description(UPNP_DESCRIPTION) == "Living Room Speaker"

    def test_manufacturer_and_model(self):
        body = "<root><device><manufacturer>Sonos, Inc.</manufacturer><modelName>One</modelName></device></root>"
        assert parse_device_description(body) == "Sonos, Inc. One"

    def test_empty_description(self):
        assert parse_device_description("<root></root>") is None

    def test_roku_user_name_first(self):
        assert parse_roku_device_info(ROKU_DEVICE_INFO) == "Bedroom TV"

    def test_roku_friendly_name(self):
        body = "<device-info><friendly-device-name>Roku Ultra</friendly-device-name></device-info>"
        assert parse_roku_device_info(body) == "Roku Ultra"

    def test_roku_model_optional(self):
        body = "<device-info><model-name>Roku Express</model-name></device-info>"
        assert parse_roku_device_info(body) == "Roku Express"
        assert parse_roku_device_info(body, include_model=False) is None

    def test_roku_url(self):
        assert roku_device_info_url("10.0.0.9") == "http://10.0.0.9:8060/query/device-info"


class TestFetch:
    """Tests for HTTP fetching with a patched urlopen."""

    def _response(self, body: bytes) -> MagicMock:
        response = MagicMock()
        response.read.return_value = body
        response.__enter__.return_value = response
        return response

    def test_fetch_text(self):
        with patch.object(http_fetch, "urlopen", return_value=self._response(b"hello")) as mock_open:
            assert fetch_text("http://10.0.0.9/", timeout=2.0) == "hello"
        request = mock_open.call_args[0][0]
        assert request.get_header("User-agent") == http_fetch.USER_AGENT
        assert mock_open.call_args[1]["timeout"] == 2.0

    def test_fetch_text_failure_returns_none(self):
        with patch.object(http_fetch, "urlopen", side_effect=URLError("refused")):
            assert fetch_text("http://10.0.0.9/", timeout=1.0) is None
        with patch.object(http_fetch, "urlopen", side_effect=TimeoutError()):
            assert fetch_text("http://10.0.0.9/", timeout=1.0) is None

    def test_get_roku_name(self):
        body = ROKU_DEVICE_INFO.encode('utf-8')
        with patch.object(http_fetch, "urlopen", return_value=self._response(body)) as mock_open:
            assert get_roku_name("10.0.0.9", timeout_ms=1500) == "Bedroom TV"
        assert mock_open.call_args[1]["timeout"] == 1.5

    def test_get_roku_name_unreachable(self):
        with patch.object(http_fetch, "fetch_text", return_value=None):
            assert get_roku_name("10.0.0.9") is None
