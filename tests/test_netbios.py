"""Tests for the NetBIOS NBSTAT codec."""
import struct

import pytest

from config import ProtocolDecodeError
from discovery.netbios import (
    build_nbstat_query,
    encode_netbios_name,
    parse_name_table,
    parse_nbstat_response,
)
from mocks import nbstat_response


class TestEncoding:
    """Tests for first-level name encoding."""

    def test_wildcard_name(self):
        encoded = encode_netbios_name('*')
        assert len(encoded) == 34
        assert encoded[0] == 0x20
        assert encoded[1:3] == b'CK'
        # NUL padding encodes as "AA"
        assert encoded[3:33] == b'AA' * 15
        assert encoded[-1] == 0

    def test_regular_name_is_space_padded(self):
        encoded = encode_netbios_name('pc')
        assert len(encoded) == 34
        # "P" = 0x50 -> "FA", "C" = 0x43 -> "ED", space = 0x20 -> "CA"
        assert encoded[1:5] == b'FAED'
        assert encoded[5:33] == b'CA' * 14

    def test_build_nbstat_query(self):
        query = build_nbstat_query(0xBEEF)
        assert len(query) == 12 + 34 + 4
        tid, flags, qdcount, _, _, _ = struct.unpack('!HHHHHH', query[:12])
        assert tid == 0xBEEF
        assert flags == 0x0010
        assert qdcount == 1
        assert query[-4:] == b'\x00\x21\x00\x01'


class TestNameTable:
    """Tests for NBSTAT response decoding."""

    def test_parse_name_table(self):
        packet = nbstat_response([
            ("OFFICE-PC", 0x00, 0x0400),
            ("WORKGROUP", 0x00, 0x8400),
        ])
        entries = parse_name_table(packet)
        assert [e.name for e in entries] == ["OFFICE-PC", "WORKGROUP"]
        assert not entries[0].is_group
        assert entries[1].is_group

    def test_prefers_unique_workstation_name(self):
        packet = nbstat_response([
            ("WORKGROUP", 0x00, 0x8400),
            ("OFFICE-PC", 0x20, 0x0400),
            ("OFFICE-PC", 0x00, 0x0400),
        ])
        assert parse_nbstat_response(packet) == "OFFICE-PC"

    def test_falls_back_to_first_entry(self):
        packet = nbstat_response([("WORKGROUP", 0x1E, 0x8400)])
        assert parse_nbstat_response(packet) == "WORKGROUP"

    def test_empty_table(self):
        assert parse_nbstat_response(nbstat_response([])) is None

    def test_short_packet_raises(self):
        with pytest.raises(ProtocolDecodeError):
            parse_nbstat_response(b'\x00' * 40)

    def test_wrong_record_type_raises(self):
        packet = bytearray(nbstat_response([("OFFICE-PC", 0x00, 0x0400)]))
        type_offset = 12 + 34
        packet[type_offset:type_offset + 2] = b'\x00\x20'
        with pytest.raises(ProtocolDecodeError):
            parse_name_table(bytes(packet))

    def test_truncated_table_keeps_complete_entries(self):
        packet = nbstat_response([
            ("OFFICE-PC", 0x00, 0x0400),
            ("WORKGROUP", 0x00, 0x8400),
        ])
        # drop the statistics block and half of the second entry
        truncated = packet[:-46 - 9]
        entries = parse_name_table(truncated)
        assert [e.name for e in entries] == ["OFFICE-PC"]
