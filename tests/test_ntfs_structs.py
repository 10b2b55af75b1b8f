import struct

import pytest

from undelete.ntfs_structs import (
    ATTR_DATA,
    AttributeHeader,
    FileNameAttribute,
    MFTEntryHeader,
    NonResidentAttributeHeader,
    NTFSBootSector,
    NTFSFileInfo,
    NTFSRecoveryStatus,
    ResidentAttributeHeader,
)


def test_boot_sector_fields_at_documented_offsets():
    data = bytearray(512)
    data[3:11] = b"NTFS    "
    struct.pack_into("<H", data, 11, 512)
    data[13] = 8
    struct.pack_into("<Q", data, 40, 1_000_000)
    struct.pack_into("<Q", data, 48, 786432)
    struct.pack_into("<Q", data, 56, 2)
    struct.pack_into("<b", data, 64, -10)
    struct.pack_into("<b", data, 68, 1)
    boot = NTFSBootSector.from_bytes(data)
    assert boot.oem_id == b"NTFS    "
    assert boot.bytes_per_sector == 512
    assert boot.sectors_per_cluster == 8
    assert boot.total_sectors == 1_000_000
    assert boot.mft_cluster == 786432
    assert boot.mirror_mft_cluster == 2
    assert boot.clusters_per_mft_record == -10
    assert boot.clusters_per_index_block == 1


def test_boot_sector_too_short():
    with pytest.raises(ValueError):
        NTFSBootSector.from_bytes(bytes(40))


def test_mft_entry_header():
    data = bytearray(MFTEntryHeader.SIZE)
    data[0:4] = b"FILE"
    struct.pack_into("<H", data, 20, 56)
    struct.pack_into("<H", data, 22, 0x0003)
    struct.pack_into("<I", data, 44, 42)
    header = MFTEntryHeader.from_bytes(data)
    assert header.signature == MFTEntryHeader.FILE_SIGNATURE
    assert header.first_attribute_offset == 56
    assert header.flags & MFTEntryHeader.FLAG_IN_USE
    assert header.flags & MFTEntryHeader.FLAG_DIRECTORY
    assert header.record_number == 42
    assert MFTEntryHeader.SIZE == 48


def test_resident_attribute_header():
    data = bytearray(24)
    struct.pack_into("<II", data, 0, 0x30, 104)
    struct.pack_into("<IH", data, 16, 74, 24)
    header = ResidentAttributeHeader.from_bytes(data)
    assert header.attr_type == 0x30
    assert header.length == 104
    assert header.non_resident == 0
    assert header.content_length == 74
    assert header.content_offset == 24
    assert AttributeHeader.from_bytes(data).length == header.length


def test_non_resident_attribute_header():
    data = bytearray(72)
    struct.pack_into("<II", data, 0, ATTR_DATA, 72)
    data[8] = 1
    struct.pack_into("<H", data, 32, 64)
    struct.pack_into("<QQQ", data, 40, 8192, 5000, 5000)
    header = NonResidentAttributeHeader.from_bytes(data)
    assert header.attr_type == ATTR_DATA
    assert header.non_resident == 1
    assert header.data_run_offset == 64
    assert header.allocated_size == 8192
    assert header.real_size == 5000
    assert header.initialized_size == 5000


def test_file_name_attribute_round_trip():
    name = "report.txt"
    data = bytearray(66)
    struct.pack_into("<Q", data, 48, 5000)
    data[64] = len(name)
    data[65] = 1
    data += name.encode("utf-16-le")
    attr = FileNameAttribute.from_bytes(data)
    assert attr.name == name
    assert attr.name_length == len(name)
    assert attr.real_size == 5000
    assert attr.name_type == 1


def test_file_name_attribute_truncated_name():
    data = bytearray(66)
    data[64] = 5
    data += "ab".encode("utf-16-le")
    with pytest.raises(ValueError):
        FileNameAttribute.from_bytes(data)


def test_mutable_records_defaults():
    info = NTFSFileInfo(file_name="a.txt", file_size=3, data=b"abc")
    assert info.non_resident is False
    assert info.cluster == 0
    first = NTFSRecoveryStatus()
    second = NTFSRecoveryStatus()
    first.problematic_clusters.append(1)
    assert second.problematic_clusters == []