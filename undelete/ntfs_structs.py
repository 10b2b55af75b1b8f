"""On-disk NTFS structures and the records built while scanning the MFT."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

ATTR_FILE_NAME = 0x30
ATTR_DATA = 0x80
ATTR_END = 0xFFFFFFFF

_BOOT_SECTOR = struct.Struct("<3s8sHBH3sHBHHHIIIQQQb3sb3sQI")
_MFT_ENTRY_HEADER = struct.Struct("<IHHQHHHHIIQHHI")
_ATTRIBUTE_HEADER = struct.Struct("<IIBBHHH")
_RESIDENT_HEADER = struct.Struct("<IIBBHHHIH")
_NON_RESIDENT_HEADER = struct.Struct("<IIBBHHHQQHHIQQQ")
_FILE_NAME_HEADER = struct.Struct("<QQQQQQQIIBB")


def _unpack(layout: struct.Struct, data, what: str) -> tuple:
    if len(data) < layout.size:
        raise ValueError(f"{what} needs {layout.size} bytes, got {len(data)}")
    return layout.unpack_from(data)


@dataclass
class NTFSFileInfo:
    """A deleted file found in the MFT."""

    file_name: str = ""
    file_id: int = 0
    file_size: int = 0
    cluster: int = 0
    run_length: int = 0
    data: bytes = b""
    non_resident: bool = False


@dataclass(frozen=True)
class NTFSBootSector:
    """NTFS boot sector."""

    jump: bytes
    oem_id: bytes
    bytes_per_sector: int
    sectors_per_cluster: int
    reserved_sectors: int
    reserved1: bytes
    reserved2: int
    media_descriptor: int
    reserved3: int
    sectors_per_track: int
    number_of_heads: int
    hidden_sectors: int
    reserved4: int
    reserved5: int
    total_sectors: int
    mft_cluster: int
    mirror_mft_cluster: int
    clusters_per_mft_record: int
    reserved6: bytes
    clusters_per_index_block: int
    reserved7: bytes
    volume_serial_number: int
    checksum: int

    SIZE = _BOOT_SECTOR.size

    @classmethod
    def from_bytes(cls, data) -> NTFSBootSector:
        return cls(*_unpack(_BOOT_SECTOR, data, "NTFS boot sector"))


@dataclass(frozen=True)
class MFTEntryHeader:
    """Header of a file record in the master file table."""

    signature: int
    update_sequence_offset: int
    update_sequence_size: int
    log_file_sequence_number: int
    sequence_number: int
    hard_link_count: int
    first_attribute_offset: int
    flags: int
    used_size: int
    allocated_size: int
    base_file_record: int
    next_attribute_id: int
    padding: int
    record_number: int

    SIZE = _MFT_ENTRY_HEADER.size
    FILE_SIGNATURE = 0x454C4946  # "FILE" read as a little-endian integer
    FLAG_IN_USE = 0x0001
    FLAG_DIRECTORY = 0x0002

    @classmethod
    def from_bytes(cls, data) -> MFTEntryHeader:
        return cls(*_unpack(_MFT_ENTRY_HEADER, data, "MFT entry header"))


@dataclass(frozen=True)
class AttributeHeader:
    """Common header of every MFT attribute."""

    attr_type: int
    length: int
    non_resident: int
    name_length: int
    name_offset: int
    flags: int
    attribute_id: int

    SIZE = _ATTRIBUTE_HEADER.size

    @classmethod
    def from_bytes(cls, data) -> AttributeHeader:
        return cls(*_unpack(_ATTRIBUTE_HEADER, data, "attribute header"))


@dataclass(frozen=True)
class ResidentAttributeHeader(AttributeHeader):
    """Header of an attribute whose content lives inside the record."""

    content_length: int
    content_offset: int

    SIZE = _RESIDENT_HEADER.size

    @classmethod
    def from_bytes(cls, data) -> ResidentAttributeHeader:
        return cls(*_unpack(_RESIDENT_HEADER, data, "resident attribute header"))


@dataclass(frozen=True)
class NonResidentAttributeHeader(AttributeHeader):
    """Header of an attribute whose content lives in clusters on disk."""

    starting_vcn: int
    last_vcn: int
    data_run_offset: int
    compression_unit: int
    padding: int
    allocated_size: int
    real_size: int
    initialized_size: int

    SIZE = _NON_RESIDENT_HEADER.size

    @classmethod
    def from_bytes(cls, data) -> NonResidentAttributeHeader:
        return cls(*_unpack(_NON_RESIDENT_HEADER, data, "non-resident attribute header"))


@dataclass(frozen=True)
class FileNameAttribute:
    """Content of a $FILE_NAME attribute, name decoded from UTF-16LE."""

    parent_directory: int
    creation_time: int
    modification_time: int
    mft_modification_time: int
    last_access_time: int
    allocated_size: int
    real_size: int
    flags: int
    reparse_value: int
    name_length: int
    name_type: int
    name: str

    HEADER_SIZE = _FILE_NAME_HEADER.size

    @classmethod
    def from_bytes(cls, data) -> FileNameAttribute:
        values = _unpack(_FILE_NAME_HEADER, data, "file name attribute")
        name_length = values[9]
        end = _FILE_NAME_HEADER.size + 2 * name_length
        if len(data) < end:
            raise ValueError(f"file name attribute needs {end} bytes, got {len(data)}")
        raw = bytes(data[_FILE_NAME_HEADER.size : end])
        return cls(*values, raw.decode("utf-16-le", errors="surrogatepass"))


@dataclass
class NTFSRecoveryStatus:
    """Findings and progress while recovering one NTFS file."""

    is_corrupted: bool = False
    has_fragmented_clusters: bool = False
    fragmentation: float = 0.0
    has_back_jumps: bool = False
    back_jumps: int = 0
    has_repeated_clusters: bool = False
    repeated_clusters: int = 0
    has_large_gaps: bool = False
    large_gaps: int = 0
    has_overwritten_clusters: bool = False
    has_invalid_file_name: bool = False
    has_invalid_extension: bool = False
    expected_clusters: int = 0
    recovered_clusters: int = 0
    recovered_bytes: int = 0
    problematic_clusters: list[int] = field(default_factory=list)