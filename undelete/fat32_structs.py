"""On-disk FAT32, MBR and GPT structures and the records built while scanning."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

_BOOT_SECTOR = struct.Struct("<3s8sHBHBHHBHHHIIIHHIHH12sBBBI11s8s420sH")
_DIRECTORY_ENTRY = struct.Struct("<11sBBBHHHHHHHI")
_LFN_ENTRY = struct.Struct("<B5HBBB6HH2H")
_MBR_PARTITION_ENTRY = struct.Struct("<8BII")
_GPT_HEADER = struct.Struct("<8sIIIIQQQQ16sQIII420s")
_GPT_PARTITION_ENTRY = struct.Struct("<16s16sQQQ72s")

_MBR_BOOT_CODE_SIZE = 446
_MBR_PARTITION_COUNT = 4
_MBR_SIZE = 512


def _unpack(layout: struct.Struct, data, what: str) -> tuple:
    if len(data) < layout.size:
        raise ValueError(f"{what} needs {layout.size} bytes, got {len(data)}")
    return layout.unpack_from(data)


@dataclass
class FAT32FileInfo:
    """A deleted file found in a FAT32 directory."""

    file_id: int = 0
    full_name: str = ""
    file_name: str = ""
    extension: str = ""
    file_size: int = 0
    cluster: int = 0
    is_extension_predicted: bool = False


@dataclass(frozen=True)
class BootSector:
    """FAT32 boot sector (BIOS parameter block)."""

    jmp_boot: bytes
    oem_name: bytes
    bytes_per_sector: int
    sectors_per_cluster: int
    reserved_sector_count: int
    num_fats: int
    root_entry_count: int
    total_sectors16: int
    media: int
    fat_size16: int
    sectors_per_track: int
    number_of_heads: int
    hidden_sectors: int
    total_sectors32: int
    fat_size32: int
    ext_flags: int
    fs_version: int
    root_cluster: int
    fs_info: int
    bk_boot_sec: int
    reserved: bytes
    drive_number: int
    reserved1: int
    boot_signature: int
    volume_id: int
    volume_label: bytes
    file_system_type: bytes
    boot_code: bytes
    boot_sector_signature: int

    SIZE = _BOOT_SECTOR.size

    @classmethod
    def from_bytes(cls, data) -> BootSector:
        return cls(*_unpack(_BOOT_SECTOR, data, "FAT32 boot sector"))


@dataclass(frozen=True)
class DirectoryEntry:
    """A 32-byte short-name directory entry."""

    name: bytes
    attr: int
    nt_res: int
    crt_time_tenth: int
    crt_time: int
    crt_date: int
    lst_acc_date: int
    fst_clus_hi: int
    wrt_time: int
    wrt_date: int
    fst_clus_lo: int
    file_size: int

    SIZE = _DIRECTORY_ENTRY.size

    @classmethod
    def from_bytes(cls, data) -> DirectoryEntry:
        return cls(*_unpack(_DIRECTORY_ENTRY, data, "directory entry"))

    def first_cluster(self) -> int:
        """First cluster of the entry's data, joined from its high and low halves."""
        return (self.fst_clus_hi << 16) | self.fst_clus_lo


@dataclass(frozen=True)
class LFNEntry:
    """A long-filename directory entry; name parts are UTF-16 code units."""

    ord: int
    name1: tuple[int, ...]
    attr: int
    entry_type: int
    checksum: int
    name2: tuple[int, ...]
    fst_clus_lo: int
    name3: tuple[int, ...]

    SIZE = _LFN_ENTRY.size

    @classmethod
    def from_bytes(cls, data) -> LFNEntry:
        v = _unpack(_LFN_ENTRY, data, "long filename entry")
        return cls(
            ord=v[0],
            name1=tuple(v[1:6]),
            attr=v[6],
            entry_type=v[7],
            checksum=v[8],
            name2=tuple(v[9:15]),
            fst_clus_lo=v[15],
            name3=tuple(v[16:18]),
        )


@dataclass(frozen=True)
class MBRPartitionEntry:
    """One of the four primary partition slots in an MBR."""

    boot_indicator: int
    start_head: int
    start_sector: int
    start_cylinder: int
    partition_type: int
    end_head: int
    end_sector: int
    end_cylinder: int
    start_lba: int
    total_sectors: int

    SIZE = _MBR_PARTITION_ENTRY.size

    @classmethod
    def from_bytes(cls, data) -> MBRPartitionEntry:
        return cls(*_unpack(_MBR_PARTITION_ENTRY, data, "MBR partition entry"))


@dataclass(frozen=True)
class MBRHeader:
    """Master boot record: boot code, partition table and signature."""

    boot_code: bytes
    partition_table: tuple[MBRPartitionEntry, ...]
    signature: int

    SIZE = _MBR_SIZE

    @classmethod
    def from_bytes(cls, data) -> MBRHeader:
        if len(data) < _MBR_SIZE:
            raise ValueError(f"MBR needs {_MBR_SIZE} bytes, got {len(data)}")
        data = bytes(data)
        entry_size = MBRPartitionEntry.SIZE
        table = tuple(
            MBRPartitionEntry.from_bytes(data[start : start + entry_size])
            for start in range(
                _MBR_BOOT_CODE_SIZE,
                _MBR_BOOT_CODE_SIZE + _MBR_PARTITION_COUNT * entry_size,
                entry_size,
            )
        )
        (signature,) = struct.unpack_from("<H", data, _MBR_SIZE - 2)
        return cls(data[:_MBR_BOOT_CODE_SIZE], table, signature)


@dataclass(frozen=True)
class GPTHeader:
    """GUID partition table header."""

    signature: bytes
    revision: int
    header_size: int
    header_crc32: int
    reserved: int
    current_lba: int
    backup_lba: int
    first_usable_lba: int
    last_usable_lba: int
    disk_guid: bytes
    partition_entry_lba: int
    number_of_entries: int
    size_of_entry: int
    partition_entry_array_crc32: int
    reserved2: bytes

    SIZE = _GPT_HEADER.size

    @classmethod
    def from_bytes(cls, data) -> GPTHeader:
        return cls(*_unpack(_GPT_HEADER, data, "GPT header"))


@dataclass(frozen=True)
class GPTPartitionEntry:
    """A GPT partition entry; the name is decoded from UTF-16LE."""

    partition_type_guid: bytes
    unique_partition_guid: bytes
    starting_lba: int
    ending_lba: int
    attributes: int
    partition_name: str

    SIZE = _GPT_PARTITION_ENTRY.size

    @classmethod
    def from_bytes(cls, data) -> GPTPartitionEntry:
        *fields_, raw_name = _unpack(_GPT_PARTITION_ENTRY, data, "GPT partition entry")
        name = raw_name.decode("utf-16-le", errors="replace").split("\x00", 1)[0]
        return cls(*fields_, name)


@dataclass
class FAT32RecoveryStatus:
    """Findings and progress while analysing and recovering one FAT32 file."""

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