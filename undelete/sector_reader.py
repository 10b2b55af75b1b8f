"""Sector-level access to volumes and disk images."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod

from .ntfs_structs import (
    ATTR_DATA,
    ATTR_END,
    AttributeHeader,
    MFTEntryHeader,
    NonResidentAttributeHeader,
    NTFSBootSector,
)

_DEFAULT_SECTOR_SIZE = 512
_VALID_SECTOR_SIZES = frozenset({512, 1024, 2048, 4096})
_BOOT_PEEK_SIZE = 512
UNKNOWN_FILESYSTEM = "UNKNOWN_TYPE"


class SectorReadError(OSError):
    """A volume could not be opened or a sector could not be read."""


class SectorReader(ABC):
    """Random access to the sectors of a volume."""

    @abstractmethod
    def read_sector(self, sector: int, size: int) -> bytes:
        """Return `size` bytes starting at `sector * size`."""

    @abstractmethod
    def bytes_per_sector(self) -> int:
        """Sector size of the volume."""

    @abstractmethod
    def filesystem_type(self) -> str:
        """Filesystem name such as "FAT32" or "NTFS"."""

    @abstractmethod
    def total_mft_records(self) -> int:
        """Number of valid MFT records on an NTFS volume, 0 otherwise."""

    @abstractmethod
    def is_open(self) -> bool:
        """Whether the underlying handle is open."""

    @abstractmethod
    def reopen(self) -> None:
        """Open the volume again, replacing any existing handle."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying handle."""

    def __enter__(self) -> SectorReader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class FileSectorReader(SectorReader):
    """Reads sectors from a device path or a disk image file."""

    def __init__(self, path, bytes_per_sector: int | None = None) -> None:
        self.path = os.fspath(path)
        self._sector_size = bytes_per_sector
        self._handle = None
        self.reopen()

    def reopen(self) -> None:
        self.close()
        try:
            self._handle = open(self.path, "rb", buffering=0)
        except PermissionError as exc:
            raise SectorReadError("Administrator privileges required") from exc
        except OSError as exc:
            raise SectorReadError(f"Failed to initialize drive reader: {self.path}") from exc

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def is_open(self) -> bool:
        return self._handle is not None and not self._handle.closed

    def _read_at(self, offset: int, size: int) -> bytes:
        if not self.is_open():
            self.reopen()
        try:
            self._handle.seek(offset)
            chunks = []
            remaining = size
            while remaining:
                chunk = self._handle.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        except OSError as exc:
            raise SectorReadError(f"Failed to read {size} bytes at offset {offset}") from exc
        data = b"".join(chunks)
        if len(data) != size:
            raise SectorReadError(
                f"Short read at offset {offset}: wanted {size} bytes, got {len(data)}"
            )
        return data

    def read_sector(self, sector: int, size: int) -> bytes:
        if sector < 0:
            raise ValueError(f"sector must not be negative: {sector}")
        if size <= 0:
            raise ValueError(f"size must be positive: {size}")
        return self._read_at(sector * size, size)

    def bytes_per_sector(self) -> int:
        if self._sector_size is None:
            boot = self._read_at(0, _BOOT_PEEK_SIZE)
            declared = int.from_bytes(boot[11:13], "little")
            self._sector_size = declared if declared in _VALID_SECTOR_SIZES else _DEFAULT_SECTOR_SIZE
        return self._sector_size

    def filesystem_type(self) -> str:
        try:
            boot = self._read_at(0, _BOOT_PEEK_SIZE)
        except SectorReadError:
            return UNKNOWN_FILESYSTEM
        if boot[3:11].startswith(b"NTFS"):
            return "NTFS"
        if boot[82:87] == b"FAT32":
            return "FAT32"
        return UNKNOWN_FILESYSTEM

    def total_mft_records(self) -> int:
        try:
            return self._count_mft_records()
        except (SectorReadError, ValueError):
            return 0

    def _count_mft_records(self) -> int:
        boot = NTFSBootSector.from_bytes(self._read_at(0, NTFSBootSector.SIZE))
        if not boot.oem_id.startswith(b"NTFS"):
            return 0
        bytes_per_cluster = boot.bytes_per_sector * boot.sectors_per_cluster
        if bytes_per_cluster == 0:
            return 0
        if boot.clusters_per_mft_record > 0:
            record_size = boot.clusters_per_mft_record * bytes_per_cluster
        else:
            record_size = 1 << -boot.clusters_per_mft_record

        record = self._read_at(boot.mft_cluster * bytes_per_cluster, record_size)
        header = MFTEntryHeader.from_bytes(record)
        if header.signature != MFTEntryHeader.FILE_SIGNATURE:
            return 0

        offset = header.first_attribute_offset
        while offset + AttributeHeader.SIZE <= record_size:
            attr = AttributeHeader.from_bytes(record[offset:])
            if attr.attr_type == ATTR_END or attr.length == 0 or offset + attr.length > record_size:
                break
            if attr.attr_type == ATTR_DATA and attr.non_resident:
                data = NonResidentAttributeHeader.from_bytes(record[offset:])
                return data.initialized_size // record_size
            offset += attr.length
        return 0