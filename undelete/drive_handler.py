"""Opening a drive, working out its filesystem and starting the matching recovery."""

from __future__ import annotations

import sys
from typing import Callable, TextIO

from .config import Config
from .enums import DriveType, FilesystemType, PartitionType
from .fat32_recovery import FAT32Recovery
from .ntfs_recovery import NTFSRecovery
from .sector_reader import FileSectorReader, SectorReader

MBR_SIGNATURE_OFFSET = 0x1FE
GPT_SIGNATURE_OFFSET = 0x00
GPT_SIGNATURE = "EFI PART".encode("utf-16-le")
DEVICE_PREFIX = "\\\\.\\"

FILESYSTEMS = {
    "FAT32": FilesystemType.FAT32_TYPE,
    "NTFS": FilesystemType.NTFS_TYPE,
}

ReaderFactory = Callable[[str], SectorReader]


def determine_drive_type(drive_path: str) -> DriveType:
    """Whether a drive path names a logical volume, a physical disk, or neither."""
    upper = drive_path.upper()
    if len(drive_path) == 1 and drive_path.isdigit():
        return DriveType.PHYSICAL_TYPE
    if "PHYSICALDRIVE" in upper and upper[-1].isdigit():
        return DriveType.PHYSICAL_TYPE
    if (len(upper) == 1 and upper.isalpha()) or (
        len(upper) == 2 and upper[0].isalpha() and upper[1] == ":"
    ):
        return DriveType.LOGICAL_TYPE
    return DriveType.UNKNOWN_TYPE


def _logical_device_path(drive_path: str) -> str:
    upper = drive_path.upper()
    return DEVICE_PREFIX + upper + (":" if len(upper) == 1 else "")


def is_gpt(buffer) -> bool:
    """Whether a sector starts with the GPT signature."""
    start = GPT_SIGNATURE_OFFSET
    return bytes(buffer[start : start + len(GPT_SIGNATURE)]) == GPT_SIGNATURE


def is_mbr(buffer) -> bool:
    """Whether a sector carries the 0x55 0xAA boot signature."""
    if len(buffer) < MBR_SIGNATURE_OFFSET + 2:
        return False
    return buffer[MBR_SIGNATURE_OFFSET] == 0x55 and buffer[MBR_SIGNATURE_OFFSET + 1] == 0xAA


class DriveHandler:
    """Opens the configured drive and hands it to the FAT32 or NTFS recovery."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        reader_factory: ReaderFactory | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self._factory = reader_factory if reader_factory is not None else FileSectorReader
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr
        self._reader: SectorReader | None = None
        self.partition_type = PartitionType.UNKNOWN_TYPE
        self.fs_type = FilesystemType.UNKNOWN_TYPE
        self.bytes_per_sector = 0
        try:
            self.drive_type = determine_drive_type(self.config.drive_path)
            if self.drive_type == DriveType.UNKNOWN_TYPE:
                raise RuntimeError("Unknown drive type")
            if self.drive_type == DriveType.PHYSICAL_TYPE:
                raise RuntimeError("Physical drive recovery not implemented")
            self.config.drive_path = _logical_device_path(self.config.drive_path)
            self._open_reader()
            self.bytes_per_sector = self._reader.bytes_per_sector()
            if not self.bytes_per_sector:
                raise RuntimeError("Invalid bytes per sector")
            self.fs_type = FILESYSTEMS.get(
                self._reader.filesystem_type(), FilesystemType.UNKNOWN_TYPE
            )
        except Exception as exc:
            print(f"DriveHandler Constructor exception: {exc}", file=self._err)
            self.close()
            raise

    def __enter__(self) -> DriveHandler:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def _err(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def _open_reader(self) -> None:
        try:
            reader = self._factory(self.config.drive_path)
        except PermissionError as exc:
            raise RuntimeError("Administrator privileges required") from exc
        except OSError as exc:
            raise RuntimeError("Failed to initialize drive reader") from exc
        if reader is None:
            raise RuntimeError("Invalid sector reader")
        self._reader = reader

    def close(self) -> None:
        """Close the drive if this handler still holds it."""
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def recover_drive(self) -> None:
        """Run the recovery that matches the drive's filesystem."""
        if self._reader is None:
            raise RuntimeError("Drive not initialized")
        if self.fs_type == FilesystemType.FAT32_TYPE:
            recovery_class = FAT32Recovery
        elif self.fs_type == FilesystemType.NTFS_TYPE:
            recovery_class = NTFSRecovery
        else:
            raise RuntimeError("Unsupported filesystem type")
        reader, self._reader = self._reader, None
        with recovery_class(
            self.drive_type,
            reader,
            self.config,
            stdin=self._stdin,
            stdout=self._stdout,
            stderr=self._stderr,
        ) as recovery:
            recovery.start_recovery()