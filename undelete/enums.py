"""Kinds of drives, partition tables and filesystems the recovery tool knows."""

from enum import Enum


class DriveType(Enum):
    """How a drive is addressed."""

    UNKNOWN_TYPE = 0
    LOGICAL_TYPE = 1
    PHYSICAL_TYPE = 2


class PartitionType(Enum):
    """Partition table layout of a physical drive."""

    UNKNOWN_TYPE = 0
    MBR_TYPE = 1
    GPT_TYPE = 2


class FilesystemType(Enum):
    """Filesystem found on a volume."""

    UNKNOWN_TYPE = 0
    FAT32_TYPE = 1
    NTFS_TYPE = 2
    EXFAT_TYPE = 3
    EXT4_TYPE = 4