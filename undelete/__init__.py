"""Find, analyse and recover deleted files on FAT32 and NTFS volumes."""

__version__ = "0.1.0"