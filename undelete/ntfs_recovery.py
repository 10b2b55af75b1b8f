"""Finding and recovering deleted files on an NTFS volume."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

from .config import Config
from .enums import DriveType
from .ntfs_structs import (
    ATTR_DATA,
    ATTR_END,
    ATTR_FILE_NAME,
    AttributeHeader,
    FileNameAttribute,
    MFTEntryHeader,
    NonResidentAttributeHeader,
    NTFSBootSector,
    NTFSFileInfo,
    NTFSRecoveryStatus,
    ResidentAttributeHeader,
)
from .sector_reader import SectorReader
from .utils import Utils

_MAX_NAME_LENGTH = 255

_TOOL_HEADER = r"""

 ***********************************************************************
 *  _   _ _____ _____ ____    ____                                     *
 * | \ | |_   _|  ___/ ___|  |  _ \ ___  ___ _____   _____ _ __ _   _  *
 * |  \| | | | | |_  \___ \  | |_) / _ \/ __/ _ \ \ / / _ \ '__| | | | *
 * | |\  | | | |  _|  ___) | |  _ <  __/ (_| (_) \ V /  __/ |  | |_| | *
 * |_| \_| |_| |_|   |____/  |_| \_\___|\___\___/ \_/ \___|_|   \__, | *
 *                                                              |___/  *
 ***********************************************************************

"""


def parse_data_runs(run_list, max_cluster: int) -> list[tuple[int, int]]:
    """Decode an NTFS run list into (starting cluster, length) pairs.

    Decoding stops at the terminating zero byte, at a run without a length,
    at a truncated run, or at a run whose cluster falls outside the volume.
    """
    data = bytes(run_list)
    runs: list[tuple[int, int]] = []
    pos = 0
    lcn = 0
    while pos < len(data) and data[pos]:
        header = data[pos]
        pos += 1
        length_size = header & 0x0F
        offset_size = (header >> 4) & 0x0F
        if length_size == 0:
            break
        if pos + length_size + offset_size > len(data):
            break
        length = int.from_bytes(data[pos : pos + length_size], "little")
        pos += length_size
        offset = 0
        if offset_size:
            offset = int.from_bytes(data[pos : pos + offset_size], "little", signed=True)
            pos += offset_size
        lcn += offset
        if lcn < 0 or lcn > max_cluster:
            break
        runs.append((lcn, length))
    return runs


class NTFSRecovery:
    """Scans the MFT of an NTFS volume for deleted files and recovers them."""

    def __init__(
        self,
        drive_type: DriveType,
        reader: SectorReader | None,
        config: Config | None = None,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        if reader is None:
            raise ValueError("Invalid sector reader")
        self.drive_type = drive_type
        self.config = config if config is not None else Config()
        self._stdout = stdout
        self._stderr = stderr
        self.utils = Utils(self.config, stdin=stdin, stdout=stdout, stderr=stderr)
        self.recovery_list: list[NTFSFileInfo] = []
        self._file_id = 1
        self._reader = reader
        try:
            print(_TOOL_HEADER, end="", file=self._out)
            self.utils.ensure_output_directory()
            self._read_boot_sector(0)
        except BaseException:
            reader.close()
            raise

    def __enter__(self) -> NTFSRecovery:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def _out(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def _err(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def close(self) -> None:
        """Close the log file and the sector reader."""
        self.utils.close_log_file()
        self._reader.close()

    # ---------------------------------------------------------------- geometry

    def _read(self, sector: int, size: int) -> bytes | None:
        try:
            return self._reader.read_sector(sector, size)
        except (OSError, ValueError):
            return None

    def _read_boot_sector(self, sector: int) -> None:
        reader_sector_size = self._reader.bytes_per_sector()
        if not reader_sector_size:
            raise RuntimeError("Invalid bytes per sector")
        data = self._read(sector, reader_sector_size)
        if data is None:
            raise RuntimeError("Failed to read NTFS boot sector")
        boot = NTFSBootSector.from_bytes(data.ljust(NTFSBootSector.SIZE, b"\x00"))
        if boot.oem_id[:4] != b"NTFS":
            raise ValueError("Not a valid NTFS volume")
        if boot.bytes_per_sector == 0 or boot.sectors_per_cluster == 0:
            raise ValueError("Not a valid NTFS volume")

        self.boot_sector = boot
        self.bytes_per_sector = max(reader_sector_size, boot.bytes_per_sector)
        self.bytes_per_cluster = boot.bytes_per_sector * boot.sectors_per_cluster
        if boot.clusters_per_mft_record > 0:
            self.mft_record_size = boot.clusters_per_mft_record * self.bytes_per_cluster
        else:
            self.mft_record_size = 1 << -boot.clusters_per_mft_record
        self.mft_offset = boot.mft_cluster * self.bytes_per_cluster

    def sectors_per_mft_record(self) -> int:
        """Number of sectors one MFT record spans."""
        return -(-self.mft_record_size // self.boot_sector.bytes_per_sector)

    def cluster_to_sector(self, cluster: int) -> int:
        """First sector of a cluster."""
        return cluster * self.boot_sector.sectors_per_cluster

    def validate_file_info(self, file_info: NTFSFileInfo) -> bool:
        """Whether a found record holds enough to recover the file."""
        if file_info.file_name and file_info.file_size == 0:
            print(
                f'[-] File "{file_info.file_name}" has invalid size: '
                f"{file_info.file_size} bytes.",
                file=self._err,
            )
            return False
        if not file_info.file_name or file_info.file_size == 0:
            return False
        if file_info.non_resident and (file_info.cluster == 0 or file_info.run_length == 0):
            return False
        if not file_info.non_resident and not file_info.data:
            return False
        return True

    # --------------------------------------------------------------- file scan

    def scan_for_deleted_files(self) -> None:
        """Walk the MFT and list the deleted files it still describes."""
        self.utils.print_header("File Search:")
        if not self.utils.open_log_file() and not self.utils.confirm_proceed_without_log_file():
            print("Exiting...", file=self._out)
            raise SystemExit(1)
        self.scan_mft()
        self.utils.close_log_file()
        self.utils.print_footer()

    def scan_mft(self) -> None:
        """Read every MFT record and collect the deleted files."""
        boot = self.boot_sector
        mft_sector = self.cluster_to_sector(boot.mft_cluster)
        if mft_sector >= boot.total_sectors:
            print(
                f"Error: Calculated mftSector ({mft_sector}) out of bounds "
                f"(total sectors: {boot.total_sectors})",
                file=self._err,
            )
            return
        sectors_per_record = self.sectors_per_mft_record()
        for index in range(self._reader.total_mft_records()):
            record = self._read_mft_record(mft_sector + index * sectors_per_record, sectors_per_record)
            if record is not None:
                self.process_mft_record(record)

    def _read_mft_record(self, first_sector: int, sector_count: int) -> bytes | None:
        size = self.boot_sector.bytes_per_sector
        chunks = []
        for sector in range(first_sector, first_sector + sector_count):
            data = self._read(sector, size)
            if data is None:
                print(f"Failed to read MFT sector {sector}", file=self._err)
                return None
            chunks.append(data)
        return b"".join(chunks)

    def process_mft_record(self, record) -> NTFSFileInfo | None:
        """Parse one MFT record; return and list the file if it is a recoverable deleted one."""
        record = bytes(record)
        try:
            header = MFTEntryHeader.from_bytes(record)
            if header.signature != MFTEntryHeader.FILE_SIGNATURE:
                return None
            if header.flags & MFTEntryHeader.FLAG_IN_USE:
                return None
            info = NTFSFileInfo()
            has_name, has_data = self._process_attributes(
                record, header.first_attribute_offset, info
            )
        except ValueError as exc:
            print(f"\nException while processing record: {exc}", file=self._err)
            return None
        if not has_name and not has_data:
            return None
        if not self.validate_file_info(info):
            return None
        self.recovery_list.append(info)
        self.utils.log_file_info(info.file_id, info.file_name, info.file_size)
        self._file_id = (self._file_id + 1) & 0xFFFF
        return info

    def _process_attributes(
        self, record: bytes, offset: int, info: NTFSFileInfo
    ) -> tuple[bool, bool]:
        has_name = has_data = False
        record_size = self.mft_record_size
        while offset < record_size and offset + AttributeHeader.SIZE <= len(record):
            attr = AttributeHeader.from_bytes(record[offset:])
            if attr.attr_type == ATTR_END:
                break
            if attr.length == 0 or offset + attr.length > record_size:
                break
            chunk = record[offset : offset + attr.length]
            if attr.attr_type == ATTR_FILE_NAME:
                self._process_file_name(attr, chunk, info)
                has_name = True
            elif attr.attr_type == ATTR_DATA:
                self._process_data(attr, chunk, info)
                has_data = True
            offset += attr.length
        return has_name, has_data

    def _process_file_name(self, attr: AttributeHeader, chunk: bytes, info: NTFSFileInfo) -> None:
        if attr.non_resident:
            return
        resident = ResidentAttributeHeader.from_bytes(chunk)
        name_attr = FileNameAttribute.from_bytes(chunk[resident.content_offset :])
        if name_attr.name_length > _MAX_NAME_LENGTH:
            return
        info.file_name = name_attr.name
        info.file_id = self._file_id

    def _process_data(self, attr: AttributeHeader, chunk: bytes, info: NTFSFileInfo) -> None:
        boot = self.boot_sector
        if attr.non_resident:
            header = NonResidentAttributeHeader.from_bytes(chunk)
            info.file_size = header.real_size
            runs = parse_data_runs(
                chunk[header.data_run_offset :], boot.total_sectors // boot.sectors_per_cluster
            )
            if runs:
                info.cluster, info.run_length = runs[-1]
                info.non_resident = True
        else:
            header = ResidentAttributeHeader.from_bytes(chunk)
            start = header.content_offset
            info.file_size = header.content_length
            info.non_resident = False
            info.data = bytes(chunk[start : start + header.content_length])

    # ---------------------------------------------------------------- recovery

    def recover_partition(self) -> None:
        """Let the user choose among the found files and process each."""
        self.utils.print_header("File Recovery and Analysis:")
        if not self.recovery_list:
            if self.config.recover or self.config.analyze:
                print("[-] No deleted files found", file=self._err)
            else:
                print(
                    "[!] Recovery or analysis is disabled. "
                    "Use --recover and/or --analyze to proceed.",
                    file=self._out,
                )
            return
        if not self.config.target_cluster and not self.config.target_file_size:
            selected = self.utils.select_files_to_recover(self.recovery_list)
            self.utils.print_item_divider()
        else:
            selected = list(self.recovery_list)
        for info in selected:
            self.process_file_for_recovery(info)

    def process_file_for_recovery(self, file_info: NTFSFileInfo) -> None:
        """Recover one file, honouring any target filter."""
        config = self.config
        if file_info.file_size <= 0 or (
            config.target_cluster
            and config.target_file_size
            and (
                file_info.cluster != config.target_cluster
                or file_info.file_size != config.target_file_size
            )
        ):
            return
        output_path = self.utils.get_output_path(file_info.file_name, config.output_folder)
        expected_size = file_info.file_size

        status = NTFSRecoveryStatus()
        bpc = self.bytes_per_cluster
        status.expected_clusters = (expected_size + bpc - 1) // bpc

        print(f'[*] Current file: "{output_path.name}" ({expected_size} bytes)', file=self._out)
        if file_info.non_resident:
            chain = self.validate_cluster_chain(file_info)
            if config.recover:
                self.recover_non_resident_file(chain, status, output_path, expected_size)
        elif config.recover:
            self.recover_resident_file(file_info, output_path)
        self.utils.print_item_divider()

    def validate_cluster_chain(self, file_info: NTFSFileInfo) -> list[int]:
        """The clusters of the file's run, in order."""
        if self.config.analyze:
            print(
                "[!] Corruption analysis is not yet implemented for NTFS volumes.",
                file=self._out,
            )
        return list(range(file_info.cluster, file_info.cluster + file_info.run_length))

    def _create_output(self, output_path: Path):
        try:
            return open(output_path, "wb")
        except OSError as exc:
            raise RuntimeError("[-] Failed to create output file.") from exc

    def recover_resident_file(self, file_info: NTFSFileInfo, output_path) -> None:
        """Write a file whose data lives inside its MFT record."""
        print("[*] Recovering file...", file=self._out)
        output_path = Path(output_path)
        with self._create_output(output_path) as output:
            output.write(file_info.data)
        self._show_recovery_result(output_path)

    def recover_non_resident_file(
        self,
        cluster_chain: list[int],
        status: NTFSRecoveryStatus,
        output_path,
        expected_size: int,
    ) -> None:
        """Write the chain's data, cut to `expected_size`, to `output_path`."""
        print("[*] Recovering file...", file=self._out)
        output_path = Path(output_path)
        bps = self.boot_sector.bytes_per_sector
        spc = self.boot_sector.sectors_per_cluster
        with self._create_output(output_path) as output:
            for cluster in cluster_chain:
                first_sector = self.cluster_to_sector(cluster)
                for sector in range(first_sector, first_sector + spc):
                    data = self._read(sector, bps)
                    if data is None:
                        continue
                    to_write = min(bps, expected_size - status.recovered_bytes)
                    output.write(data[:to_write])
                    status.recovered_bytes += to_write
                    self.utils.show_progress(status.recovered_bytes, expected_size)
                    if status.recovered_bytes >= expected_size:
                        break
                status.recovered_clusters += 1
                if status.recovered_bytes >= expected_size:
                    break
        print(file=self._out)
        self._show_recovery_result(output_path)

    def _show_recovery_result(self, output_path: Path) -> None:
        absolute = output_path.absolute()
        if absolute.exists():
            print(f'  [+] File saved to "{absolute}"', file=self._out)
        else:
            print("  [-] Failed to save file", file=self._out)

    # ------------------------------------------------------------- entry point

    def start_recovery(self) -> None:
        """Scan the MFT for deleted files, then recover them."""
        if self.drive_type != DriveType.LOGICAL_TYPE:
            raise RuntimeError("Unknown drive type.")
        self.scan_for_deleted_files()
        self.recover_partition()