"""Finding and recovering deleted files on a FAT32 volume."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

from .cluster_history import ClusterHistory, OverwriteAnalysis
from .config import Config
from .enums import DriveType
from .fat32_analysis import (
    analyze_cluster_pattern,
    get_file_signature,
    get_long_filename,
    get_short_filename,
    guess_file_extension,
    is_file_name_corrupted,
)
from .fat32_structs import (
    BootSector,
    DirectoryEntry,
    FAT32FileInfo,
    FAT32RecoveryStatus,
    LFNEntry,
)
from .sector_reader import SectorReader
from .utils import Utils

MIN_DATA_CLUSTER = 2
BAD_CLUSTER = 0x0FFFFFF7
MAX_VALID_CLUSTER = 0x0FFFFFF6
END_OF_CHAIN = 0xFFFFFFFF
BAD_CHAIN = 0xFFFFFFF7
_FAT_ENTRY_MASK = 0x0FFFFFFF
_FAT_RESERVED_START = 0x0FFFFFF8
_IN_USE_MARKER = 0xF8FFFFFF
_UINT32 = 0xFFFFFFFF

_DELETED_MARK = 0xE5
_ATTR_LFN = 0x0F
_ATTR_DIRECTORY = 0x10

_TOOL_HEADER = r"""

 *************************************************************************
 *  _____ _  _____ _________    ____                                     *
 * |  ___/ \|_   _|___ /___ \  |  _ \ ___  ___ _____   _____ _ __ _   _  *
 * | |_ / _ \ | |   |_ \ __) | | |_) / _ \/ __/ _ \ \ / / _ \ '__| | | | *
 * |  _/ ___ \| |  ___) / __/  |  _ <  __/ (_| (_) \ V /  __/ |  | |_| | *
 * |_|/_/   \_\_| |____/_____| |_| \_\___|\___\___/ \_/ \___|_|   \__, | *
 *                                                                |___/  *
 *************************************************************************

"""


def _is_extension_valid(extension: str) -> bool:
    return all(c.isascii() and c.isalnum() for c in extension)


class FAT32Recovery:
    """Scans a FAT32 volume for deleted files, analyses and recovers them."""

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
        self.cluster_history = ClusterHistory()
        self.recovery_list: list[FAT32FileInfo] = []
        self._next_file_id = 0
        self._file_id = 1
        self._reader = reader
        try:
            print(_TOOL_HEADER, end="", file=self._out)
            self.utils.ensure_output_directory()
            self._read_boot_sector(0)
        except BaseException:
            reader.close()
            raise

    def __enter__(self) -> FAT32Recovery:
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
        bytes_per_sector = self._reader.bytes_per_sector()
        if not bytes_per_sector:
            raise RuntimeError("Invalid bytes per sector")
        data = self._read(sector, bytes_per_sector)
        if data is None:
            raise RuntimeError("Failed to read FAT32 boot sector")
        boot = BootSector.from_bytes(data.ljust(BootSector.SIZE, b"\x00"))
        if boot.file_system_type[:5] != b"FAT32":
            raise ValueError("Not a valid FAT32 volume")
        if boot.bytes_per_sector == 0 or boot.sectors_per_cluster == 0:
            raise ValueError("Not a valid FAT32 volume")

        self.boot_sector = boot
        self.fat_start_sector = boot.reserved_sector_count
        fat_sectors = boot.num_fats * boot.fat_size32
        self.data_start_sector = self.fat_start_sector + fat_sectors
        self.root_dir_cluster = boot.root_cluster

        root_dir_sectors = (
            boot.root_entry_count * 32 + boot.bytes_per_sector - 1
        ) // boot.bytes_per_sector
        total_sectors = boot.total_sectors32 or boot.total_sectors16
        data_sectors = (
            total_sectors - (boot.reserved_sector_count + fat_sectors + root_dir_sectors)
        ) & _UINT32
        self.max_cluster_count = data_sectors // boot.sectors_per_cluster

    @property
    def _bytes_per_sector(self) -> int:
        return self.boot_sector.bytes_per_sector

    @property
    def _bytes_per_cluster(self) -> int:
        return self.boot_sector.sectors_per_cluster * self.boot_sector.bytes_per_sector

    def is_valid_cluster(self, cluster: int) -> bool:
        """Whether a cluster number lies in the volume's data area."""
        if cluster < MIN_DATA_CLUSTER or cluster > self.max_cluster_count:
            return False
        return cluster < BAD_CLUSTER

    def sanitize_cluster(self, cluster: int) -> int:
        """The cluster number if plausible, otherwise 0."""
        if cluster < MIN_DATA_CLUSTER or cluster >= BAD_CLUSTER:
            return 0
        if cluster > self.max_cluster_count:
            print(
                f"Warning: Cluster number exceeds maximum count: 0x{cluster:x}"
                f" (max: {self.max_cluster_count:x})",
                file=self._err,
            )
            return 0
        return cluster

    def cluster_to_sector(self, cluster: int) -> int:
        """First sector of a data cluster."""
        return self.data_start_sector + (cluster - 2) * self.boot_sector.sectors_per_cluster

    def get_next_cluster(self, cluster: int) -> int:
        """The FAT entry for a cluster; END_OF_CHAIN or BAD_CHAIN for markers."""
        fat_offset = cluster * 4
        fat_sector = self.fat_start_sector + fat_offset // self._bytes_per_sector
        entry_offset = fat_offset % self._bytes_per_sector
        data = self._read(fat_sector, self._bytes_per_sector)
        if data is None or entry_offset + 4 > len(data):
            print(f"Error: Failed to read FAT sector {fat_sector}", file=self._err)
            return END_OF_CHAIN
        next_cluster = int.from_bytes(data[entry_offset : entry_offset + 4], "little")
        next_cluster &= _FAT_ENTRY_MASK
        if next_cluster >= _FAT_RESERVED_START:
            return END_OF_CHAIN if next_cluster == _FAT_ENTRY_MASK else BAD_CHAIN
        return next_cluster

    # --------------------------------------------------------------- file scan

    def scan_for_deleted_files(self) -> None:
        """Walk the directory tree from the root and list deleted files."""
        self.utils.print_header("File Search:")
        if not self.utils.open_log_file() and not self.utils.confirm_proceed_without_log_file():
            print("Exiting...", file=self._out)
            raise SystemExit(1)
        self.scan_directory(self.root_dir_cluster)
        self.utils.close_log_file()
        self.utils.print_footer()

    def scan_directory(self, cluster: int) -> None:
        """Scan a directory starting at `cluster`, descending into subdirectories."""
        self._scan_directory(cluster, set())

    def _scan_directory(self, cluster: int, visited: set[int]) -> None:
        if not self.is_valid_cluster(cluster):
            print(f"Warning: Invalid cluster detected: 0x{cluster:x}", file=self._err)
            return
        current = cluster
        while current not in visited:
            visited.add(current)
            first_sector = self.cluster_to_sector(current)
            for sector in range(first_sector, first_sector + self.boot_sector.sectors_per_cluster):
                data = self._read(sector, self._bytes_per_sector)
                if data is None:
                    print(f"Warning: Failed to read sector {sector}", file=self._err)
                    continue
                self._process_entries_in_sector(data, visited)
            next_cluster = self.get_next_cluster(current)
            if not self.is_valid_cluster(next_cluster):
                return
            current = next_cluster

    def _process_entries_in_sector(self, data: bytes, visited: set[int]) -> None:
        long_filename = ""
        size = DirectoryEntry.SIZE
        for start in range(0, len(data) - size + 1, size):
            raw = data[start : start + size]
            entry = DirectoryEntry.from_bytes(raw)
            if entry.name[0] == 0x00:
                return
            if entry.attr == _ATTR_LFN:
                long_filename = get_long_filename(LFNEntry.from_bytes(raw)) + long_filename
                continue
            if long_filename:
                filename, long_filename = long_filename, ""
            else:
                filename = get_short_filename(entry, entry.name[0] == _DELETED_MARK)
            self._process_directory_entry(entry, filename, visited)

    def _process_directory_entry(
        self, entry: DirectoryEntry, filename: str, visited: set[int]
    ) -> None:
        is_deleted = entry.name[0] == _DELETED_MARK
        is_directory = bool(entry.attr & _ATTR_DIRECTORY) and entry.name[0] != ord(".")
        cluster = self.sanitize_cluster(entry.first_cluster())
        if cluster == 0:
            return
        if is_directory:
            self._scan_directory(cluster, visited)
        elif is_deleted:
            info = self.parse_file_info(filename, cluster, entry.file_size)
            if self.config.recover or self.config.analyze:
                self.recovery_list.append(info)
            self.utils.log_file_info(info.file_id, info.file_name, info.file_size)

    def parse_file_info(self, full_name: str, start_cluster: int, expected_size: int) -> FAT32FileInfo:
        """Split a found name into stem and extension, predicting a bad extension."""
        info = FAT32FileInfo(
            file_id=self._file_id,
            full_name=full_name.replace("\x00", ""),
            file_size=expected_size,
            cluster=start_cluster,
        )
        dot = full_name.rfind(".")
        if dot > 0:
            info.file_name = full_name[:dot]
            info.extension = full_name[dot + 1 :]
            if not _is_extension_valid(info.extension):
                print(
                    f"  [-] Extension is invalid ({info.extension}) file may be corrupted",
                    file=self._err,
                )
                info.extension = self.predict_extension(start_cluster)
                info.is_extension_predicted = True
                info.full_name = f"{info.file_name}.{info.extension}"
        else:
            print("  [-] Extension is missing, file may be corrupted", file=self._err)
            info.extension = self.predict_extension(start_cluster)
            info.is_extension_predicted = True
            info.file_name = full_name
            info.full_name = f"{full_name}.{info.extension}"
        self._file_id = (self._file_id + 1) & 0xFFFF
        return info

    def predict_extension(self, cluster: int) -> str:
        """Guess an extension from the signature in the cluster's first bytes."""
        print("  [*] Predicting extension...", file=self._out)
        data = self._read(self.cluster_to_sector(cluster), self._bytes_per_sector)
        if data is None:
            data = bytes(self._bytes_per_sector)
        extension = guess_file_extension(get_file_signature(data[:8]))
        if extension == "bin":
            print("  [-] Couldn't predict the extension. Defaulting to .bin", file=self._out)
        else:
            print(f"  [*] Predicted extension: {extension}", file=self._out)
        return extension

    # ----------------------------------------------------- corruption analysis

    def is_cluster_in_use(self, cluster: int) -> bool:
        """Whether the FAT marks the cluster as allocated."""
        value = self.get_next_cluster(cluster)
        return value != 0 and value != _IN_USE_MARKER

    def analyze_cluster_overwrites(self, start_cluster: int, expected_size: int) -> OverwriteAnalysis:
        """Record this file's clusters and report those shared with earlier deleted files."""
        analysis = OverwriteAnalysis()
        bytes_per_cluster = self._bytes_per_cluster
        expected_clusters = (expected_size + bytes_per_cluster - 1) // bytes_per_cluster

        current = start_cluster
        offset = 0
        while offset < expected_size and MIN_DATA_CLUSTER <= current < _FAT_RESERVED_START:
            overlaps = self.cluster_history.find_overlapping_usage(current)
            if overlaps:
                analysis.has_overwrite = True
                analysis.overwritten_clusters.append(current)
                analysis.overwritten_by.setdefault(current, []).extend(
                    second.file_id for _, second in overlaps
                )
            self.cluster_history.record_cluster_usage(current, self._next_file_id, offset)
            offset += bytes_per_cluster
            current = self.get_next_cluster(current)

        if analysis.overwritten_clusters:
            analysis.overwrite_percentage = (
                len(analysis.overwritten_clusters) / expected_clusters * 100.0
            )
        self._next_file_id += 1
        return analysis

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

    def process_file_for_recovery(self, file_info: FAT32FileInfo) -> None:
        """Analyse and/or recover one file, honouring any target filter."""
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
        output_path = self.utils.get_output_path(file_info.full_name, config.output_folder)
        if file_info.file_size > _UINT32:
            raise OverflowError("File size exceeds 32-bit limit!")
        expected_size = file_info.file_size

        status = FAT32RecoveryStatus()
        bytes_per_cluster = self._bytes_per_cluster
        status.expected_clusters = (expected_size + bytes_per_cluster - 1) // bytes_per_cluster

        print(
            f'[*] Current file: "{output_path.name}" cluster {file_info.cluster}'
            f" ({expected_size} bytes)",
            file=self._out,
        )
        chain = self.validate_cluster_chain(
            status, file_info.cluster, expected_size, output_path, False
        )
        if config.recover:
            self.recover_file(chain, status, output_path, expected_size)
        self.utils.print_item_divider()

    def validate_cluster_chain(
        self,
        status: FAT32RecoveryStatus,
        start_cluster: int,
        expected_size: int,
        output_path,
        is_extension_predicted: bool,
    ) -> list[int]:
        """Follow the file's clusters and, when analysing, record signs of corruption."""
        analyze = self.config.analyze
        if analyze:
            print("[*] Analyzing file clusters...", file=self._out)

        chain: list[int] = []
        used: set[int] = set()
        current = start_cluster
        while (
            len(chain) < status.expected_clusters
            and MIN_DATA_CLUSTER <= current < _FAT_RESERVED_START
        ):
            chain.append(current)
            if analyze:
                if current in used:
                    status.is_corrupted = True
                    status.has_overwritten_clusters = True
                    status.problematic_clusters.append(current)
                used.add(current)
                if self.is_cluster_in_use(current):
                    status.is_corrupted = True
                    status.has_overwritten_clusters = True
                    status.problematic_clusters.append(current)

            next_cluster = self.get_next_cluster(current)
            if (
                next_cluster == current
                or next_cluster < MIN_DATA_CLUSTER
                or next_cluster >= _FAT_RESERVED_START
            ):
                next_cluster = current + 1
            current = next_cluster

        if analyze:
            overwrites = self.analyze_cluster_overwrites(start_cluster, expected_size)
            status.has_overwritten_clusters = overwrites.has_overwrite
            if status.has_overwritten_clusters:
                status.is_corrupted = True
            status.has_invalid_file_name = is_file_name_corrupted(Path(output_path).name)
            if not self.is_valid_cluster(start_cluster):
                status.is_corrupted = True
                print(f"  [-] Invalid starting cluster: 0x{start_cluster:x}", file=self._out)
            if is_extension_predicted:
                status.is_corrupted = True
                status.has_invalid_extension = True
            analyze_cluster_pattern(chain, status)
            self._show_analysis_result(status)
        return chain

    def recover_file(
        self,
        cluster_chain: list[int],
        status: FAT32RecoveryStatus,
        output_path,
        expected_size: int,
    ) -> None:
        """Write the chain's data, cut to `expected_size`, to `output_path`."""
        print("[*] Recovering file...", file=self._out)
        output_path = Path(output_path)
        bps = self._bytes_per_sector
        try:
            output = open(output_path, "wb")
        except OSError as exc:
            raise RuntimeError("[-] Failed to create output file.") from exc
        with output:
            for cluster in cluster_chain:
                first_sector = self.cluster_to_sector(cluster)
                for sector in range(first_sector, first_sector + self.boot_sector.sectors_per_cluster):
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
        self._show_recovery_result(status, output_path, expected_size)

    # ----------------------------------------------------------------- reports

    def _show_analysis_result(self, status: FAT32RecoveryStatus) -> None:
        out = self._out
        if not status.is_corrupted:
            print("  [+] No signs of corruption found ", file=out)
            return
        print("  [-] Warning: File appears to be corrupted", file=out)
        if status.has_invalid_file_name:
            print("  [-] Filename is corrupted or invalid", file=out)
        if status.has_invalid_extension:
            print(
                "  [-] File extension was either missing or contained invalid characters",
                file=out,
            )
        if status.has_overwritten_clusters:
            print("  [-] Some clusters may have been overwritten", file=out)
            clusters = "".join(f"0x{c:x} " for c in status.problematic_clusters)
            print(f"  [-] Problematic clusters: {clusters}", file=out)
        if status.has_fragmented_clusters:
            print("  [-] Some clusters are fragmented", file=out)
            print(f"      - Fragmentation score: {status.fragmentation:.2f}%", file=out)
        if status.has_repeated_clusters:
            print(f"  [-] Repeated clusters found: {status.repeated_clusters}", file=out)
        if status.has_back_jumps:
            print(f"  [-] Backward jumps detected: {status.back_jumps}", file=out)
        if status.has_large_gaps:
            print(f"  [-] Large gaps detected: {status.large_gaps}", file=out)

    def _show_recovery_result(
        self, status: FAT32RecoveryStatus, output_path: Path, expected_size: int
    ) -> None:
        out = self._out
        print(
            f"\n  [*] Clusters recovered: {status.recovered_clusters}"
            f" / {status.expected_clusters}",
            file=out,
        )
        print(f"  [*] Bytes recovered: {status.recovered_bytes} / {expected_size}", file=out)
        absolute = output_path.absolute()
        if absolute.exists():
            print(f'  [+] File saved to "{absolute}"', file=out)
        else:
            print("  [-] Failed to save file", file=out)

    # ------------------------------------------------------------- entry point

    def start_recovery(self) -> None:
        """Scan the volume for deleted files, then analyse and recover them."""
        if self.drive_type != DriveType.LOGICAL_TYPE:
            raise RuntimeError("Unknown drive type.")
        self.scan_for_deleted_files()
        self.recover_partition()