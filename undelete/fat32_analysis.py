"""Name decoding, signature sniffing and corruption heuristics for FAT32 files."""

from __future__ import annotations

from .fat32_structs import DirectoryEntry, FAT32RecoveryStatus, LFNEntry

MINIMUM_CLUSTERS_FOR_ANALYSIS = 10
LARGE_GAP_THRESHOLD = 1000
SUSPICIOUS_PATTERN_THRESHOLD = 0.1
SEVERE_PATTERN_THRESHOLD = 0.25

_INVALID_NAME_CHARS = frozenset('<>:"/\\|?*')

# (prefix length compared, hex prefix, extension), checked in order.
_SIGNATURES = (
    (6, "ffd8ff", "jpg"),
    (8, "89504e47", "png"),
    (8, "47494638", "gif"),
    (3, "383761", "gif"),
    (4, "424d", "bmp"),
    (8, "49492a00", "tif"),
    (8, "4d4d002a", "tif"),
    (8, "52494646", "webp"),
    (8, "25504446", "pdf"),
    (8, "504b0304", "zip"),
    (8, "d0cf11e0", "doc"),
    (8, "7b5c7274", "rtf"),
    (8, "52494646", "wav"),
    (8, "494433", "mp3"),
    (8, "66747970", "mp4"),
    (8, "52494646", "avi"),
    (4, "4f676753", "ogg"),
    (4, "4d5a", "exe"),
    (8, "7f454c46", "elf"),
    (8, "504b0304", "zip"),
    (6, "526172", "rar"),
    (8, "1f8b0808", "gz"),
    (6, "425a68", "bz2"),
    (8, "377abcaf", "7z"),
    (8, "53514c69", "sqlite"),
    (8, "3c3f786d", "xml"),
    (8, "7b0d0a20", "json"),
    (8, "3c21444f", "html"),
    (8, "4f54544f", "otf"),
    (8, "00010000", "ttf"),
)


def get_long_filename(entry: LFNEntry) -> str:
    """The name fragment held by one long-filename entry, padding removed."""
    units = [*entry.name1, *entry.name2, *entry.name3]
    kept = b"".join(u.to_bytes(2, "little") for u in units if u >= 32 and u != 0xFFFF)
    return kept.decode("utf-16-le", errors="surrogatepass")


def _c_string(raw: bytes) -> bytes:
    return raw.split(b"\x00", 1)[0].rstrip(b" ")


def get_short_filename(entry: DirectoryEntry, is_deleted: bool = False) -> str:
    """The 8.3 name of an entry; a deleted entry's first character becomes '_'."""
    base = entry.name[:8]
    if is_deleted:
        base = b"_" + base[1:]
    name = _c_string(base).decode("latin-1")
    ext = _c_string(entry.name[8:11]).decode("latin-1")
    return f"{name}.{ext}" if ext else name


def compare_folder_names(filename1: str, filename2: str) -> bool:
    """Case-insensitive name comparison ignoring padding and trailing spaces."""
    trimmed = filename1.split("\x00", 1)[0].replace("\uffff", "")
    return trimmed.upper().rstrip(" ") == filename2.upper().rstrip(" ")


def get_file_signature(data: bytes) -> str:
    """Lower-case hex of the first four bytes."""
    return bytes(data[:4]).hex()


def guess_file_extension(signature: str) -> str:
    """Extension matching a hex signature, or "bin" when none does."""
    for length, prefix, extension in _SIGNATURES:
        if signature[:length] == prefix:
            return extension
    return "bin"


def analyze_cluster_pattern(clusters: list[int], status: FAT32RecoveryStatus) -> FAT32RecoveryStatus:
    """Count repeats, backward jumps and large gaps in a chain and score them.

    Updates and returns `status`; chains shorter than the analysis minimum are
    left unjudged.
    """
    if len(clusters) < MINIMUM_CLUSTERS_FOR_ANALYSIS:
        return status

    total_anomalies = 0
    for previous, current in zip(clusters, clusters[1:]):
        if current == previous:
            status.repeated_clusters += 1
            total_anomalies += 1
            continue
        if current < previous:
            status.back_jumps += 1
            total_anomalies += 1
            continue
        gap = current - previous - 1
        if gap >= LARGE_GAP_THRESHOLD:
            status.large_gaps += 1
            total_anomalies += 1

    total_pairs = len(clusters) - 1.0
    status.fragmentation = min(1.0, total_anomalies / total_pairs)
    status.has_large_gaps = status.large_gaps > total_pairs * SUSPICIOUS_PATTERN_THRESHOLD
    status.has_back_jumps = status.back_jumps > total_pairs * SUSPICIOUS_PATTERN_THRESHOLD
    status.has_fragmented_clusters = status.fragmentation > SEVERE_PATTERN_THRESHOLD
    status.has_repeated_clusters = status.repeated_clusters > 0

    if (
        status.has_back_jumps
        or status.has_fragmented_clusters
        or status.has_large_gaps
        or status.has_repeated_clusters
    ):
        status.is_corrupted = True
    return status


def is_file_name_corrupted(filename: str) -> bool:
    """Whether a name is empty, holds forbidden or control characters, or is mostly non-ASCII."""
    if not filename:
        return True
    if any(c in _INVALID_NAME_CHARS for c in filename):
        return True
    control = sum(1 for c in filename if ord(c) < 32)
    unusual = sum(1 for c in filename if ord(c) > 127)
    return control > 0 or unusual > len(filename) // 2