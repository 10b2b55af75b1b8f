import io
import struct

import pytest

from undelete.config import Config
from undelete.enums import DriveType
from undelete.fat32_recovery import BAD_CHAIN, END_OF_CHAIN, FAT32Recovery
from undelete.fat32_structs import BootSector, FAT32FileInfo, FAT32RecoveryStatus
from undelete.sector_reader import FileSectorReader

BPS = 512
SPC = 1
RESERVED = 32
NUM_FATS = 1
FAT_SIZE = 1
TOTAL = 97
ROOT = 2
DATA_START = RESERVED + NUM_FATS * FAT_SIZE

_BOOT = struct.Struct("<3s8sHBHBHHBHHHIIIHHIHH12sBBBI11s8s420sH")
_EOC = 0x0FFFFFFF


def boot_sector(fs_type=b"FAT32   "):
    return _BOOT.pack(
        b"\xebX\x90", b"MSDOS5.0", BPS, SPC, RESERVED, NUM_FATS, 0, 0, 0xF8, 0,
        63, 255, 0, TOTAL, FAT_SIZE, 0, 0, ROOT, 1, 6, bytes(12), 0x80, 0, 0x29,
        0x1234, b"NO NAME    ", fs_type, bytes(420), 0xAA55,
    )


def dir_entry(name11, attr, cluster, size):
    return struct.pack(
        "<11sBBBHHHHHHHI", name11, attr, 0, 0, 0, 0, 0, cluster >> 16, 0, 0, cluster & 0xFFFF, size
    )


def lfn_entry(order, chars):
    units = [ord(c) for c in chars] + [0]
    units += [0xFFFF] * (13 - len(units))
    return struct.pack(
        "<B5HBBB6HH2H", order, *units[:5], 0x0F, 0, 0, *units[5:11], 0, *units[11:13]
    )


def build_image(path, fs_type=b"FAT32   ", fat_overrides=None):
    image = bytearray(TOTAL * BPS)
    image[:BPS] = boot_sector(fs_type)

    fat = {0: 0x0FFFFFF8, 1: _EOC, ROOT: _EOC, 5: _EOC, 8: _EOC}
    fat.update(fat_overrides or {})
    for cluster, value in fat.items():
        offset = RESERVED * BPS + cluster * 4
        image[offset : offset + 4] = value.to_bytes(4, "little")

    def put_cluster(cluster, data):
        offset = (DATA_START + cluster - 2) * BPS
        image[offset : offset + len(data)] = data

    root = b"".join(
        [
            dir_entry(b"\xe5ELLO   TXT", 0x20, 3, 1000),
            dir_entry(b"KEEP    DAT", 0x20, 5, 10),
            dir_entry(b"\xe5OPNG      ", 0x20, 6, 100),
            lfn_entry(0x41, "report.pdf"),
            dir_entry(b"\xe5EPORT  PDF", 0x20, 7, 20),
            dir_entry(b"SUB        ", 0x10, 8, 0),
        ]
    )
    put_cluster(ROOT, root)
    put_cluster(3, b"A" * BPS)
    put_cluster(4, b"B" * BPS)
    put_cluster(5, b"keep me!!!")
    put_cluster(6, b"\x89PNG\r\n\x1a\n")
    put_cluster(7, b"%PDF-1.4")
    put_cluster(8, dir_entry(b"\xe5NNER   BIN", 0x20, 9, 5))
    put_cluster(9, b"hello")
    path.write_bytes(bytes(image))
    return path


@pytest.fixture
def image(tmp_path):
    return build_image(tmp_path / "fat32.img")


def make(image, tmp_path, stdin="", drive_type=DriveType.LOGICAL_TYPE, **options):
    config = Config(output_folder=str(tmp_path / "out"), **options)
    out, err = io.StringIO(), io.StringIO()
    recovery = FAT32Recovery(
        drive_type,
        FileSectorReader(image),
        config,
        stdin=io.StringIO(stdin),
        stdout=out,
        stderr=err,
    )
    return recovery, out, err


def recovered_files(tmp_path):
    return sorted(p.name for p in (tmp_path / "out").iterdir() if p.is_file())


def test_boot_sector_geometry(image, tmp_path):
    recovery, _, _ = make(image, tmp_path)
    with recovery:
        assert recovery.fat_start_sector == RESERVED
        assert recovery.data_start_sector == recovery.cluster_to_sector(2)
        assert recovery.cluster_to_sector(3) - recovery.cluster_to_sector(2) == SPC
        assert recovery.root_dir_cluster == ROOT
        assert recovery.max_cluster_count == 64
    assert (tmp_path / "out" / "Log").is_dir()


def test_rejects_non_fat32_volume(tmp_path):
    path = build_image(tmp_path / "fat16.img", fs_type=b"FAT16   ")
    reader = FileSectorReader(path)
    with pytest.raises(ValueError, match="Not a valid FAT32 volume"):
        FAT32Recovery(DriveType.LOGICAL_TYPE, reader, Config(output_folder=str(tmp_path / "o")),
                      stdout=io.StringIO(), stderr=io.StringIO())
    assert not reader.is_open()


def test_rejects_missing_reader(tmp_path):
    with pytest.raises(ValueError, match="Invalid sector reader"):
        FAT32Recovery(DriveType.LOGICAL_TYPE, None, Config(output_folder=str(tmp_path)))


def test_get_next_cluster_values(tmp_path):
    path = build_image(
        tmp_path / "img", fat_overrides={10: 11, 12: 0xF0000011, 13: 0x0FFFFFF8}
    )
    recovery, _, err = make(path, tmp_path)
    with recovery:
        assert recovery.get_next_cluster(ROOT) == END_OF_CHAIN
        assert recovery.get_next_cluster(10) == 11
        assert recovery.get_next_cluster(12) == 0x11
        assert recovery.get_next_cluster(13) == BAD_CHAIN
        assert recovery.get_next_cluster(3) == 0
        assert recovery.get_next_cluster(0x100000) == END_OF_CHAIN
    assert "Failed to read FAT sector" in err.getvalue()


def test_cluster_validity(image, tmp_path):
    recovery, _, err = make(image, tmp_path)
    with recovery:
        top = recovery.max_cluster_count
        assert not recovery.is_valid_cluster(1)
        assert recovery.is_valid_cluster(2)
        assert recovery.is_valid_cluster(top)
        assert not recovery.is_valid_cluster(top + 1)
        assert recovery.sanitize_cluster(0) == 0
        assert recovery.sanitize_cluster(5) == 5
        assert recovery.sanitize_cluster(top + 1) == 0
        assert recovery.sanitize_cluster(0x0FFFFFF7) == 0
    assert "exceeds maximum count" in err.getvalue()


def test_is_cluster_in_use(image, tmp_path):
    recovery, _, _ = make(image, tmp_path)
    with recovery:
        assert recovery.is_cluster_in_use(ROOT)
        assert not recovery.is_cluster_in_use(3)


def test_scan_finds_deleted_files(image, tmp_path):
    recovery, _, err = make(image, tmp_path, recover=True)
    with recovery:
        recovery.scan_for_deleted_files()
        names = [info.full_name for info in recovery.recovery_list]
        ids = [info.file_id for info in recovery.recovery_list]
        predicted = {info.full_name: info.is_extension_predicted for info in recovery.recovery_list}
    assert names == ["_ELLO.TXT", "_OPNG.png", "report.pdf", "_NNER.BIN"]
    assert ids == [1, 2, 3, 4]
    assert predicted["_OPNG.png"] is True
    assert predicted["report.pdf"] is False
    assert "Extension is missing" in err.getvalue()


def test_scan_without_flags_logs_but_keeps_nothing(image, tmp_path):
    recovery, out, _ = make(image, tmp_path)
    with recovery:
        recovery.start_recovery()
        assert recovery.recovery_list == []
    log = (tmp_path / "out" / "Log" / "FileDataLog.txt").read_text(encoding="utf-8")
    assert '#1 Filename: "_ELLO" (1000 bytes)' in log
    assert len(log.splitlines()) == 4
    assert "Recovery or analysis is disabled" in out.getvalue()


def test_recover_all_files(image, tmp_path):
    recovery, _, _ = make(image, tmp_path, stdin="1\n", recover=True)
    with recovery:
        recovery.start_recovery()
    out_dir = tmp_path / "out"
    assert recovered_files(tmp_path) == sorted(["_ELLO.TXT", "_OPNG.png", "report.pdf", "_NNER.BIN"])
    assert (out_dir / "_ELLO.TXT").read_bytes() == b"A" * 512 + b"B" * 488
    assert (out_dir / "_NNER.BIN").read_bytes() == b"hello"
    assert (out_dir / "report.pdf").read_bytes()[:8] == b"%PDF-1.4"


def test_recover_selected_ids(image, tmp_path):
    recovery, _, _ = make(image, tmp_path, stdin="2\n1\n", recover=True)
    with recovery:
        recovery.start_recovery()
    assert recovered_files(tmp_path) == ["_ELLO.TXT"]


def test_target_filter_recovers_only_match(image, tmp_path):
    recovery, _, _ = make(
        image, tmp_path, recover=True, target_cluster=7, target_file_size=20
    )
    with recovery:
        recovery.start_recovery()
    assert recovered_files(tmp_path) == ["report.pdf"]


def test_option_zero_exits(image, tmp_path):
    recovery, _, _ = make(image, tmp_path, stdin="0\n", recover=True)
    with recovery, pytest.raises(SystemExit) as info:
        recovery.start_recovery()
    assert info.value.code == 0


def test_analysis_reports_clean_files(image, tmp_path):
    recovery, out, _ = make(image, tmp_path, stdin="1\n", analyze=True)
    with recovery:
        recovery.start_recovery()
    text = out.getvalue()
    assert text.count("No signs of corruption found") == 4
    assert recovered_files(tmp_path) == []


def test_parse_file_info(image, tmp_path):
    recovery, _, err = make(image, tmp_path)
    with recovery:
        good = recovery.parse_file_info("notes.txt", 3, 10)
        bad = recovery.parse_file_info("abc.t?t", 7, 20)
    assert (good.file_name, good.extension, good.full_name) == ("notes", "txt", "notes.txt")
    assert good.is_extension_predicted is False
    assert (bad.file_name, bad.extension, bad.full_name) == ("abc", "pdf", "abc.pdf")
    assert bad.is_extension_predicted is True
    assert (good.file_id, bad.file_id) == (1, 2)
    assert "Extension is invalid (t?t)" in err.getvalue()


def test_predict_extension_defaults_to_bin(image, tmp_path):
    recovery, out, _ = make(image, tmp_path)
    with recovery:
        assert recovery.predict_extension(6) == "png"
        assert recovery.predict_extension(3) == "bin"
    assert "Defaulting to .bin" in out.getvalue()


def test_validate_cluster_chain_follows_freed_clusters(image, tmp_path):
    recovery, out, _ = make(image, tmp_path, analyze=True)
    with recovery:
        status = FAT32RecoveryStatus(expected_clusters=2)
        chain = recovery.validate_cluster_chain(status, 3, 1000, tmp_path / "x.txt", True)
    assert chain == [3, 4]
    assert status.has_invalid_extension is True
    assert status.is_corrupted is True
    assert "Analyzing file clusters" in out.getvalue()


def test_recover_file_counts_bytes(image, tmp_path):
    recovery, out, _ = make(image, tmp_path)
    target = tmp_path / "out" / "chain.bin"
    with recovery:
        status = FAT32RecoveryStatus(expected_clusters=2)
        recovery.recover_file([3, 4], status, target, 600)
    assert target.read_bytes() == b"A" * 512 + b"B" * 88
    assert status.recovered_bytes == 600
    assert status.recovered_clusters == 2
    assert "File saved to" in out.getvalue()


def test_recover_file_fails_without_directory(image, tmp_path):
    recovery, _, _ = make(image, tmp_path)
    with recovery, pytest.raises(RuntimeError, match="Failed to create output file"):
        recovery.recover_file([3], FAT32RecoveryStatus(), tmp_path / "missing" / "x.bin", 10)


def test_oversized_file_raises(image, tmp_path):
    recovery, _, _ = make(image, tmp_path, recover=True)
    info = FAT32FileInfo(file_id=1, full_name="big.bin", file_size=1 << 33, cluster=3)
    with recovery, pytest.raises(OverflowError):
        recovery.process_file_for_recovery(info)


def test_unknown_drive_type_raises(image, tmp_path):
    recovery, _, _ = make(image, tmp_path, drive_type=DriveType.PHYSICAL_TYPE)
    with recovery, pytest.raises(RuntimeError, match="Unknown drive type"):
        recovery.start_recovery()


def test_boot_sector_layout_matches_test_image():
    boot = BootSector.from_bytes(boot_sector())
    assert boot.bytes_per_sector == BPS
    assert boot.reserved_sector_count == RESERVED
    assert boot.root_cluster == ROOT
    assert boot.total_sectors32 == TOTAL
    assert boot.file_system_type == b"FAT32   "
    assert boot.boot_sector_signature == 0xAA55