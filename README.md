# undelete

`undelete` scans a FAT32 or NTFS volume for deleted files, lists what it
finds and can write the recovered contents to disk. On FAT32 volumes it can
also analyse each file's cluster chain for signs of corruption: repeated
clusters, backward jumps, large gaps, clusters reused by other deleted
files, and damaged names or extensions. Where a FAT32 name has no usable
extension, one is guessed from the file's first bytes (`jpg`, `png`, `pdf`,
`zip` and so on, falling back to `bin`).

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

```
undelete --drive F: --recover --analyze
```

| Option | Meaning |
| --- | --- |
| `-h`, `--help` | Show the help message |
| `-d`, `--drive <drive>` | **Required.** The drive to scan, as a letter such as `F` or `F:` |
| `-r`, `--recover` | Write the recovered files out |
| `-a`, `--analyze` | Analyse clusters for corruption (can be slow) |
| `-l`, `--no-log` | Do not write the log of found files |

A drive letter is turned into the device path `\\.\F:` and opened for
reading, so the command is meant for Windows, and reading a raw volume
usually needs administrator rights. The command exits with status 1 and an
`[-] Error: ...` message when something goes wrong.

## What happens during a run

1. The boot sector is read and the volume is checked to be FAT32 or NTFS.
2. The directory tree (FAT32) or the MFT (NTFS) is scanned for deleted
   entries. Each one is printed with an ID and, unless `--no-log` is given,
   written to `Recovered/Log/FileDataLog.txt` as lines such as
   `#1 Filename: "report.pdf" (12345 bytes)`. If that log file already
   exists, a new one with a counter is made (`FileDataLog_1.txt`). If no
   log file can be opened, you are asked whether to go on.
3. With `--recover` or `--analyze`, you choose to process every file (`1`),
   only the IDs you enter such as `1,2,3` (`2`), or to stop (`0`).
4. Recovered files go to the `Recovered` folder. If a name is already taken,
   a counter is added: `report_1.pdf`, `report_2.pdf`, and so on.

## Using it from Python

`undelete.sector_reader.FileSectorReader` reads sectors from any file path,
so a disk image can be processed without touching the device:

```python
from undelete.config import Config
from undelete.enums import DriveType
from undelete.fat32_recovery import FAT32Recovery
from undelete.sector_reader import FileSectorReader

config = Config(recover=True)
with FAT32Recovery(DriveType.LOGICAL_TYPE, FileSectorReader("disk.img"), config) as recovery:
    recovery.start_recovery()
```

`undelete.ntfs_recovery.NTFSRecovery` is used the same way for NTFS images.
Both take optional `stdin`, `stdout` and `stderr` streams for the prompts
and messages. `undelete.drive_handler.DriveHandler` picks the right one from
`Config.drive_path`. The helpers in `undelete.fat32_analysis`, such as
`guess_file_extension`, `analyze_cluster_pattern` and
`is_file_name_corrupted`, and `undelete.ntfs_recovery.parse_data_runs` can
be used on their own.

## What it does not do

- Physical drives (a drive number or `PhysicalDriveN`) are recognised but
  rejected; MBR and GPT partition tables are not walked. The MBR and GPT
  structures in `undelete.fat32_structs` can be parsed, but nothing uses
  them for recovery.
- The command only takes drive letters. Image files can be processed from
  Python, as shown above, but not from the command line.
- Only FAT32 and NTFS are supported; exFAT and ext4 are not.
- Corruption analysis is done on FAT32 volumes only. On NTFS only the last
  data run of each file is recovered, so fragmented files come back
  incomplete.