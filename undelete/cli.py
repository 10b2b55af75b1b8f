"""Command-line entry point of the deleted-file recovery tool."""

from __future__ import annotations

import sys
from typing import Sequence

from .config import Config
from .drive_handler import DriveHandler

PROGRAM_NAME = "undelete"


def print_usage(program_name: str = PROGRAM_NAME) -> None:
    """Print the usage text to standard error."""
    sys.stderr.write(
        f"Usage: {program_name} [OPTIONS]\n"
        "Options:\n"
        "  -h, --help                          Show this help message\n"
        "  -d, --drive <drive>                 [REQUIRED] Specify the drive path\n"
        "  -r, --recover                       [OPTIONAL] Perform file recovery\n"
        "  -a, --analyze                       [OPTIONAL] Analyze clusters for corruption (time-consuming)\n"
        "  -l, --no-log                        [OPTIONAL] Disable logging found files and their location\n"
        "\nExamples:\n"
        "  1. Logical Drive:\n"
        f"        {program_name} --drive F: --recover --analyze\n"
        "\nNotes:\n"
        "  - Selecting specific files for recovery:\n"
        "      1. Run the program with the '--recover' argument to interactively choose files to recover.\n"
        "  - Log file format:\n"
        "      * The `FileDataLog.txt` is in CSV format, facilitating easy automation.\n"
        "  - File corruption analysis:\n"
        "      * Use '--analyze' argument to scan recovered file for potential corruption.\n"
        "  - Supported file systems:\n"
        "      * Currently, only FAT32 and exFAT file recovery is supported.\n"
    )


def print_config(config: Config) -> None:
    """Print the chosen settings as a table to standard output."""
    out = sys.stdout
    rule = "_" * 60

    def yes_no(flag: bool) -> str:
        return "Yes" if flag else "No"

    rows = [
        ("Drive Path", config.drive_path),
        ("Input Folder", config.input_folder or "All folders"),
        ("Output Folder", config.output_folder or "Recovered"),
        ("Target Cluster", str(config.target_cluster) if config.target_cluster else "Not specified"),
        (
            "Target File Size",
            str(config.target_file_size) if config.target_file_size else "Not specified",
        ),
        ("Create File Data Log", yes_no(config.create_file_data_log)),
        ("Recover Files", yes_no(config.recover)),
        ("Analyze Files", yes_no(config.analyze)),
    ]
    out.write(f"{rule}\n\nConfiguration Details:\n{rule}\n\n")
    for label, value in rows:
        out.write(f"  {label:<23}| {value}\n")
    out.write(f"{rule}\n\n")


def parse_command_line(argv: Sequence[str]) -> Config:
    """Build a Config from the arguments (without the program name).

    Bad arguments print usage and raise SystemExit(1); --help raises SystemExit(0);
    a missing --drive raises RuntimeError.
    """
    config = Config()
    args = iter(argv)
    for arg in args:
        try:
            if arg in ("-d", "--drive"):
                value = next(args, None)
                if value is None:
                    raise ValueError("--drive argument is missing")
                config.drive_path = value
            elif arg in ("-l", "--no-log"):
                config.create_file_data_log = False
            elif arg in ("-r", "--recover"):
                config.recover = True
            elif arg in ("-a", "--analyze"):
                config.analyze = True
            elif arg in ("-h", "--help"):
                print_usage(PROGRAM_NAME)
                raise SystemExit(0)
            else:
                raise ValueError(f"Unknown argument: {arg}")
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            print_usage(PROGRAM_NAME)
            raise SystemExit(1) from None

    if not config.drive_path:
        raise RuntimeError("--drive argument is missing")
    print_config(config)
    return config


def main(argv: Sequence[str] | None = None) -> int:
    """Run the tool; returns the process exit status."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        config = parse_command_line(argv)
        with DriveHandler(config) as handler:
            handler.recover_drive()
    except Exception as exc:
        print(f"[-] Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())