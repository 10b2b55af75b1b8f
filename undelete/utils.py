"""Console output, output paths, file selection and the found-files log."""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Sequence, TextIO, TypeVar

from .config import Config

T = TypeVar("T")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class Utils:
    """Helpers shared by the FAT32 and NTFS recovery runs."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr
        self._log: TextIO | None = None

    def __enter__(self) -> Utils:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_log_file()

    @property
    def _in(self) -> TextIO:
        return self._stdin if self._stdin is not None else sys.stdin

    @property
    def _out(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def _err(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def _read_line(self) -> str:
        line = self._in.readline()
        if line == "":
            raise EOFError
        return line.rstrip("\r\n")

    def ensure_output_directory(self) -> None:
        """Create the output folder and the log folder inside it."""
        path = self.config.log_folder_path()
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            print(f"Exception: {exc}", file=self._err)
            raise RuntimeError("Failed to create output directory") from exc

    def get_output_path(self, full_name: str, folder) -> Path:
        """Path for `full_name` in `folder`, numbered so it does not clash."""
        output_path = Path(folder) / full_name
        dot = full_name.rfind(".")
        if dot > 0:
            stem, extension = full_name[:dot], full_name[dot + 1 :]
            counter = 1
            while output_path.exists():
                new_name = f"{stem}_{counter}"
                if extension:
                    new_name += f".{extension}"
                output_path = Path(folder) / new_name
                counter += 1
        return output_path

    def show_progress(self, current_value: int, max_value: int) -> None:
        """Rewrite the progress line in place."""
        progress = 100.0 if max_value == 0 else current_value / max_value * 100
        print(f"\r[*] Progress: {progress:5.2f}%", end="", file=self._out, flush=True)

    def open_log_file(self) -> bool:
        """Open a fresh log file if logging is on; report whether one is open."""
        if self.config.create_file_data_log and self._log is None:
            path = self.get_output_path(self.config.log_file, self.config.log_folder_path())
            try:
                self._log = open(path, "a", encoding="utf-8")
            except OSError:
                self._log = None
        return self._log is not None

    def log_file_info(self, file_id: int, file_name: str, file_size: int) -> None:
        """Report a found file on the console and in the log."""
        print(f'[+] #{file_id} Found file "{file_name}" ({file_size} bytes)', file=self._out)
        if self.config.create_file_data_log:
            self.write_to_log_file(file_id, file_name, file_size)

    def write_to_log_file(self, file_id: int, file_name: str, file_size: int) -> None:
        """Append one found file to the log, if it is open."""
        if self._log is not None:
            self._log.write(f'#{file_id} Filename: "{file_name}" ({file_size} bytes)\n')

    def confirm_proceed_without_log_file(self) -> bool:
        """Ask whether to go on when the log file could not be opened."""
        question = (
            "[!] Do you want to proceed restoring all the files? "
            "(Recovery will not be affected) [Y/n]: "
        )
        print("[!] Couldn't open log file.", file=self._err)
        print(question, end="", file=self._err, flush=True)
        while True:
            try:
                response = self._read_line().upper()
            except EOFError:
                return True
            if response in ("Y", ""):
                return True
            if response == "N":
                return False
            print("Incorrect option.", file=self._err)
            print(question, end="", file=self._err, flush=True)

    def close_log_file(self) -> None:
        """Close the log file if it is open."""
        if self._log is not None:
            self._log.close()
            self._log = None

    def select_files_to_recover(self, files: Sequence[T]) -> list[T]:
        """Ask whether to process every file or only chosen IDs.

        Choosing option 0 (or reaching end of input) raises SystemExit(0).
        """
        out = self._out
        print("Options:", file=out)
        print("  1. Process all files", file=out)
        print("  2. Choose specific file(s) to process", file=out)
        print("  0. Exit without processing", file=out)

        while True:
            print("\nEnter your option: ", end="", file=out, flush=True)
            try:
                line = self._read_line().strip()
            except EOFError:
                raise SystemExit(0) from None
            option = line[:1].upper()
            if option == "0":
                raise SystemExit(0)
            if option == "1":
                return list(files)
            if option == "2":
                print("\nEnter file IDs to recover (e.g., 1,2,3): ", end="", file=out, flush=True)
                try:
                    tokens = self._read_line().split()
                except EOFError:
                    tokens = []
                ids = self._parse_ids(tokens[0] if tokens else "")
                if ids is None:
                    print("\nInvalid input. Please enter numeric IDs.", file=self._err)
                    return list(files)
                return [item for item in files if item.file_id in ids]
            print("Incorrect value", file=self._err)

    @staticmethod
    def _parse_ids(text: str) -> set[int] | None:
        parts = text.split(",")
        if parts and parts[-1] == "":
            parts.pop()
        ids = set()
        for part in parts:
            match = _LEADING_INT.match(part)
            if match is None:
                return None
            ids.add(int(match.group(1)))
        return ids

    def print_header(self, stage: str, border_char: str = "_", width: int = 60) -> None:
        print(stage, file=self._out)
        print(border_char * width + "\n", file=self._out)

    def print_footer(self, divider_char: str = "_", width: int = 60) -> None:
        print(divider_char * width + "\n", file=self._out)

    def print_item_divider(self, divider_char: str = "-", width: int = 60) -> None:
        print(divider_char * width, file=self._out)