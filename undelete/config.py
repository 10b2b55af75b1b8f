"""Run-time settings shared by the recovery components."""

from dataclasses import dataclass
from pathlib import Path


@dataclass
class Config:
    """Options chosen on the command line, with the tool's defaults."""

    drive_path: str = ""
    input_folder: str = ""
    output_folder: str = "Recovered"
    log_folder: str = "Log"
    log_file: str = "FileDataLog.txt"
    target_cluster: int = 0
    target_file_size: int = 0
    create_file_data_log: bool = True
    recover: bool = False
    analyze: bool = False

    def log_folder_path(self) -> Path:
        """Directory that holds the found-files log."""
        return Path(self.output_folder) / self.log_folder