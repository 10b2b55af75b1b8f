from pathlib import Path

from undelete.config import Config


def test_defaults_match_tool_defaults():
    config = Config()
    assert config.drive_path == ""
    assert config.output_folder == "Recovered"
    assert config.log_folder == "Log"
    assert config.log_file == "FileDataLog.txt"
    assert config.target_cluster == 0
    assert config.target_file_size == 0
    assert config.create_file_data_log is True
    assert config.recover is False
    assert config.analyze is False


def test_log_folder_path_default():
    assert Config().log_folder_path() == Path("Recovered") / "Log"


def test_log_folder_path_follows_output_folder(tmp_path):
    config = Config(output_folder=str(tmp_path), log_folder="logs")
    assert config.log_folder_path() == tmp_path / "logs"


def test_instances_are_independent():
    first = Config()
    second = Config()
    first.recover = True
    assert second.recover is False