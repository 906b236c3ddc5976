"""Tests for loading and reloading the board configuration."""

import pytest

from release_board.core import ConfigurationException
from release_board.releases.infrastructure import BoardConfigManager


def test_missing_file_uses_defaults(tmp_path):
    manager = BoardConfigManager()

    config = manager.load(tmp_path / "missing.yaml")

    assert config.is_uat_ready("UAT - Ready For Test")
    assert manager.get_config() is config


def test_loads_yaml(tmp_path):
    path = tmp_path / "board_config.yaml"
    path.write_text(
        "uat_ready_aliases:\n  - Ready for UAT\npropagation_types:\n  - Feature\n",
        encoding="utf-8",
    )
    manager = BoardConfigManager()

    config = manager.load(path)

    assert config.uat_ready_aliases == ["Ready for UAT"]
    assert not config.propagates("Epic")


def test_invalid_file_at_startup_is_a_configuration_error(tmp_path):
    path = tmp_path / "board_config.yaml"
    path.write_text("uat_ready_aliases: []\n", encoding="utf-8")

    with pytest.raises(ConfigurationException):
        BoardConfigManager().load(path)


def test_invalid_reload_keeps_last_good_config(tmp_path):
    path = tmp_path / "board_config.yaml"
    path.write_text("uat_ready_aliases:\n  - Ready for UAT\n", encoding="utf-8")
    manager = BoardConfigManager()
    manager.load(path)

    path.write_text("uat_ready_aliases: [\n", encoding="utf-8")
    assert manager.reload() is False
    assert manager.get_config().uat_ready_aliases == ["Ready for UAT"]

    path.write_text("uat_ready_aliases:\n  - UAT Ready\n", encoding="utf-8")
    assert manager.reload() is True
    assert manager.get_config().uat_ready_aliases == ["UAT Ready"]


def test_get_config_before_load_fails():
    with pytest.raises(RuntimeError):
        BoardConfigManager().get_config()


def test_watching_can_start_and_stop(tmp_path):
    path = tmp_path / "board_config.yaml"
    path.write_text("propagation_types:\n  - Epic\n", encoding="utf-8")
    manager = BoardConfigManager()
    manager.load(path)

    manager.start_watching()
    manager.stop_watching()
    manager.stop_watching()
