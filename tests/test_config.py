"""Tests for configuration loading, overrides and validation."""
import pytest

from baidupan_cli.exceptions import ConfigurationError
from baidupan_cli.models.config import AppConfig
from baidupan_cli.storage.config_manager import SERVER_COOKIES_ENV, ConfigManager


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv(SERVER_COOKIES_ENV, raising=False)
    return tmp_path / "config.ini"


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()

        assert config.scratch_root == "/netdisk"
        assert config.max_file_size == 150 * 1024 * 1024
        assert config.max_files == 500
        assert config.store_backend == "file"

    def test_cookies_are_deduplicated(self):
        config = AppConfig(server_cookies=["BDUSS=a", " BDUSS=a", "", "BDUSS=b"])

        assert config.server_cookies == ["BDUSS=a", "BDUSS=b"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"store_backend": "redis"},
            {"scratch_root": "/a/b"},
            {"scratch_root": "relative"},
            {"max_files": 0},
            {"link_propagation_delay": -1},
            {"health_interval": 5},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            AppConfig(**overrides)

    def test_secrets_are_not_in_repr(self):
        assert "BDUSS=secret" not in repr(AppConfig(server_cookies=["BDUSS=secret"]))


class TestConfigManager:
    def test_missing_file_raises(self, config_file):
        with pytest.raises(ConfigurationError):
            ConfigManager(config_file).load_config()

    def test_save_and_load(self, config_file):
        cookies = ["BDUSS=a%b; STOKEN=1", "BDUSS=c"]
        ConfigManager(config_file).save_new_config(
            {"server_cookies": cookies, "store_backend": "memory"}
        )

        config = ConfigManager(config_file).load_config()

        assert config.server_cookies == cookies
        assert config.store_backend == "memory"
        assert config.config_path == str(config_file.parent)

    def test_cli_options_override_file(self, config_file):
        ConfigManager(config_file).save_new_config({})

        config = ConfigManager(config_file).load_config({"max_files": 10})

        assert config.max_files == 10

    def test_environment_overrides_static_cookies(self, config_file, monkeypatch):
        ConfigManager(config_file).save_new_config({"server_cookies": ["BDUSS=file"]})
        monkeypatch.setenv(SERVER_COOKIES_ENV, '["BDUSS=env1", "BDUSS=env2"]')

        config = ConfigManager(config_file).load_config()

        assert config.server_cookies == ["BDUSS=env1", "BDUSS=env2"]

    def test_malformed_environment_is_ignored(self, config_file, monkeypatch):
        ConfigManager(config_file).save_new_config({"server_cookies": ["BDUSS=file"]})
        monkeypatch.setenv(SERVER_COOKIES_ENV, "not json")

        config = ConfigManager(config_file).load_config()

        assert config.server_cookies == ["BDUSS=file"]

    def test_missing_keys_are_migrated(self, config_file):
        config_file.write_text("[DEFAULT]\nmax_files = 42\n", encoding="utf-8")

        config = ConfigManager(config_file).load_config()

        assert config.max_files == 42
        assert config.scratch_root == "/netdisk"
        assert "scan_concurrency" in config_file.read_text(encoding="utf-8")

    def test_bad_number_raises(self, config_file):
        config_file.write_text("[DEFAULT]\nmax_files = many\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(config_file).load_config()

    def test_invalid_value_raises(self, config_file):
        config_file.write_text("[DEFAULT]\nscratch_root = /a/b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(config_file).load_config()
