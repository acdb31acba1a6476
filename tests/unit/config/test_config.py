"""Unit tests for settings loading and validation."""

from __future__ import annotations

import pytest
import yaml
from pydantic import ValidationError

from msgstore_gc.config import DatabaseConfig, GCConfig, LoggingConfig, Settings, load_settings


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep ./config.yaml and MSGGC_ variables of the host out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MSGGC_CONFIG_FILE", raising=False)


def _write_config(path, data: dict) -> str:
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:
    def test_defaults(self):
        settings = load_settings()

        assert settings.database.url == "sqlite+aiosqlite:///./message_store.db"
        assert settings.gc.enabled is True
        assert settings.gc.run_on_startup is True
        assert settings.gc.interval_seconds == 300
        assert settings.gc.terminal_modes == ["MESSAGE", "REJECT", "ERROR"]
        assert settings.logging.level == "INFO"
        assert settings.logging.format == "console"


class TestGCConfigValidation:
    def test_terminal_modes_are_normalized(self):
        config = GCConfig(terminal_modes=["message", " Reject ", "MESSAGE"])

        assert config.terminal_modes == ["MESSAGE", "REJECT"]

    def test_status_cannot_be_terminal(self):
        with pytest.raises(ValidationError, match="cannot close a conversation"):
            GCConfig(terminal_modes=["MESSAGE", "status"])

    def test_terminal_modes_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            GCConfig(terminal_modes=[])

    @pytest.mark.parametrize("interval", [0, -5])
    def test_interval_must_be_positive(self, interval):
        with pytest.raises(ValidationError):
            GCConfig(interval_seconds=interval)

    def test_log_level_is_case_insensitive(self):
        assert LoggingConfig(level="debug").level == "DEBUG"


class TestDatabaseConfig:
    def test_url_without_credentials(self):
        config = DatabaseConfig(url="postgresql+asyncpg://db-host:5432/gateway")

        url = config.get_url()

        assert url.username is None
        assert url.host == "db-host"

    def test_credentials_are_applied(self):
        config = DatabaseConfig(
            url="postgresql+asyncpg://db-host:5432/gateway",
            username="gc",
            password="s3cret",
        )

        url = config.get_url()

        assert url.username == "gc"
        assert url.password == "s3cret"
        assert "s3cret" not in repr(config)


class TestConfigSources:
    def test_explicit_file(self, tmp_path):
        path = _write_config(
            tmp_path / "gc.yaml",
            {"gc": {"interval_seconds": 10, "run_on_startup": False}},
        )

        settings = load_settings(path)

        assert settings.gc.interval_seconds == 10
        assert settings.gc.run_on_startup is False

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            load_settings(tmp_path / "nope.yaml")

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path / "elsewhere.yaml", {"gc": {"interval_seconds": 7}})
        monkeypatch.setenv("MSGGC_CONFIG_FILE", path)

        assert load_settings().gc.interval_seconds == 7

    def test_config_yaml_in_cwd(self, tmp_path):
        _write_config(tmp_path / "config.yaml", {"logging": {"format": "json"}})

        assert load_settings().logging.format == "json"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_settings(path) == Settings()

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = _write_config(
            tmp_path / "gc.yaml",
            {"gc": {"interval_seconds": 10, "run_on_startup": False}},
        )
        monkeypatch.setenv("MSGGC_GC__INTERVAL_SECONDS", "42")

        settings = load_settings(path)

        assert settings.gc.interval_seconds == 42
        # Keys not set in the environment still come from the file
        assert settings.gc.run_on_startup is False

    def test_invalid_file_values_raise(self, tmp_path):
        path = _write_config(tmp_path / "gc.yaml", {"gc": {"terminal_modes": ["STATUS"]}})

        with pytest.raises(ValidationError):
            load_settings(path)
