"""Tests for configuration and the command line entry point."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from kanban_store import main as main_module
from kanban_store.config import StoreConfig, config
from kanban_store.exceptions import ConfigurationError


class TestStoreConfig:
    """Tests for StoreConfig."""

    def test_env_overrides(self, monkeypatch, tmp_path):
        """Environment variables are read when the config is built."""
        monkeypatch.setenv("KANBAN_STORE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("KANBAN_STORE_DATABASE_PATH", "boards.sqlite")
        monkeypatch.setenv("KANBAN_STORE_IN_MEMORY_DB", "yes")
        monkeypatch.setenv("KANBAN_STORE_DEFAULT_DUE_TIME", "08:15:00Z")

        cfg = StoreConfig()

        assert cfg.data_dir == tmp_path
        assert cfg.get_database_path() == tmp_path / "boards.sqlite"
        assert cfg.in_memory_db is True
        assert cfg.default_due_time == "08:15:00Z"

    def test_relative_paths_resolve_against_data_dir(self, tmp_path):
        cfg = StoreConfig(data_dir=tmp_path, notes_dir=Path("bodies"))

        assert cfg.get_notes_dir() == tmp_path / "bodies"
        assert cfg.get_absolute_path(Path("/abs/file")) == Path("/abs/file")

    def test_db_url_creates_parent(self, tmp_path):
        cfg = StoreConfig(data_dir=tmp_path / "nested", database_path=Path("db/kanban.db"))

        url = cfg.get_db_url()

        assert url == f"sqlite:///{tmp_path / 'nested' / 'db' / 'kanban.db'}"
        assert (tmp_path / "nested" / "db").is_dir()

    def test_log_dir_default_and_override(self, tmp_path):
        assert StoreConfig(data_dir=tmp_path, log_dir=None).get_log_dir() == tmp_path / "logs"
        assert StoreConfig(data_dir=tmp_path, log_dir=Path("out")).get_log_dir() == tmp_path / "out"

    @pytest.mark.parametrize("value", ["10am", "25:00", "10:00:00+01:00"])
    def test_invalid_due_time(self, value):
        with pytest.raises(PydanticValidationError):
            StoreConfig(default_due_time=value)

    def test_extension_normalized(self):
        assert StoreConfig(note_file_extension=".json").note_file_extension == "json"
        with pytest.raises(PydanticValidationError):
            StoreConfig(note_file_extension="js/on")


class TestCommandLine:
    """Tests for argument handling in main."""

    @pytest.fixture
    def isolated_config(self, monkeypatch):
        """Restore every global config field a test may override."""
        for key in ("data_dir", "database_path", "notes_dir", "in_memory_db", "log_dir"):
            monkeypatch.setattr(config, key, getattr(config, key))
        return config

    def test_parse_args(self):
        args = main_module.parse_args(["--data-dir", "/tmp/x", "--in-memory", "--migrate-only"])

        assert args.data_dir == "/tmp/x"
        assert args.in_memory is True
        assert args.migrate_only is True

    def test_update_config(self, isolated_config, tmp_path):
        args = main_module.parse_args(["--data-dir", str(tmp_path), "--notes-dir", "bodies"])

        main_module.update_config(args)

        assert isolated_config.data_dir == tmp_path
        assert isolated_config.get_notes_dir() == tmp_path / "bodies"

    def test_migrate_only(self, isolated_config, tmp_path, monkeypatch, capsys):
        """--migrate-only opens the store, reports the mode and exits."""
        closers = []
        monkeypatch.setattr(main_module, "configure_logging", lambda *a, **k: tmp_path / "logs")
        monkeypatch.setattr(main_module.atexit, "register", closers.append)
        monkeypatch.setattr(main_module.metrics, "_metrics_file", None)
        isolated_config.log_dir = None

        try:
            code = main_module.main(["--data-dir", str(tmp_path), "--migrate-only"])
        finally:
            for closer in closers:
                closer()

        assert code == 0
        assert "Store ready (durable)" in capsys.readouterr().out
        assert (tmp_path / "kanban.db").exists()

    def test_configuration_error(self):
        err = ConfigurationError("bad", config_key="data_dir")
        assert err.to_dict()["details"] == {"config_key": "data_dir"}
        assert err.to_dict()["code_name"] == "CONFIG_INVALID"
