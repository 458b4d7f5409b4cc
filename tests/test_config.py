"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from src.utils.config import DatabaseConfig, RankingConfig, Settings, load_config


class TestLoadConfig:
    """Tests for YAML configuration."""

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test that a missing config file is not an error."""
        settings = load_config(tmp_path / "nope.yaml")

        assert settings.database.path == "data/favorites.db"
        assert settings.ranking.temp_offset == 30000
        assert settings.web.port == 8080

    def test_yaml_values(self, tmp_path):
        """Test values read from YAML."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "database:\n"
            "  path: /tmp/favs.db\n"
            "ranking:\n"
            "  temp_offset: 5000\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  json_format: false\n"
        )

        settings = load_config(path)

        assert settings.database.url == "sqlite+aiosqlite:////tmp/favs.db"
        assert settings.ranking.temp_offset == 5000
        assert settings.logging.level == "DEBUG"
        assert settings.logging.json_format is False

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        """Test ${VAR} patterns in YAML values."""
        monkeypatch.setenv("FAV_DATA", "/srv/data")
        path = tmp_path / "config.yaml"
        path.write_text("database:\n  path: ${FAV_DATA}/favorites.db\n")

        settings = load_config(path)

        assert settings.database.path == "/srv/data/favorites.db"

    def test_env_override(self, tmp_path, monkeypatch):
        """Test nested settings from the environment."""
        monkeypatch.setenv("FAVORITES_WEB__PORT", "9999")

        settings = load_config(tmp_path / "nope.yaml")

        assert settings.web.port == 9999

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path).database.path == "data/favorites.db"


class TestSections:
    def test_temp_offset_must_exceed_one(self):
        with pytest.raises(ValidationError):
            RankingConfig(temp_offset=1)

    def test_memory_database_has_no_directory(self, tmp_path):
        DatabaseConfig(path=":memory:").ensure_directory()

    def test_ensure_directory(self, tmp_path):
        """Test that the database directory is created."""
        config = DatabaseConfig(path=str(tmp_path / "nested" / "favorites.db"))

        config.ensure_directory()

        assert (tmp_path / "nested").is_dir()

    def test_log_file_path(self):
        settings = Settings()
        settings.logging.file = "~/logs/favorites.log"

        assert settings.logging.file_path.name == "favorites.log"
        assert "~" not in str(settings.logging.file_path)
