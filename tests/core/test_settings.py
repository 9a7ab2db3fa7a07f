"""Tests for entitydb.core.settings module."""

import pytest
from pydantic import ValidationError

from entitydb.core.settings import DbSettings, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Isolate settings from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for key in ("URL", "DIALECT", "POOLED", "POOL_SIZE", "SHOW_SQL", "SQL_LEVEL", "QUOTE_CHAR"):
        monkeypatch.delenv(f"ENTITYDB_{key}", raising=False)


class TestDbSettings:
    def test_defaults(self):
        """Defaults describe a local SQLite file without SQL logging."""
        settings = DbSettings()
        assert settings.url == "sqlite:///entitydb.db"
        assert settings.dialect is None
        assert settings.pooled is False
        assert settings.pool_size == 5
        assert settings.show_sql is False
        assert settings.sql_level == "DEBUG"
        assert settings.quote_char is None

    def test_environment_overrides(self, monkeypatch):
        """ENTITYDB_* variables are read."""
        monkeypatch.setenv("ENTITYDB_URL", "postgresql://u@h/db")
        monkeypatch.setenv("ENTITYDB_SHOW_SQL", "true")
        monkeypatch.setenv("ENTITYDB_POOL_SIZE", "12")
        settings = load_settings()
        assert settings.url == "postgresql://u@h/db"
        assert settings.show_sql is True
        assert settings.pool_size == 12

    def test_keyword_overrides_win(self, monkeypatch):
        """load_settings keyword overrides beat the environment."""
        monkeypatch.setenv("ENTITYDB_URL", "sqlite:///env.db")
        assert load_settings(url="memory").url == "memory"

    def test_log_level_normalised(self):
        """Level names are upper-cased."""
        assert DbSettings(sql_level="info").sql_level == "INFO"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            DbSettings(log_level="loud")

    def test_invalid_pool_size(self):
        """Pool size must be positive."""
        with pytest.raises(ValidationError):
            DbSettings(pool_size=0)

    def test_quote_char_single_character(self):
        assert DbSettings(quote_char="`").quote_char == "`"
        with pytest.raises(ValidationError):
            DbSettings(quote_char="[]")
