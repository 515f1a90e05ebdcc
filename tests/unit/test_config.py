"""Unit tests for EngineConfig."""

from pathlib import Path

import pytest

from hostmigrate.config import EngineConfig


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self) -> None:
        """Defaults point at the hosted platform."""
        config = EngineConfig()
        assert config.management_api_url == "https://api.supabase.com"
        assert config.project_url("abcd1234") == "https://abcd1234.supabase.co"
        assert config.sample_size == 10
        assert config.orphan_sample_limit == 5
        assert config.probe_timeout == 30.0
        assert config.management_timeout == 60.0
        assert config.database_statement_timeout == 300.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sample_size": 0},
            {"orphan_sample_limit": 0},
            {"probe_timeout": 0},
            {"management_timeout": -1},
            {"database_statement_timeout": 0},
            {"project_url_template": "https://example.com"},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict) -> None:
        """Invalid limits and templates are rejected at construction."""
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)

    def test_project_url_strips_trailing_slash(self) -> None:
        """Paths can be appended without doubled slashes."""
        config = EngineConfig(project_url_template="http://localhost/{ref}/")
        assert config.project_url("ref") == "http://localhost/ref"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """HOSTMIGRATE_* variables override defaults."""
        monkeypatch.setenv("HOSTMIGRATE_SAMPLE_SIZE", "25")
        monkeypatch.setenv("HOSTMIGRATE_PROBE_TIMEOUT", "5")
        monkeypatch.setenv("HOSTMIGRATE_DATABASE_STATEMENT_TIMEOUT", "45")
        monkeypatch.setenv("HOSTMIGRATE_STORAGE_DIR", "/srv/storage")
        config = EngineConfig.from_env()
        assert config.sample_size == 25
        assert config.probe_timeout == 5.0
        assert config.database_statement_timeout == 45.0
        assert config.storage_dir == Path("/srv/storage")
        assert config.management_api_url == "https://api.supabase.com"
