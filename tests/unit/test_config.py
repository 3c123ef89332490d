# =============================================================================
# tests/unit/test_config.py
# Unit Tests for Settings Loading
# =============================================================================

from pathlib import Path

import pytest

from halolaba_core import config
from halolaba_core.config import OfflineSettings, load_settings
from halolaba_core.errors import ConfigurationError


@pytest.fixture
def no_secrets(monkeypatch):
    monkeypatch.setattr(config, "_read_secrets", lambda: {})


class TestLoadSettings:

    def test_defaults(self, no_secrets):
        settings = load_settings(env={})

        assert settings == OfflineSettings()
        assert settings.max_attempts == 5
        assert settings.essential_tables == ("products", "transactions")

    def test_environment_overrides(self, no_secrets):
        settings = load_settings(env={
            "SUPABASE_URL": "https://example.supabase.co",
            "SUPABASE_KEY": "anon",
            "HALOLABA_DB_PATH": "/tmp/halo.db",
            "HALOLABA_CHECK_INTERVAL_ONLINE": "60",
            "HALOLABA_MAX_ATTEMPTS": "2",
            "HALOLABA_ESSENTIAL_TABLES": "products, debts ,",
        })

        assert settings.supabase_url == "https://example.supabase.co"
        assert settings.db_path == Path("/tmp/halo.db")
        assert settings.check_interval_online == 60.0
        assert settings.max_attempts == 2
        assert settings.essential_tables == ("products", "debts")

    def test_secrets_take_precedence(self, monkeypatch):
        monkeypatch.setattr(config, "_read_secrets", lambda: {"url": "https://secret.supabase.co", "key": "k"})

        settings = load_settings(env={"SUPABASE_URL": "https://env.supabase.co"})

        assert settings.supabase_url == "https://secret.supabase.co"
        assert settings.supabase_key == "k"

    def test_bad_number_raises(self, no_secrets):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(env={"HALOLABA_PROBE_TIMEOUT": "soon"})

        assert exc_info.value.details["config_key"] == "HALOLABA_PROBE_TIMEOUT"

    def test_max_attempts_must_be_positive(self, no_secrets):
        with pytest.raises(ConfigurationError):
            load_settings(env={"HALOLABA_MAX_ATTEMPTS": "0"})


class TestRequireSupabase:

    def test_missing_url(self):
        with pytest.raises(ConfigurationError):
            OfflineSettings(supabase_key="k").require_supabase()

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            OfflineSettings(supabase_url="https://x.supabase.co").require_supabase()

    def test_returns_pair(self):
        assert OfflineSettings(supabase_url="u", supabase_key="k").require_supabase() == ("u", "k")
