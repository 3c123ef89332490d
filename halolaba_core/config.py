# =============================================================================
# halolaba_core/config.py
# Runtime Settings for the Offline Core
# =============================================================================
"""
Settings are read once at startup.

Supabase credentials come from Streamlit secrets when available:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

and otherwise from the SUPABASE_URL / SUPABASE_KEY environment variables.
Everything else has a default that can be overridden with a HALOLABA_*
environment variable.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple
import logging

import streamlit as st

from halolaba_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("local_data") / "halolaba_offline.db"


@dataclass(frozen=True)
class OfflineSettings:
    """Tunable knobs for the offline queue, cache and monitors."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    db_path: Path = DEFAULT_DB_PATH

    # Connectivity probing (seconds)
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    probe_timeout: float = 5.0

    # Remote request timeout (seconds)
    request_timeout: float = 10.0

    # Sync
    max_attempts: int = 5
    recent_transactions_limit: int = 100
    essential_tables: Tuple[str, ...] = field(default=("products", "transactions"))

    # Notifications
    notification_interval: float = 300.0
    overdue_debt_days: int = 30

    def require_supabase(self) -> Tuple[str, str]:
        """Return (url, key) or raise if either is missing."""
        if not self.supabase_url:
            raise ConfigurationError("Supabase URL is not configured", config_key="supabase.url")
        if not self.supabase_key:
            raise ConfigurationError("Supabase key is not configured", config_key="supabase.key")
        return self.supabase_url, self.supabase_key


def _read_secrets() -> Mapping[str, str]:
    """Read the [supabase] section of Streamlit secrets, if any."""
    try:
        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # No secrets.toml outside a Streamlit deployment
        logger.debug(f"Streamlit secrets not available: {e}")
    return {}


def _env_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}",
            config_key=name,
            expected_type=cast.__name__,
        )


def load_settings(env: Optional[Mapping[str, str]] = None) -> OfflineSettings:
    """
    Build OfflineSettings from Streamlit secrets and the environment.

    Args:
        env: Environment mapping (defaults to os.environ)

    Returns:
        OfflineSettings instance
    """
    env = os.environ if env is None else env
    secrets = _read_secrets()

    tables = env.get("HALOLABA_ESSENTIAL_TABLES")
    essential = tuple(t.strip() for t in tables.split(",") if t.strip()) if tables else ("products", "transactions")

    settings = OfflineSettings(
        supabase_url=secrets.get("url") or env.get("SUPABASE_URL"),
        supabase_key=secrets.get("key") or env.get("SUPABASE_KEY"),
        db_path=Path(env.get("HALOLABA_DB_PATH") or DEFAULT_DB_PATH),
        check_interval_online=_env_number(env, "HALOLABA_CHECK_INTERVAL_ONLINE", 30.0, float),
        check_interval_offline=_env_number(env, "HALOLABA_CHECK_INTERVAL_OFFLINE", 10.0, float),
        probe_timeout=_env_number(env, "HALOLABA_PROBE_TIMEOUT", 5.0, float),
        request_timeout=_env_number(env, "HALOLABA_REQUEST_TIMEOUT", 10.0, float),
        max_attempts=_env_number(env, "HALOLABA_MAX_ATTEMPTS", 5, int),
        recent_transactions_limit=_env_number(env, "HALOLABA_RECENT_TRANSACTIONS", 100, int),
        essential_tables=essential,
        notification_interval=_env_number(env, "HALOLABA_NOTIFICATION_INTERVAL", 300.0, float),
        overdue_debt_days=_env_number(env, "HALOLABA_OVERDUE_DEBT_DAYS", 30, int),
    )

    if settings.max_attempts < 1:
        raise ConfigurationError(
            "HALOLABA_MAX_ATTEMPTS must be at least 1",
            config_key="HALOLABA_MAX_ATTEMPTS",
        )

    return settings
