# =============================================================================
# muni_core/config/settings.py
# Sync Settings - TOML secrets file + environment overrides
# =============================================================================
"""
Settings for the offline sync core.

Expected secrets.toml format:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [sync]
    db_path = "local_data/muni_services.db"
    remote_provider = "supabase"     # or "mock"
    sync_interval = 30
    backoff_base = 2
    backoff_max = 300
    background_drain = true

Environment variables win over the file: SUPABASE_URL, SUPABASE_KEY,
MUNI_DB_PATH, MUNI_REMOTE_PROVIDER.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import toml

from muni_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SECRETS_PATH = Path(".streamlit") / "secrets.toml"

REMOTE_PROVIDERS = ("supabase", "mock")


@dataclass
class SyncSettings:
    """Runtime configuration for the store, monitor, engine and remote."""
    db_path: Path = Path("local_data") / "muni_services.db"

    # Sync engine
    sync_interval: float = 30.0         # Seconds between periodic drains
    backoff_base: float = 2.0           # Exponential backoff base after failed cycles
    backoff_max: float = 300.0          # Upper bound for the periodic wait
    background_drain: bool = True       # Opportunistic drains on a daemon thread

    # Connectivity
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    connection_timeout: float = 5.0
    probe_hosts: List[Tuple[str, int]] = field(default_factory=lambda: [
        ("8.8.8.8", 53),        # Google DNS
        ("1.1.1.1", 53),        # Cloudflare DNS
    ])
    start_monitoring: bool = True

    # Remote document store
    remote_provider: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        self.probe_hosts = [(str(host), int(port)) for host, port in self.probe_hosts]
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError on values the engine cannot work with."""
        for name in ("sync_interval", "backoff_max", "check_interval_online",
                     "check_interval_offline", "connection_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(
                    f"'{name}' must be a positive number",
                    config_key=name,
                    expected_type="float > 0",
                )

        if self.backoff_base < 1:
            raise ConfigurationError(
                "'backoff_base' must be at least 1",
                config_key="backoff_base",
                expected_type="float >= 1",
            )

        if self.remote_provider not in REMOTE_PROVIDERS:
            raise ConfigurationError(
                f"Unknown remote provider '{self.remote_provider}'",
                config_key="remote_provider",
                expected_type=" | ".join(REMOTE_PROVIDERS),
            )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug(f"No secrets file at {path}, using defaults")
        return {}

    try:
        return toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(
            f"Could not read settings file {path}: {e}",
            config_key=str(path),
        ) from e


def load_settings(path: Optional[Path] = None, **overrides) -> SyncSettings:
    """
    Build SyncSettings from the secrets file, environment and keyword overrides.

    Args:
        path: TOML file to read (default: .streamlit/secrets.toml)
        **overrides: Field values that win over file and environment

    Returns:
        Validated SyncSettings
    """
    secrets = _read_secrets(Path(path) if path else DEFAULT_SECRETS_PATH)

    known = {f.name for f in fields(SyncSettings)}
    values: Dict[str, Any] = {}

    for key, value in secrets.get("sync", {}).items():
        if key in known:
            values[key] = value
        else:
            logger.warning(f"Ignoring unknown [sync] setting: {key}")

    supabase = secrets.get("supabase", {})
    if "url" in supabase:
        values["supabase_url"] = supabase["url"]
    if "key" in supabase:
        values["supabase_key"] = supabase["key"]

    env_map = {
        "SUPABASE_URL": "supabase_url",
        "SUPABASE_KEY": "supabase_key",
        "MUNI_DB_PATH": "db_path",
        "MUNI_REMOTE_PROVIDER": "remote_provider",
    }
    for env_name, key in env_map.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[key] = env_value

    values.update(overrides)

    try:
        return SyncSettings(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
