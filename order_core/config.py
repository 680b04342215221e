# =============================================================================
# order_core/config.py
# Settings for the offline core (Supabase credentials, local storage paths)
# =============================================================================
"""
Settings are layered: built-in defaults, then a TOML secrets file, then
environment variables.

Expected secrets.toml format:
    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [offline]
    data_dir = "local_data"
    warmup_tables = ["teams", "products", "clients"]
    warmup_workers = 4

    [logging]
    level = "INFO"
"""

from __future__ import annotations
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import toml

from order_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / "config" / "secrets.toml"
DEFAULT_DATA_DIR = PROJECT_ROOT / "local_data"

# Collections mirrored after every successful online login
DEFAULT_WARMUP_TABLES = [
    "teams",
    "products",
    "clients",
    "brands",
    "users",
    "pedidos",
    "prazos",
    "relacao_prazo",
]

URL_ENV_VARS = ("EXPO_PUBLIC_SUPABASE_URL", "SUPABASE_URL")
KEY_ENV_VARS = ("EXPO_PUBLIC_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY", "SUPABASE_KEY")


@dataclass
class Settings:
    """Runtime settings for the offline core."""
    supabase_url: str = ""
    supabase_key: str = ""
    data_dir: Path = DEFAULT_DATA_DIR
    warmup_tables: List[str] = field(default_factory=lambda: list(DEFAULT_WARMUP_TABLES))
    warmup_workers: int = 4
    log_level: str = "INFO"

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def documents_path(self) -> Path:
        return self.data_dir / "offline_db.sqlite3"

    @property
    def storage_path(self) -> Path:
        return self.data_dir / "storage.sqlite3"

    def masked(self) -> Dict[str, str]:
        """Credentials in a form that is safe to log."""
        return {
            "supabase_url": mask_url(self.supabase_url),
            "supabase_key": mask_key(self.supabase_key),
        }


def mask_url(url: str) -> str:
    if not url:
        return "<missing>"
    return re.sub(r"(https?://)([^@/]+)@?", r"\1****@", url)


def mask_key(key: str) -> str:
    if not key:
        return "<missing>"
    return f"{key[:8]}...{key[-8:]}"


def _first_env(names) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _read_secrets(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(
            f"Could not read settings file: {e}",
            config_key=str(path),
        ) from e


def load_settings(secrets_path: Optional[Path] = None) -> Settings:
    """
    Build Settings from the secrets file and the environment.

    Environment variables win over the file. Missing Supabase credentials
    are logged (masked) but are not an error: the app then runs in
    local-only mode.
    """
    path = Path(secrets_path) if secrets_path else Path(
        os.getenv("ORDER_CORE_SECRETS", DEFAULT_SECRETS_PATH)
    )
    secrets = _read_secrets(path)
    supabase_cfg = secrets.get("supabase", {})
    offline_cfg = secrets.get("offline", {})
    logging_cfg = secrets.get("logging", {})

    settings = Settings()
    settings.supabase_url = _first_env(URL_ENV_VARS) or supabase_cfg.get("url", "")
    settings.supabase_key = _first_env(KEY_ENV_VARS) or supabase_cfg.get("key", "")

    data_dir = os.getenv("ORDER_CORE_DATA_DIR") or offline_cfg.get("data_dir")
    if data_dir:
        settings.data_dir = Path(data_dir)

    tables = offline_cfg.get("warmup_tables")
    if tables is not None:
        if not isinstance(tables, list) or not all(isinstance(t, str) for t in tables):
            raise ConfigurationError(
                "offline.warmup_tables must be a list of table names",
                config_key="offline.warmup_tables",
                expected_type="list[str]",
            )
        settings.warmup_tables = tables

    workers = offline_cfg.get("warmup_workers")
    if workers is not None:
        if not isinstance(workers, int) or workers < 1:
            raise ConfigurationError(
                "offline.warmup_workers must be a positive integer",
                config_key="offline.warmup_workers",
                expected_type="int",
            )
        settings.warmup_workers = workers

    settings.log_level = os.getenv("ORDER_CORE_LOG_LEVEL") or logging_cfg.get("level", "INFO")

    if not settings.has_remote:
        masked = settings.masked()
        logger.error("Supabase URL or anon key is missing or empty")
        logger.error(f"Supabase URL: {masked['supabase_url']}")
        logger.error(f"Supabase anon key (masked): {masked['supabase_key']}")
    else:
        logger.debug(f"Using Supabase settings: {settings.masked()}")

    return settings
