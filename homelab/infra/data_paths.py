"""
Data path helpers for the home server.

Centralized path management for all data directories.

Directory structure:
data/
 ├── server.db                 # Triggers, executions, dedup, metrics, notifications
 └── google-token.json         # OAuth tokens for Drive / Gmail
backups/                       # Timestamped JSON snapshots (backup job)
logs/                          # Daily log files
uploads/                       # Scratch uploads (cleanup job)

Environment Variables:
- HOMELAB_DATA_DIR: Override data directory (default: data)
- HOMELAB_DB_PATH: Override database file (default: data/server.db)
- HOMELAB_BACKUP_DIR: Override backup directory (default: backups)
- HOMELAB_LOG_DIR: Override log directory (default: logs)
- HOMELAB_UPLOADS_DIR: Override uploads directory (default: uploads)
- GOOGLE_TOKEN_PATH: Override OAuth token file (default: data/google-token.json)
- DEDUP_CAPACITY: Processed-email ids kept per namespace (default: 500)
- SEED_DEFAULT_JOBS: Seed default triggers into an empty table (default: true)
- SYSTEM_MONITOR_ENABLED: Publish live system stats (default: true)
- SYSTEM_MONITOR_INTERVAL: Seconds between system stats (default: 10)
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Variable Configuration
# =============================================================================


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    elif val in ("false", "0", "no", "off"):
        return False
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[DataPaths] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_path(key: str, default: Path) -> Path:
    val = os.getenv(key)
    return Path(val) if val else default


# =============================================================================
# Base Paths (relative to project root)
# =============================================================================


def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at homelab/infra/data_paths.py, so project root is 2 levels up.
    """
    return Path(__file__).parent.parent.parent.resolve()


def get_data_root() -> Path:
    """Get the data root directory."""
    return _get_env_path("HOMELAB_DATA_DIR", get_project_root() / "data")


def get_db_path() -> Path:
    return _get_env_path("HOMELAB_DB_PATH", get_data_root() / "server.db")


def get_backup_dir() -> Path:
    return _get_env_path("HOMELAB_BACKUP_DIR", get_project_root() / "backups")


def get_log_dir() -> Path:
    return _get_env_path("HOMELAB_LOG_DIR", get_project_root() / "logs")


def get_uploads_dir() -> Path:
    return _get_env_path("HOMELAB_UPLOADS_DIR", get_project_root() / "uploads")


def get_google_token_path() -> Path:
    return _get_env_path("GOOGLE_TOKEN_PATH", get_data_root() / "google-token.json")


def get_cleanup_dirs() -> list[Path]:
    """Scratch directories swept by the cleanup job."""
    return [get_uploads_dir(), get_log_dir()]


# =============================================================================
# Feature Knobs
# =============================================================================


def get_dedup_capacity() -> int:
    return max(1, _get_env_int("DEDUP_CAPACITY", 500))


def is_seed_default_jobs_enabled() -> bool:
    return _get_env_bool("SEED_DEFAULT_JOBS", True)


def is_system_monitor_enabled() -> bool:
    return _get_env_bool("SYSTEM_MONITOR_ENABLED", True)


def get_system_monitor_interval() -> int:
    return max(1, _get_env_int("SYSTEM_MONITOR_INTERVAL", 10))
