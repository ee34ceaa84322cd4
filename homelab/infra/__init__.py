"""
Infrastructure module - event bus, logging, paths, and external collaborators.

Collaborator clients (AI providers, Google APIs, command runner, system
monitor) are imported from their own modules.
"""

from .data_paths import (
    get_project_root,
    get_data_root,
    get_db_path,
    get_backup_dir,
    get_log_dir,
    get_uploads_dir,
    get_google_token_path,
)

from .logging_config import setup_logging

from .event_bus import (
    EventBus,
    Observer,
    MemoryObserver,
    WebSocketObserver,
    build_envelope,
)

__all__ = [
    # data_paths
    "get_project_root",
    "get_data_root",
    "get_db_path",
    "get_backup_dir",
    "get_log_dir",
    "get_uploads_dir",
    "get_google_token_path",
    # logging
    "setup_logging",
    # event_bus
    "EventBus",
    "Observer",
    "MemoryObserver",
    "WebSocketObserver",
    "build_envelope",
]
