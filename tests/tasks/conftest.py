"""
Task handler fixtures.
"""

from unittest.mock import MagicMock

import pytest

from homelab.infra.event_bus import EventBus, MemoryObserver
from homelab.infra.google_client import FileMeta
from homelab.scheduler import Database, DedupLedger, MetricsStore, NotificationStore, UploadLogStore


@pytest.fixture
def database(temp_db_path) -> Database:
    return Database(temp_db_path)


@pytest.fixture
def metrics(database) -> MetricsStore:
    return MetricsStore(database)


@pytest.fixture
def notifications(database) -> NotificationStore:
    return NotificationStore(database)


@pytest.fixture
def uploads(database) -> UploadLogStore:
    return UploadLogStore(database)


@pytest.fixture
def dedup(database) -> DedupLedger:
    return DedupLedger(database, namespace="email", capacity=100)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def observer(event_bus) -> MemoryObserver:
    return event_bus.subscribe(MemoryObserver())


@pytest.fixture
def drive():
    """DriveClient double that creates folders and files on demand."""
    drive = MagicMock()
    drive.find_or_create_folder.side_effect = (
        lambda name, parent_folder_id=None: FileMeta(id=f"folder-{name}", name=name)
    )
    drive.upload.side_effect = (
        lambda name, data, parent_folder_id=None, mime_type=None: FileMeta(id=f"file-{name}", name=name)
    )
    return drive


@pytest.fixture
def ai():
    ai = MagicMock()
    ai.complete.return_value = "A short summary."
    return ai
