"""Drive sync: modify-time based sync between a local directory and a Drive folder."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from homelab.infra.event_bus import EventBus
from homelab.infra.google_client import DriveClient, StorageError
from homelab.scheduler.entities import JobType
from homelab.scheduler.errors import HandlerError

from .base import TaskHandler
from .config import DriveSyncConfig


logger = logging.getLogger(__name__)

DRIVE_SYNC_EVENT = "drive-sync"


class DriveSyncHandler(TaskHandler):
    """
    Pull newer remote files, push local files missing remotely.

    A remote file is downloaded when it is missing locally or its remote
    modifiedTime is newer than the local mtime. Remote folders are not
    descended into. Per-file failures are collected, not raised.
    """

    job_type = JobType.DRIVE_SYNC
    config_model = DriveSyncConfig

    def __init__(self, drive: DriveClient, event_bus: EventBus):
        self.drive = drive
        self.event_bus = event_bus

    def execute(self, config: dict) -> str:
        cfg: DriveSyncConfig = self.parse_config(config)
        local_dir = Path(cfg.local_path).expanduser()
        if cfg.direction in ("both", "download"):
            local_dir.mkdir(parents=True, exist_ok=True)
        elif not local_dir.is_dir():
            raise HandlerError(f"Local path does not exist: {local_dir}")

        results: dict[str, list] = {"uploaded": [], "downloaded": [], "errors": []}

        remote_files = [f for f in self.drive.list_children(cfg.drive_folder_id) if not f.is_folder]
        remote_names = {f.name for f in remote_files}

        if cfg.direction in ("both", "download"):
            for remote in remote_files:
                target = local_dir / remote.name
                if not self._needs_download(target, remote.modified_time):
                    continue
                try:
                    target.write_bytes(self.drive.download(remote.id))
                    if remote.modified_time is not None:
                        stamp_ns = _to_millis(remote.modified_time) * 1_000_000
                        os.utime(target, ns=(stamp_ns, stamp_ns))
                    results["downloaded"].append(remote.name)
                except (StorageError, OSError) as e:
                    logger.warning(f"[DriveSync] Download failed for {remote.name}: {e}")
                    results["errors"].append({"file": remote.name, "error": str(e)})

        if cfg.direction in ("both", "upload") and local_dir.is_dir():
            for path in sorted(local_dir.iterdir()):
                if not path.is_file() or path.name in remote_names:
                    continue
                try:
                    uploaded = self.drive.upload(path.name, path.read_bytes(), cfg.drive_folder_id)
                    results["uploaded"].append(uploaded.name)
                except (StorageError, OSError) as e:
                    logger.warning(f"[DriveSync] Upload failed for {path.name}: {e}")
                    results["errors"].append({"file": path.name, "error": str(e)})

        self.event_bus.publish(DRIVE_SYNC_EVENT, results)

        return (
            f"Uploaded: {len(results['uploaded'])}, "
            f"downloaded: {len(results['downloaded'])}, "
            f"errors: {len(results['errors'])}"
        )

    @staticmethod
    def _needs_download(target: Path, remote_modified: Optional[datetime]) -> bool:
        if not target.exists():
            return True
        if remote_modified is None:
            return False
        # Millisecond resolution, matching Drive's modifiedTime
        return _to_millis(remote_modified) > target.stat().st_mtime_ns // 1_000_000


def _to_millis(moment: datetime) -> int:
    return round(moment.timestamp() * 1000)
