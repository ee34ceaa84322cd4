"""Backup: timestamped JSON snapshot of recent ledger rows, with age-based pruning."""

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path

from homelab.scheduler.entities import JobType
from homelab.scheduler.persistence import EXPORTABLE_TABLES, Database

from .base import TaskHandler
from .config import BackupConfig


logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "backup-"


class BackupHandler(TaskHandler):
    job_type = JobType.BACKUP
    config_model = BackupConfig

    def __init__(self, database: Database, backup_dir: str | Path):
        self.database = database
        self.backup_dir = Path(backup_dir)

    def execute(self, config: dict) -> str:
        cfg: BackupConfig = self.parse_config(config)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        now = datetime.now(timezone.utc)
        snapshot = {"timestamp": now.isoformat()}
        for table in EXPORTABLE_TABLES:
            # Trigger definitions are always exported in full
            limit = None if table == "triggers" else cfg.row_limit
            snapshot[table] = self.database.fetch_table(table, limit=limit)

        target = self.backup_dir / f"{SNAPSHOT_PREFIX}{now.strftime('%Y%m%dT%H%M%S%fZ')}.json"
        partial = target.with_suffix(".json.tmp")
        partial.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(partial, target)

        pruned = self._prune(cfg.retention_days)
        logger.info(f"[Backup] Wrote {target.name}, pruned {pruned} old snapshot(s)")
        return f"Backup complete: {target}" + (f" (pruned {pruned})" if pruned else "")

    def _prune(self, retention_days: int) -> int:
        cutoff = time.time() - retention_days * 24 * 60 * 60
        pruned = 0
        for path in self.backup_dir.glob(f"{SNAPSHOT_PREFIX}*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    pruned += 1
            except OSError as e:
                logger.warning(f"[Backup] Could not prune {path.name}: {e}")
        return pruned
