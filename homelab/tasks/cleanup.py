"""Cleanup: delete aged files from scratch directories."""

import logging
import time
from pathlib import Path
from typing import Iterable

from homelab.scheduler.entities import JobType

from .base import TaskHandler
from .config import CleanupConfig


logger = logging.getLogger(__name__)


class CleanupHandler(TaskHandler):
    """
    Deletes top-level files older than `max_age_days` in each directory.

    Subdirectories are left alone; missing directories are skipped.
    """

    job_type = JobType.CLEANUP
    config_model = CleanupConfig

    def __init__(self, directories: Iterable[str | Path]):
        self.directories = [Path(d) for d in directories]

    def execute(self, config: dict) -> str:
        cfg: CleanupConfig = self.parse_config(config)
        cutoff = time.time() - cfg.max_age_days * 24 * 60 * 60

        cleaned = 0
        failed = 0
        for directory in self.directories:
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                try:
                    if path.is_file() and path.stat().st_mtime < cutoff:
                        path.unlink()
                        cleaned += 1
                except OSError as e:
                    failed += 1
                    logger.warning(f"[Cleanup] Could not remove {path}: {e}")

        logger.info(f"[Cleanup] Removed {cleaned} file(s)")
        message = f"{cleaned} file(s) cleaned"
        if failed:
            message += f", {failed} failed"
        return message
