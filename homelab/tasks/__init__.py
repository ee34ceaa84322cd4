"""
Task handlers - one per job type.
"""

from .base import TaskHandler
from .registry import TaskRegistry
from .health_check import HealthCheckHandler
from .drive_sync import DriveSyncHandler
from .backup import BackupHandler
from .ai_report import AIReportHandler
from .cleanup import CleanupHandler
from .email_check import EmailCheckHandler
from .custom_command import CustomCommandHandler

__all__ = [
    "TaskHandler",
    "TaskRegistry",
    "HealthCheckHandler",
    "DriveSyncHandler",
    "BackupHandler",
    "AIReportHandler",
    "CleanupHandler",
    "EmailCheckHandler",
    "CustomCommandHandler",
]
