"""
Fixed catalog of trigger templates, plus the triggers seeded on first start.
"""

from .entities import JobType, PresetTemplate, TriggerDraft


PRESETS: tuple[PresetTemplate, ...] = (
    PresetTemplate(
        name="Daily backup",
        schedule="0 2 * * *",
        job_type=JobType.BACKUP,
        description="Snapshot recent data every day at 02:00",
    ),
    PresetTemplate(
        name="Drive sync",
        schedule="*/30 * * * *",
        job_type=JobType.DRIVE_SYNC,
        description="Sync a local folder with Google Drive every 30 minutes",
    ),
    PresetTemplate(
        name="Daily AI report",
        schedule="0 9 * * *",
        job_type=JobType.AI_REPORT,
        description="AI summary of the last 24 hours of system metrics at 09:00",
    ),
    PresetTemplate(
        name="Health check",
        schedule="*/5 * * * *",
        job_type=JobType.HEALTH_CHECK,
        description="Record CPU, memory and temperature every 5 minutes",
    ),
    PresetTemplate(
        name="Weekly cleanup",
        schedule="0 3 * * 0",
        job_type=JobType.CLEANUP,
        description="Delete scratch files older than 7 days, Sundays at 03:00",
    ),
    PresetTemplate(
        name="Email check",
        schedule="*/10 * * * *",
        job_type=JobType.EMAIL_CHECK,
        description="Summarize new mail and file attachments on Drive every 10 minutes",
    ),
)


def list_presets() -> list[PresetTemplate]:
    return list(PRESETS)


def default_drafts() -> list[TriggerDraft]:
    """Triggers created when the trigger table is empty at first start."""
    return [
        TriggerDraft(
            name="System metrics collection",
            schedule="*/5 * * * *",
            job_type=JobType.HEALTH_CHECK.value,
        ),
        TriggerDraft(
            name="Temp file cleanup",
            schedule="0 3 * * 0",
            job_type=JobType.CLEANUP.value,
        ),
    ]
