"""AI report: summarize recent host metrics into a notification."""

import logging

from homelab.infra.ai_provider import AIService
from homelab.scheduler.entities import JobType
from homelab.scheduler.persistence import MetricsStore, NotificationStore

from .base import TaskHandler
from .config import AIReportConfig


logger = logging.getLogger(__name__)

REPORT_PROMPT = """Write a short daily report for the home server:
- Average CPU: {avg_cpu:.1f}%
- Average memory: {avg_mem:.1f}%
- Peak CPU: {max_cpu:.1f}%
- Peak memory: {max_mem:.1f}%
- Metric samples: {count} over the last {hours:g} hours
Keep it concise and mention anything that needs attention."""

NOTIFICATION_MAX_CHARS = 500


class AIReportHandler(TaskHandler):
    job_type = JobType.AI_REPORT
    config_model = AIReportConfig

    def __init__(self, metrics: MetricsStore, notifications: NotificationStore, ai: AIService):
        self.metrics = metrics
        self.notifications = notifications
        self.ai = ai

    def execute(self, config: dict) -> str:
        cfg: AIReportConfig = self.parse_config(config)
        samples = self.metrics.since(hours=cfg.hours)

        cpu = [s.cpu_load for s in samples if s.cpu_load is not None]
        mem = [s.mem_used_percent for s in samples if s.mem_used_percent is not None]

        prompt = REPORT_PROMPT.format(
            avg_cpu=sum(cpu) / len(cpu) if cpu else 0.0,
            avg_mem=sum(mem) / len(mem) if mem else 0.0,
            max_cpu=max(cpu, default=0.0),
            max_mem=max(mem, default=0.0),
            count=len(samples),
            hours=cfg.hours,
        )

        # ProviderError propagates as the run's error outcome
        report = self.ai.complete(prompt, model=cfg.model)

        self.notifications.add("report", "Daily report", report[:NOTIFICATION_MAX_CHARS])
        logger.info(f"[AIReport] Report generated ({len(report)} chars, {len(samples)} samples)")
        return f"Report generated ({len(report)} chars)"
