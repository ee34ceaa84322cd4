"""Health check: sample host load, record it, alert on thresholds."""

import logging

from homelab.infra.event_bus import EventBus
from homelab.infra.system_monitor import SystemSampler
from homelab.scheduler.entities import JobType
from homelab.scheduler.persistence import MetricsStore

from .base import TaskHandler
from .config import HealthCheckConfig


logger = logging.getLogger(__name__)

ALERT_EVENT = "alert"


class HealthCheckHandler(TaskHandler):
    """
    Samples CPU / memory / temperature and appends a metrics row.

    Publishes an `alert` event when any threshold is exceeded. The
    outcome always reads "CPU: x%, RAM: y%".
    """

    job_type = JobType.HEALTH_CHECK
    config_model = HealthCheckConfig

    def __init__(self, sampler: SystemSampler, metrics: MetricsStore, event_bus: EventBus):
        self.sampler = sampler
        self.metrics = metrics
        self.event_bus = event_bus

    def execute(self, config: dict) -> str:
        cfg: HealthCheckConfig = self.parse_config(config)
        snapshot = self.sampler.sample()

        self.metrics.append(
            cpu_load=round(snapshot.cpu_load, 1),
            mem_used_percent=round(snapshot.mem_used_percent, 1),
            temperature=snapshot.temperature,
        )

        warnings = []
        if snapshot.cpu_load > cfg.cpu_threshold:
            warnings.append(f"CPU overload: {snapshot.cpu_load:.1f}%")
        if snapshot.mem_used_percent > cfg.memory_threshold:
            warnings.append(f"Memory low: {snapshot.mem_used_percent:.1f}%")
        if snapshot.temperature is not None and snapshot.temperature > cfg.temperature_threshold:
            warnings.append(f"Temperature high: {snapshot.temperature:.1f}°C")

        summary = f"CPU: {snapshot.cpu_load:.1f}%, RAM: {snapshot.mem_used_percent:.1f}%"
        if not warnings:
            return f"{summary} OK"

        logger.warning(f"[HealthCheck] Thresholds exceeded: {', '.join(warnings)}")
        self.event_bus.publish(ALERT_EVENT, {"level": "warning", "messages": warnings})
        return f"{summary} WARNING: {', '.join(warnings)}"
