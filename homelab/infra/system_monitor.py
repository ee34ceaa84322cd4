"""
Host statistics sampling.

SystemSampler reads CPU, memory and temperature through psutil.
SystemMonitor is a background loop publishing a `system-stats` event
every interval for live dashboards.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import psutil

from .event_bus import EventBus


logger = logging.getLogger(__name__)

SYSTEM_STATS_EVENT = "system-stats"


@dataclass
class SystemSnapshot:
    """One reading of host load."""

    cpu_load: float
    mem_used_percent: float
    temperature: Optional[float] = None
    mem_total: int = 0
    mem_used: int = 0
    cpu_cores: list[float] = field(default_factory=list)

    def to_event_payload(self) -> dict[str, Any]:
        return {
            "cpu": {
                "load": round(self.cpu_load, 1),
                "cores": [round(c, 1) for c in self.cpu_cores],
            },
            "memory": {
                "total": self.mem_total,
                "used": self.mem_used,
                "usedPercent": round(self.mem_used_percent, 1),
            },
            "temperature": self.temperature,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class SystemSampler:
    """Reads host statistics. Temperature is None where no sensor is exposed."""

    def __init__(self, cpu_interval: float = 0.5):
        self.cpu_interval = cpu_interval

    def sample(self) -> SystemSnapshot:
        cores = psutil.cpu_percent(interval=self.cpu_interval, percpu=True)
        cpu_load = sum(cores) / len(cores) if cores else 0.0
        memory = psutil.virtual_memory()

        return SystemSnapshot(
            cpu_load=cpu_load,
            mem_used_percent=memory.percent,
            temperature=self._read_temperature(),
            mem_total=memory.total,
            mem_used=memory.used,
            cpu_cores=list(cores),
        )

    @staticmethod
    def _read_temperature() -> Optional[float]:
        reader = getattr(psutil, "sensors_temperatures", None)
        if reader is None:
            return None
        try:
            sensors = reader()
        except (OSError, RuntimeError) as e:
            logger.debug(f"[SystemSampler] Temperature unavailable: {e}")
            return None

        for entries in (sensors or {}).values():
            for entry in entries:
                if entry.current:
                    return float(entry.current)
        return None


class SystemMonitor:
    """Background loop that publishes host stats on the event bus."""

    def __init__(
        self,
        event_bus: EventBus,
        sampler: Optional[SystemSampler] = None,
        interval: float = 10.0,
    ):
        self.event_bus = event_bus
        self.sampler = sampler or SystemSampler()
        self.interval = interval

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning("[SystemMonitor] Already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="system-monitor",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"[SystemMonitor] Started ({self.interval:.0f}s interval)")

    def stop(self, timeout: float = 5.0) -> None:
        if not self.is_running:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("[SystemMonitor] Stopped")

    def publish_once(self) -> None:
        snapshot = self.sampler.sample()
        self.event_bus.publish(SYSTEM_STATS_EVENT, snapshot.to_event_payload())

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            # Skip sampling when nobody is listening
            if self.event_bus.observer_count > 0:
                try:
                    self.publish_once()
                except Exception as e:
                    logger.warning(f"[SystemMonitor] Sample failed: {e}")
            self._stop_event.wait(self.interval)
