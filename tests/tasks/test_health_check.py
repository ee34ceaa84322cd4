"""
Health check handler tests.
"""

import re

from homelab.tasks import HealthCheckHandler
from homelab.tasks.health_check import ALERT_EVENT


def test_records_metrics_and_reports_ok(stub_sampler, metrics, event_bus, observer):
    handler = HealthCheckHandler(stub_sampler, metrics, event_bus)

    outcome = handler.execute({})

    assert re.fullmatch(r"CPU: 12\.5%, RAM: 41\.0% OK", outcome)
    (sample,) = metrics.since(hours=1)
    assert sample.cpu_load == 12.5
    assert sample.mem_used_percent == 41.0
    assert observer.events(ALERT_EVENT) == []


def test_threshold_breaches_publish_alert(make_sampler, metrics, event_bus, observer):
    sampler = make_sampler(cpu_load=50.0, mem_used_percent=95.0, temperature=85.0)
    handler = HealthCheckHandler(sampler, metrics, event_bus)

    outcome = handler.execute({"memoryThreshold": 90, "temperatureThreshold": 80})

    assert outcome.startswith("CPU: 50.0%, RAM: 95.0% WARNING")
    (alert,) = observer.events(ALERT_EVENT)
    assert alert["payload"]["level"] == "warning"
    assert len(alert["payload"]["messages"]) == 2


def test_custom_thresholds(make_sampler, metrics, event_bus, observer):
    handler = HealthCheckHandler(make_sampler(cpu_load=30.0), metrics, event_bus)

    outcome = handler.execute({"cpuThreshold": 25})

    assert "CPU overload: 30.0%" in outcome
    assert len(observer.events(ALERT_EVENT)) == 1
