"""
Tests for host sampling and the system-stats publisher.
"""

import time
from types import SimpleNamespace
from unittest.mock import patch

from homelab.infra.event_bus import EventBus, MemoryObserver
from homelab.infra.system_monitor import SYSTEM_STATS_EVENT, SystemMonitor, SystemSampler


def test_sampler_reads_psutil():
    memory = SimpleNamespace(percent=55.5, total=1000, used=555)
    sensors = {"coretemp": [SimpleNamespace(current=0.0), SimpleNamespace(current=61.0)]}

    with patch("homelab.infra.system_monitor.psutil") as fake_psutil:
        fake_psutil.cpu_percent.return_value = [10.0, 30.0]
        fake_psutil.virtual_memory.return_value = memory
        fake_psutil.sensors_temperatures.return_value = sensors

        snapshot = SystemSampler(cpu_interval=0).sample()

    assert snapshot.cpu_load == 20.0
    assert snapshot.mem_used_percent == 55.5
    assert snapshot.temperature == 61.0
    assert snapshot.cpu_cores == [10.0, 30.0]


def test_sampler_without_sensors():
    with patch("homelab.infra.system_monitor.psutil") as fake_psutil:
        fake_psutil.cpu_percent.return_value = []
        fake_psutil.virtual_memory.return_value = SimpleNamespace(percent=1.0, total=1, used=0)
        fake_psutil.sensors_temperatures.side_effect = OSError("no sensors")

        snapshot = SystemSampler(cpu_interval=0).sample()

    assert snapshot.cpu_load == 0.0
    assert snapshot.temperature is None


def test_publish_once_payload(stub_sampler):
    bus = EventBus()
    observer = bus.subscribe(MemoryObserver())

    SystemMonitor(bus, stub_sampler).publish_once()

    (event,) = observer.events(SYSTEM_STATS_EVENT)
    assert event["payload"]["cpu"]["load"] == 12.5
    assert event["payload"]["memory"]["usedPercent"] == 41.0
    assert event["payload"]["temperature"] is None


def test_loop_skips_sampling_without_observers(stub_sampler):
    monitor = SystemMonitor(EventBus(), stub_sampler, interval=0.01)

    monitor.start()
    time.sleep(0.1)
    monitor.stop()

    assert stub_sampler.calls == 0
    assert not monitor.is_running


def test_loop_publishes_while_observed(stub_sampler):
    bus = EventBus()
    observer = bus.subscribe(MemoryObserver())
    monitor = SystemMonitor(bus, stub_sampler, interval=0.01)

    monitor.start()
    deadline = time.monotonic() + 2
    while not observer.events(SYSTEM_STATS_EVENT) and time.monotonic() < deadline:
        time.sleep(0.01)
    monitor.stop()

    assert observer.events(SYSTEM_STATS_EVENT)
