"""Host resource metrics reported through OpenTelemetry observable instruments.

Each instrument's callback reads psutil when the metric reader collects, so
values are sampled once per export interval.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import psutil
from opentelemetry.metrics import CallbackOptions, Meter, Observation

from ..config import CollectorConfig

logger = logging.getLogger(__name__)

_CPU_STATES = ("user", "system", "idle")


def _memory_usage(_options: CallbackOptions) -> Iterable[Observation]:
    mem = psutil.virtual_memory()
    return [
        Observation(mem.used, {"state": "used"}),
        Observation(mem.available, {"state": "available"}),
    ]


def _memory_utilization(_options: CallbackOptions) -> Iterable[Observation]:
    return [Observation(psutil.virtual_memory().percent / 100.0)]


def _cpu_time(_options: CallbackOptions) -> Iterable[Observation]:
    times = psutil.cpu_times()
    return [Observation(getattr(times, state), {"state": state}) for state in _CPU_STATES]


def _cpu_utilization(_options: CallbackOptions) -> Iterable[Observation]:
    return [Observation(psutil.cpu_percent(interval=None) / 100.0)]


def _network_io(_options: CallbackOptions) -> Iterable[Observation]:
    observations: list[Observation] = []
    for iface, nio in psutil.net_io_counters(pernic=True).items():
        if iface == "lo":
            continue
        observations.append(Observation(nio.bytes_sent, {"device": iface, "direction": "transmit"}))
        observations.append(Observation(nio.bytes_recv, {"device": iface, "direction": "receive"}))
    return observations


def register_host_instruments(meter: Meter, config: CollectorConfig) -> list[str]:
    """Register the enabled host instruments on *meter*.

    Returns the names of the instruments registered.
    """
    names: list[str] = []
    if not config.enabled:
        return names

    if config.memory:
        meter.create_observable_gauge(
            "system.memory.usage",
            callbacks=[_memory_usage],
            unit="By",
            description="Memory in use and available",
        )
        meter.create_observable_gauge(
            "system.memory.utilization",
            callbacks=[_memory_utilization],
            unit="1",
            description="Fraction of memory in use",
        )
        names += ["system.memory.usage", "system.memory.utilization"]

    if config.cpu:
        # prime psutil so the first utilization reading is not 0.0
        psutil.cpu_percent(interval=None)
        meter.create_observable_counter(
            "system.cpu.time",
            callbacks=[_cpu_time],
            unit="s",
            description="Seconds the CPUs spent in each state",
        )
        meter.create_observable_gauge(
            "system.cpu.utilization",
            callbacks=[_cpu_utilization],
            unit="1",
            description="Fraction of CPU time in use",
        )
        names += ["system.cpu.time", "system.cpu.utilization"]

    if config.network:
        meter.create_observable_counter(
            "system.network.io",
            callbacks=[_network_io],
            unit="By",
            description="Bytes transmitted and received per interface",
        )
        names.append("system.network.io")

    logger.info("Registered host instruments: %s", ", ".join(names))
    return names
