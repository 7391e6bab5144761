"""
Monitoring Package for Model Vitals

This package contains the probing and reporting machinery:
- Probe variants (chat, embedding, collection)
- Exporter client (run/complete/fail pings)
- Probe runner with cron schedules
- Monitor orchestrator and the optional results server
"""

from monitoring.probes import (
    ProbeOutcome,
    Probe,
    ChatProbe,
    EmbeddingProbe,
    CollectionProbe,
    build_probe
)
from monitoring.exporter import ExporterClient
from monitoring.scheduler import ProbeBinding, Schedule, ProbeRunner
from monitoring.web import ResultsServer
from monitoring.monitor import Monitor

__all__ = [
    "ProbeOutcome",
    "Probe",
    "ChatProbe",
    "EmbeddingProbe",
    "CollectionProbe",
    "build_probe",
    "ExporterClient",
    "ProbeBinding",
    "Schedule",
    "ProbeRunner",
    "ResultsServer",
    "Monitor"
]
