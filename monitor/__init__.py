"""
Public API of the nutrition-policy discussion monitor.
"""
from __future__ import annotations

from monitor.enrichment import enrich
from monitor.models import Platform, RunStatus, SentimentLabel
from monitor.pipeline import MonitorPipeline
from monitor.settings import MonitorSettings, load_settings

__all__ = [
    "MonitorPipeline",
    "MonitorSettings",
    "Platform",
    "RunStatus",
    "SentimentLabel",
    "enrich",
    "load_settings",
]
