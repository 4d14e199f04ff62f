"""Core state synchronization layer."""

from plcwatch.core.controller import LifecycleController
from plcwatch.core.ingestion import EventIngestionPipeline, IngestionStats
from plcwatch.core.projection import build_view, project
from plcwatch.core.registry import DeviceRegistry
from plcwatch.core.tracker import ConnectionStateTracker

__all__ = [
    "ConnectionStateTracker",
    "DeviceRegistry",
    "EventIngestionPipeline",
    "IngestionStats",
    "LifecycleController",
    "build_view",
    "project",
]
