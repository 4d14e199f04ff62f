"""Connection Service contract and implementations."""

from plcwatch.service.base import ConnectionService
from plcwatch.service.events import EventHub, EventSubscription

__all__ = ["ConnectionService", "EventHub", "EventSubscription"]
