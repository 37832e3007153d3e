"""
home-reactor: A reactive automation kernel for home and building control.

This library provides:
- Event Bus for command and state events (sync and async delivery)
- Shared Job Scheduler with per-owner cancellation
- Rule engine driven by item events and system lifecycle
"""

from home_reactor.core.events import CommandEvent, StateEvent
from home_reactor.core.bus import EventBus
from home_reactor.core.config import RuntimeConfig
from home_reactor.core.scheduler import JobScheduler

__version__ = "0.1.0"

__all__ = [
    "CommandEvent",
    "StateEvent",
    "EventBus",
    "RuntimeConfig",
    "JobScheduler",
]
