"""
EventLogger implementation.

Logs every command and state event passing over the bus.
"""

import logging
from typing import Optional

from home_reactor.core.bus import EventBus
from home_reactor.core.events import (
    CommandEvent,
    CommandEventSubscriber,
    StateEvent,
    StateEventSubscriber,
)
from home_reactor.core.scheduler import JobScheduler
from home_reactor.modules.base import RuntimeModule

logger = logging.getLogger(__name__)

# Bus events go to a dedicated logger so hosts can route them separately
bus_logger = logging.getLogger("runtime.busevents")


class EventLogger(RuntimeModule, CommandEventSubscriber, StateEventSubscriber):
    """Module that writes bus events to the runtime.busevents log."""

    def __init__(self) -> None:
        self._bus: Optional[EventBus] = None
        self._scheduler: Optional[JobScheduler] = None

    @property
    def id(self) -> str:
        return "monitor"

    def attach(self, bus: EventBus, scheduler: JobScheduler) -> None:
        logger.info("Attaching EventLogger")
        self._bus = bus
        self._scheduler = scheduler
        bus.subscribe_command(self)
        bus.subscribe_state(self)

    def detach(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe_command(self)
            self._bus.unsubscribe_state(self)
            self._bus = None
        super().detach()

    def receive_command(self, event: CommandEvent) -> None:
        bus_logger.info(f"{event.item_name} received command {event.command}")

    def receive_update(self, event: StateEvent) -> None:
        bus_logger.info(f"{event.item_name} state updated to {event.state}")
