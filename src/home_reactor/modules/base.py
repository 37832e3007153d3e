"""
Base classes for home-reactor modules.

Modules are plug-ins that add behavior on top of the kernel services.
"""

from abc import ABC, abstractmethod
from typing import Optional

from home_reactor.core.bus import EventBus
from home_reactor.core.scheduler import JobScheduler


class RuntimeModule(ABC):
    """
    Base class for runtime modules.

    A module:
    - Subscribes to events on the Event Bus
    - Submits deferred or repeating work to the Job Scheduler, with itself as owner
    - Maintains its own runtime state

    The host calls attach() when the module starts and detach() when it stops.
    """

    _scheduler: Optional[JobScheduler] = None

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier for this module type."""
        pass

    @abstractmethod
    def attach(self, bus: EventBus, scheduler: JobScheduler) -> None:
        """
        Attach the module to the kernel.

        Register event subscriptions and capture references to bus and scheduler.

        Args:
            bus: EventBus instance
            scheduler: JobScheduler instance
        """
        pass

    def detach(self) -> None:
        """
        Detach the module from the kernel.

        The default implementation cancels every delayed or repeating job the
        module submitted. Override to also drop subscriptions, and call super().
        """
        if self._scheduler is not None:
            self._scheduler.cancel_jobs(self)
