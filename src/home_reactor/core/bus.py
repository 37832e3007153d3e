"""
Event Bus implementation for distributing command and state events.

Events can be published synchronously (delivered on the caller's thread) or
asynchronously (delivered on the job scheduler's immediate pool).
"""

import logging
import threading
from typing import Any, Optional, Tuple

from home_reactor.core.events import (
    CommandEvent,
    CommandEventSubscriber,
    Event,
    StateEvent,
    StateEventSubscriber,
)
from home_reactor.core.scheduler import JobScheduler

logger = logging.getLogger(__name__)


class EventBus:
    """
    Publish/subscribe channel for command and state events.

    Subscriber lists are copy-on-write: registration replaces the tuple, and
    delivery iterates the tuple that was current when delivery began.

    Each subscriber call is wrapped in try/except so one failing subscriber
    cannot block delivery to the others or reach the publisher.
    """

    def __init__(self, scheduler: Optional[JobScheduler] = None) -> None:
        """
        Initialize the event bus.

        Args:
            scheduler: Job scheduler used for asynchronous delivery
        """
        self._scheduler = scheduler
        self._command_subscribers: Tuple[CommandEventSubscriber, ...] = ()
        self._state_subscribers: Tuple[StateEventSubscriber, ...] = ()
        self._lock = threading.Lock()

    def set_scheduler(self, scheduler: JobScheduler) -> None:
        """
        Set the job scheduler used by publish_async().

        Args:
            scheduler: The JobScheduler instance
        """
        self._scheduler = scheduler

    # =========================================================================
    # Subscription
    # =========================================================================

    def subscribe_command(self, subscriber: CommandEventSubscriber) -> None:
        """Register a command subscriber. Registering twice has no effect."""
        with self._lock:
            if subscriber not in self._command_subscribers:
                self._command_subscribers = self._command_subscribers + (subscriber,)
        logger.debug(f"Subscribed {type(subscriber).__name__} to command events")

    def unsubscribe_command(self, subscriber: CommandEventSubscriber) -> None:
        """Remove a command subscriber, if registered."""
        with self._lock:
            self._command_subscribers = tuple(
                s for s in self._command_subscribers if s != subscriber
            )

    def subscribe_state(self, subscriber: StateEventSubscriber) -> None:
        """Register a state subscriber. Registering twice has no effect."""
        with self._lock:
            if subscriber not in self._state_subscribers:
                self._state_subscribers = self._state_subscribers + (subscriber,)
        logger.debug(f"Subscribed {type(subscriber).__name__} to state events")

    def unsubscribe_state(self, subscriber: StateEventSubscriber) -> None:
        """Remove a state subscriber, if registered."""
        with self._lock:
            self._state_subscribers = tuple(
                s for s in self._state_subscribers if s != subscriber
            )

    def subscriber_count(self) -> int:
        """Number of distinct registered subscribers, across both kinds."""
        return len({id(s) for s in self._command_subscribers + self._state_subscribers})

    # =========================================================================
    # Publishing
    # =========================================================================

    def publish_async(self, event: Event) -> None:
        """
        Deliver an event on the scheduler's immediate pool.

        Returns immediately; delivery happens afterwards.

        Args:
            event: The event to publish

        Raises:
            RuntimeError: If no scheduler has been set
        """
        if self._scheduler is None:
            raise RuntimeError("EventBus has no job scheduler for asynchronous delivery")

        self._scheduler.submit(lambda: self._notify_subscribers(event))

    def publish_sync(self, event: Event) -> None:
        """
        Deliver an event on the calling thread.

        Returns after every subscriber of the matching kind has been called.

        Args:
            event: The event to publish
        """
        self._notify_subscribers(event)

    def post_update(self, item_name: str, state: Any) -> None:
        """Asynchronously publish a state update for an item."""
        self.publish_async(StateEvent(item_name, state))

    def post_command(self, item_name: str, command: Any) -> None:
        """Asynchronously publish a command for an item."""
        self.publish_async(CommandEvent(item_name, command))

    def send_command(self, item_name: str, command: Any) -> None:
        """Synchronously publish a command for an item."""
        self.publish_sync(CommandEvent(item_name, command))

    def _notify_subscribers(self, event: Event) -> None:
        """
        Distribute an event to all subscribers of its kind.

        Args:
            event: Event to distribute
        """
        logger.debug(f"Publishing event: {event}")

        match event:
            case CommandEvent():
                for subscriber in self._command_subscribers:
                    try:
                        subscriber.receive_command(event)
                    except Exception as e:
                        self._log_delivery_error(event, subscriber, e)
            case StateEvent():
                for subscriber in self._state_subscribers:
                    try:
                        subscriber.receive_update(event)
                    except Exception as e:
                        self._log_delivery_error(event, subscriber, e)
            case _:
                logger.error(f"Received unsupported event type '{type(event).__name__}'")

    @staticmethod
    def _log_delivery_error(event: Event, subscriber: Any, error: Exception) -> None:
        logger.error(
            f"Error delivering event '{event}' to subscriber {subscriber!r}: {error}",
            exc_info=True,
        )
