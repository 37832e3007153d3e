"""
Core components of the home-reactor kernel.

This package contains:
- events: Command and state events, subscriber interfaces
- bus: Event Bus implementation
- scheduler: Shared job scheduler (immediate and scheduled pools)
- config: Runtime configuration
- items: Item model interfaces and in-memory implementations
"""

from home_reactor.core.events import (
    CommandEvent,
    CommandEventSubscriber,
    Event,
    StateEvent,
    StateEventSubscriber,
)
from home_reactor.core.config import RuntimeConfig
from home_reactor.core.scheduler import JobHandle, JobScheduler, interrupted
from home_reactor.core.bus import EventBus
from home_reactor.core.items import (
    GenericItem,
    InMemoryItemRegistry,
    Item,
    ItemNotFoundError,
    ItemRegistry,
    ItemRegistryChangeListener,
    ItemStateUpdater,
    StateChangeListener,
)

__all__ = [
    "CommandEvent",
    "CommandEventSubscriber",
    "Event",
    "StateEvent",
    "StateEventSubscriber",
    "RuntimeConfig",
    "JobHandle",
    "JobScheduler",
    "interrupted",
    "EventBus",
    "GenericItem",
    "InMemoryItemRegistry",
    "Item",
    "ItemNotFoundError",
    "ItemRegistry",
    "ItemRegistryChangeListener",
    "ItemStateUpdater",
    "StateChangeListener",
]
