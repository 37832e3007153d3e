"""
Item model interfaces and in-memory reference implementations.

The host platform owns the real item model; the kernel only relies on the
abstract interfaces below. GenericItem and InMemoryItemRegistry are complete
enough for small deployments and for tests.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Collection, Dict, Iterable, List, Optional, Tuple

from home_reactor.core.events import StateEvent, StateEventSubscriber

logger = logging.getLogger(__name__)


class ItemNotFoundError(LookupError):
    """Raised when an item name is not known to the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Item '{name}' does not exist")
        self.name = name


# =============================================================================
# Interfaces
# =============================================================================


class Item(ABC):
    """A controllable or observable entity identified by name."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def state(self) -> Any:
        pass

    @abstractmethod
    def add_state_change_listener(self, listener: "StateChangeListener") -> None:
        pass

    @abstractmethod
    def remove_state_change_listener(self, listener: "StateChangeListener") -> None:
        pass


class StateChangeListener(ABC):
    """Notified when an item's state is changed or updated."""

    @abstractmethod
    def state_changed(self, item: Item, old_state: Any, new_state: Any) -> None:
        """Called when the item's state transitioned to a different value."""
        pass

    @abstractmethod
    def state_updated(self, item: Item, state: Any) -> None:
        """Called whenever a state is posted to the item, changed or not."""
        pass


class ItemRegistryChangeListener(ABC):
    """Notified when items are added to or removed from a registry."""

    @abstractmethod
    def item_added(self, item: Item) -> None:
        pass

    @abstractmethod
    def item_removed(self, item: Item) -> None:
        pass

    @abstractmethod
    def all_items_changed(self, old_item_names: Collection[str]) -> None:
        """
        Called when the whole item set was replaced.

        Args:
            old_item_names: Names of the items before the replacement
        """
        pass


class ItemRegistry(ABC):
    """Lookup of all items known to the system."""

    @abstractmethod
    def get_items(self) -> List[Item]:
        pass

    @abstractmethod
    def get_item(self, name: str) -> Item:
        """
        Get an item by name.

        Raises:
            ItemNotFoundError: If no item with that name exists
        """
        pass

    @abstractmethod
    def add_registry_change_listener(self, listener: ItemRegistryChangeListener) -> None:
        pass

    @abstractmethod
    def remove_registry_change_listener(self, listener: ItemRegistryChangeListener) -> None:
        pass


# =============================================================================
# Reference implementations
# =============================================================================


class GenericItem(Item):
    """
    Item holding a single state value.

    set_state() notifies state_updated on every call and state_changed when
    the new value differs from the previous one.
    """

    def __init__(self, name: str, state: Any = None) -> None:
        self._name = name
        self._state = state
        self._listeners: Tuple[StateChangeListener, ...] = ()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"GenericItem({self._name!r}, state={self._state!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> Any:
        return self._state

    def set_state(self, state: Any) -> None:
        """
        Post a new state to the item and notify listeners.

        Args:
            state: The new state
        """
        with self._lock:
            old_state = self._state
            self._state = state
            listeners = self._listeners

        for listener in listeners:
            try:
                if old_state != state:
                    listener.state_changed(self, old_state, state)
                listener.state_updated(self, state)
            except Exception as e:
                logger.error(
                    f"Error notifying {type(listener).__name__} about {self._name}: {e}",
                    exc_info=True,
                )

    def add_state_change_listener(self, listener: StateChangeListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def remove_state_change_listener(self, listener: StateChangeListener) -> None:
        with self._lock:
            self._listeners = tuple(l for l in self._listeners if l != listener)

    def has_listener(self, listener: StateChangeListener) -> bool:
        return listener in self._listeners


class InMemoryItemRegistry(ItemRegistry):
    """Thread-safe registry keeping items in a dict."""

    def __init__(self, items: Optional[Iterable[Item]] = None) -> None:
        self._items: Dict[str, Item] = {item.name: item for item in items or []}
        self._listeners: Tuple[ItemRegistryChangeListener, ...] = ()
        self._lock = threading.Lock()

    def get_items(self) -> List[Item]:
        with self._lock:
            return list(self._items.values())

    def get_item(self, name: str) -> Item:
        with self._lock:
            item = self._items.get(name)
        if item is None:
            raise ItemNotFoundError(name)
        return item

    def add_item(self, item: Item) -> None:
        """
        Add an item and notify listeners.

        Raises:
            ValueError: If an item with the same name already exists
        """
        with self._lock:
            if item.name in self._items:
                raise ValueError(f"Item '{item.name}' already exists")
            self._items[item.name] = item
            listeners = self._listeners

        logger.info(f"Added item: {item.name}")
        for listener in listeners:
            listener.item_added(item)

    def remove_item(self, name: str) -> Item:
        """
        Remove an item and notify listeners.

        Raises:
            ItemNotFoundError: If no item with that name exists
        """
        with self._lock:
            item = self._items.pop(name, None)
            listeners = self._listeners
        if item is None:
            raise ItemNotFoundError(name)

        logger.info(f"Removed item: {name}")
        for listener in listeners:
            listener.item_removed(item)
        return item

    def replace_items(self, items: Iterable[Item]) -> None:
        """Replace the whole item set and notify listeners once."""
        with self._lock:
            old_names = list(self._items)
            self._items = {item.name: item for item in items}
            listeners = self._listeners

        logger.info(f"Replaced {len(old_names)} items with {len(self._items)}")
        for listener in listeners:
            listener.all_items_changed(old_names)

    def add_registry_change_listener(self, listener: ItemRegistryChangeListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def remove_registry_change_listener(self, listener: ItemRegistryChangeListener) -> None:
        with self._lock:
            self._listeners = tuple(l for l in self._listeners if l != listener)


class ItemStateUpdater(StateEventSubscriber):
    """
    Applies state events from the bus to the registry's items.

    Events for unknown items, or items that cannot hold a posted state, are
    ignored.
    """

    def __init__(self, registry: ItemRegistry) -> None:
        self._registry = registry

    def receive_update(self, event: StateEvent) -> None:
        try:
            item = self._registry.get_item(event.item_name)
        except ItemNotFoundError:
            logger.debug(f"Ignoring state update for unknown item {event.item_name}")
            return

        if isinstance(item, GenericItem):
            item.set_state(event.state)
