"""
Event types and subscriber interfaces.

Two kinds of events travel over the bus:
- CommandEvent: an instruction directed at an item (e.g. "ON")
- StateEvent: a new state reported for an item (e.g. 21.5)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CommandEvent:
    """
    A command sent to an item.

    Attributes:
        item_name: Name of the target item
        command: Opaque command value (e.g. "ON", "UP", 50)
    """

    item_name: str
    command: Any

    def __str__(self) -> str:
        return f"{self.item_name} received command {self.command}"


@dataclass(frozen=True)
class StateEvent:
    """
    A state update reported for an item.

    Attributes:
        item_name: Name of the item whose state was updated
        state: Opaque state value (e.g. "OPEN", 21.5)
    """

    item_name: str
    state: Any

    def __str__(self) -> str:
        return f"{self.item_name} state updated to {self.state}"


Event = CommandEvent | StateEvent


class CommandEventSubscriber(ABC):
    """Receives command events from the event bus."""

    @abstractmethod
    def receive_command(self, event: CommandEvent) -> None:
        """
        Handle a command event.

        Args:
            event: The command event
        """
        pass


class StateEventSubscriber(ABC):
    """Receives state update events from the event bus."""

    @abstractmethod
    def receive_update(self, event: StateEvent) -> None:
        """
        Handle a state update event.

        Args:
            event: The state event
        """
        pass
