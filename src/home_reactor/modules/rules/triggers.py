"""
Trigger registrations: which rules fire for which trigger type.

RuleTriggerManager is the query interface the engine depends on.
SimpleTriggerManager matches trigger specifications by equality.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from home_reactor.core.items import Item

from .models import (
    ItemChangedTrigger,
    ItemCommandTrigger,
    ItemUpdatedTrigger,
    Rule,
    RuleModel,
    SystemTrigger,
    Trigger,
    TriggerType,
)

logger = logging.getLogger(__name__)


class RuleTriggerManager(ABC):
    """Keeps trigger registrations and answers which rules match an event."""

    @abstractmethod
    def add_rule_model(self, model: RuleModel) -> None:
        """Register every rule of a model under its trigger types."""
        pass

    @abstractmethod
    def remove_rule_model(self, model: RuleModel) -> None:
        """Unregister every rule of a model."""
        pass

    @abstractmethod
    def remove_rule(self, trigger_type: TriggerType, rule: Rule) -> None:
        """Unregister one rule from a single trigger type."""
        pass

    @abstractmethod
    def get_rules(
        self,
        trigger_type: TriggerType,
        item: Optional[Item] = None,
        *,
        old_state: Any = None,
        new_state: Any = None,
        command: Any = None,
    ) -> List[Rule]:
        """
        Find the rules whose trigger matches.

        Args:
            trigger_type: Trigger type to query
            item: Item the event relates to (CHANGE, UPDATE, COMMAND)
            old_state: Previous state (CHANGE)
            new_state: New state (CHANGE, UPDATE)
            command: Received command (COMMAND)

        Returns:
            Matching rules, each at most once
        """
        pass

    @abstractmethod
    def clear_all(self) -> None:
        """Drop all registrations."""
        pass


def _value_matches(expected: Any, actual: Any) -> bool:
    """None matches anything; otherwise compare directly or by string form."""
    if expected is None:
        return True
    return expected == actual or str(expected) == str(actual)


class SimpleTriggerManager(RuleTriggerManager):
    """
    In-memory trigger registrations.

    Registrations per trigger type are replaced under a lock, so a query sees
    either none or all of a model's rules, never a partial update.
    """

    def __init__(self) -> None:
        self._rules: Dict[TriggerType, List[Rule]] = {t: [] for t in TriggerType}
        self._lock = threading.Lock()

    def add_rule_model(self, model: RuleModel) -> None:
        with self._lock:
            for rule in model.rules:
                for trigger in rule.triggers:
                    registered = self._rules[trigger.trigger_type]
                    if rule not in registered:
                        registered.append(rule)
        logger.debug(f"Registered {len(model.rules)} rules of model {model.name}")

    def remove_rule_model(self, model: RuleModel) -> None:
        rules = set(model.rules)
        with self._lock:
            for trigger_type, registered in self._rules.items():
                self._rules[trigger_type] = [r for r in registered if r not in rules]
        logger.debug(f"Unregistered rules of model {model.name}")

    def remove_rule(self, trigger_type: TriggerType, rule: Rule) -> None:
        with self._lock:
            self._rules[trigger_type] = [r for r in self._rules[trigger_type] if r is not rule]

    def get_rules(
        self,
        trigger_type: TriggerType,
        item: Optional[Item] = None,
        *,
        old_state: Any = None,
        new_state: Any = None,
        command: Any = None,
    ) -> List[Rule]:
        with self._lock:
            candidates = list(self._rules[trigger_type])

        return [
            rule
            for rule in candidates
            if any(
                trigger.trigger_type == trigger_type
                and self._trigger_matches(trigger, item, old_state, new_state, command)
                for trigger in rule.triggers
            )
        ]

    def clear_all(self) -> None:
        with self._lock:
            for registered in self._rules.values():
                registered.clear()

    def _trigger_matches(
        self,
        trigger: Trigger,
        item: Optional[Item],
        old_state: Any,
        new_state: Any,
        command: Any,
    ) -> bool:
        match trigger:
            case SystemTrigger():
                return True
            case ItemChangedTrigger():
                return (
                    item is not None
                    and trigger.item_name == item.name
                    and _value_matches(trigger.from_state, old_state)
                    and _value_matches(trigger.to_state, new_state)
                )
            case ItemUpdatedTrigger():
                return (
                    item is not None
                    and trigger.item_name == item.name
                    and _value_matches(trigger.state, new_state)
                )
            case ItemCommandTrigger():
                return (
                    item is not None
                    and trigger.item_name == item.name
                    and _value_matches(trigger.command, command)
                )
        return False
