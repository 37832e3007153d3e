"""
Data models for the rule engine.

Defines trigger types, trigger specifications, rules and the evaluation
context a rule's script runs with.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

# Names under which trigger values are exposed to rule scripts
VAR_RECEIVED_COMMAND = "receivedCommand"
VAR_PREVIOUS_STATE = "previousState"

RULES_MODEL_TYPE = "rules"


# =============================================================================
# Enums
# =============================================================================


class TriggerType(Enum):
    """Conditions under which a rule is eligible to run."""

    STARTUP = "startup"  # Rule engine activated (or rules/items became available)
    SHUTDOWN = "shutdown"  # Rule engine deactivated
    CHANGE = "change"  # Item state transitioned to a different value
    UPDATE = "update"  # Item received a state, changed or not
    COMMAND = "command"  # Item received a command


# =============================================================================
# Trigger Specifications
# =============================================================================


@dataclass(frozen=True)
class SystemTrigger:
    """Trigger on system startup or shutdown."""

    on: TriggerType  # TriggerType.STARTUP or TriggerType.SHUTDOWN

    def __post_init__(self) -> None:
        if self.on not in (TriggerType.STARTUP, TriggerType.SHUTDOWN):
            raise ValueError(f"System trigger must be STARTUP or SHUTDOWN, got {self.on}")

    @property
    def trigger_type(self) -> TriggerType:
        return self.on


@dataclass(frozen=True)
class ItemChangedTrigger:
    """Trigger when an item's state changes."""

    item_name: str
    from_state: Optional[Any] = None  # None = any previous state
    to_state: Optional[Any] = None  # None = any new state

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.CHANGE


@dataclass(frozen=True)
class ItemUpdatedTrigger:
    """Trigger when an item receives a state update."""

    item_name: str
    state: Optional[Any] = None  # None = any state

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.UPDATE


@dataclass(frozen=True)
class ItemCommandTrigger:
    """Trigger when an item receives a command."""

    item_name: str
    command: Optional[Any] = None  # None = any command

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.COMMAND


Trigger = SystemTrigger | ItemChangedTrigger | ItemUpdatedTrigger | ItemCommandTrigger


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True, eq=False)
class Rule:
    """
    An automation rule.

    Rules compare by identity: two rules with the same name in different
    models (or different versions of one model) are distinct registrations.

    Attributes:
        name: Rule name, used in logs and history
        triggers: Trigger specifications, in declaration order
        script: Opaque script body, compiled by the ScriptEngine
    """

    name: str
    triggers: Tuple[Trigger, ...]
    script: Any

    def __repr__(self) -> str:
        return f"Rule({self.name!r})"

    def has_trigger(self, trigger_type: TriggerType) -> bool:
        return any(t.trigger_type == trigger_type for t in self.triggers)


@dataclass(frozen=True, eq=False)
class RuleModel:
    """A named collection of rules, e.g. the contents of one rules file."""

    name: str
    rules: Tuple[Rule, ...] = ()


# =============================================================================
# Evaluation Context
# =============================================================================


class EvaluationContext(Mapping[str, Any]):
    """
    Variable bindings visible to one rule execution.

    Local values (set via new_value) shadow the global context supplied by
    the context provider. A context is created per execution and never shared.
    """

    def __init__(self, global_context: Optional[Mapping[str, Any]] = None) -> None:
        self._global: Dict[str, Any] = dict(global_context or {})
        self._values: Dict[str, Any] = {}

    def set_global_context(self, global_context: Mapping[str, Any]) -> None:
        self._global = dict(global_context)

    def new_value(self, name: str, value: Any) -> None:
        """Bind a local variable."""
        self._values[name] = value

    def get_value(self, name: str, default: Any = None) -> Any:
        if name in self._values:
            return self._values[name]
        return self._global.get(name, default)

    def __getitem__(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        return self._global[name]

    def __iter__(self) -> Iterator[str]:
        yield from self._values
        yield from (k for k in self._global if k not in self._values)

    def __len__(self) -> int:
        return len(self._values.keys() | self._global.keys())

    @property
    def local_values(self) -> Dict[str, Any]:
        return dict(self._values)


# =============================================================================
# Execution Records
# =============================================================================


@dataclass
class RuleExecution:
    """Record of a rule execution (for history/debugging)."""

    rule_name: str
    trigger_type: TriggerType
    success: bool
    error: Optional[str]
    timestamp: datetime
    duration_ms: int
    bindings: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "rule_name": self.rule_name,
            "trigger_type": self.trigger_type.value,
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "bindings": {k: repr(v) for k, v in self.bindings.items()},
        }
