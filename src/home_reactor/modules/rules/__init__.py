"""
Rule engine for home-reactor.

Runs user-defined automation rules in response to item events and system
lifecycle transitions.

Features:
- STARTUP and SHUTDOWN rules, run once per activation/deactivation
- CHANGE, UPDATE and COMMAND rules, run asynchronously on the job scheduler
- Isolated execution: one rule's failure never affects another
- Incremental reload when rule models are added, modified or removed
- Execution history for debugging

Architecture:
    The engine depends on host collaborators only through interfaces:

    ┌──────────────┐  ┌──────────────────┐  ┌───────────────┐
    │ ItemRegistry │  │ ModelRepository  │  │   EventBus    │
    └──────┬───────┘  └────────┬─────────┘  └──────┬────────┘
           │ item/state events │ model events      │ commands
           ▼                   ▼                   ▼
    ┌─────────────────────────────────────────────────────┐
    │                     RuleEngine                      │
    │  RuleTriggerManager → matches → JobScheduler.submit │
    │                 ScriptEngine.execute(context)       │
    └─────────────────────────────────────────────────────┘
"""

from .module import RulesModule
from .models import (
    # Enums
    TriggerType,
    # Triggers
    SystemTrigger,
    ItemChangedTrigger,
    ItemUpdatedTrigger,
    ItemCommandTrigger,
    Trigger,
    # Rules
    Rule,
    RuleModel,
    RuleExecution,
    EvaluationContext,
    VAR_PREVIOUS_STATE,
    VAR_RECEIVED_COMMAND,
    RULES_MODEL_TYPE,
)
from .adapter import (
    Script,
    ScriptEngine,
    ScriptExecutionError,
    RuleContextProvider,
    CallableScript,
    CallableScriptEngine,
    StaticContextProvider,
)
from .repository import (
    ModelEventType,
    ModelRepository,
    ModelRepositoryChangeListener,
    InMemoryModelRepository,
)
from .triggers import RuleTriggerManager, SimpleTriggerManager
from .engine import RuleEngine

__all__ = [
    # Main module
    "RulesModule",
    # Engine
    "RuleEngine",
    # Triggers
    "RuleTriggerManager",
    "SimpleTriggerManager",
    "TriggerType",
    "SystemTrigger",
    "ItemChangedTrigger",
    "ItemUpdatedTrigger",
    "ItemCommandTrigger",
    "Trigger",
    # Rules
    "Rule",
    "RuleModel",
    "RuleExecution",
    "EvaluationContext",
    "VAR_PREVIOUS_STATE",
    "VAR_RECEIVED_COMMAND",
    "RULES_MODEL_TYPE",
    # Scripts
    "Script",
    "ScriptEngine",
    "ScriptExecutionError",
    "RuleContextProvider",
    "CallableScript",
    "CallableScriptEngine",
    "StaticContextProvider",
    # Repository
    "ModelEventType",
    "ModelRepository",
    "ModelRepositoryChangeListener",
    "InMemoryModelRepository",
]
