"""
Rule engine - maps item events to rule executions.

Listens to item state changes, commands and rule-model changes, asks the
trigger manager which rules match, and runs each matching rule with its own
evaluation context.
"""

import logging
import threading
from collections import deque
from datetime import datetime, UTC
from functools import partial
from typing import Any, Collection, Deque, Dict, Iterable, List, Optional, Set

from home_reactor.core.events import CommandEvent, CommandEventSubscriber
from home_reactor.core.items import (
    Item,
    ItemNotFoundError,
    ItemRegistry,
    ItemRegistryChangeListener,
    StateChangeListener,
)
from home_reactor.core.scheduler import JobScheduler

from .adapter import RuleContextProvider, ScriptEngine, ScriptExecutionError, StaticContextProvider
from .models import (
    RULES_MODEL_TYPE,
    VAR_PREVIOUS_STATE,
    VAR_RECEIVED_COMMAND,
    EvaluationContext,
    Rule,
    RuleExecution,
    RuleModel,
    TriggerType,
)
from .repository import ModelEventType, ModelRepository, ModelRepositoryChangeListener
from .triggers import RuleTriggerManager, SimpleTriggerManager

logger = logging.getLogger(__name__)


class RuleEngine(
    CommandEventSubscriber,
    StateChangeListener,
    ItemRegistryChangeListener,
    ModelRepositoryChangeListener,
):
    """
    Core of the rule runtime.

    Responsibilities:
    - Load rule models on activation and keep registrations in sync with the repository
    - Listen to state changes of every known item
    - Run STARTUP rules once per activation, SHUTDOWN rules on deactivation
    - Run matching CHANGE/UPDATE/COMMAND rules asynchronously on the job scheduler
    - Track execution history

    STARTUP and SHUTDOWN rules run synchronously on the calling thread. Every
    other execution is submitted to the scheduler's immediate pool, one job per
    matched rule, so a slow or failing rule never blocks the event source.
    """

    HISTORY_SIZE = 100  # Number of executions to keep in history

    def __init__(
        self,
        script_engine: ScriptEngine,
        scheduler: JobScheduler,
        trigger_manager: Optional[RuleTriggerManager] = None,
        context_provider: Optional[RuleContextProvider] = None,
        injector: Any = None,
        rules_enabled: bool = True,
    ) -> None:
        """
        Initialize the rule engine.

        Args:
            script_engine: Compiles rule script bodies
            scheduler: Runs rule executions
            trigger_manager: Trigger registrations (SimpleTriggerManager by default)
            context_provider: Global bindings for scripts (empty by default)
            injector: Host composition root, handed to the context provider
            rules_enabled: False keeps the engine inert (no loading, no execution)
        """
        self._script_engine = script_engine
        self._scheduler = scheduler
        self._trigger_manager = trigger_manager or SimpleTriggerManager()
        self._context_provider = context_provider or StaticContextProvider()
        self._injector = injector
        self._rules_enabled = rules_enabled

        self._item_registry: Optional[ItemRegistry] = None
        self._model_repository: Optional[ModelRepository] = None
        self._active = False

        # Loaded version of each rule model (key: model name)
        self._models: Dict[str, RuleModel] = {}
        self._models_lock = threading.Lock()

        # Items we listen to (key: item name)
        self._items: Dict[str, Item] = {}
        self._items_lock = threading.Lock()

        self._startup_lock = threading.RLock()
        self._startup_in_progress: Set[Rule] = set()

        self._history: Deque[RuleExecution] = deque(maxlen=self.HISTORY_SIZE)
        self._history_lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def trigger_manager(self) -> RuleTriggerManager:
        return self._trigger_manager

    # =========================================================================
    # Collaborators
    # =========================================================================

    def set_item_registry(self, item_registry: ItemRegistry) -> None:
        self._item_registry = item_registry
        item_registry.add_registry_change_listener(self)

    def unset_item_registry(self, item_registry: ItemRegistry) -> None:
        item_registry.remove_registry_change_listener(self)
        self._item_registry = None

    def set_model_repository(self, model_repository: ModelRepository) -> None:
        self._model_repository = model_repository
        model_repository.add_model_change_listener(self)

    def unset_model_repository(self, model_repository: ModelRepository) -> None:
        model_repository.remove_model_change_listener(self)
        self._model_repository = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def activate(self) -> None:
        """
        Load all rule models, listen to all items and run STARTUP rules.

        Does nothing but log when rule execution is disabled.
        """
        if not self._rules_enabled:
            logger.info("Rule engine is disabled.")
            return

        logger.debug("Started rule engine")
        self._active = True

        if self._model_repository is not None:
            for model_name in list(
                self._model_repository.get_all_model_names_of_type(RULES_MODEL_TYPE)
            ):
                model = self._model_repository.get_model(model_name)
                if isinstance(model, RuleModel):
                    with self._models_lock:
                        self._register_model(model_name, model)

        if self._item_registry is not None:
            for item in self._item_registry.get_items():
                self._track_item(item)

        self.run_startup_rules()

    def deactivate(self) -> None:
        """Run SHUTDOWN rules, then drop all registrations and item listeners."""
        if not self._active:
            return

        for rule in self._trigger_manager.get_rules(TriggerType.SHUTDOWN):
            logger.debug(f"Executing shutdown rule '{rule.name}'")
            self._run_rule(rule, EvaluationContext(), TriggerType.SHUTDOWN)

        self._active = False
        self._trigger_manager.clear_all()
        with self._models_lock:
            self._models.clear()

        with self._items_lock:
            items = list(self._items.values())
            self._items.clear()
        for item in items:
            item.remove_state_change_listener(self)

        logger.debug("Stopped rule engine")

    # =========================================================================
    # Item Registry Events
    # =========================================================================

    def item_added(self, item: Item) -> None:
        if not self._active:
            return
        self._track_item(item)
        self.run_startup_rules()

    def item_removed(self, item: Item) -> None:
        self._untrack_item(item)

    def all_items_changed(self, old_item_names: Collection[str]) -> None:
        if not self._active or self._item_registry is None:
            return

        items = self._item_registry.get_items()
        current = {item.name: item for item in items}
        with self._items_lock:
            # Same-name replacements are stale objects too
            vanished = [
                item for name, item in self._items.items() if current.get(name) is not item
            ]
        for item in vanished:
            self._untrack_item(item)
        for item in items:
            self._track_item(item)

        self.run_startup_rules()

    # =========================================================================
    # Item State Events
    # =========================================================================

    def state_changed(self, item: Item, old_state: Any, new_state: Any) -> None:
        if not self._active:
            return
        rules = self._trigger_manager.get_rules(
            TriggerType.CHANGE, item, old_state=old_state, new_state=new_state
        )
        self._execute_rules(rules, TriggerType.CHANGE, VAR_PREVIOUS_STATE, old_state)

    def state_updated(self, item: Item, state: Any) -> None:
        if not self._active:
            return
        rules = self._trigger_manager.get_rules(TriggerType.UPDATE, item, new_state=state)
        self._execute_rules(rules, TriggerType.UPDATE)

    def receive_command(self, event: CommandEvent) -> None:
        if not self._active or self._item_registry is None:
            return

        try:
            item = self._item_registry.get_item(event.item_name)
        except ItemNotFoundError:
            # Commands for unknown items are normal; ignore them
            return

        rules = self._trigger_manager.get_rules(TriggerType.COMMAND, item, command=event.command)
        self._execute_rules(rules, TriggerType.COMMAND, VAR_RECEIVED_COMMAND, event.command)

    # =========================================================================
    # Model Repository Events
    # =========================================================================

    def model_changed(self, model_name: str, event_type: ModelEventType) -> None:
        if not self._active or not model_name.endswith(f".{RULES_MODEL_TYPE}"):
            return

        added = False
        with self._models_lock:
            if event_type in (ModelEventType.REMOVED, ModelEventType.MODIFIED):
                old_model = self._models.pop(model_name, None)
                if old_model is not None:
                    self._trigger_manager.remove_rule_model(old_model)

            if event_type in (ModelEventType.ADDED, ModelEventType.MODIFIED):
                model = (
                    self._model_repository.get_model(model_name)
                    if self._model_repository is not None
                    else None
                )
                if isinstance(model, RuleModel):
                    self._register_model(model_name, model)
                    added = True

        if added:
            self.run_startup_rules()

    # =========================================================================
    # Execution
    # =========================================================================

    def run_startup_rules(self) -> None:
        """
        Run every registered STARTUP rule once, sequentially.

        Each rule is unregistered from STARTUP after it ran, whether it
        succeeded or failed.
        """
        if not self._active:
            return

        with self._startup_lock:
            for rule in self._trigger_manager.get_rules(TriggerType.STARTUP):
                # A startup rule can add items, which re-enters here and may
                # already have run later rules of this snapshot
                if rule in self._startup_in_progress or rule not in self._trigger_manager.get_rules(
                    TriggerType.STARTUP
                ):
                    continue
                self._startup_in_progress.add(rule)
                try:
                    logger.debug(f"Executing startup rule '{rule.name}'")
                    self._run_rule(rule, EvaluationContext(), TriggerType.STARTUP)
                finally:
                    self._trigger_manager.remove_rule(TriggerType.STARTUP, rule)
                    self._startup_in_progress.discard(rule)

    def _execute_rules(
        self,
        rules: Iterable[Rule],
        trigger_type: TriggerType,
        variable: Optional[str] = None,
        value: Any = None,
    ) -> None:
        """Submit one independent execution per rule."""
        for rule in rules:
            context = EvaluationContext()
            if variable is not None:
                context.new_value(variable, value)

            logger.debug(f"Scheduling rule '{rule.name}'")
            try:
                self._scheduler.submit(partial(self._run_rule, rule, context, trigger_type))
            except RuntimeError as e:
                logger.error(f"Cannot schedule rule '{rule.name}': {e}")

    def _run_rule(
        self,
        rule: Rule,
        context: EvaluationContext,
        trigger_type: TriggerType,
    ) -> bool:
        """
        Compile and run a rule's script.

        Failures are logged and recorded, never raised.

        Returns:
            True if the script ran without error
        """
        start_time = datetime.now(UTC)
        error: Optional[str] = None

        try:
            script = self._script_engine.new_script(rule.script)
            logger.debug(f"Executing rule '{rule.name}'")
            context.set_global_context(self._context_provider.get_context(rule, self._injector))
            script.execute(context)
        except ScriptExecutionError as e:
            error = str(e.root_cause)
            logger.error(f"Error during the execution of rule '{rule.name}': {error}")
            logger.debug(f"Error during the execution of rule '{rule.name}'", exc_info=True)
        except Exception as e:
            error = str(e)
            logger.error(f"Error during the execution of rule '{rule.name}': {e}", exc_info=True)

        end_time = datetime.now(UTC)
        self._record_execution(
            RuleExecution(
                rule_name=rule.name,
                trigger_type=trigger_type,
                success=error is None,
                error=error,
                timestamp=start_time,
                duration_ms=int((end_time - start_time).total_seconds() * 1000),
                bindings=context.local_values,
            )
        )
        return error is None

    # =========================================================================
    # Internals
    # =========================================================================

    def _register_model(self, model_name: str, model: RuleModel) -> None:
        # Caller holds self._models_lock
        old_model = self._models.get(model_name)
        if old_model is not None and old_model is not model:
            self._trigger_manager.remove_rule_model(old_model)
        self._models[model_name] = model
        self._trigger_manager.add_rule_model(model)
        logger.debug(f"Loaded {len(model.rules)} rules from {model_name}")

    def _track_item(self, item: Item) -> None:
        with self._items_lock:
            self._items[item.name] = item
        item.add_state_change_listener(self)

    def _untrack_item(self, item: Item) -> None:
        with self._items_lock:
            self._items.pop(item.name, None)
        item.remove_state_change_listener(self)

    # =========================================================================
    # History
    # =========================================================================

    def _record_execution(self, execution: RuleExecution) -> None:
        with self._history_lock:
            self._history.append(execution)

    def get_history(self, rule_name: Optional[str] = None, limit: int = 20) -> List[RuleExecution]:
        """
        Get execution history.

        Args:
            rule_name: Filter by rule (optional)
            limit: Maximum entries to return

        Returns:
            List of RuleExecution records (newest first)
        """
        with self._history_lock:
            history = list(self._history)

        result = []
        for execution in reversed(history):
            if rule_name and execution.rule_name != rule_name:
                continue
            result.append(execution)
            if len(result) >= limit:
                break
        return result

    @property
    def tracked_item_names(self) -> List[str]:
        with self._items_lock:
            return list(self._items)
