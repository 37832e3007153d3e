"""
RulesModule implementation.

Wires the RuleEngine into the kernel: command events from the bus, item and
model change notifications from the host's registries.
"""

import logging
from typing import Any, Dict, List, Optional

from home_reactor.core.bus import EventBus
from home_reactor.core.config import RuntimeConfig
from home_reactor.core.items import ItemRegistry
from home_reactor.core.scheduler import JobScheduler
from home_reactor.modules.base import RuntimeModule

from .adapter import RuleContextProvider, ScriptEngine
from .engine import RuleEngine
from .repository import ModelRepository
from .triggers import RuleTriggerManager

logger = logging.getLogger(__name__)


class RulesModule(RuntimeModule):
    """
    Module that runs automation rules.

    On attach the engine is activated: rule models are loaded, every item is
    observed and STARTUP rules run. On detach SHUTDOWN rules run and all
    registrations are dropped.
    """

    def __init__(
        self,
        script_engine: ScriptEngine,
        item_registry: Optional[ItemRegistry] = None,
        model_repository: Optional[ModelRepository] = None,
        trigger_manager: Optional[RuleTriggerManager] = None,
        context_provider: Optional[RuleContextProvider] = None,
        config: Optional[RuntimeConfig] = None,
        injector: Any = None,
    ) -> None:
        """
        Initialize the rules module.

        Args:
            script_engine: Compiles rule script bodies
            item_registry: Source of items (optional, can be set later)
            model_repository: Source of rule models (optional, can be set later)
            trigger_manager: Trigger registrations (SimpleTriggerManager by default)
            context_provider: Global bindings for scripts
            config: Runtime configuration; rules_enabled=False keeps the engine inert
            injector: Host composition root, handed to the context provider
        """
        self._script_engine = script_engine
        self._item_registry = item_registry
        self._model_repository = model_repository
        self._trigger_manager = trigger_manager
        self._context_provider = context_provider
        self._config = config or RuntimeConfig()
        self._injector = injector

        self._bus: Optional[EventBus] = None
        self._scheduler: Optional[JobScheduler] = None
        self._engine: Optional[RuleEngine] = None

    @property
    def id(self) -> str:
        return "rules"

    @property
    def engine(self) -> Optional[RuleEngine]:
        return self._engine

    def set_item_registry(self, item_registry: ItemRegistry) -> None:
        """Set the item registry. Must be called before attach() if not provided in constructor."""
        self._item_registry = item_registry

    def set_model_repository(self, model_repository: ModelRepository) -> None:
        """Set the model repository. Must be called before attach() if not provided in constructor."""
        self._model_repository = model_repository

    def attach(self, bus: EventBus, scheduler: JobScheduler) -> None:
        """
        Attach the rules module to the kernel.

        Creates the engine, subscribes it to command events and activates it.
        """
        logger.info("Attaching RulesModule")
        self._bus = bus
        self._scheduler = scheduler

        if self._item_registry is None:
            logger.warning("RulesModule attached without item registry; item rules will not fire")

        engine = RuleEngine(
            self._script_engine,
            scheduler,
            trigger_manager=self._trigger_manager,
            context_provider=self._context_provider,
            injector=self._injector,
            rules_enabled=self._config.rules_enabled,
        )
        if self._item_registry is not None:
            engine.set_item_registry(self._item_registry)
        if self._model_repository is not None:
            engine.set_model_repository(self._model_repository)

        self._engine = engine
        bus.subscribe_command(engine)
        engine.activate()

        logger.info("RulesModule ready")

    def detach(self) -> None:
        """Deactivate the engine and drop its subscriptions and jobs."""
        logger.info("Detaching RulesModule")
        engine = self._engine
        if engine is not None:
            engine.deactivate()
            if self._bus is not None:
                self._bus.unsubscribe_command(engine)
            if self._item_registry is not None:
                engine.unset_item_registry(self._item_registry)
            if self._model_repository is not None:
                engine.unset_model_repository(self._model_repository)
            self._engine = None

        super().detach()

    def get_history(self, rule_name: Optional[str] = None, limit: int = 20) -> List[Dict]:
        """
        Get rule execution history.

        Args:
            rule_name: Filter by rule (optional)
            limit: Maximum entries to return

        Returns:
            List of execution records (newest first)
        """
        if not self._engine:
            return []
        return [e.to_dict() for e in self._engine.get_history(rule_name, limit)]
