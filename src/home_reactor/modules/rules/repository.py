"""
Rule-definition repository interface.

The host owns loading and parsing of rule files; the engine only needs to
list models, fetch them by name and hear about changes.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .models import RuleModel

logger = logging.getLogger(__name__)


class ModelEventType(Enum):
    """Kinds of model repository changes."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class ModelRepositoryChangeListener(ABC):
    """Notified when a model is added, removed or modified."""

    @abstractmethod
    def model_changed(self, model_name: str, event_type: ModelEventType) -> None:
        pass


class ModelRepository(ABC):
    """Source of named models (rule files and others)."""

    @abstractmethod
    def get_all_model_names_of_type(self, model_type: str) -> List[str]:
        """
        List model names of a type.

        Args:
            model_type: Model kind, matched against the name's extension
                (e.g. "rules" for "lights.rules")
        """
        pass

    @abstractmethod
    def get_model(self, name: str) -> Optional[Any]:
        """Get a model by name, or None if it does not exist."""
        pass

    @abstractmethod
    def add_model_change_listener(self, listener: ModelRepositoryChangeListener) -> None:
        pass

    @abstractmethod
    def remove_model_change_listener(self, listener: ModelRepositoryChangeListener) -> None:
        pass


class InMemoryModelRepository(ModelRepository):
    """Thread-safe repository keeping models in a dict."""

    def __init__(self) -> None:
        self._models: Dict[str, Any] = {}
        self._listeners: Tuple[ModelRepositoryChangeListener, ...] = ()
        self._lock = threading.Lock()

    def get_all_model_names_of_type(self, model_type: str) -> List[str]:
        with self._lock:
            return [name for name in self._models if name.endswith(f".{model_type}")]

    def get_model(self, name: str) -> Optional[Any]:
        with self._lock:
            return self._models.get(name)

    def add_model(self, model: RuleModel) -> None:
        """Add or replace a model, notifying ADDED or MODIFIED."""
        with self._lock:
            event_type = ModelEventType.MODIFIED if model.name in self._models else ModelEventType.ADDED
            self._models[model.name] = model
        self._notify(model.name, event_type)

    def update_model(self, model: RuleModel) -> None:
        """
        Replace an existing model, notifying MODIFIED.

        Raises:
            KeyError: If no model with that name exists
        """
        with self._lock:
            if model.name not in self._models:
                raise KeyError(f"Model {model.name} does not exist")
            self._models[model.name] = model
        self._notify(model.name, ModelEventType.MODIFIED)

    def remove_model(self, name: str) -> bool:
        """
        Remove a model, notifying REMOVED.

        Returns:
            True if the model existed
        """
        with self._lock:
            existed = self._models.pop(name, None) is not None
        if existed:
            self._notify(name, ModelEventType.REMOVED)
        return existed

    def add_model_change_listener(self, listener: ModelRepositoryChangeListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def remove_model_change_listener(self, listener: ModelRepositoryChangeListener) -> None:
        with self._lock:
            self._listeners = tuple(l for l in self._listeners if l != listener)

    def _notify(self, name: str, event_type: ModelEventType) -> None:
        logger.debug(f"Model {name} {event_type.value}")
        for listener in self._listeners:
            listener.model_changed(name, event_type)
