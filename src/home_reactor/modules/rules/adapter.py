"""
Script execution and context interfaces for the rule engine.

The rule language, its parser and its interpreter belong to the host. The
engine only asks the ScriptEngine to turn a rule's opaque script body into a
Script and runs it with an EvaluationContext. The RuleContextProvider
supplies the global variables a rule's script can see.

CallableScriptEngine treats script bodies as Python callables, which is
enough for embedding rules in Python code and for tests:

    rule = Rule(
        name="hall light",
        triggers=(ItemCommandTrigger("HallSwitch"),),
        script=lambda ctx: bus.send_command("HallLight", ctx[VAR_RECEIVED_COMMAND]),
    )
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

from .models import EvaluationContext, Rule


class ScriptExecutionError(Exception):
    """Raised when a rule script fails during execution."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def root_cause(self) -> BaseException:
        """Innermost cause of the failure."""
        error: BaseException = self
        while True:
            nested = getattr(error, "cause", None) or error.__cause__
            if nested is None or nested is error:
                return error
            error = nested


class Script(ABC):
    """An executable unit compiled from a rule's script body."""

    @abstractmethod
    def execute(self, context: EvaluationContext) -> Any:
        """
        Run the script.

        Args:
            context: Variable bindings for this execution

        Returns:
            The script's result, if any

        Raises:
            ScriptExecutionError: If the script fails
        """
        pass


class ScriptEngine(ABC):
    """Compiles script bodies into Scripts."""

    @abstractmethod
    def new_script(self, body: Any) -> Script:
        """
        Compile a script body.

        Args:
            body: Opaque script body from a Rule
        """
        pass


class RuleContextProvider(ABC):
    """Supplies the global variables visible to a rule's script."""

    @abstractmethod
    def get_context(self, rule: Rule, injector: Any = None) -> Dict[str, Any]:
        """
        Build the global bindings for a rule.

        Args:
            rule: The rule about to run
            injector: Host composition root, if any

        Returns:
            Dict of variable name to value
        """
        pass


# =============================================================================
# Default implementations
# =============================================================================


class CallableScript(Script):
    """Script wrapping a Python callable that takes the context."""

    def __init__(self, fn: Callable[[EvaluationContext], Any]) -> None:
        self._fn = fn

    def execute(self, context: EvaluationContext) -> Any:
        try:
            return self._fn(context)
        except ScriptExecutionError:
            raise
        except Exception as e:
            raise ScriptExecutionError(f"Script raised {type(e).__name__}", cause=e) from e


class CallableScriptEngine(ScriptEngine):
    """ScriptEngine for script bodies that are Python callables."""

    def new_script(self, body: Any) -> Script:
        if not callable(body):
            raise ScriptExecutionError(f"Script body is not callable: {body!r}")
        return CallableScript(body)


class StaticContextProvider(RuleContextProvider):
    """Provides the same global bindings to every rule."""

    def __init__(self, bindings: Optional[Mapping[str, Any]] = None) -> None:
        self._bindings = dict(bindings or {})

    def get_context(self, rule: Rule, injector: Any = None) -> Dict[str, Any]:
        return dict(self._bindings)
