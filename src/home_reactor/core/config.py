"""
Runtime configuration for the kernel services.

Settings are plain named strings (system-property style keys) so hosts can
feed them from any source: a properties file, the environment, or a dict.
Values are read once, when the consuming service is activated.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_MIN_POOL_SIZE = 4
DEFAULT_MAX_POOL_SIZE = 16
DEFAULT_KEEP_ALIVE_MS = 1000
DEFAULT_BACKGROUND_POOL_SIZE = 6

PROP_POOL_MIN = "threadPool.min"
PROP_POOL_MAX = "threadPool.max"
PROP_KEEP_ALIVE = "threadPool.keepAlive"
PROP_BACKGROUND_SIZE = "threadPool.background.size"
PROP_NO_RULES = "noRules"

# Environment variable -> property name
ENV_PROPERTIES = {
    "HOME_REACTOR_POOL_MIN": PROP_POOL_MIN,
    "HOME_REACTOR_POOL_MAX": PROP_POOL_MAX,
    "HOME_REACTOR_POOL_KEEP_ALIVE_MS": PROP_KEEP_ALIVE,
    "HOME_REACTOR_BACKGROUND_POOL_SIZE": PROP_BACKGROUND_SIZE,
    "HOME_REACTOR_NO_RULES": PROP_NO_RULES,
}


def _int_property(properties: Mapping[str, str], key: str, default: int) -> int:
    """
    Read an integer setting, falling back to the default.

    Args:
        properties: Named settings
        key: Setting name
        default: Value used when the setting is absent or malformed

    Returns:
        Parsed value or the default
    """
    value = properties.get(key)
    if value is None:
        return default

    try:
        return int(str(value).strip())
    except ValueError:
        logger.error(f"Invalid thread pool property value specified: {key}={value!r}")
        return default


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Sizing of the shared worker pools and the automation switch.

    Attributes:
        pool_min_size: Workers kept alive in the immediate pool
        pool_max_size: Upper bound of workers in the immediate pool
        pool_keep_alive_ms: Idle time after which surplus workers exit
        background_pool_size: Fixed worker count of the scheduled pool
        rules_enabled: False disables rule loading and execution, so that
            design-time tools can host the engine without side effects
    """

    pool_min_size: int = DEFAULT_MIN_POOL_SIZE
    pool_max_size: int = DEFAULT_MAX_POOL_SIZE
    pool_keep_alive_ms: int = DEFAULT_KEEP_ALIVE_MS
    background_pool_size: int = DEFAULT_BACKGROUND_POOL_SIZE
    rules_enabled: bool = True

    @property
    def pool_keep_alive(self) -> float:
        """Keep-alive in seconds."""
        return self.pool_keep_alive_ms / 1000.0

    @classmethod
    def from_properties(cls, properties: Mapping[str, str]) -> "RuntimeConfig":
        """
        Build a config from named string settings.

        Malformed integers are logged and replaced by their defaults.

        Args:
            properties: Mapping of setting name to raw value

        Returns:
            RuntimeConfig
        """
        no_rules = str(properties.get(PROP_NO_RULES, "")).strip().lower() == "true"
        return cls(
            pool_min_size=_int_property(properties, PROP_POOL_MIN, DEFAULT_MIN_POOL_SIZE),
            pool_max_size=_int_property(properties, PROP_POOL_MAX, DEFAULT_MAX_POOL_SIZE),
            pool_keep_alive_ms=_int_property(properties, PROP_KEEP_ALIVE, DEFAULT_KEEP_ALIVE_MS),
            background_pool_size=_int_property(
                properties, PROP_BACKGROUND_SIZE, DEFAULT_BACKGROUND_POOL_SIZE
            ),
            rules_enabled=not no_rules,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        """Build a config from HOME_REACTOR_* environment variables."""
        if environ is None:
            environ = os.environ

        properties = {
            prop: environ[var] for var, prop in ENV_PROPERTIES.items() if var in environ
        }
        return cls.from_properties(properties)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "pool_min_size": self.pool_min_size,
            "pool_max_size": self.pool_max_size,
            "pool_keep_alive_ms": self.pool_keep_alive_ms,
            "background_pool_size": self.background_pool_size,
            "rules_enabled": self.rules_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeConfig":
        """Deserialize from dict."""
        return cls(
            pool_min_size=data.get("pool_min_size", DEFAULT_MIN_POOL_SIZE),
            pool_max_size=data.get("pool_max_size", DEFAULT_MAX_POOL_SIZE),
            pool_keep_alive_ms=data.get("pool_keep_alive_ms", DEFAULT_KEEP_ALIVE_MS),
            background_pool_size=data.get("background_pool_size", DEFAULT_BACKGROUND_POOL_SIZE),
            rules_enabled=data.get("rules_enabled", True),
        )
