"""
Config Module - Black Box Interface

Purpose: Operator process configuration
Interface: get_config(), ConfigModule.get(), ConfigModule.redis_url()
Hidden: Environment parsing, Kubernetes service-link quirks, bound checks

Component-level settings (scaling, features, timeouts, arangod access) live
in kubarango.config.provider; this module only covers what main.py needs to
bring the process up.
"""

import os
from typing import Any, Dict


REQUIRED_CONFIG_KEYS = {
    "redis_host": "Status Store (Redis) hostname",
    "redis_port": "Status Store (Redis) port number",
    "redis_db": "Status Store (Redis) database number",
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "namespace": "Kubernetes namespace watched by the operator",
    "reconcile_interval": "Minimum seconds between reconciliation passes",
    "max_reconcile_interval": "Maximum seconds between reconciliation passes",
}


def _parse_port(raw: str) -> int:
    # Kubernetes service links inject REDIS_PORT as tcp://host:port
    if raw.startswith("tcp://"):
        return int(raw.rsplit(":", 1)[-1])
    return int(raw)


def _parse_interval(name: str, default: str) -> float:
    value = float(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class ConfigModule:
    """Operator configuration read once from the environment."""

    def __init__(self):
        self._config = self._load_from_env()
        self._validate()

    def _validate(self) -> None:
        """
        Check presence of required keys and the interval bounds.

        Raises:
            ValueError: If a required key is missing or the bounds are inverted
        """
        missing_keys = [key for key in REQUIRED_CONFIG_KEYS if self._config.get(key) is None]
        if missing_keys:
            raise ValueError(f"Missing required configuration keys: {', '.join(missing_keys)}")

        if self._config["reconcile_interval"] > self._config["max_reconcile_interval"]:
            raise ValueError("RECONCILE_INTERVAL must not exceed MAX_RECONCILE_INTERVAL")

    def _load_from_env(self) -> Dict[str, Any]:
        return {
            # Status Store
            "redis_host": os.getenv("REDIS_HOST", "kubarango-redis-master"),
            "redis_port": _parse_port(os.getenv("REDIS_PORT", "6379")),
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
            # HTTP surface
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("API_PORT", "8080")),
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            # Control loops
            "namespace": os.getenv("NAMESPACE", "default"),
            "reconcile_interval": _parse_interval("RECONCILE_INTERVAL", "1"),
            "max_reconcile_interval": _parse_interval("MAX_RECONCILE_INTERVAL", "60"),
        }

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def redis_url(self) -> str:
        """Connection URL of the Status Store, without the password."""
        return (
            f"redis://{self._config['redis_host']}:{self._config['redis_port']}"
            f"/{self._config['redis_db']}"
        )


_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule", "REQUIRED_CONFIG_KEYS"]
