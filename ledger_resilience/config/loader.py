"""
Ledger Resilience - Configuration Loader

Loads and validates configuration from environment variables and .env files.
Keeps one cached configuration instance for the process.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import ResilienceConfig

logger = logging.getLogger(__name__)

_config_instance: ResilienceConfig | None = None


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> ResilienceConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated ResilienceConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    try:
        config_dict = {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "logging": {
                "level": os.getenv("LOG_LEVEL", "INFO").upper(),
                "format": os.getenv("LOG_FORMAT", "json").lower(),
            },
            "retry": {
                "max_retries": int(os.getenv("RESILIENCE_MAX_RETRIES", "3")),
                "base_delay_ms": int(os.getenv("RESILIENCE_BASE_DELAY_MS", "1000")),
                "max_delay_ms": int(os.getenv("RESILIENCE_MAX_DELAY_MS", "30000")),
                "attempt_timeout_ms": _optional_int("RESILIENCE_ATTEMPT_TIMEOUT_MS"),
            },
            "circuit_breaker": {
                "failure_threshold": int(os.getenv("RESILIENCE_FAILURE_THRESHOLD", "5")),
                "reset_timeout_ms": int(os.getenv("RESILIENCE_RESET_TIMEOUT_MS", "60000")),
            },
            "health": {
                "min_healthy": _optional_int("RESILIENCE_HEALTH_MIN_HEALTHY"),
            },
            "reporter": {
                "max_history": _optional_int("RESILIENCE_HISTORY_LIMIT"),
            },
        }
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid numeric environment variable: {e}",
            details={"error": str(e)},
        ) from e

    try:
        _config_instance = ResilienceConfig(**config_dict)  # type: ignore[arg-type]
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(), "config_dict_keys": list(config_dict.keys())},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors()},
        ) from e

    logger.info(
        f"Configuration loaded successfully (environment: {_config_instance.environment})",
        extra={
            "environment": _config_instance.environment,
            "max_retries": _config_instance.retry.max_retries,
            "failure_threshold": _config_instance.circuit_breaker.failure_threshold,
        },
    )
    return _config_instance


def get_config() -> ResilienceConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current ResilienceConfig instance
    """
    if _config_instance is None:
        return load_config()
    return _config_instance


def reload_config(env_file: str | None = None) -> ResilienceConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded ResilienceConfig instance
    """
    return load_config(env_file=env_file, reload=True)
