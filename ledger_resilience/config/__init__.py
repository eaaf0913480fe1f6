"""
Ledger Resilience - Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config
from .schemas import (
    CircuitBreakerSettings,
    Environment,
    HealthCheckSettings,
    LogFormat,
    LoggingSettings,
    LogLevel,
    ReporterSettings,
    ResilienceConfig,
    RetrySettings,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    # Main config
    "ResilienceConfig",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    # Config sections
    "RetrySettings",
    "CircuitBreakerSettings",
    "HealthCheckSettings",
    "ReporterSettings",
    "LoggingSettings",
]
