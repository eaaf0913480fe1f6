"""
Ledger Resilience - Configuration Schemas

Typed configuration models using Pydantic for validation and type safety.
All configuration comes from environment variables (see loader.py).
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..resilience.retry import RetryPolicy


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


class RetrySettings(BaseModel):
    """Retry loop configuration."""

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay_ms: int = Field(default=1000, gt=0, description="Initial backoff delay in milliseconds")
    max_delay_ms: int = Field(default=30000, gt=0, description="Backoff cap in milliseconds")
    attempt_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Deadline for a single attempt in milliseconds (unset = no deadline)",
    )

    @field_validator("max_delay_ms")
    @classmethod
    def validate_max_delay(cls, v: int, info: Any) -> int:
        """Ensure the cap is not below the base delay."""
        base = info.data.get("base_delay_ms")
        if base is not None and v < base:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return v

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            attempt_timeout_ms=self.attempt_timeout_ms,
        )


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker defaults applied to every operation key."""

    failure_threshold: int = Field(default=5, ge=1, description="Failures before the circuit opens")
    reset_timeout_ms: int = Field(default=60000, ge=0, description="Milliseconds in OPEN before a trial call")


class HealthCheckSettings(BaseModel):
    """Health check aggregation."""

    min_healthy: int | None = Field(
        default=None,
        ge=0,
        description="Passing probes required for a healthy result (unset = half of the probes, rounded up)",
    )


class ReporterSettings(BaseModel):
    """Error reporter retention."""

    max_history: int | None = Field(default=None, ge=1, description="Attempt records kept (unset = unbounded)")


class LoggingSettings(BaseModel):
    """Logging output."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    format: LogFormat = Field(default=LogFormat.JSON, description="Log record format")

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)


class ResilienceConfig(BaseModel):
    """Root configuration for Ledger Resilience."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    health: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    reporter: ReporterSettings = Field(default_factory=ReporterSettings)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
