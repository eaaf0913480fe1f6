"""
Ledger Resilience - Error Reporting

Passive sink for failed attempts: append-only history, per-code counts,
and the number of operations that recovered after retrying.
"""

import logging
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from ..errors import ErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptRecord:
    """One failed attempt. Never mutated after creation."""

    operation_name: str
    attempt_number: int
    error_kind: ErrorKind
    message: str
    error_code: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.attempt_number < 1:
            raise ValueError("attempt_number must be >= 1")
        # Freeze a private copy so callers can keep mutating their own dict
        object.__setattr__(self, "context", MappingProxyType(dict(self.context)))

    @property
    def count_key(self) -> str:
        """Key used in ErrorCounts: the status code, else the message."""
        return self.error_code or self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation_name,
            "attempt": self.attempt_number,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "error": {
                "kind": self.error_kind.value,
                "code": self.error_code,
                "message": self.message,
            },
            "context": dict(self.context),
        }


@dataclass(frozen=True)
class ErrorReport:
    """Snapshot produced by ErrorReporter.report()."""

    total_errors: int
    error_counts: dict[str, int]
    history: list[AttemptRecord]
    most_common_error: str | None
    successful_retry_count: int
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.generated_at.isoformat().replace("+00:00", "Z"),
            "total_errors": self.total_errors,
            "error_counts": dict(self.error_counts),
            "history": [record.to_dict() for record in self.history],
            "summary": {
                "most_common_error": self.most_common_error,
                "successful_retries": self.successful_retry_count,
            },
        }


class ErrorReporter:
    """
    Aggregates failed attempts for observability.

    Safe for concurrent use: every update happens under one lock.
    ``max_history`` bounds the retained records; ``total_errors`` and the
    counts still include dropped ones.
    """

    def __init__(self, max_history: int | None = None):
        if max_history is not None and max_history < 1:
            raise ValueError("max_history must be >= 1")
        self.max_history = max_history
        self._lock = threading.Lock()
        self._history: deque[AttemptRecord] = deque(maxlen=max_history)
        self._error_counts: dict[str, int] = {}
        self._total_errors = 0
        self._successful_retries = 0

    def record(self, attempt: AttemptRecord) -> None:
        """Append a failed attempt and bump its count."""
        with self._lock:
            self._history.append(attempt)
            key = attempt.count_key
            self._error_counts[key] = self._error_counts.get(key, 0) + 1
            self._total_errors += 1

        logger.debug(
            f"Recorded failed attempt for {attempt.operation_name}",
            extra={"attempt_record": attempt.to_dict()},
        )

    def record_success(self, operation_name: str, attempts: int) -> None:
        """Note an operation that succeeded on attempt ``attempts``."""
        if attempts <= 1:
            return
        with self._lock:
            self._successful_retries += 1

    @property
    def total_errors(self) -> int:
        return self._total_errors

    def report(self) -> ErrorReport:
        """Build a consistent snapshot of counts and history."""
        with self._lock:
            counts = dict(self._error_counts)
            history = list(self._history)
            total = self._total_errors
            recovered = self._successful_retries

        return ErrorReport(
            total_errors=total,
            error_counts=counts,
            history=history,
            most_common_error=_most_common(counts),
            successful_retry_count=recovered,
            generated_at=datetime.now(UTC),
        )

    def reset(self) -> None:
        """Clear history, counts and the recovery counter."""
        with self._lock:
            self._history.clear()
            self._error_counts.clear()
            self._total_errors = 0
            self._successful_retries = 0


def _most_common(counts: dict[str, int]) -> str | None:
    # max() keeps the first key among equal counts, i.e. the first inserted
    if not counts:
        return None
    return max(counts, key=lambda key: counts[key])
