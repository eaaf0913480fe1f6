"""
Ledger Resilience - Observability Module

Structured logging for the resilience layer.

Usage:
    from ledger_resilience.observability import configure_logging, generate_trace_id

    configure_logging("INFO", "json")
    generate_trace_id()
"""

from .structured_logging import (
    JSONFormatter,
    configure_logging,
    generate_trace_id,
    get_trace_id,
    set_trace_id,
    setup_logging,
)

__all__ = [
    "JSONFormatter",
    "configure_logging",
    "setup_logging",
    "generate_trace_id",
    "get_trace_id",
    "set_trace_id",
]
