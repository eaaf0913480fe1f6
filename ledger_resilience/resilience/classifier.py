"""
Ledger Resilience - Error Classification

Decides whether a failed attempt is transient (worth retrying) or permanent.

Checks, in order:
- Errors already tagged by this package answer with their own kind
- Known transient network status codes
- Transport failure substrings in the lower-cased message
"""

import logging
from dataclasses import dataclass

from ..errors import ErrorKind, ResilienceError, error_message, error_status

logger = logging.getLogger(__name__)

# Status codes the network returns while it is congested, still sequencing,
# or waiting on funding/receipts. All resolve on their own.
RETRYABLE_STATUS_CODES = frozenset(
    {
        "BUSY",
        "PLATFORM_TRANSACTION_NOT_CREATED",
        "PLATFORM_NOT_ACTIVE",
        "INSUFFICIENT_PAYER_BALANCE",
        "TRANSACTION_EXPIRED",
        "INVALID_NODE_ACCOUNT",
        "RECEIPT_NOT_FOUND",
        "RECORD_NOT_FOUND",
    }
)

RETRYABLE_MESSAGE_FRAGMENTS = (
    "timeout",
    "timed out",
    "network error",
    "connection reset",
    "connection refused",
    "socket hang up",
    "socket closed",
    "econnreset",
    "enotfound",
    "etimedout",
    "name resolution",
    "name or service not known",
)


@dataclass(frozen=True)
class ErrorAdvice:
    """Operator-facing guidance for a failure."""

    status: str
    retryable: bool
    hint: str


_ADVICE: dict[str, tuple[bool, str]] = {
    "INVALID_SIGNATURE": (
        False,
        "Check the private key format and that it belongs to the operator account id.",
    ),
    "INSUFFICIENT_PAYER_BALANCE": (
        True,
        "Fund the payer account; the call can be retried once the balance lands.",
    ),
    "INVALID_ACCOUNT_ID": (
        False,
        "Verify the account id format (shard.realm.num, e.g. 0.0.12345) in your configuration.",
    ),
    "TRANSACTION_EXPIRED": (True, "Transaction expired; it will be retried with a new valid-start timestamp."),
    "BUSY": (True, "Network busy; the call will be retried after a delay."),
    "RECEIPT_NOT_FOUND": (True, "Receipt not available yet; the query will be retried."),
}


class ErrorClassifier:
    """
    Stateless transient/permanent classifier.

    Safe to share between concurrent tasks. Subclass and extend the class
    attributes to support additional status codes or message fragments.
    """

    retryable_status_codes: frozenset[str] = RETRYABLE_STATUS_CODES
    retryable_message_fragments: tuple[str, ...] = RETRYABLE_MESSAGE_FRAGMENTS

    def is_retryable(self, error: BaseException) -> bool:
        """
        Check if an error is transient and should be retried.

        Args:
            error: Exception raised by an attempt

        Returns:
            True if error is retryable (transient)
        """
        if isinstance(error, ResilienceError) and error.kind is not None:
            return error.kind is ErrorKind.TRANSIENT

        status = error_status(error)
        if status is not None and status in self.retryable_status_codes:
            return True

        message = error_message(error).lower()
        return any(fragment in message for fragment in self.retryable_message_fragments)

    def classify(self, error: BaseException) -> ErrorKind:
        """Return the ErrorKind recorded for a failed attempt."""
        if isinstance(error, ResilienceError) and error.kind is not None:
            return error.kind
        return ErrorKind.TRANSIENT if self.is_retryable(error) else ErrorKind.PERMANENT

    def explain_error(self, error: BaseException) -> ErrorAdvice:
        """
        Map a failure to operator guidance.

        Presentation only: the retry loop never consults this.
        """
        status = error_status(error) or "UNKNOWN"
        if status in _ADVICE:
            retryable, hint = _ADVICE[status]
            return ErrorAdvice(status=status, retryable=retryable, hint=hint)

        logger.debug(f"Unhandled error status: {status}", extra={"status": status, "error": error_message(error)})
        return ErrorAdvice(
            status=status,
            retryable=self.is_retryable(error),
            hint=f"No specific guidance for status {status}: {error_message(error)}",
        )


_default_classifier = ErrorClassifier()


def is_retryable(error: BaseException) -> bool:
    """Classify with the default classifier."""
    return _default_classifier.is_retryable(error)


def explain_error(error: BaseException) -> ErrorAdvice:
    """Explain with the default classifier."""
    return _default_classifier.explain_error(error)
