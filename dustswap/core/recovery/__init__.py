"""
Error Recovery Module

Failure taxonomy, the stale-quote/rejection classifier, and bounded retry
for upstream quote requests.
"""

from .errors import (
    ApprovalCheckFailed,
    ChainReadError,
    ErrorContext,
    InvalidTransitionError,
    QuoteError,
    QuoteErrorReason,
    STALE_QUOTE_PATTERNS,
    STALE_QUOTE_SELECTORS,
    SwapError,
    SwapErrorKind,
    UpstreamRetryableError,
    classify_failure,
    user_message,
)
from .strategies import RetryConfig, RetryOutcome, RetryStrategy

__all__ = [
    # Errors
    "ApprovalCheckFailed",
    "ChainReadError",
    "ErrorContext",
    "InvalidTransitionError",
    "QuoteError",
    "QuoteErrorReason",
    "STALE_QUOTE_PATTERNS",
    "STALE_QUOTE_SELECTORS",
    "SwapError",
    "SwapErrorKind",
    "UpstreamRetryableError",
    "classify_failure",
    "user_message",
    # Strategies
    "RetryConfig",
    "RetryOutcome",
    "RetryStrategy",
]
