"""
Retry policy for backend create and delete calls.
"""
from __future__ import annotations

from typing import Callable, Optional

from attrs import define, field
from attrs.validators import ge, instance_of
from botocore.exceptions import ClientError

import common.constants as constants

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "ServiceUnavailable",
        "InternalError",
        "DependencyViolation",
        "InvalidGatewayID.NotFound",
    }
)


@define(slots=True, frozen=True)
class Backoff:
    initial: float = field(default=constants.DEFAULT_BACKOFF_SECONDS, validator=ge(0))
    multiplier: float = field(default=constants.DEFAULT_BACKOFF_MULTIPLIER, validator=ge(1))
    maximum: float = field(default=constants.MAX_BACKOFF_SECONDS, validator=ge(0))

    def delay(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        return min(self.initial * self.multiplier ** (attempt - 1), self.maximum)


@define(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = field(
        default=constants.DEFAULT_MAX_ATTEMPTS, validator=[instance_of(int), ge(1)]
    )
    backoff: Backoff = field(factory=Backoff)
    retry_if: Optional[Callable[[Exception], bool]] = field(default=None)

    def should_retry(self, exc: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return self.retry_if is None or self.retry_if(exc)


def is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in THROTTLING_CODES:
            return True
    text = str(exc).lower()
    tokens = (
        "timeout",
        "timed out",
        "temporar",
        "connection reset",
        "connection aborted",
        "connection refused",
        "rate limit",
        "service unavailable",
    )
    return any(token in text for token in tokens)
