"""
Retry wrapper for external generation calls.

Only rate-limit failures are retried, with exponential backoff plus
uniform jitter. Every other failure propagates on the first attempt.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from nodeforge.config import NodeforgeConfig
from nodeforge.errors import parse_error_envelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_CODE = 429
RATE_LIMIT_STATUS = "RESOURCE_EXHAUSTED"


@dataclass
class RetryPolicy:
    """Retry settings.

    Attributes:
        max_attempts: Total attempts, including the first.
        initial_delay: Delay in seconds before the first retry.
        max_jitter: Upper bound in seconds of the uniform jitter added to each delay.
    """

    max_attempts: int = 3
    initial_delay: float = 2.0
    max_jitter: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")
        if self.max_jitter < 0:
            raise ValueError("max_jitter cannot be negative")

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=NodeforgeConfig.MAX_RETRIES,
            initial_delay=NodeforgeConfig.RETRY_INITIAL_DELAY,
            max_jitter=NodeforgeConfig.RETRY_MAX_JITTER,
        )

    def get_delay_for_attempt(self, attempt: int) -> float:
        """Delay in seconds after the 0-indexed ``attempt`` failed."""
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter else 0.0
        return self.initial_delay * (2 ** attempt) + jitter


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Classify an error as rate-limit-class.

    Structured match first: a ``code``/``status`` attribute on the exception
    (google-genai ``APIError``) or a ``{"error": {...}}`` envelope in its
    message. Falls back to a textual match on "429" / "rate limit".
    """
    if getattr(error, "code", None) == RATE_LIMIT_CODE:
        return True
    if getattr(error, "status", None) == RATE_LIMIT_STATUS:
        return True

    message = str(error)
    envelope = parse_error_envelope(message)
    if envelope is not None:
        return (
            envelope.get("code") == RATE_LIMIT_CODE
            or envelope.get("status") == RATE_LIMIT_STATUS
        )
    return "429" in message or "rate limit" in message.lower()


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying rate-limit failures per ``policy``."""
    policy = policy or RetryPolicy.from_config()
    name = getattr(fn, "__qualname__", repr(fn))

    for attempt in range(policy.max_attempts):
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            if attempt >= policy.max_attempts - 1:
                logger.error(
                    "%s failed after %d attempts due to rate limiting",
                    name, policy.max_attempts,
                )
                raise
            delay = policy.get_delay_for_attempt(attempt)
            logger.warning(
                "Rate limit exceeded in %s. Retrying in %.1fs... (Attempt %d/%d)",
                name, delay, attempt + 1, policy.max_attempts,
            )
            await asyncio.sleep(delay)

    # max_attempts >= 1, so the loop always returns or raises
    raise RuntimeError("Retry loop exited without result")


def with_retry(
    fn: Callable[..., Awaitable[T]] | None = None,
    *,
    policy: RetryPolicy | None = None,
):
    """
    Decorator that wraps an async callable with the rate-limit retry policy.

    Usage:
        @with_retry
        async def call(...): ...

        wrapped = with_retry(client.aio.models.generate_content, policy=RetryPolicy(max_attempts=5))
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await call_with_retry(func, *args, policy=policy, **kwargs)
        return wrapper

    if fn is not None:
        return decorator(fn)
    return decorator
