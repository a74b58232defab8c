"""Retry strategy with exponential backoff for idempotent reads."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

import structlog

from user_admin.config import get_settings
from user_admin.utils.exceptions import ApiError, TransportError

logger = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter_max: float = 0.25

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        """Create config from application settings."""
        settings = get_settings()
        return cls(
            max_retries=settings.retry.max_retries,
            base_delay=settings.retry.base_delay,
            max_delay=settings.retry.max_delay,
            exponential_base=settings.retry.exponential_base,
            jitter_max=settings.retry.jitter_max,
        )

    @classmethod
    def disabled(cls) -> "RetryConfig":
        return cls(max_retries=0)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before next retry.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(
        config.max_delay,
        config.base_delay * (config.exponential_base ** attempt),
    )
    jitter = random.uniform(0, config.jitter_max) if config.jitter_max > 0 else 0.0

    return delay + jitter


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, TransportError):
        return exc.retryable
    if isinstance(exc, ApiError):
        return exc.retryable
    return False


async def retry_with_backoff(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    config: RetryConfig | None = None,
    operation: str | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Execute function with retry and exponential backoff.

    Only transport failures and retryable server errors are retried; any
    other exception propagates on the first attempt.

    Args:
        func: Async function to call
        *args: Positional arguments for func
        config: Retry configuration (uses settings if None)
        operation: Name used in log events
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all retries exhausted
    """
    if config is None:
        config = RetryConfig.from_settings()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except (TransportError, ApiError) as e:
            if not _should_retry(e):
                raise

            if attempt >= config.max_retries:
                logger.error(
                    "Max retries exceeded",
                    operation=operation,
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise

            delay = calculate_delay(attempt, config)

            logger.warning(
                "Request failed, retrying",
                operation=operation,
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay=delay,
                error=str(e),
            )

            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop completed without result or exception")
