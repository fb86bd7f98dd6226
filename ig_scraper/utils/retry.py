"""Retry utilities for async operations."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    ``max_retries`` counts retries after the first attempt. The wait before
    retry ``n`` is ``delay * backoff_factor**n`` capped at ``max_delay``,
    plus a random ``[0, jitter]`` seconds.
    """

    max_retries: int = 3
    delay: float = 2.0
    backoff_factor: float = 1.0
    max_delay: float = 30.0
    jitter: float = 2.0
    exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt (0-indexed)."""
        delay = min(self.delay * (self.backoff_factor**attempt), self.max_delay)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay


@dataclass
class RetryResult(Generic[T]):
    """Outcome of ``retry_with_result``: final value plus every error seen."""

    success: bool
    value: T | None = None
    error: Exception | None = None
    attempts: int = 0
    errors: list[Exception] = field(default_factory=list)


async def retry_with_result(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    accept: Callable[[T], bool] | None = None,
    label: str | None = None,
    **kwargs: Any,
) -> RetryResult[T]:
    """Call ``func`` until it succeeds or retries run out.

    A call counts as failed when it raises one of ``config.exceptions`` or
    when ``accept`` rejects its return value. Never raises for those.

    Usage:
        result = await retry_with_result(
            executor.ensure_session_ready, account,
            config=RetryConfig(max_retries=3), accept=bool,
        )
        if not result.success:
            logger.warning("%s not ready: %s", account.username, result.error)
    """
    if config is None:
        config = RetryConfig()
    name = label or getattr(func, "__name__", "call")

    errors: list[Exception] = []
    value: T | None = None

    for attempt in range(config.max_retries + 1):
        try:
            value = await func(*args, **kwargs)
        except config.exceptions as e:
            errors.append(e)
            logger.debug(
                "%s attempt %d/%d failed: %s: %s",
                name, attempt + 1, config.max_retries + 1, type(e).__name__, e,
            )
        else:
            if accept is None or accept(value):
                return RetryResult(
                    success=True, value=value, attempts=attempt + 1, errors=errors,
                )
            logger.debug(
                "%s attempt %d/%d returned unacceptable result %r",
                name, attempt + 1, config.max_retries + 1, value,
            )

        if attempt < config.max_retries:
            wait = config.get_delay(attempt)
            logger.info(
                "Retrying %s (%d/%d) in %.1fs", name, attempt + 1, config.max_retries, wait,
            )
            await asyncio.sleep(wait)

    return RetryResult(
        success=False,
        value=value,
        error=errors[-1] if errors else None,
        attempts=config.max_retries + 1,
        errors=errors,
    )
