"""Navigation with escalating timeouts."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from exceptions import NavigationTimeoutError

if TYPE_CHECKING:
    from browser import AriaBrowser
    from cancellation import AbortSignal

logger = logging.getLogger("navigation")

RetryCallback = Callable[[int, Exception, int], None]


@dataclass(frozen=True)
class NavigationRetryConfig:
    """Timeout schedule for one navigation: 30s, 60s, 120s by default."""

    base_timeout_ms: int = 30000
    max_timeout_ms: int = 120000
    max_attempts: int = 3
    timeout_multiplier: float = 2


DEFAULT_NAVIGATION_RETRY_CONFIG = NavigationRetryConfig()


def timeout_for_attempt(attempt: int, config: NavigationRetryConfig = DEFAULT_NAVIGATION_RETRY_CONFIG) -> int:
    """Timeout in milliseconds for a 1-based ``attempt``, capped at ``max_timeout_ms``."""
    calculated = round(config.base_timeout_ms * config.timeout_multiplier ** (attempt - 1))
    return min(config.max_timeout_ms, calculated)


def is_navigation_timeout(error: BaseException) -> bool:
    return isinstance(error, (NavigationTimeoutError, asyncio.TimeoutError))


async def navigate_with_retry(
    browser: "AriaBrowser",
    url: str,
    config: NavigationRetryConfig = DEFAULT_NAVIGATION_RETRY_CONFIG,
    on_retry: Optional[RetryCallback] = None,
    abort: Optional["AbortSignal"] = None,
) -> None:
    """Navigate to ``url``, retrying timeouts with a longer timeout each time.

    Only timeouts are retried; any other error propagates immediately.

    Raises:
        NavigationTimeoutError: When every attempt timed out.
    """
    max_attempts = max(1, config.max_attempts)
    for attempt in range(1, max_attempts + 1):
        timeout_ms = timeout_for_attempt(attempt, config)
        try:
            call = browser.goto(url, timeout_ms=timeout_ms)
            if abort is not None:
                await abort.guard(call)
            else:
                await call
            return
        except Exception as e:
            if not is_navigation_timeout(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"Navigation to {url} failed after {attempt} attempts")
                raise NavigationTimeoutError(url, timeout_ms, attempt, max_attempts) from e

            next_timeout = timeout_for_attempt(attempt + 1, config)
            logger.warning(
                f"Navigation to {url} timed out after {timeout_ms}ms "
                f"(attempt {attempt}/{max_attempts}), retrying with {next_timeout}ms"
            )
            if on_retry is not None:
                on_retry(attempt, e, next_timeout)
