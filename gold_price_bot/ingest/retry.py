"""Retry engine with randomized backoff."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from gold_price_bot.ingest.base import ConfigurationError
from gold_price_bot import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    The first attempt runs immediately. Each later attempt waits a random
    delay in [base_delay_ms, 2 * base_delay_ms]. Configuration errors are
    raised without retrying. After the last failed attempt the last error is
    re-raised.

    Args:
        operation: Zero-argument coroutine function
        max_attempts: Total attempts, including the first
        base_delay_ms: Lower bound of the backoff delay

    Returns:
        The operation's result
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            delay_ms = random.uniform(base_delay_ms, base_delay_ms * 2)
            logger.info(f"Retrying in {delay_ms:.0f}ms (attempt {attempt}/{max_attempts})")
            await sleep(delay_ms / 1000)

        try:
            result = await operation()
        except ConfigurationError:
            metrics.scrape_attempts_total.labels(outcome="config_error").inc()
            raise
        except Exception as e:
            metrics.scrape_attempts_total.labels(outcome="failure").inc()
            if attempt == max_attempts:
                logger.error(
                    f"All {max_attempts} attempts failed: {type(e).__name__}: {e}"
                )
                raise
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed: {type(e).__name__}: {e}"
            )
            continue

        metrics.scrape_attempts_total.labels(outcome="success").inc()
        return result

    raise AssertionError("unreachable")
