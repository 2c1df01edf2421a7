"""Bounded retry with exponential backoff.

The executor runs an operation sequentially, up to ``max_retries + 1`` times.
A failed attempt is retried only when its ErrorKind is in the policy's
allow-list; otherwise, or once the attempts are used up, the original error is
re-raised unchanged. An optional abort event cancels the current attempt and
any pending backoff.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from contextlib import suppress
from typing import Any, TypeVar

from gemrelay.exceptions import ProviderError, RequestAbortedError
from gemrelay.models.config import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def abortable(coro: Coroutine[Any, Any, T], abort: asyncio.Event | None) -> T:
    """Await ``coro`` unless ``abort`` fires first.

    Args:
        coro: Coroutine to run.
        abort: Optional abort signal.

    Returns:
        The coroutine's result.

    Raises:
        RequestAbortedError: If the signal is set before or while ``coro`` runs.
    """
    if abort is None:
        return await coro
    if abort.is_set():
        coro.close()
        raise RequestAbortedError

    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    if task in done:
        return task.result()
    raise RequestAbortedError


class RetryExecutor:
    """Runs an async operation under a RetryPolicy.

    The sleep function is injectable so tests can observe delays without
    waiting for them.
    """

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    def should_retry(self, error: BaseException, policy: RetryPolicy) -> bool:
        """Whether the policy allows retrying this error."""
        if isinstance(error, RequestAbortedError):
            return False
        if isinstance(error, ProviderError):
            return policy.is_retryable(error.kind)
        return False

    async def execute(
        self,
        operation: Callable[[int], Awaitable[T]],
        policy: RetryPolicy,
        *,
        abort: asyncio.Event | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or fails fatally.

        Args:
            operation: Called with the 1-based attempt number.
            policy: Backoff parameters and retryable kinds.
            abort: Optional signal that suppresses further attempts and delays.

        Returns:
            The first successful result.

        Raises:
            Exception: The last error, unchanged, when it is not retryable or
                the attempts are exhausted.
            RequestAbortedError: If the abort signal fires.
        """
        attempt = 1
        while True:
            if abort is not None and abort.is_set():
                raise RequestAbortedError
            try:
                return await operation(attempt)
            except Exception as error:
                if abort is not None and abort.is_set():
                    raise RequestAbortedError from error
                if attempt > policy.max_retries or not self.should_retry(error, policy):
                    raise

                delay_ms = policy.delay_for(attempt)
                logger.warning(
                    "Retrying in %dms... (attempt %d/%d): %s",
                    delay_ms,
                    attempt,
                    policy.max_retries,
                    error,
                )
                await abortable(self._sleep(delay_ms / 1000), abort)
                attempt += 1
