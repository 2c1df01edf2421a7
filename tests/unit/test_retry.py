"""Tests for retry policy and executor."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from gemrelay.exceptions import (
    ErrorKind,
    FatalProviderError,
    RequestAbortedError,
    TransientProviderError,
)
from gemrelay.models.config import RetryPolicy
from gemrelay.retry import RetryExecutor, abortable


class TestRetryPolicy:
    """Tests for backoff calculation."""

    def test_defaults(self) -> None:
        """Default policy is 500ms base, 10 retries, 32s cap."""
        policy = RetryPolicy()
        assert policy.base_delay_ms == 500
        assert policy.max_retries == 10
        assert policy.max_delay_ms == 32000

    def test_delay_doubles_per_attempt(self) -> None:
        """Delay is base * 2^(attempt - 1)."""
        policy = RetryPolicy()
        assert policy.delay_for(1) == 500
        assert policy.delay_for(2) == 1000
        assert policy.delay_for(4) == 4000

    def test_delay_is_capped(self) -> None:
        """Delay never exceeds the cap."""
        policy = RetryPolicy()
        assert policy.delay_for(7) == 32000
        assert policy.delay_for(10) == 32000

    def test_retryable_kinds(self) -> None:
        """Only allow-listed kinds are retryable."""
        policy = RetryPolicy()
        assert policy.is_retryable(ErrorKind.RESOURCE_EXHAUSTED)
        assert policy.is_retryable(ErrorKind.UNAVAILABLE)
        assert policy.is_retryable(ErrorKind.ABORTED)
        assert not policy.is_retryable(ErrorKind.INVALID_ARGUMENT)
        assert not policy.is_retryable(ErrorKind.UNAUTHENTICATED)
        assert not policy.is_retryable(None)

    def test_policy_is_immutable(self) -> None:
        """Policies cannot be modified after construction."""
        policy = RetryPolicy()
        with pytest.raises(ValueError):
            policy.max_retries = 3  # type: ignore[misc]


class TestRetryExecutor:
    """Tests for RetryExecutor.execute."""

    @pytest.fixture
    def sleep(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def executor(self, sleep: AsyncMock) -> RetryExecutor:
        return RetryExecutor(sleep=sleep)

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """A successful first attempt returns without sleeping."""
        operation = AsyncMock(return_value="ok")

        result = await executor.execute(operation, RetryPolicy())

        assert result == "ok"
        operation.assert_awaited_once_with(1)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_error_then_success(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """Transient failures are retried with exponential delays."""
        operation = AsyncMock(
            side_effect=[
                TransientProviderError("busy", ErrorKind.RESOURCE_EXHAUSTED),
                TransientProviderError("busy", ErrorKind.UNAVAILABLE),
                "ok",
            ]
        )

        result = await executor.execute(operation, RetryPolicy())

        assert result == "ok"
        assert [c.args[0] for c in operation.await_args_list] == [1, 2, 3]
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_last_error(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """After max_retries the original error propagates unchanged."""
        error = TransientProviderError("overloaded", ErrorKind.UNAVAILABLE)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(TransientProviderError) as exc_info:
            await executor.execute(operation, RetryPolicy(max_retries=3))

        assert exc_info.value is error
        assert operation.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """A non-retryable error terminates immediately with no delay."""
        error = FatalProviderError("bad request", ErrorKind.INVALID_ARGUMENT)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(FatalProviderError) as exc_info:
            await executor.execute(operation, RetryPolicy())

        assert exc_info.value is error
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unclassified_exception_is_not_retried(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """Exceptions without an ErrorKind are never retried."""
        operation = AsyncMock(side_effect=ValueError("boom"))

        with pytest.raises(ValueError, match="boom"):
            await executor.execute(operation, RetryPolicy())

        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_retries(self, executor: RetryExecutor, sleep: AsyncMock) -> None:
        """With max_retries=0 a transient error is raised on the first attempt."""
        operation = AsyncMock(side_effect=TransientProviderError("x", ErrorKind.INTERNAL))

        with pytest.raises(TransientProviderError):
            await executor.execute(operation, RetryPolicy(max_retries=0))

        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_retryable_kinds(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """The allow-list comes from the policy."""
        policy = RetryPolicy(retryable_kinds=frozenset({ErrorKind.NOT_FOUND}))
        operation = AsyncMock(
            side_effect=[FatalProviderError("missing", ErrorKind.NOT_FOUND), "found"]
        )

        assert await executor.execute(operation, policy) == "found"
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_abort_before_first_attempt(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """A pre-set abort signal prevents any attempt."""
        abort = asyncio.Event()
        abort.set()
        operation = AsyncMock(return_value="ok")

        with pytest.raises(RequestAbortedError):
            await executor.execute(operation, RetryPolicy(), abort=abort)

        operation.assert_not_awaited()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_aborted_request_is_not_retried(
        self, executor: RetryExecutor, sleep: AsyncMock
    ) -> None:
        """RequestAbortedError is never retried even though its kind is CANCELLED."""
        operation = AsyncMock(side_effect=RequestAbortedError())

        with pytest.raises(RequestAbortedError):
            await executor.execute(operation, RetryPolicy())

        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_abort_interrupts_backoff(self) -> None:
        """Setting the abort signal during a backoff stops further attempts."""
        abort = asyncio.Event()

        async def sleep_until_aborted(_seconds: float) -> None:
            abort.set()
            await asyncio.Event().wait()

        executor = RetryExecutor(sleep=sleep_until_aborted)
        operation = AsyncMock(side_effect=TransientProviderError("busy", ErrorKind.UNAVAILABLE))

        with pytest.raises(RequestAbortedError):
            await executor.execute(operation, RetryPolicy(), abort=abort)

        operation.assert_awaited_once()


class TestAbortable:
    """Tests for the abortable helper."""

    @pytest.mark.asyncio
    async def test_without_signal(self) -> None:
        """Without a signal the coroutine simply runs."""

        async def work() -> int:
            return 42

        assert await abortable(work(), None) == 42

    @pytest.mark.asyncio
    async def test_signal_not_set(self) -> None:
        """An unset signal does not interfere."""

        async def work() -> int:
            return 7

        assert await abortable(work(), asyncio.Event()) == 7

    @pytest.mark.asyncio
    async def test_signal_already_set(self) -> None:
        """A set signal raises without running the coroutine."""
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        abort = asyncio.Event()
        abort.set()

        with pytest.raises(RequestAbortedError):
            await abortable(work(), abort)
        assert started is False

    @pytest.mark.asyncio
    async def test_signal_cancels_in_flight_work(self) -> None:
        """Setting the signal cancels the running coroutine."""
        cancelled = asyncio.Event()

        async def work() -> None:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        abort = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, abort.set)

        with pytest.raises(RequestAbortedError):
            await abortable(work(), abort)
        assert cancelled.is_set()
