"""Query orchestrator.

Coordinates one top-level query: format the conversation, send it through the
recorder and retry executor, answer at most one tool call, account for usage,
and return a normalized assistant message.
"""

import asyncio
import logging
import time
from collections.abc import Sequence

from pydantic import SecretStr

from gemrelay.accounting.ledger import COST_LEDGER, CostLedger, UsageRecord, usage_from_counters
from gemrelay.constants import (
    API_ERROR_MESSAGE_PREFIX,
    INVALID_API_KEY_ERROR_MESSAGE,
    NO_CONTENT_MESSAGE,
)
from gemrelay.exceptions import AuthenticationError, ProviderError
from gemrelay.models.config import ModelPricing, RetryPolicy
from gemrelay.models.conversation import Turn
from gemrelay.models.messages import (
    APIMessage,
    AssistantMessage,
    TokenUsage,
    UserMessage,
    create_assistant_api_error_message,
)
from gemrelay.providers.adapter import MessageAdapter
from gemrelay.providers.base import LLMProvider, ProviderRequest, ProviderResponse
from gemrelay.providers.factory import create_provider
from gemrelay.recording.recorder import ConversationRecorder
from gemrelay.retry import RetryExecutor
from gemrelay.tools.base import Tool
from gemrelay.tools.dispatcher import ToolCallDispatcher

logger = logging.getLogger(__name__)

# Key verification should fail fast
VERIFY_KEY_RETRY_POLICY = RetryPolicy(max_retries=2)
VERIFY_KEY_PROMPT = "test"

ConversationInput = Turn | UserMessage | AssistantMessage


def to_turns(message: ConversationInput) -> list[Turn]:
    """Strip message envelopes down to conversation turns.

    An assistant reply that answered a tool call expands to the tool-result
    user turn followed by the reply itself.
    """
    if isinstance(message, Turn):
        return [message]
    if isinstance(message, UserMessage):
        return [message.message]
    return [*message.tool_turns, Turn(role="assistant", content=message.message.content)]


def assistant_message_from_error(error: Exception) -> AssistantMessage:
    """Convert a provider failure into an API-error assistant message."""
    if isinstance(error, AuthenticationError):
        return create_assistant_api_error_message(INVALID_API_KEY_ERROR_MESSAGE)
    return create_assistant_api_error_message(f"{API_ERROR_MESSAGE_PREFIX}: {error}")


class QueryOrchestrator:
    """Runs queries against a provider handle.

    One orchestrator, and one provider handle, can serve many concurrent
    queries; per-query state lives on the stack.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        retry_policy: RetryPolicy | None = None,
        pricing: ModelPricing | None = None,
        recorder: ConversationRecorder | None = None,
        ledger: CostLedger | None = None,
        retry_executor: RetryExecutor | None = None,
        adapter: MessageAdapter | None = None,
        dispatcher: ToolCallDispatcher | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: Provider handle shared by every call.
            retry_policy: Backoff policy (defaults: 500ms base, 10 retries, 32s cap).
            pricing: Per-1k-token rates used for cost estimates.
            recorder: Record/replay wrapper; passthrough when omitted.
            ledger: Cost ledger to accumulate into; the process-wide one by default.
            retry_executor: Retry executor (injectable sleep for tests).
            adapter: Message adapter.
            dispatcher: Tool call dispatcher.
        """
        self._provider = provider
        self._retry_policy = retry_policy or RetryPolicy()
        self._pricing = pricing or ModelPricing()
        self._recorder = recorder or ConversationRecorder()
        self._ledger = ledger or COST_LEDGER
        self._retry = retry_executor or RetryExecutor()
        self._adapter = adapter or MessageAdapter()
        self._dispatcher = dispatcher or ToolCallDispatcher()

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def _round_trip(
        self, request: ProviderRequest, abort: asyncio.Event | None
    ) -> ProviderResponse:
        """One provider call: recorder outside, retries inside."""

        async def attempt_send(attempt: int) -> ProviderResponse:
            if attempt > 1:
                logger.debug("Sending request, attempt %d", attempt)
            return await self._provider.send(request, abort=abort)

        async def live() -> ProviderResponse:
            return await self._retry.execute(attempt_send, self._retry_policy, abort=abort)

        return await self._recorder.with_recording(request, live)

    def _usage(self, responses: Sequence[ProviderResponse], duration_ms: int) -> UsageRecord:
        records = [usage_from_counters(r.usage, self._pricing) for r in responses]
        return UsageRecord(
            input_tokens=sum(r.input_tokens for r in records),
            output_tokens=sum(r.output_tokens for r in records),
            cost_usd=sum(r.cost_usd for r in records),
            duration_ms=duration_ms,
        )

    async def query(
        self,
        messages: Sequence[ConversationInput],
        system_prompt: Sequence[str] = (),
        tools: Sequence[Tool] | None = None,
        *,
        abort: asyncio.Event | None = None,
    ) -> AssistantMessage:
        """Send a conversation and return the assistant's reply.

        Provider failures never raise: they come back as an assistant message
        with ``is_api_error_message`` set.

        Args:
            messages: Conversation turns (or their message envelopes), oldest first.
            system_prompt: System directive fragments.
            tools: Tools the model may call (one round of tool calling).
            abort: Optional signal cancelling the in-flight request and retries.

        Returns:
            Normalized AssistantMessage with usage, cost and duration. When a
            tool was called, ``tool_turns`` holds the tool-result user turn.

        Raises:
            ConfigurationError: If the provider has no API key.
            ToolExecutionError: If a tool requested by the model fails.
            RecordingError: If the cassette store cannot serve or save the call.
        """
        config = self._provider.config
        turns = [turn for message in messages for turn in to_turns(message)]
        start = time.monotonic()
        first: ProviderResponse | None = None

        try:
            request = self._adapter.build_request(config, turns, system_prompt, tools)
            first = await self._round_trip(request, abort)
            outcome = await self._dispatcher.dispatch(
                first,
                turns,
                tools,
                follow_up=lambda next_turns: self._round_trip(
                    self._adapter.build_request(config, next_turns, system_prompt, tools),
                    abort,
                ),
            )
        except ProviderError as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(
                "gemini_api_error: %s",
                e,
                extra={"error_kind": e.kind.value, "duration_ms": duration_ms},
            )
            if first is not None:
                # Usage of the completed first call still counts
                self._ledger.add(self._usage([first], duration_ms).cost_usd, duration_ms)
            return assistant_message_from_error(e)

        duration_ms = int((time.monotonic() - start) * 1000)
        usage = self._usage(outcome.responses, duration_ms)
        self._ledger.add(usage.cost_usd, duration_ms)

        logger.info(
            "gemini_api_success: %d messages, %dms, %d tokens",
            len(turns),
            duration_ms,
            usage.total_tokens,
            extra={
                "message_count": len(turns),
                "duration_ms": duration_ms,
                "tokens": usage.total_tokens,
            },
        )

        return AssistantMessage(
            message=APIMessage(
                content=outcome.text or NO_CONTENT_MESSAGE,
                model=config.model,
                usage=TokenUsage(
                    total_tokens=usage.total_tokens,
                    prompt_tokens=usage.input_tokens,
                    completion_tokens=usage.output_tokens,
                ),
            ),
            cost_usd=usage.cost_usd,
            duration_ms=duration_ms,
            tools=list(tools or []),
            tool_turns=outcome.turns[len(turns):],
        )

    async def verify_api_key(self, api_key: str) -> bool:
        """Check whether the provider accepts ``api_key``.

        Returns:
            True if a test request succeeds, False if the key is rejected.

        Raises:
            ProviderError: Any failure other than a rejected key.
            ConfigurationError: If a provider cannot be built for the key.
        """
        config = self._provider.config.model_copy(update={"api_key": SecretStr(api_key)})
        provider = create_provider(config)
        request = self._adapter.build_request(
            config, [Turn(role="user", content=VERIFY_KEY_PROMPT)]
        )
        try:
            await self._retry.execute(
                lambda _attempt: provider.send(request), VERIFY_KEY_RETRY_POLICY
            )
            return True
        except AuthenticationError as e:
            logger.warning("API key rejected: %s", e)
            return False
        finally:
            await provider.close()
