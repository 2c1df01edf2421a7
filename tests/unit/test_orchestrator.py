"""Tests for the query orchestrator."""

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import SecretStr

from gemrelay.accounting import CostLedger
from gemrelay.constants import INVALID_API_KEY_ERROR_MESSAGE, NO_CONTENT_MESSAGE, SYNTHETIC_MODEL
from gemrelay.exceptions import (
    AuthenticationError,
    CassetteNotFoundError,
    ErrorKind,
    FatalProviderError,
    ToolExecutionError,
    TransientProviderError,
)
from gemrelay.models.config import LLMConfig, RecordMode
from gemrelay.models.conversation import Turn
from gemrelay.models.messages import APIMessage, AssistantMessage, UserMessage
from gemrelay.orchestrator import QueryOrchestrator
from gemrelay.providers.base import (
    Candidate,
    Content,
    FunctionCall,
    LLMProvider,
    Part,
    ProviderRequest,
    ProviderResponse,
    UsageCounters,
)
from gemrelay.recording import CassetteStore, ConversationRecorder
from gemrelay.retry import RetryExecutor


class ScriptedProvider(LLMProvider):
    """Provider returning (or raising) pre-scripted outcomes in order."""

    def __init__(self, *outcomes: ProviderResponse | Exception) -> None:
        super().__init__(LLMConfig(api_key=SecretStr("test-key")))
        self.outcomes = list(outcomes)
        self.requests: list[ProviderRequest] = []
        self.closed = False

    async def send(
        self, request: ProviderRequest, *, abort: asyncio.Event | None = None
    ) -> ProviderResponse:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


def text_response(text: str, prompt: int = 1000, output: int = 500) -> ProviderResponse:
    return ProviderResponse(
        text=text,
        candidates=[Candidate(content=Content(parts=[Part(text=text)]))],
        usage=UsageCounters(
            total_tokens=prompt + output, prompt_tokens=prompt, candidates_tokens=output
        ),
        model="gemini-pro",
    )


def call_response(name: str, args: dict[str, Any]) -> ProviderResponse:
    return ProviderResponse(
        candidates=[
            Candidate(content=Content(parts=[Part(function_call=FunctionCall(name=name, args=args))]))
        ],
        usage=UsageCounters(total_tokens=150, prompt_tokens=100, candidates_tokens=50),
    )


class WeatherTool:
    name = "get_weather"
    description = "Current weather for a city."
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {"city": {"type": "string"}},
        "required": ["city"],
    }

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def invoke(self, args: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(args)
        return {"city": args["city"], "conditions": "sunny"}


@pytest.fixture
def ledger() -> CostLedger:
    return CostLedger()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


def make_orchestrator(
    provider: LLMProvider,
    ledger: CostLedger,
    sleep: AsyncMock,
    recorder: ConversationRecorder | None = None,
) -> QueryOrchestrator:
    return QueryOrchestrator(
        provider,
        ledger=ledger,
        retry_executor=RetryExecutor(sleep=sleep),
        recorder=recorder,
    )


USER_TURN = Turn(role="user", content="What is the weather in Oslo?")


class TestQuery:
    """Tests for QueryOrchestrator.query."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(text_response("It is sunny."))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert isinstance(message, AssistantMessage)
        assert message.text == "It is sunny."
        assert message.is_api_error_message is False
        assert message.message.model == "gemini-pro"
        assert message.message.usage.prompt_tokens == 1000
        assert message.message.usage.completion_tokens == 500
        assert message.message.usage.total_tokens == 1500
        assert message.cost_usd == pytest.approx(0.0005)
        assert message.duration_ms >= 0
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_cost_added_to_ledger(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(text_response("a"), text_response("b"))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        await orchestrator.query([USER_TURN])
        await orchestrator.query([USER_TURN])

        assert ledger.total_cost_usd == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_empty_text_becomes_placeholder(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        orchestrator = make_orchestrator(ScriptedProvider(text_response("")), ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert message.text == NO_CONTENT_MESSAGE

    @pytest.mark.asyncio
    async def test_history_and_system_prompt(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        """Message envelopes are unwrapped and the system prompt leads."""
        provider = ScriptedProvider(text_response("Still sunny."))
        orchestrator = make_orchestrator(provider, ledger, sleep)
        history = [
            UserMessage(message=USER_TURN),
            AssistantMessage(message=APIMessage(content="Sunny.")),
            Turn(role="user", content="And tomorrow?"),
        ]

        await orchestrator.query(history, system_prompt=["Be brief."])

        sent = provider.requests[0].history
        assert [entry["role"] for entry in sent] == ["user", "user", "assistant", "user"]
        assert sent[0]["parts"][0]["text"] == "Be brief."
        assert sent[2]["parts"][0]["text"] == "Sunny."

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(
            TransientProviderError("busy", ErrorKind.RESOURCE_EXHAUSTED),
            TransientProviderError("busy", ErrorKind.UNAVAILABLE),
            text_response("Finally."),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert message.text == "Finally."
        assert len(provider.requests) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_fatal_error_becomes_error_message(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(FatalProviderError("Bad field", ErrorKind.INVALID_ARGUMENT))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert message.is_api_error_message is True
        assert message.text == "API Error: Bad field"
        assert message.message.model == SYNTHETIC_MODEL
        assert message.cost_usd == 0.0
        assert ledger.total_cost_usd == 0.0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_retries_become_error_message(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        error = TransientProviderError("UNAVAILABLE: Overloaded", ErrorKind.UNAVAILABLE)
        provider = ScriptedProvider(*[error] * 11)
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert message.is_api_error_message is True
        assert message.text == "API Error: UNAVAILABLE: Overloaded"
        assert len(provider.requests) == 11
        assert sleep.await_count == 10

    @pytest.mark.asyncio
    async def test_invalid_key_message(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(AuthenticationError("API key not valid"))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN])

        assert message.is_api_error_message is True
        assert message.text == INVALID_API_KEY_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_abort_before_send(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(text_response("never"))
        orchestrator = make_orchestrator(provider, ledger, sleep)
        abort = asyncio.Event()
        abort.set()

        message = await orchestrator.query([USER_TURN], abort=abort)

        assert message.is_api_error_message is True
        assert message.text == "API Error: Request was aborted"
        assert provider.requests == []


class TestToolCalling:
    """Tests for the single tool round trip."""

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        tool = WeatherTool()
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            text_response("It is sunny in Oslo.", prompt=200, output=20),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN], tools=[tool])

        assert tool.calls == [{"city": "Oslo"}]
        assert message.text == "It is sunny in Oslo."
        assert len(provider.requests) == 2
        follow_up = provider.requests[1]
        assert follow_up.history[-1] == {
            "role": "user",
            "parts": [{"text": '{"city": "Oslo", "conditions": "sunny"}'}],
        }
        assert follow_up.tools is not None
        # Usage covers both round trips
        assert message.message.usage.prompt_tokens == 300
        assert message.message.usage.completion_tokens == 70
        assert message.tools == [tool]

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_original(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(call_response("get_time", {}))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        assert message.text == NO_CONTENT_MESSAGE
        assert message.is_api_error_message is False
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_tool_failure_propagates(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        tool = WeatherTool()
        provider = ScriptedProvider(call_response("get_weather", {}))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        with pytest.raises(ToolExecutionError, match="get_weather"):
            await orchestrator.query([USER_TURN], tools=[tool])

    @pytest.mark.asyncio
    async def test_follow_up_failure_becomes_error_message(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            FatalProviderError("Blocked", ErrorKind.FAILED_PRECONDITION),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        assert message.is_api_error_message is True
        assert message.text == "API Error: Blocked"

    @pytest.mark.asyncio
    async def test_follow_up_failure_still_bills_first_call(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            FatalProviderError("Blocked", ErrorKind.FAILED_PRECONDITION),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        # 100 prompt + 50 output tokens at the default rates
        assert ledger.total_cost_usd == pytest.approx(0.00005)

    @pytest.mark.asyncio
    async def test_first_call_failure_bills_nothing(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(FatalProviderError("Bad request", ErrorKind.INVALID_ARGUMENT))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        assert ledger.total_cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_reply_carries_tool_result_turn(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            text_response("It is sunny in Oslo."),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        assert message.tool_turns == [
            Turn(role="user", content='{"city": "Oslo", "conditions": "sunny"}')
        ]
        assert "tool_turns" not in message.model_dump()

    @pytest.mark.asyncio
    async def test_plain_reply_has_no_tool_turns(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        provider = ScriptedProvider(call_response("get_time", {}))
        orchestrator = make_orchestrator(provider, ledger, sleep)

        message = await orchestrator.query([USER_TURN], tools=[WeatherTool()])

        assert message.tool_turns == []

    @pytest.mark.asyncio
    async def test_continuing_after_tool_round_trip(
        self, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        """The tool result stays in the conversation for later queries."""
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            text_response("It is sunny in Oslo."),
            text_response("You're welcome."),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)
        tools = [WeatherTool()]

        reply = await orchestrator.query([USER_TURN], tools=tools)
        await orchestrator.query(
            [USER_TURN, reply, Turn(role="user", content="thanks")], tools=tools
        )

        texts = [entry["parts"][0]["text"] for entry in provider.requests[2].history]
        assert texts == [
            USER_TURN.content,
            '{"city": "Oslo", "conditions": "sunny"}',
            "It is sunny in Oslo.",
            "thanks",
        ]

    @pytest.mark.asyncio
    async def test_log_records_order(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            text_response("It is sunny in Oslo."),
        )
        orchestrator = make_orchestrator(provider, ledger, sleep)

        reply = await orchestrator.query([USER_TURN], tools=[WeatherTool()])
        records = reply.log_records()

        assert [record.type for record in records] == ["user", "assistant"]
        assert isinstance(records[0], UserMessage)
        assert records[0].message.content == '{"city": "Oslo", "conditions": "sunny"}'
        assert records[1].uuid == reply.uuid
        assert records[1].tool_turns == []


class TestRecording:
    """Tests for record/replay through the orchestrator."""

    @pytest.mark.asyncio
    async def test_replay_without_network(
        self, tmp_path: Path, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        store = CassetteStore(tmp_path)
        tool = WeatherTool()
        live = ScriptedProvider(
            call_response("get_weather", {"city": "Oslo"}),
            text_response("It is sunny in Oslo."),
        )
        recorded = await make_orchestrator(
            live, ledger, sleep, ConversationRecorder(RecordMode.RECORD, store)
        ).query([USER_TURN], tools=[tool])

        offline = ScriptedProvider()
        replayed = await make_orchestrator(
            offline, ledger, sleep, ConversationRecorder(RecordMode.REPLAY, store)
        ).query([USER_TURN], tools=[tool])

        assert offline.requests == []
        assert replayed.text == recorded.text
        assert replayed.message.usage == recorded.message.usage
        # Tools still run locally during replay
        assert len(tool.calls) == 2

    @pytest.mark.asyncio
    async def test_replay_miss_propagates(
        self, tmp_path: Path, ledger: CostLedger, sleep: AsyncMock
    ) -> None:
        recorder = ConversationRecorder(RecordMode.REPLAY, CassetteStore(tmp_path))
        orchestrator = make_orchestrator(ScriptedProvider(), ledger, sleep, recorder)

        with pytest.raises(CassetteNotFoundError):
            await orchestrator.query([USER_TURN])


class TestVerifyApiKey:
    """Tests for QueryOrchestrator.verify_api_key."""

    @pytest.mark.asyncio
    async def test_valid_key(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        checker = ScriptedProvider(text_response("ok"))
        orchestrator = make_orchestrator(ScriptedProvider(), ledger, sleep)

        with patch(
            "gemrelay.orchestrator.orchestrator.create_provider", return_value=checker
        ) as factory:
            assert await orchestrator.verify_api_key("new-key") is True

        config = factory.call_args.args[0]
        assert config.api_key.get_secret_value() == "new-key"
        assert checker.requests[0].history[0]["parts"][0]["text"] == "test"
        assert checker.closed

    @pytest.mark.asyncio
    async def test_rejected_key(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        checker = ScriptedProvider(AuthenticationError("API key not valid"))
        orchestrator = make_orchestrator(ScriptedProvider(), ledger, sleep)

        with patch("gemrelay.orchestrator.orchestrator.create_provider", return_value=checker):
            assert await orchestrator.verify_api_key("bad-key") is False
        assert checker.closed

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        checker = ScriptedProvider(FatalProviderError("Bad request", ErrorKind.INVALID_ARGUMENT))
        orchestrator = make_orchestrator(ScriptedProvider(), ledger, sleep)

        with patch(
            "gemrelay.orchestrator.orchestrator.create_provider", return_value=checker
        ), pytest.raises(FatalProviderError):
            await orchestrator.verify_api_key("key")

    @pytest.mark.asyncio
    async def test_uses_two_retries(self, ledger: CostLedger, sleep: AsyncMock) -> None:
        error = TransientProviderError("busy", ErrorKind.UNAVAILABLE)
        checker = ScriptedProvider(error, error, error)
        orchestrator = make_orchestrator(ScriptedProvider(), ledger, sleep)

        with patch(
            "gemrelay.orchestrator.orchestrator.create_provider", return_value=checker
        ), pytest.raises(TransientProviderError):
            await orchestrator.verify_api_key("key")

        assert len(checker.requests) == 3
        assert sleep.await_count == 2
