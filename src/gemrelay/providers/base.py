"""Abstract base class for LLM providers.

Defines the wire-level request/response models and the interface that all
provider implementations must follow. Field aliases follow the Gemini REST
naming so that recorded payloads read like provider traffic.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gemrelay.models.config import LLMConfig


class WireModel(BaseModel):
    """Base for models that are serialized with camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class GenerationConfig(WireModel):
    """Sampling parameters sent with every request."""

    temperature: float = 0.7
    top_p: float = Field(default=0.8, alias="topP")
    top_k: int = Field(default=40, alias="topK")
    max_output_tokens: int = Field(default=2048, alias="maxOutputTokens")


class ProviderRequest(WireModel):
    """Provider-native request: history, generation config and tool declarations."""

    model: str
    history: list[dict[str, Any]]
    generation_config: GenerationConfig = Field(
        default_factory=GenerationConfig, alias="generationConfig"
    )
    tools: list[dict[str, Any]] | None = None


class FunctionCall(WireModel):
    """Model-issued request to invoke a tool."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Part(WireModel):
    """One part of a candidate's content."""

    text: str | None = None
    function_call: FunctionCall | None = Field(default=None, alias="functionCall")


class Content(WireModel):
    """Content of a response candidate."""

    role: str = "model"
    parts: list[Part] = Field(default_factory=list)


class Candidate(WireModel):
    """One generated candidate."""

    content: Content = Field(default_factory=Content)
    finish_reason: str | None = Field(default=None, alias="finishReason")


class UsageCounters(WireModel):
    """Token counters, when the provider reports them."""

    total_tokens: int | None = Field(default=None, alias="totalTokens")
    prompt_tokens: int | None = Field(default=None, alias="promptTokens")
    candidates_tokens: int | None = Field(default=None, alias="candidatesTokens")


class ProviderResponse(WireModel):
    """Normalized provider response. This is what cassettes store."""

    text: str = ""
    candidates: list[Candidate] = Field(default_factory=list)
    usage: UsageCounters | None = None
    model: str | None = None


class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the provider with configuration."""
        self._config = config

    @property
    def config(self) -> LLMConfig:
        """Get the provider configuration."""
        return self._config

    @abstractmethod
    async def send(
        self,
        request: ProviderRequest,
        *,
        abort: asyncio.Event | None = None,
    ) -> ProviderResponse:
        """Send one request to the provider.

        Args:
            request: Provider-native request built by the MessageAdapter.
            abort: Optional signal; when set the in-flight request is cancelled.

        Returns:
            ProviderResponse with text, candidates and usage counters.

        Raises:
            ConfigurationError: If the provider cannot be configured (missing key).
            ProviderError: Classified provider failure.
            RequestAbortedError: If the abort signal fired.
        """
        ...

    async def close(self) -> None:  # noqa: B027 - Default impl is intentionally empty
        """Release any client resources. Default implementation does nothing."""
