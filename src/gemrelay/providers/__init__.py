"""LLM provider abstractions."""

from gemrelay.providers.adapter import MessageAdapter
from gemrelay.providers.base import (
    Candidate,
    Content,
    FunctionCall,
    GenerationConfig,
    LLMProvider,
    Part,
    ProviderRequest,
    ProviderResponse,
    UsageCounters,
)
from gemrelay.providers.factory import ProviderRegistry, create_provider
from gemrelay.providers.gemini import GeminiProvider, classify_error

__all__ = [
    "Candidate",
    "Content",
    "FunctionCall",
    "GeminiProvider",
    "GenerationConfig",
    "LLMProvider",
    "MessageAdapter",
    "Part",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderResponse",
    "UsageCounters",
    "classify_error",
    "create_provider",
]
