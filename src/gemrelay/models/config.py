"""Configuration data models.

Defines the structure for gemrelay configuration: provider settings, retry
policy, pricing, recording and logging.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from gemrelay.exceptions import RETRYABLE_ERROR_KINDS, ErrorKind


class LLMConfig(BaseModel):
    """Configuration for an LLM provider."""

    provider: str = Field(default="gemini", min_length=1)
    model: str = Field(default="gemini-pro", min_length=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.8, gt=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)
    max_output_tokens: int = Field(default=2048, ge=1)
    api_key: SecretStr | None = None
    base_url: str | None = None


class RetryPolicy(BaseModel):
    """Backoff parameters for a single call. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    base_delay_ms: int = Field(default=500, ge=0)
    max_retries: int = Field(default=10, ge=0)
    max_delay_ms: int = Field(default=32000, ge=0)
    retryable_kinds: frozenset[ErrorKind] = RETRYABLE_ERROR_KINDS

    def delay_for(self, attempt: int) -> int:
        """Backoff in milliseconds after the given failed attempt (1-based)."""
        return int(min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms))

    def is_retryable(self, kind: ErrorKind | None) -> bool:
        """Whether an error of this kind may be retried."""
        return kind is not None and kind in self.retryable_kinds


class ModelPricing(BaseModel):
    """Per-1000-token USD rates for a model."""

    model_config = ConfigDict(frozen=True)

    # Gemini Pro, March 2024 list prices
    input_cost_per_1k: float = Field(default=0.00025, ge=0.0)
    output_cost_per_1k: float = Field(default=0.0005, ge=0.0)


class RecordMode(str, Enum):
    """How provider round trips interact with the cassette store."""

    PASSTHROUGH = "passthrough"
    RECORD = "record"
    REPLAY = "replay"


class RecorderConfig(BaseModel):
    """Configuration for request recording and replay."""

    mode: RecordMode = RecordMode.PASSTHROUGH
    cassette_dir: str = "cassettes"


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    file: str | None = None
