"""Usage and cost accounting.

Costs are estimates: Gemini does not always report token counts, and missing
counters are treated as zero rather than failing the call.
"""

import threading

from pydantic import BaseModel

from gemrelay.models.config import ModelPricing
from gemrelay.providers.base import UsageCounters


class UsageRecord(BaseModel):
    """Usage and cost of a single provider call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def compute_cost(input_tokens: int, output_tokens: int, pricing: ModelPricing) -> float:
    """USD cost of a call at per-1000-token rates."""
    return (input_tokens / 1000) * pricing.input_cost_per_1k + (
        output_tokens / 1000
    ) * pricing.output_cost_per_1k


def token_counts(counters: UsageCounters | None) -> tuple[int, int]:
    """(input, output) token counts from provider counters.

    Output is taken from the candidate count when reported, otherwise derived
    as total minus prompt. Missing counters count as zero.
    """
    if counters is None:
        return 0, 0
    prompt = counters.prompt_tokens or 0
    if counters.candidates_tokens is not None:
        return prompt, counters.candidates_tokens
    total = counters.total_tokens or 0
    return prompt, max(total - prompt, 0)


def usage_from_counters(
    counters: UsageCounters | None,
    pricing: ModelPricing,
    duration_ms: int = 0,
) -> UsageRecord:
    """Build a UsageRecord for one call."""
    input_tokens, output_tokens = token_counts(counters)
    return UsageRecord(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost_usd=compute_cost(input_tokens, output_tokens, pricing),
        duration_ms=duration_ms,
    )


class CostLedger:
    """Running totals of cost and duration. Only ever added to."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_cost_usd = 0.0
        self._total_duration_ms = 0

    def add(self, cost_usd: float, duration_ms: int) -> None:
        """Atomically accumulate one call's cost and duration."""
        with self._lock:
            self._total_cost_usd += cost_usd
            self._total_duration_ms += duration_ms

    @property
    def total_cost_usd(self) -> float:
        with self._lock:
            return self._total_cost_usd

    @property
    def total_duration_ms(self) -> int:
        with self._lock:
            return self._total_duration_ms

    def reset(self) -> None:
        """Zero the totals. Intended for tests."""
        with self._lock:
            self._total_cost_usd = 0.0
            self._total_duration_ms = 0


# Process-wide ledger
COST_LEDGER = CostLedger()


def add_to_total_cost(cost_usd: float, duration_ms: int) -> None:
    COST_LEDGER.add(cost_usd, duration_ms)


def get_total_cost() -> float:
    return COST_LEDGER.total_cost_usd


def get_total_duration_ms() -> int:
    return COST_LEDGER.total_duration_ms


def reset_cost_ledger() -> None:
    COST_LEDGER.reset()
