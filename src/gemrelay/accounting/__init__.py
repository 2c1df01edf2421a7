"""Token usage and cost accounting."""

from gemrelay.accounting.ledger import (
    COST_LEDGER,
    CostLedger,
    UsageRecord,
    add_to_total_cost,
    compute_cost,
    get_total_cost,
    get_total_duration_ms,
    reset_cost_ledger,
    token_counts,
    usage_from_counters,
)

__all__ = [
    "COST_LEDGER",
    "CostLedger",
    "UsageRecord",
    "add_to_total_cost",
    "compute_cost",
    "get_total_cost",
    "get_total_duration_ms",
    "reset_cost_ledger",
    "token_counts",
    "usage_from_counters",
]
