"""gemrelay pytest plugin.

Lets test suites run gemrelay conversations against recorded Gemini traffic.

Usage:
    pytest --gemrelay-record-mode=record  # Record live responses
    pytest --gemrelay-record-mode=replay  # Replay without network access
"""

from gemrelay.pytest_plugin.plugin import (
    cost_ledger,
    gemrelay_recorder,
    pytest_addoption,
    pytest_configure,
)

__all__ = [
    "cost_ledger",
    "gemrelay_recorder",
    "pytest_addoption",
    "pytest_configure",
]
