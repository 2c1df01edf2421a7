"""Main pytest plugin implementation for gemrelay."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from gemrelay.accounting.ledger import COST_LEDGER, CostLedger
from gemrelay.config import CLIOverrides, ConfigLoader
from gemrelay.models.config import RecordMode
from gemrelay.recording.cassette import CassetteStore
from gemrelay.recording.recorder import ConversationRecorder


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add gemrelay options to pytest.

    Args:
        parser: pytest argument parser.
    """
    group = parser.getgroup("gemrelay")
    group.addoption(
        "--gemrelay-record-mode",
        action="store",
        default=None,
        choices=[mode.value for mode in RecordMode],
        help="Cassette mode: passthrough, record or replay "
        "(default: from GEMRELAY_RECORD_MODE, config or passthrough)",
    )
    group.addoption(
        "--gemrelay-cassette-dir",
        action="store",
        default=None,
        help="Directory holding recorded interactions (default: from config or cassettes)",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the gemrelay marker.

    Args:
        config: pytest configuration.
    """
    config.addinivalue_line(
        "markers", "gemrelay: mark test as exercising gemrelay conversations"
    )


@pytest.fixture
def gemrelay_recorder(request: pytest.FixtureRequest) -> ConversationRecorder:
    """Recorder configured from command-line options, environment and config file.

    A relative cassette directory is resolved against the pytest root directory.
    """
    record_mode = request.config.getoption("--gemrelay-record-mode")
    overrides = CLIOverrides(
        record_mode=RecordMode(record_mode) if record_mode else None,
        cassette_dir=request.config.getoption("--gemrelay-cassette-dir"),
    )
    recorder_config = ConfigLoader.resolve_recorder_config(
        ConfigLoader.load_config(), overrides
    )

    cassette_dir = Path(recorder_config.cassette_dir)
    if not cassette_dir.is_absolute():
        cassette_dir = Path(request.config.rootpath) / cassette_dir
    return ConversationRecorder(mode=recorder_config.mode, store=CassetteStore(cassette_dir))


@pytest.fixture
def cost_ledger() -> Iterator[CostLedger]:
    """The process-wide cost ledger, reset before and after the test."""
    COST_LEDGER.reset()
    yield COST_LEDGER
    COST_LEDGER.reset()
