"""Fixtures for CLI tests."""

from __future__ import annotations

import sys

import pytest
import structlog


@pytest.fixture(autouse=True)
def _structlog_to_stderr():
    """Keep stdout free for the CLI's JSON report when logging setup is patched out."""
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
    yield
    structlog.reset_defaults()
