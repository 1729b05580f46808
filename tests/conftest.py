"""Pytest configuration and shared fixtures for pre-config tester tests."""

import logging
from pathlib import Path

import pytest

from preconfig_tester.config import TesterConfig
from preconfig_tester.models import Candidate

from fakes import PROCESS_NAME, FakeClock, FakeProcessTable

# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Default settings with every delay at zero and a short process wait."""
    return TesterConfig(process_name=PROCESS_NAME).instant().replace(
        process_wait_timeout=2.0, poll_interval=0.5
    )


@pytest.fixture
def table():
    return FakeProcessTable()


@pytest.fixture
def candidates(tmp_path: Path):
    names = ["A.bat", "B.bat", "C.bat"]
    for name in names:
        (tmp_path / name).write_text("@echo off\n", encoding="utf-8")
    return [Candidate.from_path(tmp_path / name) for name in names]
