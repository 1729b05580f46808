from pathlib import Path

import pytest

from preconfig_tester.errors import (
    CatalogError,
    InvalidInputError,
    PreconfigTesterError,
    ProbeTransportError,
)
from preconfig_tester.models import (
    Candidate,
    ProbeOutcome,
    ProbeReport,
    RunSummary,
    RunVerdict,
    TrialRecord,
    TrialVerdict,
)
from preconfig_tester.preflight import PreflightReport, PreflightVerdict


def test_candidate_from_path():
    candidate = Candidate.from_path("pre-configs/general (ALT).bat")
    assert candidate.name == "general (ALT).bat"
    assert candidate.path == Path("pre-configs/general (ALT).bat")
    assert str(candidate) == "general (ALT).bat"


def test_records_are_frozen():
    record = TrialRecord(Candidate.from_path("a.bat"), TrialVerdict.PASS, "ok")
    with pytest.raises(AttributeError):
        record.verdict = TrialVerdict.FAIL


def test_summary_to_dict():
    a = Candidate.from_path("a.bat")
    b = Candidate.from_path("b.bat")
    probe = ProbeReport(ProbeOutcome.CONNECTION_RESET, "https://discord.com", unclassified=True)
    summary = RunSummary(
        target="discord.com:443",
        verdict=RunVerdict.SUCCESS,
        records=(
            TrialRecord(a, TrialVerdict.FAIL, "probe: connection_reset",
                        outcome=ProbeOutcome.CONNECTION_RESET, unclassified=True),
            TrialRecord(b, TrialVerdict.PASS, "connection established", outcome=ProbeOutcome.SUCCESS),
        ),
        winner=b,
        preflight=PreflightReport(PreflightVerdict.UNCLEAR, probe),
    )

    data = summary.to_dict()

    assert data["verdict"] == "success"
    assert data["winner"] == "b.bat"
    assert data["preflight"]["verdict"] == "unclear"
    assert [r["verdict"] for r in data["records"]] == ["fail", "pass"]
    assert data["records"][0]["outcome"] == "connection_reset"
    assert summary.succeeded
    assert summary.unclassified_records == (summary.records[0],)


@pytest.mark.parametrize(
    "verdict, succeeded",
    [
        (RunVerdict.SUCCESS, True),
        (RunVerdict.NO_CONFIG_NEEDED, True),
        (RunVerdict.EXHAUSTED, False),
        (RunVerdict.NETWORK_UNAVAILABLE, False),
    ],
)
def test_summary_succeeded(verdict, succeeded):
    assert RunSummary("discord.com:443", verdict).succeeded is succeeded


def test_error_context():
    error = CatalogError("Pre-configs not found", {"directory": "pre-configs"})
    assert isinstance(error, InvalidInputError)
    assert isinstance(error, PreconfigTesterError)
    data = error.to_dict()
    assert data["error_type"] == "CatalogError"
    assert data["context"] == {"directory": "pre-configs"}


def test_transport_error_carries_outcome():
    error = ProbeTransportError("reset", ProbeOutcome.CONNECTION_RESET, unclassified=True)
    assert error.outcome is ProbeOutcome.CONNECTION_RESET
    assert error.context == {"outcome": "connection_reset", "unclassified": True}
