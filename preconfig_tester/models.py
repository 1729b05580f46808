"""
Data models shared by the probe, the process manager and the orchestrator.

All records are frozen: a probe report or trial record is produced once and
only read afterwards.
"""

from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .preflight import PreflightReport


# ============================================================================
# Enums
# ============================================================================


class ProbeOutcome(Enum):
    """Result of one connectivity attempt."""

    SUCCESS = "success"  # content served, no block signature
    CONNECTION_RESET = "connection_reset"  # transport reset/abort, or HTTP error
    TIMEOUT = "timeout"  # no response within bound
    NO_CONNECTION = "no_connection"  # DNS/routing failure
    CENSORSHIP_REDIRECT = "censorship_redirect"  # block page served or redirected to


class TrialVerdict(Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class RunVerdict(Enum):
    """Overall verdict of one invocation."""

    NO_CONFIG_NEEDED = "no_config_needed"
    NETWORK_UNAVAILABLE = "network_unavailable"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class TrialState(Enum):
    """Orchestrator state machine states."""

    IDLE = auto()
    PREFLIGHT = auto()
    SELECTING_CANDIDATE = auto()
    LAUNCHING = auto()
    WAITING_FOR_PROCESS = auto()
    PROBING = auto()
    RECORDING_RESULT = auto()
    CLEANUP = auto()
    DONE = auto()


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class Candidate:
    """One configuration script to trial."""

    name: str
    path: Path

    @classmethod
    def from_path(cls, path) -> "Candidate":
        path = Path(path)
        return cls(name=path.name, path=path)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ProbeReport:
    """
    Detailed result of one probe.

    ``unclassified`` is set when a transport error matched none of the known
    signatures and was folded into CONNECTION_RESET.
    """

    outcome: ProbeOutcome
    url: str
    final_url: Optional[str] = None
    status_code: Optional[int] = None
    detail: str = ""
    unclassified: bool = False
    elapsed: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.outcome is ProbeOutcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "url": self.url,
            "final_url": self.final_url,
            "status_code": self.status_code,
            "detail": self.detail,
            "unclassified": self.unclassified,
            "elapsed": round(self.elapsed, 3),
        }


@dataclass(frozen=True)
class TrialRecord:
    """Per-candidate result, appended once to the run summary."""

    candidate: Candidate
    verdict: TrialVerdict
    reason: str
    launched: bool = False
    process_appeared: bool = False
    outcome: Optional[ProbeOutcome] = None
    probe_detail: str = ""
    unclassified: bool = False
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return self.verdict is TrialVerdict.PASS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate.name,
            "path": str(self.candidate.path),
            "verdict": self.verdict.value,
            "reason": self.reason,
            "launched": self.launched,
            "process_appeared": self.process_appeared,
            "outcome": self.outcome.value if self.outcome else None,
            "probe_detail": self.probe_detail,
            "unclassified": self.unclassified,
            "duration": round(self.duration, 3),
        }


@dataclass(frozen=True)
class RunSummary:
    """Ordered trial records plus the overall verdict of the run."""

    target: str
    verdict: RunVerdict
    records: Tuple[TrialRecord, ...] = ()
    winner: Optional[Candidate] = None
    preflight: Optional["PreflightReport"] = None

    @property
    def succeeded(self) -> bool:
        return self.verdict in (RunVerdict.SUCCESS, RunVerdict.NO_CONFIG_NEEDED)

    @property
    def unclassified_records(self) -> Tuple[TrialRecord, ...]:
        return tuple(r for r in self.records if r.unclassified)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "verdict": self.verdict.value,
            "winner": self.winner.name if self.winner else None,
            "preflight": self.preflight.to_dict() if self.preflight else None,
            "records": [r.to_dict() for r in self.records],
        }
