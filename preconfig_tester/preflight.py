"""Upfront probe against the bare target, before any candidate runs."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .models import ProbeOutcome, ProbeReport, RunVerdict
from .network import ConnectivityProbe

LOG = logging.getLogger("PreconfigTester.Preflight")


class PreflightVerdict(Enum):
    NO_DPI = "no_dpi"
    DPI_DETECTED = "dpi_detected"
    ISP_BLOCKED = "isp_blocked"
    NO_CONNECTION = "no_connection"
    UNCLEAR = "unclear"


_VERDICTS = {
    ProbeOutcome.SUCCESS: PreflightVerdict.NO_DPI,
    ProbeOutcome.CONNECTION_RESET: PreflightVerdict.DPI_DETECTED,
    ProbeOutcome.TIMEOUT: PreflightVerdict.DPI_DETECTED,
    ProbeOutcome.CENSORSHIP_REDIRECT: PreflightVerdict.ISP_BLOCKED,
    ProbeOutcome.NO_CONNECTION: PreflightVerdict.NO_CONNECTION,
}


@dataclass(frozen=True)
class PreflightReport:
    verdict: PreflightVerdict
    probe: ProbeReport

    @property
    def short_circuit(self) -> Optional[RunVerdict]:
        """The run verdict to stop with, or None when candidates must be tried."""
        if self.verdict is PreflightVerdict.NO_DPI:
            return RunVerdict.NO_CONFIG_NEEDED
        if self.verdict is PreflightVerdict.NO_CONNECTION:
            return RunVerdict.NETWORK_UNAVAILABLE
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"verdict": self.verdict.value, "probe": self.probe.to_dict()}


def verdict_for(report: ProbeReport) -> PreflightVerdict:
    if report.unclassified:
        return PreflightVerdict.UNCLEAR
    return _VERDICTS[report.outcome]


class PreflightCheck:
    def __init__(self, probe: ConnectivityProbe):
        self.probe = probe

    def run(self, target: str) -> PreflightReport:
        LOG.info(f"Checking DPI blocks for {target} without any pre-config")
        report = self.probe.inspect(target)
        verdict = verdict_for(report)
        LOG.info(f"Preflight verdict for {target}: {verdict.value}")
        return PreflightReport(verdict=verdict, probe=report)
