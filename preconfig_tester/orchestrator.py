"""
Sequential trial loop.

One preflight probe, then for each candidate in catalog order:
ensure clean -> launch -> wait for the expected process -> probe -> record ->
cleanup. The run stops at the first candidate whose probe succeeds. Trials
never overlap: cleanup of one candidate finishes before the next launches,
because the expected process name is the only signal that a bypass is active.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from .config import TesterConfig
from .domains import split_host_port
from .errors import CatalogError, LaunchError, ProcessTimeoutError
from .models import (
    Candidate,
    ProbeReport,
    RunSummary,
    RunVerdict,
    TrialRecord,
    TrialState,
    TrialVerdict,
)
from .network import ConnectivityProbe
from .preflight import PreflightCheck, PreflightReport
from .process import ChildHandle, ProcessLifecycleManager

LOG = logging.getLogger("PreconfigTester.Orchestrator")


class TrialListener:
    """Receives progress notifications. All hooks are optional no-ops."""

    def preflight_finished(self, report: PreflightReport) -> None:
        pass

    def trial_started(self, candidate: Candidate) -> None:
        pass

    def trial_finished(self, record: TrialRecord) -> None:
        pass


class TrialOrchestrator:
    def __init__(
        self,
        config: TesterConfig,
        process_manager: ProcessLifecycleManager,
        probe: ConnectivityProbe,
        preflight: Optional[PreflightCheck] = None,
        listener: Optional[TrialListener] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.process_manager = process_manager
        self.probe = probe
        self.preflight = preflight or PreflightCheck(probe)
        self.listener = listener or TrialListener()
        self._sleep = sleep
        self._clock = clock
        self.state = TrialState.IDLE
        self.transitions: List[TrialState] = [TrialState.IDLE]

    def _transition(self, state: TrialState) -> None:
        LOG.debug(f"{self.state.name} -> {state.name}")
        self.state = state
        self.transitions.append(state)

    def run(self, candidates: Sequence[Candidate], target: str) -> RunSummary:
        """
        Runs the whole search for ``target`` (``host:port``).

        Raises:
            InvalidInputError: bad target domain or empty candidate list,
                before anything is probed or launched.
        """
        split_host_port(target)
        if not candidates:
            raise CatalogError("Pre-configs not found", {"target": target})
        candidates = list(candidates)

        try:
            preflight_report = None
            if not self.config.skip_preflight:
                self._transition(TrialState.PREFLIGHT)
                preflight_report = self.preflight.run(target)
                self.listener.preflight_finished(preflight_report)
                short_circuit = preflight_report.short_circuit
                if short_circuit is not None:
                    LOG.info(f"Stopping before any trial: {short_circuit.value}")
                    return RunSummary(target=target, verdict=short_circuit, preflight=preflight_report)

            records: List[TrialRecord] = []
            winner = None
            for candidate in candidates:
                self._transition(TrialState.SELECTING_CANDIDATE)
                self.listener.trial_started(candidate)
                record = self._run_trial(candidate, target)
                records.append(record)
                self.listener.trial_finished(record)
                if record.passed:
                    winner = candidate
                    break
            else:
                self._transition(TrialState.SELECTING_CANDIDATE)

            verdict = RunVerdict.SUCCESS if winner else RunVerdict.EXHAUSTED
            if winner:
                LOG.info(f"Pre-config '{winner}' works for {target}")
            else:
                LOG.info(f"No working pre-config among {len(candidates)} for {target}")
            return RunSummary(
                target=target,
                verdict=verdict,
                records=tuple(records),
                winner=winner,
                preflight=preflight_report,
            )
        finally:
            self._finish()

    def _finish(self) -> None:
        self._transition(TrialState.DONE)
        self._sleep(self.config.final_settle_delay)
        self.process_manager.terminate(self.config.process_name)

    def _run_trial(self, candidate: Candidate, target: str) -> TrialRecord:
        name = self.config.process_name
        started = self._clock()
        child: Optional[ChildHandle] = None
        launched = False
        appeared = False

        def record(verdict: TrialVerdict, reason: str, report: Optional[ProbeReport] = None) -> TrialRecord:
            self._transition(TrialState.RECORDING_RESULT)
            return TrialRecord(
                candidate=candidate,
                verdict=verdict,
                reason=reason,
                launched=launched,
                process_appeared=appeared,
                outcome=report.outcome if report else None,
                probe_detail=report.detail if report else "",
                unclassified=report.unclassified if report else False,
                duration=self._clock() - started,
            )

        try:
            self._transition(TrialState.LAUNCHING)
            # A leftover from a previous trial or an external run would fake
            # the wait below.
            self.process_manager.terminate(name)
            try:
                child = self.process_manager.launch(candidate)
            except LaunchError as e:
                LOG.error(f"Failed to run pre-config {candidate.path}: {e}")
                return record(TrialVerdict.SKIP, f"launch failed: {e}")
            launched = True

            self._transition(TrialState.WAITING_FOR_PROCESS)
            try:
                self.process_manager.require_named_process(name, self.config.process_wait_timeout)
            except ProcessTimeoutError:
                LOG.warning(f"{name} not started for pre-config {candidate.path}")
                return record(TrialVerdict.FAIL, "process did not start")
            appeared = True

            self._transition(TrialState.PROBING)
            report = self.probe.inspect(target)
            if report.is_success:
                return record(TrialVerdict.PASS, "connection established", report)
            return record(TrialVerdict.FAIL, f"probe: {report.outcome.value}", report)
        except Exception as e:
            LOG.exception(f"Unexpected error while testing pre-config {candidate.path}")
            return record(TrialVerdict.FAIL, f"error: {type(e).__name__}: {e}")
        finally:
            self._transition(TrialState.CLEANUP)
            self.process_manager.cleanup(child, name)
