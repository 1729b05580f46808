"""
Test doubles for the process table, the launcher, the probe, requests and the
clock. No test touches the real network, the real process table or real time.
"""

import io
from collections import deque
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3 import HTTPResponse

from preconfig_tester.errors import LaunchError
from preconfig_tester.models import Candidate, ProbeOutcome, ProbeReport
from preconfig_tester.process import ProcessEntry, ProcessLifecycleManager, ProcessTable

PROCESS_NAME = "winws.exe"


class FakeClock:
    """Monotonic clock whose sleep advances time instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProcessTable(ProcessTable):
    """
    In-memory process table.

    ``spawn_on_launch`` maps a candidate name to how many ``process_name``
    processes appear when it is launched. ``immortal`` processes survive
    kills, ``appear_after`` delays their appearance by N snapshots.
    """

    def __init__(self, process_name: str = PROCESS_NAME):
        self.process_name = process_name
        self.entries: List[ProcessEntry] = []
        self.killed: List[int] = []
        self.snapshots = 0
        self.immortal = False
        self.pending: List[List] = []
        self._next_pid = 100

    def add(self, count: int = 1, name: Optional[str] = None, delay: int = 0) -> None:
        for _ in range(count):
            entry = ProcessEntry(pid=self._next_pid, name=name or self.process_name)
            self._next_pid += 1
            if delay:
                self.pending.append([delay, entry])
            else:
                self.entries.append(entry)

    def snapshot(self, name: str) -> List[ProcessEntry]:
        self.snapshots += 1
        for item in list(self.pending):
            item[0] -= 1
            if item[0] <= 0:
                self.pending.remove(item)
                self.entries.append(item[1])
        return [e for e in self.entries if e.name.casefold() == name.casefold()]

    def kill(self, entry: ProcessEntry) -> None:
        self.killed.append(entry.pid)
        if not self.immortal:
            self.entries = [e for e in self.entries if e.pid != entry.pid]

    def count(self, name: Optional[str] = None) -> int:
        name = name or self.process_name
        return len([e for e in self.entries if e.name == name])


class FakeChild:
    def __init__(self, candidate: Candidate, pid: int = 42):
        self.candidate = candidate
        self.pid = pid
        self.kills = 0

    def poll(self):
        return 0 if self.kills else None

    def kill(self, wait_timeout: float = 2.0) -> None:
        self.kills += 1


class FakeLauncher:
    """
    Launcher that records spawns and adds processes to a FakeProcessTable.

    ``behaviour`` maps candidate names to ``"spawn"`` (default), ``"silent"``
    (script runs but its workload never appears) or ``"fail"`` (LaunchError).
    """

    def __init__(self, table: FakeProcessTable, behaviour: Optional[Dict[str, str]] = None):
        self.table = table
        self.behaviour = behaviour or {}
        self.spawned: List[str] = []
        self.children: List[FakeChild] = []

    def spawn(self, candidate: Candidate) -> FakeChild:
        mode = self.behaviour.get(candidate.name, "spawn")
        if mode == "fail":
            raise LaunchError(f"Failed to run pre-config {candidate.path}: access denied")
        self.spawned.append(candidate.name)
        if mode == "spawn":
            self.table.add()
        child = FakeChild(candidate)
        self.children.append(child)
        return child


class RecordingManager(ProcessLifecycleManager):
    """Lifecycle manager that counts cleanup calls per launched child."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cleanups: List[Optional[str]] = []
        self.terminations = 0

    def terminate(self, name, attempts=None, interval=None):
        self.terminations += 1
        return super().terminate(name, attempts, interval)

    def cleanup(self, child, name):
        self.cleanups.append(child.candidate.name if child else None)
        return super().cleanup(child, name)


class FakeProbe:
    """
    Probe returning scripted outcomes.

    ``direct`` is the outcome when no expected process is running (preflight);
    ``by_candidate`` maps the most recently launched candidate to an outcome.
    """

    def __init__(
        self,
        table: Optional[FakeProcessTable] = None,
        launcher: Optional[FakeLauncher] = None,
        direct: ProbeOutcome = ProbeOutcome.CONNECTION_RESET,
        by_candidate: Optional[Dict[str, ProbeOutcome]] = None,
        unclassified: bool = False,
    ):
        self.table = table
        self.launcher = launcher
        self.direct = direct
        self.by_candidate = by_candidate or {}
        self.unclassified = unclassified
        self.calls: List[str] = []

    def _current(self) -> Optional[str]:
        if self.launcher and self.launcher.spawned and self.table and self.table.entries:
            return self.launcher.spawned[-1]
        return None

    def inspect(self, domain: str) -> ProbeReport:
        self.calls.append(domain)
        current = self._current()
        if current is None:
            outcome = self.direct
        else:
            outcome = self.by_candidate.get(current, ProbeOutcome.CONNECTION_RESET)
        return ProbeReport(
            outcome=outcome,
            url=f"https://{domain.split(':')[0]}",
            detail=f"scripted {outcome.value}",
            unclassified=self.unclassified and outcome is ProbeOutcome.CONNECTION_RESET,
        )

    def probe(self, domain: str) -> ProbeOutcome:
        return self.inspect(domain).outcome


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"<html>ok</html>",
        headers: Optional[Dict[str, str]] = None,
        body_error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {"Content-Type": "text/html; charset=utf-8"})
        self._body = body
        self._body_error = body_error
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        if self._body_error is not None:
            raise self._body_error
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """
    requests.Session stand-in. ``script`` is a list of FakeResponse objects
    or exceptions, consumed in order by ``get``.
    """

    def __init__(self, script=None):
        self.script = deque(script or [])
        self.headers: Dict[str, str] = {}
        self.trust_env = True
        self.requests: List[Dict] = []
        self.closed = False

    def get(self, url, **kwargs):
        self.requests.append({"url": url, **kwargs})
        if not self.script:
            raise AssertionError(f"unexpected request to {url}")
        item = self.script.popleft()
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class ServedAdapter(HTTPAdapter):
    """
    Transport adapter that answers every request with one canned response.

    Mounted on a real requests.Session, so header parsing, encoding defaults
    and Content-Encoding decoding all run through requests and urllib3.
    """

    def __init__(self, body: bytes, headers: Dict[str, str], status: int = 200):
        super().__init__()
        self.body = body
        self.headers = headers
        self.status = status
        self.sent: List = []

    def send(self, request, **kwargs):
        self.sent.append(request)
        raw = HTTPResponse(
            body=io.BytesIO(self.body),
            headers=self.headers,
            status=self.status,
            preload_content=False,
            decode_content=True,
        )
        return self.build_response(request, raw)

    def session(self):
        session = requests.Session()
        session.mount("https://", self)
        session.mount("http://", self)
        return session
