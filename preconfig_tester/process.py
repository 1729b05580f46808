"""
Process lifecycle management for candidate scripts.

A candidate script usually starts the real bypass workload (``winws.exe``,
``nfqws``) as a grandchild and exits, so the only reliable link between a
launched script and its workload is the expected executable name. Detection
and termination are therefore name-based: every process carrying the
expected name is treated as belonging to this tool, including unrelated ones
that happen to share the name.
"""

import logging
import os
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

import psutil

from .config import TesterConfig
from .errors import LaunchError, ProcessTimeoutError
from .models import Candidate
from .retry import bounded_retry, wait_until

LOG = logging.getLogger("PreconfigTester.Process")

IS_WINDOWS = sys.platform == "win32"

# Errors a kill may hit when the target exits or is protected
KILL_ERRORS = (psutil.Error, OSError)


@dataclass(frozen=True)
class ProcessEntry:
    """One row of a process table snapshot."""

    pid: int
    name: str
    handle: Any = None


# ============================================================================
# Process table (observer) interface
# ============================================================================


class ProcessTable(ABC):
    """Read and kill access to the OS process table, keyed by image name."""

    @abstractmethod
    def snapshot(self, name: str) -> List[ProcessEntry]:
        """Returns every process whose image name matches ``name``."""

    @abstractmethod
    def kill(self, entry: ProcessEntry) -> None:
        """Kills one process. May raise if it is already gone or protected."""


class PsutilProcessTable(ProcessTable):
    """Process table backed by psutil. Names compare case-insensitively."""

    def snapshot(self, name: str) -> List[ProcessEntry]:
        target = name.casefold()
        matches = []
        for proc in psutil.process_iter(["pid", "name"]):
            proc_name = proc.info.get("name") or ""
            if proc_name.casefold() == target:
                matches.append(ProcessEntry(pid=proc.info["pid"], name=proc_name, handle=proc))
        return matches

    def kill(self, entry: ProcessEntry) -> None:
        proc = entry.handle if entry.handle is not None else psutil.Process(entry.pid)
        proc.kill()


# ============================================================================
# Launching
# ============================================================================


class ChildHandle:
    """The directly launched child of one trial."""

    def __init__(self, process: subprocess.Popen, candidate: Candidate):
        self._process = process
        self.candidate = candidate

    @property
    def pid(self) -> int:
        return self._process.pid

    def poll(self) -> Optional[int]:
        return self._process.poll()

    def kill(self, wait_timeout: float = 2.0) -> None:
        """Kills the child. An already exited child is not an error."""
        if self._process.poll() is not None:
            LOG.debug(f"Child {self.pid} ({self.candidate}) already exited")
            return
        try:
            self._process.kill()
            self._process.wait(timeout=wait_timeout)
            LOG.debug(f"Child {self.pid} ({self.candidate}) killed")
        except ProcessLookupError:
            LOG.debug(f"Child {self.pid} vanished before kill")
        except subprocess.TimeoutExpired:
            LOG.warning(f"Child {self.pid} did not exit within {wait_timeout}s after kill")
        except OSError as e:
            LOG.warning(f"Failed to kill child {self.pid}: {e}")


class Launcher(ABC):
    @abstractmethod
    def spawn(self, candidate: Candidate) -> ChildHandle:
        """Starts the candidate script. Raises LaunchError on failure."""


class SubprocessLauncher(Launcher):
    """Starts candidate scripts detached, with standard streams discarded."""

    def build_command(self, path: Path) -> List[str]:
        if IS_WINDOWS:
            if path.suffix.lower() in (".bat", ".cmd"):
                return ["cmd", "/C", str(path)]
            return [str(path)]
        if os.access(path, os.X_OK):
            return [str(path)]
        return ["sh", str(path)]

    def spawn(self, candidate: Candidate) -> ChildHandle:
        path = Path(candidate.path)
        if not path.is_file():
            raise LaunchError(f"Pre-config not found: {path}", {"path": str(path)})

        path = path.resolve()
        command = self.build_command(path)
        kwargs = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "cwd": str(path.parent),
        }
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW
        else:
            kwargs["start_new_session"] = True

        LOG.info(f"Starting pre-config '{candidate}': {' '.join(command)}")
        try:
            process = subprocess.Popen(command, **kwargs)
        except OSError as e:
            raise LaunchError(
                f"Failed to run pre-config {path}: {e}", {"path": str(path), "errno": e.errno}
            ) from e
        LOG.debug(f"Pre-config '{candidate}' started with PID {process.pid}")
        return ChildHandle(process, candidate)


# ============================================================================
# Lifecycle manager
# ============================================================================


class ProcessLifecycleManager:
    """
    Starts candidates, watches for the expected process and guarantees it is
    gone before the next trial.
    """

    def __init__(
        self,
        config: TesterConfig,
        table: Optional[ProcessTable] = None,
        launcher: Optional[Launcher] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.table = table or PsutilProcessTable()
        self.launcher = launcher or SubprocessLauncher()
        self._sleep = sleep
        self._clock = clock

    def launch(self, candidate: Candidate) -> ChildHandle:
        return self.launcher.spawn(candidate)

    def _safe_snapshot(self, name: str) -> Optional[List[ProcessEntry]]:
        try:
            return self.table.snapshot(name)
        except KILL_ERRORS as e:
            LOG.warning(f"Process table snapshot failed: {e}")
            return None

    def is_running(self, name: str) -> bool:
        return bool(self._safe_snapshot(name))

    def wait_for_named_process(self, name: str, timeout: Optional[float] = None) -> bool:
        """Polls the process table until ``name`` shows up or ``timeout`` elapses."""
        if timeout is None:
            timeout = self.config.process_wait_timeout
        LOG.debug(f"Waiting up to {timeout}s for {name}")
        found = wait_until(
            lambda: self.is_running(name),
            timeout=timeout,
            interval=self.config.poll_interval,
            sleep=self._sleep,
            clock=self._clock,
        )
        if found:
            LOG.info(f"{name} is running")
        else:
            LOG.warning(f"{name} did not appear within {timeout}s")
        return found

    def require_named_process(self, name: str, timeout: Optional[float] = None) -> None:
        if not self.wait_for_named_process(name, timeout):
            raise ProcessTimeoutError(
                f"{name} not started", {"process_name": name, "timeout": timeout}
            )

    def _kill_entry(self, entry: ProcessEntry) -> None:
        try:
            self.table.kill(entry)
            LOG.debug(f"Killed {entry.name} (PID {entry.pid})")
        except KILL_ERRORS as e:
            LOG.debug(f"Kill of {entry.name} (PID {entry.pid}) failed: {e}")

    def terminate(
        self, name: str, attempts: Optional[int] = None, interval: Optional[float] = None
    ) -> bool:
        """
        Kills every process named ``name``, re-checking up to ``attempts`` times.

        Never raises. Returns True once no matching process remains.
        """
        attempts = attempts or self.config.terminate_attempts
        if interval is None:
            interval = self.config.terminate_interval

        last: List[Optional[List[ProcessEntry]]] = [None]

        def gone() -> bool:
            last[0] = self._safe_snapshot(name)
            return last[0] == []

        def kill_all() -> None:
            entries = last[0] or []
            if entries:
                LOG.info(f"Terminating {len(entries)} x {name}")
            for entry in entries:
                self._kill_entry(entry)

        cleared = bounded_retry(kill_all, gone, attempts=attempts, interval=interval, sleep=self._sleep)
        if not cleared:
            LOG.warning(f"{name} still present after {attempts} termination attempts")
        return cleared

    def cleanup(self, child: Optional[ChildHandle], name: str) -> bool:
        """
        Kills the tracked child first, then every process named ``name``.

        The child alone is not enough: the workload may run under a different
        process spawned by the script.
        """
        if child is not None:
            child.kill()
            self._sleep(self.config.cleanup_kill_delay)
        return self.terminate(name)
