"""
Tester configuration.

Every timing constant used by the process manager, the probe and the
orchestrator lives here, so a test can build a config with all delays at zero.
"""

import dataclasses
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .errors import ConfigurationError

LOG = logging.getLogger("PreconfigTester.Config")

IS_WINDOWS = sys.platform == "win32"

DEFAULT_PROCESS_NAME = "winws.exe" if IS_WINDOWS else "nfqws"
DEFAULT_EXTENSIONS: Tuple[str, ...] = (".bat", ".cmd") if IS_WINDOWS else (".sh",)

# Floor applied to poll_interval for configs loaded from files or the command
# line. Only configs built in code (tests) may poll with no delay.
MIN_POLL_INTERVAL = 0.05

_DELAY_FIELDS = (
    "poll_interval",
    "probe_settle_before",
    "probe_settle_after",
    "terminate_interval",
    "cleanup_kill_delay",
    "final_settle_delay",
)


@dataclass
class TesterConfig:
    """Configuration for one pre-config testing run."""

    candidates_dir: str = "pre-configs"
    candidate_extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    process_name: str = DEFAULT_PROCESS_NAME

    # Waiting for the bypass process
    process_wait_timeout: float = 10.0
    poll_interval: float = 0.5

    # Connectivity probe
    probe_timeout: float = 5.0
    probe_settle_before: float = 1.0
    probe_settle_after: float = 0.5
    max_redirects: int = 4
    body_inspect_limit: int = 64 * 1024

    # Cleanup
    terminate_attempts: int = 3
    terminate_interval: float = 0.2
    cleanup_kill_delay: float = 0.5
    final_settle_delay: float = 0.5

    skip_preflight: bool = False

    def __post_init__(self):
        """Validate configuration after initialization"""
        if isinstance(self.candidate_extensions, str):
            self.candidate_extensions = (self.candidate_extensions,)
        self.candidate_extensions = tuple(
            ext if ext.startswith(".") else f".{ext}" for ext in self.candidate_extensions
        )

        if not self.process_name or not self.process_name.strip():
            raise ConfigurationError("process_name must not be empty")
        if not self.candidate_extensions:
            raise ConfigurationError("candidate_extensions must not be empty")
        if self.process_wait_timeout < 0:
            raise ConfigurationError("process_wait_timeout must not be negative")
        if self.probe_timeout <= 0:
            raise ConfigurationError("probe_timeout must be positive")
        if self.max_redirects < 0:
            raise ConfigurationError("max_redirects must not be negative")
        if self.body_inspect_limit <= 0:
            raise ConfigurationError("body_inspect_limit must be positive")
        if self.terminate_attempts <= 0:
            raise ConfigurationError("terminate_attempts must be positive")
        for name in _DELAY_FIELDS:
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TesterConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            LOG.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        values = {k: v for k, v in data.items() if k in known}
        if "candidate_extensions" in values and isinstance(values["candidate_extensions"], list):
            values["candidate_extensions"] = tuple(values["candidate_extensions"])
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["candidate_extensions"] = list(self.candidate_extensions)
        return data

    def replace(self, **changes) -> "TesterConfig":
        return dataclasses.replace(self, **changes)

    def instant(self) -> "TesterConfig":
        """Copy of this config with every delay and the process wait timeout at zero."""
        return self.replace(process_wait_timeout=0.0, **{name: 0.0 for name in _DELAY_FIELDS})


def load_json_config(file_path: Union[str, Path], encoding: str = "utf-8") -> Any:
    """Reads a JSON settings file. Any read or parse failure is a ConfigurationError."""
    file_path = Path(file_path)
    if not file_path.is_file():
        raise ConfigurationError(f"Config file not found: {file_path}", context={"path": str(file_path)})
    try:
        with open(file_path, "r", encoding=encoding) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {file_path}: {e}", context={"path": str(file_path)}) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read {file_path}: {e}", context={"path": str(file_path)}) from e
    LOG.debug(f"Loaded config from {file_path}")
    return data


def load_config(file_path: Optional[Union[str, Path]] = None, **overrides) -> TesterConfig:
    """
    Builds a TesterConfig from an optional JSON file plus explicit overrides.

    Overrides whose value is None are ignored, so argparse namespaces can be
    passed through unchanged.
    """
    data: Dict[str, Any] = {}
    if file_path:
        loaded = load_json_config(file_path)
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {file_path} must contain a JSON object")
        data.update(loaded)
    data.update({k: v for k, v in overrides.items() if v is not None})
    config = TesterConfig.from_dict(data)
    if config.poll_interval < MIN_POLL_INTERVAL:
        LOG.warning(
            f"poll_interval {config.poll_interval} is below {MIN_POLL_INTERVAL}s, using {MIN_POLL_INTERVAL}s"
        )
        config = config.replace(poll_interval=MIN_POLL_INTERVAL)
    return config
