"""
Pre-config tester: tries DPI bypass launch scripts one by one until the
target domain becomes reachable.
"""

__version__ = "1.0.0"

from .catalog import candidate_sort_key, discover_candidates
from .config import TesterConfig, load_config
from .errors import (
    CatalogError,
    ConfigurationError,
    InvalidInputError,
    LaunchError,
    PreconfigTesterError,
    ProbeTransportError,
    ProcessTimeoutError,
)
from .models import (
    Candidate,
    ProbeOutcome,
    ProbeReport,
    RunSummary,
    RunVerdict,
    TrialRecord,
    TrialState,
    TrialVerdict,
)
from .network import ConnectivityProbe
from .orchestrator import TrialListener, TrialOrchestrator
from .preflight import PreflightCheck, PreflightReport, PreflightVerdict
from .process import ProcessLifecycleManager

__all__ = [
    "__version__",
    "Candidate",
    "CatalogError",
    "ConfigurationError",
    "ConnectivityProbe",
    "InvalidInputError",
    "LaunchError",
    "PreconfigTesterError",
    "PreflightCheck",
    "PreflightReport",
    "PreflightVerdict",
    "ProbeOutcome",
    "ProbeReport",
    "ProbeTransportError",
    "ProcessLifecycleManager",
    "ProcessTimeoutError",
    "RunSummary",
    "RunVerdict",
    "TesterConfig",
    "TrialListener",
    "TrialOrchestrator",
    "TrialRecord",
    "TrialState",
    "TrialVerdict",
    "candidate_sort_key",
    "discover_candidates",
    "load_config",
]
