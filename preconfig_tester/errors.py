"""
Exception hierarchy for the pre-config tester.

Per-candidate failures (launch, process wait) are caught by the orchestrator
and turned into trial records. Only invalid top-level input and broken
configuration are allowed to abort a run.
"""

import time
from typing import Any, Dict, Optional


class PreconfigTesterError(Exception):
    """Base exception carrying structured context for logging."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
            "timestamp": self.timestamp,
        }


class LaunchError(PreconfigTesterError):
    """Candidate script could not be started (missing file, permission denied)."""

    pass


class ProcessTimeoutError(PreconfigTesterError):
    """Expected process was not observed within the wait timeout."""

    pass


class ProbeTransportError(PreconfigTesterError):
    """
    Classified transport failure inside the connectivity probe.

    Never leaves the probe: it is converted into a ProbeOutcome.
    """

    def __init__(self, message: str, outcome, unclassified: bool = False):
        super().__init__(message, {"outcome": outcome.value, "unclassified": unclassified})
        self.outcome = outcome
        self.unclassified = unclassified


class InvalidInputError(PreconfigTesterError):
    """Malformed target domain or missing candidate catalog."""

    pass


class CatalogError(InvalidInputError):
    """Candidate directory is missing or holds no candidates."""

    pass


class ConfigurationError(PreconfigTesterError):
    """Invalid configuration values or unreadable configuration file."""

    pass
