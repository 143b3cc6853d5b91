"""Test-run orchestration: defines, phases, coverage and the run pipeline."""

__version__ = "0.1.0"

from .orchestrator import RunOutcome, TestOrchestrator, TestRequest, run_tests
from .phases import FailurePolicy, PhaseResult
from .router import Backends, PlatformOptions, PlatformPlan, RouterError, plan_for

__all__ = [
    "__version__",
    "Backends",
    "FailurePolicy",
    "PhaseResult",
    "PlatformOptions",
    "PlatformPlan",
    "RouterError",
    "RunOutcome",
    "TestOrchestrator",
    "TestRequest",
    "plan_for",
    "run_tests",
]
