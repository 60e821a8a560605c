"""
Atlantis Drift Detector Package.

This package finds Terraform projects whose live infrastructure has drifted
from what is committed to a repository. Plans are requested from an Atlantis
server for every (directory, workspace) declared in the repository's
atlantis.yaml.

The drift detection process:
1. Clones the repository and reads the declared projects
2. Optionally checks declared workspaces against the remote backends
3. Requests a plan per project, skipping ones processed recently
4. Reports drifted projects to the configured notification backends
"""

from .context import RunContext
from .core import Drifter, filter_projects
from .errors import (
    AuthenticationError,
    BackendReconciliationError,
    CloneError,
    ConfigParseError,
    DriftRunError,
    DrifterError,
    FatalOrchestrationError,
    NotificationDeliveryError,
    PlanRequestError,
    RunCancelledError,
    TransientPlanError,
)
from .types import CacheEntry, Outcome, PlanResult, PlanSummary, ProjectSpec, RunResult

__all__ = [
    "AuthenticationError",
    "BackendReconciliationError",
    "CacheEntry",
    "CloneError",
    "ConfigParseError",
    "DriftRunError",
    "Drifter",
    "DrifterError",
    "FatalOrchestrationError",
    "NotificationDeliveryError",
    "Outcome",
    "PlanRequestError",
    "PlanResult",
    "PlanSummary",
    "ProjectSpec",
    "RunCancelledError",
    "RunContext",
    "RunResult",
    "TransientPlanError",
    "filter_projects",
]
