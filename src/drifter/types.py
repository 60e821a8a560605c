"""
Type definitions for the Atlantis drift detector.

This module holds the data model shared by the scheduler, the per-pair
pipeline and the adapters: declared projects, plan results, cache entries
and the aggregated run result.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import DriftRunError

_NO_OP_PLAN = re.compile(r"^Plan: (?:0 to import, )?0 to add, 0 to change, 0 to destroy\.?$")


@dataclass(frozen=True)
class ProjectSpec:
    """A declared (directory, workspace) pair from the automation config."""

    dir: str
    workspace: str = "default"

    @property
    def key(self) -> Tuple[str, str]:
        return (self.dir, self.workspace)

    def __str__(self) -> str:
        return f"{self.dir}#{self.workspace}"


@dataclass(frozen=True)
class PlanSummary:
    """One project result returned by the planning service."""

    has_lock: bool = False
    summary: str = ""
    terraform_output: str = ""

    def is_trivial(self) -> bool:
        """True if the plan has nothing to add, change or destroy."""
        text = self.summary.strip()
        return text.startswith("No changes.") or bool(_NO_OP_PLAN.match(text))


@dataclass(frozen=True)
class PlanResult:
    """Ordered plan summaries for a single (directory, workspace) request."""

    summaries: Tuple[PlanSummary, ...] = ()

    @property
    def unlocked(self) -> List[PlanSummary]:
        return [s for s in self.summaries if not s.has_lock]

    def is_locked(self) -> bool:
        """True if every summary reports a lock (and there is at least one)."""
        return bool(self.summaries) and all(s.has_lock for s in self.summaries)

    def has_changes(self) -> bool:
        """True if any unlocked summary describes a non-trivial plan."""
        return any(not s.is_trivial() for s in self.unlocked)

    def terraform_output(self) -> Optional[str]:
        """
        Returns the output of the first unlocked summary that has any.

        Returns:
            Terraform plan output, or None if no unlocked summary carries one
        """
        for summary in self.unlocked:
            if summary.terraform_output:
                return summary.terraform_output
        return None


class Outcome(str, Enum):
    """Terminal outcome of the per-pair pipeline."""

    NO_DRIFT = "no_drift"
    DRIFTED = "drifted"
    LOCKED = "locked"
    ERROR = "error"
    CACHED = "cached"


@dataclass(frozen=True)
class CacheEntry:
    """A processed-pair record kept by the result cache."""

    dir: str
    workspace: str
    processed_at: datetime
    outcome: Outcome

    def is_valid(self, valid_for: timedelta, now: Optional[datetime] = None) -> bool:
        """True while the entry is younger than ``valid_for``."""
        if now is None:
            now = datetime.now(timezone.utc)
        return now - self.processed_at < valid_for


@dataclass(frozen=True)
class PairOutcome:
    """What happened to one pair during a run."""

    project: ProjectSpec
    outcome: Outcome
    error: Optional[BaseException] = None
    terraform_output: Optional[str] = None
    cache_error: Optional[BaseException] = None
    notification_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RunResult:
    """Aggregated, read-only result of one drift run."""

    scheduled: int = 0
    skipped_cached: int = 0
    skipped_locked: int = 0
    drifted: int = 0
    no_drift: int = 0
    errored: int = 0
    extra_workspaces: Tuple[ProjectSpec, ...] = ()
    missing_workspaces: Tuple[ProjectSpec, ...] = ()
    drifted_projects: Tuple[ProjectSpec, ...] = ()
    errors: Tuple[BaseException, ...] = ()
    notification_errors: Tuple[BaseException, ...] = ()
    outcomes: Tuple[PairOutcome, ...] = field(default=(), repr=False)

    @property
    def error(self) -> Optional[BaseException]:
        """The combined error of all partial failures, or None."""
        if not self.errors:
            return None
        return DriftRunError(list(self.errors))

    def raise_for_errors(self) -> None:
        """Raises the combined error if any partial failure was recorded."""
        error = self.error
        if error is not None:
            raise error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheduled": self.scheduled,
            "skipped_cached": self.skipped_cached,
            "skipped_locked": self.skipped_locked,
            "drifted": self.drifted,
            "no_drift": self.no_drift,
            "errored": self.errored,
            "drift_detected": self.drifted > 0,
            "drifted_projects": [str(p) for p in self.drifted_projects],
            "extra_workspaces": [str(p) for p in self.extra_workspaces],
            "missing_workspaces": [str(p) for p in self.missing_workspaces],
            "errors": [str(e) for e in self.errors],
            "notification_errors": [str(e) for e in self.notification_errors],
        }
