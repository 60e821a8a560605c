"""
Error aggregation for drift runs.

Workers report terminal outcomes here. All mutation happens under one lock;
``freeze`` hands the caller an immutable RunResult.
"""

import threading
from typing import List, Optional

from ..utils import setup_logging
from .errors import FatalOrchestrationError, PairError
from .types import Outcome, PairOutcome, ProjectSpec, RunResult

logger = setup_logging()


class ResultAggregator:
    """Thread-safe collector of per-pair and per-directory outcomes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scheduled = 0
        self._outcomes: List[PairOutcome] = []
        self._errors: List[BaseException] = []
        self._notification_errors: List[BaseException] = []
        self._extra: List[ProjectSpec] = []
        self._missing: List[ProjectSpec] = []
        self._fatal: Optional[FatalOrchestrationError] = None

    def set_scheduled(self, count: int) -> None:
        with self._lock:
            self._scheduled = count

    def record(self, outcome: PairOutcome) -> None:
        """Records the terminal outcome of one pair."""
        with self._lock:
            project = outcome.project
            self._outcomes.append(outcome)
            if outcome.outcome is Outcome.ERROR and outcome.error is not None:
                self._errors.append(PairError(project.dir, project.workspace, outcome.error))
            if outcome.cache_error is not None:
                self._errors.append(PairError(project.dir, project.workspace, outcome.cache_error))
            if outcome.notification_error is not None:
                self._notification_errors.append(outcome.notification_error)

    def record_error(self, error: BaseException) -> None:
        """Records a partial failure that is not tied to a pair outcome."""
        with self._lock:
            self._errors.append(error)

    def record_notification_error(self, error: BaseException) -> None:
        with self._lock:
            self._notification_errors.append(error)

    def record_extra_workspace(self, project: ProjectSpec) -> None:
        with self._lock:
            self._extra.append(project)

    def record_missing_workspace(self, project: ProjectSpec) -> None:
        with self._lock:
            self._missing.append(project)

    def record_fatal(self, error: FatalOrchestrationError) -> bool:
        """
        Records a fatal error. Only the first one is kept.

        Returns:
            True if this was the first fatal error of the run
        """
        with self._lock:
            if self._fatal is not None:
                logger.debug(f"Ignoring additional fatal error: {error}")
                return False
            self._fatal = error
            return True

    @property
    def fatal(self) -> Optional[FatalOrchestrationError]:
        with self._lock:
            return self._fatal

    def freeze(self) -> RunResult:
        """Builds the immutable result of the run."""
        with self._lock:
            counts = {outcome: 0 for outcome in Outcome}
            for item in self._outcomes:
                counts[item.outcome] += 1
            return RunResult(
                scheduled=self._scheduled,
                skipped_cached=counts[Outcome.CACHED],
                skipped_locked=counts[Outcome.LOCKED],
                drifted=counts[Outcome.DRIFTED],
                no_drift=counts[Outcome.NO_DRIFT],
                errored=counts[Outcome.ERROR],
                extra_workspaces=tuple(self._extra),
                missing_workspaces=tuple(self._missing),
                drifted_projects=tuple(
                    o.project for o in self._outcomes if o.outcome is Outcome.DRIFTED
                ),
                errors=tuple(self._errors),
                notification_errors=tuple(self._notification_errors),
                outcomes=tuple(self._outcomes),
            )
